"""
Content-Type detection utilities.
Resolve the MIME type of an uploaded file from its declared type and name.
"""

import mimetypes
from typing import Optional

GENERIC_TYPE = "application/octet-stream"


def detect_content_type(filename: str, provided_type: Optional[str] = None) -> str:
    """
    Resolve the Content-Type for an uploaded file.

    A specific type declared by the client wins. Otherwise the type is guessed
    from the file extension, with 'application/octet-stream' as last resort.

    Examples:
        >>> detect_content_type("photo.png", "image/png")
        'image/png'

        >>> detect_content_type("photo.jpg")
        'image/jpeg'

        >>> detect_content_type("photo.jpg", "application/octet-stream")
        'image/jpeg'

        >>> detect_content_type("unknown.xyz")
        'application/octet-stream'
    """
    if provided_type:
        provided_type = provided_type.split(";", 1)[0].strip().lower() or None

    # If client provided a specific type (not generic), use it
    if provided_type and provided_type != GENERIC_TYPE:
        return provided_type

    guessed_type, _ = mimetypes.guess_type(filename)
    return guessed_type or GENERIC_TYPE
