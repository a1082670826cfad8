"""
data: URI helpers.
"""

import base64
import binascii
from typing import Tuple

from upload_service.utils.content_type import GENERIC_TYPE


def encode_data_uri(data: bytes, content_type: str) -> str:
    """Encode bytes as a self-contained ``data:<type>;base64,<payload>`` URI."""
    payload = base64.b64encode(data).decode("ascii")
    return f"data:{content_type or GENERIC_TYPE};base64,{payload}"


def decode_data_uri(value: str) -> Tuple[bytes, str]:
    """
    Decode a base64 data URI, or a bare base64 string.

    Returns:
        (data, content_type); content_type is GENERIC_TYPE when not declared

    Raises:
        ValueError: If the payload is not valid base64
    """
    content_type = GENERIC_TYPE
    payload = value
    if value.startswith("data:"):
        header, sep, payload = value[5:].partition(",")
        if not sep:
            raise ValueError("data URI has no payload")
        params = header.split(";")
        if "base64" not in params[1:]:
            raise ValueError("only base64 data URIs are supported")
        if params[0]:
            content_type = params[0].strip().lower()

    try:
        return base64.b64decode(payload, validate=True), content_type
    except binascii.Error as e:
        raise ValueError(f"invalid base64 payload: {e}") from e
