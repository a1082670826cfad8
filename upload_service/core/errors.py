"""
Error kinds raised by the upload pipeline.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Every way an upload can fail."""
    METHOD_NOT_ALLOWED = "method_not_allowed"
    EMPTY_BODY = "empty_body"
    MALFORMED_MULTIPART = "malformed_multipart"
    NO_FILE_PRESENT = "no_file_present"
    TOO_MANY_FILES = "too_many_files"
    FILE_TOO_LARGE = "file_too_large"
    EMPTY_FILE_CONTENT = "empty_file_content"
    STORAGE_WRITE_FAILURE = "storage_write_failure"


DEFAULT_MESSAGES = {
    ErrorKind.METHOD_NOT_ALLOWED: "Method Not Allowed",
    ErrorKind.EMPTY_BODY: "No file data received",
    ErrorKind.MALFORMED_MULTIPART: "Malformed multipart request",
    ErrorKind.NO_FILE_PRESENT: "No file found in request",
    ErrorKind.TOO_MANY_FILES: "Too many files in request",
    ErrorKind.FILE_TOO_LARGE: "File exceeds maximum allowed size",
    ErrorKind.EMPTY_FILE_CONTENT: "Uploaded file is empty",
    ErrorKind.STORAGE_WRITE_FAILURE: "Failed to save file",
}


class UploadError(Exception):
    """Raised by pipeline components; carries the kind and a user-facing message."""

    def __init__(self, kind: ErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"UploadError({self.kind.value!r}, {self.message!r})"


class StorageConfigurationError(Exception):
    """A storage backend could not be constructed from the current settings."""
