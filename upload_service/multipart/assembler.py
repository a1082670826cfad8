"""
Collect one file part's chunks into a single buffer.
"""

import logging

from upload_service.core.errors import ErrorKind, UploadError
from upload_service.models.upload import AssembledFile, FilePart

logger = logging.getLogger(__name__)


class ByteAssembler:
    """Concatenates a FilePart's chunks, in arrival order, up to a byte limit."""

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes

    async def assemble(self, part: FilePart) -> AssembledFile:
        """
        Consume the part's chunk stream to completion.

        Raises:
            UploadError: FILE_TOO_LARGE past the limit, EMPTY_FILE_CONTENT when
                the part held no bytes
        """
        buffer = bytearray()
        async for chunk in part.chunks():
            if len(buffer) + len(chunk) > self.max_bytes:
                raise UploadError(
                    ErrorKind.FILE_TOO_LARGE,
                    f"File exceeds maximum size of {self.max_bytes} bytes",
                )
            buffer += chunk

        if not buffer:
            raise UploadError(ErrorKind.EMPTY_FILE_CONTENT)

        logger.debug(f"[ASSEMBLER] {part.filename}: {len(buffer)} bytes")
        return AssembledFile(
            filename=part.filename,
            content_type=part.content_type,
            data=bytes(buffer),
        )
