"""
Inline fallback: the "URL" is a data URI holding the file itself.
"""

import logging
from typing import Dict

from upload_service.core.errors import ErrorKind, UploadError
from upload_service.storage.base import StorageBackend
from upload_service.utils.data_uri import encode_data_uri

logger = logging.getLogger(__name__)


class InlineDataFallback(StorageBackend):
    """Persists nothing beyond the lifetime of this instance."""

    name = "inline"

    def __init__(self):
        self._uris: Dict[str, str] = {}

    async def put(self, key: str, data: bytes, metadata: Dict[str, str]) -> str:
        uri = encode_data_uri(data, metadata.get("content-type", ""))
        self._uris[key] = uri
        logger.info(f"[INLINE] Encoded {key} as data URI ({len(data)} bytes)")
        return uri

    async def get_url(self, key: str) -> str:
        try:
            return self._uris[key]
        except KeyError:
            raise UploadError(ErrorKind.STORAGE_WRITE_FAILURE, f"Unknown key: {key}") from None
