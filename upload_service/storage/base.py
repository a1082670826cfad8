"""
Storage backend contract.
"""

from abc import ABC, abstractmethod
from typing import Dict

from upload_service.models.upload import AssembledFile, StorageKey


def build_metadata(key: StorageKey, file: AssembledFile) -> Dict[str, str]:
    """Metadata persisted alongside every stored object."""
    return {
        "original-filename": file.filename,
        "content-type": file.content_type,
        "size": str(file.size),
        "ingested-at": str(key.timestamp),
    }


class StorageBackend(ABC):
    """
    Persists a named byte buffer and hands back a URL for it.

    Implementations must accept concurrent ``put`` calls for distinct keys.
    """

    name: str = "base"

    @abstractmethod
    async def put(self, key: str, data: bytes, metadata: Dict[str, str]) -> str:
        """
        Store ``data`` under ``key``.

        Returns:
            URL of the stored object

        Raises:
            UploadError: STORAGE_WRITE_FAILURE on any I/O or quota error
        """

    @abstractmethod
    async def get_url(self, key: str) -> str:
        """
        URL for an object previously written with ``put``.

        Raises:
            UploadError: STORAGE_WRITE_FAILURE if the key is unknown
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
