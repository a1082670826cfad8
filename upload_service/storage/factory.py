"""
Storage backend selection.

STORAGE_MODE=local always uses the filesystem. Otherwise durable blob storage
is attempted first; if it cannot even be constructed (e.g. missing
credentials), uploads degrade to inline data URIs instead of failing.
"""

import logging
from typing import Callable, Optional

from upload_service.core.config import Settings, StorageMode
from upload_service.storage.base import StorageBackend
from upload_service.storage.blob import DurableBlobStore
from upload_service.storage.inline import InlineDataFallback
from upload_service.storage.local import LocalFilesystemStore

logger = logging.getLogger(__name__)

BlobFactory = Callable[[Settings], StorageBackend]


class BackendSelector:
    """
    Picks the storage backend for one request.

    A successfully built blob store is reused for later requests. A failed
    construction is retried on the next request.
    """

    def __init__(self, settings: Settings, blob_factory: Optional[BlobFactory] = None):
        self.settings = settings
        self.blob_factory = blob_factory or DurableBlobStore.from_settings
        self._blob_store: Optional[StorageBackend] = None

    def __call__(self) -> StorageBackend:
        return self.select()

    def select(self) -> StorageBackend:
        if self.settings.STORAGE_MODE == StorageMode.LOCAL:
            return LocalFilesystemStore.from_settings(self.settings)

        if self._blob_store is None:
            try:
                self._blob_store = self.blob_factory(self.settings)
            except Exception as e:
                # Missing credentials raise StorageConfigurationError, a broken
                # client config surfaces as botocore errors
                logger.warning(f"[STORAGE] Durable storage unavailable, using inline data URIs: {e}")
                return InlineDataFallback()
        return self._blob_store
