"""
Local filesystem storage, served by the site itself under /uploads.

Metadata sidecars live in a separate directory so the static mount never
exposes them.
"""

import asyncio
import json
import logging
from functools import partial
from pathlib import Path
from typing import Dict, Optional, Union
from urllib.parse import quote

from upload_service.core.config import Settings
from upload_service.core.errors import ErrorKind, UploadError
from upload_service.storage.base import StorageBackend

logger = logging.getLogger(__name__)

METADATA_SUFFIX = ".json"


class LocalFilesystemStore(StorageBackend):
    """Writes uploads to ``upload_dir`` and links them from ``site_url``."""

    name = "local"

    def __init__(
        self,
        upload_dir: Union[str, Path],
        site_url: str,
        metadata_dir: Optional[Union[str, Path]] = None,
    ):
        self.upload_dir = Path(upload_dir)
        self.site_url = site_url.rstrip("/")
        if metadata_dir is None:
            metadata_dir = self.upload_dir.parent / f"{self.upload_dir.name}-metadata"
        self.metadata_dir = Path(metadata_dir)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalFilesystemStore":
        return cls(
            upload_dir=settings.UPLOAD_DIR,
            site_url=settings.SITE_URL,
            metadata_dir=settings.UPLOAD_METADATA_DIR,
        )

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise UploadError(ErrorKind.STORAGE_WRITE_FAILURE, f"Invalid storage key: {key!r}")
        return self.upload_dir / key

    def metadata_path(self, key: str) -> Path:
        return self.metadata_dir / (key + METADATA_SUFFIX)

    def _write(self, key: str, data: bytes, metadata: Dict[str, str]) -> None:
        path = self._path(key)
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        # Exclusive create: an existing object is never overwritten
        with open(path, "xb") as f:
            f.write(data)
        try:
            self.metadata_dir.mkdir(parents=True, exist_ok=True)
            self.metadata_path(key).write_text(json.dumps(metadata), encoding="utf-8")
        except OSError:
            path.unlink(missing_ok=True)
            raise

    async def put(self, key: str, data: bytes, metadata: Dict[str, str]) -> str:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, partial(self._write, key, data, metadata))
        except OSError as e:
            logger.error(f"[LOCAL STORE] Failed to write {key}: {e}")
            raise UploadError(ErrorKind.STORAGE_WRITE_FAILURE) from e

        logger.info(f"[LOCAL STORE] Saved {self.upload_dir / key} ({len(data)} bytes)")
        return self._url(key)

    async def get_url(self, key: str) -> str:
        if not self._path(key).is_file():
            raise UploadError(ErrorKind.STORAGE_WRITE_FAILURE, f"Stored file not found: {key}")
        return self._url(key)

    def _url(self, key: str) -> str:
        return f"{self.site_url}/uploads/{quote(key)}"

    def __repr__(self) -> str:
        return f"LocalFilesystemStore(upload_dir={str(self.upload_dir)!r})"
