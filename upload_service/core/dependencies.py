"""
Shared dependencies for FastAPI endpoints.
"""

import logging
from typing import Annotated

from fastapi import Depends

from upload_service.core.config import settings
from upload_service.pipeline.orchestrator import UploadOrchestrator
from upload_service.storage.factory import BackendSelector

logger = logging.getLogger(__name__)


# Singletons
_selector: BackendSelector | None = None
_orchestrator: UploadOrchestrator | None = None


def get_backend_selector() -> BackendSelector:
    """Storage selection policy built from the global settings."""
    global _selector
    if _selector is None:
        _selector = BackendSelector(settings)
    return _selector


def get_orchestrator() -> UploadOrchestrator:
    """
    Get or create the upload orchestrator.
    Overridden in tests to inject an in-memory storage backend.
    """
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = UploadOrchestrator(
            policy=settings.limit_policy(),
            backend_provider=get_backend_selector(),
            chunk_size=settings.READ_CHUNK_SIZE,
        )
        logger.info(
            f"Upload orchestrator ready (storage mode: {settings.STORAGE_MODE.value}, "
            f"max {settings.MAX_BYTES_PER_FILE} bytes per file)"
        )
    return _orchestrator


# Dependency annotation
Orchestrator = Annotated[UploadOrchestrator, Depends(get_orchestrator)]
