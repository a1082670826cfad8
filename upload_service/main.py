"""
File Upload Service - Main Application
FastAPI app accepting single-file uploads and storing them in blob storage,
on the local filesystem, or inline as data URIs.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, status
from fastapi.staticfiles import StaticFiles

from upload_service import __version__
from upload_service.api import upload
from upload_service.core.config import StorageMode, settings
from upload_service.core.dependencies import get_backend_selector
from upload_service.pipeline.responses import compose_json
from upload_service.schemas.upload import ErrorBody, HealthCheckResponse
from upload_service.storage.blob import DurableBlobStore

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Runs on startup and shutdown.
    """
    # Startup
    logger.info("Starting File Upload Service...")

    if settings.STORAGE_MODE == StorageMode.LOCAL:
        Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
        logger.info(f"Local upload directory ready: {settings.UPLOAD_DIR}")
    else:
        try:
            store = DurableBlobStore.from_settings(settings)
            store.ensure_bucket_exists()
            logger.info(f"Blob bucket ready: {settings.BLOB_BUCKET}")
        except Exception as e:
            logger.error(f"Blob storage not ready, uploads will fall back to data URIs: {e}")
            # Continue anyway - the backend is selected again per request

    logger.info("File Upload Service started successfully")

    yield

    # Shutdown
    logger.info("Shutting down File Upload Service...")


# Create FastAPI app
app = FastAPI(
    title="File Upload Service",
    description="Streaming single-file multipart upload with blob, local or inline storage",
    version=__version__,
    lifespan=lifespan
)


# Upload routes (CORS headers are added to every response by the pipeline)
app.include_router(upload.router)

# Files written by the local backend are served from /uploads
app.mount(
    "/uploads",
    StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
    name="uploads",
)


@app.get("/", tags=["root"])
async def root():
    """Root endpoint with service information."""
    return {
        "service": "File Upload Service",
        "version": __version__,
        "status": "running",
        "endpoints": {
            "upload": "/upload (POST multipart/form-data, single file)",
            "upload_image": "/upload-image (POST JSON data URI)",
            "files": "/uploads/* (local storage mode)",
            "health": "/health"
        },
        "documentation": {
            "swagger": "/docs",
            "redoc": "/redoc"
        }
    }


@app.get("/health", tags=["health"], response_model=HealthCheckResponse)
async def health_check():
    """Health check endpoint; reports the backend uploads would use right now."""
    backend = get_backend_selector().select()
    return HealthCheckResponse(
        status="healthy",
        storage_backend=backend.name
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    body = ErrorBody(error="Internal server error")
    return compose_json(status.HTTP_500_INTERNAL_SERVER_ERROR, body.model_dump_json()).to_response()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "upload_service.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
