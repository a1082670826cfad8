"""
Upload Service API schemas.
Type-safe contracts for the upload endpoints.
"""

from typing import Optional
from pydantic import BaseModel


# ============================================================================
# Multipart Upload
# ============================================================================

class UploadSuccessBody(BaseModel):
    """Response body of a successful upload."""
    fileUrl: str


class ErrorBody(BaseModel):
    """Response body of any failed request."""
    error: str


# ============================================================================
# Inline Image Upload
# ============================================================================

class ImageUploadRequest(BaseModel):
    """JSON body carrying an image as a data URI."""
    image: Optional[str] = None
    filename: Optional[str] = None


class ImageUploadResponse(BaseModel):
    """Response from inline image upload."""
    url: str


# ============================================================================
# Health Check
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str
    storage_backend: str
