"""
Configuration management for File Upload Service.
Loads environment variables and builds the upload limit policy.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class StorageMode(str, Enum):
    """Deployment-time choice of storage backend."""
    BLOB = "blob"
    LOCAL = "local"


@dataclass(frozen=True)
class LimitPolicy:
    """Limits enforced while a request body is being decoded."""

    max_bytes_per_file: int = 5 * 1024 * 1024
    max_files: int = 1
    allowed_methods: Tuple[str, ...] = ("POST", "OPTIONS")

    def __post_init__(self):
        if self.max_bytes_per_file < 1:
            raise ValueError("max_bytes_per_file must be positive")
        if self.max_files < 1:
            raise ValueError("max_files must be positive")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    LOG_LEVEL: str = "INFO"

    # Storage selection: "blob" tries durable storage and degrades to inline
    # data URIs, "local" writes under UPLOAD_DIR
    STORAGE_MODE: StorageMode = StorageMode.BLOB

    # Durable blob storage (any S3-compatible endpoint)
    BLOB_ENDPOINT: Optional[str] = None      # e.g. 192.168.1.100:9000 or https://s3.example.com
    BLOB_SECURE: bool = False                # https when BLOB_ENDPOINT has no scheme
    BLOB_REGION: str = "us-east-1"
    BLOB_ACCESS_KEY: Optional[str] = None
    BLOB_SECRET_KEY: Optional[str] = None
    BLOB_BUCKET: str = "uploads"
    BLOB_PUBLIC_URL: Optional[str] = None    # Public base URL for stored objects

    # Local filesystem storage
    SITE_URL: str = Field(
        default="http://localhost:8888",
        validation_alias=AliasChoices("SITE_URL", "URL", "DEPLOY_URL"),
    )
    UPLOAD_DIR: str = "public/uploads"
    # JSON metadata sidecars; kept outside the publicly served UPLOAD_DIR
    UPLOAD_METADATA_DIR: str = "upload-metadata"

    # Upload limits
    MAX_BYTES_PER_FILE: int = 5 * 1024 * 1024  # 5MB
    MAX_FILES: int = 1

    # Streaming decode step (bytes fed to the multipart parser at a time)
    READ_CHUNK_SIZE: int = 64 * 1024

    class Config:
        env_file = ".env"
        case_sensitive = True

    def limit_policy(self) -> LimitPolicy:
        """Build the immutable limit policy from the current settings."""
        return LimitPolicy(
            max_bytes_per_file=self.MAX_BYTES_PER_FILE,
            max_files=self.MAX_FILES,
        )


# Global settings instance
settings = Settings()
