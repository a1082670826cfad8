"""
Durable blob storage on any S3-compatible object store (MinIO, S3, R2).
"""

import asyncio
import json
import logging
from functools import partial
from typing import Dict, Optional, Set
from urllib.parse import quote

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from upload_service.core.config import Settings
from upload_service.core.errors import ErrorKind, StorageConfigurationError, UploadError
from upload_service.storage.base import StorageBackend

logger = logging.getLogger(__name__)


class DurableBlobStore(StorageBackend):
    """Stores uploads as objects in a single bucket."""

    name = "blob"

    def __init__(
        self,
        endpoint: Optional[str],
        access_key: Optional[str],
        secret_key: Optional[str],
        bucket: str = "uploads",
        region: str = "us-east-1",
        secure: bool = False,
        public_url: Optional[str] = None,
        client=None,
    ):
        """
        Initialize the store.

        Args:
            endpoint: S3 endpoint (host[:port] or full URL); None for AWS S3
            access_key: Access key ID
            secret_key: Secret access key
            bucket: Bucket holding all uploads
            region: Region name
            secure: Use https when the endpoint has no scheme
            public_url: Public base URL for objects, if served elsewhere
            client: Pre-built boto3 S3 client (skips credential checks)

        Raises:
            StorageConfigurationError: If credentials are missing or the
                client cannot be built
        """
        endpoint_url = None
        if endpoint:
            endpoint_url = endpoint
            if not endpoint_url.startswith(('http://', 'https://')):
                protocol = 'https' if secure else 'http'
                endpoint_url = f"{protocol}://{endpoint_url}"
            endpoint_url = endpoint_url.rstrip("/")

        if client is None:
            if not access_key or not secret_key:
                raise StorageConfigurationError("Blob storage credentials are not configured")
            try:
                client = boto3.client(
                    's3',
                    endpoint_url=endpoint_url,
                    aws_access_key_id=access_key,
                    aws_secret_access_key=secret_key,
                    config=Config(signature_version='s3v4'),
                    region_name=region,
                )
            except (BotoCoreError, ValueError) as e:
                raise StorageConfigurationError(f"Cannot create blob storage client: {e}") from e

        self.client = client
        self.bucket = bucket
        self.endpoint_url = endpoint_url or f"https://s3.{region}.amazonaws.com"
        self.public_url = public_url.rstrip("/") if public_url else None
        self._written: Set[str] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> "DurableBlobStore":
        return cls(
            endpoint=settings.BLOB_ENDPOINT,
            access_key=settings.BLOB_ACCESS_KEY,
            secret_key=settings.BLOB_SECRET_KEY,
            bucket=settings.BLOB_BUCKET,
            region=settings.BLOB_REGION,
            secure=settings.BLOB_SECURE,
            public_url=settings.BLOB_PUBLIC_URL,
        )

    async def _run(self, func, *args, **kwargs):
        """Run a blocking boto3 call without blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def put(self, key: str, data: bytes, metadata: Dict[str, str]) -> str:
        # S3 user metadata must be ASCII
        s3_metadata = {name: quote(value, safe=" ./-_:") for name, value in metadata.items()}
        content_type = metadata.get("content-type", "application/octet-stream")

        try:
            await self._run(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=s3_metadata,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[BLOB STORE] Failed to upload {self.bucket}/{key}: {e}")
            raise UploadError(ErrorKind.STORAGE_WRITE_FAILURE) from e

        self._written.add(key)
        logger.info(f"[BLOB STORE] Uploaded {self.bucket}/{key} ({len(data)} bytes)")
        return self._object_url(key)

    async def get_url(self, key: str) -> str:
        if key not in self._written:
            try:
                await self._run(self.client.head_object, Bucket=self.bucket, Key=key)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"[BLOB STORE] Object not found: {self.bucket}/{key}: {e}")
                raise UploadError(ErrorKind.STORAGE_WRITE_FAILURE) from e
        return self._object_url(key)

    def _object_url(self, key: str) -> str:
        """Construct direct URL to an object."""
        if self.public_url:
            return f"{self.public_url}/{quote(key)}"
        return f"{self.endpoint_url}/{self.bucket}/{quote(key)}"

    def ensure_bucket_exists(self) -> None:
        """
        Ensure the bucket exists with a public-read policy, create it if needed.

        Raises:
            ClientError: If bucket creation fails
        """
        try:
            self.client.head_bucket(Bucket=self.bucket)
            logger.info(f"Bucket exists: {self.bucket}")
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code not in ('404', 'NoSuchBucket'):
                logger.error(f"Error checking bucket {self.bucket}: {e}")
                raise

            self.client.create_bucket(Bucket=self.bucket)
            logger.info(f"Created bucket: {self.bucket}")

            # Uploaded file URLs are handed straight to browsers
            policy = {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Principal": {"AWS": "*"},
                        "Action": ["s3:GetObject"],
                        "Resource": [f"arn:aws:s3:::{self.bucket}/*"]
                    }
                ]
            }
            self.client.put_bucket_policy(Bucket=self.bucket, Policy=json.dumps(policy))
            logger.info(f"Set public-read policy for bucket: {self.bucket}")

    def __repr__(self) -> str:
        return f"DurableBlobStore(endpoint={self.endpoint_url!r}, bucket={self.bucket!r})"
