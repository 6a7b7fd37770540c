"""File storage for uploads.

Uploaded bytes are stored under a random key by one of three backends,
chosen with the ``storage_backend`` setting:

- ``local``: a directory on disk, served under ``/uploads``
- ``s3``: an Amazon S3 bucket (boto3)
- ``gcs``: a Google Cloud Storage bucket, objects made public
"""

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import boto3
from google.cloud import storage as gcs

from nitpickr.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class StoredObject:
    key: str
    url: str
    size: int
    content_type: str


class LocalStorageBackend:
    def __init__(self, directory: str, url_prefix: str = "/uploads"):
        self.directory = Path(directory)
        self.url_prefix = url_prefix.rstrip("/")

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread((self.directory / key).write_bytes, data)
        return f"{self.url_prefix}/{key}"

    async def delete(self, key: str) -> None:
        await asyncio.to_thread((self.directory / key).unlink)


class S3StorageBackend:
    """Amazon S3 bucket; boto3 calls run in a worker thread."""

    def __init__(
        self,
        bucket: str,
        region: str,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        client: Any = None,
    ):
        self.bucket = bucket
        self.region = region
        self.client = client or boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            ContentLength=len(data),
        )
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)


class GCSStorageBackend:
    """Google Cloud Storage bucket; uploaded objects are made public."""

    def __init__(
        self,
        bucket: str,
        project_id: Optional[str] = None,
        key_filename: Optional[str] = None,
        client: Any = None,
    ):
        if client is None:
            if key_filename:
                client = gcs.Client.from_service_account_json(key_filename, project=project_id)
            else:
                client = gcs.Client(project=project_id)
        self.bucket_name = bucket
        self.bucket = client.bucket(bucket)

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        blob = self.bucket.blob(key)
        await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)
        await asyncio.to_thread(blob.make_public)
        return f"https://storage.googleapis.com/{self.bucket_name}/{key}"

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self.bucket.blob(key).delete)


def create_storage_backend(settings: Settings):
    """
    Build the backend named by ``settings.storage_backend``.

    Raises:
        ValueError: For an unknown backend or a missing bucket name
    """
    backend = settings.storage_backend.lower()
    if backend == "local":
        return LocalStorageBackend(settings.upload_directory)
    if backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("S3_BUCKET must be set for the s3 storage backend")
        return S3StorageBackend(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
        )
    if backend == "gcs":
        if not settings.gcs_bucket:
            raise ValueError("GCS_BUCKET must be set for the gcs storage backend")
        return GCSStorageBackend(
            bucket=settings.gcs_bucket,
            project_id=settings.gcs_project_id,
            key_filename=settings.gcs_key_filename,
        )
    raise ValueError(f"Unsupported storage type: {settings.storage_backend}")


class FileStorageService:
    """Stores uploaded bytes with a random key in the configured backend."""

    def __init__(self, directory: Optional[str] = None, backend: Any = None):
        if backend is None:
            backend = (
                LocalStorageBackend(directory)
                if directory
                else create_storage_backend(get_settings())
            )
        self.backend = backend

    @property
    def directory(self) -> Optional[Path]:
        """Upload directory of the local backend; None for cloud buckets."""
        return getattr(self.backend, "directory", None)

    @staticmethod
    def make_key(filename: str) -> str:
        """Random object key keeping the original extension, e.g. ``<uuid>.png``."""
        return f"{uuid.uuid4()}{os.path.splitext(filename)[1]}"

    async def upload_file(self, filename: str, data: bytes, content_type: str) -> StoredObject:
        key = self.make_key(filename)
        url = await self.backend.put(key, data, content_type)
        logger.info(f"Stored {filename} as {key} ({len(data)} bytes)")
        return StoredObject(key=key, url=url, size=len(data), content_type=content_type)

    async def delete_file(self, key: str) -> None:
        await self.backend.delete(key)
        logger.info(f"Deleted stored file {key}")
