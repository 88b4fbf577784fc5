"""
Blob Storage Infrastructure
===========================

Raw uploaded files live outside the database. Two backends:
- LocalBlobStore: a directory on disk (development, single host)
- S3BlobStore: an S3 bucket via boto3

Both are async; blocking I/O runs in the default executor.
"""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from supportflow.config import Settings, settings
from supportflow.core import BlobStoreException, ResourceNotFoundException
from supportflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class IBlobStore(ABC):
    """Interface for raw file storage."""

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store bytes under path; returns the path."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Fetch bytes; raises ResourceNotFoundException if absent."""

    @abstractmethod
    async def remove(self, path: str) -> None:
        """Delete the object; missing objects are ignored."""


def _safe_key(path: str) -> str:
    key = PurePosixPath(path)
    if key.is_absolute() or ".." in key.parts or not key.parts:
        raise BlobStoreException(f"Invalid blob path: {path}")
    return str(key)


class LocalBlobStore(IBlobStore):
    """Blob store backed by a local directory."""

    def __init__(self, root: Optional[Path] = None):
        self._root = Path(root or settings.upload_dir)

    def _resolve(self, path: str) -> Path:
        return self._root / _safe_key(path)

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _write)
        except OSError as e:
            raise BlobStoreException(f"Failed to write {path}: {e}") from e

        logger.info(
            "Blob stored",
            extra={"path": path, "content_type": content_type, "size_bytes": len(data)}
        )
        return path

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, target.read_bytes)
        except FileNotFoundError:
            raise ResourceNotFoundException("Blob", path)
        except OSError as e:
            raise BlobStoreException(f"Failed to read {path}: {e}") from e

    async def remove(self, path: str) -> None:
        target = self._resolve(path)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, lambda: target.unlink(missing_ok=True))
        except OSError as e:
            raise BlobStoreException(f"Failed to delete {path}: {e}") from e


class S3BlobStore(IBlobStore):
    """Blob store backed by an S3 bucket."""

    def __init__(self, bucket_name: Optional[str] = None, region: Optional[str] = None):
        self.bucket_name = bucket_name or settings.s3_bucket_name
        # Credentials come from the environment (IAM role, profile or env vars)
        self.s3_client = boto3.client("s3", region_name=region or settings.aws_region)

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        key = _safe_key(path)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: self.s3_client.put_object(
                    Bucket=self.bucket_name,
                    Key=key,
                    Body=data,
                    ContentType=content_type
                )
            )
        except ClientError as e:
            logger.error(
                "S3 upload failed",
                extra={"path": key, "error_code": e.response.get("Error", {}).get("Code")}
            )
            raise BlobStoreException(f"S3 error uploading {key}") from e

        logger.info("Blob stored", extra={"path": key, "bucket": self.bucket_name})
        return key

    async def download(self, path: str) -> bytes:
        key = _safe_key(path)
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            )
            return await loop.run_in_executor(None, response["Body"].read)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                raise ResourceNotFoundException("Blob", key)
            raise BlobStoreException(f"S3 error downloading {key}") from e

    async def remove(self, path: str) -> None:
        key = _safe_key(path)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
            )
        except ClientError as e:
            logger.error("S3 delete failed", extra={"path": key, "error": str(e)})
            raise BlobStoreException(f"S3 error deleting {key}") from e


def create_blob_store(config: Settings = settings) -> IBlobStore:
    """Build the configured blob store backend."""
    if config.blob_backend == "s3":
        return S3BlobStore(bucket_name=config.s3_bucket_name, region=config.aws_region)
    return LocalBlobStore(root=config.upload_dir)
