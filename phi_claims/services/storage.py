"""
Object Storage Service
S3-compatible storage for PHI documents
Source: https://min.io/docs/minio/linux/developers/python/minio-py.html
Verified: 2026-10-01

Objects are always written with server-side encryption and read back only
through short-lived presigned URLs.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from io import BytesIO

from anyio import to_thread
from minio import Minio
from minio.error import S3Error
from minio.sse import SseS3
from urllib3.exceptions import HTTPError

from phi_claims.utils.errors import NotFoundError, TransientInfraError
from phi_claims.utils.logging import get_logger

logger = get_logger(__name__)


class ObjectStore(ABC):
    """Put/presign contract for the PHI bucket."""

    @abstractmethod
    async def put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Store ``data`` encrypted at rest and return its key."""

    @abstractmethod
    async def presigned_get(self, bucket: str, key: str, ttl_seconds: int) -> str:
        """Time-limited download URL for an existing object."""


class MinioObjectStore(ObjectStore):
    """
    MinIO/S3 object store.

    Evidence: SSE-S3 encrypts each object with a key managed by the server
    Source: https://docs.aws.amazon.com/AmazonS3/latest/userguide/UsingServerSideEncryption.html
    """

    def __init__(self, client: Minio):
        self.client = client

    def _ensure_bucket_sync(self, bucket: str) -> None:
        if not self.client.bucket_exists(bucket):
            self.client.make_bucket(bucket)
            logger.info(f"Created bucket: {bucket}")

    def _put_sync(self, bucket: str, key: str, data: bytes, content_type: str) -> str:
        self._ensure_bucket_sync(bucket)
        self.client.put_object(
            bucket,
            key,
            BytesIO(data),
            len(data),
            content_type=content_type,
            sse=SseS3(),
        )
        logger.info(f"Stored object in {bucket} ({len(data)} bytes)")
        return key

    def _presign_sync(self, bucket: str, key: str, ttl_seconds: int) -> str:
        # Presigning is local; stat first so a missing object is a 404, not a dead link
        self.client.stat_object(bucket, key)
        return self.client.presigned_get_object(
            bucket, key, expires=timedelta(seconds=ttl_seconds)
        )

    async def put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        try:
            return await to_thread.run_sync(self._put_sync, bucket, key, data, content_type)
        except (S3Error, HTTPError) as e:
            logger.error(f"Error storing object in {bucket}: {e}")
            raise TransientInfraError("Object store unavailable", original_error=e) from e

    async def presigned_get(self, bucket: str, key: str, ttl_seconds: int) -> str:
        try:
            return await to_thread.run_sync(self._presign_sync, bucket, key, ttl_seconds)
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchBucket"):
                raise NotFoundError("Insurance card not found") from e
            logger.error(f"Error generating presigned URL: {e}")
            raise TransientInfraError("Object store unavailable", original_error=e) from e
        except HTTPError as e:
            raise TransientInfraError("Object store unavailable", original_error=e) from e


@dataclass(frozen=True)
class StoredObject:
    data: bytes
    content_type: str


class InMemoryObjectStore(ObjectStore):
    """Dictionary-backed object store for demo mode and tests."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], StoredObject] = {}

    async def put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        self.objects[(bucket, key)] = StoredObject(data=data, content_type=content_type)
        return key

    async def presigned_get(self, bucket: str, key: str, ttl_seconds: int) -> str:
        if (bucket, key) not in self.objects:
            raise NotFoundError("Insurance card not found")
        return f"memory://{bucket}/{key}?expires_in={ttl_seconds}"
