"""MinIO implementation of blob storage."""

import asyncio
import io
import time
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, BinaryIO

from minio import Minio
from minio.commonconfig import CopySource
from minio.error import S3Error

from mediavault.commons.infrastructure.blob.base import (
    BlobMetadata,
    BlobNotFoundError,
    BlobStorageBase,
    HealthStatus,
)

_MISSING_CODES = {"NoSuchKey", "NoSuchObject"}


class MinioBlobStorage(BlobStorageBase):
    """MinIO implementation of blob storage.

    The MinIO SDK is blocking, so every call runs in the default executor.
    Works with both MinIO and AWS S3.
    """

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        secure: bool = False,
        region: str | None = None,
    ) -> None:
        self._client = Minio(
            endpoint=endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
            region=region,
        )
        self._endpoint = endpoint

    async def _run(self, fn: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    async def upload(
        self,
        bucket: str,
        path: str,
        data: BinaryIO | bytes,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> BlobMetadata:
        """Upload a blob to storage."""
        if isinstance(data, bytes):
            data_io: BinaryIO = io.BytesIO(data)
            length = len(data)
        else:
            data.seek(0, io.SEEK_END)
            length = data.tell()
            data.seek(0)
            data_io = data

        def _upload() -> None:
            self._client.put_object(
                bucket_name=bucket,
                object_name=path,
                data=data_io,
                length=length,
                content_type=content_type,
                metadata=metadata,
            )

        await self._run(_upload)
        return await self.get_metadata(bucket, path)

    async def upload_file(
        self,
        bucket: str,
        path: str,
        local_path: Path,
        content_type: str = "application/octet-stream",
    ) -> BlobMetadata:
        """Upload a local file (multipart for large files)."""

        def _fput() -> None:
            self._client.fput_object(
                bucket_name=bucket,
                object_name=path,
                file_path=str(local_path),
                content_type=content_type,
            )

        await self._run(_fput)
        return await self.get_metadata(bucket, path)

    async def download(self, bucket: str, path: str) -> bytes:
        """Download a blob from storage."""

        def _download() -> bytes:
            try:
                response = self._client.get_object(bucket, path)
            except S3Error as e:
                if e.code in _MISSING_CODES:
                    raise BlobNotFoundError(bucket, path) from e
                raise
            try:
                data: bytes = response.read()
                return data
            finally:
                response.close()
                response.release_conn()

        result: bytes = await self._run(_download)
        return result

    async def download_stream(  # type: ignore[override]
        self,
        bucket: str,
        path: str,
        chunk_size: int = 1024 * 1024,
    ) -> AsyncIterator[bytes]:
        """Stream download a blob in chunks."""
        try:
            response = await self._run(self._client.get_object, bucket, path)
        except S3Error as e:
            if e.code in _MISSING_CODES:
                raise BlobNotFoundError(bucket, path) from e
            raise

        try:
            while True:
                chunk: bytes = await self._run(response.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            response.close()
            response.release_conn()

    async def download_to_file(
        self,
        bucket: str,
        path: str,
        local_path: Path,
    ) -> None:
        """Download a blob straight to disk."""
        local_path.parent.mkdir(parents=True, exist_ok=True)

        def _fget() -> None:
            try:
                self._client.fget_object(bucket, path, str(local_path))
            except S3Error as e:
                if e.code in _MISSING_CODES:
                    raise BlobNotFoundError(bucket, path) from e
                raise

        await self._run(_fget)

    async def copy(
        self,
        source_bucket: str,
        source_path: str,
        target_bucket: str,
        target_path: str,
    ) -> BlobMetadata:
        """Server-side copy between buckets."""

        def _copy() -> None:
            try:
                self._client.copy_object(
                    target_bucket,
                    target_path,
                    CopySource(source_bucket, source_path),
                )
            except S3Error as e:
                if e.code in _MISSING_CODES:
                    raise BlobNotFoundError(source_bucket, source_path) from e
                raise

        await self._run(_copy)
        return await self.get_metadata(target_bucket, target_path)

    async def delete(self, bucket: str, path: str) -> bool:
        """Delete a blob from storage."""
        if not await self.exists(bucket, path):
            return False
        await self._run(self._client.remove_object, bucket, path)
        return True

    async def exists(self, bucket: str, path: str) -> bool:
        """Check if a blob exists."""

        def _stat() -> bool:
            try:
                self._client.stat_object(bucket, path)
                return True
            except S3Error as e:
                if e.code in _MISSING_CODES:
                    return False
                raise

        result: bool = await self._run(_stat)
        return result

    async def get_metadata(self, bucket: str, path: str) -> BlobMetadata:
        """Get blob metadata without downloading."""

        def _stat() -> BlobMetadata:
            try:
                stat = self._client.stat_object(bucket, path)
            except S3Error as e:
                if e.code in _MISSING_CODES:
                    raise BlobNotFoundError(bucket, path) from e
                raise
            return BlobMetadata(
                path=path,
                size_bytes=stat.size or 0,
                content_type=stat.content_type or "application/octet-stream",
                created_at=stat.last_modified or datetime.now(UTC),
                etag=stat.etag or "",
            )

        result: BlobMetadata = await self._run(_stat)
        return result

    async def create_bucket(self, bucket: str) -> bool:
        """Create a new bucket."""

        def _create() -> bool:
            if self._client.bucket_exists(bucket):
                return False
            self._client.make_bucket(bucket)
            return True

        result: bool = await self._run(_create)
        return result

    async def health_check(self) -> HealthStatus:
        """Check service health."""
        start = time.perf_counter()
        try:
            await self._run(self._client.list_buckets)
        except Exception as e:
            return HealthStatus(
                healthy=False,
                latency_ms=(time.perf_counter() - start) * 1000,
                message=f"MinIO health check failed: {e}",
                details={"endpoint": self._endpoint, "error": str(e)},
            )
        return HealthStatus(
            healthy=True,
            latency_ms=(time.perf_counter() - start) * 1000,
            message="MinIO is healthy",
            details={"endpoint": self._endpoint},
        )
