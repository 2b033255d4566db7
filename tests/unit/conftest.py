"""Shared fixtures: in-memory storage providers and a scripted transcoder."""

import copy
import hashlib
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, BinaryIO

import pytest

from mediavault.commons.infrastructure.blob.base import (
    BlobMetadata,
    BlobNotFoundError,
    BlobStorageBase,
    HealthStatus,
)
from mediavault.commons.infrastructure.documentdb.base import DocumentDBBase
from mediavault.commons.settings.models import (
    BackupSettings,
    BlobStorageSettings,
    DocumentDBSettings,
    ProcessingSettings,
    UploadSettings,
)
from mediavault.domain.value_objects import TranscodingPreset
from mediavault.infrastructure.video.base import (
    ExtractedThumbnail,
    ProgressCallback,
    TranscodeResult,
    TranscoderBase,
    VideoAnalysis,
)

# =============================================================================
# In-memory document database
# =============================================================================


def _compare(value: Any, op: str, arg: Any) -> bool:
    match op:
        case "$in":
            return value in arg
        case "$nin":
            return value not in arg
        case "$ne":
            return value != arg
        case "$lt":
            return value is not None and value < arg
        case "$lte":
            return value is not None and value <= arg
        case "$gt":
            return value is not None and value > arg
        case "$gte":
            return value is not None and value >= arg
        case _:
            raise NotImplementedError(op)


def matches(document: dict[str, Any], filters: dict[str, Any]) -> bool:
    """Evaluate the subset of MongoDB query syntax the services use."""
    for key, condition in filters.items():
        value = document.get(key)
        if isinstance(condition, dict) and all(k.startswith("$") for k in condition):
            if not all(_compare(value, op, arg) for op, arg in condition.items()):
                return False
        elif value != condition:
            return False
    return True


class InMemoryDocumentDB(DocumentDBBase):
    """Dict-backed DocumentDBBase keyed by each document's 'id'."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _col(self, collection: str) -> dict[str, dict[str, Any]]:
        return self.collections.setdefault(collection, {})

    def all(self, collection: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(d) for d in self._col(collection).values()]

    def _select(
        self,
        collection: str,
        filters: dict[str, Any] | None,
        sort: list[tuple[str, int]] | None = None,
    ) -> list[dict[str, Any]]:
        docs = [d for d in self._col(collection).values() if matches(d, filters or {})]
        for field, direction in reversed(sort or []):
            docs.sort(
                key=lambda d, f=field: (d.get(f) is None, d.get(f) or 0),
                reverse=direction < 0,
            )
        return docs

    async def insert(self, collection: str, document: dict[str, Any]) -> str:
        self._col(collection)[document["id"]] = copy.deepcopy(document)
        return str(document["id"])

    async def insert_many(
        self, collection: str, documents: list[dict[str, Any]]
    ) -> list[str]:
        return [await self.insert(collection, d) for d in documents]

    async def find_by_id(self, collection: str, document_id: str) -> dict[str, Any] | None:
        doc = self._col(collection).get(document_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def find(
        self,
        collection: str,
        filters: dict[str, Any],
        skip: int = 0,
        limit: int = 100,
        sort: list[tuple[str, int]] | None = None,
    ) -> list[dict[str, Any]]:
        docs = self._select(collection, filters, sort)[skip:]
        if limit:
            docs = docs[:limit]
        return [copy.deepcopy(d) for d in docs]

    async def find_one(
        self, collection: str, filters: dict[str, Any]
    ) -> dict[str, Any] | None:
        docs = self._select(collection, filters)
        return copy.deepcopy(docs[0]) if docs else None

    async def find_one_and_update(
        self,
        collection: str,
        filters: dict[str, Any],
        updates: dict[str, Any],
        sort: list[tuple[str, int]] | None = None,
    ) -> dict[str, Any] | None:
        docs = self._select(collection, filters, sort)
        if not docs:
            return None
        docs[0].update(copy.deepcopy(updates))
        return copy.deepcopy(docs[0])

    async def add_to_set(
        self,
        collection: str,
        document_id: str,
        field: str,
        value: Any,
        updates: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        doc = self._col(collection).get(document_id)
        if doc is None:
            return None
        values = doc.setdefault(field, [])
        if value not in values:
            values.append(value)
        doc.update(copy.deepcopy(updates or {}))
        return copy.deepcopy(doc)

    async def update(self, collection: str, document_id: str, updates: dict[str, Any]) -> bool:
        doc = self._col(collection).get(document_id)
        if doc is None:
            return False
        doc.update(copy.deepcopy(updates))
        return True

    async def delete(self, collection: str, document_id: str) -> bool:
        return self._col(collection).pop(document_id, None) is not None

    async def delete_many(self, collection: str, filters: dict[str, Any]) -> int:
        docs = self._select(collection, filters)
        for doc in docs:
            del self._col(collection)[doc["id"]]
        return len(docs)

    async def count(self, collection: str, filters: dict[str, Any] | None = None) -> int:
        return len(self._select(collection, filters))

    async def create_index(
        self,
        collection: str,
        fields: list[tuple[str, int]],
        unique: bool = False,
        name: str | None = None,
    ) -> str:
        return name or "_".join(f"{f}_{d}" for f, d in fields)

    async def health_check(self) -> HealthStatus:
        return HealthStatus(healthy=True, latency_ms=0.0)


# =============================================================================
# In-memory blob storage
# =============================================================================


class InMemoryBlobStorage(BlobStorageBase):
    """Dict-backed BlobStorageBase keyed by (bucket, path)."""

    def __init__(self) -> None:
        self.blobs: dict[tuple[str, str], bytes] = {}
        self.content_types: dict[tuple[str, str], str] = {}

    def put(self, bucket: str, path: str, data: bytes) -> None:
        self.blobs[(bucket, path)] = data

    def _metadata(self, bucket: str, path: str) -> BlobMetadata:
        data = self.blobs[(bucket, path)]
        return BlobMetadata(
            path=path,
            size_bytes=len(data),
            content_type=self.content_types.get((bucket, path), "application/octet-stream"),
            created_at=datetime.now(UTC),
            etag=hashlib.md5(data).hexdigest(),  # noqa: S324
        )

    def _get(self, bucket: str, path: str) -> bytes:
        if (bucket, path) not in self.blobs:
            raise BlobNotFoundError(bucket, path)
        return self.blobs[(bucket, path)]

    async def upload(
        self,
        bucket: str,
        path: str,
        data: BinaryIO | bytes,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> BlobMetadata:
        payload = data if isinstance(data, bytes) else data.read()
        self.blobs[(bucket, path)] = payload
        self.content_types[(bucket, path)] = content_type
        return self._metadata(bucket, path)

    async def upload_file(
        self,
        bucket: str,
        path: str,
        local_path: Path,
        content_type: str = "application/octet-stream",
    ) -> BlobMetadata:
        return await self.upload(bucket, path, local_path.read_bytes(), content_type)

    async def download(self, bucket: str, path: str) -> bytes:
        return self._get(bucket, path)

    async def download_stream(
        self, bucket: str, path: str, chunk_size: int = 1024 * 1024
    ) -> AsyncIterator[bytes]:
        data = self._get(bucket, path)
        for start in range(0, len(data), chunk_size):
            yield data[start : start + chunk_size]

    async def download_to_file(self, bucket: str, path: str, local_path: Path) -> None:
        local_path.write_bytes(self._get(bucket, path))

    async def copy(
        self,
        source_bucket: str,
        source_path: str,
        target_bucket: str,
        target_path: str,
    ) -> BlobMetadata:
        self.blobs[(target_bucket, target_path)] = self._get(source_bucket, source_path)
        return self._metadata(target_bucket, target_path)

    async def delete(self, bucket: str, path: str) -> bool:
        return self.blobs.pop((bucket, path), None) is not None

    async def exists(self, bucket: str, path: str) -> bool:
        return (bucket, path) in self.blobs

    async def get_metadata(self, bucket: str, path: str) -> BlobMetadata:
        self._get(bucket, path)
        return self._metadata(bucket, path)

    async def create_bucket(self, bucket: str) -> bool:
        return True

    async def health_check(self) -> HealthStatus:
        return HealthStatus(healthy=True, latency_ms=0.0)


# =============================================================================
# Scripted transcoder
# =============================================================================


class FakeTranscoder(TranscoderBase):
    """Writes placeholder outputs and records every call."""

    def __init__(self, duration_seconds: float = 100.0) -> None:
        self.duration_seconds = duration_seconds
        self.transcoded: list[str] = []
        self.thumbnail_timestamps: list[float] = []
        self.fail_qualities: set[str] = set()

    async def analyze(self, video_path: Path) -> VideoAnalysis:
        return VideoAnalysis(
            path=video_path,
            duration_seconds=self.duration_seconds,
            width=1920,
            height=1080,
            fps=30.0,
            codec="h264",
            bitrate=8_000_000,
            has_audio=True,
            audio_codec="aac",
            file_size_bytes=video_path.stat().st_size,
            audio_channels=2,
            sample_rate=48000,
        )

    async def transcode(
        self,
        video_path: Path,
        output_path: Path,
        preset: TranscodingPreset,
        duration_seconds: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> TranscodeResult:
        if preset.quality in self.fail_qualities:
            raise RuntimeError(f"encoder crashed on {preset.quality}")
        if on_progress:
            for percent in (25, 50, 50, 99):
                await on_progress(percent)
        output_path.write_bytes(f"{preset.quality}:".encode() + video_path.read_bytes())
        self.transcoded.append(preset.quality)
        return TranscodeResult(
            path=output_path,
            quality=preset.quality,
            size_bytes=output_path.stat().st_size,
            codec=preset.codec,
            bitrate_kbps=preset.video_bitrate_kbps,
        )

    async def extract_thumbnail(
        self,
        video_path: Path,
        timestamp: float,
        output_path: Path,
        width: int = 320,
        height: int = 180,
    ) -> ExtractedThumbnail:
        output_path.write_bytes(b"jpeg")
        self.thumbnail_timestamps.append(timestamp)
        return ExtractedThumbnail(
            path=output_path,
            index=len(self.thumbnail_timestamps) - 1,
            timestamp=timestamp,
            width=width,
            height=height,
        )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def document_db() -> InMemoryDocumentDB:
    return InMemoryDocumentDB()


@pytest.fixture
def blob_storage() -> InMemoryBlobStorage:
    return InMemoryBlobStorage()


@pytest.fixture
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def doc_settings() -> DocumentDBSettings:
    return DocumentDBSettings()


@pytest.fixture
def blob_settings() -> BlobStorageSettings:
    return BlobStorageSettings()


@pytest.fixture
def upload_settings() -> UploadSettings:
    return UploadSettings(chunk_size_bytes=4, max_file_size_bytes=1024)


@pytest.fixture
def processing_settings() -> ProcessingSettings:
    return ProcessingSettings(thumbnail_count=4)


@pytest.fixture
def backup_settings() -> BackupSettings:
    return BackupSettings()
