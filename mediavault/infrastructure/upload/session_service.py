"""Blob-backed implementation of the upload session orchestrator."""

import hashlib
import inspect
import math
import secrets
import tempfile
from datetime import timedelta
from pathlib import Path
from typing import Any

from mediavault.commons.infrastructure.blob.base import BlobStorageBase
from mediavault.commons.infrastructure.documentdb.base import DocumentDBBase
from mediavault.commons.settings.models import (
    BlobStorageSettings,
    DocumentDBSettings,
    UploadSettings,
)
from mediavault.commons.telemetry import get_logger
from mediavault.domain.exceptions import (
    ChunkUploadException,
    FileTooLargeException,
    IncompleteUploadException,
    UnsupportedFormatException,
    UploadSessionExpiredException,
    UploadSessionNotFoundException,
)
from mediavault.domain.models.timestamps import to_iso, utc_now
from mediavault.domain.models.upload import (
    ContentAsset,
    UploadSession,
    UploadSessionStatus,
    UploadStatus,
)
from mediavault.infrastructure.upload.base import (
    ChunkProgressCallback,
    UploadSessionOrchestratorBase,
)


def chunk_blob_path(video_file_id: str, chunk_index: int) -> str:
    """Location of one received chunk in the uploads bucket."""
    return f"{video_file_id}/chunk_{chunk_index:06d}"


class UploadSessionService(UploadSessionOrchestratorBase):
    """Resumable chunked uploads into blob storage.

    Chunks land in the uploads bucket as separate blobs. Completing the
    session stitches them in index order into the source asset blob.
    """

    def __init__(
        self,
        blob_storage: BlobStorageBase,
        document_db: DocumentDBBase,
        upload_settings: UploadSettings,
        blob_settings: BlobStorageSettings,
        doc_settings: DocumentDBSettings,
    ) -> None:
        """Initialize upload session service.

        Args:
            blob_storage: Blob storage provider.
            document_db: Document database provider.
            upload_settings: Chunking and validation limits.
            blob_settings: Blob storage configuration.
            doc_settings: Document database configuration.
        """
        self._blob = blob_storage
        self._doc_db = document_db
        self._settings = upload_settings
        self._logger = get_logger(__name__)

        self._uploads_bucket = blob_settings.buckets.uploads
        self._sources_bucket = blob_settings.buckets.sources

        self._assets_collection = doc_settings.collections.content_assets
        self._sessions_collection = doc_settings.collections.upload_sessions

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    async def create_session(
        self,
        filename: str,
        size_bytes: int,
        mime_type: str,
        content_id: str | None = None,
        episode_id: str | None = None,
    ) -> tuple[UploadSession, ContentAsset]:
        """Validate a file and open an upload session for it.

        Args:
            filename: Original file name.
            size_bytes: Total file size.
            mime_type: Declared MIME type.
            content_id: Owning content item.
            episode_id: Owning episode.

        Returns:
            The new session and its source asset record.

        Raises:
            FileTooLargeException: If the file exceeds the size limit.
            UnsupportedFormatException: If the MIME type is not accepted.
        """
        if size_bytes > self._settings.max_file_size_bytes:
            raise FileTooLargeException(size_bytes, self._settings.max_file_size_bytes)
        if mime_type not in self._settings.supported_mime_types:
            raise UnsupportedFormatException(mime_type)

        asset = ContentAsset(
            content_id=content_id,
            episode_id=episode_id,
            original_filename=filename,
            file_size_bytes=size_bytes,
            mime_type=mime_type,
        )
        await self._doc_db.insert(self._assets_collection, asset.model_dump(mode="json"))

        session = UploadSession(
            video_file_id=asset.id,
            chunk_size=self._settings.chunk_size_bytes,
            total_chunks=math.ceil(size_bytes / self._settings.chunk_size_bytes),
            session_token=f"upload_{secrets.token_urlsafe(16)}",
            expires_at=utc_now() + timedelta(hours=self._settings.session_ttl_hours),
        )
        await self._doc_db.insert(
            self._sessions_collection, session.model_dump(mode="json")
        )

        self._logger.info(
            "Upload session created",
            extra={
                "session_id": session.id,
                "video_file_id": asset.id,
                "total_chunks": session.total_chunks,
                "size_bytes": size_bytes,
            },
        )
        return session, asset

    async def get_upload_status(self, session_id: str) -> UploadSession:
        """Return the current session record."""
        return await self._load_session(session_id)

    async def validate_and_refresh_session(self, session_id: str) -> None:
        """Extend the validity window of a live or recently lapsed session."""
        session = await self._load_session(session_id)
        now = utc_now()
        grace = timedelta(minutes=self._settings.refresh_grace_minutes)

        if session.status != UploadSessionStatus.ACTIVE or now >= session.expires_at + grace:
            raise UploadSessionExpiredException(session_id)

        expires_at = now + timedelta(hours=self._settings.session_ttl_hours)
        await self._doc_db.update(
            self._sessions_collection,
            session_id,
            {"expires_at": to_iso(expires_at)},
        )
        self._logger.debug(
            "Upload session refreshed",
            extra={"session_id": session_id, "expires_at": to_iso(expires_at)},
        )

    async def cancel_upload(self, session_id: str) -> None:
        """Discard received chunks and mark the upload cancelled."""
        session = await self._load_session(session_id)

        for index in sorted(set(session.uploaded_chunk_indexes)):
            await self._blob.delete(
                self._uploads_bucket, chunk_blob_path(session.video_file_id, index)
            )

        await self._doc_db.update(
            self._sessions_collection,
            session_id,
            {"status": UploadSessionStatus.CANCELLED.value},
        )
        await self._doc_db.update(
            self._assets_collection,
            session.video_file_id,
            {
                "upload_status": UploadStatus.FAILED.value,
                "updated_at": to_iso(utc_now()),
            },
        )
        self._logger.info(
            "Upload cancelled",
            extra={"session_id": session_id, "video_file_id": session.video_file_id},
        )

    # =========================================================================
    # Chunk transfer
    # =========================================================================

    async def upload_chunk(
        self,
        session_id: str,
        chunk_index: int,
        data: bytes,
        progress_callback: ChunkProgressCallback | None = None,
    ) -> bool:
        """Store one chunk and record it on the session."""
        session = await self._load_session(session_id)
        if session.status != UploadSessionStatus.ACTIVE or session.is_expired():
            raise UploadSessionExpiredException(session_id)
        if not 0 <= chunk_index < session.total_chunks:
            raise ChunkUploadException(
                session_id,
                chunk_index,
                f"index out of range 0..{session.total_chunks - 1}",
            )

        checksum = hashlib.sha256(data).hexdigest()
        try:
            await self._blob.upload(
                self._uploads_bucket,
                chunk_blob_path(session.video_file_id, chunk_index),
                data,
                metadata={"checksum": checksum, "session_id": session_id},
            )
        except Exception as e:
            raise ChunkUploadException(session_id, chunk_index, str(e)) from e

        updated = await self._doc_db.add_to_set(
            self._sessions_collection,
            session_id,
            "uploaded_chunk_indexes",
            chunk_index,
        )
        if updated is None:
            raise UploadSessionNotFoundException(session_id)

        received = len(set(updated.get("uploaded_chunk_indexes", [])))
        progress = (received / session.total_chunks) * 100 if session.total_chunks else 100.0
        await self._doc_db.update(
            self._sessions_collection,
            session_id,
            {"upload_progress": progress},
        )

        self._logger.debug(
            "Chunk stored",
            extra={
                "session_id": session_id,
                "chunk_index": chunk_index,
                "size_bytes": len(data),
                "progress": round(progress, 2),
            },
        )

        if progress_callback:
            result = progress_callback(progress)
            if inspect.isawaitable(result):
                await result

        return True

    async def resume_upload(self, session_id: str) -> int:
        """Return the first chunk index not yet received (0 when none are)."""
        session = await self._load_session(session_id)
        return session.resume_point()

    async def complete_upload(self, session_id: str) -> str:
        """Assemble the received chunks into the source asset blob.

        Returns:
            The source asset ID, ready for processing.

        Raises:
            IncompleteUploadException: If any chunk is still missing.
        """
        session = await self._load_session(session_id)
        missing = session.missing_chunks()
        if missing:
            raise IncompleteUploadException(session_id, missing)

        asset_doc = await self._doc_db.find_by_id(
            self._assets_collection, session.video_file_id
        )
        if asset_doc is None:
            raise UploadSessionNotFoundException(session_id)
        asset = ContentAsset.model_validate(asset_doc)
        blob_path = asset.source_blob_path()

        with tempfile.TemporaryDirectory(prefix="mediavault-upload-") as tmp:
            assembled = Path(tmp) / "source"
            with assembled.open("wb") as out:
                for index in range(session.total_chunks):
                    out.write(
                        await self._blob.download(
                            self._uploads_bucket,
                            chunk_blob_path(session.video_file_id, index),
                        )
                    )
            await self._blob.upload_file(
                self._sources_bucket,
                blob_path,
                assembled,
                content_type=asset.mime_type,
            )

        for index in range(session.total_chunks):
            await self._blob.delete(
                self._uploads_bucket, chunk_blob_path(session.video_file_id, index)
            )

        now = to_iso(utc_now())
        await self._doc_db.update(
            self._assets_collection,
            asset.id,
            {
                "upload_status": UploadStatus.COMPLETED.value,
                "blob_path": blob_path,
                "updated_at": now,
            },
        )
        await self._doc_db.update(
            self._sessions_collection,
            session_id,
            {"status": UploadSessionStatus.COMPLETED.value, "upload_progress": 100.0},
        )

        self._logger.info(
            "Upload completed",
            extra={"session_id": session_id, "video_file_id": asset.id, "blob_path": blob_path},
        )
        return asset.id

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _load_session(self, session_id: str) -> UploadSession:
        doc: dict[str, Any] | None = await self._doc_db.find_by_id(
            self._sessions_collection, session_id
        )
        if doc is None:
            raise UploadSessionNotFoundException(session_id)
        return UploadSession.model_validate(doc)
