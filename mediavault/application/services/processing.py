"""Processing job pipeline for uploaded source videos."""

from __future__ import annotations

import asyncio
import tempfile
from collections import Counter
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mediavault.application.dtos.processing import ProcessingStatus
from mediavault.commons.infrastructure.blob.base import BlobStorageBase
from mediavault.commons.infrastructure.documentdb.base import DocumentDBBase
from mediavault.commons.settings.models import (
    BlobStorageSettings,
    DocumentDBSettings,
    ProcessingSettings,
)
from mediavault.commons.telemetry import LogContext, get_logger, timed
from mediavault.domain.exceptions import (
    InvalidJobTransitionException,
    NoActiveServersException,
    ProcessingJobNotFoundException,
    ServerUnavailableException,
    SourceAssetNotFoundException,
    TranscodingException,
    UnsupportedJobKindException,
)
from mediavault.domain.models.processing_job import JobKind, JobStatus, ProcessingJob
from mediavault.domain.models.storage import BackupType, StorageServer, VideoQualityRendition
from mediavault.domain.models.timestamps import to_iso, utc_now
from mediavault.domain.models.upload import AssetProcessingStatus, ContentAsset
from mediavault.domain.value_objects import get_preset
from mediavault.infrastructure.video.base import TranscoderBase

if TYPE_CHECKING:
    from mediavault.application.services.backup import VideoBackupService


class VideoProcessingService:
    """Schedules and runs transcode, thumbnail and analyze jobs.

    Jobs live in the processing jobs collection and move through
    pending -> processing -> completed/failed. A queue run claims one
    pending job at a time with an atomic update, so two runners (in this
    process or another) never execute the same job.
    """

    def __init__(
        self,
        blob_storage: BlobStorageBase,
        document_db: DocumentDBBase,
        transcoder: TranscoderBase,
        processing_settings: ProcessingSettings,
        blob_settings: BlobStorageSettings,
        doc_settings: DocumentDBSettings,
        backup_service: VideoBackupService | None = None,
    ) -> None:
        """Initialize processing service.

        Args:
            blob_storage: Blob storage provider.
            document_db: Document database provider.
            transcoder: External encoder wrapper.
            processing_settings: Ladder, batch size and thumbnail settings.
            blob_settings: Blob storage configuration.
            doc_settings: Document database configuration.
            backup_service: Runs ``backup`` jobs; without it they are unsupported.
        """
        self._blob = blob_storage
        self._doc_db = document_db
        self._transcoder = transcoder
        self._settings = processing_settings
        self._backup_service = backup_service
        self._logger = get_logger(__name__)
        self._queue_lock = asyncio.Lock()

        self._sources_bucket = blob_settings.buckets.sources
        self._thumbnails_bucket = blob_settings.buckets.thumbnails

        collections = doc_settings.collections
        self._assets_collection = collections.content_assets
        self._renditions_collection = collections.renditions
        self._jobs_collection = collections.processing_jobs
        self._backups_collection = collections.backups
        self._servers_collection = collections.storage_servers
        self._sessions_collection = collections.upload_sessions

    # =========================================================================
    # Scheduling
    # =========================================================================

    async def schedule_processing_jobs(self, asset_id: str) -> list[ProcessingJob]:
        """Enqueue the full job set for a freshly uploaded asset.

        One transcode job per ladder quality and active server, plus one
        thumbnail and one analyze job.

        Raises:
            SourceAssetNotFoundException: If the asset does not exist.
            NoActiveServersException: If no storage server is active.
        """
        await self._load_asset(asset_id)

        servers = await self._active_servers()
        if not servers:
            raise NoActiveServersException()

        jobs = [
            ProcessingJob(
                video_file_id=asset_id,
                job_type=JobKind.TRANSCODE.value,
                target_quality=quality,
                target_server_id=server.id,
            )
            for quality in self._settings.quality_ladder
            for server in servers
        ]
        jobs.append(ProcessingJob(video_file_id=asset_id, job_type=JobKind.THUMBNAIL.value))
        jobs.append(ProcessingJob(video_file_id=asset_id, job_type=JobKind.ANALYZE.value))

        await self._doc_db.insert_many(
            self._jobs_collection, [job.model_dump(mode="json") for job in jobs]
        )
        await self._doc_db.update(
            self._assets_collection,
            asset_id,
            {
                "processing_status": AssetProcessingStatus.PROCESSING.value,
                "updated_at": to_iso(utc_now()),
            },
        )

        self._logger.info(
            "Processing jobs scheduled",
            extra={"video_file_id": asset_id, "jobs": len(jobs), "servers": len(servers)},
        )
        return jobs

    async def retry_job(self, job_id: str) -> ProcessingJob:
        """Re-enqueue a failed job as a fresh pending copy.

        The failed record is kept unchanged as an audit trail, and the asset
        goes back to processing until the re-run finishes.

        Raises:
            ProcessingJobNotFoundException: If the job does not exist.
            InvalidJobTransitionException: If the job has not failed.
        """
        doc = await self._doc_db.find_by_id(self._jobs_collection, job_id)
        if doc is None:
            raise ProcessingJobNotFoundException(job_id)
        job = ProcessingJob.model_validate(doc)
        if job.status != JobStatus.FAILED:
            raise InvalidJobTransitionException(
                job_id, job.status.value, JobStatus.PENDING.value
            )

        retry = job.requeued()
        await self._doc_db.insert(self._jobs_collection, retry.model_dump(mode="json"))
        await self._doc_db.update(
            self._assets_collection,
            job.video_file_id,
            {
                "processing_status": AssetProcessingStatus.PROCESSING.value,
                "updated_at": to_iso(utc_now()),
            },
        )
        self._logger.info(
            "Job re-enqueued",
            extra={"job_id": retry.id, "retry_of": job.id, "job_type": job.job_type},
        )
        return retry

    # =========================================================================
    # Queue
    # =========================================================================

    async def process_job_queue(self) -> int:
        """Run up to one batch of pending jobs, oldest first.

        A failing job is marked failed and the batch carries on. Overlapping
        calls in one process are skipped rather than queued.

        Returns:
            Number of jobs claimed in this run.
        """
        if self._queue_lock.locked():
            self._logger.info("Job queue run already in progress, skipping")
            return 0

        async with self._queue_lock:
            claimed = 0
            while claimed < self._settings.batch_size:
                job = await self._claim_next_job()
                if job is None:
                    break
                claimed += 1

                try:
                    await self.process_job(job)
                except Exception as e:
                    self._logger.error(
                        "Job failed",
                        exc_info=True,
                        extra={"job_id": job.id, "job_type": job.job_type},
                    )
                    await self._save_job(job.mark_failed(str(e) or type(e).__name__))

                await self._refresh_asset_status(job.video_file_id)

            if claimed == 0:
                self._logger.debug("No pending jobs found")
            return claimed

    async def _claim_next_job(self) -> ProcessingJob | None:
        doc = await self._doc_db.find_one_and_update(
            self._jobs_collection,
            {"status": JobStatus.PENDING.value},
            {
                "status": JobStatus.PROCESSING.value,
                "started_at": to_iso(utc_now()),
            },
            sort=[("created_at", 1)],
        )
        return ProcessingJob.model_validate(doc) if doc else None

    # =========================================================================
    # Job execution
    # =========================================================================

    @timed()
    async def process_job(self, job: ProcessingJob) -> ProcessingJob:
        """Execute one job and mark it completed.

        Errors propagate to the caller, which decides how to record them.
        """
        if job.status == JobStatus.PENDING:
            job = job.mark_processing()
            await self._save_job(job)

        with LogContext(job_id=job.id, video_file_id=job.video_file_id):
            self._logger.info(
                "Processing job",
                extra={"job_type": job.job_type, "quality": job.target_quality},
            )

            match job.job_type:
                case JobKind.TRANSCODE.value:
                    result = await self._run_transcode(job)
                case JobKind.THUMBNAIL.value:
                    result = await self._run_thumbnails(job)
                case JobKind.ANALYZE.value:
                    result = await self._run_analyze(job)
                case JobKind.BACKUP.value if self._backup_service is not None:
                    result = await self._run_backup(job)
                case _:
                    raise UnsupportedJobKindException(job.id, job.job_type)

            completed = job.mark_completed(result)
            await self._save_job(completed)
            self._logger.info("Job completed", extra={"job_type": job.job_type})
            return completed

    async def _run_transcode(self, job: ProcessingJob) -> dict[str, Any]:
        if not job.target_quality:
            raise TranscodingException("transcode", "target quality not set")
        preset = get_preset(job.target_quality)
        if preset is None:
            raise TranscodingException("transcode", f"unsupported quality {job.target_quality}")
        server = await self._load_server(job.target_server_id)
        asset = await self._load_asset(job.video_file_id)

        last_progress = job.progress

        async def on_progress(percent: int) -> None:
            nonlocal last_progress
            if percent != last_progress:
                last_progress = percent
                await self._doc_db.update(self._jobs_collection, job.id, {"progress": percent})

        with tempfile.TemporaryDirectory(prefix="mediavault-transcode-") as tmp:
            source = await self._stage_source(asset, Path(tmp))
            duration = asset.duration_seconds
            if not duration:
                duration = (await self._transcoder.analyze(source)).duration_seconds

            output = await self._transcoder.transcode(
                source,
                Path(tmp) / f"{preset.quality}.{preset.container_format}",
                preset,
                duration_seconds=duration,
                on_progress=on_progress,
            )

            file_path = server.join("videos", asset.id, f"{preset.quality}.mp4")
            await self._blob.upload_file(server.bucket, file_path, output.path, "video/mp4")

        rendition = await self._save_rendition(
            VideoQualityRendition(
                video_file_id=asset.id,
                server_id=server.id,
                quality=preset.quality,
                file_path=file_path,
                file_size_bytes=output.size_bytes,
                bitrate_kbps=output.bitrate_kbps,
                codec=output.codec,
                container_format=preset.container_format,
            )
        )
        return {"rendition_id": rendition.id, "file_path": file_path}

    async def _run_thumbnails(self, job: ProcessingJob) -> dict[str, Any]:
        asset = await self._load_asset(job.video_file_id)
        count = self._settings.thumbnail_count
        paths: list[str] = []

        with tempfile.TemporaryDirectory(prefix="mediavault-thumbs-") as tmp:
            source = await self._stage_source(asset, Path(tmp))
            duration = asset.duration_seconds
            if not duration:
                duration = (await self._transcoder.analyze(source)).duration_seconds
            interval = duration / count

            for i in range(count):
                name = f"thumb_{i + 1}.jpg"
                thumb = await self._transcoder.extract_thumbnail(
                    source,
                    i * interval,
                    Path(tmp) / name,
                    width=self._settings.thumbnail_width,
                    height=self._settings.thumbnail_height,
                )
                blob_path = f"{asset.id}/{name}"
                await self._blob.upload_file(
                    self._thumbnails_bucket, blob_path, thumb.path, "image/jpeg"
                )
                paths.append(blob_path)

        await self._doc_db.update(
            self._assets_collection,
            asset.id,
            {"thumbnail_paths": paths, "updated_at": to_iso(utc_now())},
        )
        return {"thumbnail_paths": paths}

    async def _run_analyze(self, job: ProcessingJob) -> dict[str, Any]:
        asset = await self._load_asset(job.video_file_id)

        with tempfile.TemporaryDirectory(prefix="mediavault-analyze-") as tmp:
            source = await self._stage_source(asset, Path(tmp))
            analysis = await self._transcoder.analyze(source)

        details = analysis.to_dict()
        await self._doc_db.update(
            self._assets_collection,
            asset.id,
            {
                "duration_seconds": analysis.duration_seconds,
                "analysis": details,
                "updated_at": to_iso(utc_now()),
            },
        )
        return details

    async def _run_backup(self, job: ProcessingJob) -> dict[str, Any]:
        assert self._backup_service is not None
        server = await self._load_server(job.target_server_id)
        renditions = await self._doc_db.find(
            self._renditions_collection,
            {"video_file_id": job.video_file_id, "is_ready": True},
            limit=0,
        )

        created: list[str] = []
        for doc in renditions:
            existing = await self._doc_db.count(
                self._backups_collection,
                {"video_quality_id": doc["id"], "backup_server_id": server.id},
            )
            if existing:
                continue
            backup = await self._backup_service.create_backup(
                doc["id"], server.id, BackupType.MANUAL
            )
            created.append(backup.id)
        return {"backup_ids": created}

    # =========================================================================
    # Status
    # =========================================================================

    async def get_processing_status(self, asset_id: str) -> ProcessingStatus:
        """Aggregate job counts and completion percentage for one asset.

        A failed job that a later job re-runs (``retry_of``) is counted as
        superseded rather than failed and is left out of the percentage.
        """
        docs = await self._doc_db.find(
            self._jobs_collection,
            {"video_file_id": asset_id},
            limit=0,
            sort=[("created_at", 1)],
        )
        jobs = [ProcessingJob.model_validate(d) for d in docs]
        retried = {job.retry_of for job in jobs if job.retry_of}
        counts = Counter(
            "superseded" if job.status == JobStatus.FAILED and job.id in retried else job.status
            for job in jobs
        )
        total = len(jobs)
        effective = total - counts["superseded"]

        return ProcessingStatus(
            video_file_id=asset_id,
            total=total,
            completed=counts[JobStatus.COMPLETED],
            failed=counts[JobStatus.FAILED],
            processing=counts[JobStatus.PROCESSING],
            pending=counts[JobStatus.PENDING],
            superseded=counts["superseded"],
            progress=(counts[JobStatus.COMPLETED] / effective) * 100 if effective else 0.0,
            jobs=jobs,
        )

    async def _refresh_asset_status(self, asset_id: str) -> None:
        status = await self.get_processing_status(asset_id)
        if not status.is_finished:
            return
        final = (
            AssetProcessingStatus.FAILED if status.failed else AssetProcessingStatus.COMPLETED
        )
        await self._doc_db.update(
            self._assets_collection,
            asset_id,
            {"processing_status": final.value, "updated_at": to_iso(utc_now())},
        )

    # =========================================================================
    # Deletion
    # =========================================================================

    async def delete_content_asset(self, asset_id: str) -> None:
        """Delete an asset and everything it owns, children first.

        Order: backups of each rendition, renditions, jobs, upload sessions,
        thumbnails and source blob, then the asset record.
        """
        asset = await self._load_asset(asset_id)
        servers: dict[str, StorageServer | None] = {}

        async def bucket_for(server_id: str) -> str | None:
            if server_id not in servers:
                doc = await self._doc_db.find_by_id(self._servers_collection, server_id)
                servers[server_id] = StorageServer.model_validate(doc) if doc else None
            server = servers[server_id]
            return server.bucket if server else None

        renditions = await self._doc_db.find(
            self._renditions_collection, {"video_file_id": asset_id}, limit=0
        )
        for rendition in renditions:
            backups = await self._doc_db.find(
                self._backups_collection, {"video_quality_id": rendition["id"]}, limit=0
            )
            for backup in backups:
                bucket = await bucket_for(backup["backup_server_id"])
                if bucket:
                    await self._blob.delete(bucket, backup["backup_path"])
                await self._doc_db.delete(self._backups_collection, backup["id"])

            bucket = await bucket_for(rendition["server_id"])
            if bucket:
                await self._blob.delete(bucket, rendition["file_path"])
            await self._doc_db.delete(self._renditions_collection, rendition["id"])

        jobs_deleted = await self._doc_db.delete_many(
            self._jobs_collection, {"video_file_id": asset_id}
        )
        await self._doc_db.delete_many(self._sessions_collection, {"video_file_id": asset_id})

        for path in asset.thumbnail_paths:
            await self._blob.delete(self._thumbnails_bucket, path)
        if asset.blob_path:
            await self._blob.delete(self._sources_bucket, asset.blob_path)

        await self._doc_db.delete(self._assets_collection, asset_id)
        self._logger.info(
            "Content asset deleted",
            extra={
                "video_file_id": asset_id,
                "renditions": len(renditions),
                "jobs": jobs_deleted,
            },
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _active_servers(self) -> list[StorageServer]:
        docs = await self._doc_db.find(
            self._servers_collection,
            {"is_active": True},
            limit=0,
            sort=[("priority", 1)],
        )
        return [StorageServer.model_validate(d) for d in docs]

    async def _load_asset(self, asset_id: str) -> ContentAsset:
        doc = await self._doc_db.find_by_id(self._assets_collection, asset_id)
        if doc is None:
            raise SourceAssetNotFoundException(asset_id)
        return ContentAsset.model_validate(doc)

    async def _load_server(self, server_id: str | None) -> StorageServer:
        doc = (
            await self._doc_db.find_by_id(self._servers_collection, server_id)
            if server_id
            else None
        )
        if doc is None:
            raise ServerUnavailableException(server_id or "<unset>")
        server = StorageServer.model_validate(doc)
        if not server.is_active:
            raise ServerUnavailableException(server.id)
        return server

    async def _stage_source(self, asset: ContentAsset, workdir: Path) -> Path:
        local = workdir / f"source_{asset.original_filename}"
        await self._blob.download_to_file(
            self._sources_bucket, asset.source_blob_path(), local
        )
        return local

    async def _save_rendition(self, rendition: VideoQualityRendition) -> VideoQualityRendition:
        """Insert a rendition, or refresh the existing one for the same quality and server.

        Refreshing keeps the rendition ID, so existing backups still point at it.
        """
        existing = await self._doc_db.find_one(
            self._renditions_collection,
            {
                "video_file_id": rendition.video_file_id,
                "quality": rendition.quality,
                "server_id": rendition.server_id,
            },
        )
        if existing is None:
            await self._doc_db.insert(
                self._renditions_collection, rendition.model_dump(mode="json")
            )
            return rendition

        refreshed = rendition.model_copy(
            update={"id": existing["id"], "updated_at": utc_now()}
        )
        await self._doc_db.update(
            self._renditions_collection,
            refreshed.id,
            refreshed.model_dump(mode="json", exclude={"id", "created_at"}),
        )
        return refreshed

    async def _save_job(self, job: ProcessingJob) -> None:
        await self._doc_db.update(
            self._jobs_collection, job.id, job.model_dump(mode="json", exclude={"id"})
        )
