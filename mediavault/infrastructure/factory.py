"""Infrastructure factory for creating service instances from configuration."""

import inspect
from typing import Any, cast

from mediavault.application.services.backup import VideoBackupService
from mediavault.application.services.processing import VideoProcessingService
from mediavault.application.services.scheduler import BackgroundScheduler
from mediavault.application.services.upload_retry import UploadRetryManager
from mediavault.commons.infrastructure.blob import BlobStorageBase, MinioBlobStorage
from mediavault.commons.infrastructure.documentdb import DocumentDBBase, MongoDBDocumentDB
from mediavault.commons.settings.models import Settings
from mediavault.commons.telemetry import get_logger
from mediavault.domain.value_objects import RetryConfig
from mediavault.infrastructure.upload import UploadSessionService
from mediavault.infrastructure.video import FFmpegTranscoder, TranscoderBase


class InfrastructureFactory:
    """Factory for creating infrastructure and service instances.

    Creates concrete implementations based on configuration settings and
    caches one instance of each for the life of the factory.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize factory with settings.

        Args:
            settings: Application settings.
        """
        self._settings = settings
        self._instances: dict[str, Any] = {}
        self._logger = get_logger(__name__)

    @property
    def settings(self) -> Settings:
        return self._settings

    def get_blob_storage(self) -> BlobStorageBase:
        """Get blob storage instance.

        Returns:
            Configured blob storage provider.
        """
        if "blob_storage" not in self._instances:
            blob_settings = self._settings.blob_storage
            self._instances["blob_storage"] = MinioBlobStorage(
                endpoint=blob_settings.endpoint,
                access_key=blob_settings.access_key,
                secret_key=blob_settings.secret_key,
                secure=blob_settings.use_ssl,
                region=blob_settings.region,
            )
        return cast("BlobStorageBase", self._instances["blob_storage"])

    def get_document_db(self) -> DocumentDBBase:
        """Get document database instance.

        Returns:
            Configured document database provider.
        """
        if "document_db" not in self._instances:
            doc_settings = self._settings.document_db
            if doc_settings.username and doc_settings.password:
                connection_string = (
                    f"mongodb://{doc_settings.username}:{doc_settings.password}"
                    f"@{doc_settings.host}:{doc_settings.port}"
                    f"/?authSource={doc_settings.auth_source}"
                )
            else:
                connection_string = f"mongodb://{doc_settings.host}:{doc_settings.port}"
            self._instances["document_db"] = MongoDBDocumentDB(
                connection_string=connection_string,
                database_name=doc_settings.database,
            )
        return cast("DocumentDBBase", self._instances["document_db"])

    def get_transcoder(self) -> TranscoderBase:
        """Get the external encoder wrapper."""
        if "transcoder" not in self._instances:
            proc = self._settings.processing
            self._instances["transcoder"] = FFmpegTranscoder(
                ffmpeg_path=proc.ffmpeg_path,
                ffprobe_path=proc.ffprobe_path,
                timeout_seconds=proc.transcode_timeout_seconds,
            )
        return cast("TranscoderBase", self._instances["transcoder"])

    def get_upload_session_service(self) -> UploadSessionService:
        if "upload_sessions" not in self._instances:
            self._instances["upload_sessions"] = UploadSessionService(
                blob_storage=self.get_blob_storage(),
                document_db=self.get_document_db(),
                upload_settings=self._settings.upload,
                blob_settings=self._settings.blob_storage,
                doc_settings=self._settings.document_db,
            )
        return cast("UploadSessionService", self._instances["upload_sessions"])

    def create_upload_retry_manager(self) -> UploadRetryManager:
        """Build a retry manager for one upload.

        Retry counters are per upload, so this is never cached.
        """
        retry = self._settings.upload.retry
        return UploadRetryManager(
            orchestrator=self.get_upload_session_service(),
            config=RetryConfig(
                max_retries=retry.max_retries,
                base_delay_ms=retry.base_delay_ms,
                max_delay_ms=retry.max_delay_ms,
                exponential_backoff=retry.exponential_backoff,
            ),
        )

    def get_backup_service(self) -> VideoBackupService:
        if "backup" not in self._instances:
            self._instances["backup"] = VideoBackupService(
                blob_storage=self.get_blob_storage(),
                document_db=self.get_document_db(),
                backup_settings=self._settings.backup,
                doc_settings=self._settings.document_db,
            )
        return cast("VideoBackupService", self._instances["backup"])

    def get_processing_service(self) -> VideoProcessingService:
        if "processing" not in self._instances:
            self._instances["processing"] = VideoProcessingService(
                blob_storage=self.get_blob_storage(),
                document_db=self.get_document_db(),
                transcoder=self.get_transcoder(),
                processing_settings=self._settings.processing,
                blob_settings=self._settings.blob_storage,
                doc_settings=self._settings.document_db,
                backup_service=self.get_backup_service(),
            )
        return cast("VideoProcessingService", self._instances["processing"])

    def get_scheduler(self) -> BackgroundScheduler:
        if "scheduler" not in self._instances:
            self._instances["scheduler"] = BackgroundScheduler(
                processing_service=self.get_processing_service(),
                backup_service=self.get_backup_service(),
                processing_settings=self._settings.processing,
                backup_settings=self._settings.backup,
            )
        return cast("BackgroundScheduler", self._instances["scheduler"])

    async def prepare_storage(self) -> None:
        """Check both stores, then create missing buckets and query indexes.

        Raises:
            RuntimeError: If blob storage or the document database is unhealthy.
        """
        blob = self.get_blob_storage()
        doc_db = self.get_document_db()

        for component, provider in (("blob_storage", blob), ("document_db", doc_db)):
            status = await provider.health_check()
            if not status.healthy:
                self._logger.error(
                    "Storage health check failed",
                    extra={"component": component, "details": status.details},
                )
                raise RuntimeError(status.message or f"{component} is unhealthy")
            self._logger.debug(
                "Storage healthy",
                extra={"component": component, "latency_ms": round(status.latency_ms, 1)},
            )

        buckets = self._settings.blob_storage.buckets
        created = 0
        for bucket in (buckets.sources, buckets.uploads, buckets.thumbnails):
            if await blob.create_bucket(bucket):
                created += 1
        if created:
            self._logger.info("Buckets initialized", extra={"created": created})

        collections = self._settings.document_db.collections
        indexes: list[tuple[str, list[tuple[str, int]]]] = [
            # Queue claim: oldest pending job first
            (collections.processing_jobs, [("status", 1), ("created_at", 1)]),
            (collections.processing_jobs, [("video_file_id", 1)]),
            # One replica per server per rendition
            (collections.backups, [("video_quality_id", 1), ("backup_server_id", 1)]),
            (collections.backups, [("is_verified", 1), ("verify_after", 1)]),
            (collections.backups, [("created_at", 1)]),
            (collections.renditions, [("video_file_id", 1), ("quality", 1), ("server_id", 1)]),
            (collections.upload_sessions, [("video_file_id", 1)]),
        ]
        for collection, fields in indexes:
            await doc_db.create_index(collection, fields)
        self._logger.info("Indexes ensured", extra={"indexes": len(indexes)})

    async def close_all(self) -> None:
        """Stop the scheduler and close every service connection."""
        scheduler = self._instances.get("scheduler")
        if scheduler is not None:
            scheduler.shutdown()

        for name, instance in self._instances.items():
            close = getattr(instance, "close", None)
            if close is None:
                continue
            try:
                result = close()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self._logger.warning(
                    "Failed to close service", exc_info=True, extra={"service": name}
                )

        self._instances.clear()


class _FactoryHolder:
    """Holder for the factory singleton to avoid global statements."""

    instance: InfrastructureFactory | None = None


def get_factory(settings: Settings | None = None) -> InfrastructureFactory:
    """Get or create the infrastructure factory singleton.

    Args:
        settings: Settings to use. Required on first call.

    Returns:
        Infrastructure factory instance.

    Raises:
        ValueError: If settings not provided on first call.
    """
    if _FactoryHolder.instance is None:
        if settings is None:
            raise ValueError("Settings required to initialize factory")
        _FactoryHolder.instance = InfrastructureFactory(settings)

    return _FactoryHolder.instance


def reset_factory() -> None:
    """Reset the factory singleton (for testing)."""
    _FactoryHolder.instance = None
