"""Backup replication, verification and retention for quality renditions."""

import asyncio
import hashlib
from collections.abc import Iterable
from datetime import timedelta
from typing import Any

from mediavault.application.dtos.backup import BackupStats, CleanupResult, PolicyRunResult
from mediavault.commons.infrastructure.blob.base import BlobStorageBase
from mediavault.commons.infrastructure.documentdb.base import DocumentDBBase
from mediavault.commons.settings.models import BackupSettings, DocumentDBSettings
from mediavault.commons.telemetry import LogContext, get_logger
from mediavault.domain.exceptions import (
    BackupNotFoundException,
    BackupOperationException,
    DomainException,
    RenditionNotFoundException,
    ServerUnavailableException,
    UnverifiedBackupException,
)
from mediavault.domain.models.storage import (
    ActivityLogEntry,
    BackupFrequency,
    BackupPolicy,
    BackupRecord,
    BackupType,
    StorageServer,
    VideoQualityRendition,
)
from mediavault.domain.models.timestamps import to_iso, utc_now


def backup_path(server: StorageServer, rendition_id: str, quality: str) -> str:
    """Deterministic replica location: server root, rendition, quality, timestamp."""
    stamp = to_iso(utc_now()).replace(":", "-").replace(".", "-")
    return server.join("backups", rendition_id, f"{quality}_backup_{stamp}.mp4")


def restore_path(server: StorageServer, video_file_id: str, quality: str) -> str:
    return server.join("restored", video_file_id, f"{quality}.mp4")


class VideoBackupService:
    """Keeps every ready rendition replicated across storage servers.

    Handles:
    - Creating, verifying, restoring and deleting replicas
    - Backup policy CRUD and the periodic reconciliation pass
    - Retention cleanup that never drops a rendition below its copy floor
    """

    def __init__(
        self,
        blob_storage: BlobStorageBase,
        document_db: DocumentDBBase,
        backup_settings: BackupSettings,
        doc_settings: DocumentDBSettings,
    ) -> None:
        """Initialize backup service.

        Args:
            blob_storage: Blob storage provider.
            document_db: Document database provider.
            backup_settings: Retention, copy floor and verification delay.
            doc_settings: Document database configuration.
        """
        self._blob = blob_storage
        self._doc_db = document_db
        self._settings = backup_settings
        self._logger = get_logger(__name__)

        self._policy_lock = asyncio.Lock()
        self._cleanup_lock = asyncio.Lock()
        self._verify_lock = asyncio.Lock()

        collections = doc_settings.collections
        self._renditions_collection = collections.renditions
        self._backups_collection = collections.backups
        self._policies_collection = collections.backup_policies
        self._servers_collection = collections.storage_servers
        self._activity_collection = collections.activity_log

    # =========================================================================
    # Replica lifecycle
    # =========================================================================

    async def create_backup(
        self,
        rendition_id: str,
        server_id: str,
        backup_type: BackupType = BackupType.AUTO,
    ) -> BackupRecord:
        """Copy a rendition onto a backup server and record the replica.

        The record starts unverified; :meth:`verify_due_backups` checks it
        once ``verification_delay_hours`` have passed.

        Raises:
            RenditionNotFoundException: If the rendition does not exist.
            ServerUnavailableException: If either server is missing or the
                target is inactive.
            BackupOperationException: If the copy, checksum or record write
                fails. A copied replica is removed before raising.
        """
        rendition = await self._load_rendition(rendition_id)
        target = await self._load_server(server_id, require_active=True)
        source = await self._load_server(rendition.server_id)

        path = backup_path(target, rendition.id, rendition.quality)
        with LogContext(rendition_id=rendition.id, backup_server_id=target.id):
            try:
                copied = await self._blob.copy(
                    source.bucket, rendition.file_path, target.bucket, path
                )
            except Exception as e:
                raise BackupOperationException("create", rendition.id, str(e)) from e

            now = utc_now()
            try:
                backup = BackupRecord(
                    video_quality_id=rendition.id,
                    backup_server_id=target.id,
                    backup_path=path,
                    backup_size_bytes=copied.size_bytes,
                    checksum=await self.compute_checksum(target.bucket, path),
                    backup_type=backup_type,
                    verify_after=now + timedelta(hours=self._settings.verification_delay_hours),
                    created_at=now,
                )
                await self._doc_db.insert(
                    self._backups_collection, backup.model_dump(mode="json")
                )
            except Exception as e:
                # Every stored replica must have a record.
                await self._discard_replica(target.bucket, path)
                raise BackupOperationException("create", rendition.id, str(e)) from e

            self._logger.info(
                "Backup created",
                extra={
                    "backup_id": backup.id,
                    "backup_path": path,
                    "size_bytes": backup.backup_size_bytes,
                    "backup_type": backup_type.value,
                },
            )
            await self._log_activity(
                rendition.id,
                "backup_created",
                {
                    "backup_id": backup.id,
                    "server_name": target.name,
                    "backup_type": backup_type.value,
                },
            )
        return backup

    async def verify_backup(self, backup_id: str) -> bool:
        """Re-check a replica's existence, checksum and size.

        A mismatch or storage error is recorded on the backup, never raised.

        Raises:
            BackupNotFoundException: If the backup record does not exist.
        """
        backup = await self._load_backup(backup_id)

        try:
            server = await self._load_server(backup.backup_server_id)
            if not await self._blob.exists(server.bucket, backup.backup_path):
                return await self._mark_unverified(backup, "file missing")

            checksum = await self.compute_checksum(server.bucket, backup.backup_path)
            if checksum != backup.checksum:
                return await self._mark_unverified(backup, "checksum mismatch")

            metadata = await self._blob.get_metadata(server.bucket, backup.backup_path)
            if metadata.size_bytes != backup.backup_size_bytes:
                return await self._mark_unverified(backup, "size mismatch")
        except Exception as e:
            self._logger.warning(
                "Backup verification errored",
                exc_info=True,
                extra={"backup_id": backup_id},
            )
            return await self._mark_unverified(backup, f"verification error: {e}")

        await self._doc_db.update(
            self._backups_collection,
            backup_id,
            {
                "is_verified": True,
                "verification_error": None,
                "last_verified_at": to_iso(utc_now()),
            },
        )
        self._logger.info("Backup verified", extra={"backup_id": backup_id})
        await self._log_activity(
            backup.video_quality_id, "backup_verified", {"backup_id": backup_id}
        )
        return True

    async def verify_due_backups(self) -> int:
        """Verify every pending replica whose verification delay has passed.

        Returns:
            Number of backups checked.
        """
        if self._verify_lock.locked():
            self._logger.info("Backup verification already running, skipping")
            return 0

        async with self._verify_lock:
            due = await self._doc_db.find(
                self._backups_collection,
                {
                    "is_verified": False,
                    "verification_error": None,
                    "verify_after": {"$lte": to_iso(utc_now())},
                },
                limit=0,
                sort=[("verify_after", 1)],
            )
            for doc in due:
                try:
                    await self.verify_backup(doc["id"])
                except DomainException:
                    self._logger.warning(
                        "Skipping backup verification",
                        exc_info=True,
                        extra={"backup_id": doc["id"]},
                    )
            if due:
                self._logger.info("Due backups verified", extra={"checked": len(due)})
            return len(due)

    async def restore_from_backup(
        self, backup_id: str, target_server_id: str
    ) -> VideoQualityRendition:
        """Copy a verified replica onto a server and repoint its rendition there.

        Raises:
            BackupNotFoundException: If the backup does not exist.
            UnverifiedBackupException: If the backup has not been verified.
            ServerUnavailableException: If the target server is missing or inactive.
            BackupOperationException: If the copy, checksum or record write
                fails. A copied replica is removed before raising.
        """
        backup = await self._load_backup(backup_id)
        if not backup.is_verified:
            raise UnverifiedBackupException(backup_id)

        target = await self._load_server(target_server_id, require_active=True)
        source = await self._load_server(backup.backup_server_id)
        rendition = await self._load_rendition(backup.video_quality_id)

        path = restore_path(target, rendition.video_file_id, rendition.quality)
        try:
            copied = await self._blob.copy(source.bucket, backup.backup_path, target.bucket, path)
        except Exception as e:
            raise BackupOperationException("restore", backup_id, str(e)) from e

        restored = rendition.model_copy(
            update={
                "file_path": path,
                "server_id": target.id,
                "file_size_bytes": copied.size_bytes,
                "is_ready": True,
                "updated_at": utc_now(),
            }
        )
        await self._doc_db.update(
            self._renditions_collection,
            rendition.id,
            restored.model_dump(
                mode="json",
                include={"file_path", "server_id", "file_size_bytes", "is_ready", "updated_at"},
            ),
        )

        self._logger.info(
            "Rendition restored from backup",
            extra={"backup_id": backup_id, "rendition_id": rendition.id, "path": path},
        )
        await self._log_activity(
            rendition.id,
            "backup_restored",
            {"backup_id": backup_id, "target_server": target.name},
        )
        return restored

    async def delete_backup(self, backup_id: str) -> None:
        """Delete a replica's payload, then its record.

        Raises:
            BackupNotFoundException: If the backup does not exist.
            BackupOperationException: If the payload could not be deleted.
        """
        backup = await self._load_backup(backup_id)

        server_doc = await self._doc_db.find_by_id(
            self._servers_collection, backup.backup_server_id
        )
        if server_doc is not None:
            bucket = StorageServer.model_validate(server_doc).bucket
            try:
                await self._blob.delete(bucket, backup.backup_path)
            except Exception as e:
                raise BackupOperationException("delete", backup_id, str(e)) from e
        else:
            self._logger.warning(
                "Backup server no longer exists, dropping record only",
                extra={"backup_id": backup_id, "server_id": backup.backup_server_id},
            )

        await self._doc_db.delete(self._backups_collection, backup_id)
        self._logger.info("Backup deleted", extra={"backup_id": backup_id})
        await self._log_activity(
            backup.video_quality_id, "backup_deleted", {"backup_id": backup_id}
        )

    async def compute_checksum(self, bucket: str, path: str) -> str:
        """SHA-256 of a stored blob, streamed, as ``sha256:<hex>``."""
        digest = hashlib.sha256()
        async for chunk in self._blob.download_stream(bucket, path):
            digest.update(chunk)
        return f"sha256:{digest.hexdigest()}"

    # =========================================================================
    # Policies
    # =========================================================================

    async def create_backup_policy(
        self,
        name: str,
        description: str = "",
        backup_frequency: BackupFrequency = BackupFrequency.DAILY,
        retention_days: int | None = None,
        min_backup_copies: int | None = None,
        backup_servers: Iterable[str] = (),
        quality_filter: Iterable[str] = (),
        is_active: bool = True,
    ) -> BackupPolicy:
        """Persist a new backup policy; unset limits come from settings."""
        policy = BackupPolicy(
            name=name,
            description=description,
            backup_frequency=backup_frequency,
            retention_days=retention_days or self._settings.default_retention_days,
            min_backup_copies=min_backup_copies or self._settings.min_backup_copies,
            backup_servers=list(backup_servers),
            quality_filter=list(quality_filter),
            is_active=is_active,
        )
        await self._doc_db.insert(self._policies_collection, policy.model_dump(mode="json"))
        self._logger.info(
            "Backup policy created",
            extra={"policy_id": policy.id, "policy_name": policy.name},
        )
        return policy

    async def list_backup_policies(self, active_only: bool = False) -> list[BackupPolicy]:
        filters: dict[str, Any] = {"is_active": True} if active_only else {}
        docs = await self._doc_db.find(
            self._policies_collection, filters, limit=0, sort=[("created_at", 1)]
        )
        return [BackupPolicy.model_validate(d) for d in docs]

    async def set_policy_active(self, policy_id: str, active: bool) -> bool:
        """Toggle a policy; returns False when it does not exist."""
        updated = await self._doc_db.update(
            self._policies_collection, policy_id, {"is_active": active}
        )
        if updated:
            self._logger.info(
                "Backup policy toggled",
                extra={"policy_id": policy_id, "is_active": active},
            )
        return updated

    async def execute_backup_policies(self) -> list[PolicyRunResult]:
        """Run every active policy; one policy failing does not stop the rest."""
        if self._policy_lock.locked():
            self._logger.info("Backup policy run already in progress, skipping")
            return []

        async with self._policy_lock:
            results: list[PolicyRunResult] = []
            for policy in await self.list_backup_policies(active_only=True):
                try:
                    results.append(await self.execute_single_policy(policy))
                except Exception:
                    self._logger.error(
                        "Backup policy failed",
                        exc_info=True,
                        extra={"policy_id": policy.id, "policy_name": policy.name},
                    )
                    results.append(
                        PolicyRunResult(
                            policy_id=policy.id,
                            policy_name=policy.name,
                            errors=["policy execution failed"],
                        )
                    )

            self._logger.info(
                "Backup policies executed",
                extra={
                    "policies": len(results),
                    "backups_created": sum(r.backups_created for r in results),
                },
            )
            return results

    async def execute_single_policy(self, policy: BackupPolicy) -> PolicyRunResult:
        """Top up every covered rendition to the policy's copy minimum.

        Verified copies and copies still awaiting their first verification
        count toward the minimum; copies that failed verification do not.
        Every existing copy occupies its server, and so does the rendition
        itself, so a rendition never gets two copies on one server.
        """
        result = PolicyRunResult(policy_id=policy.id, policy_name=policy.name)

        filters: dict[str, Any] = {"is_ready": True}
        if policy.quality_filter:
            filters["quality"] = {"$in": policy.quality_filter}
        renditions = await self._doc_db.find(self._renditions_collection, filters, limit=0)

        with LogContext(policy_id=policy.id):
            for doc in renditions:
                result.renditions_checked += 1
                rendition_id = doc["id"]
                backups = [
                    BackupRecord.model_validate(b)
                    for b in await self._doc_db.find(
                        self._backups_collection, {"video_quality_id": rendition_id}, limit=0
                    )
                ]
                healthy = sum(1 for b in backups if b.is_verified or b.verification_error is None)
                needed = policy.min_backup_copies - healthy
                occupied = {b.backup_server_id for b in backups} | {doc["server_id"]}

                for _ in range(max(needed, 0)):
                    server_id = await self.select_backup_server(
                        policy.backup_servers, rendition_id, exclude=occupied
                    )
                    if server_id is None:
                        self._logger.warning(
                            "No eligible backup server left",
                            extra={"rendition_id": rendition_id, "still_needed": needed},
                        )
                        break
                    try:
                        await self.create_backup(rendition_id, server_id, BackupType.AUTO)
                    except DomainException as e:
                        self._logger.error(
                            "Policy backup failed",
                            extra={"rendition_id": rendition_id, "server_id": server_id},
                        )
                        result.errors.append(str(e))
                        break
                    occupied.add(server_id)
                    result.backups_created += 1
                    needed -= 1

        return result

    async def select_backup_server(
        self,
        allowed_servers: list[str],
        rendition_id: str,
        exclude: set[str] | None = None,
    ) -> str | None:
        """Least-utilised active server that holds no copy of the rendition yet."""
        filters: dict[str, Any] = {"is_active": True}
        if allowed_servers:
            filters["id"] = {"$in": allowed_servers}
        servers = await self._doc_db.find(
            self._servers_collection, filters, limit=0, sort=[("used_storage_gb", 1)]
        )

        for server in servers:
            if exclude and server["id"] in exclude:
                continue
            existing = await self._doc_db.count(
                self._backups_collection,
                {"backup_server_id": server["id"], "video_quality_id": rendition_id},
            )
            if existing == 0:
                return str(server["id"])
        return None

    # =========================================================================
    # Retention
    # =========================================================================

    async def cleanup_old_backups(self, retention_days: int | None = None) -> CleanupResult:
        """Delete replicas older than the retention window.

        An old replica is only removed while at least ``min_backup_copies``
        other verified replicas of the same rendition were created at or
        after the cutoff.
        """
        days = (
            self._settings.default_retention_days if retention_days is None else retention_days
        )
        result = CleanupResult(retention_days=days)

        if self._cleanup_lock.locked():
            self._logger.info("Backup cleanup already in progress, skipping")
            return result

        async with self._cleanup_lock:
            cutoff = to_iso(utc_now() - timedelta(days=days))
            old = await self._doc_db.find(
                self._backups_collection, {"created_at": {"$lt": cutoff}}, limit=0
            )
            for doc in old:
                result.examined += 1
                recent = await self._doc_db.count(
                    self._backups_collection,
                    {
                        "video_quality_id": doc["video_quality_id"],
                        "is_verified": True,
                        "created_at": {"$gte": cutoff},
                        "id": {"$ne": doc["id"]},
                    },
                )
                if recent < self._settings.min_backup_copies:
                    result.kept_for_redundancy += 1
                    continue
                try:
                    await self.delete_backup(doc["id"])
                except DomainException:
                    self._logger.error(
                        "Failed to delete expired backup",
                        exc_info=True,
                        extra={"backup_id": doc["id"]},
                    )
                    continue
                result.deleted += 1

            self._logger.info(
                "Backup cleanup finished",
                extra={
                    "retention_days": days,
                    "examined": result.examined,
                    "deleted": result.deleted,
                    "kept_for_redundancy": result.kept_for_redundancy,
                },
            )
            return result

    # =========================================================================
    # Statistics
    # =========================================================================

    async def get_backup_stats(
        self,
        rendition_id: str | None = None,
        video_file_id: str | None = None,
    ) -> BackupStats:
        """Aggregate backup counts, bytes and redundancy.

        Scoped to one rendition, to every rendition of one source asset,
        or to everything when neither is given.
        """
        filters: dict[str, Any] = {}
        if rendition_id:
            filters["video_quality_id"] = rendition_id
        elif video_file_id:
            renditions = await self._doc_db.find(
                self._renditions_collection, {"video_file_id": video_file_id}, limit=0
            )
            filters["video_quality_id"] = {"$in": [r["id"] for r in renditions]}

        backups = [
            BackupRecord.model_validate(d)
            for d in await self._doc_db.find(self._backups_collection, filters, limit=0)
        ]
        total = len(backups)
        verified = sum(1 for b in backups if b.is_verified)
        distinct = len({b.video_quality_id for b in backups})

        return BackupStats(
            total_backups=total,
            verified_backups=verified,
            failed_backups=total - verified,
            total_size_bytes=sum(b.backup_size_bytes for b in backups),
            last_backup_time=max((b.created_at for b in backups), default=None),
            redundancy_level=total / distinct if distinct else 0.0,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _mark_unverified(self, backup: BackupRecord, reason: str) -> bool:
        await self._doc_db.update(
            self._backups_collection,
            backup.id,
            {
                "is_verified": False,
                "verification_error": reason,
                "last_verified_at": to_iso(utc_now()),
            },
        )
        self._logger.warning(
            "Backup verification failed",
            extra={"backup_id": backup.id, "reason": reason},
        )
        await self._log_activity(
            backup.video_quality_id,
            "backup_verification_failed",
            {"backup_id": backup.id, "reason": reason},
        )
        return False

    async def _log_activity(
        self, rendition_id: str, activity_type: str, details: dict[str, Any]
    ) -> None:
        entry = ActivityLogEntry(
            video_quality_id=rendition_id, activity_type=activity_type, details=details
        )
        try:
            await self._doc_db.insert(self._activity_collection, entry.model_dump(mode="json"))
        except Exception:
            self._logger.warning(
                "Failed to write activity log entry",
                exc_info=True,
                extra={"activity_type": activity_type, "rendition_id": rendition_id},
            )

    async def _discard_replica(self, bucket: str, path: str) -> None:
        try:
            await self._blob.delete(bucket, path)
        except Exception:
            self._logger.warning(
                "Failed to remove partial backup copy",
                exc_info=True,
                extra={"bucket": bucket, "backup_path": path},
            )

    async def _load_rendition(self, rendition_id: str) -> VideoQualityRendition:
        doc = await self._doc_db.find_by_id(self._renditions_collection, rendition_id)
        if doc is None:
            raise RenditionNotFoundException(rendition_id)
        return VideoQualityRendition.model_validate(doc)

    async def _load_backup(self, backup_id: str) -> BackupRecord:
        doc = await self._doc_db.find_by_id(self._backups_collection, backup_id)
        if doc is None:
            raise BackupNotFoundException(backup_id)
        return BackupRecord.model_validate(doc)

    async def _load_server(self, server_id: str, require_active: bool = False) -> StorageServer:
        doc = await self._doc_db.find_by_id(self._servers_collection, server_id)
        if doc is None:
            raise ServerUnavailableException(server_id)
        server = StorageServer.model_validate(doc)
        if require_active and not server.is_active:
            raise ServerUnavailableException(server_id)
        return server
