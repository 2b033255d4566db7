"""Domain exceptions for the video durability core."""

from __future__ import annotations


class DomainException(Exception):
    """Base exception for domain errors."""


# =============================================================================
# Upload path
# =============================================================================


class UploadSessionNotFoundException(DomainException):
    """Raised when an upload session does not exist."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Upload session not found: {session_id}")


class UploadSessionExpiredException(DomainException):
    """Raised when an upload session is past its validity window."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Upload session {session_id}: session expired")


class ChunkUploadException(DomainException):
    """Raised when a single chunk could not be stored."""

    def __init__(self, session_id: str, chunk_index: int, reason: str) -> None:
        self.session_id = session_id
        self.chunk_index = chunk_index
        self.reason = reason
        super().__init__(
            f"chunk upload failed for chunk {chunk_index} of {session_id}: {reason}"
        )


class FileTooLargeException(DomainException):
    """Raised when an upload exceeds the maximum file size."""

    def __init__(self, size_bytes: int, max_bytes: int) -> None:
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        super().__init__(f"file too large: {size_bytes} bytes (max {max_bytes})")


class UnsupportedFormatException(DomainException):
    """Raised when an upload's MIME type is not accepted."""

    def __init__(self, mime_type: str) -> None:
        self.mime_type = mime_type
        super().__init__(f"unsupported format: {mime_type}")


class IncompleteUploadException(DomainException):
    """Raised when completing a session that is still missing chunks."""

    def __init__(self, session_id: str, missing: list[int]) -> None:
        self.session_id = session_id
        self.missing = missing
        super().__init__(
            f"Upload {session_id} is missing {len(missing)} chunk(s), "
            f"first missing: {missing[0] if missing else None}"
        )


# =============================================================================
# Processing path
# =============================================================================


class SourceAssetNotFoundException(DomainException):
    """Raised when a source video asset does not exist."""

    def __init__(self, asset_id: str) -> None:
        self.asset_id = asset_id
        super().__init__(f"Source asset not found: {asset_id}")


class NoActiveServersException(DomainException):
    """Raised when no active storage server can receive renditions."""

    def __init__(self) -> None:
        super().__init__("No active storage servers available")


class UnsupportedJobKindException(DomainException):
    """Raised when a processing job has an unknown kind."""

    def __init__(self, job_id: str, kind: str) -> None:
        self.job_id = job_id
        self.kind = kind
        super().__init__(f"Unsupported job kind '{kind}' for job {job_id}")


class TranscodingException(DomainException):
    """Raised when the external encoder fails."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed: {reason}")


# =============================================================================
# Backup path
# =============================================================================


class RenditionNotFoundException(DomainException):
    """Raised when a quality rendition does not exist."""

    def __init__(self, rendition_id: str) -> None:
        self.rendition_id = rendition_id
        super().__init__(f"Rendition not found: {rendition_id}")


class ServerUnavailableException(DomainException):
    """Raised when a storage server is missing or inactive."""

    def __init__(self, server_id: str) -> None:
        self.server_id = server_id
        super().__init__(f"Storage server unavailable: {server_id}")


class BackupNotFoundException(DomainException):
    """Raised when a backup record does not exist."""

    def __init__(self, backup_id: str) -> None:
        self.backup_id = backup_id
        super().__init__(f"Backup not found: {backup_id}")


class UnverifiedBackupException(DomainException):
    """Raised when restoring from a backup that has not been verified."""

    def __init__(self, backup_id: str) -> None:
        self.backup_id = backup_id
        super().__init__(f"Backup {backup_id} is not verified and cannot be restored")


class BackupOperationException(DomainException):
    """Wraps a storage failure during a backup operation."""

    def __init__(self, operation: str, target_id: str, reason: str) -> None:
        self.operation = operation
        self.target_id = target_id
        self.reason = reason
        super().__init__(f"Backup {operation} failed for {target_id}: {reason}")


class ProcessingJobNotFoundException(DomainException):
    """Raised when a processing job does not exist."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Processing job not found: {job_id}")


class InvalidJobTransitionException(DomainException):
    """Raised when a processing job is moved out of a terminal state."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")
