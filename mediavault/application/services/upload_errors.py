"""Upload failure classification and user-facing guidance.

Raw failures from chunk transfers arrive as exceptions, strings or
error payloads. :func:`classify_upload_error` folds any of them into an
:class:`UploadError` with a fixed kind and retryability flag. It is total:
anything it does not recognise is ``unknown`` and it never raises.
"""

import json
from datetime import UTC, datetime
from typing import Any

from mediavault.commons.telemetry import get_logger
from mediavault.domain.models.upload import UploadError, UploadErrorKind, UploadErrorMessage

logger = get_logger(__name__)

BASE_RETRY_DELAY_MS = 1000

# Checked in order; the first kind with a matching pattern wins.
_PATTERNS: tuple[tuple[UploadErrorKind, tuple[str, ...]], ...] = (
    (UploadErrorKind.SESSION_EXPIRED, ("session expired", "انتهت صلاحية جلسة الرفع")),
    (UploadErrorKind.CHUNK_FAILED, ("chunk upload failed", "فشل في رفع القطعة")),
    (UploadErrorKind.NETWORK_ERROR, ("network", "fetch", "connection")),
    (UploadErrorKind.STORAGE_FULL, ("storage full", "disk full", "no space")),
    (UploadErrorKind.FILE_TOO_LARGE, ("file too large", "حجم الملف كبير")),
    (UploadErrorKind.UNSUPPORTED_FORMAT, ("unsupported format", "تنسيق غير مدعوم")),
)

NON_RETRYABLE_KINDS = frozenset(
    {
        UploadErrorKind.STORAGE_FULL,
        UploadErrorKind.FILE_TOO_LARGE,
        UploadErrorKind.UNSUPPORTED_FORMAT,
    }
)

AUTO_RETRY_KINDS = frozenset(
    {
        UploadErrorKind.SESSION_EXPIRED,
        UploadErrorKind.CHUNK_FAILED,
        UploadErrorKind.NETWORK_ERROR,
    }
)


def _chunk_label(chunk_number: int | None) -> str:
    return f" {chunk_number + 1}" if chunk_number is not None else ""


def _short_message(kind: UploadErrorKind, chunk_number: int | None) -> str:
    match kind:
        case UploadErrorKind.SESSION_EXPIRED:
            return "Upload session expired"
        case UploadErrorKind.CHUNK_FAILED:
            return f"Failed to upload chunk{_chunk_label(chunk_number)}"
        case UploadErrorKind.NETWORK_ERROR:
            return "Network error - please check your connection"
        case UploadErrorKind.STORAGE_FULL:
            return "Storage is full - please try again later"
        case UploadErrorKind.FILE_TOO_LARGE:
            return "File is too large - the maximum is 10GB"
        case UploadErrorKind.UNSUPPORTED_FORMAT:
            return "File format is not supported"
        case _:
            return "An unknown upload error occurred"


def extract_error_details(error: Any) -> str:
    """Pull the raw failure text out of whatever was raised or returned."""
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        if isinstance(error.get("message"), str):
            return error["message"]
        nested = error.get("error")
        if isinstance(nested, dict) and isinstance(nested.get("message"), str):
            return nested["message"]
    else:
        message = getattr(error, "message", None)
        if isinstance(message, str) and message:
            return message
        if isinstance(error, BaseException):
            return str(error) or type(error).__name__
        nested = getattr(error, "error", None)
        nested_message = getattr(nested, "message", None)
        if isinstance(nested_message, str):
            return nested_message
    try:
        return json.dumps(error, default=str)
    except (TypeError, ValueError):
        return repr(error)


def classify_upload_error(
    error: Any,
    chunk_number: int | None = None,
    session_id: str | None = None,
) -> UploadError:
    """Classify a raw upload failure.

    Args:
        error: Exception, string, or error payload.
        chunk_number: Zero-based index of the chunk being sent, if any.
        session_id: Upload session the failure belongs to.

    Returns:
        The classified error. Never raises.
    """
    details = extract_error_details(error)
    haystack = details.lower()

    kind = UploadErrorKind.UNKNOWN
    for candidate, patterns in _PATTERNS:
        if any(pattern in haystack for pattern in patterns):
            kind = candidate
            break

    return UploadError(
        kind=kind,
        message=_short_message(kind, chunk_number),
        details=details,
        retryable=kind not in NON_RETRYABLE_KINDS,
        chunk_number=chunk_number,
        session_id=session_id,
    )


def should_retry_upload(error: UploadError, retry_count: int, max_retries: int = 3) -> bool:
    """Whether a failure warrants an automatic retry."""
    if not error.retryable or retry_count >= max_retries:
        return False
    return error.kind in AUTO_RETRY_KINDS


def get_retry_delay(
    error: UploadError,
    retry_count: int,
    base_delay_ms: int = BASE_RETRY_DELAY_MS,
) -> int:
    """Kind-specific delay in milliseconds before the next attempt."""
    match error.kind:
        case UploadErrorKind.SESSION_EXPIRED:
            return base_delay_ms
        case UploadErrorKind.NETWORK_ERROR:
            return base_delay_ms * (retry_count + 1) * 2
        case _:
            return base_delay_ms * 2**retry_count


def log_upload_error(
    error: UploadError,
    session_id: str | None = None,
    context: dict[str, Any] | None = None,
) -> None:
    """Emit one structured record describing a classified failure."""
    logger.error(
        "Upload error",
        extra={
            "occurred_at": datetime.now(UTC).isoformat(),
            "error_kind": error.kind.value,
            "error_message": error.message,
            "details": error.details,
            "session_id": session_id or error.session_id,
            "chunk_number": error.chunk_number,
            "retryable": error.retryable,
            "context": context or {},
        },
    )


def get_upload_error_message(error: UploadError) -> UploadErrorMessage:
    """Render a classified failure as a title, description and suggested action."""
    match error.kind:
        case UploadErrorKind.SESSION_EXPIRED:
            return UploadErrorMessage(
                title="Session expired",
                description="The upload session expired. It will be renewed and "
                "the upload will continue automatically.",
                action="Retrying...",
            )
        case UploadErrorKind.CHUNK_FAILED:
            return UploadErrorMessage(
                title="Part of the file failed to upload",
                description=f"Chunk{_chunk_label(error.chunk_number)} failed to upload. "
                "It will be retried automatically.",
                action="Retrying...",
            )
        case UploadErrorKind.NETWORK_ERROR:
            return UploadErrorMessage(
                title="Network error",
                description="There seems to be a problem with your internet connection.",
                action="Check your connection and try again",
            )
        case UploadErrorKind.STORAGE_FULL:
            return UploadErrorMessage(
                title="Storage full",
                description="Server storage is currently full.",
                action="Try again later or contact support",
            )
        case UploadErrorKind.FILE_TOO_LARGE:
            return UploadErrorMessage(
                title="File too large",
                description="The file exceeds the maximum allowed size (10GB).",
                action="Compress the file or split it into smaller parts",
            )
        case UploadErrorKind.UNSUPPORTED_FORMAT:
            return UploadErrorMessage(
                title="Unsupported format",
                description="This file format is not supported. "
                "Supported formats: MP4, AVI, MKV, MOV, WMV, WebM.",
                action="Convert the file to a supported format",
            )
        case _:
            return UploadErrorMessage(
                title="Upload error",
                description=error.message or "An unexpected error occurred while uploading.",
                action="Please try again" if error.retryable else "Please contact support",
            )
