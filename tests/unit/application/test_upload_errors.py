"""Unit tests for upload error classification."""

import logging

import pytest

from mediavault.application.services.upload_errors import (
    classify_upload_error,
    extract_error_details,
    get_retry_delay,
    get_upload_error_message,
    log_upload_error,
    should_retry_upload,
)
from mediavault.domain.exceptions import (
    ChunkUploadException,
    FileTooLargeException,
    UnsupportedFormatException,
    UploadSessionExpiredException,
)
from mediavault.domain.models.upload import UploadError, UploadErrorKind


def _error(kind: UploadErrorKind, retryable: bool = True) -> UploadError:
    return UploadError(kind=kind, message="m", retryable=retryable)


class TestExtractErrorDetails:
    """Tests for pulling raw text out of failures."""

    def test_string(self):
        assert extract_error_details("boom") == "boom"

    def test_exception(self):
        assert extract_error_details(ValueError("bad value")) == "bad value"

    def test_exception_without_message_uses_type_name(self):
        assert extract_error_details(TimeoutError()) == "TimeoutError"

    def test_payload_message(self):
        assert extract_error_details({"message": "no space left"}) == "no space left"

    def test_nested_payload_message(self):
        assert extract_error_details({"error": {"message": "fetch failed"}}) == "fetch failed"

    def test_payload_without_message_is_serialised(self):
        assert extract_error_details({"code": 507}) == '{"code": 507}'

    def test_object_with_message_attribute(self):
        class Failure:
            message = "connection reset"

        assert extract_error_details(Failure()) == "connection reset"


class TestClassifyUploadError:
    """Tests for classify_upload_error."""

    @pytest.mark.parametrize(
        ("raw", "kind"),
        [
            ("Session expired", UploadErrorKind.SESSION_EXPIRED),
            ("Chunk upload failed: 500", UploadErrorKind.CHUNK_FAILED),
            ("NetworkError when attempting to fetch resource", UploadErrorKind.NETWORK_ERROR),
            ("Connection refused", UploadErrorKind.NETWORK_ERROR),
            ("Storage full on node 3", UploadErrorKind.STORAGE_FULL),
            ("write failed: no space left on device", UploadErrorKind.STORAGE_FULL),
            ("File too large", UploadErrorKind.FILE_TOO_LARGE),
            ("Unsupported format: video/x-flv", UploadErrorKind.UNSUPPORTED_FORMAT),
            ("something odd happened", UploadErrorKind.UNKNOWN),
            ("", UploadErrorKind.UNKNOWN),
        ],
    )
    def test_kind_from_text(self, raw, kind):
        assert classify_upload_error(raw).kind == kind

    def test_first_matching_kind_wins(self):
        # Mentions both a chunk failure and the network.
        error = classify_upload_error("chunk upload failed: network unreachable")
        assert error.kind == UploadErrorKind.CHUNK_FAILED

    def test_localized_aliases(self):
        assert (
            classify_upload_error("انتهت صلاحية جلسة الرفع").kind
            == UploadErrorKind.SESSION_EXPIRED
        )
        assert classify_upload_error("حجم الملف كبير جداً").kind == UploadErrorKind.FILE_TOO_LARGE

    def test_domain_exceptions(self):
        assert (
            classify_upload_error(UploadSessionExpiredException("s1")).kind
            == UploadErrorKind.SESSION_EXPIRED
        )
        assert (
            classify_upload_error(ChunkUploadException("s1", 2, "HTTP 500")).kind
            == UploadErrorKind.CHUNK_FAILED
        )
        assert (
            classify_upload_error(FileTooLargeException(20, 10)).kind
            == UploadErrorKind.FILE_TOO_LARGE
        )
        assert (
            classify_upload_error(UnsupportedFormatException("video/x-flv")).kind
            == UploadErrorKind.UNSUPPORTED_FORMAT
        )

    @pytest.mark.parametrize(
        ("kind", "retryable"),
        [
            (UploadErrorKind.SESSION_EXPIRED, True),
            (UploadErrorKind.CHUNK_FAILED, True),
            (UploadErrorKind.NETWORK_ERROR, True),
            (UploadErrorKind.UNKNOWN, True),
            (UploadErrorKind.STORAGE_FULL, False),
            (UploadErrorKind.FILE_TOO_LARGE, False),
            (UploadErrorKind.UNSUPPORTED_FORMAT, False),
        ],
    )
    def test_retryable_follows_kind(self, kind, retryable):
        raw = {
            UploadErrorKind.SESSION_EXPIRED: "session expired",
            UploadErrorKind.CHUNK_FAILED: "chunk upload failed",
            UploadErrorKind.NETWORK_ERROR: "network down",
            UploadErrorKind.UNKNOWN: "???",
            UploadErrorKind.STORAGE_FULL: "disk full",
            UploadErrorKind.FILE_TOO_LARGE: "file too large",
            UploadErrorKind.UNSUPPORTED_FORMAT: "unsupported format",
        }[kind]
        assert classify_upload_error(raw).retryable is retryable

    def test_chunk_number_is_one_based_in_message(self):
        error = classify_upload_error("chunk upload failed", chunk_number=4, session_id="s1")
        assert error.chunk_number == 4
        assert error.session_id == "s1"
        assert error.message == "Failed to upload chunk 5"

    def test_details_keep_raw_text(self):
        error = classify_upload_error(RuntimeError("Connection reset by peer"))
        assert error.details == "Connection reset by peer"

    def test_never_raises_on_odd_input(self):
        assert classify_upload_error(None).kind == UploadErrorKind.UNKNOWN
        assert classify_upload_error(object()).kind == UploadErrorKind.UNKNOWN


class TestShouldRetryUpload:
    """Tests for the automatic retry decision."""

    def test_retries_transient_kinds_under_limit(self):
        for kind in (
            UploadErrorKind.SESSION_EXPIRED,
            UploadErrorKind.CHUNK_FAILED,
            UploadErrorKind.NETWORK_ERROR,
        ):
            assert should_retry_upload(_error(kind), retry_count=2) is True

    def test_stops_at_max_retries(self):
        assert should_retry_upload(_error(UploadErrorKind.NETWORK_ERROR), retry_count=3) is False
        assert (
            should_retry_upload(_error(UploadErrorKind.NETWORK_ERROR), 4, max_retries=5) is True
        )

    def test_never_retries_non_retryable(self):
        error = _error(UploadErrorKind.FILE_TOO_LARGE, retryable=False)
        assert should_retry_upload(error, retry_count=0) is False

    def test_unknown_is_retryable_but_not_retried(self):
        assert should_retry_upload(_error(UploadErrorKind.UNKNOWN), retry_count=0) is False


class TestGetRetryDelay:
    """Tests for kind-specific delays."""

    def test_session_expired_is_flat(self):
        error = _error(UploadErrorKind.SESSION_EXPIRED)
        assert [get_retry_delay(error, n) for n in range(3)] == [1000, 1000, 1000]

    def test_network_is_linear(self):
        error = _error(UploadErrorKind.NETWORK_ERROR)
        assert [get_retry_delay(error, n) for n in range(3)] == [2000, 4000, 6000]

    def test_other_kinds_are_exponential(self):
        error = _error(UploadErrorKind.CHUNK_FAILED)
        assert [get_retry_delay(error, n, base_delay_ms=500) for n in range(4)] == [
            500,
            1000,
            2000,
            4000,
        ]


class TestUserFacingMessages:
    """Tests for get_upload_error_message and log_upload_error."""

    def test_every_kind_has_title_and_description(self):
        for kind in UploadErrorKind:
            message = get_upload_error_message(_error(kind))
            assert message.title
            assert message.description

    def test_chunk_message_mentions_chunk(self):
        error = classify_upload_error("chunk upload failed", chunk_number=0)
        assert "Chunk 1" in get_upload_error_message(error).description

    def test_unknown_action_depends_on_retryable(self):
        retryable = get_upload_error_message(_error(UploadErrorKind.UNKNOWN))
        fatal = get_upload_error_message(_error(UploadErrorKind.UNKNOWN, retryable=False))
        assert retryable.action == "Please try again"
        assert fatal.action == "Please contact support"

    def test_log_upload_error_emits_structured_record(self, caplog):
        error = classify_upload_error("network down", chunk_number=1, session_id="s1")
        with caplog.at_level(logging.ERROR):
            log_upload_error(error, context={"retry_count": 2})

        record = caplog.records[-1]
        assert record.getMessage() == "Upload error"
        assert record.error_kind == "network_error"
        assert record.session_id == "s1"
        assert record.chunk_number == 1
        assert record.context == {"retry_count": 2}
