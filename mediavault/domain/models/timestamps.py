"""Timestamp helpers shared by models and persistence code."""

from datetime import UTC, datetime

from pydantic import TypeAdapter

_DATETIME = TypeAdapter(datetime)


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(value: datetime) -> str:
    """Serialize a datetime exactly as ``model_dump(mode="json")`` does.

    Stored timestamps are compared as strings in range filters, so values
    written by hand must use the same format as dumped models.
    """
    return _DATETIME.dump_python(value, mode="json")
