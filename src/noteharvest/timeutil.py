"""Conversion between the book stores' native epoch and Unix time."""

from __future__ import annotations

from datetime import datetime, timezone

# Seconds between 1970-01-01 and 2001-01-01 (UTC).
NATIVE_EPOCH_OFFSET = 978307200


def native_to_unix(raw: int | float) -> float:
    """Convert a store timestamp (seconds since 2001-01-01) to Unix seconds."""

    return float(NATIVE_EPOCH_OFFSET + raw)


def unix_to_native(value: int | float) -> float:
    return float(value - NATIVE_EPOCH_OFFSET)


def datetime_to_unix(value: datetime) -> float:
    """Naive datetimes are treated as UTC, which is how property lists store dates."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()
