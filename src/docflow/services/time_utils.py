from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so stored and computed times compare cleanly."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def seconds_until(moment: datetime, now: datetime | None = None) -> float:
    return (as_utc(moment) - as_utc(now or utc_now())).total_seconds()
