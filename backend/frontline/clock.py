"""UTC clock helpers.

Timestamps are naive UTC and persisted as fixed-width ISO-8601 strings, so
string order equals time order.
"""
from datetime import date, datetime, time, timezone


def utcnow() -> datetime:
    """Current naive UTC time."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_iso(value: datetime) -> str:
    return as_naive_utc(value).isoformat(timespec="microseconds")


def utcnow_iso() -> str:
    return to_iso(utcnow())


def start_of_day(value: date) -> datetime:
    """A date-only expiration is the instant 00:00 UTC of that day."""
    return datetime.combine(value, time.min)
