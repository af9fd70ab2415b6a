from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_instant(value: datetime) -> str:
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class TimeRange:
    """[start, end) with start < end."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if not self.start < self.end:
            raise ValueError("range start must be before its end")

    def overlaps(self, other: "TimeRange") -> bool:
        return overlaps(self, other)

    def contains(self, other: "TimeRange") -> bool:
        return self.start <= other.start and other.end <= self.end

    def to_dict(self) -> dict:
        return {"start": format_instant(self.start), "end": format_instant(self.end)}


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    return a.start < b.end and b.start < a.end


def apply_buffer(rng: TimeRange, before: int, after: int) -> TimeRange:
    """Expand an occupied range outward by ``before``/``after`` minutes."""
    return TimeRange(
        rng.start - timedelta(minutes=before),
        rng.end + timedelta(minutes=after),
    )
