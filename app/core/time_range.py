"""
Half-open time window [start, end).
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

HOUR = timedelta(hours=1)


def as_utc_naive(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC; convert aware values."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def ceil_hours(delta: timedelta) -> int:
    """Whole hours covering ``delta``, rounded up. Non-positive deltas give 0."""
    seconds = delta.total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / HOUR.total_seconds())


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    def __post_init__(self):
        if not self.start < self.end:
            raise ValueError(
                f"TimeRange start ({self.start.isoformat()}) must be before end ({self.end.isoformat()})"
            )

    def overlaps(self, other: "TimeRange") -> bool:
        # touching endpoints do not overlap
        return self.start < other.end and self.end > other.start

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_hours(self) -> int:
        return ceil_hours(self.duration)
