"""Time window resolution and provider timebase conversion.

Google Fit addresses datasets by nanosecond epoch ranges, reports session
bounds in millisecond epochs and accepts ISO-8601 strings for session
queries.  ``TimeWindow`` is the one place where those conversions happen.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NANOS_PER_MILLI = 1_000_000

#: Source of "now".  Injected so tests can pin the clock.
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_millis(value: datetime) -> int:
    return (ensure_utc(value) - EPOCH) // timedelta(milliseconds=1)


def to_nanos(value: datetime) -> int:
    """Nanosecond epoch at millisecond precision."""
    return to_millis(value) * _NANOS_PER_MILLI


def from_millis(millis: int) -> datetime:
    return EPOCH + timedelta(milliseconds=int(millis))


def from_nanos(nanos: int) -> datetime:
    # timedelta only resolves microseconds; sub-microsecond digits are dropped
    return EPOCH + timedelta(microseconds=int(nanos) // 1000)


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval ``[start, end)`` in UTC.

    Raises:
        ValueError: If ``start`` is not strictly before ``end``.
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if not self.start < self.end:
            raise ValueError(
                f"TimeWindow start must precede end (start={self.start.isoformat()}, "
                f"end={self.end.isoformat()})"
            )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def start_millis(self) -> int:
        return to_millis(self.start)

    @property
    def end_millis(self) -> int:
        return to_millis(self.end)

    @property
    def start_nanos(self) -> int:
        return to_nanos(self.start)

    @property
    def end_nanos(self) -> int:
        return to_nanos(self.end)

    @property
    def start_iso(self) -> str:
        return _iso_millis(self.start)

    @property
    def end_iso(self) -> str:
        return _iso_millis(self.end)

    @property
    def dataset_id(self) -> str:
        """Provider dataset identifier: ``"<startNanos>-<endNanos>"``."""
        return f"{self.start_nanos}-{self.end_nanos}"

    def contains(self, instant: datetime) -> bool:
        return self.start <= ensure_utc(instant) < self.end


def _iso_millis(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def resolve(now: datetime, lookback: timedelta) -> TimeWindow:
    """Return the window covering ``lookback`` up to ``now``.

    Args:
        now:      The current instant (naive values are treated as UTC).
        lookback: Positive window length.

    Returns:
        ``TimeWindow(now - lookback, now)``.

    Raises:
        ValueError: If ``lookback`` is not positive.
    """
    if lookback <= timedelta(0):
        raise ValueError(f"lookback must be positive, got {lookback}")
    end = ensure_utc(now)
    return TimeWindow(start=end - lookback, end=end)
