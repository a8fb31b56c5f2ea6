"""Canonical data models for the PulseDash aggregation core.

Provider clients turn their wire format into ``RawPoint`` sequences, the
reducers collapse those into ``MetricResult`` values, and the aggregator
folds five results into one ``DashboardSnapshot``.  These types are the
single source of truth shared by the reducers, the store and the API layer.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Union
from uuid import UUID

if TYPE_CHECKING:
    from pulsedash.fitness.window import TimeWindow

# Metric names, in the order the aggregator inspects them.
HEART_RATE = "heart_rate"
STEPS = "steps"
SLEEP = "sleep"
OXYGEN = "oxygen"
TEMPERATURE = "temperature"

METRICS: tuple[str, ...] = (HEART_RATE, STEPS, SLEEP, OXYGEN, TEMPERATURE)


class FailurePolicy(str, Enum):
    """How the aggregator treats a failed metric."""

    FAIL_FAST = "fail_fast"  # any non-temperature failure aborts the snapshot
    PARTIAL = "partial"  # failed metrics become null; abort only if all fail


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OAuthCredentials:
    """An already-authorized credential snapshot for one request.

    Passed into the provider client constructor.  Frozen so that reducers
    running concurrently can share it without any of them mutating it.

    Attributes:
        access_token: Bearer token for provider API calls.
        token_type:   Token type, typically "Bearer".
        expires_at:   UTC datetime when the access_token expires, if known.
        scope:        Granted OAuth scopes.
    """

    access_token: str
    token_type: str = "Bearer"
    expires_at: datetime | None = None
    scope: tuple[str, ...] = ()

    def authorization_header(self) -> dict[str, str]:
        return {"Authorization": f"{self.token_type} {self.access_token}"}

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        return current >= expires_at


# ---------------------------------------------------------------------------
# Provider samples
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PointValue:
    """One entry of a provider point's typed value array.

    Attributes:
        int_val: Integer payload (step deltas, sleep stage codes).
        fp_val:  Floating point payload (bpm, SpO2 %, °C).
    """

    int_val: int | None = None
    fp_val: float | None = None

    @property
    def value(self) -> float | int | None:
        """Return the floating point payload if present, else the integer one."""
        if self.fp_val is not None:
            return self.fp_val
        return self.int_val


@dataclass(frozen=True)
class RawPoint:
    """A single timestamped provider sample.

    ``end`` defaults to ``start`` for instantaneous samples.
    """

    start: datetime
    end: datetime | None = None
    values: tuple[PointValue, ...] = ()

    def __post_init__(self) -> None:
        if self.end is None:
            object.__setattr__(self, "end", self.start)

    @property
    def first_value(self) -> float | int | None:
        """Numeric payload of the first value, or None if the point has none."""
        if not self.values:
            return None
        return self.values[0].value


@dataclass(frozen=True)
class SleepStage:
    """A classified sleep segment derived from one provider point."""

    start: datetime
    end: datetime
    stage_code: int | None
    label: str

    @property
    def minutes(self) -> int:
        """Segment length rounded down to whole minutes, never negative."""
        seconds = (self.end - self.start).total_seconds()
        return max(0, int(seconds // 60))


# ---------------------------------------------------------------------------
# Reducer results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Scalar:
    value: float


@dataclass(frozen=True)
class Duration:
    """A whole-minute duration split into hours and minutes.

    ``stages`` optionally carries (label, minutes) pairs describing how the
    duration was made up.  It does not take part in equality.
    """

    hours: int
    minutes: int
    stages: tuple[tuple[str, int], ...] = field(default=(), compare=False)

    @classmethod
    def from_minutes(
        cls, total_minutes: int, stages: dict[str, int] | None = None
    ) -> Duration:
        total = max(0, int(total_minutes))
        breakdown = tuple((stages or {}).items())
        return cls(hours=total // 60, minutes=total % 60, stages=breakdown)

    @property
    def total_minutes(self) -> int:
        return self.hours * 60 + self.minutes

    @property
    def as_hours(self) -> float:
        return round(self.total_minutes / 60.0, 2)

    def __str__(self) -> str:
        return f"{self.hours} hr {self.minutes} min"


@dataclass(frozen=True)
class Empty:
    """No value for this metric (metric disabled, or nothing to report)."""


@dataclass(frozen=True)
class Failure:
    """A reducer failure tagged with the reducer's metric name."""

    metric: str
    reason: str

    def __str__(self) -> str:
        return f"{self.metric}: {self.reason}"


MetricResult = Union[Scalar, Duration, Empty, Failure]


# ---------------------------------------------------------------------------
# Persisted snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DashboardSnapshot:
    """One immutable, timestamped aggregation result for a user.

    Built entirely in memory by the aggregator.  ``id`` and ``created_at``
    stay None until the store persists the snapshot, after which the
    store's returned copy carries both.

    Attributes:
        user_email:     Identity of the authenticated subject.
        heart_rate_avg: Mean bpm over the heart rate window.
        total_steps:    Sum of step deltas over the steps window.
        sleep_duration: Total sleep over the sleep window.
        oxygen_avg:     Mean SpO2 % over the oxygen window.
        temperature:    First temperature sample, or the fallback value.
        created_at:     Set once by the store at persistence time.
        id:             Assigned by the store.
    """

    user_email: str
    heart_rate_avg: float | None = None
    total_steps: int | None = None
    sleep_duration: Duration | None = None
    oxygen_avg: float | None = None
    temperature: float | None = None
    created_at: datetime | None = None
    id: UUID | None = field(default=None, compare=False)

    @property
    def is_persisted(self) -> bool:
        return self.created_at is not None


def is_finite_number(value: object) -> bool:
    """True for int/float values that are neither NaN nor infinite (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


# ---------------------------------------------------------------------------
# Provider interface
# ---------------------------------------------------------------------------


class FitnessProvider(ABC):
    """Interface the core needs from a per-user time-series provider.

    Implementations receive an already-authorized credential object and
    must translate every transport, auth or decoding problem into a
    ``DashboardError`` subclass.
    """

    #: Unique slug for logging (e.g. 'google_fit').
    SOURCE_ID: str = "unknown"

    @abstractmethod
    async def fetch_points(
        self, data_source_id: str, window: TimeWindow
    ) -> list[RawPoint]:
        """Fetch all points of one data source inside ``window``.

        Raises:
            ProviderUnavailable: On network or authorization failure.
            MalformedResponse:   On an unexpected response body.
        """

    @abstractmethod
    async def fetch_sessions(
        self, window: TimeWindow, activity_type: int
    ) -> list[RawPoint]:
        """Fetch session-style segments of one activity type inside ``window``.

        Each session is returned as a ``RawPoint`` spanning the session with
        no values.
        """
