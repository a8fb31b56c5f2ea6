"""Shared fixtures and fake provider for dashboard aggregation tests."""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from pulsedash.fitness.base import FitnessProvider, PointValue, RawPoint
from pulsedash.fitness.config_loader import MetricsConfig, load_metrics_config
from pulsedash.fitness.store import InMemorySnapshotStore
from pulsedash.fitness.window import TimeWindow

TEST_EMAIL = "ada@example.com"
NOW = datetime(2026, 2, 23, 12, 0, 0, tzinfo=timezone.utc)
T0 = datetime(2026, 2, 22, 23, 0, 0, tzinfo=timezone.utc)

HEART_RATE_SOURCE = "derived:com.google.heart_rate.bpm:com.google.android.gms:merge_heart_rate_bpm"
STEPS_SOURCE = "derived:com.google.step_count.delta:com.google.android.gms:estimated_steps"
OXYGEN_SOURCE = "derived:com.google.oxygen_saturation:com.google.android.gms:merge_oxygen_saturation"
TEMPERATURE_SOURCE = "derived:com.google.body.temperature:com.google.android.gms:merge_body_temperature"
SLEEP_SOURCE = "derived:com.google.sleep.segment:com.google.android.gms:merged"


# ---------------------------------------------------------------------------
# Point builders
# ---------------------------------------------------------------------------


def fp_point(value: float | None, start: datetime = T0) -> RawPoint:
    """Instantaneous point with one floating point value (None = null reading)."""
    return RawPoint(start=start, values=(PointValue(fp_val=value),))


def int_point(value: int | None, start: datetime = T0) -> RawPoint:
    return RawPoint(start=start, values=(PointValue(int_val=value),))


def stage_point(code: int, start: datetime, minutes: float) -> RawPoint:
    """Sleep segment point of ``minutes`` length carrying a stage code."""
    return RawPoint(
        start=start,
        end=start + timedelta(minutes=minutes),
        values=(PointValue(int_val=code),),
    )


# ---------------------------------------------------------------------------
# Fake provider
# ---------------------------------------------------------------------------


class FakeProvider(FitnessProvider):
    """In-memory provider.

    ``points`` maps data source ids to a list of points or to an exception
    instance, which is raised when that source is fetched.
    """

    SOURCE_ID = "fake"

    def __init__(
        self,
        points: dict[str, list[RawPoint] | Exception] | None = None,
        sessions: list[RawPoint] | Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.points = points or {}
        self.sessions = sessions or []
        self.delay = delay
        self.calls: list[tuple[str, TimeWindow]] = []
        self.cancelled = 0

    async def _maybe_wait(self) -> None:
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled += 1
                raise

    async def fetch_points(self, data_source_id: str, window: TimeWindow) -> list[RawPoint]:
        self.calls.append((data_source_id, window))
        await self._maybe_wait()
        result = self.points.get(data_source_id, [])
        if isinstance(result, Exception):
            raise result
        return list(result)

    async def fetch_sessions(self, window: TimeWindow, activity_type: int) -> list[RawPoint]:
        self.calls.append((f"sessions:{activity_type}", window))
        await self._maybe_wait()
        if isinstance(self.sessions, Exception):
            raise self.sessions
        return list(self.sessions)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def metrics_config() -> MetricsConfig:
    """Load the bundled metrics config for tests."""
    return load_metrics_config()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


@pytest.fixture
def store(clock) -> InMemorySnapshotStore:
    return InMemorySnapshotStore(clock=clock)


@pytest.fixture
def healthy_provider() -> FakeProvider:
    """Provider with plausible data for every metric."""
    return FakeProvider(
        points={
            HEART_RATE_SOURCE: [fp_point(60.0), fp_point(80.0)],
            STEPS_SOURCE: [int_point(500), int_point(1200)],
            OXYGEN_SOURCE: [fp_point(97.0), fp_point(95.0)],
            TEMPERATURE_SOURCE: [fp_point(36.8)],
            SLEEP_SOURCE: [
                stage_point(4, T0, 120),
                stage_point(5, T0 + timedelta(minutes=120), 90),
                stage_point(1, T0 + timedelta(minutes=210), 15),
                stage_point(6, T0 + timedelta(minutes=225), 60),
            ],
        }
    )


@pytest.fixture
def mock_httpx_client() -> MagicMock:
    """Mock httpx.AsyncClient for testing the provider without real API calls."""
    client = MagicMock()
    response = MagicMock()
    response.status_code = 200
    response.raise_for_status = MagicMock()
    response.json = MagicMock(return_value={})
    client.get = AsyncMock(return_value=response)
    return client
