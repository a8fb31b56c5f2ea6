"""Pydantic response models for dashboard snapshots and single metrics.

Sleep is carried internally as a ``Duration``; at this boundary it is
serialized both as the display string ("7 hr 5 min") and as float hours.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pulsedash.fitness.base import (
    DashboardSnapshot,
    Duration,
    Empty,
    Failure,
    MetricResult,
    Scalar,
)
from pulsedash.models.base import PulseDashBase


class DashboardSnapshotRead(PulseDashBase):
    id: uuid.UUID | None = None
    email: str
    heart_rate_avg: float | None = None
    total_steps: int | None = None
    sleep_duration: str | None = None
    sleep_hours: float | None = None
    oxygen_avg: float | None = None
    temperature: float | None = None
    created_at: datetime | None = None

    @classmethod
    def from_snapshot(cls, snapshot: DashboardSnapshot) -> DashboardSnapshotRead:
        sleep = snapshot.sleep_duration
        return cls(
            id=snapshot.id,
            email=snapshot.user_email,
            heart_rate_avg=snapshot.heart_rate_avg,
            total_steps=snapshot.total_steps,
            sleep_duration=str(sleep) if sleep is not None else None,
            sleep_hours=sleep.as_hours if sleep is not None else None,
            oxygen_avg=snapshot.oxygen_avg,
            temperature=snapshot.temperature,
            created_at=snapshot.created_at,
        )


class MetricResultRead(PulseDashBase):
    metric: str
    status: str  # 'ok' | 'empty' | 'failed'
    value: float | None = None
    hours: int | None = None
    minutes: int | None = None
    display: str | None = None
    stages: dict[str, int] | None = None  # sleep only: minutes per stage label
    reason: str | None = None

    @classmethod
    def from_result(cls, metric: str, result: MetricResult) -> MetricResultRead:
        if isinstance(result, Scalar):
            return cls(metric=metric, status="ok", value=result.value, display=f"{result.value:g}")
        if isinstance(result, Duration):
            return cls(
                metric=metric,
                status="ok",
                value=result.as_hours,
                hours=result.hours,
                minutes=result.minutes,
                display=str(result),
                stages=dict(result.stages) or None,
            )
        if isinstance(result, Failure):
            return cls(metric=metric, status="failed", reason=result.reason)
        if isinstance(result, Empty):
            return cls(metric=metric, status="empty")
        raise TypeError(f"Unsupported metric result: {result!r}")
