"""Tests for the dashboard pipeline: fan-out, aggregation and persistence."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from pulsedash.fitness.base import Duration, Empty, FailurePolicy, Scalar
from pulsedash.fitness.errors import (
    AggregationError,
    AggregationTimeout,
    PersistenceFailure,
    ProviderUnavailable,
)
from pulsedash.fitness.pipeline import DashboardPipeline
from pulsedash.fitness.store import InMemorySnapshotStore
from pulsedash.fitness.tests.conftest import (
    HEART_RATE_SOURCE,
    NOW,
    OXYGEN_SOURCE,
    SLEEP_SOURCE,
    STEPS_SOURCE,
    TEMPERATURE_SOURCE,
    TEST_EMAIL,
    FakeProvider,
    fp_point,
)


def make_pipeline(provider, store, metrics_config, clock, rng, **kwargs) -> DashboardPipeline:
    return DashboardPipeline(
        provider, store, config=metrics_config, clock=clock, rng=rng, **kwargs
    )


class TestWindows:
    def test_windows_share_one_clock_reading(
        self, healthy_provider, store, metrics_config
    ) -> None:
        readings = iter([NOW, NOW + timedelta(hours=5)])
        pipeline = DashboardPipeline(
            healthy_provider, store, config=metrics_config, clock=lambda: next(readings)
        )
        windows = pipeline.windows()
        assert {w.end for w in windows.values()} == {NOW}

    def test_per_metric_lookback(self, healthy_provider, store, metrics_config, clock) -> None:
        windows = DashboardPipeline(
            healthy_provider, store, config=metrics_config, clock=clock
        ).windows()
        assert windows["sleep"].duration == timedelta(days=7)
        for metric in ("heart_rate", "steps", "oxygen", "temperature"):
            assert windows[metric].duration == timedelta(hours=24)


class TestCollect:
    @pytest.mark.asyncio
    async def test_every_metric_queried_once(
        self, healthy_provider, store, metrics_config, clock, rng
    ) -> None:
        pipeline = make_pipeline(healthy_provider, store, metrics_config, clock, rng)
        results = await pipeline.collect()

        assert set(results) == {"heart_rate", "steps", "sleep", "oxygen", "temperature"}
        queried = sorted(source for source, _ in healthy_provider.calls)
        assert queried == sorted(
            [HEART_RATE_SOURCE, STEPS_SOURCE, SLEEP_SOURCE, OXYGEN_SOURCE, TEMPERATURE_SOURCE]
        )

    @pytest.mark.asyncio
    async def test_provider_sees_resolved_windows(
        self, healthy_provider, store, metrics_config, clock, rng
    ) -> None:
        await make_pipeline(healthy_provider, store, metrics_config, clock, rng).collect()
        windows = dict(healthy_provider.calls)
        assert windows[SLEEP_SOURCE].start == NOW - timedelta(days=7)
        assert windows[HEART_RATE_SOURCE].start == NOW - timedelta(hours=24)
        assert windows[HEART_RATE_SOURCE].end == NOW

    @pytest.mark.asyncio
    async def test_disabled_metric_is_empty_and_not_queried(
        self, healthy_provider, store, metrics_config, clock, rng
    ) -> None:
        metrics_config.metrics["oxygen"] = replace(
            metrics_config.metrics["oxygen"], enabled=False
        )
        pipeline = make_pipeline(healthy_provider, store, metrics_config, clock, rng)
        results = await pipeline.collect()

        assert results["oxygen"] == Empty()
        assert OXYGEN_SOURCE not in [source for source, _ in healthy_provider.calls]

    @pytest.mark.asyncio
    async def test_timeout_cancels_reducers(
        self, store, metrics_config, clock, rng
    ) -> None:
        slow = FakeProvider(delay=5.0)
        pipeline = make_pipeline(slow, store, metrics_config, clock, rng, timeout_seconds=0.05)

        with pytest.raises(AggregationTimeout) as exc_info:
            await pipeline.collect()

        assert exc_info.value.metric == "dashboard"
        assert slow.cancelled == 5


class TestReduceMetric:
    @pytest.mark.asyncio
    async def test_single_metric(self, healthy_provider, store, metrics_config, clock, rng) -> None:
        pipeline = make_pipeline(healthy_provider, store, metrics_config, clock, rng)
        assert await pipeline.reduce_metric("heart_rate") == Scalar(70.0)
        assert len(healthy_provider.calls) == 1

    @pytest.mark.asyncio
    async def test_unknown_metric(self, healthy_provider, store, metrics_config, clock, rng) -> None:
        pipeline = make_pipeline(healthy_provider, store, metrics_config, clock, rng)
        with pytest.raises(KeyError):
            await pipeline.reduce_metric("glucose")


class TestRun:
    @pytest.mark.asyncio
    async def test_healthy_run_persists_once(
        self, healthy_provider, store, metrics_config, clock, rng
    ) -> None:
        pipeline = make_pipeline(healthy_provider, store, metrics_config, clock, rng)
        snapshot = await pipeline.run(TEST_EMAIL)

        assert len(store) == 1
        assert store.snapshots[0] == snapshot
        assert snapshot.id is not None
        assert snapshot.created_at == NOW
        assert snapshot.heart_rate_avg == 70.0
        assert snapshot.total_steps == 1700
        assert snapshot.sleep_duration == Duration(hours=4, minutes=30)
        assert snapshot.oxygen_avg == 96.0
        assert snapshot.temperature == 36.8

    @pytest.mark.asyncio
    async def test_heart_rate_failure_leaves_store_untouched(
        self, healthy_provider, store, metrics_config, clock, rng
    ) -> None:
        healthy_provider.points[HEART_RATE_SOURCE] = ProviderUnavailable("timeout")
        pipeline = make_pipeline(healthy_provider, store, metrics_config, clock, rng)

        with pytest.raises(AggregationError) as exc_info:
            await pipeline.run(TEST_EMAIL)

        assert exc_info.value.metric == "heart_rate"
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_store_not_called_on_abort(
        self, healthy_provider, metrics_config, clock, rng
    ) -> None:
        healthy_provider.points[SLEEP_SOURCE] = []
        mock_store = AsyncMock()
        pipeline = make_pipeline(healthy_provider, mock_store, metrics_config, clock, rng)

        with pytest.raises(AggregationError):
            await pipeline.run(TEST_EMAIL)

        mock_store.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_temperature_failure_still_persists(
        self, healthy_provider, store, metrics_config, clock, rng
    ) -> None:
        healthy_provider.points[TEMPERATURE_SOURCE] = ProviderUnavailable("HTTP 500")
        snapshot = await make_pipeline(
            healthy_provider, store, metrics_config, clock, rng
        ).run(TEST_EMAIL)

        assert len(store) == 1
        assert 36.1 <= snapshot.temperature <= 37.2

    @pytest.mark.asyncio
    async def test_partial_policy_stores_nulls(
        self, healthy_provider, store, metrics_config, clock, rng
    ) -> None:
        metrics_config.failure_policy = FailurePolicy.PARTIAL
        healthy_provider.points[OXYGEN_SOURCE] = [fp_point(None)]
        snapshot = await make_pipeline(
            healthy_provider, store, metrics_config, clock, rng
        ).run(TEST_EMAIL)

        assert snapshot.oxygen_avg is None
        assert snapshot.heart_rate_avg == 70.0

    @pytest.mark.asyncio
    async def test_store_failure_propagates(
        self, healthy_provider, metrics_config, clock, rng
    ) -> None:
        mock_store = AsyncMock()
        mock_store.save.side_effect = PersistenceFailure("connection refused")
        pipeline = make_pipeline(healthy_provider, mock_store, metrics_config, clock, rng)

        with pytest.raises(PersistenceFailure):
            await pipeline.run(TEST_EMAIL)

        mock_store.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_each_run_appends(self, healthy_provider, metrics_config, clock, rng) -> None:
        store = InMemorySnapshotStore(clock=clock)
        pipeline = make_pipeline(healthy_provider, store, metrics_config, clock, rng)
        first = await pipeline.run(TEST_EMAIL)
        second = await pipeline.run(TEST_EMAIL)

        assert len(store) == 2
        assert first.id != second.id
