"""Dashboard pipeline: fan out the reducers, fan in, aggregate, persist.

Workflow for one dashboard request:
1. Read the clock once
2. Resolve each metric's window from that instant and its own lookback
3. Run all enabled reducers concurrently against the provider
4. Aggregate the results under the configured failure policy
5. Hand the snapshot to the store exactly once

The reducers share nothing but the provider client and its frozen
credentials.  If the fan-out exceeds the timeout, in-flight reducers are
cancelled and nothing is persisted.
"""

from __future__ import annotations

import asyncio
import logging
import random

from pulsedash.fitness.aggregator import aggregate
from pulsedash.fitness.base import (
    METRICS,
    DashboardSnapshot,
    Empty,
    FitnessProvider,
    MetricResult,
)
from pulsedash.fitness.config_loader import MetricsConfig, get_metrics_config
from pulsedash.fitness.errors import AggregationTimeout
from pulsedash.fitness.reducers import MetricReducer, build_reducer
from pulsedash.fitness.store import SnapshotStore
from pulsedash.fitness.window import Clock, TimeWindow, resolve, utc_now

logger = logging.getLogger("pulsedash.fitness.pipeline")


class DashboardPipeline:
    """Build and persist one dashboard snapshot per ``run()``.

    Usage::

        async with GoogleFitClient(credentials) as client:
            pipeline = DashboardPipeline(client, store)
            snapshot = await pipeline.run("user@example.com")
    """

    def __init__(
        self,
        provider: FitnessProvider,
        store: SnapshotStore,
        config: MetricsConfig | None = None,
        clock: Clock = utc_now,
        rng: random.Random | None = None,
        timeout_seconds: float | None = 30.0,
    ) -> None:
        """Initialize the pipeline.

        Args:
            provider:        Authorized provider client shared by all reducers.
            store:           Append-only snapshot sink.
            config:          Metrics configuration (bundled YAML by default).
            clock:           Source of "now".
            rng:             Random source for the temperature fallback.
            timeout_seconds: Timeout for the whole reducer fan-out; None disables it.
        """
        self._provider = provider
        self._store = store
        self._config = config or get_metrics_config()
        self._clock = clock
        self._timeout = timeout_seconds
        self._reducers: dict[str, MetricReducer] = {
            metric: build_reducer(metric, provider, self._config, rng)
            for metric in METRICS
        }

    def windows(self) -> dict[str, TimeWindow]:
        """Resolve every metric's window from a single reading of the clock."""
        now = self._clock()
        return {metric: resolve(now, self._config.lookback(metric)) for metric in METRICS}

    async def reduce_metric(self, metric: str, window: TimeWindow | None = None) -> MetricResult:
        """Run a single metric's reducer.

        Raises:
            KeyError: If ``metric`` is unknown.
        """
        reducer = self._reducers[metric]
        if not self._config.is_enabled(metric):
            return Empty()
        target = window or resolve(self._clock(), self._config.lookback(metric))
        return await reducer.reduce(target)

    async def collect(self) -> dict[str, MetricResult]:
        """Run all reducers concurrently and return their results by metric.

        Raises:
            AggregationTimeout: If the fan-out exceeds the timeout.
        """
        windows = self.windows()
        enabled = [m for m in METRICS if self._config.is_enabled(m)]

        fan_out = asyncio.gather(
            *(self._reducers[m].reduce(windows[m]) for m in enabled)
        )
        try:
            if self._timeout is None:
                reduced = await fan_out
            else:
                reduced = await asyncio.wait_for(fan_out, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Reducer fan-out timed out after %ss", self._timeout)
            raise AggregationTimeout(self._timeout) from exc

        results: dict[str, MetricResult] = {m: Empty() for m in METRICS}
        results.update(zip(enabled, reduced))
        return results

    async def run(self, email: str) -> DashboardSnapshot:
        """Collect, aggregate and persist one snapshot for ``email``.

        Returns:
            The persisted snapshot.

        Raises:
            AggregationError:   If the failure policy rejects the results.
            AggregationTimeout: If the fan-out exceeds the timeout.
            PersistenceFailure: If the store write fails.
        """
        results = await self.collect()
        snapshot = aggregate(email, results, self._config.failure_policy)
        stored = await self._store.save(snapshot)
        logger.info(
            "Dashboard snapshot %s stored for %s (policy=%s)",
            stored.id,
            email,
            self._config.failure_policy.value,
        )
        return stored
