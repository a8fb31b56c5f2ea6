"""Per-metric reducers: collapse one metric's provider points into one result.

Every reducer queries the injected provider for its own window and returns
a ``MetricResult``.  Provider problems never escape a reducer: they come
back as a ``Failure`` tagged with the reducer's metric name.  Temperature
is the exception in the other direction: it degrades to a fallback value
instead of failing.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from typing import Sequence

from pulsedash.fitness.base import (
    HEART_RATE,
    OXYGEN,
    SLEEP,
    STEPS,
    TEMPERATURE,
    Duration,
    Failure,
    FitnessProvider,
    MetricResult,
    RawPoint,
    Scalar,
    is_finite_number,
)
from pulsedash.fitness.config_loader import (
    MetricSourceConfig,
    MetricsConfig,
    TemperatureFallbackConfig,
)
from pulsedash.fitness.errors import DashboardError, NoData
from pulsedash.fitness.sleep_classifier import (
    classify,
    classify_sessions,
    stage_breakdown,
    total_sleep_minutes,
)
from pulsedash.fitness.window import TimeWindow

logger = logging.getLogger("pulsedash.fitness.reducers")

NO_DATA = "no data"


def numeric_values(points: Sequence[RawPoint]) -> list[float]:
    """First-value payloads of ``points`` that are finite numbers."""
    return [float(p.first_value) for p in points if is_finite_number(p.first_value)]


def mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


class MetricReducer(ABC):
    """Base class for all metric reducers.

    Subclasses implement ``summarize()``, a pure function over the fetched
    points, and may override ``fetch()`` when their data does not come from
    a plain data source.
    """

    #: Metric name used to tag failures and key aggregation results.
    METRIC: str = "unknown"

    def __init__(self, provider: FitnessProvider, source: MetricSourceConfig) -> None:
        self._provider = provider
        self._source = source

    @property
    def source(self) -> MetricSourceConfig:
        return self._source

    async def fetch(self, window: TimeWindow) -> list[RawPoint]:
        return await self._provider.fetch_points(self._source.data_source_id, window)

    async def reduce(self, window: TimeWindow) -> MetricResult:
        """Fetch this metric's points for ``window`` and reduce them.

        Returns:
            The reduced result, or ``Failure`` if the provider call failed or
            the window held no usable points.
        """
        try:
            points = await self.fetch(window)
            result = self.summarize(points)
        except DashboardError as exc:
            logger.warning("%s: %s", self.METRIC, exc)
            return Failure(self.METRIC, str(exc) or type(exc).__name__)
        except Exception as exc:
            logger.exception("%s: unexpected error reducing points", self.METRIC)
            return Failure(self.METRIC, f"unexpected error: {exc}")

        logger.debug("%s: %d points → %s", self.METRIC, len(points), result)
        return result

    @abstractmethod
    def summarize(self, points: Sequence[RawPoint]) -> MetricResult:
        """Collapse ``points`` into one result.  No I/O, no side effects.

        Raises:
            NoData: If the points hold nothing this metric can use.
        """


class HeartRateReducer(MetricReducer):
    """Mean bpm over the window."""

    METRIC = HEART_RATE

    def summarize(self, points: Sequence[RawPoint]) -> MetricResult:
        values = numeric_values(points)
        if not values:
            raise NoData(NO_DATA)
        return Scalar(mean(values))


class StepsReducer(MetricReducer):
    """Total step count over the window.

    No points means no movement, which is a valid zero rather than a failure.
    Missing or non-numeric values count as 0.
    """

    METRIC = STEPS

    def summarize(self, points: Sequence[RawPoint]) -> MetricResult:
        total = sum(
            p.first_value if is_finite_number(p.first_value) else 0 for p in points
        )
        return Scalar(total)


class OxygenSaturationReducer(MetricReducer):
    """Mean SpO2 % over the window, ignoring null readings."""

    METRIC = OXYGEN

    def summarize(self, points: Sequence[RawPoint]) -> MetricResult:
        values = numeric_values(points)
        if not values:
            raise NoData(NO_DATA)
        return Scalar(mean(values))


class TemperatureReducer(MetricReducer):
    """First body temperature reading, with a fallback instead of failure.

    The first point's value is used when it is a finite number inside the
    configured plausible range.  Otherwise, and whenever the provider call
    fails, the configured fallback is returned.  Pass a seeded
    ``random.Random`` as ``rng`` for reproducible fallback draws.
    """

    METRIC = TEMPERATURE

    def __init__(
        self,
        provider: FitnessProvider,
        source: MetricSourceConfig,
        fallback: TemperatureFallbackConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(provider, source)
        self._fallback = fallback or TemperatureFallbackConfig()
        self._rng = rng or random.Random(self._fallback.seed)

    def fallback_value(self) -> float:
        if self._fallback.mode == "fixed":
            return self._fallback.value
        return self._rng.uniform(self._fallback.range_min, self._fallback.range_max)

    def _is_plausible(self, value: object) -> bool:
        if not is_finite_number(value):
            return False
        return self._fallback.plausible_min <= value <= self._fallback.plausible_max

    async def reduce(self, window: TimeWindow) -> MetricResult:
        try:
            points = await self.fetch(window)
        except Exception as exc:
            logger.warning("%s: provider call failed, using fallback: %s", self.METRIC, exc)
            return Scalar(self.fallback_value())
        return self.summarize(points)

    def summarize(self, points: Sequence[RawPoint]) -> MetricResult:
        if points:
            value = points[0].first_value
            if self._is_plausible(value):
                return Scalar(float(value))
            logger.info("%s: implausible reading %r, using fallback", self.METRIC, value)
        return Scalar(self.fallback_value())


class SleepReducer(MetricReducer):
    """Total sleep duration over the window.

    Reads stage-coded sleep segments, or sleep sessions of the configured
    activity type when the metric's source is ``sessions``.
    """

    METRIC = SLEEP

    @property
    def uses_sessions(self) -> bool:
        return self._source.source == "sessions"

    async def fetch(self, window: TimeWindow) -> list[RawPoint]:
        if self.uses_sessions:
            return await self._provider.fetch_sessions(window, self._source.activity_type)
        return await super().fetch(window)

    def summarize(self, points: Sequence[RawPoint]) -> MetricResult:
        if not points:
            raise NoData(NO_DATA)
        stages = classify_sessions(points) if self.uses_sessions else classify(points)
        return Duration.from_minutes(total_sleep_minutes(stages), stage_breakdown(stages))


# Registry: metric name → reducer class
REDUCER_REGISTRY: dict[str, type[MetricReducer]] = {
    HEART_RATE: HeartRateReducer,
    STEPS: StepsReducer,
    SLEEP: SleepReducer,
    OXYGEN: OxygenSaturationReducer,
    TEMPERATURE: TemperatureReducer,
}


def build_reducer(
    metric: str,
    provider: FitnessProvider,
    config: MetricsConfig,
    rng: random.Random | None = None,
) -> MetricReducer:
    """Instantiate the reducer for ``metric``.

    Raises:
        KeyError: If no reducer is registered for the metric.
    """
    if metric not in REDUCER_REGISTRY:
        raise KeyError(
            f"No reducer registered for metric '{metric}'. "
            f"Available: {list(REDUCER_REGISTRY)}"
        )
    source = config.metric(metric)
    if metric == TEMPERATURE:
        return TemperatureReducer(provider, source, config.temperature_fallback, rng)
    return REDUCER_REGISTRY[metric](provider, source)
