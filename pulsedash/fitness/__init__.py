"""PulseDash fitness aggregation core.

This package reduces per-user physiological time-series from a provider
into one dashboard snapshot per request.

Subpackages:
    providers/ — Provider API clients (Google Fit)

Core modules:
    base             — Canonical data models and the FitnessProvider ABC
    window           — Time window resolution and timebase conversion
    config_loader    — Load/validate/hot-reload metrics_config.yaml
    reducers         — Per-metric reducers
    sleep_classifier — Sleep stage labelling and totals
    aggregator       — Sanitization and failure policy
    store            — Append-only snapshot stores
    pipeline         — Concurrent fan-out / fan-in of one dashboard request
"""

from pulsedash.fitness.base import (
    DashboardSnapshot,
    Duration,
    Empty,
    Failure,
    FailurePolicy,
    FitnessProvider,
    MetricResult,
    OAuthCredentials,
    RawPoint,
    Scalar,
    SleepStage,
)
from pulsedash.fitness.config_loader import MetricsConfig, get_metrics_config
from pulsedash.fitness.window import TimeWindow, resolve

__all__ = [
    "DashboardSnapshot",
    "Duration",
    "Empty",
    "Failure",
    "FailurePolicy",
    "FitnessProvider",
    "MetricResult",
    "OAuthCredentials",
    "RawPoint",
    "Scalar",
    "SleepStage",
    "MetricsConfig",
    "get_metrics_config",
    "TimeWindow",
    "resolve",
]
