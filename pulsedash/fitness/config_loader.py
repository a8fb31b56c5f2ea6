"""Load, validate, and hot-reload the PulseDash metrics configuration.

The config lives in ``metrics_config.yaml`` alongside this module.  At
startup it is loaded once and cached.  Call ``reload_metrics_config()`` to
re-read from disk after an edit, no restart required.

Usage::

    from pulsedash.fitness.config_loader import get_metrics_config

    config = get_metrics_config()
    config.lookback("sleep")                 # timedelta(days=7)
    config.metric("heart_rate").data_source_id
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

from pulsedash.fitness.base import METRICS, SLEEP, TEMPERATURE, FailurePolicy

logger = logging.getLogger("pulsedash.fitness.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "metrics_config.yaml"

SLEEP_SOURCES = ("segments", "sessions")
FALLBACK_MODES = ("random", "fixed")


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class MetricSourceConfig:
    """Where one metric's points come from and how far back to look."""

    name: str
    enabled: bool
    data_source_id: str
    lookback: timedelta
    source: str = "segments"  # sleep only: 'segments' | 'sessions'
    activity_type: int = 72  # sleep sessions only


@dataclass
class TemperatureFallbackConfig:
    """Fallback used when no plausible temperature reading is available.

    Attributes:
        mode:          'random' (uniform draw) or 'fixed'.
        value:         Fixed fallback value in °C.
        range_min:     Lower bound of the random draw.
        range_max:     Upper bound of the random draw.
        seed:          Optional RNG seed for reproducible draws.
        plausible_min: Readings below this are discarded.
        plausible_max: Readings above this are discarded.
    """

    mode: str = "random"
    value: float = 36.6
    range_min: float = 36.1
    range_max: float = 37.2
    seed: int | None = None
    plausible_min: float = 30.0
    plausible_max: float = 45.0

    @property
    def bounds(self) -> tuple[float, float]:
        """Range every fallback value falls in."""
        if self.mode == "fixed":
            return (self.value, self.value)
        return (self.range_min, self.range_max)


@dataclass
class MetricsConfig:
    """Complete, validated metrics configuration.

    Attributes:
        version:              Config schema version string.
        failure_policy:       How the aggregator treats failed metrics.
        metrics:              metric name → source configuration.
        temperature_fallback: Temperature fallback settings.
    """

    version: str
    failure_policy: FailurePolicy
    metrics: dict[str, MetricSourceConfig]
    temperature_fallback: TemperatureFallbackConfig

    def metric(self, name: str) -> MetricSourceConfig:
        """Return the configuration for one metric.

        Raises:
            KeyError: If the metric is not configured.
        """
        if name not in self.metrics:
            raise KeyError(
                f"No configuration for metric '{name}'. Available: {list(self.metrics)}"
            )
        return self.metrics[name]

    def lookback(self, name: str) -> timedelta:
        return self.metric(name).lookback

    def is_enabled(self, name: str) -> bool:
        return name in self.metrics and self.metrics[name].enabled


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when metrics_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError:     If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Metrics config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _parse_lookback(name: str, cfg: dict, errors: list[str]) -> timedelta:
    hours = cfg.get("lookback_hours")
    days = cfg.get("lookback_days")
    if hours is None and days is None:
        errors.append(f"metrics.{name} needs lookback_hours or lookback_days")
        return timedelta(hours=24)
    try:
        lookback = timedelta(hours=float(hours or 0), days=float(days or 0))
    except (TypeError, ValueError):
        errors.append(f"metrics.{name} lookback must be numeric")
        return timedelta(hours=24)
    if lookback <= timedelta(0):
        errors.append(f"metrics.{name} lookback must be positive, got {lookback}")
    return lookback


def _parse_fallback(cfg: dict, errors: list[str]) -> TemperatureFallbackConfig:
    fb = cfg.get("fallback") or {}
    plausible = cfg.get("plausible_range") or {}
    seed = fb.get("seed")
    try:
        fallback = TemperatureFallbackConfig(
            mode=str(fb.get("mode", "random")),
            value=float(fb.get("value", 36.6)),
            range_min=float(fb.get("min", 36.1)),
            range_max=float(fb.get("max", 37.2)),
            seed=int(seed) if seed is not None else None,
            plausible_min=float(plausible.get("min", 30.0)),
            plausible_max=float(plausible.get("max", 45.0)),
        )
    except (TypeError, ValueError) as exc:
        errors.append(f"metrics.temperature fallback is invalid: {exc}")
        return TemperatureFallbackConfig()

    if fallback.mode not in FALLBACK_MODES:
        errors.append(
            f"metrics.temperature.fallback.mode must be one of {FALLBACK_MODES}, "
            f"got {fallback.mode!r}"
        )
    if fallback.range_min > fallback.range_max:
        errors.append("metrics.temperature.fallback min must not exceed max")
    if fallback.plausible_min >= fallback.plausible_max:
        errors.append("metrics.temperature.plausible_range min must be below max")
    return fallback


def _validate_and_build(raw: dict) -> MetricsConfig:
    """Validate the raw YAML dict and construct a MetricsConfig.

    All problems are collected and reported together.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []

    version = str(raw.get("version", "1.0"))

    policy_raw = raw.get("failure_policy", FailurePolicy.FAIL_FAST.value)
    try:
        failure_policy = FailurePolicy(policy_raw)
    except ValueError:
        errors.append(
            f"failure_policy must be one of {[p.value for p in FailurePolicy]}, "
            f"got {policy_raw!r}"
        )
        failure_policy = FailurePolicy.FAIL_FAST

    metrics_raw = raw.get("metrics") or {}
    if not isinstance(metrics_raw, dict):
        errors.append("'metrics' must be a mapping of metric → settings")
        metrics_raw = {}

    metrics: dict[str, MetricSourceConfig] = {}
    temperature_fallback = TemperatureFallbackConfig()

    for name in METRICS:
        cfg: Any = metrics_raw.get(name)
        if cfg is None:
            errors.append(f"Missing required metric '{name}' in section 'metrics'")
            continue
        if not isinstance(cfg, dict):
            errors.append(f"metrics.{name} must be a mapping")
            continue

        data_source_id = cfg.get("data_source_id") or ""
        source = str(cfg.get("source", "segments"))
        needs_source_id = not (name == SLEEP and source == "sessions")
        if needs_source_id and not data_source_id:
            errors.append(f"metrics.{name}.data_source_id is required")

        if name == SLEEP and source not in SLEEP_SOURCES:
            errors.append(
                f"metrics.sleep.source must be one of {SLEEP_SOURCES}, got {source!r}"
            )

        try:
            activity_type = int(cfg.get("activity_type", 72))
        except (TypeError, ValueError):
            errors.append(f"metrics.{name}.activity_type must be an integer")
            activity_type = 72

        metrics[name] = MetricSourceConfig(
            name=name,
            enabled=bool(cfg.get("enabled", True)),
            data_source_id=str(data_source_id),
            lookback=_parse_lookback(name, cfg, errors),
            source=source,
            activity_type=activity_type,
        )

        if name == TEMPERATURE:
            temperature_fallback = _parse_fallback(cfg, errors)

    unknown = sorted(set(metrics_raw) - set(METRICS))
    if unknown:
        logger.warning("Ignoring unknown metrics in config: %s", ", ".join(unknown))

    if errors:
        raise ConfigValidationError(
            f"metrics_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return MetricsConfig(
        version=version,
        failure_policy=failure_policy,
        metrics=metrics,
        temperature_fallback=temperature_fallback,
    )


def load_metrics_config(path: Path | None = None) -> MetricsConfig:
    """Load and validate the metrics config from disk.

    Args:
        path: Override path to YAML. Uses the bundled metrics_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded metrics config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Cached instance with hot-reload support
# ---------------------------------------------------------------------------

_config: MetricsConfig | None = None
_config_lock = threading.Lock()


def get_metrics_config(path: Path | None = None) -> MetricsConfig:
    """Return the cached MetricsConfig, loading it on first call.

    Thread-safe.  Use ``reload_metrics_config()`` to refresh after YAML changes.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_metrics_config(path)
    return _config


def reload_metrics_config(path: Path | None = None) -> MetricsConfig:
    """Reload the metrics config from disk and replace the cached instance.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_metrics_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded metrics config: %s → %s", old_version, new_config.version)
    return new_config
