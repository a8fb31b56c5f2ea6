"""Snapshot aggregation: fan-in of the five reducer results.

Two failure policies are supported (see ``FailurePolicy``):

- ``fail_fast`` aborts on the first failed metric, in the fixed metric
  order heart_rate, steps, sleep, oxygen, temperature.
- ``partial`` stores failed metrics as null and aborts only when every
  metric except temperature failed.

Temperature degrades to a fallback inside its reducer, so it never aborts
an aggregation under either policy.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Mapping

from pulsedash.fitness.base import (
    HEART_RATE,
    METRICS,
    OXYGEN,
    SLEEP,
    STEPS,
    TEMPERATURE,
    DashboardSnapshot,
    Duration,
    Empty,
    Failure,
    FailurePolicy,
    MetricResult,
    Scalar,
)
from pulsedash.fitness.errors import AggregationError

logger = logging.getLogger("pulsedash.fitness.aggregator")

#: Metrics whose failure can abort an aggregation.
ABORTING_METRICS: tuple[str, ...] = tuple(m for m in METRICS if m != TEMPERATURE)


def sanitize_value(value: object) -> object:
    """Map NaN, infinities, blank strings and None to None; pass the rest through."""
    if value is None:
        return None
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def sanitize(snapshot: DashboardSnapshot) -> DashboardSnapshot:
    """Return a copy of ``snapshot`` with every metric field sanitized.

    Idempotent: ``sanitize(sanitize(s)) == sanitize(s)``.
    """
    return replace(
        snapshot,
        heart_rate_avg=sanitize_value(snapshot.heart_rate_avg),
        total_steps=sanitize_value(snapshot.total_steps),
        sleep_duration=sanitize_value(snapshot.sleep_duration),
        oxygen_avg=sanitize_value(snapshot.oxygen_avg),
        temperature=sanitize_value(snapshot.temperature),
    )


def _field_value(metric: str, result: MetricResult) -> object:
    """Extract the snapshot field value for one metric result."""
    if isinstance(result, (Empty, Failure)):
        return None
    if metric == SLEEP:
        if isinstance(result, Duration):
            return result
    elif isinstance(result, Scalar):
        if metric == STEPS and isinstance(result.value, (int, float)):
            if isinstance(result.value, float) and not math.isfinite(result.value):
                return None
            return int(round(result.value))
        return result.value
    logger.warning("%s: unexpected result type %s, storing null", metric, type(result).__name__)
    return None


def aggregate(
    email: str,
    results: Mapping[str, MetricResult],
    policy: FailurePolicy = FailurePolicy.FAIL_FAST,
) -> DashboardSnapshot:
    """Merge per-metric results into one sanitized, unpersisted snapshot.

    Args:
        email:   Identity of the authenticated subject.
        results: metric name → reducer result.  A missing metric counts as
                 a failure.
        policy:  Failure policy to apply.

    Returns:
        The sanitized ``DashboardSnapshot`` (``created_at`` unset).

    Raises:
        ValueError:       If ``email`` is blank.
        AggregationError: If the policy rejects the results.
    """
    if not email or not email.strip():
        raise ValueError("A user email is required to build a dashboard snapshot")

    resolved: dict[str, MetricResult] = {
        metric: results.get(metric, Failure(metric, "no result")) for metric in METRICS
    }

    failures = [
        resolved[metric]
        for metric in ABORTING_METRICS
        if isinstance(resolved[metric], Failure)
    ]

    if failures:
        if policy == FailurePolicy.FAIL_FAST:
            first = failures[0]
            logger.warning("Aggregation aborted for %s: %s", email, first)
            raise AggregationError(first.metric, first.reason)
        if len(failures) == len(ABORTING_METRICS):
            reasons = "; ".join(str(f) for f in failures)
            logger.warning("Aggregation aborted for %s: all metrics failed", email)
            raise AggregationError("dashboard", f"all metrics failed ({reasons})")
        logger.info(
            "Partial snapshot for %s: %s",
            email,
            ", ".join(str(f) for f in failures),
        )

    snapshot = DashboardSnapshot(
        user_email=email.strip(),
        heart_rate_avg=_field_value(HEART_RATE, resolved[HEART_RATE]),
        total_steps=_field_value(STEPS, resolved[STEPS]),
        sleep_duration=_field_value(SLEEP, resolved[SLEEP]),
        oxygen_avg=_field_value(OXYGEN, resolved[OXYGEN]),
        temperature=_field_value(TEMPERATURE, resolved[TEMPERATURE]),
    )
    return sanitize(snapshot)
