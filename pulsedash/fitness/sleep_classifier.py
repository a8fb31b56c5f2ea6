"""Sleep stage classification.

Maps provider sleep segment points to labelled ``SleepStage`` records and
totals the stages that count as sleep.

Stage codes (Google Fit sleep segment type):
    1 Awake, 2 Sleep, 3 OutOfBed, 4 LightSleep, 5 DeepSleep, 6 REMSleep

Overlapping segments are not deduplicated; if the provider reports
overlaps they are summed as-is.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Sequence

from pulsedash.fitness.base import RawPoint, SleepStage

logger = logging.getLogger("pulsedash.fitness.sleep_classifier")

STAGE_LABELS: dict[int, str] = {
    1: "Awake",
    2: "Sleep",
    3: "OutOfBed",
    4: "LightSleep",
    5: "DeepSleep",
    6: "REMSleep",
}
UNKNOWN_LABEL = "Unknown"

# Awake and OutOfBed are excluded
SLEEP_STAGE_CODES: frozenset[int] = frozenset({2, 4, 5, 6})

#: Stage code assigned to session-style records, which carry no stage.
GENERIC_SLEEP_CODE = 2


def _stage_code(point: RawPoint) -> int | None:
    value = point.first_value
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        return int(value)
    return value


def label_for(stage_code: int | None) -> str:
    if stage_code is None:
        return UNKNOWN_LABEL
    return STAGE_LABELS.get(stage_code, UNKNOWN_LABEL)


def classify(points: Sequence[RawPoint]) -> list[SleepStage]:
    """Classify each point into a labelled sleep stage, preserving point order."""
    stages: list[SleepStage] = []
    for point in points:
        code = _stage_code(point)
        label = label_for(code)
        if label == UNKNOWN_LABEL:
            logger.debug("Unknown sleep stage code %r at %s", point.first_value, point.start)
        stages.append(
            SleepStage(start=point.start, end=point.end, stage_code=code, label=label)
        )
    return stages


def classify_sessions(sessions: Sequence[RawPoint]) -> list[SleepStage]:
    """Treat each session-style record as one generic sleep stage."""
    return [
        SleepStage(
            start=session.start,
            end=session.end,
            stage_code=GENERIC_SLEEP_CODE,
            label=STAGE_LABELS[GENERIC_SLEEP_CODE],
        )
        for session in sessions
    ]


def counts_as_sleep(stage: SleepStage) -> bool:
    return stage.stage_code in SLEEP_STAGE_CODES


def total_sleep_minutes(stages: Iterable[SleepStage]) -> int:
    """Sum the floored per-stage minutes of every stage that counts as sleep."""
    return sum(stage.minutes for stage in stages if counts_as_sleep(stage))


def stage_breakdown(stages: Iterable[SleepStage]) -> dict[str, int]:
    """Return total minutes per stage label."""
    totals: dict[str, int] = defaultdict(int)
    for stage in stages:
        totals[stage.label] += stage.minutes
    return dict(totals)
