"""Dashboard endpoints: build-and-persist a snapshot, or reduce one metric."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from pulsedash.dependencies import CurrentIdentity, Pipeline
from pulsedash.fitness.base import METRICS
from pulsedash.fitness.errors import (
    AggregationError,
    AggregationTimeout,
    PersistenceFailure,
)
from pulsedash.models.base import ErrorDetail
from pulsedash.models.dashboard import DashboardSnapshotRead, MetricResultRead

router = APIRouter(tags=["dashboard"])
logger = logging.getLogger("pulsedash.routers.dashboard")


_ERROR_RESPONSES = {
    401: {"model": ErrorDetail, "description": "Missing credentials or email"},
    502: {"model": ErrorDetail, "description": "A metric failed: \"<metric>: <reason>\""},
    503: {"model": ErrorDetail, "description": "Snapshot could not be stored"},
    504: {"model": ErrorDetail, "description": "Provider calls timed out"},
}


@router.post(
    "/dashboard",
    response_model=DashboardSnapshotRead,
    status_code=201,
    responses=_ERROR_RESPONSES,
)
async def create_dashboard(identity: CurrentIdentity, pipeline: Pipeline) -> Any:
    """Aggregate every metric for the caller and persist one snapshot."""
    try:
        snapshot = await pipeline.run(identity.email)
    except AggregationTimeout as exc:
        raise HTTPException(status_code=504, detail=str(exc)) from exc
    except AggregationError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except PersistenceFailure as exc:
        logger.error("Dashboard persistence failed for %s: %s", identity.email, exc)
        raise HTTPException(status_code=503, detail="Failed to save dashboard") from exc
    return DashboardSnapshotRead.from_snapshot(snapshot)


@router.get("/metrics/{metric}", response_model=MetricResultRead)
async def read_metric(metric: str, pipeline: Pipeline) -> Any:
    """Reduce a single metric over its window without persisting anything."""
    if metric not in METRICS:
        raise HTTPException(status_code=404, detail=f"Unknown metric '{metric}'")
    result = await pipeline.reduce_metric(metric)
    return MetricResultRead.from_result(metric, result)
