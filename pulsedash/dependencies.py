"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, AsyncGenerator

from fastapi import Depends, Header, HTTPException, Request

from pulsedash.config import Settings, get_settings
from pulsedash.fitness.base import FitnessProvider, OAuthCredentials
from pulsedash.fitness.config_loader import MetricsConfig, get_metrics_config
from pulsedash.fitness.pipeline import DashboardPipeline
from pulsedash.fitness.providers import get_provider
from pulsedash.fitness.store import SnapshotStore


@dataclass(frozen=True)
class RequestIdentity:
    """Caller identity and provider credentials for one request.

    Token acquisition happens upstream; this only carries what the caller sent.
    """

    email: str
    credentials: OAuthCredentials


async def get_request_identity(
    authorization: Annotated[str | None, Header()] = None,
    x_user_email: Annotated[str | None, Header()] = None,
) -> RequestIdentity:
    """Read the provider bearer token and the subject's email from headers."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")
    token = authorization.removeprefix("Bearer ").strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")
    if not x_user_email or not x_user_email.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Email header")
    return RequestIdentity(
        email=x_user_email.strip(),
        credentials=OAuthCredentials(access_token=token),
    )


def get_snapshot_store(request: Request) -> SnapshotStore:
    """Return the store the lifespan hook attached to the app."""
    store: SnapshotStore | None = getattr(request.app.state, "snapshot_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Snapshot store not initialized")
    return store


def get_config(settings: Annotated[Settings, Depends(get_settings)]) -> MetricsConfig:
    path = Path(settings.metrics_config_path) if settings.metrics_config_path else None
    return get_metrics_config(path)


async def get_provider_client(
    identity: Annotated[RequestIdentity, Depends(get_request_identity)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AsyncGenerator[FitnessProvider, None]:
    """Open one provider client per request, shared by all reducers."""
    client_cls = get_provider(settings.provider)
    async with client_cls(
        identity.credentials,
        base_url=settings.google_fit_base_url,
        timeout_seconds=settings.provider_timeout_seconds,
    ) as client:
        yield client


def get_pipeline(
    provider: Annotated[FitnessProvider, Depends(get_provider_client)],
    store: Annotated[SnapshotStore, Depends(get_snapshot_store)],
    config: Annotated[MetricsConfig, Depends(get_config)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> DashboardPipeline:
    return DashboardPipeline(
        provider,
        store,
        config=config,
        timeout_seconds=settings.aggregation_timeout_seconds,
    )


# Annotated shortcuts for route signatures
CurrentIdentity = Annotated[RequestIdentity, Depends(get_request_identity)]
Pipeline = Annotated[DashboardPipeline, Depends(get_pipeline)]
