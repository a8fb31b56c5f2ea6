"""PulseDash API — FastAPI application entry point.

Run locally:
    uvicorn pulsedash.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pulsedash.config import get_settings
from pulsedash.fitness.store import InMemorySnapshotStore, PostgresSnapshotStore
from pulsedash.routers import dashboard, health
from pulsedash.services.database import close_pool, init_pool

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("pulsedash")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings = get_settings()
    logging.getLogger("pulsedash").setLevel(settings.log_level.upper())
    logger.info(
        "Starting PulseDash API v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    if settings.database_url:
        pool = await init_pool(settings)
        store = PostgresSnapshotStore(pool)
        await store.ensure_schema()
        app.state.snapshot_store = store
    else:
        logger.warning("DATABASE_URL not set — snapshots are kept in memory only")
        app.state.snapshot_store = InMemorySnapshotStore()
    yield
    await close_pool()
    logger.info("PulseDash API shut down")


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="PulseDash API",
        description=(
            "Dashboard aggregation of wearable time-series: heart rate, steps, "
            "blood oxygen, body temperature and sleep."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (always at /health, outside the v1 prefix) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    app.include_router(dashboard.router, prefix="/api/v1")

    return app


app = create_app()
