"""Append-only snapshot stores.

A store receives each aggregated snapshot exactly once, stamps it with an
id and ``created_at``, and returns the persisted copy.  There is no update
path: saving an already-persisted snapshot is rejected.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace

import asyncpg

from pulsedash.fitness.base import DashboardSnapshot
from pulsedash.fitness.errors import PersistenceFailure
from pulsedash.fitness.window import Clock, utc_now
from pulsedash.services.database import get_connection

logger = logging.getLogger("pulsedash.fitness.store")


class SnapshotStore(ABC):
    """Append-only write sink for dashboard snapshots."""

    @abstractmethod
    async def save(self, snapshot: DashboardSnapshot) -> DashboardSnapshot:
        """Persist ``snapshot`` and return the stored copy.

        Raises:
            PersistenceFailure: If the write failed or the snapshot was
                already persisted.
        """

    @staticmethod
    def _reject_persisted(snapshot: DashboardSnapshot) -> None:
        if snapshot.is_persisted:
            raise PersistenceFailure(
                f"Snapshot {snapshot.id} was already persisted at "
                f"{snapshot.created_at.isoformat()}; snapshots are append-only"
            )


class InMemorySnapshotStore(SnapshotStore):
    """Process-local store used for tests and local development."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._snapshots: list[DashboardSnapshot] = []

    async def save(self, snapshot: DashboardSnapshot) -> DashboardSnapshot:
        self._reject_persisted(snapshot)
        stored = replace(snapshot, id=uuid.uuid4(), created_at=self._clock())
        self._snapshots.append(stored)
        logger.info("Saved snapshot %s for %s (in-memory)", stored.id, stored.user_email)
        return stored

    @property
    def snapshots(self) -> tuple[DashboardSnapshot, ...]:
        return tuple(self._snapshots)

    def __len__(self) -> int:
        return len(self._snapshots)


_SCHEMA = """
CREATE TABLE IF NOT EXISTS dashboard_snapshots (
    id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_email      TEXT NOT NULL,
    heart_rate_avg  DOUBLE PRECISION,
    total_steps     INTEGER,
    sleep_duration  TEXT,
    sleep_minutes   INTEGER,
    oxygen_avg      DOUBLE PRECISION,
    temperature     DOUBLE PRECISION,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_dashboard_snapshots_user
    ON dashboard_snapshots (user_email, created_at DESC);

CREATE OR REPLACE FUNCTION dashboard_snapshots_append_only() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION 'dashboard_snapshots is append-only';
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS dashboard_snapshots_no_update ON dashboard_snapshots;
CREATE TRIGGER dashboard_snapshots_no_update
    BEFORE UPDATE ON dashboard_snapshots
    FOR EACH ROW EXECUTE FUNCTION dashboard_snapshots_append_only();
"""

_INSERT = """
INSERT INTO dashboard_snapshots (
    user_email, heart_rate_avg, total_steps,
    sleep_duration, sleep_minutes, oxygen_avg, temperature
)
VALUES ($1, $2, $3, $4, $5, $6, $7)
RETURNING id, created_at
"""

_WRITE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, RuntimeError)


class PostgresSnapshotStore(SnapshotStore):
    """Snapshot store backed by the ``dashboard_snapshots`` table.

    Sleep is written twice: as the display string ("7 hr 5 min") and as
    whole minutes for numeric queries.
    """

    def __init__(self, pool: asyncpg.Pool | None = None) -> None:
        self._pool = pool

    async def ensure_schema(self) -> None:
        """Create the table, index and append-only trigger if missing."""
        async with get_connection(self._pool) as conn:
            await conn.execute(_SCHEMA)
        logger.info("dashboard_snapshots schema ensured")

    async def save(self, snapshot: DashboardSnapshot) -> DashboardSnapshot:
        self._reject_persisted(snapshot)
        sleep = snapshot.sleep_duration
        try:
            async with get_connection(self._pool) as conn:
                row = await conn.fetchrow(
                    _INSERT,
                    snapshot.user_email,
                    snapshot.heart_rate_avg,
                    snapshot.total_steps,
                    str(sleep) if sleep is not None else None,
                    sleep.total_minutes if sleep is not None else None,
                    snapshot.oxygen_avg,
                    snapshot.temperature,
                )
        except _WRITE_ERRORS as exc:
            logger.error("Snapshot write failed for %s: %s", snapshot.user_email, exc)
            raise PersistenceFailure(f"Could not persist snapshot: {exc}") from exc

        if row is None:
            raise PersistenceFailure("Snapshot insert returned no row")

        stored = replace(snapshot, id=row["id"], created_at=row["created_at"])
        logger.info("Saved snapshot %s for %s", stored.id, stored.user_email)
        return stored
