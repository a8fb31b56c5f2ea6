"""Google Fit REST API provider client.

Receives an already-authorized ``OAuthCredentials`` object; token
acquisition and refresh belong to the caller.

API base: https://www.googleapis.com/fitness/v1

Endpoints used:
    /users/me/dataSources/{id}/datasets/{startNs}-{endNs}  — Point datasets
    /users/me/sessions?startTime=<iso>&endTime=<iso>        — Activity sessions

Response parsing is defensive: missing ``point`` or ``value`` arrays yield
no points / no values, non-numeric fields become None, and points whose
timestamps cannot be parsed are skipped.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable
from urllib.parse import quote

import httpx

from pulsedash.fitness.base import FitnessProvider, OAuthCredentials, PointValue, RawPoint
from pulsedash.fitness.errors import MalformedResponse, ProviderUnavailable
from pulsedash.fitness.window import TimeWindow, from_millis, from_nanos

logger = logging.getLogger("pulsedash.fitness.providers.google_fit")

GOOGLE_FIT_API_BASE = "https://www.googleapis.com/fitness/v1"

#: Google Fit activity type for sleep sessions.
SLEEP_ACTIVITY_TYPE = 72

_MAX_PAGES = 20


class GoogleFitClient(FitnessProvider):
    """Google Fit adapter for the dashboard reducers.

    The credential object is read-only and can be shared by reducers
    running concurrently.  Use as an async context manager to share one
    HTTP connection pool across all calls of a request::

        async with GoogleFitClient(credentials) as client:
            points = await client.fetch_points(source_id, window)
    """

    SOURCE_ID = "google_fit"

    def __init__(
        self,
        credentials: OAuthCredentials,
        base_url: str = GOOGLE_FIT_API_BASE,
        timeout_seconds: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            credentials:     Authorized credential snapshot for this request.
            base_url:        API base URL (overridable for tests / proxies).
            timeout_seconds: Per-request timeout.
            http_client:     Optional pre-configured httpx client (for testing).
        """
        self._credentials = credentials
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._http_client = http_client
        self._owns_client = False

    async def __aenter__(self) -> GoogleFitClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self

    async def __aexit__(self, *args) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
            self._owns_client = False

    @property
    def credentials(self) -> OAuthCredentials:
        return self._credentials

    # ------------------------------------------------------------------
    # FitnessProvider interface
    # ------------------------------------------------------------------

    async def fetch_points(
        self, data_source_id: str, window: TimeWindow
    ) -> list[RawPoint]:
        """Fetch a data source's dataset for ``window`` (nanosecond range).

        Args:
            data_source_id: Google Fit data stream id.
            window:         Half-open window to fetch.

        Returns:
            Parsed points, in provider order.
        """
        url = (
            f"{self._base_url}/users/me/dataSources/{quote(data_source_id, safe='')}"
            f"/datasets/{window.dataset_id}"
        )
        points: list[RawPoint] = []
        async for page in self._pages(url, params={}):
            points.extend(self.parse_dataset(page))
        logger.debug("Fetched %d points from %s", len(points), data_source_id)
        return points

    async def fetch_sessions(
        self, window: TimeWindow, activity_type: int = SLEEP_ACTIVITY_TYPE
    ) -> list[RawPoint]:
        """Fetch sessions overlapping ``window`` and keep one activity type.

        Args:
            window:        Half-open window, sent as ISO-8601 strings.
            activity_type: Google Fit activity type to keep (72 = sleep).

        Returns:
            One value-less point per matching session.
        """
        url = f"{self._base_url}/users/me/sessions"
        params = {"startTime": window.start_iso, "endTime": window.end_iso}
        sessions: list[RawPoint] = []
        async for page in self._pages(url, params=params):
            sessions.extend(self.parse_sessions(page, activity_type))
        logger.debug("Fetched %d sessions of type %d", len(sessions), activity_type)
        return sessions

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    @classmethod
    def parse_dataset(cls, body: dict) -> list[RawPoint]:
        """Convert a dataset response body into ``RawPoint``s.

        Args:
            body: Decoded JSON response.

        Returns:
            Parsed points.  Points with unusable timestamps are skipped.
        """
        raw_points = body.get("point")
        if not isinstance(raw_points, list):
            return []

        points: list[RawPoint] = []
        for raw in raw_points:
            if not isinstance(raw, dict):
                logger.warning("Skipping non-object point: %r", raw)
                continue
            start = cls._timestamp(raw.get("startTimeNanos"), from_nanos)
            if start is None:
                logger.warning("Skipping point with unusable startTimeNanos: %r", raw)
                continue
            end = None
            if raw.get("endTimeNanos") is not None:
                end = cls._timestamp(raw.get("endTimeNanos"), from_nanos)
                if end is None:
                    logger.warning("Skipping point with unusable endTimeNanos: %r", raw)
                    continue
            points.append(
                RawPoint(start=start, end=end, values=cls._parse_values(raw.get("value")))
            )
        return points

    @classmethod
    def parse_sessions(cls, body: dict, activity_type: int) -> list[RawPoint]:
        """Convert a sessions response body into value-less ``RawPoint``s."""
        raw_sessions = body.get("session")
        if not isinstance(raw_sessions, list):
            return []

        sessions: list[RawPoint] = []
        for raw in raw_sessions:
            if not isinstance(raw, dict):
                continue
            if cls._safe_int(raw.get("activityType")) != activity_type:
                continue
            start = cls._timestamp(raw.get("startTimeMillis"), from_millis)
            if start is None:
                logger.warning("Skipping session with unusable startTimeMillis: %r", raw.get("id"))
                continue
            end = None
            if raw.get("endTimeMillis") is not None:
                end = cls._timestamp(raw.get("endTimeMillis"), from_millis)
                if end is None:
                    logger.warning("Skipping session with unusable endTimeMillis: %r", raw.get("id"))
                    continue
            sessions.append(RawPoint(start=start, end=end))
        return sessions

    @classmethod
    def _timestamp(cls, value: object, convert: Callable[[int], datetime]) -> datetime | None:
        """Convert an epoch field with ``convert``, or None if it is out of range."""
        epoch = cls._safe_int(value)
        if epoch is None:
            return None
        try:
            return convert(epoch)
        except (OverflowError, ValueError):
            return None

    @classmethod
    def _parse_values(cls, raw_values: Any) -> tuple[PointValue, ...]:
        if not isinstance(raw_values, list):
            return ()
        values: list[PointValue] = []
        for raw in raw_values:
            if not isinstance(raw, dict):
                values.append(PointValue())
                continue
            values.append(
                PointValue(
                    int_val=cls._safe_int(raw.get("intVal")),
                    fp_val=cls._safe_float(raw.get("fpVal")),
                )
            )
        return tuple(values)

    @staticmethod
    def _safe_int(value: object) -> int | None:
        """Safely coerce a value to int, returning None on failure."""
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError, OverflowError):
            return None

    @staticmethod
    def _safe_float(value: object) -> float | None:
        """Safely coerce a value to float, returning None on failure."""
        if value is None or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError, OverflowError):
            return None

    # ------------------------------------------------------------------
    # Private HTTP helpers
    # ------------------------------------------------------------------

    async def _pages(self, url: str, params: dict[str, str]):
        """Yield each response page, following ``nextPageToken``."""
        page_params = dict(params)
        for _ in range(_MAX_PAGES):
            body = await self._get(url, page_params)
            yield body
            token = body.get("nextPageToken")
            if not token:
                return
            page_params = {**params, "pageToken": token}
        logger.warning("Stopped paging %s after %d pages", url, _MAX_PAGES)

    async def _get(self, url: str, params: dict[str, str]) -> dict:
        """Make an authenticated GET request to the Google Fit API.

        Returns:
            Decoded JSON object.

        Raises:
            ProviderUnavailable: On expired credentials, transport errors or
                non-2xx responses.
            MalformedResponse:   If the body is not a JSON object.
        """
        if self._credentials.is_expired():
            raise ProviderUnavailable("access token expired")

        headers = self._credentials.authorization_header()
        try:
            if self._http_client:
                response = await self._http_client.get(url, params=params, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, params=params, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise ProviderUnavailable(f"provider returned HTTP {status}") from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(f"provider request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedResponse("provider response is not valid JSON") from exc
        if not isinstance(body, dict):
            raise MalformedResponse(
                f"expected a JSON object, got {type(body).__name__}"
            )
        return body
