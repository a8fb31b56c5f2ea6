"""Exception hierarchy for the dashboard aggregation core.

Reducers never let these escape: they are trapped into a tagged
``Failure`` result.  The aggregator, the store and the pipeline raise them
to the caller.
"""

from __future__ import annotations


class DashboardError(Exception):
    """Base class for every error raised by the aggregation core."""


class ProviderUnavailable(DashboardError):
    """Network or authorization failure talking to the time-series provider."""


class NoData(DashboardError):
    """The provider responded but the window holds no usable points."""


class MalformedResponse(DashboardError):
    """The provider returned a body of an unexpected shape."""


class PersistenceFailure(DashboardError):
    """The snapshot store could not write the snapshot."""


class AggregationError(DashboardError):
    """A metric failure aborted the aggregation pass.

    Attributes:
        metric: Name of the metric that failed (e.g. ``heart_rate``).
        reason: The underlying failure reason reported by the reducer.
    """

    def __init__(self, metric: str, reason: str) -> None:
        self.metric = metric
        self.reason = reason
        super().__init__(f"{metric}: {reason}")


class AggregationTimeout(AggregationError):
    """The reducer fan-out did not complete within the configured timeout."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__("dashboard", f"timed out after {timeout_seconds:g}s")
