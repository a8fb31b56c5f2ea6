"""Tests for window resolution and timebase conversion."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pulsedash.fitness.window import (
    TimeWindow,
    from_millis,
    from_nanos,
    resolve,
    to_millis,
    to_nanos,
)
from pulsedash.fitness.tests.conftest import NOW


class TestResolve:
    def test_window_ends_at_now(self) -> None:
        window = resolve(NOW, timedelta(hours=24))
        assert window.end == NOW
        assert window.start == NOW - timedelta(hours=24)

    def test_week_lookback(self) -> None:
        window = resolve(NOW, timedelta(days=7))
        assert window.duration == timedelta(days=7)

    def test_naive_now_treated_as_utc(self) -> None:
        naive = datetime(2026, 2, 23, 12, 0, 0)
        window = resolve(naive, timedelta(hours=1))
        assert window.end == NOW
        assert window.end.tzinfo is not None

    def test_aware_now_converted_to_utc(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        window = resolve(datetime(2026, 2, 23, 14, 0, tzinfo=plus_two), timedelta(hours=1))
        assert window.end == NOW
        assert window.end.utcoffset() == timedelta(0)

    @pytest.mark.parametrize("lookback", [timedelta(0), timedelta(hours=-1)])
    def test_non_positive_lookback_rejected(self, lookback: timedelta) -> None:
        with pytest.raises(ValueError):
            resolve(NOW, lookback)


class TestTimeWindow:
    def test_start_must_precede_end(self) -> None:
        with pytest.raises(ValueError):
            TimeWindow(start=NOW, end=NOW)
        with pytest.raises(ValueError):
            TimeWindow(start=NOW, end=NOW - timedelta(seconds=1))

    def test_half_open(self) -> None:
        window = TimeWindow(start=NOW - timedelta(hours=1), end=NOW)
        assert window.contains(NOW - timedelta(hours=1))
        assert window.contains(NOW - timedelta(microseconds=1))
        assert not window.contains(NOW)

    def test_millis_and_nanos(self) -> None:
        window = TimeWindow(start=NOW - timedelta(days=1), end=NOW)
        assert window.end_millis == 1771848000000
        assert window.end_nanos == 1771848000000 * 1_000_000
        assert window.end_millis - window.start_millis == 86_400_000

    def test_dataset_id_uses_nanos(self) -> None:
        window = TimeWindow(start=NOW - timedelta(days=1), end=NOW)
        assert window.dataset_id == f"{window.start_nanos}-{window.end_nanos}"
        assert window.dataset_id == "1771761600000000000-1771848000000000000"

    def test_iso_strings(self) -> None:
        window = TimeWindow(start=NOW - timedelta(hours=1), end=NOW)
        assert window.end_iso == "2026-02-23T12:00:00.000Z"
        assert window.start_iso == "2026-02-23T11:00:00.000Z"


class TestTimebaseConversion:
    def test_millis_roundtrip(self) -> None:
        assert from_millis(to_millis(NOW)) == NOW

    def test_nanos_roundtrip(self) -> None:
        assert from_nanos(to_nanos(NOW)) == NOW

    def test_nanos_truncated_to_millisecond_precision(self) -> None:
        instant = NOW + timedelta(microseconds=1500)
        assert to_nanos(instant) == to_millis(NOW) * 1_000_000 + 1_000_000

    def test_from_nanos_drops_sub_microsecond_digits(self) -> None:
        assert from_nanos(to_nanos(NOW) + 999) == NOW
