"""Tests for the sliding rate window and engine counters."""

from conftest import FakeClock
from multimind.queue import RequestQueue
from multimind.stats import RateWindow, RequestStats


class TestRateWindow:
    """Sliding window of attempt timestamps."""

    def test_initial_window(self) -> None:
        window = RateWindow(limit=3, window=60.0, clock=FakeClock())
        assert window.count == 0
        assert window.remaining == 3
        assert window.has_capacity() is True
        assert window.time_until_reset() == 0.0

    def test_fills_up(self) -> None:
        window = RateWindow(limit=2, window=60.0, clock=FakeClock())
        window.record()
        window.record()

        assert window.has_capacity() is False
        assert window.remaining == 0

    def test_entries_expire(self) -> None:
        clock = FakeClock()
        window = RateWindow(limit=2, window=60.0, clock=clock)
        window.record()
        clock.advance(30)
        window.record()

        clock.advance(29)
        assert window.count == 2

        clock.advance(1)
        assert window.count == 1
        assert window.has_capacity() is True

    def test_time_until_reset_tracks_oldest(self) -> None:
        clock = FakeClock()
        window = RateWindow(limit=5, window=60.0, clock=clock)
        window.record()
        clock.advance(15)
        window.record()

        assert window.time_until_reset() == 45.0


class TestRequestStats:
    def test_record_attempt(self) -> None:
        clock = FakeClock()
        stats = RequestStats(window=RateWindow(clock=clock), queue=RequestQueue())

        stats.record_attempt()
        stats.record_attempt()

        assert stats.request_count == 2
        assert stats.window.count == 2

    def test_uptime(self) -> None:
        stats = RequestStats(window=RateWindow(), queue=RequestQueue())
        assert stats.uptime(500.0) == 0.0

        stats.start_time = 100.0
        assert stats.uptime(130.0) == 30.0
