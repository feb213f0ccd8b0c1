"""Tests for PollingScheduler: cadence groups, burst mode and skip semantics."""

import threading
import time
from unittest.mock import MagicMock

import pytest

from scopesync.devices.catalog import Cadence
from scopesync.sync.scheduler import PollingScheduler
from tests.utils import FakeClock


class _Recorder:
    """Refresh callback that records when and for which groups it ran."""

    def __init__(self, result="ok"):
        self.calls = []
        self.result = result
        self._lock = threading.Lock()

    def __call__(self, cadences):
        with self._lock:
            self.calls.append((time.monotonic(), cadences))
        return self.result

    def count(self, cadence=None):
        with self._lock:
            return sum(1 for _, cadences in self.calls if cadence is None or cadence in cadences)

    def times(self):
        with self._lock:
            return [t for t, _ in self.calls]


# ------------------------------------------------------------------
# Thread lifecycle
# ------------------------------------------------------------------


class TestSchedulerLifecycle:
    def test_start_stop(self):
        scheduler = PollingScheduler(_Recorder(), 0.05, 0.5)
        scheduler.start()
        assert scheduler.running
        scheduler.stop()
        assert not scheduler.running

    def test_start_is_idempotent(self):
        scheduler = PollingScheduler(_Recorder(), 0.05, 0.5)
        scheduler.start()
        thread = scheduler._thread
        scheduler.start()
        assert scheduler._thread is thread
        scheduler.stop()

    def test_stop_without_start_is_safe(self):
        PollingScheduler(_Recorder(), 0.05, 0.5).stop()

    def test_no_ticks_after_stop(self):
        recorder = _Recorder()
        scheduler = PollingScheduler(recorder, 0.02, 0.5)
        scheduler.start()
        time.sleep(0.1)
        scheduler.stop()
        after_stop = recorder.count()
        time.sleep(0.1)
        assert recorder.count() == after_stop

    def test_stop_from_refresh_callback(self):
        holder = {}

        def refresh(cadences):
            holder["scheduler"].stop()
            return "ok"

        scheduler = PollingScheduler(refresh, 0.02, 0.5)
        holder["scheduler"] = scheduler
        scheduler.start()
        time.sleep(0.1)
        assert not scheduler.running

    def test_invalid_intervals(self):
        with pytest.raises(ValueError):
            PollingScheduler(_Recorder(), 0, 1.0)
        with pytest.raises(ValueError):
            PollingScheduler(_Recorder(), 1.0, 1.0, burst_divisor=0.5)


# ------------------------------------------------------------------
# Cadence groups
# ------------------------------------------------------------------


class TestCadenceGroups:
    def test_fast_group_ticks_more_often(self):
        recorder = _Recorder()
        scheduler = PollingScheduler(recorder, 0.02, 0.15)
        scheduler.start()
        time.sleep(0.5)
        scheduler.stop()
        assert recorder.count(Cadence.SLOW) >= 1
        assert recorder.count(Cadence.FAST) > recorder.count(Cadence.SLOW) * 2

    def test_first_tick_waits_one_interval(self):
        recorder = _Recorder()
        scheduler = PollingScheduler(recorder, 0.2, 1.0)
        scheduler.start()
        time.sleep(0.05)
        scheduler.stop()
        assert recorder.count() == 0

    def test_refresh_errors_do_not_stop_polling(self):
        refresh = MagicMock(side_effect=[RuntimeError("boom")] + ["ok"] * 100)
        scheduler = PollingScheduler(refresh, 0.02, 1.0)
        scheduler.start()
        time.sleep(0.15)
        scheduler.stop()
        assert refresh.call_count >= 2


# ------------------------------------------------------------------
# Skip semantics
# ------------------------------------------------------------------


class TestSkippedTicks:
    def test_busy_refresh_is_skipped_not_queued(self):
        refresh = MagicMock(return_value=None)
        scheduler = PollingScheduler(refresh, 1.0, 10.0)
        assert scheduler._tick((Cadence.FAST,)) is False
        assert scheduler.skipped_ticks == 1
        assert scheduler.ticks(Cadence.FAST) == 0

    def test_completed_refresh_counts_tick(self):
        scheduler = PollingScheduler(MagicMock(return_value="diff"), 1.0, 10.0)
        assert scheduler._tick((Cadence.FAST, Cadence.SLOW)) is True
        assert scheduler.ticks(Cadence.FAST) == 1
        assert scheduler.ticks(Cadence.SLOW) == 1

    def test_skipped_ticks_wait_for_next_interval(self):
        recorder = _Recorder(result=None)
        scheduler = PollingScheduler(recorder, 0.05, 10.0)
        scheduler.start()
        time.sleep(0.28)
        scheduler.stop()
        assert 3 <= recorder.count() <= 6
        assert scheduler.skipped_ticks == recorder.count()


# ------------------------------------------------------------------
# Burst mode
# ------------------------------------------------------------------


class TestBurstMode:
    def test_burst_divides_fast_interval_only(self):
        scheduler = PollingScheduler(_Recorder(), 1.0, 10.0, burst_divisor=2.0)
        scheduler.set_burst_mode(True)
        assert scheduler.interval_for(Cadence.FAST) == 0.5
        assert scheduler.interval_for(Cadence.SLOW) == 10.0
        scheduler.set_burst_mode(False)
        assert scheduler.interval_for(Cadence.FAST) == 1.0

    def test_burst_requests_are_counted(self):
        scheduler = PollingScheduler(_Recorder(), 1.0, 10.0)
        scheduler.set_burst_mode(True)
        scheduler.set_burst_mode(True)
        scheduler.set_burst_mode(False)
        assert scheduler.burst_active
        scheduler.set_burst_mode(False)
        assert not scheduler.burst_active
        scheduler.set_burst_mode(False)
        scheduler.set_burst_mode(True)
        assert scheduler.burst_active

    def test_due_time_follows_last_tick(self):
        clock = FakeClock()
        scheduler = PollingScheduler(_Recorder(), 1.0, 10.0, clock=clock)
        scheduler._groups[Cadence.FAST].last_tick = clock.now
        assert scheduler._due_times()[Cadence.FAST] == clock.now + 1.0
        scheduler.set_burst_mode(True)
        assert scheduler._due_times()[Cadence.FAST] == clock.now + 0.5
        clock.advance(0.3)
        scheduler.set_burst_mode(False)
        assert scheduler._due_times()[Cadence.FAST] == pytest.approx(clock.now - 0.3 + 1.0)

    def test_burst_speeds_up_polling(self):
        normal = _Recorder()
        scheduler = PollingScheduler(normal, 0.1, 10.0)
        scheduler.start()
        time.sleep(0.55)
        scheduler.stop()

        burst = _Recorder()
        scheduler = PollingScheduler(burst, 0.1, 10.0, burst_divisor=5.0)
        scheduler.set_burst_mode(True)
        scheduler.start()
        time.sleep(0.55)
        scheduler.stop()

        assert burst.count(Cadence.FAST) > normal.count(Cadence.FAST) * 2

    def test_leaving_burst_does_not_double_fetch(self):
        recorder = _Recorder()
        scheduler = PollingScheduler(recorder, 0.1, 10.0, burst_divisor=2.0)
        scheduler.start()
        scheduler.set_burst_mode(True)
        time.sleep(0.27)
        scheduler.set_burst_mode(False)
        time.sleep(0.25)
        scheduler.stop()

        times = recorder.times()
        assert len(times) >= 4
        gaps = [b - a for a, b in zip(times, times[1:])]
        assert min(gaps) >= 0.04
