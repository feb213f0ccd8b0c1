"""Cadence-group polling for one device.

Each cadence group (fast, slow) keeps its own timer: the next tick of a
group is due one interval after its previous tick.  A single worker thread
per device sleeps until the earliest due time and then runs one refresh for
every group that is due, so refreshes of one device never overlap.

The refresh callback returns ``None`` when it could not run because another
refresh of the same device (a caller-triggered one) is still outstanding.
Such a tick is dropped, not queued: the group simply waits for its next
interval.

Burst mode divides the fast interval while at least one caller holds a
burst request.  Interval changes wake the worker, which recomputes the due
time from the group's last tick, so leaving burst mode neither loses the
pending tick nor fetches twice.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from scopesync.devices.catalog import Cadence

logger = logging.getLogger(__name__)

POLLED_CADENCES = (Cadence.FAST, Cadence.SLOW)


@dataclass
class _CadenceGroup:
    cadence: Cadence
    interval_s: float
    last_tick: float | None = None
    ticks: int = 0


class PollingScheduler:
    """Periodic refresh driver for a single device session.

    Usage::

        scheduler = PollingScheduler(session.refresh, fast_interval_s=1.0, slow_interval_s=10.0)
        scheduler.start()
        scheduler.set_burst_mode(True)   # exposure started
        scheduler.set_burst_mode(False)  # exposure finished
        scheduler.stop()
    """

    def __init__(
        self,
        refresh: Callable[[tuple[Cadence, ...]], Any],
        fast_interval_s: float,
        slow_interval_s: float,
        burst_divisor: float = 2.0,
        name: str = "device",
        clock: Callable[[], float] = time.monotonic,
        join_timeout_s: float | None = 5.0,
    ) -> None:
        if fast_interval_s <= 0 or slow_interval_s <= 0:
            raise ValueError("poll intervals must be positive")
        if burst_divisor < 1:
            raise ValueError("burst_divisor must be at least 1")
        self._refresh = refresh
        self._groups = {
            Cadence.FAST: _CadenceGroup(Cadence.FAST, fast_interval_s),
            Cadence.SLOW: _CadenceGroup(Cadence.SLOW, slow_interval_s),
        }
        self.burst_divisor = burst_divisor
        self.name = name
        self._clock = clock
        self._join_timeout_s = join_timeout_s

        self._burst_requests = 0
        self._state_lock = threading.Lock()
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

        self.skipped_ticks = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    @property
    def burst_active(self) -> bool:
        with self._state_lock:
            return self._burst_requests > 0

    def interval_for(self, cadence: Cadence) -> float:
        group = self._groups[cadence]
        if cadence == Cadence.FAST and self.burst_active:
            return group.interval_s / self.burst_divisor
        return group.interval_s

    def ticks(self, cadence: Cadence) -> int:
        return self._groups[cadence].ticks

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        now = self._clock()
        for group in self._groups.values():
            group.last_tick = now
        self._thread = threading.Thread(target=self._poll_loop, daemon=True, name=f"poll-{self.name}")
        self._thread.start()
        logger.info(
            "Polling started for %s (fast %.2fs, slow %.2fs)",
            self.name,
            self.interval_for(Cadence.FAST),
            self.interval_for(Cadence.SLOW),
        )

    def stop(self) -> None:
        """Stop polling; no tick starts after this returns."""
        if self._thread is None:
            return
        self._stop.set()
        self._wake.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=self._join_timeout_s)
            if self._thread.is_alive():
                logger.warning("Polling thread for %s still finishing a refresh; its result will be dropped", self.name)
        self._thread = None
        logger.info("Polling stopped for %s", self.name)

    def set_burst_mode(self, active: bool) -> None:
        """Add (``True``) or release (``False``) one burst request."""
        with self._state_lock:
            before = self._burst_requests > 0
            if active:
                self._burst_requests += 1
            elif self._burst_requests > 0:
                self._burst_requests -= 1
            after = self._burst_requests > 0
        if before != after:
            logger.info(
                "Burst mode %s for %s (fast interval %.2fs)",
                "on" if after else "off",
                self.name,
                self.interval_for(Cadence.FAST),
            )
            self._wake.set()

    # ------------------------------------------------------------------
    # Internal poll loop
    # ------------------------------------------------------------------

    def _due_times(self) -> dict[Cadence, float]:
        due = {}
        for cadence, group in self._groups.items():
            last = group.last_tick if group.last_tick is not None else self._clock()
            due[cadence] = last + self.interval_for(cadence)
        return due

    def _poll_loop(self) -> None:
        while not self._stop.is_set():
            self._wake.clear()
            due = self._due_times()
            now = self._clock()
            ready = tuple(cadence for cadence in POLLED_CADENCES if now >= due[cadence])
            if not ready:
                self._wake.wait(min(due.values()) - now)
                continue
            for cadence in ready:
                self._groups[cadence].last_tick = now
            try:
                self._tick(ready)
            except Exception:
                logger.error("Refresh for %s failed", self.name, exc_info=True)

    def _tick(self, cadences: tuple[Cadence, ...]) -> bool:
        """Run one refresh for *cadences*; ``False`` if it was skipped."""
        if self._stop.is_set():
            return False
        result = self._refresh(cadences)
        if result is None:
            self.skipped_ticks += 1
            logger.debug(
                "Skipped %s tick for %s: refresh still outstanding",
                "/".join(c.value for c in cadences),
                self.name,
            )
            return False
        for cadence in cadences:
            self._groups[cadence].ticks += 1
        return True
