"""Per-device record of which catalog names actually work.

Each name starts ``UNKNOWN``.  A success marks it ``SUPPORTED`` and clears
its failure counter; consecutive failures count up and demote it to
``UNSUPPORTED`` once the threshold is reached.  Demoted names are not
attempted again until ``reset()`` (a re-probe on reconnect).

Explicit capability flags reported by the device (``canpark`` and friends)
pre-seed the names they gate via ``seed()``.  A name seeded as unsupported
is pinned: it is never probed and outcomes do not change it.

Write support is tracked separately.  A "can set" flag that is false, or a
write the device rejects as not implemented, only blocks further writes via
``block_write()``; the property stays readable and keeps its read state.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class Support(str, Enum):
    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


@dataclass
class _Entry:
    state: Support = Support.UNKNOWN
    failures: int = 0
    pinned: bool = False


class CapabilityRegistry:
    def __init__(self, threshold: int = 3, listener: Callable[[str, bool], None] | None = None) -> None:
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        self.threshold = threshold
        self._listener = listener
        self._entries: dict[str, _Entry] = {}
        self._write_blocked: set[str] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_supported(self, name: str) -> Support:
        with self._lock:
            entry = self._entries.get(name)
            return entry.state if entry else Support.UNKNOWN

    def should_attempt(self, name: str) -> bool:
        return self.is_supported(name) != Support.UNSUPPORTED

    def supported_names(self) -> set[str]:
        with self._lock:
            return {name for name, e in self._entries.items() if e.state == Support.SUPPORTED}

    def unsupported_names(self) -> set[str]:
        with self._lock:
            return {name for name, e in self._entries.items() if e.state == Support.UNSUPPORTED}

    def can_write(self, name: str) -> bool:
        with self._lock:
            return name not in self._write_blocked

    def write_blocked_names(self) -> set[str]:
        with self._lock:
            return set(self._write_blocked)

    def failure_count(self, name: str) -> int:
        with self._lock:
            entry = self._entries.get(name)
            return entry.failures if entry else 0

    def snapshot(self) -> dict[str, Support]:
        with self._lock:
            return {name: e.state for name, e in self._entries.items()}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def record_outcome(self, name: str, success: bool) -> Support:
        """Feed one call outcome for *name* and return its resulting state."""
        with self._lock:
            entry = self._entries.setdefault(name, _Entry())
            if entry.pinned and entry.state == Support.UNSUPPORTED:
                return entry.state
            previous = entry.state
            if success:
                entry.failures = 0
                entry.state = Support.SUPPORTED
            else:
                entry.failures += 1
                if entry.failures >= self.threshold:
                    entry.state = Support.UNSUPPORTED
            state = entry.state
            failures = entry.failures

        if state == Support.UNSUPPORTED and previous != Support.UNSUPPORTED:
            logger.info("Demoting %r after %d consecutive failures", name, failures)
        self._notify(name, previous, state)
        return state

    def record_success(self, name: str) -> Support:
        return self.record_outcome(name, True)

    def record_failure(self, name: str) -> Support:
        return self.record_outcome(name, False)

    def seed(self, name: str, supported: bool) -> None:
        """Pre-seed *name* from an explicit capability flag."""
        new_state = Support.SUPPORTED if supported else Support.UNSUPPORTED
        with self._lock:
            entry = self._entries.setdefault(name, _Entry())
            previous = entry.state
            entry.state = new_state
            entry.failures = 0
            entry.pinned = not supported
        self._notify(name, previous, new_state)

    def mark_unsupported(self, name: str) -> None:
        """Demote immediately; used when a command is reported "not implemented"."""
        with self._lock:
            entry = self._entries.setdefault(name, _Entry())
            previous = entry.state
            entry.state = Support.UNSUPPORTED
            entry.failures = max(entry.failures, self.threshold)
        self._notify(name, previous, Support.UNSUPPORTED)

    def block_write(self, name: str) -> None:
        """Refuse further writes to *name* without touching its read support."""
        with self._lock:
            if name in self._write_blocked:
                return
            self._write_blocked.add(name)
        logger.info("Writes to %r disabled", name)

    def reset(self) -> None:
        """Forget everything so every name is probed again."""
        with self._lock:
            self._entries.clear()
            self._write_blocked.clear()

    def _notify(self, name: str, previous: Support, state: Support) -> None:
        if self._listener is None or previous == state or state == Support.UNKNOWN:
            return
        try:
            self._listener(name, state == Support.SUPPORTED)
        except Exception:
            logger.error("Capability listener failed for %r", name, exc_info=True)
