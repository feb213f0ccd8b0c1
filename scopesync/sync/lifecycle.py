"""Device lifecycle state machine.

The lifecycle is the only notion of "connected" in the package; nothing
else keeps a separate connectivity flag.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum

from scopesync.protocol.errors import LifecycleViolation

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ACTIVE = "active"
    DISCONNECTING = "disconnecting"
    DISCONNECTED = "disconnected"
    FAULTED = "faulted"


_TRANSITIONS: dict[LifecycleState, frozenset[LifecycleState]] = {
    LifecycleState.IDLE: frozenset({LifecycleState.CONNECTING}),
    LifecycleState.CONNECTING: frozenset({LifecycleState.CONNECTED, LifecycleState.FAULTED}),
    LifecycleState.CONNECTED: frozenset(
        {LifecycleState.ACTIVE, LifecycleState.DISCONNECTING, LifecycleState.FAULTED}
    ),
    LifecycleState.ACTIVE: frozenset({LifecycleState.DISCONNECTING, LifecycleState.FAULTED}),
    LifecycleState.DISCONNECTING: frozenset({LifecycleState.DISCONNECTED, LifecycleState.FAULTED}),
    LifecycleState.DISCONNECTED: frozenset({LifecycleState.CONNECTING}),
    LifecycleState.FAULTED: frozenset({LifecycleState.CONNECTING, LifecycleState.DISCONNECTING}),
}

WRITABLE_STATES = frozenset({LifecycleState.CONNECTED, LifecycleState.ACTIVE})


class DeviceLifecycle:
    """Current lifecycle state of one device, with checked transitions."""

    def __init__(
        self,
        name: str = "device",
        listener: Callable[[LifecycleState, LifecycleState], None] | None = None,
    ) -> None:
        self.name = name
        self._state = LifecycleState.IDLE
        self._listener = listener
        self._lock = threading.Lock()

    @property
    def state(self) -> LifecycleState:
        with self._lock:
            return self._state

    @property
    def writable(self) -> bool:
        return self.state in WRITABLE_STATES

    def can_transition(self, new_state: LifecycleState) -> bool:
        return new_state in _TRANSITIONS[self.state]

    def transition(self, new_state: LifecycleState) -> LifecycleState:
        """Move to *new_state* and return the previous state.

        Raises:
            LifecycleViolation: the transition is not allowed from the current state.
        """
        with self._lock:
            old_state = self._state
            if new_state not in _TRANSITIONS[old_state]:
                raise LifecycleViolation(old_state, f"move to {new_state.value}")
            self._state = new_state
        self._announce(old_state, new_state)
        return old_state

    def transition_from(self, allowed: frozenset[LifecycleState], new_state: LifecycleState) -> bool:
        """Transition only if the current state is in *allowed*; report whether it happened."""
        with self._lock:
            old_state = self._state
            if old_state not in allowed or new_state not in _TRANSITIONS[old_state]:
                return False
            self._state = new_state
        self._announce(old_state, new_state)
        return True

    def _announce(self, old_state: LifecycleState, new_state: LifecycleState) -> None:
        level = logging.WARNING if new_state == LifecycleState.FAULTED else logging.INFO
        logger.log(level, "%s: %s -> %s", self.name, old_state.value, new_state.value)
        if self._listener is None:
            return
        try:
            self._listener(old_state, new_state)
        except Exception:
            logger.error("Lifecycle listener failed for %s", self.name, exc_info=True)

    def require(self, operation: str, allowed: frozenset[LifecycleState] = WRITABLE_STATES) -> None:
        state = self.state
        if state not in allowed:
            raise LifecycleViolation(state, operation)
