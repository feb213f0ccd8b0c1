"""Change notifications published to UI and workflow subscribers.

Subscribers only observe: a callback that raises is logged and skipped,
it never interrupts synchronization or the other subscribers.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from scopesync.devices.descriptor import DeviceDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PropertyChanged:
    device: DeviceDescriptor
    name: str
    value: Any
    timestamp: float


@dataclass(frozen=True)
class CapabilityChanged:
    device: DeviceDescriptor
    name: str
    supported: bool


@dataclass(frozen=True)
class LifecycleChanged:
    device: DeviceDescriptor
    old_state: Any
    new_state: Any


@dataclass(frozen=True)
class OperationFailed:
    device: DeviceDescriptor
    name: str
    error_kind: str
    message: str = ""


Event = PropertyChanged | CapabilityChanged | LifecycleChanged | OperationFailed
EventCallback = Callable[[Event], None]


class EventEmitter:
    """Synchronous fan-out of events to registered callbacks."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[EventCallback, tuple[type, ...]]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: EventCallback, *event_types: type) -> Callable[[], None]:
        """Register *callback* for *event_types* (all events if none given).

        Returns a function that removes the subscription.
        """
        entry = (callback, tuple(event_types))
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def emit(self, event: Event) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback, event_types in subscribers:
            if event_types and not isinstance(event, event_types):
                continue
            try:
                callback(event)
            except Exception:
                logger.error("Event subscriber %r raised on %s", callback, type(event).__name__, exc_info=True)
