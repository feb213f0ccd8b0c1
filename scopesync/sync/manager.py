"""Entry point for UI and workflow collaborators.

``SyncManager`` keeps one ``DeviceSession`` per selected device, all sharing
one transport (and therefore one client identity) and one event emitter.
Devices are synchronized independently of each other.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from scopesync.devices.descriptor import DeviceDescriptor
from scopesync.protocol.errors import LifecycleViolation
from scopesync.protocol.transport import AlpacaTransport
from scopesync.settings import ScopeSyncSettings
from scopesync.sync.events import EventEmitter
from scopesync.sync.lifecycle import LifecycleState
from scopesync.sync.modes import ModeRecord
from scopesync.sync.session import DeviceSession
from scopesync.sync.state_cache import CacheEntry

logger = logging.getLogger(__name__)


class SyncManager:
    """Selects, drives and releases device sessions.

    Usage::

        manager = SyncManager(ScopeSyncSettings())
        manager.emitter.subscribe(print)
        camera = DeviceDescriptor("http://192.168.1.20:11111", "camera", 0)
        manager.select_device(camera)
        manager.set_property(camera, "gain", "High")
        manager.release_device(camera)
        manager.close()
    """

    def __init__(
        self,
        settings: ScopeSyncSettings | None = None,
        transport: AlpacaTransport | None = None,
        emitter: EventEmitter | None = None,
    ) -> None:
        self.settings = settings or ScopeSyncSettings()
        self._owns_transport = transport is None
        self.transport = transport or AlpacaTransport.from_settings(self.settings)
        self.emitter = emitter or EventEmitter()
        self._sessions: dict[DeviceDescriptor, DeviceSession] = {}
        self._lock = threading.Lock()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def sessions(self) -> dict[DeviceDescriptor, DeviceSession]:
        with self._lock:
            return dict(self._sessions)

    def session(self, device: DeviceDescriptor) -> DeviceSession:
        with self._lock:
            session = self._sessions.get(device)
        if session is None:
            raise LifecycleViolation(LifecycleState.IDLE, f"use {device} before selecting it")
        return session

    def select_device(self, device: DeviceDescriptor) -> DeviceSession:
        """Start synchronizing *device*.

        Selecting a faulted device reconnects it.  Selecting a device that is
        already selected and healthy raises ``LifecycleViolation``.
        """
        with self._lock:
            session = self._sessions.get(device)
            if session is None:
                session = DeviceSession(device, self.transport, self.settings, self.emitter)
                self._sessions[device] = session
            elif session.lifecycle_state != LifecycleState.FAULTED:
                raise LifecycleViolation(session.lifecycle_state, f"select {device} again")

        logger.info("Selecting %s", device)
        if session.lifecycle_state == LifecycleState.FAULTED:
            return session.reconnect()
        return session.connect()

    def release_device(self, device: DeviceDescriptor) -> None:
        """Stop synchronizing *device*; polling has fully stopped when this returns."""
        with self._lock:
            session = self._sessions.get(device)
        if session is None:
            return
        session.release()
        with self._lock:
            if self._sessions.get(device) is session:
                del self._sessions[device]
        logger.info("Released %s", device)

    # ------------------------------------------------------------------
    # Per-device operations
    # ------------------------------------------------------------------

    def set_property(self, device: DeviceDescriptor, name: str, intent: Any) -> Any:
        return self.session(device).set_property(name, intent)

    def invoke_command(self, device: DeviceDescriptor, name: str, **params: Any) -> Any:
        return self.session(device).invoke_command(name, **params)

    def request_burst_mode(self, device: DeviceDescriptor, active: bool) -> None:
        self.session(device).request_burst_mode(active)

    def get_state(self, device: DeviceDescriptor) -> dict[str, CacheEntry]:
        return self.session(device).state()

    def get(self, device: DeviceDescriptor, name: str) -> Any:
        return self.session(device).get(name)

    def mode(self, device: DeviceDescriptor, pair: str) -> ModeRecord:
        return self.session(device).mode(pair)

    def close(self) -> None:
        """Release every device and close the transport if this manager created it."""
        for device in list(self.sessions()):
            try:
                self.release_device(device)
            except Exception:
                logger.error("Failed to release %s", device, exc_info=True)
        if self._owns_transport:
            self.transport.close()
