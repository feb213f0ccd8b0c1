"""Synchronization session for one selected device.

A ``DeviceSession`` owns everything that is per-device: lifecycle, capability
registry, state cache, mode records and the polling scheduler.  They are
created on connect and discarded together on release.

Connect sequence::

    IDLE -> CONNECTING   probe (PUT connected=true, GET connected)
         -> CONNECTED    static reads, capability seeding, mode resolution,
                         one full refresh
         -> ACTIVE       scheduler running

Release stops the scheduler before anything else happens, so no refresh
can race the teardown.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from typing import Any

from scopesync.constants import CONNECTED_PROPERTY
from scopesync.devices.catalog import Cadence, Direction, PropertyDescriptor, ValueKind, catalog_for
from scopesync.devices.descriptor import DeviceDescriptor
from scopesync.protocol.errors import (
    InvalidIntentError,
    LifecycleViolation,
    ProtocolError,
    ScopeSyncError,
    UnsupportedPropertyError,
)
from scopesync.protocol.transport import AlpacaTransport
from scopesync.settings import ScopeSyncSettings
from scopesync.sync.capabilities import CapabilityRegistry
from scopesync.sync.events import (
    CapabilityChanged,
    EventEmitter,
    LifecycleChanged,
    OperationFailed,
    PropertyChanged,
)
from scopesync.sync.lifecycle import WRITABLE_STATES, DeviceLifecycle, LifecycleState
from scopesync.sync.modes import ModeRecord, ModeResolver
from scopesync.sync.scheduler import POLLED_CADENCES, PollingScheduler
from scopesync.sync.state_cache import CacheEntry, DeviceStateCache, StateDiff

logger = logging.getLogger(__name__)

_CONNECTABLE_STATES = frozenset({LifecycleState.IDLE, LifecycleState.DISCONNECTED, LifecycleState.FAULTED})
_RELEASED_STATES = frozenset({LifecycleState.IDLE, LifecycleState.DISCONNECTED})
_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off"})


def coerce_intent(descriptor: PropertyDescriptor, intent: Any) -> Any:
    """Convert a caller value to the kind *descriptor* expects on the wire."""
    kind = descriptor.kind
    if kind == ValueKind.BOOL:
        if isinstance(intent, bool):
            return intent
        if isinstance(intent, str) and intent.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
            return intent.strip().lower() in _TRUE_STRINGS
        raise InvalidIntentError(descriptor.name, f"{intent!r} is not a boolean")

    if kind == ValueKind.NUMBER:
        if isinstance(intent, bool):
            raise InvalidIntentError(descriptor.name, f"{intent!r} is not a number")
        if isinstance(intent, str):
            text = intent.strip()
            try:
                intent = int(text)
            except ValueError:
                try:
                    intent = float(text)
                except ValueError:
                    raise InvalidIntentError(descriptor.name, f"{text!r} is not a number") from None
        if not isinstance(intent, (int, float)) or not math.isfinite(intent):
            raise InvalidIntentError(descriptor.name, f"{intent!r} is not a finite number")
        return intent

    if kind in (ValueKind.STRING, ValueKind.ENUM_STRING):
        return str(intent)

    return intent


class DeviceSession:
    def __init__(
        self,
        device: DeviceDescriptor,
        transport: AlpacaTransport,
        settings: ScopeSyncSettings | None = None,
        emitter: EventEmitter | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.device = device
        self.transport = transport
        self.settings = settings or ScopeSyncSettings()
        self.emitter = emitter or EventEmitter()
        self.catalog = catalog_for(device.device_type)
        self._clock = clock
        self._sleep = sleep

        self.lifecycle = DeviceLifecycle(str(device), listener=self._on_lifecycle)
        self.capabilities = CapabilityRegistry(self.settings.failure_threshold, listener=self._on_capability)
        self._cache: DeviceStateCache | None = None
        self._modes: ModeResolver | None = None
        self._scheduler: PollingScheduler | None = None

        self._refresh_lock = threading.RLock()
        self._consecutive_total_failures = 0

    def __repr__(self) -> str:
        return f"DeviceSession({self.device}, {self.lifecycle.state.value})"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def lifecycle_state(self) -> LifecycleState:
        return self.lifecycle.state

    @property
    def scheduler(self) -> PollingScheduler | None:
        return self._scheduler

    @property
    def cache(self) -> DeviceStateCache | None:
        return self._cache

    def connect(self) -> DeviceSession:
        """Probe the device and start synchronizing it.

        Raises:
            LifecycleViolation: the session is already connecting or connected.
            ScopeSyncError: the probe failed on every attempt; the session is ``FAULTED``.
        """
        if not self.lifecycle.transition_from(_CONNECTABLE_STATES, LifecycleState.CONNECTING):
            raise LifecycleViolation(self.lifecycle.state, "connect")

        self._discard_records()
        self._consecutive_total_failures = 0
        cache = DeviceStateCache(
            self.device,
            self.transport,
            self.catalog,
            self.capabilities,
            self.settings.consolidated_ttl_s,
            clock=self._clock,
        )
        self._cache = cache
        self._modes = ModeResolver(self.catalog, cache.value)

        try:
            self._probe()
        except ScopeSyncError as exc:
            logger.error("%s: connect failed: %s", self.device, exc)
            self._emit(OperationFailed(self.device, CONNECTED_PROPERTY, exc.kind, str(exc)))
            cache.close()
            self.lifecycle.transition(LifecycleState.FAULTED)
            raise

        self._publish(cache, cache.refresh_static())
        self._seed_capabilities(cache)
        self._modes.resolve_all()
        self.lifecycle.transition(LifecycleState.CONNECTED)

        self.refresh(*POLLED_CADENCES)

        self._scheduler = PollingScheduler(
            self._scheduled_refresh,
            self.settings.fast_poll_interval_s,
            self.settings.slow_poll_interval_s,
            burst_divisor=self.settings.burst_divisor,
            name=str(self.device),
        )
        if not self.lifecycle.transition_from(frozenset({LifecycleState.CONNECTED}), LifecycleState.ACTIVE):
            # The initial refresh already escalated to FAULTED.
            raise LifecycleViolation(self.lifecycle.state, "start polling")
        self._scheduler.start()
        return self

    def release(self) -> None:
        """Stop polling, disconnect and drop all per-device records."""
        state = self.lifecycle.state
        if state in _RELEASED_STATES:
            return
        if state == LifecycleState.CONNECTING:
            raise LifecycleViolation(state, "release")

        self._stop_scheduler()
        state = self.lifecycle.transition(LifecycleState.DISCONNECTING)
        if state == LifecycleState.FAULTED:
            logger.debug("%s: skipping disconnect call for a faulted device", self.device)
        else:
            try:
                self.transport.put(self.device, CONNECTED_PROPERTY, Connected=False)
            except ScopeSyncError as exc:
                logger.warning("%s: disconnect call failed: %s", self.device, exc)
        self._discard_records()
        self.lifecycle.transition(LifecycleState.DISCONNECTED)

    def reconnect(self) -> DeviceSession:
        if self.lifecycle.state in WRITABLE_STATES:
            self.release()
        return self.connect()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, name: str) -> Any:
        """Current value of *name*, re-read first if older than the TTL.

        Returns ``None`` for names that are unsupported or have never been read.
        Waits for a refresh of this device that is already running.
        """
        cache = self._cache
        if cache is None:
            return None
        if self.lifecycle.state in WRITABLE_STATES:
            with self._refresh_lock:
                entry = cache.get(name)
        else:
            entry = cache.peek(name)
        return entry.value if entry is not None else None

    def state(self) -> dict[str, CacheEntry]:
        cache = self._cache
        return cache.snapshot() if cache is not None else {}

    def mode(self, pair: str) -> ModeRecord:
        if self._modes is None:
            return ModeRecord(pair)
        return self._modes.get(pair)

    def refresh(self, *cadences: Cadence, blocking: bool = True) -> StateDiff | None:
        """Run one refresh cycle for *cadences* (fast and slow if omitted).

        Returns ``None`` without doing anything when *blocking* is false and
        another refresh of this device is still running.
        """
        cadences = cadences or POLLED_CADENCES
        if not self._refresh_lock.acquire(blocking=blocking):
            return None
        try:
            self.lifecycle.require("refresh")
            cache = self._cache
            names = [name for cadence in cadences for name in self.catalog.names_for(cadence)]
            diff = cache.refresh(names)
            escalate = self._account_cycle(diff)
        finally:
            self._refresh_lock.release()

        self._publish(cache, diff)
        if escalate:
            self._fault(f"{self._consecutive_total_failures} consecutive refresh cycles failed completely")
        return diff

    # ------------------------------------------------------------------
    # Writes and commands
    # ------------------------------------------------------------------

    def set_property(self, name: str, intent: Any) -> Any:
        """Write *intent* to *name* and return the value that was sent.

        Mode pairs (gain, offset, ...) translate *intent* through the current
        mode record first; a translation error means no call is made.  The
        write is always issued, even if the cache already holds that value.
        """
        name = name.lower()
        try:
            self.lifecycle.require(f"set {name}")
            descriptor = self.catalog.get(name)
            if descriptor is None or descriptor.is_command or not descriptor.direction.writable:
                raise UnsupportedPropertyError(name, "not a writable property")
            if not self.capabilities.should_attempt(name):
                raise UnsupportedPropertyError(name)
            if not self.capabilities.can_write(name):
                raise UnsupportedPropertyError(name, "read-only on this device")
            if self._modes.is_mode_pair(name):
                wire_value = self._modes.translate(name, intent)
            else:
                wire_value = coerce_intent(descriptor, intent)
            self.transport.put(self.device, name, **{descriptor.parameter_name: wire_value})
        except ScopeSyncError as exc:
            self._operation_failed(name, exc)
            raise

        logger.info("%s: set %s = %r", self.device, name, wire_value)
        self.capabilities.record_success(name)
        if self._cache is not None:
            self._cache.invalidate(name)
        return wire_value

    def invoke_command(self, name: str, **params: Any) -> Any:
        """Invoke catalog command *name* with its wire parameters.

        Parameter names are matched case-insensitively against the catalog
        (``duration`` is sent as ``Duration``).
        """
        name = name.lower()
        try:
            self.lifecycle.require(f"invoke {name}")
            descriptor = self.catalog.get(name)
            if descriptor is None or not descriptor.is_command:
                raise UnsupportedPropertyError(name, "not a command")
            if not self.capabilities.should_attempt(name):
                raise UnsupportedPropertyError(name)
            wire_params = self._command_params(descriptor, params)
            result = self.transport.put(self.device, name, **wire_params)
        except ScopeSyncError as exc:
            self._operation_failed(name, exc)
            raise

        logger.info("%s: invoked %s", self.device, name)
        self.capabilities.record_success(name)
        return result

    def request_burst_mode(self, active: bool) -> None:
        self.lifecycle.require("change burst mode")
        if self._scheduler is not None:
            self._scheduler.set_burst_mode(active)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _probe(self) -> None:
        attempts = self.settings.connect_attempts
        for attempt in range(1, attempts + 1):
            try:
                self.transport.put(self.device, CONNECTED_PROPERTY, Connected=True)
                if self.transport.get(self.device, CONNECTED_PROPERTY) is True:
                    return
                error: ScopeSyncError = ScopeSyncError(f"{self.device} did not report connected")
            except ScopeSyncError as exc:
                error = exc
            logger.warning("%s: connect attempt %d/%d failed: %s", self.device, attempt, attempts, error)
            if attempt < attempts:
                self._sleep(self.settings.connect_retry_delay_s)
        raise error

    def _seed_capabilities(self, cache: DeviceStateCache) -> None:
        for flag in self.catalog.capability_flags():
            entry = cache.peek(flag.name)
            if entry is None or not isinstance(entry.value, bool):
                continue
            for gated in flag.gates:
                descriptor = self.catalog.get(gated)
                if descriptor is not None and descriptor.direction == Direction.READ_WRITE:
                    # "can set" flags say nothing about reading
                    if not entry.value:
                        self.capabilities.block_write(gated)
                    continue
                self.capabilities.seed(gated, entry.value)
                if not entry.value:
                    cache.discard(gated)

    def _command_params(self, descriptor: PropertyDescriptor, params: dict[str, Any]) -> dict[str, Any]:
        canonical = {p.lower(): p for p in descriptor.params}
        wire_params = {canonical.get(key.lower(), key): value for key, value in params.items()}
        missing = [p for p in descriptor.params if p not in wire_params]
        if missing:
            raise InvalidIntentError(descriptor.name, f"missing parameter(s) {', '.join(missing)}")
        return wire_params

    def _scheduled_refresh(self, cadences: tuple[Cadence, ...]) -> StateDiff | None:
        try:
            return self.refresh(*cadences, blocking=False)
        except LifecycleViolation:
            return None

    def _account_cycle(self, diff: StateDiff) -> bool:
        if diff.total_failure:
            self._consecutive_total_failures += 1
            logger.warning(
                "%s: refresh cycle failed completely (%d/%d)",
                self.device,
                self._consecutive_total_failures,
                self.settings.fault_threshold,
            )
            return self._consecutive_total_failures >= self.settings.fault_threshold
        if diff.succeeded:
            self._consecutive_total_failures = 0
        return False

    def _publish(self, cache: DeviceStateCache, diff: StateDiff) -> None:
        if cache.closed or cache is not self._cache:
            return
        for name, entry in diff.changed.items():
            self._emit(PropertyChanged(self.device, name, entry.value, entry.timestamp))
        if self._modes is not None:
            self._modes.resolve_affected(diff.changed)

    def _fault(self, reason: str) -> None:
        if not self.lifecycle.transition_from(WRITABLE_STATES, LifecycleState.FAULTED):
            return
        logger.error("%s: faulted: %s", self.device, reason)
        self._stop_scheduler()

    def _stop_scheduler(self) -> None:
        scheduler = self._scheduler
        self._scheduler = None
        if scheduler is not None:
            scheduler.stop()

    def _discard_records(self) -> None:
        if self._cache is not None:
            self._cache.close()
        if self._modes is not None:
            self._modes.clear()
        self.capabilities.reset()

    def _operation_failed(self, name: str, exc: ScopeSyncError) -> None:
        logger.warning("%s: %s failed: %s", self.device, name, exc)
        if isinstance(exc, ProtocolError) and exc.not_implemented:
            descriptor = self.catalog.get(name)
            if descriptor is not None and descriptor.direction.readable:
                self.capabilities.block_write(name)
            else:
                self.capabilities.mark_unsupported(name)
        self._emit(OperationFailed(self.device, name, exc.kind, str(exc)))

    def _on_lifecycle(self, old_state: LifecycleState, new_state: LifecycleState) -> None:
        self._emit(LifecycleChanged(self.device, old_state, new_state))

    def _on_capability(self, name: str, supported: bool) -> None:
        self._emit(CapabilityChanged(self.device, name, supported))

    def _emit(self, event) -> None:
        self.emitter.emit(event)
