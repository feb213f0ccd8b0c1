"""Last-known device state, refreshed via the consolidated endpoint or per property.

One ``DeviceStateCache`` belongs to one device session.  ``refresh()`` is the
only place polling results enter the cache:

* If the consolidated endpoint has not failed yet and the last consolidated
  fetch is older than the TTL, one ``devicestate`` call is made.  A non-empty
  answer is merged wholesale; a failure or empty answer switches the session
  to per-property fetching for good.
* Every requested name that is still missing or older than the TTL after
  that (the consolidated answer may be partial) is fetched on its own.

Per-property outcomes feed the ``CapabilityRegistry``.  A cycle in which
every call failed at the transport level is a connectivity problem rather
than evidence about individual properties, so it is reported through
``StateDiff.total_failure`` and does not count against the names.  This
holds for cycles that attempt a single name too (a safety monitor polling
only ``issafe``): repeated transport failures there escalate the session to
``FAULTED`` instead of demoting the name.

Demoted names are removed from the cache: an absent entry means
"unsupported", an entry with an old timestamp means "stale".
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from scopesync.constants import CONSOLIDATED_ENDPOINT
from scopesync.devices.catalog import Cadence, DeviceCatalog, PropertyDescriptor
from scopesync.devices.descriptor import DeviceDescriptor
from scopesync.protocol.errors import ScopeSyncError, TransportError
from scopesync.protocol.transport import AlpacaTransport
from scopesync.sync.capabilities import CapabilityRegistry, Support

logger = logging.getLogger(__name__)

_IGNORED_CONSOLIDATED_NAMES = frozenset({"timestamp"})


class Source(str, Enum):
    CONSOLIDATED = "consolidated"
    INDIVIDUAL = "individual"


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    timestamp: float
    source: Source


@dataclass
class StateDiff:
    """Outcome of one refresh cycle.

    ``changed`` only holds entries whose value differs from what was cached
    before the cycle (or that were not cached at all).  Failed names are
    listed in ``failed`` and never appear in ``changed``.
    """

    changed: dict[str, CacheEntry] = field(default_factory=dict)
    failed: dict[str, ScopeSyncError] = field(default_factory=dict)
    attempted: int = 0
    succeeded: int = 0
    transport_failures: int = 0
    consolidated: bool = False

    @property
    def total_failure(self) -> bool:
        """Every attempted call failed at the transport level, however few there were."""
        return self.attempted > 0 and self.succeeded == 0 and self.transport_failures == self.attempted


def parse_consolidated(value: Any) -> dict[str, Any]:
    """Normalise a ``devicestate`` value into ``{lowercase name: value}``."""
    if isinstance(value, dict):
        items = value.items()
    elif isinstance(value, list):
        items = []
        for item in value:
            if not isinstance(item, dict) or "Name" not in item:
                raise ValueError(f"Unexpected devicestate item: {item!r}")
            items.append((item["Name"], item.get("Value")))
    else:
        raise ValueError(f"Unexpected devicestate value: {type(value).__name__}")

    result = {}
    for name, item_value in items:
        key = str(name).lower()
        if key in _IGNORED_CONSOLIDATED_NAMES:
            continue
        result[key] = item_value
    return result


class DeviceStateCache:
    """Per-device cache of property values with TTL-driven refresh."""

    def __init__(
        self,
        device: DeviceDescriptor,
        transport: AlpacaTransport,
        catalog: DeviceCatalog,
        capabilities: CapabilityRegistry,
        ttl_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.device = device
        self._transport = transport
        self._catalog = catalog
        self._capabilities = capabilities
        self.ttl_s = ttl_s
        self._clock = clock

        self._entries: dict[str, CacheEntry] = {}
        self._stale: set[str] = set()
        self._lock = threading.Lock()
        self._closed = False

        self.consolidated_supported: bool | None = None
        self.last_consolidated_fetch: float | None = None

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> dict[str, CacheEntry]:
        with self._lock:
            return dict(self._entries)

    def peek(self, name: str) -> CacheEntry | None:
        """Cached entry without any refresh attempt."""
        with self._lock:
            return self._entries.get(name.lower())

    def value(self, name: str) -> Any:
        entry = self.peek(name)
        return entry.value if entry is not None else None

    def get(self, name: str) -> CacheEntry | None:
        """Cached entry, re-read first if it is older than the TTL.

        Returns ``None`` for unsupported or never-read names.  If the re-read
        fails the stale entry is returned as-is.
        """
        name = name.lower()
        descriptor = self._catalog.get(name)
        entry = self.peek(name)
        if descriptor is None or not descriptor.direction.readable:
            return entry
        if not self._capabilities.should_attempt(name):
            return None
        if entry is not None and descriptor.cadence == Cadence.STATIC and name not in self._stale:
            return entry
        if entry is not None and not self._is_expired(name, entry, self._clock()):
            return entry

        try:
            value = self._transport.get(self.device, name)
        except ScopeSyncError as exc:
            logger.debug("%s: re-read of %r failed: %s", self.device, name, exc)
            self._record(name, False)
            return self.peek(name)
        self._record(name, True)
        self._store({name: value}, Source.INDIVIDUAL, self._clock())
        return self.peek(name)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def invalidate(self, name: str) -> None:
        """Mark *name* stale so the next refresh re-reads it individually."""
        with self._lock:
            self._stale.add(name.lower())

    def discard(self, name: str) -> None:
        with self._lock:
            self._entries.pop(name.lower(), None)
            self._stale.discard(name.lower())

    def close(self) -> None:
        """Drop everything; results of refreshes still in flight are ignored."""
        with self._lock:
            self._closed = True
            self._entries.clear()
            self._stale.clear()

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh_static(self) -> StateDiff:
        """Read every static catalog entry once, ignoring the TTL."""
        names = self._catalog.names_for(Cadence.STATIC)
        diff = StateDiff()
        self._fetch_individually(names, diff, self._clock())
        self._apply_outcomes(diff, names)
        return diff

    def refresh(self, names: Iterable[str] | None = None) -> StateDiff:
        """Run one refresh cycle for *names* (all polled names if omitted)."""
        requested = [n.lower() for n in (names if names is not None else self._catalog.polled_names())]
        requested = [n for n in requested if self._is_readable(n)]
        diff = StateDiff()
        now = self._clock()

        if self._consolidated_due(now):
            self._fetch_consolidated(diff, now)

        now = self._clock()
        with self._lock:
            entries = dict(self._entries)
        pending = [
            name
            for name in requested
            if self._capabilities.should_attempt(name)
            and (name not in entries or self._is_expired(name, entries[name], now))
        ]
        self._fetch_individually(pending, diff, now)
        self._apply_outcomes(diff, pending)
        return diff

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_readable(self, name: str) -> bool:
        descriptor = self._catalog.get(name)
        return descriptor is not None and descriptor.direction.readable and descriptor.cadence is not None

    def _is_expired(self, name: str, entry: CacheEntry, now: float) -> bool:
        return name in self._stale or now - entry.timestamp > self.ttl_s

    def _consolidated_due(self, now: float) -> bool:
        if self.consolidated_supported is False:
            return False
        return self.last_consolidated_fetch is None or now - self.last_consolidated_fetch > self.ttl_s

    def _fetch_consolidated(self, diff: StateDiff, now: float) -> None:
        diff.attempted += 1
        try:
            values = parse_consolidated(self._transport.get(self.device, CONSOLIDATED_ENDPOINT))
        except (ScopeSyncError, ValueError) as exc:
            if isinstance(exc, TransportError):
                diff.transport_failures += 1
            self._disable_consolidated(str(exc))
            return
        if not values:
            self._disable_consolidated("empty result")
            return

        diff.succeeded += 1
        diff.consolidated = True
        self.consolidated_supported = True
        self.last_consolidated_fetch = now

        accepted = {
            name: value
            for name, value in values.items()
            if self._capabilities.is_supported(name) != Support.UNSUPPORTED
        }
        diff.changed.update(self._store(accepted, Source.CONSOLIDATED, now))
        for name in accepted:
            if name in self._catalog:
                self._record(name, True)

    def _disable_consolidated(self, reason: str) -> None:
        if self.consolidated_supported is not False:
            logger.info("%s: consolidated state unavailable (%s); using per-property reads", self.device, reason)
        self.consolidated_supported = False

    def _fetch_individually(self, names: Iterable[str], diff: StateDiff, now: float) -> None:
        fetched: dict[str, Any] = {}
        for name in names:
            diff.attempted += 1
            try:
                fetched[name] = self._transport.get(self.device, name)
            except ScopeSyncError as exc:
                logger.debug("%s: read of %r failed: %s", self.device, name, exc)
                diff.failed[name] = exc
                if isinstance(exc, TransportError):
                    diff.transport_failures += 1
                continue
            diff.succeeded += 1
        diff.changed.update(self._store(fetched, Source.INDIVIDUAL, now))

    def _apply_outcomes(self, diff: StateDiff, names: Iterable[str]) -> None:
        if self._closed:
            return
        count_failures = not diff.total_failure
        for name in names:
            if name in diff.failed:
                if count_failures:
                    self._record(name, False)
            else:
                self._record(name, True)

    def _record(self, name: str, success: bool) -> None:
        if self._closed:
            return
        state = self._capabilities.record_outcome(name, success)
        if state == Support.UNSUPPORTED:
            self.discard(name)

    def _store(self, values: dict[str, Any], source: Source, now: float) -> dict[str, CacheEntry]:
        changed: dict[str, CacheEntry] = {}
        with self._lock:
            if self._closed:
                return changed
            for name, value in values.items():
                entry = CacheEntry(value, now, source)
                previous = self._entries.get(name)
                self._entries[name] = entry
                self._stale.discard(name)
                if previous is None or previous.value != value:
                    changed[name] = entry
        return changed
