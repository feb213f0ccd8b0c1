"""Device synchronization: capabilities, modes, state cache, polling, lifecycle."""

from scopesync.sync.capabilities import CapabilityRegistry, Support
from scopesync.sync.events import (
    CapabilityChanged,
    Event,
    EventEmitter,
    LifecycleChanged,
    OperationFailed,
    PropertyChanged,
)
from scopesync.sync.lifecycle import DeviceLifecycle, LifecycleState
from scopesync.sync.manager import SyncManager
from scopesync.sync.modes import Mode, ModeRecord, ModeResolver, resolve_mode, translate_intent
from scopesync.sync.scheduler import PollingScheduler
from scopesync.sync.session import DeviceSession
from scopesync.sync.state_cache import CacheEntry, DeviceStateCache, Source, StateDiff

__all__ = [
    "CacheEntry",
    "CapabilityChanged",
    "CapabilityRegistry",
    "DeviceLifecycle",
    "DeviceSession",
    "DeviceStateCache",
    "Event",
    "EventEmitter",
    "LifecycleChanged",
    "LifecycleState",
    "Mode",
    "ModeRecord",
    "ModeResolver",
    "OperationFailed",
    "PollingScheduler",
    "PropertyChanged",
    "Source",
    "StateDiff",
    "Support",
    "SyncManager",
    "resolve_mode",
    "translate_intent",
]
