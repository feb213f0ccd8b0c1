"""Wire-level access to devices: transport, client identity and errors."""

from scopesync.protocol.errors import (
    IndexOutOfRange,
    InvalidIntentError,
    LifecycleViolation,
    ModeResolutionError,
    ModeUndetermined,
    NotANumber,
    OutOfRange,
    ProtocolError,
    ScopeSyncError,
    TransportError,
    UnknownOptionName,
    UnsupportedPropertyError,
)
from scopesync.protocol.transport import AlpacaTransport, ClientIdentity

__all__ = [
    "AlpacaTransport",
    "ClientIdentity",
    "IndexOutOfRange",
    "InvalidIntentError",
    "LifecycleViolation",
    "ModeResolutionError",
    "ModeUndetermined",
    "NotANumber",
    "OutOfRange",
    "ProtocolError",
    "ScopeSyncError",
    "TransportError",
    "UnknownOptionName",
    "UnsupportedPropertyError",
]
