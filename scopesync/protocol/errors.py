"""Error taxonomy for device synchronization.

Every error carries a short, stable ``kind`` string that ends up in
``OperationFailed`` events, so subscribers can branch on it without
importing these classes.
"""

from __future__ import annotations

# Device-side error numbers reported in the response envelope.
NOT_IMPLEMENTED = 0x400
INVALID_VALUE = 0x401
VALUE_NOT_SET = 0x402
NOT_CONNECTED = 0x407
INVALID_WHILE_PARKED = 0x408
INVALID_WHILE_SLAVED = 0x409
INVALID_OPERATION = 0x40B
ACTION_NOT_IMPLEMENTED = 0x40C


class ScopeSyncError(Exception):
    """Base class for all errors raised by scopesync."""

    kind = "error"


class TransportError(ScopeSyncError):
    """Connectivity, timeout or malformed-response failure (potentially transient)."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    HTTP_STATUS = "http_status"
    MALFORMED = "malformed"

    def __init__(self, kind: str, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.transport_kind = kind
        self.url = url
        self.status_code = status_code

    @property
    def kind(self) -> str:  # type: ignore[override]
        return f"transport.{self.transport_kind}"

    @property
    def retryable(self) -> bool:
        if self.transport_kind in (self.TIMEOUT, self.CONNECTION):
            return True
        return self.transport_kind == self.HTTP_STATUS and (self.status_code or 0) >= 500


class ProtocolError(ScopeSyncError):
    """The device answered, but reported a non-zero error number."""

    kind = "protocol"

    def __init__(self, code: int, message: str = "", url: str | None = None):
        super().__init__(f"Device error 0x{code:X}: {message}" if message else f"Device error 0x{code:X}")
        self.code = code
        self.device_message = message
        self.url = url

    @property
    def not_implemented(self) -> bool:
        return self.code in (NOT_IMPLEMENTED, ACTION_NOT_IMPLEMENTED)


class UnsupportedPropertyError(ScopeSyncError):
    """The capability registry has demoted (or never had) this name."""

    kind = "unsupported"

    def __init__(self, name: str, reason: str = "not supported by this device"):
        super().__init__(f"{name!r} is {reason}")
        self.name = name


class ModeResolutionError(ScopeSyncError):
    """A caller intent could not be translated into a wire value."""

    kind = "mode"

    def __init__(self, pair: str, message: str):
        super().__init__(f"{pair}: {message}")
        self.pair = pair


class UnknownOptionName(ModeResolutionError):
    kind = "mode.unknown_option_name"


class IndexOutOfRange(ModeResolutionError):
    kind = "mode.index_out_of_range"


class NotANumber(ModeResolutionError):
    kind = "mode.not_a_number"


class OutOfRange(ModeResolutionError):
    kind = "mode.out_of_range"


class ModeUndetermined(ModeResolutionError):
    kind = "mode.undetermined"


class LifecycleViolation(ScopeSyncError):
    """An operation was attempted in a lifecycle state that forbids it."""

    kind = "lifecycle"

    def __init__(self, state, operation: str):
        state_name = getattr(state, "value", state)
        super().__init__(f"Cannot {operation} while {state_name}")
        self.state = state
        self.operation = operation


class InvalidIntentError(ScopeSyncError):
    """A write or command argument cannot be sent as the expected value kind."""

    kind = "invalid_intent"

    def __init__(self, name: str, message: str):
        super().__init__(f"{name}: {message}")
        self.name = name
