"""Immutable device identity handed over by the discovery collaborator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from scopesync.constants import API_PATH_PREFIX


class DeviceType(str, Enum):
    """Device categories understood by the device protocol."""

    CAMERA = "camera"
    TELESCOPE = "telescope"
    DOME = "dome"
    FOCUSER = "focuser"
    FILTERWHEEL = "filterwheel"
    ROTATOR = "rotator"
    SWITCH = "switch"
    SAFETYMONITOR = "safetymonitor"
    COVERCALIBRATOR = "covercalibrator"
    OBSERVINGCONDITIONS = "observingconditions"

    @classmethod
    def parse(cls, value: str | DeviceType) -> DeviceType:
        if isinstance(value, DeviceType):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown device type: {value!r}") from None


@dataclass(frozen=True)
class DeviceDescriptor:
    """Address, type and instance number of one device.

    Treated as a read-only key: sessions, caches and events are all indexed
    by the descriptor itself.
    """

    address: str
    device_type: DeviceType
    device_number: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "device_type", DeviceType.parse(self.device_type))
        object.__setattr__(self, "address", self.address.rstrip("/"))
        if self.device_number < 0:
            raise ValueError("device_number must not be negative")

    @property
    def base_url(self) -> str:
        """Device root without any ``/api/v1/...`` suffix the address may carry."""
        idx = self.address.lower().find(API_PATH_PREFIX.rstrip("/"))
        if idx != -1:
            return self.address[:idx]
        return self.address

    def endpoint(self, name: str) -> str:
        return f"{self.base_url}{API_PATH_PREFIX}{self.device_type.value}/{self.device_number}/{name.lower()}"

    def __str__(self) -> str:
        return f"{self.device_type.value}#{self.device_number}@{self.base_url}"
