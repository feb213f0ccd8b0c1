"""Device identity and the static property catalog."""

from scopesync.devices.catalog import (
    Cadence,
    DeviceCatalog,
    Direction,
    ModePair,
    PropertyDescriptor,
    ValueKind,
    catalog_for,
)
from scopesync.devices.descriptor import DeviceDescriptor, DeviceType

__all__ = [
    "Cadence",
    "DeviceCatalog",
    "DeviceDescriptor",
    "DeviceType",
    "Direction",
    "ModePair",
    "PropertyDescriptor",
    "ValueKind",
    "catalog_for",
]
