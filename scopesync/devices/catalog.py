"""Static per-device-type table of properties and commands.

The catalog is process-wide and read-only.  Device-type differences are
expressed purely as data here: which names exist, which way they can be
accessed, what kind of value they carry and which cadence group polls them.
Everything downstream (capability tracking, the state cache, the polling
scheduler) is structurally identical for every device type.

A few conventions the rest of the package relies on:

* Names are the lowercase wire names (``ccdtemperature``, ``slewtoaltaz``).
* Commands are entries with ``Direction.WRITE`` and no cadence.
* Capability flags are read-only bool entries whose ``gates`` list the
  names they pre-seed in the capability registry.  For a gated read-write
  property the flag only decides whether it may be written.
* ``Cadence.STATIC`` entries are read once while connecting (and again on
  re-probe); the polling scheduler never touches them.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from scopesync.devices.descriptor import DeviceType


class Direction(str, Enum):
    READ = "read"
    WRITE = "write"
    READ_WRITE = "readwrite"

    @property
    def readable(self) -> bool:
        return self in (Direction.READ, Direction.READ_WRITE)

    @property
    def writable(self) -> bool:
        return self in (Direction.WRITE, Direction.READ_WRITE)


class ValueKind(str, Enum):
    NUMBER = "number"
    BOOL = "bool"
    STRING = "string"
    ENUM_STRING = "enum-string"
    LIST = "list"
    NONE = "none"


class Cadence(str, Enum):
    FAST = "fast"
    SLOW = "slow"
    STATIC = "static"


@dataclass(frozen=True)
class PropertyDescriptor:
    """One catalog entry (property, capability flag or command)."""

    name: str
    direction: Direction
    kind: ValueKind
    cadence: Cadence | None = None
    optional: bool = False
    wire_name: str | None = None
    gates: tuple[str, ...] = ()
    params: tuple[str, ...] = ()

    @property
    def is_command(self) -> bool:
        return self.direction == Direction.WRITE and self.cadence is None

    @property
    def is_capability_flag(self) -> bool:
        return bool(self.gates)

    @property
    def polled(self) -> bool:
        return self.direction.readable and self.cadence in (Cadence.FAST, Cadence.SLOW)

    @property
    def parameter_name(self) -> str:
        """Form field name used when writing this property."""
        return self.wire_name or self.name.capitalize()


@dataclass(frozen=True)
class ModePair:
    """A control that is either picked from a named list or set as a bounded number.

    ``min_property``/``max_property`` are ``None`` for list-only controls
    such as readout modes or filter positions.
    """

    name: str
    list_property: str
    min_property: str | None = None
    max_property: str | None = None

    @property
    def auxiliary(self) -> tuple[str, ...]:
        return tuple(p for p in (self.list_property, self.min_property, self.max_property) if p)


class DeviceCatalog:
    """All catalog entries for one device type."""

    def __init__(self, device_type: DeviceType, entries: Iterable[PropertyDescriptor], mode_pairs=()) -> None:
        self.device_type = device_type
        self._entries: dict[str, PropertyDescriptor] = {}
        for entry in entries:
            if entry.name in self._entries:
                raise ValueError(f"Duplicate catalog entry {entry.name!r} for {device_type.value}")
            self._entries[entry.name] = entry
        self.mode_pairs: dict[str, ModePair] = {pair.name: pair for pair in mode_pairs}
        for pair in self.mode_pairs.values():
            for name in (pair.name, *pair.auxiliary):
                if name not in self._entries:
                    raise ValueError(f"Mode pair {pair.name!r} references unknown entry {name!r}")

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[PropertyDescriptor]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, name: str) -> PropertyDescriptor | None:
        return self._entries.get(name.lower())

    def names_for(self, cadence: Cadence) -> list[str]:
        return [e.name for e in self._entries.values() if e.direction.readable and e.cadence == cadence]

    def polled_names(self) -> list[str]:
        return [e.name for e in self._entries.values() if e.polled]

    def capability_flags(self) -> list[PropertyDescriptor]:
        return [e for e in self._entries.values() if e.is_capability_flag]

    def commands(self) -> list[PropertyDescriptor]:
        return [e for e in self._entries.values() if e.is_command]

    def mode_pair_for_auxiliary(self, name: str) -> list[ModePair]:
        return [pair for pair in self.mode_pairs.values() if name in pair.auxiliary]


# ---------------------------------------------------------------------------
# Entry builders
# ---------------------------------------------------------------------------


def _ro(name: str, kind: ValueKind, cadence: Cadence, optional: bool = False) -> PropertyDescriptor:
    return PropertyDescriptor(name, Direction.READ, kind, cadence, optional)


def _rw(
    name: str, kind: ValueKind, cadence: Cadence, wire_name: str, optional: bool = False
) -> PropertyDescriptor:
    return PropertyDescriptor(name, Direction.READ_WRITE, kind, cadence, optional, wire_name)


def _flag(name: str, *gates: str) -> PropertyDescriptor:
    return PropertyDescriptor(name, Direction.READ, ValueKind.BOOL, Cadence.STATIC, True, gates=gates)


def _cmd(name: str, *params: str, optional: bool = False) -> PropertyDescriptor:
    return PropertyDescriptor(name, Direction.WRITE, ValueKind.NONE, None, optional, params=params)


N, B, S, E, L = ValueKind.NUMBER, ValueKind.BOOL, ValueKind.STRING, ValueKind.ENUM_STRING, ValueKind.LIST
FAST, SLOW, STATIC = Cadence.FAST, Cadence.SLOW, Cadence.STATIC

_COMMON = (
    _rw("connected", B, SLOW, "Connected"),
    _ro("name", S, STATIC),
    _ro("description", S, STATIC, optional=True),
    _ro("driverinfo", S, STATIC, optional=True),
    _ro("driverversion", S, STATIC, optional=True),
    _ro("interfaceversion", N, STATIC),
    _ro("supportedactions", L, STATIC, optional=True),
)

_CAMERA = (
    _ro("cameraxsize", N, STATIC),
    _ro("cameraysize", N, STATIC),
    _ro("maxbinx", N, STATIC),
    _ro("maxbiny", N, STATIC),
    _ro("pixelsizex", N, STATIC),
    _ro("pixelsizey", N, STATIC),
    _ro("sensortype", N, STATIC, optional=True),
    _ro("sensorname", S, STATIC, optional=True),
    _ro("bayeroffsetx", N, STATIC, optional=True),
    _ro("bayeroffsety", N, STATIC, optional=True),
    _ro("exposuremin", N, STATIC, optional=True),
    _ro("exposuremax", N, STATIC, optional=True),
    _ro("exposureresolution", N, STATIC, optional=True),
    _ro("fullwellcapacity", N, STATIC, optional=True),
    _ro("electronsperadu", N, STATIC, optional=True),
    _ro("maxadu", N, STATIC, optional=True),
    _ro("hasshutter", B, STATIC, optional=True),
    _ro("canasymmetricbin", B, STATIC, optional=True),
    _ro("gains", L, STATIC, optional=True),
    _ro("gainmin", N, STATIC, optional=True),
    _ro("gainmax", N, STATIC, optional=True),
    _ro("offsets", L, STATIC, optional=True),
    _ro("offsetmin", N, STATIC, optional=True),
    _ro("offsetmax", N, STATIC, optional=True),
    _ro("readoutmodes", L, STATIC, optional=True),
    _flag("canabortexposure", "abortexposure"),
    _flag("canstopexposure", "stopexposure"),
    _flag("canpulseguide", "pulseguide", "ispulseguiding"),
    _flag("cansetccdtemperature", "setccdtemperature", "cooleron"),
    _flag("cangetcoolerpower", "coolerpower"),
    _flag("canfastreadout", "fastreadout"),
    _ro("camerastate", N, FAST),
    _ro("imageready", B, FAST),
    _ro("percentcompleted", N, FAST, optional=True),
    _ro("ccdtemperature", N, FAST, optional=True),
    _ro("coolerpower", N, FAST, optional=True),
    _ro("ispulseguiding", B, FAST, optional=True),
    _ro("heatsinktemperature", N, SLOW, optional=True),
    _ro("lastexposureduration", N, SLOW, optional=True),
    _ro("lastexposurestarttime", S, SLOW, optional=True),
    _rw("binx", N, SLOW, "BinX"),
    _rw("biny", N, SLOW, "BinY"),
    _rw("startx", N, SLOW, "StartX"),
    _rw("starty", N, SLOW, "StartY"),
    _rw("numx", N, SLOW, "NumX"),
    _rw("numy", N, SLOW, "NumY"),
    _rw("gain", N, SLOW, "Gain", optional=True),
    _rw("offset", N, SLOW, "Offset", optional=True),
    _rw("readoutmode", N, SLOW, "ReadoutMode", optional=True),
    _rw("cooleron", B, SLOW, "CoolerOn", optional=True),
    _rw("setccdtemperature", N, SLOW, "SetCCDTemperature", optional=True),
    _rw("fastreadout", B, SLOW, "FastReadout", optional=True),
    _rw("subexposureduration", N, SLOW, "SubExposureDuration", optional=True),
    _cmd("startexposure", "Duration", "Light"),
    _cmd("abortexposure", optional=True),
    _cmd("stopexposure", optional=True),
    _cmd("pulseguide", "Direction", "Duration", optional=True),
)

_CAMERA_MODES = (
    ModePair("gain", "gains", "gainmin", "gainmax"),
    ModePair("offset", "offsets", "offsetmin", "offsetmax"),
    ModePair("readoutmode", "readoutmodes"),
)

_TELESCOPE = (
    _ro("alignmentmode", N, STATIC, optional=True),
    _ro("equatorialsystem", N, STATIC, optional=True),
    _ro("focallength", N, STATIC, optional=True),
    _ro("aperturediameter", N, STATIC, optional=True),
    _ro("aperturearea", N, STATIC, optional=True),
    _ro("trackingrates", L, STATIC, optional=True),
    _rw("doesrefraction", B, STATIC, "DoesRefraction", optional=True),
    _rw("siteelevation", N, STATIC, "SiteElevation", optional=True),
    _rw("sitelatitude", N, STATIC, "SiteLatitude", optional=True),
    _rw("sitelongitude", N, STATIC, "SiteLongitude", optional=True),
    _flag("canfindhome", "findhome"),
    _flag("canpark", "park"),
    _flag("canunpark", "unpark"),
    _flag("cansetpark", "setpark"),
    _flag("canpulseguide", "pulseguide", "ispulseguiding"),
    _flag("cansettracking", "tracking"),
    _flag("canslew", "slewtocoordinates", "slewtotarget"),
    _flag("canslewasync", "slewtocoordinatesasync", "slewtotargetasync"),
    _flag("canslewaltaz", "slewtoaltaz"),
    _flag("canslewaltazasync", "slewtoaltazasync"),
    _flag("cansync", "synctocoordinates", "synctotarget"),
    _flag("cansyncaltaz", "synctoaltaz"),
    _flag("cansetdeclinationrate", "declinationrate"),
    _flag("cansetrightascensionrate", "rightascensionrate"),
    _flag("cansetguiderates", "guideratedeclination", "guideraterightascension"),
    _flag("cansetpierside", "sideofpier"),
    _ro("rightascension", N, FAST),
    _ro("declination", N, FAST),
    _ro("altitude", N, FAST, optional=True),
    _ro("azimuth", N, FAST, optional=True),
    _ro("slewing", B, FAST),
    _ro("ispulseguiding", B, FAST, optional=True),
    _rw("sideofpier", N, FAST, "SideOfPier", optional=True),
    _ro("siderealtime", N, SLOW, optional=True),
    _ro("atpark", B, SLOW, optional=True),
    _ro("athome", B, SLOW, optional=True),
    _rw("tracking", B, SLOW, "Tracking"),
    _rw("trackingrate", N, SLOW, "TrackingRate", optional=True),
    _rw("utcdate", S, SLOW, "UTCDate", optional=True),
    _rw("targetrightascension", N, SLOW, "TargetRightAscension", optional=True),
    _rw("targetdeclination", N, SLOW, "TargetDeclination", optional=True),
    _rw("declinationrate", N, SLOW, "DeclinationRate", optional=True),
    _rw("rightascensionrate", N, SLOW, "RightAscensionRate", optional=True),
    _rw("guideratedeclination", N, SLOW, "GuideRateDeclination", optional=True),
    _rw("guideraterightascension", N, SLOW, "GuideRateRightAscension", optional=True),
    _rw("slewsettletime", N, SLOW, "SlewSettleTime", optional=True),
    _cmd("abortslew"),
    _cmd("findhome", optional=True),
    _cmd("park", optional=True),
    _cmd("unpark", optional=True),
    _cmd("setpark", optional=True),
    _cmd("slewtocoordinates", "RightAscension", "Declination", optional=True),
    _cmd("slewtocoordinatesasync", "RightAscension", "Declination", optional=True),
    _cmd("slewtotarget", optional=True),
    _cmd("slewtotargetasync", optional=True),
    _cmd("slewtoaltaz", "Azimuth", "Altitude", optional=True),
    _cmd("slewtoaltazasync", "Azimuth", "Altitude", optional=True),
    _cmd("synctocoordinates", "RightAscension", "Declination", optional=True),
    _cmd("synctoaltaz", "Azimuth", "Altitude", optional=True),
    _cmd("synctotarget", optional=True),
    _cmd("moveaxis", "Axis", "Rate", optional=True),
    _cmd("pulseguide", "Direction", "Duration", optional=True),
)

_DOME = (
    _flag("canfindhome", "findhome"),
    _flag("canpark", "park"),
    _flag("cansetpark", "setpark"),
    _flag("cansetaltitude", "slewtoaltitude"),
    _flag("cansetazimuth", "slewtoazimuth"),
    _flag("cansetshutter", "openshutter", "closeshutter"),
    _flag("canslave", "slaved"),
    _flag("cansyncazimuth", "synctoazimuth"),
    _ro("azimuth", N, FAST, optional=True),
    _ro("altitude", N, FAST, optional=True),
    _ro("slewing", B, FAST),
    _ro("shutterstatus", N, FAST, optional=True),
    _ro("athome", B, SLOW, optional=True),
    _ro("atpark", B, SLOW, optional=True),
    _rw("slaved", B, SLOW, "Slaved", optional=True),
    _cmd("abortslew"),
    _cmd("openshutter", optional=True),
    _cmd("closeshutter", optional=True),
    _cmd("findhome", optional=True),
    _cmd("park", optional=True),
    _cmd("setpark", optional=True),
    _cmd("slewtoaltitude", "Altitude", optional=True),
    _cmd("slewtoazimuth", "Azimuth", optional=True),
    _cmd("synctoazimuth", "Azimuth", optional=True),
)

_FOCUSER = (
    _ro("absolute", B, STATIC),
    _ro("maxincrement", N, STATIC),
    _ro("maxstep", N, STATIC),
    _ro("stepsize", N, STATIC, optional=True),
    _flag("tempcompavailable", "tempcomp"),
    _ro("position", N, FAST, optional=True),
    _ro("ismoving", B, FAST),
    _ro("temperature", N, SLOW, optional=True),
    _rw("tempcomp", B, SLOW, "TempComp", optional=True),
    _cmd("halt", optional=True),
    _cmd("move", "Position"),
)

_FILTERWHEEL = (
    _ro("names", L, STATIC),
    _ro("focusoffsets", L, STATIC, optional=True),
    _rw("position", N, FAST, "Position"),
)

_FILTERWHEEL_MODES = (ModePair("position", "names"),)

_ROTATOR = (
    _flag("canreverse", "reverse"),
    _ro("stepsize", N, STATIC, optional=True),
    _ro("position", N, FAST),
    _ro("ismoving", B, FAST),
    _ro("mechanicalposition", N, FAST, optional=True),
    _ro("targetposition", N, FAST, optional=True),
    _rw("reverse", B, SLOW, "Reverse", optional=True),
    _cmd("halt", optional=True),
    _cmd("move", "Position"),
    _cmd("moveabsolute", "Position"),
    _cmd("movemechanical", "Position", optional=True),
    _cmd("sync", "Position", optional=True),
)

_SWITCH = (
    _ro("maxswitch", N, STATIC),
    _cmd("setswitch", "Id", "State"),
    _cmd("setswitchvalue", "Id", "Value"),
    _cmd("setswitchname", "Id", "Name", optional=True),
)

_SAFETYMONITOR = (_ro("issafe", B, FAST),)

_COVERCALIBRATOR = (
    _ro("maxbrightness", N, STATIC, optional=True),
    _ro("coverstate", N, FAST),
    _ro("calibratorstate", N, FAST),
    _ro("brightness", N, SLOW, optional=True),
    _cmd("calibratoron", "Brightness", optional=True),
    _cmd("calibratoroff", optional=True),
    _cmd("opencover", optional=True),
    _cmd("closecover", optional=True),
    _cmd("haltcover", optional=True),
)

_OBSERVINGCONDITIONS = (
    _rw("averageperiod", N, SLOW, "AveragePeriod"),
    *(
        _ro(sensor, N, SLOW, optional=True)
        for sensor in (
            "cloudcover",
            "dewpoint",
            "humidity",
            "pressure",
            "rainrate",
            "skybrightness",
            "skyquality",
            "skytemperature",
            "starfwhm",
            "temperature",
            "winddirection",
            "windgust",
            "windspeed",
        )
    ),
    _cmd("refresh", optional=True),
)


_CATALOGS: dict[DeviceType, DeviceCatalog] = {
    DeviceType.CAMERA: DeviceCatalog(DeviceType.CAMERA, _COMMON + _CAMERA, _CAMERA_MODES),
    DeviceType.TELESCOPE: DeviceCatalog(DeviceType.TELESCOPE, _COMMON + _TELESCOPE),
    DeviceType.DOME: DeviceCatalog(DeviceType.DOME, _COMMON + _DOME),
    DeviceType.FOCUSER: DeviceCatalog(DeviceType.FOCUSER, _COMMON + _FOCUSER),
    DeviceType.FILTERWHEEL: DeviceCatalog(DeviceType.FILTERWHEEL, _COMMON + _FILTERWHEEL, _FILTERWHEEL_MODES),
    DeviceType.ROTATOR: DeviceCatalog(DeviceType.ROTATOR, _COMMON + _ROTATOR),
    DeviceType.SWITCH: DeviceCatalog(DeviceType.SWITCH, _COMMON + _SWITCH),
    DeviceType.SAFETYMONITOR: DeviceCatalog(DeviceType.SAFETYMONITOR, _COMMON + _SAFETYMONITOR),
    DeviceType.COVERCALIBRATOR: DeviceCatalog(DeviceType.COVERCALIBRATOR, _COMMON + _COVERCALIBRATOR),
    DeviceType.OBSERVINGCONDITIONS: DeviceCatalog(
        DeviceType.OBSERVINGCONDITIONS, _COMMON + _OBSERVINGCONDITIONS
    ),
}


def catalog_for(device_type: DeviceType | str) -> DeviceCatalog:
    return _CATALOGS[DeviceType.parse(device_type)]
