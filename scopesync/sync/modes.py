"""List-vs-value mode resolution and intent translation.

Some controls (camera gain and offset being the defining case) are either
picked from a named option list, in which case the wire value is the
option's index, or set as a raw number within device-reported bounds.
``resolve_mode`` decides which from the auxiliary properties, and
``translate_intent`` maps what the caller asked for (name, index or raw
number) onto the single numeric value the device accepts.

Both functions are pure.  Out-of-range values are rejected, never clamped:
the device would refuse them and papering over that hides mistakes.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from scopesync.devices.catalog import DeviceCatalog, ModePair
from scopesync.protocol.errors import (
    IndexOutOfRange,
    ModeUndetermined,
    NotANumber,
    OutOfRange,
    UnknownOptionName,
)

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    LIST = "list"
    VALUE = "value"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ModeRecord:
    pair: str
    mode: Mode = Mode.UNKNOWN
    options: tuple[str, ...] = ()
    minimum: float | None = None
    maximum: float | None = None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _parse_number(text: str) -> int | float | None:
    text = text.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def resolve_mode(pair: ModePair, values: Mapping[str, Any]) -> ModeRecord:
    """Work out the mode of *pair* from the auxiliary values currently known."""
    options = values.get(pair.list_property)
    if isinstance(options, (list, tuple)) and options:
        return ModeRecord(pair.name, Mode.LIST, options=tuple(str(option) for option in options))

    if pair.min_property and pair.max_property:
        low = values.get(pair.min_property)
        high = values.get(pair.max_property)
        if _is_number(low) and _is_number(high) and low <= high:
            return ModeRecord(pair.name, Mode.VALUE, minimum=low, maximum=high)

    return ModeRecord(pair.name)


def translate_intent(record: ModeRecord, intent: int | float | str) -> int | float:
    """Turn a caller intent into the numeric wire value for *record*.

    Raises:
        ModeUndetermined: the mode is unknown; nothing should be sent.
        UnknownOptionName: list mode, name not among the options.
        IndexOutOfRange: list mode, number is not a valid option index.
        NotANumber: value mode, text does not parse as a finite number.
        OutOfRange: value mode, number outside the device's bounds.
    """
    if record.mode == Mode.UNKNOWN:
        raise ModeUndetermined(record.pair, "neither an option list nor numeric bounds are available")

    if isinstance(intent, bool):
        raise NotANumber(record.pair, f"{intent!r} is not a valid setting")

    if record.mode == Mode.LIST:
        if isinstance(intent, str):
            try:
                return record.options.index(intent)
            except ValueError:
                raise UnknownOptionName(
                    record.pair, f"{intent!r} is not one of {list(record.options)}"
                ) from None
        if isinstance(intent, (int, float)):
            if _is_number(intent) and float(intent).is_integer() and 0 <= intent < len(record.options):
                return int(intent)
            raise IndexOutOfRange(record.pair, f"index {intent!r} outside 0..{len(record.options) - 1}")
        raise NotANumber(record.pair, f"unsupported intent type {type(intent).__name__}")

    if isinstance(intent, str):
        value = _parse_number(intent)
        if value is None:
            raise NotANumber(record.pair, f"{intent!r} is not a number")
    elif isinstance(intent, (int, float)):
        if not math.isfinite(intent):
            raise NotANumber(record.pair, f"{intent!r} is not a finite number")
        value = intent
    else:
        raise NotANumber(record.pair, f"unsupported intent type {type(intent).__name__}")

    if not record.minimum <= value <= record.maximum:
        raise OutOfRange(record.pair, f"{value} outside {record.minimum}..{record.maximum}")
    return value


class ModeResolver:
    """Holds the current ``ModeRecord`` of every mode pair of one device."""

    def __init__(self, catalog: DeviceCatalog, lookup: Callable[[str], Any]) -> None:
        self._catalog = catalog
        self._lookup = lookup
        self._records: dict[str, ModeRecord] = {}
        self._lock = threading.Lock()

    @property
    def pairs(self) -> list[str]:
        return list(self._catalog.mode_pairs)

    def is_mode_pair(self, name: str) -> bool:
        return name in self._catalog.mode_pairs

    def resolve(self, pair_name: str) -> ModeRecord:
        pair = self._catalog.mode_pairs[pair_name]
        values = {name: self._lookup(name) for name in pair.auxiliary}
        record = resolve_mode(pair, values)
        with self._lock:
            previous = self._records.get(pair_name)
            self._records[pair_name] = record
        if previous != record:
            logger.debug("Mode for %r resolved to %s", pair_name, record.mode.value)
        return record

    def resolve_all(self) -> dict[str, ModeRecord]:
        return {name: self.resolve(name) for name in self._catalog.mode_pairs}

    def resolve_affected(self, changed: Iterable[str]) -> list[ModeRecord]:
        """Re-resolve pairs whose auxiliary properties appear in *changed*."""
        affected: dict[str, ModePair] = {}
        for name in changed:
            for pair in self._catalog.mode_pair_for_auxiliary(name):
                affected[pair.name] = pair
        return [self.resolve(name) for name in affected]

    def get(self, pair_name: str) -> ModeRecord:
        with self._lock:
            record = self._records.get(pair_name)
        return record if record is not None else ModeRecord(pair_name)

    def translate(self, pair_name: str, intent: int | float | str) -> int | float:
        return translate_intent(self.get(pair_name), intent)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
