"""Typed column values and conversions of raw driver values to text."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any

TIME_LAYOUT = "%H:%M:%S"
TIMESTAMP_LAYOUT = "%Y-%m-%d %H:%M:%S"

_INTEGER = re.compile(r"[+-]?\d+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_SECONDS_PER_DAY = 86400

_BOOL_WORDS = {
    "1": True,
    "t": True,
    "T": True,
    "TRUE": True,
    "true": True,
    "True": True,
    "0": False,
    "f": False,
    "F": False,
    "FALSE": False,
    "false": False,
    "False": False,
}


class EntryType(IntEnum):
    UNKNOWN = 0
    NUMERIC = 1
    STRING = 2
    BOOLEAN = 3
    TIMESTAMP = 4
    DATE = 5
    TIME = 6
    JSON = 7
    UUID = 8


@dataclass(frozen=True)
class TypedData:
    """A raw column value tagged with the kind of data it holds."""

    type: EntryType
    value: Any = None


def _sprint(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def to_bool(value: Any) -> bool:
    """Interpret ``value`` as a boolean; raises ValueError if it is not one."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (bytes, bytearray)):
        text = bytes(value).decode("utf-8")
    else:
        text = _sprint(value)
    try:
        return _BOOL_WORDS[text]
    except KeyError:
        raise ValueError(f"invalid boolean: {text!r}") from None


def to_json(value: Any) -> str:
    """Return ``value`` as JSON text; strings and bytes are taken as already encoded."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def to_numeric(value: Any) -> str:
    """Return the textual form of a numeric value."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    return _sprint(value)


def to_string(value: Any) -> str:
    """Return the textual form of any value."""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    return _sprint(value)


def to_time(value: Any) -> str:
    """Render a count of seconds since the epoch as a UTC time of day."""
    text = _sprint(value)
    if not _INTEGER.fullmatch(text):
        raise ValueError(f"invalid integer: {text!r}")
    seconds = int(text)
    if not _INT64_MIN <= seconds <= _INT64_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    seconds %= _SECONDS_PER_DAY
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def to_timestamp(value: Any) -> str:
    """Render a datetime as a UTC timestamp; strings pass through unchanged."""
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        return _utc(value).strftime(TIMESTAMP_LAYOUT)
    return _sprint(value)