"""Decoding of raw driver values into plain Python values."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any

TIMESTAMP_LAYOUT = "%Y-%m-%d %H:%M:%S"

_SIGNED = re.compile(r"[+-]?\d+")
_UNSIGNED = re.compile(r"\d+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_UINT64_LIMIT = 2**64


def _sprint(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def decode_int(value: Any) -> int:
    """Decode a signed 64-bit integer; larger unsigned values wrap around."""
    if _is_integer(value):
        if not _INT64_MIN <= value < _UINT64_LIMIT:
            raise OverflowError(f"integer out of range: {value}")
        return value - _UINT64_LIMIT if value > _INT64_MAX else value
    text = _sprint(value)
    if not _SIGNED.fullmatch(text):
        raise ValueError(f"invalid integer: {text!r}")
    number = int(text)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return number


def decode_uint(value: Any) -> int:
    """Decode an unsigned 64-bit integer; negative integers wrap around."""
    if _is_integer(value):
        if not _INT64_MIN <= value < _UINT64_LIMIT:
            raise OverflowError(f"integer out of range: {value}")
        return value % _UINT64_LIMIT
    text = _sprint(value)
    if not _UNSIGNED.fullmatch(text):
        raise ValueError(f"invalid unsigned integer: {text!r}")
    number = int(text)
    if number >= _UINT64_LIMIT:
        raise ValueError(f"integer out of range: {text!r}")
    return number


def decode_json(value: Any) -> Any:
    """Parse JSON bytes; any other value is returned as it is."""
    if isinstance(value, (bytes, bytearray)):
        return json.loads(bytes(value))
    return value


def encode_string(value: Any) -> str:
    """Return the textual form of ``value``; None becomes the empty string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    return _sprint(value)


def decode_timestamp(value: Any) -> datetime:
    """Decode a datetime, epoch seconds or a ``YYYY-MM-DD HH:MM:SS`` string."""
    if isinstance(value, datetime):
        return value
    if _is_integer(value):
        return datetime.fromtimestamp(value, tz=timezone.utc).astimezone()
    if isinstance(value, str):
        try:
            parsed = datetime.strptime(value, TIMESTAMP_LAYOUT)
        except ValueError as exc:
            raise ValueError(f"invalid timestamp: {value!r}") from exc
        return parsed.replace(tzinfo=timezone.utc)
    raise TypeError("can not convert to Timestamp")


def format_timestamp(value: datetime) -> str:
    """Render a datetime in its own zone as ``YYYY-MM-DD HH:MM:SS``."""
    return value.strftime(TIMESTAMP_LAYOUT)