"""Conversion of typed column values for relational targets, and SQL built per target."""

from __future__ import annotations

import json
import uuid
from datetime import date, datetime, time
from typing import Any

from .config import ConnectorType
from .entry import EntryType, TypedData, to_bool
from .event import Event, EventType

TIMESTAMP_LAYOUT = "%Y-%m-%d %H:%M:%S"

_WRAPPERS = {
    ConnectorType.MYSQL.value: "`",
    ConnectorType.POSTGRES.value: '"',
}


def _sprint(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def convert_typed_data(data: TypedData) -> Any:
    """Render a typed value as the text a relational target accepts; None stays None."""
    value = data.value
    if value is None:
        return None
    if data.type == EntryType.UUID:
        if isinstance(value, (bytes, bytearray)) and len(value) == 16:
            return str(uuid.UUID(bytes=bytes(value)))
    elif data.type == EntryType.TIMESTAMP:
        if isinstance(value, datetime):
            return value.strftime(TIMESTAMP_LAYOUT)
        if isinstance(value, date):
            return datetime.combine(value, time()).strftime(TIMESTAMP_LAYOUT)
    elif data.type == EntryType.BOOLEAN:
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, str):
            try:
                parsed = to_bool(value)
            except ValueError:
                raise ValueError(f"invalid boolean: {value} ") from None
            return "1" if parsed else "0"
    elif data.type == EntryType.JSON:
        try:
            return json.dumps(
                value, sort_keys=True, separators=(",", ":"), ensure_ascii=False
            )
        except (TypeError, ValueError):
            raise ValueError(f"invalid JSON: {data} ") from None
    return _sprint(value)


def convert(record: dict[str, Any]) -> dict[str, Any]:
    """Convert every typed value of ``record``; other values are kept as they are."""
    return {
        key: convert_typed_data(value) if isinstance(value, TypedData) else value
        for key, value in record.items()
    }


def _wrapper(destination: ConnectorType | str) -> str:
    key = destination.value if isinstance(destination, ConnectorType) else str(destination)
    try:
        return _WRAPPERS[key]
    except KeyError:
        raise ValueError(f"unsupported destination: {key}") from None


def _duplicate_clause(wrapper: str, event: Event) -> str:
    if wrapper == '"':
        return f'ON CONFLICT ("{event.primary_key}") DO UPDATE SET'
    return "ON DUPLICATE KEY UPDATE"


def _insert_sql(wrapper: str, event: Event) -> tuple[str, list[Any]]:
    if not event.payload:
        return "", []
    columns = [f"{wrapper}{column}{wrapper}" for column in event.payload]
    updates = [
        (column, value)
        for column, value in event.payload.items()
        if column != event.primary_key
    ]
    clauses = [f"{wrapper}{column}{wrapper} = ?" for column, _ in updates]
    placeholders = ", ".join("?" for _ in columns)
    sql = (
        f"INSERT INTO {wrapper}{event.table}{wrapper} ({', '.join(columns)}) "
        f"VALUES ({placeholders}) {_duplicate_clause(wrapper, event)} "
        f"{', '.join(clauses)}"
    )
    return sql, list(event.payload.values()) + [value for _, value in updates]


def _update_sql(wrapper: str, event: Event) -> tuple[str, list[Any]]:
    if not event.payload:
        raise ValueError("update event has an empty payload")
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in event.payload.items():
        if column == event.primary_key:
            continue
        clauses.append(f"{wrapper}{column}{wrapper} = ?")
        params.append(value)
    params.append(event.primary_key_value)
    sql = (
        f"UPDATE {wrapper}{event.table}{wrapper} SET {', '.join(clauses)} "
        f"WHERE {wrapper}{event.primary_key}{wrapper} = ?"
    )
    return sql, params


def event_to_sql(destination: ConnectorType | str, event: Event) -> tuple[str, list[Any]]:
    """Build the statement applying ``event`` on a ``destination`` database."""
    wrapper = _wrapper(destination)
    if event.type == EventType.INSERT:
        return _insert_sql(wrapper, event)
    if event.type == EventType.UPDATE:
        return _update_sql(wrapper, event)
    return "", []