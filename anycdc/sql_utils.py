"""SQL statements that apply change events to a relational target."""

from __future__ import annotations

from typing import Any

from .event import Event, EventType

POSTGRES_WRAPPER = '"'
MYSQL_WRAPPER = "`"


def _quoted(name: str, wrapper: str) -> str:
    return f"{wrapper}{name}{wrapper}"


def _insert_sql(event: Event, wrapper: str) -> tuple[str, list[Any]]:
    if not event.payload:
        return "", []
    columns = [_quoted(column, wrapper) for column in event.payload]
    values = list(event.payload.values())
    updates = [
        (column, value)
        for column, value in event.payload.items()
        if column != event.primary_key
    ]
    clauses = [f"{_quoted(column, wrapper)} = ?" for column, _ in updates]
    if wrapper == POSTGRES_WRAPPER:
        duplicate = f'ON CONFLICT ("{event.primary_key}") DO UPDATE SET'
    else:
        duplicate = "ON DUPLICATE KEY UPDATE"
    placeholders = ", ".join("?" for _ in columns)
    sql = (
        f"INSERT INTO {_quoted(event.table, wrapper)} ({', '.join(columns)}) "
        f"VALUES ({placeholders}) {duplicate} {', '.join(clauses)};"
    )
    return sql, values + [value for _, value in updates]


def _update_sql(event: Event, wrapper: str) -> tuple[str, list[Any]]:
    if not event.payload:
        return "", []
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in event.payload.items():
        if column == event.primary_key:
            continue
        clauses.append(f"{_quoted(column, wrapper)} = ?")
        params.append(value)
    params.append(event.primary_key_value)
    sql = (
        f"UPDATE {_quoted(event.table, wrapper)} SET {', '.join(clauses)} "
        f"WHERE {_quoted(event.primary_key, wrapper)} = ?"
    )
    return sql, params


def event_to_sql(event: Event, field_wrapper: str) -> tuple[str, list[Any]]:
    """Build an upsert or update statement with ``?`` placeholders.

    Events that produce no statement (deletes, empty payloads) give ``("", [])``.
    """
    if event.type == EventType.INSERT:
        return _insert_sql(event, field_wrapper)
    if event.type == EventType.UPDATE:
        return _update_sql(event, field_wrapper)
    return "", []