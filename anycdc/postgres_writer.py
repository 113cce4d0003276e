"""Applies change events to a PostgreSQL database."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import TextClause

from . import config, database, logs, sql_utils
from .common_rds import convert, convert_typed_data
from .config import ConfigError, Connector, ConnectorType, WriterConfig
from .entry import TypedData
from .event import Event
from .schema import SimpleField, SimpleTableSchema
from .writer import Writer, register

SCHEMA_REFRESH = timedelta(minutes=10)

_COLUMNS_QUERY = text(
    """
SELECT
  a.attname AS column_name,
  t.typname AS data_type
FROM pg_attribute a
JOIN pg_class c ON a.attrelid = c.oid
JOIN pg_type t ON a.atttypid = t.oid
WHERE
  c.relname = :table_name
  AND c.relnamespace = 'public'::regnamespace
  AND a.attnum > 0
  AND NOT a.attisdropped
ORDER BY a.attnum
"""
)


def _lookup_connector(name: str) -> Connector:
    try:
        return config.get_connector(name)
    except ConfigError:
        return Connector()


def _convert_key(value: Any) -> Any:
    if isinstance(value, TypedData):
        try:
            return convert_typed_data(value)
        except ValueError:
            return ""
    return value


def _bind(sql: str, params: list[Any]) -> tuple[TextClause, dict[str, Any]]:
    """Turn ``?`` placeholders into named bind parameters."""
    head, *rest = sql.split("?")
    if len(rest) != len(params):
        raise ValueError("placeholder count does not match parameters")
    statement = head + "".join(f":p{position}{tail}" for position, tail in enumerate(rest))
    values = {f"p{position}": value for position, value in enumerate(params)}
    return text(statement), values


class PostgresWriter(Writer):
    """Upserts and updates rows of the public schema of a PostgreSQL database."""

    def __init__(self, conf: WriterConfig) -> None:
        super().__init__(conf)
        self.schemas: dict[str, SimpleTableSchema] = {}
        self.engine: Engine | None = None

    def prepare(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
        self.engine = database.connect_postgres(_lookup_connector(self.conf.connector))

    def _require_engine(self) -> Engine:
        if self.engine is None:
            raise RuntimeError(f"writer for {self.conf.connector} is not prepared")
        return self.engine

    def sync_schema(self, table_name: str) -> SimpleTableSchema:
        """Read the column names of ``table_name`` from the catalogue."""
        try:
            with self._require_engine().connect() as conn:
                rows = conn.execute(_COLUMNS_QUERY, {"table_name": table_name}).mappings().all()
        except SQLAlchemyError:
            logs.error("can not get schema information, %s", self.conf.connector)
            raise
        return SimpleTableSchema(
            name=table_name,
            fields=[SimpleField(name=row["column_name"]) for row in rows],
            last_sync_at=datetime.now(),
        )

    def _table(self, table_name: str) -> SimpleTableSchema:
        cached = self.schemas.get(table_name)
        if cached is None or datetime.now() - cached.last_sync_at > SCHEMA_REFRESH:
            cached = self.sync_schema(table_name)
            self.schemas[table_name] = cached
        return cached

    def execute(self, event: Event) -> None:
        engine = self._require_engine()
        table = self._table(event.table)
        converted = event.copy()
        if converted.primary_key_value is not None:
            converted.primary_key_value = _convert_key(converted.primary_key_value)
        converted.payload = table.convert_record(convert(converted.payload))
        sql, params = sql_utils.event_to_sql(converted, sql_utils.POSTGRES_WRAPPER)
        if not sql:
            return
        statement, values = _bind(sql, params)
        with engine.begin() as conn:
            conn.execute(statement, values)


register(ConnectorType.POSTGRES, PostgresWriter)