"""Applies change events to a MySQL database."""

from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.sql.elements import TextClause

from . import config, database, logs, sql_utils
from .common_rds import convert, convert_typed_data
from .config import ConfigError, Connector, ConnectorType, WriterConfig
from .entry import TypedData
from .event import Event
from .schema import SchemaManager
from .writer import Writer, register


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


class MySQLWriter(Writer):
    """Upserts and updates rows of a MySQL database."""

    def __init__(self, conf: WriterConfig, *, schema_manager: SchemaManager | None = None) -> None:
        super().__init__(conf)
        self.schema = schema_manager or SchemaManager(conf.connector, database.sync_schema)
        self.engine: Engine | None = None

    def prepare(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
        self.engine = database.connect_mysql(_lookup_connector(self.conf.connector))

    def execute(self, event: Event) -> None:
        if self.engine is None:
            raise RuntimeError(f"writer for {self.conf.connector} is not prepared")
        connector = _lookup_connector(self.conf.connector)
        table = self.schema.get_table(connector.database, event.table)
        converted = event.copy()
        converted.payload = table.convert_record(convert(converted.payload))
        if converted.primary_key_value is not None:
            converted.primary_key_value = _convert_key(converted.primary_key_value)
        sql, params = sql_utils.event_to_sql(converted, sql_utils.MYSQL_WRAPPER)
        logs.debug("MySQL %s %s", sql, params)
        if not sql:
            return
        statement, values = _bind(sql, params)
        with self.engine.begin() as conn:
            conn.execute(statement, values)


register(ConnectorType.MYSQL, MySQLWriter)