"""Database connections and schema discovery for configured connectors."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from . import logs
from .config import Connector, ConnectorType
from .schema import SimpleField, SimpleTableSchema

_COLUMNS_QUERY = text(
    """SELECT
        COLUMN_KEY column_key,
        ordinal_position idx,
        COLUMN_NAME column_name,
        DATA_TYPE data_type
        FROM information_schema.COLUMNS
        WHERE TABLE_SCHEMA = :schema_name AND TABLE_NAME = :table_name"""
)


def mysql_url(connector: Connector) -> URL:
    """Connection URL for a MySQL connector."""
    return URL.create(
        "mysql+pymysql",
        username=connector.username or None,
        password=connector.password or None,
        host=connector.host or None,
        port=connector.port or None,
        database=connector.database or None,
        query={"charset": "utf8mb4"},
    )


def postgres_url(connector: Connector) -> URL:
    """Connection URL for a PostgreSQL connector."""
    return URL.create(
        "postgresql",
        username=connector.username or None,
        password=connector.password or None,
        host=connector.host or None,
        port=connector.port or None,
        database=connector.database or None,
        query={"sslmode": "disable"},
    )


def _open(url: URL) -> Engine:
    engine = create_engine(url)
    try:
        with engine.connect():
            pass
    except BaseException:
        engine.dispose()
        raise
    return engine


def connect_mysql(connector: Connector) -> Engine:
    """Open and check a connection to a MySQL connector."""
    try:
        return _open(mysql_url(connector))
    except SQLAlchemyError as exc:
        logs.error("failed connect source database (%s), err=%s", connector, exc)
        raise


def connect_postgres(connector: Connector) -> Engine:
    """Open and check a connection to a PostgreSQL connector."""
    return _open(postgres_url(connector))


def connect(connector: Connector) -> Engine:
    """Connect to whatever database the connector describes."""
    if connector.type == ConnectorType.MYSQL:
        return connect_mysql(connector)
    if connector.type == ConnectorType.POSTGRES:
        return connect_postgres(connector)
    raise ValueError("Unsupported database")


def _schema_from_rows(table_name: str, rows: Iterable[Mapping[str, Any]]) -> SimpleTableSchema:
    fields = [
        SimpleField(
            name=row["column_name"],
            index=int(row["idx"]) - 1,  # the catalogue counts from 1
            is_primary_key=(row["column_key"] or "").upper() == "PRI",
            type=row["data_type"],
        )
        for row in rows
    ]
    return SimpleTableSchema(name=table_name, fields=fields, last_sync_at=datetime.now())


def sync_schema(connector: Connector, schema_name: str, table_name: str) -> SimpleTableSchema:
    """Read a table's columns from a MySQL catalogue; an empty schema on failure."""
    logs.info(
        "starting sync schema from source database (%s), schema=%s,table=%s",
        connector,
        schema_name,
        table_name,
    )
    try:
        engine = connect_mysql(connector)
    except SQLAlchemyError:
        return SimpleTableSchema()
    try:
        with engine.connect() as conn:
            rows = conn.execute(
                _COLUMNS_QUERY, {"schema_name": schema_name, "table_name": table_name}
            ).mappings().all()
    except SQLAlchemyError as exc:
        logs.error("failed sync schema,err=%s", exc)
        return SimpleTableSchema()
    finally:
        engine.dispose()
    return _schema_from_rows(table_name, rows)