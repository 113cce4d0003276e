"""Change capture from a MySQL-compatible binlog stream."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import config, database, logs
from .config import ConfigError, Connector, ConnectorType, ReaderConfig
from .entry import EntryType, TypedData
from .event import Event, EventType
from .reader import Reader, ReaderOptions, register
from .schema import SchemaManager, SimpleField

EXTRA_SERVER_ID = "server_id"

# Numeric types
COLUMN_TYPE_TINYINT = "tinyint"
COLUMN_TYPE_SMALLINT = "smallint"
COLUMN_TYPE_MEDIUMINT = "mediumint"
COLUMN_TYPE_INT = "int"
COLUMN_TYPE_INTEGER = "integer"
COLUMN_TYPE_BIGINT = "bigint"
COLUMN_TYPE_FLOAT = "float"
COLUMN_TYPE_DOUBLE = "double"
COLUMN_TYPE_REAL = "real"
COLUMN_TYPE_DECIMAL = "decimal"
COLUMN_TYPE_NUMERIC = "numeric"
COLUMN_TYPE_BIT = "bit"
COLUMN_TYPE_YEAR = "year"

# Date and time types
COLUMN_TYPE_DATE = "date"
COLUMN_TYPE_TIME = "time"
COLUMN_TYPE_DATETIME = "datetime"
COLUMN_TYPE_TIMESTAMP = "timestamp"

# String and binary types
COLUMN_TYPE_CHAR = "char"
COLUMN_TYPE_VARCHAR = "varchar"
COLUMN_TYPE_TINYTEXT = "tinytext"
COLUMN_TYPE_TEXT = "text"
COLUMN_TYPE_MEDIUMTEXT = "mediumtext"
COLUMN_TYPE_LONGTEXT = "longtext"
COLUMN_TYPE_TINYBLOB = "tinyblob"
COLUMN_TYPE_BLOB = "blob"
COLUMN_TYPE_MEDIUMBLOB = "mediumblob"
COLUMN_TYPE_LONGBLOB = "longblob"
COLUMN_TYPE_ENUM = "enum"
COLUMN_TYPE_SET = "set"

# JSON and spatial types
COLUMN_TYPE_JSON = "json"
COLUMN_TYPE_GEOMETRY = "geometry"
COLUMN_TYPE_POINT = "point"
COLUMN_TYPE_LINESTRING = "linestring"
COLUMN_TYPE_POLYGON = "polygon"
COLUMN_TYPE_MULTIPOINT = "multipoint"
COLUMN_TYPE_MULTILINESTRING = "multilinestring"
COLUMN_TYPE_MULTIPOLYGON = "multipolygon"
COLUMN_TYPE_GEOMETRYCOLLECTION = "geometrycollection"

TYPES_MAPPING: dict[EntryType, tuple[str, ...]] = {
    EntryType.NUMERIC: (
        COLUMN_TYPE_SMALLINT,
        COLUMN_TYPE_MEDIUMINT,
        COLUMN_TYPE_INT,
        COLUMN_TYPE_BIGINT,
        COLUMN_TYPE_DECIMAL,
        COLUMN_TYPE_FLOAT,
        COLUMN_TYPE_DOUBLE,
        COLUMN_TYPE_REAL,
        COLUMN_TYPE_NUMERIC,
    ),
    EntryType.STRING: (
        COLUMN_TYPE_VARCHAR,
        COLUMN_TYPE_CHAR,
        COLUMN_TYPE_LINESTRING,
        COLUMN_TYPE_MULTILINESTRING,
        COLUMN_TYPE_TINYTEXT,
        COLUMN_TYPE_TEXT,
        COLUMN_TYPE_MEDIUMTEXT,
        COLUMN_TYPE_LONGTEXT,
    ),
    EntryType.JSON: (COLUMN_TYPE_JSON,),
    EntryType.TIMESTAMP: (COLUMN_TYPE_DATETIME, COLUMN_TYPE_TIMESTAMP),
    EntryType.DATE: (COLUMN_TYPE_DATE,),
}

_POLL_SECONDS = 1.0


def get_built_type(mysql_type: str) -> EntryType:
    """Map a catalogue data type to the kind of value it carries."""
    return next(
        (kind for kind, names in TYPES_MAPPING.items() if mysql_type in names),
        EntryType.UNKNOWN,
    )


@dataclass(frozen=True)
class BinlogPosition:
    """A binlog file name and the offset within it."""

    name: str = ""
    pos: int = 0

    def to_json(self) -> str:
        return json.dumps({"Name": self.name, "Pos": self.pos}, separators=(",", ":"))

    @classmethod
    def from_json(cls, data: str) -> BinlogPosition:
        try:
            decoded = json.loads(data)
            if not isinstance(decoded, dict):
                raise ValueError("position must be a JSON object")
            return cls(name=str(decoded.get("Name", "")), pos=int(decoded.get("Pos", 0)))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"invalid binlog position: {data!r}") from exc


@dataclass
class RowsEvent:
    """Rows written or updated in one table."""

    schema: str
    table: str
    rows: list[list[Any]] = field(default_factory=list)


class BinlogEventKind(Enum):
    WRITE_ROWS = "write_rows"
    UPDATE_ROWS = "update_rows"
    DELETE_ROWS = "delete_rows"
    OTHER = "other"


@dataclass
class BinlogEvent:
    kind: BinlogEventKind
    event: Any = None


class _BinlogStream(Protocol):
    def get_event(self, timeout: float) -> BinlogEvent | None: ...

    def next_position(self) -> BinlogPosition: ...

    def close(self) -> None: ...


StreamFactory = Callable[[dict[str, Any], BinlogPosition], _BinlogStream]


def _lookup_connector(name: str) -> Connector:
    try:
        return config.get_connector(name)
    except ConfigError:
        return Connector()


def _server_id(raw: str | None) -> int:
    try:
        return int(raw or "") % 2**32
    except ValueError:
        return 0


class MySQLReader(Reader):
    """Streams row changes of the configured tables from a binlog source.

    The binlog connection is opened by ``stream_factory``, which receives the
    settings built by :meth:`prepare` and the position to start from.
    """

    default_stream_factory: StreamFactory | None = None

    def __init__(
        self,
        conf: ReaderConfig,
        options: ReaderOptions,
        *,
        schema_manager: SchemaManager | None = None,
        stream_factory: StreamFactory | None = None,
    ) -> None:
        super().__init__(conf, options)
        self.schema = schema_manager or SchemaManager(conf.connector, database.sync_schema)
        self.stream_factory = stream_factory or self.default_stream_factory
        self.binlog_settings: dict[str, Any] = {}
        self.current_position = BinlogPosition()
        self._stopped = threading.Event()

    def prepare(self) -> None:
        connector = _lookup_connector(self.conf.connector)
        self.binlog_settings = {
            "host": connector.host,
            "port": connector.port,
            "user": connector.username,
            "password": connector.password,
            "charset": "utf8mb4",
            "server_id": _server_id(self.conf.extras.get(EXTRA_SERVER_ID)),
            "flavor": "mariadb",
            "parse_time": True,
            "use_decimal": True,
            "max_reconnect_attempts": 100,
            "heartbeat_period": 60.0,
        }

    def start(self) -> None:
        if self.stream_factory is None:
            raise RuntimeError(
                f"no binlog stream source configured for connector {self.conf.connector}"
            )
        stream = self.stream_factory(self.binlog_settings, self._initial_position())
        try:
            while not self._stopped.is_set():
                try:
                    binlog_event = stream.get_event(_POLL_SECONDS)
                except Exception as exc:  # transient stream errors are retried
                    logs.debug("can not read binlog event: %s", exc)
                    continue
                if binlog_event is None:
                    continue
                try:
                    self.handle(binlog_event)
                except Exception as exc:
                    logs.error("can not handle event %s %s", binlog_event, exc)
                    continue
                self.current_position = stream.next_position()
        finally:
            stream.close()

    def stop(self) -> None:
        self._stopped.set()

    def save(self) -> None:
        self.options.state_loader.save(self.current_position.to_json())

    def _reload_state(self) -> BinlogPosition:
        saved = self.options.state_loader.load()
        if saved:
            try:
                return BinlogPosition.from_json(saved)
            except ValueError:
                pass
        return BinlogPosition()

    def _master_position(self) -> BinlogPosition | None:
        engine = database.connect_mysql(_lookup_connector(self.conf.connector))
        try:
            with engine.connect() as conn:
                rows = conn.execute(text("SHOW BINARY LOG STATUS")).mappings().all()
        except SQLAlchemyError as exc:
            logs.error("can not read binary log status: %s", exc)
            return None
        finally:
            engine.dispose()
        if not rows:
            return None
        return BinlogPosition(name=str(rows[0]["File"]), pos=int(rows[0]["Position"]))

    def _initial_position(self) -> BinlogPosition:
        position = self._reload_state()
        if not position.name:
            master = self._master_position()
            if master is not None:
                return master
        self.current_position = position
        return position

    def handle(self, binlog_event: BinlogEvent) -> None:
        """Forward the rows of a write or update event on a watched table."""
        if binlog_event.kind not in (BinlogEventKind.WRITE_ROWS, BinlogEventKind.UPDATE_ROWS):
            return
        rows_event = binlog_event.event
        if not isinstance(rows_event, RowsEvent):
            raise TypeError("unexpected event type")
        connector = _lookup_connector(self.conf.connector)
        if rows_event.schema != connector.database:
            return
        if rows_event.table not in self.conf.tables:
            return
        table = self.schema.get_table(rows_event.schema, rows_event.table)
        keys = table.get_primary_keys()
        event_type = (
            EventType.UPDATE
            if binlog_event.kind == BinlogEventKind.UPDATE_ROWS
            else EventType.INSERT
        )
        primary_key = keys[0] if keys else ""
        for record in self.rows_to_records(rows_event):
            self.options.subscriber.consume(
                Event(
                    type=event_type,
                    schema=rows_event.schema,
                    table=rows_event.table,
                    primary_key=primary_key,
                    primary_key_value=record.get(primary_key) if keys else None,
                    payload=record,
                )
            )

    def rows_to_records(self, rows_event: RowsEvent) -> list[dict[str, TypedData]]:
        """Name and type the column values of every row by the table's schema."""
        table = self.schema.get_table(rows_event.schema, rows_event.table)
        records = []
        for row in rows_event.rows:
            record: dict[str, TypedData] = {}
            for position, value in enumerate(row):
                column = table.get_field_by_index(position) or SimpleField()
                record[column.name] = TypedData(get_built_type(column.type), value)
            records.append(record)
        return records


register(ConnectorType.MYSQL, MySQLReader)