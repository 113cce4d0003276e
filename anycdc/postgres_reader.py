"""Change capture from PostgreSQL logical replication (pgoutput)."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from . import config, logs
from .config import ConfigError, Connector, ConnectorType, ReaderConfig
from .event import Event, EventType
from .pgoutput import (
    PRIMARY_KEEPALIVE_BYTE_ID,
    TUPLE_NULL,
    TUPLE_TEXT,
    TUPLE_TOAST,
    XLOG_DATA_BYTE_ID,
    DeleteMessage,
    InsertMessage,
    RelationMessage,
    TupleColumn,
    UpdateMessage,
    convert_to_typed_data,
    get_primary_key,
    parse_logical_message,
    parse_xlog_data,
)
from .reader import Reader, ReaderOptions, register

EXTRA_PUBLICATION_NAME = "publication_name"
EXTRA_SLOT_NAME = "slot_name"

_POLL_SECONDS = 1.0

_PUBLICATION_EXISTS = "SELECT EXISTS(SELECT 1 FROM pg_publication WHERE pubname = %s)"
_SLOT_EXISTS = (
    "SELECT EXISTS(SELECT 1 FROM pg_replication_slots "
    "WHERE slot_name = %s AND slot_type = 'logical')"
)
_SLOT_LSN = "SELECT restart_lsn FROM pg_replication_slots WHERE slot_name = %s"
_PUBLICATION_TABLES = """
SELECT c.relname
FROM pg_publication p
JOIN pg_publication_rel pr ON p.oid = pr.prpubid
JOIN pg_class c ON pr.prrelid = c.oid
JOIN pg_namespace n ON c.relnamespace = n.oid
WHERE p.pubname = %s
ORDER BY 1
"""


class _ReplicationConnection(Protocol):
    def query_value(self, sql: str, params: tuple = ()) -> Any: ...

    def query_column(self, sql: str, params: tuple = ()) -> list[Any]: ...

    def execute(self, sql: str, params: tuple = ()) -> None: ...

    def execute_in_transaction(self, statements: list[str]) -> None: ...

    def start_replication(self, slot: str, lsn: int, plugin_args: list[str]) -> None: ...

    def receive_message(self, timeout: float) -> bytes | None: ...

    def send_standby_status(self, lsn: int) -> None: ...

    def close(self) -> None: ...


ConnectionFactory = Callable[[Connector], _ReplicationConnection]


def format_lsn(lsn: int) -> str:
    """Render an LSN as ``HIGH/LOW`` hexadecimal."""
    return f"{lsn >> 32:X}/{lsn & 0xFFFFFFFF:X}"


def parse_lsn(text: str) -> int:
    """Parse an LSN written as ``HIGH/LOW`` hexadecimal."""
    try:
        high, low = text.split("/")
        return (int(high, 16) << 32) | int(low, 16)
    except ValueError:
        raise ValueError(f"invalid LSN: {text!r}") from None


def _unique(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


def compare_tables(current: list[str], target: list[str]) -> tuple[bool, list[str], list[str]]:
    """Return whether the publication must change, the tables to add and to drop."""
    current_set, target_set = set(current), set(target)
    add = [t for t in _unique(target) if t not in current_set]
    drop = [t for t in _unique(current) if t not in target_set]
    return bool(add or drop), add, drop


def quote_identifier(ident: str) -> str:
    """Quote each dot-separated part of an identifier."""
    return ".".join(
        '"' + part.replace('"', '""').replace("\x00", "") + '"' for part in ident.split(".")
    )


def _lookup_connector(name: str) -> Connector:
    try:
        return config.get_connector(name)
    except ConfigError:
        return Connector()


class PostgresReader(Reader):
    """Streams row changes published through a logical replication slot.

    The replication connection is opened by ``connection_factory``.
    """

    default_connection_factory: ConnectionFactory | None = None

    def __init__(
        self,
        conf: ReaderConfig,
        options: ReaderOptions,
        *,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        super().__init__(conf, options)
        self.connection_factory = connection_factory or self.default_connection_factory
        self.connection: _ReplicationConnection | None = None
        self.client_xlog_pos = 0
        self.relations: dict[int, RelationMessage] = {}
        self._stopped = threading.Event()

    @property
    def publication(self) -> str:
        return self.conf.extras.get(EXTRA_PUBLICATION_NAME, "")

    @property
    def slot(self) -> str:
        return self.conf.extras.get(EXTRA_SLOT_NAME, "")

    def _connect(self) -> _ReplicationConnection:
        if self.connection is not None:
            self.connection.close()
            self.connection = None
        if self.connection_factory is None:
            raise RuntimeError(
                f"no replication connection configured for connector {self.conf.connector}"
            )
        self.connection = self.connection_factory(config.get_connector(self.conf.connector))
        return self.connection

    def prepare(self) -> None:
        conn = self._connect()
        if not conn.query_value(_PUBLICATION_EXISTS, (self.publication,)):
            conn.execute(
                f"CREATE PUBLICATION {self.publication} FOR TABLE {','.join(self.conf.tables)}"
            )
        current = [str(t) for t in conn.query_column(_PUBLICATION_TABLES, (self.publication,))]
        need_alter, add, drop = compare_tables(current, self.conf.tables)
        if need_alter:
            pub = quote_identifier(self.publication)
            conn.execute_in_transaction(
                [f"ALTER PUBLICATION {pub} ADD TABLE {quote_identifier(t)}" for t in add]
                + [f"ALTER PUBLICATION {pub} DROP TABLE {quote_identifier(t)}" for t in drop]
            )
        self._prepare_slot(conn)

    def _prepare_slot(self, conn: _ReplicationConnection) -> None:
        if not conn.query_value(_SLOT_EXISTS, (self.slot,)):
            conn.execute(
                f"SELECT pg_create_logical_replication_slot('{self.slot}', 'pgoutput')"
            )
        restart = conn.query_value(_SLOT_LSN, (self.slot,))
        try:
            self.client_xlog_pos = parse_lsn(str(restart)) if restart else 0
        except ValueError:
            self.client_xlog_pos = 0

    def saved_position(self) -> int:
        """The position stored by :meth:`save`, or 0."""
        saved = self.options.state_loader.load()
        return int(json.loads(saved)) if saved else 0

    def start(self) -> None:
        conn = self.connection
        if conn is None:
            raise RuntimeError("reader is not prepared")
        logs.info(
            "starting reader:%s from LSN %s", self.conf.connector, format_lsn(self.client_xlog_pos)
        )
        plugin_args = [f"publication_names '{self.publication}'", "proto_version '1'"]
        try:
            conn.start_replication(self.slot, self.client_xlog_pos, plugin_args)
        except Exception as exc:
            raise RuntimeError(f"start replication: {exc}") from exc
        while not self._stopped.is_set():
            try:
                message = conn.receive_message(_POLL_SECONDS)
            except TimeoutError:
                continue
            except Exception as exc:
                raise RuntimeError(f"receive message failed: {exc}") from exc
            if message is None:
                continue
            try:
                self.handle(message)
            except Exception as exc:
                logs.error("can not handle message: %s", exc)
                continue
            conn.send_standby_status(self.client_xlog_pos)

    def stop(self) -> None:
        self._stopped.set()

    def save(self) -> None:
        self.options.state_loader.save(json.dumps(self.client_xlog_pos))

    def handle(self, message: bytes) -> None:
        """Process one copy-data message from the replication stream."""
        if not message:
            return
        if message[0] == PRIMARY_KEEPALIVE_BYTE_ID:
            return
        if message[0] != XLOG_DATA_BYTE_ID:
            return
        xlog = parse_xlog_data(message[1:])
        logical = parse_logical_message(xlog.wal_data)
        if isinstance(logical, RelationMessage):
            self.relations[logical.relation_id] = logical
            return
        event = self._event_for(logical)
        if event is not None:
            self.options.subscriber.consume(event)
        self.client_xlog_pos = xlog.server_wal_end

    def _relation(self, relation_id: int) -> RelationMessage:
        return self.relations.get(relation_id) or RelationMessage(relation_id, "", "")

    def _event_for(self, logical: Any) -> Event | None:
        if isinstance(logical, InsertMessage):
            rel = self._relation(logical.relation_id)
            return Event(
                type=EventType.INSERT,
                primary_key=get_primary_key(rel),
                schema=rel.namespace,
                table=rel.relation_name,
                payload=self.convert_data_map(logical.relation_id, logical.tuple),
            )
        if isinstance(logical, UpdateMessage):
            rel = self._relation(logical.relation_id)
            pk = get_primary_key(rel)
            new = self.convert_data_map(logical.relation_id, logical.new_tuple)
            old = new
            if logical.old_tuple is not None:
                old = self.convert_data_map(logical.relation_id, logical.old_tuple)
            return Event(
                type=EventType.UPDATE,
                primary_key=pk,
                primary_key_value=old.get(pk),
                schema=rel.namespace,
                table=rel.relation_name,
                payload=new,
            )
        if isinstance(logical, DeleteMessage):
            rel = self._relation(logical.relation_id)
            pk = get_primary_key(rel)
            old = self.convert_data_map(logical.relation_id, logical.old_tuple)
            return Event(
                type=EventType.DELETE,
                primary_key=pk,
                primary_key_value=old.get(pk),
                schema=rel.namespace,
                table=rel.relation_name,
                payload=old,
            )
        return None

    def convert_data_map(self, relation_id: int, columns: list[TupleColumn]) -> dict[str, Any]:
        """Name and decode the columns of a tuple by its relation."""
        rel = self._relation(relation_id)
        values: dict[str, Any] = {}
        for meta, column in zip(rel.columns, columns):
            if column.kind in (TUPLE_TEXT, TUPLE_TOAST):
                values[meta.name] = convert_to_typed_data(meta.data_type, column.data)
            elif column.kind == TUPLE_NULL:
                values[meta.name] = None
        return values


register(ConnectorType.POSTGRES, PostgresReader)