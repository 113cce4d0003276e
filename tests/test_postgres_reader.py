import struct

import pytest

from anycdc import config
from anycdc.config import Connector, ConnectorType, ReaderConfig
from anycdc.entry import EntryType
from anycdc.event import EventType
from anycdc.pgoutput import INT4_OID, TEXT_OID
from anycdc.postgres_reader import (
    PostgresReader,
    compare_tables,
    format_lsn,
    parse_lsn,
    quote_identifier,
)
from anycdc.reader import ReaderOptions, Subscriber
from anycdc.state import State


class Collector(Subscriber):
    def __init__(self):
        self.events = []

    def consume(self, event):
        self.events.append(event)


class FakeConn:
    def __init__(self, exists=False, tables=()):
        self.exists = exists
        self.tables = list(tables)
        self.executed = []
        self.transactions = []

    def query_value(self, sql, params=()):
        if "restart_lsn" in sql:
            return "0/10"
        return self.exists

    def query_column(self, sql, params=()):
        return self.tables

    def execute(self, sql, params=()):
        self.executed.append(sql)

    def execute_in_transaction(self, statements):
        self.transactions.append(statements)

    def close(self):
        pass


def cstr(text):
    return text.encode() + b"\x00"


def wrap(payload, wal_end=5):
    return b"w" + struct.pack(">QQq", 0, wal_end, 0) + payload


def relation():
    out = b"R" + struct.pack(">I", 3) + cstr("public") + cstr("users") + b"d" + struct.pack(">h", 2)
    out += b"\x01" + cstr("id") + struct.pack(">Ii", INT4_OID, -1)
    out += b"\x00" + cstr("name") + struct.pack(">Ii", TEXT_OID, -1)
    return out


def tup(*values):
    out = struct.pack(">h", len(values))
    for v in values:
        out += b"t" + struct.pack(">i", len(v)) + v.encode()
    return out


@pytest.fixture
def setup(tmp_path):
    config.current.base.data_dir = str(tmp_path)
    config.current.connectors = {"pg": Connector(type=ConnectorType.POSTGRES, alias="pg")}
    collector = Collector()
    conn = FakeConn()
    reader = PostgresReader(
        ReaderConfig(connector="pg", tables=["users"], extras={"publication_name": "pub", "slot_name": "slot"}),
        ReaderOptions(subscriber=collector, state_loader=State("t")),
        connection_factory=lambda connector: conn,
    )
    return reader, collector, conn


def test_lsn_round_trip():
    assert parse_lsn("16/B374D848") == (0x16 << 32) | 0xB374D848
    assert format_lsn(parse_lsn("16/B374D848")) == "16/B374D848"


def test_bad_lsn():
    with pytest.raises(ValueError):
        parse_lsn("nope")


def test_compare_tables():
    assert compare_tables(["a", "b"], ["b", "c"]) == (True, ["c"], ["a"])
    assert compare_tables(["a"], ["a"]) == (False, [], [])


def test_quote_identifier():
    assert quote_identifier("public.users") == '"public"."users"'
    assert quote_identifier('a"b') == '"a""b"'


def test_prepare_creates_publication_and_slot(setup):
    reader, _, conn = setup
    reader.prepare()
    assert conn.executed[0] == "CREATE PUBLICATION pub FOR TABLE users"
    assert "pg_create_logical_replication_slot('slot', 'pgoutput')" in conn.executed[1]
    assert conn.transactions == [['ALTER PUBLICATION "pub" ADD TABLE "users"']]
    assert reader.client_xlog_pos == parse_lsn("0/10")


def test_insert_event(setup):
    reader, collector, _ = setup
    reader.handle(wrap(relation()))
    reader.handle(wrap(b"I" + struct.pack(">I", 3) + b"N" + tup("7", "bob"), wal_end=9))
    (event,) = collector.events
    assert event.type == EventType.INSERT
    assert event.table == "users" and event.primary_key == "id"
    assert event.payload["id"].value == 7
    assert event.payload["name"].type == EntryType.STRING
    assert reader.client_xlog_pos == 9


def test_update_uses_old_key(setup):
    reader, collector, _ = setup
    reader.handle(wrap(relation()))
    reader.handle(wrap(b"U" + struct.pack(">I", 3) + b"K" + tup("1", "a") + b"N" + tup("2", "b")))
    event = collector.events[0]
    assert event.type == EventType.UPDATE
    assert event.primary_key_value.value == 1
    assert event.payload["id"].value == 2


def test_keepalive_ignored(setup):
    reader, collector, _ = setup
    reader.handle(b"k" + b"\x00" * 17)
    assert collector.events == []


def test_save_and_load_position(setup):
    reader, _, _ = setup
    reader.client_xlog_pos = 1234
    reader.save()
    assert reader.saved_position() == 1234