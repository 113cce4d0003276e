"""Decoding of logical replication messages in the pgoutput format."""

from __future__ import annotations

import json
import re
import struct
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Union

from .entry import EntryType, TypedData, to_bool

XLOG_DATA_BYTE_ID = ord("w")
PRIMARY_KEEPALIVE_BYTE_ID = ord("k")

TUPLE_NULL = "n"
TUPLE_TOAST = "u"
TUPLE_TEXT = "t"
TUPLE_BINARY = "b"

BOOL_OID = 16
QCHAR_OID = 18
INT8_OID = 20
INT2_OID = 21
INT4_OID = 23
TEXT_OID = 25
JSON_OID = 114
BPCHAR_OID = 1042
VARCHAR_OID = 1043
DATE_OID = 1082
TIME_OID = 1083
TIMESTAMP_OID = 1114
TIMESTAMPTZ_OID = 1184
UUID_OID = 2950

OID_TYPE_MAP: dict[EntryType, tuple[int, ...]] = {
    EntryType.UUID: (UUID_OID,),
    EntryType.NUMERIC: (INT2_OID, INT4_OID, INT8_OID),
    EntryType.STRING: (VARCHAR_OID, QCHAR_OID, BPCHAR_OID, TEXT_OID),
    EntryType.BOOLEAN: (BOOL_OID,),
    EntryType.JSON: (JSON_OID,),
    EntryType.TIME: (TIME_OID,),
    EntryType.TIMESTAMP: (TIMESTAMP_OID, TIMESTAMPTZ_OID, DATE_OID),
}

_FRACTION = re.compile(r"\.(\d+)")
_SHORT_OFFSET = re.compile(r"([+-]\d{2})$")


@dataclass
class RelationColumn:
    flags: int
    name: str
    data_type: int
    type_modifier: int = -1


@dataclass
class RelationMessage:
    relation_id: int
    namespace: str
    relation_name: str
    replica_identity: int = 0
    columns: list[RelationColumn] = field(default_factory=list)


@dataclass
class TupleColumn:
    kind: str
    data: bytes = b""


@dataclass
class InsertMessage:
    relation_id: int
    tuple: list[TupleColumn]


@dataclass
class UpdateMessage:
    relation_id: int
    new_tuple: list[TupleColumn]
    old_tuple: list[TupleColumn] | None = None


@dataclass
class DeleteMessage:
    relation_id: int
    old_tuple: list[TupleColumn]


@dataclass
class TruncateMessage:
    options: int
    relation_ids: list[int]


@dataclass
class XLogData:
    wal_start: int
    server_wal_end: int
    server_time: int
    wal_data: bytes


LogicalMessage = Union[
    RelationMessage, InsertMessage, UpdateMessage, DeleteMessage, TruncateMessage
]


class _Cursor:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._at = 0

    def take(self, size: int) -> bytes:
        end = self._at + size
        if end > len(self._data):
            raise ValueError("message is truncated")
        chunk = self._data[self._at:end]
        self._at = end
        return chunk

    def unpack(self, fmt: str) -> int:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt)))[0]

    def byte(self) -> str:
        return chr(self.take(1)[0])

    def cstring(self) -> str:
        end = self._data.find(b"\x00", self._at)
        if end < 0:
            raise ValueError("unterminated string")
        text = self._data[self._at:end].decode("utf-8")
        self._at = end + 1
        return text

    def tuple(self) -> list[TupleColumn]:
        columns = []
        for _ in range(self.unpack(">h")):
            kind = self.byte()
            if kind in (TUPLE_TEXT, TUPLE_BINARY):
                columns.append(TupleColumn(kind, self.take(self.unpack(">i"))))
            else:
                columns.append(TupleColumn(kind))
        return columns


def parse_xlog_data(data: bytes) -> XLogData:
    """Parse the body of an XLogData copy message (without its leading byte)."""
    cursor = _Cursor(data)
    wal_start = cursor.unpack(">Q")
    wal_end = cursor.unpack(">Q")
    server_time = cursor.unpack(">q")
    return XLogData(wal_start, wal_end, server_time, bytes(data[24:]))


def parse_logical_message(data: bytes) -> LogicalMessage | None:
    """Parse one pgoutput message; kinds that carry no row data give None."""
    cursor = _Cursor(data)
    kind = cursor.byte()
    if kind == "R":
        relation = RelationMessage(
            relation_id=cursor.unpack(">I"),
            namespace=cursor.cstring(),
            relation_name=cursor.cstring(),
            replica_identity=cursor.unpack(">B"),
        )
        for _ in range(cursor.unpack(">h")):
            relation.columns.append(
                RelationColumn(
                    flags=cursor.unpack(">B"),
                    name=cursor.cstring(),
                    data_type=cursor.unpack(">I"),
                    type_modifier=cursor.unpack(">i"),
                )
            )
        return relation
    if kind == "I":
        relation_id = cursor.unpack(">I")
        if cursor.byte() != "N":
            raise ValueError("insert message without new tuple")
        return InsertMessage(relation_id, cursor.tuple())
    if kind == "U":
        relation_id = cursor.unpack(">I")
        marker = cursor.byte()
        old = None
        if marker in ("K", "O"):
            old = cursor.tuple()
            marker = cursor.byte()
        if marker != "N":
            raise ValueError("update message without new tuple")
        return UpdateMessage(relation_id, cursor.tuple(), old)
    if kind == "D":
        relation_id = cursor.unpack(">I")
        if cursor.byte() not in ("K", "O"):
            raise ValueError("delete message without old tuple")
        return DeleteMessage(relation_id, cursor.tuple())
    if kind == "T":
        count = cursor.unpack(">I")
        options = cursor.unpack(">B")
        return TruncateMessage(options, [cursor.unpack(">I") for _ in range(count)])
    return None


def get_built_in_type(oid: int) -> EntryType:
    """Map a type OID to the kind of value it carries."""
    return next(
        (kind for kind, oids in OID_TYPE_MAP.items() if oid in oids), EntryType.UNKNOWN
    )


def _parse_datetime(text: str) -> datetime:
    text = text.replace(" ", "T", 1)
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text)
    text = _SHORT_OFFSET.sub(r"\1:00", text)
    return datetime.fromisoformat(text)


def _decode(kind: EntryType, oid: int, text: str) -> Any:
    if kind == EntryType.UUID:
        return str(uuid.UUID(text))
    if kind == EntryType.NUMERIC:
        return int(text)
    if kind == EntryType.BOOLEAN:
        return to_bool(text)
    if kind == EntryType.JSON:
        return json.loads(text)
    if kind == EntryType.TIME:
        time.fromisoformat(text)
        return text
    if kind == EntryType.TIMESTAMP:
        if oid == DATE_OID:
            return date.fromisoformat(text)
        return _parse_datetime(text)
    return text


def convert_to_typed_data(oid: int, data: bytes) -> TypedData:
    """Decode the text form of a column value of type ``oid``."""
    text = bytes(data).decode("utf-8")
    kind = get_built_in_type(oid)
    if kind == EntryType.UNKNOWN:
        return TypedData(EntryType.STRING, text)
    try:
        return TypedData(kind, _decode(kind, oid, text))
    except ValueError:
        raise ValueError(f"can not decode value {text} from oid {oid}") from None


def get_primary_key(relation: RelationMessage) -> str:
    """Name of the first column flagged as part of the key, or ''."""
    return next((c.name for c in relation.columns if c.flags & 0x01), "")