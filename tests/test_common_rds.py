import json
import uuid
from datetime import datetime

import pytest

from anycdc.common_rds import convert, convert_typed_data, event_to_sql
from anycdc.config import ConnectorType
from anycdc.entry import EntryType, TypedData
from anycdc.event import Event, EventType


def test_none_value_stays_none():
    assert convert_typed_data(TypedData(EntryType.STRING, None)) is None


def test_uuid_bytes_rendered_canonically():
    ident = uuid.uuid4()
    assert convert_typed_data(TypedData(EntryType.UUID, ident.bytes)) == str(ident)


def test_timestamp_formatted():
    moment = datetime(2024, 1, 2, 3, 4, 5)
    assert convert_typed_data(TypedData(EntryType.TIMESTAMP, moment)) == "2024-01-02 03:04:05"


def test_timestamp_string_passes_through():
    text = "already formatted"
    assert convert_typed_data(TypedData(EntryType.TIMESTAMP, text)) == text


@pytest.mark.parametrize("value", [True, "true", "T", "1"])
def test_true_booleans(value):
    assert convert_typed_data(TypedData(EntryType.BOOLEAN, value)) == "1"


@pytest.mark.parametrize("value", [False, "false", "f", "0"])
def test_false_booleans(value):
    assert convert_typed_data(TypedData(EntryType.BOOLEAN, value)) == "0"


def test_invalid_boolean_string_raises():
    with pytest.raises(ValueError, match="invalid boolean"):
        convert_typed_data(TypedData(EntryType.BOOLEAN, "maybe"))


def test_json_round_trip():
    document = {"b": 1, "a": [1, 2, {"c": None}]}
    result = convert_typed_data(TypedData(EntryType.JSON, document))
    assert json.loads(result) == document


def test_unserialisable_json_raises():
    with pytest.raises(ValueError, match="invalid JSON"):
        convert_typed_data(TypedData(EntryType.JSON, {1, 2}))


def test_numeric_rendered_as_text():
    assert convert_typed_data(TypedData(EntryType.NUMERIC, 42)) == "42"


def test_convert_only_touches_typed_values():
    flag = TypedData(EntryType.BOOLEAN, True)
    record = {"raw": 5, "flag": flag, "name": TypedData(EntryType.STRING, "x")}
    result = convert(record)
    assert result["raw"] == 5
    assert result["flag"] == "1"
    assert result["name"] == "x"
    assert set(result) == set(record)


def _event(event_type, payload):
    return Event(
        type=event_type,
        table="users",
        primary_key="id",
        primary_key_value=9,
        payload=payload,
    )


def test_postgres_insert_statement():
    sql, params = event_to_sql(ConnectorType.POSTGRES, _event(EventType.INSERT, {"id": 9, "n": "a"}))
    assert sql.startswith('INSERT INTO "users" ("id", "n") VALUES (?, ?)')
    assert 'ON CONFLICT ("id") DO UPDATE SET' in sql
    assert not sql.endswith(";")
    assert params == [9, "a", "a"]


def test_mysql_insert_statement():
    sql, params = event_to_sql(ConnectorType.MYSQL, _event(EventType.INSERT, {"id": 9, "n": "a"}))
    assert sql == "INSERT INTO `users` (`id`, `n`) VALUES (?, ?) ON DUPLICATE KEY UPDATE `n` = ?"
    assert params == [9, "a", "a"]


def test_insert_with_empty_payload_is_empty():
    assert event_to_sql(ConnectorType.MYSQL, _event(EventType.INSERT, {})) == ("", [])


def test_mysql_update_statement():
    sql, params = event_to_sql("mysql", _event(EventType.UPDATE, {"id": 9, "n": "a"}))
    assert sql.startswith("UPDATE `users` SET `n` = ?")
    assert params == ["a", 9]
    assert sql.count("?") == len(params)


def test_unknown_destination_raises():
    with pytest.raises(ValueError):
        event_to_sql(ConnectorType.STAR_ROCKS, _event(EventType.INSERT, {"id": 1}))


def test_update_with_empty_payload_raises():
    with pytest.raises(ValueError):
        event_to_sql(ConnectorType.MYSQL, _event(EventType.UPDATE, {}))


def test_delete_produces_nothing():
    assert event_to_sql(ConnectorType.MYSQL, _event(EventType.DELETE, {"id": 1})) == ("", [])