from anycdc.event import Event, EventType
from anycdc.sql_utils import event_to_sql


def _event(event_type, payload, pk_value=None):
    return Event(
        type=event_type,
        schema="shop",
        table="users",
        primary_key="id",
        primary_key_value=pk_value,
        payload=payload,
    )


def test_insert_mysql_full_statement():
    sql, params = event_to_sql(_event(EventType.INSERT, {"id": 1, "name": "a"}), "`")
    assert sql == (
        "INSERT INTO `users` (`id`, `name`) VALUES (?, ?) "
        "ON DUPLICATE KEY UPDATE `name` = ?;"
    )
    assert params == [1, "a", "a"]


def test_insert_postgres_uses_on_conflict():
    sql, params = event_to_sql(
        _event(EventType.INSERT, {"id": 7, "name": "b", "age": 3}), '"'
    )
    assert sql.startswith('INSERT INTO "users" ("id", "name", "age")')
    assert 'ON CONFLICT ("id") DO UPDATE SET' in sql
    assert "ON DUPLICATE KEY UPDATE" not in sql
    assert params == [7, "b", 3, "b", 3]


def test_insert_placeholder_count_matches_params():
    payload = {"id": 1, "a": 2, "b": 3, "c": 4}
    sql, params = event_to_sql(_event(EventType.INSERT, payload), "`")
    assert sql.count("?") == len(params)
    assert sql.endswith(";")


def test_update_mysql_full_statement():
    sql, params = event_to_sql(
        _event(EventType.UPDATE, {"id": 1, "name": "a"}, pk_value=1), "`"
    )
    assert sql == "UPDATE `users` SET `name` = ? WHERE `id` = ?"
    assert params == ["a", 1]


def test_update_uses_primary_key_value_last():
    sql, params = event_to_sql(
        _event(EventType.UPDATE, {"id": 5, "x": 1, "y": 2}, pk_value=4), '"'
    )
    assert sql.startswith('UPDATE "users" SET "x" = ?, "y" = ?')
    assert params == [1, 2, 4]
    assert sql.count("?") == len(params)


def test_delete_produces_nothing():
    assert event_to_sql(_event(EventType.DELETE, {"id": 1}, pk_value=1), "`") == ("", [])


def test_empty_payload_produces_nothing():
    assert event_to_sql(_event(EventType.INSERT, {}), "`") == ("", [])
    assert event_to_sql(_event(EventType.UPDATE, {}, pk_value=1), "`") == ("", [])