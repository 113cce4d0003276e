from anycdc.event import Batch, Event, EventType


def _event():
    return Event(
        type=EventType.UPDATE,
        schema="app",
        table="users",
        primary_key="id",
        primary_key_value=7,
        payload={"id": 7, "name": "ann"},
    )


def test_full_table_name():
    assert _event().full_table_name() == "app.users"


def test_copy_is_equal_but_independent():
    original = _event()
    duplicate = original.copy()
    assert duplicate == original
    assert duplicate is not original
    duplicate.table = "orders"
    assert original.table == "users"


def test_copy_shares_payload():
    original = _event()
    duplicate = original.copy()
    assert duplicate.payload is original.payload


def test_batch_keeps_order():
    first = _event()
    second = Event(type=EventType.INSERT, table="orders")
    batch = Batch(events=[first, second])
    assert [e.type for e in batch.events] == [EventType.UPDATE, EventType.INSERT]
    assert Batch().events == []