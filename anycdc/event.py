"""Change events emitted by readers and applied by writers."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class EventType(IntEnum):
    INSERT = 1
    UPDATE = 2
    DELETE = 3


@dataclass
class Event:
    type: EventType
    schema: str = ""
    table: str = ""
    primary_key: str = ""
    primary_key_value: Any = None
    state: str = ""
    payload: dict[str, Any] = field(default_factory=dict)

    def full_table_name(self) -> str:
        return f"{self.schema}.{self.table}"

    def copy(self) -> Event:
        """Shallow copy; the payload mapping is shared."""
        return dataclasses.replace(self)


@dataclass
class Batch:
    events: list[Event] = field(default_factory=list)