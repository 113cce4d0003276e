"""Table schemas and a cache that refreshes them periodically."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from . import config
from .config import ConfigError, Connector

REFRESH_SECONDS = 600.0


@dataclass
class SimpleField:
    index: int = 0
    type: str = ""
    name: str = ""
    is_primary_key: bool = False


@dataclass
class SimpleTableSchema:
    name: str = ""
    fields: list[SimpleField] = field(default_factory=list)
    last_sync_at: datetime = field(default_factory=datetime.now)

    def convert_record(self, data: dict[str, Any]) -> dict[str, Any]:
        """Keep only the entries of ``data`` that name a column of this table."""
        names = {f.name for f in self.fields}
        return {key: value for key, value in data.items() if key in names}

    def get_field_by_index(self, index: int) -> SimpleField | None:
        return next((f for f in self.fields if f.index == index), None)

    def get_primary_keys(self) -> list[str]:
        return [f.name for f in self.fields if f.is_primary_key]


Resolver = Callable[[Connector, str, str], SimpleTableSchema]


@dataclass
class _CachedSchema:
    schema: SimpleTableSchema
    synced_at: float


class SchemaManager:
    """Caches table schemas fetched by ``resolver``, refetching stale ones."""

    def __init__(
        self,
        connector_name: str,
        resolver: Resolver,
        *,
        ttl: float = REFRESH_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        try:
            self.connector = config.get_connector(connector_name)
        except ConfigError:
            self.connector = Connector()
        self._resolver = resolver
        self._ttl = ttl
        self._clock = clock
        self._tables: dict[str, _CachedSchema] = {}

    def get_table(self, schema: str, name: str) -> SimpleTableSchema:
        key = f"{schema}.{name}"
        cached = self._tables.get(key)
        if cached is None or self._clock() - cached.synced_at >= self._ttl:
            fetched = self._resolver(self.connector, schema, name)
            cached = _CachedSchema(fetched, self._clock())
            self._tables[key] = cached
        return cached.schema