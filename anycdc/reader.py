"""Readers stream change events from a source; a registry maps connector types to them."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from . import config
from .config import ConfigError, ConnectorType, ReaderConfig
from .event import Event
from .state import State


class Subscriber(ABC):
    """Receives the events a reader produces."""

    @abstractmethod
    def consume(self, event: Event) -> None:
        """Handle one event; raises if it could not be applied."""


@dataclass
class ReaderOptions:
    subscriber: Subscriber
    state_loader: State


class Reader(ABC):
    """A source of change events."""

    def __init__(self, conf: ReaderConfig, options: ReaderOptions) -> None:
        self.conf = conf
        self.options = options

    @abstractmethod
    def prepare(self) -> None:
        """Connect and set up what replication needs."""

    @abstractmethod
    def start(self) -> None:
        """Stream events to the subscriber until stopped."""

    @abstractmethod
    def stop(self) -> None:
        """Ask a running ``start`` to return."""

    @abstractmethod
    def save(self) -> None:
        """Persist the current replication position."""


ReaderFactory = Callable[[ReaderConfig, ReaderOptions], Reader]

_readers: dict[str, ReaderFactory] = {}


def _type_key(connector_type: ConnectorType | str) -> str:
    if isinstance(connector_type, ConnectorType):
        return connector_type.value
    return str(connector_type)


def register(connector_type: ConnectorType | str, factory: ReaderFactory) -> None:
    """Make ``factory`` build the readers for ``connector_type``."""
    _readers[_type_key(connector_type)] = factory


def new_reader(conf: ReaderConfig, options: ReaderOptions) -> Reader:
    """Build the reader registered for the type of the configured connector."""
    try:
        connector_type = _type_key(config.get_connector(conf.connector).type)
    except ConfigError:
        connector_type = ""
    factory = _readers.get(connector_type)
    if factory is None:
        raise ValueError("invalid connector type")
    return factory(conf, options)