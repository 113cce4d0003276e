"""Writers apply change events to a destination; a registry maps connector types to them."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from . import config
from .config import ConfigError, ConnectorType, WriterConfig
from .event import Event


class Writer(ABC):
    """A destination that change events are written to."""

    def __init__(self, conf: WriterConfig) -> None:
        self.conf = conf

    @abstractmethod
    def prepare(self) -> None:
        """Open the connection to the destination."""

    @abstractmethod
    def execute(self, event: Event) -> None:
        """Apply one event; raises on failure."""


WriterFactory = Callable[[WriterConfig], Writer]

_writers: dict[str, WriterFactory] = {}


def _type_key(connector_type: ConnectorType | str) -> str:
    if isinstance(connector_type, ConnectorType):
        return connector_type.value
    return str(connector_type)


def register(connector_type: ConnectorType | str, factory: WriterFactory) -> None:
    """Make ``factory`` build the writers for ``connector_type``."""
    _writers[_type_key(connector_type)] = factory


def new_writer(conf: WriterConfig) -> Writer:
    """Build the writer registered for the type of the configured connector."""
    try:
        connector_type = _type_key(config.get_connector(conf.connector).type)
    except ConfigError:
        connector_type = ""
    factory = _writers.get(connector_type)
    if factory is None:
        raise ValueError("Invalid connector type: " + connector_type)
    return factory(conf)