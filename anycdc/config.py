"""Configuration files: base settings, connectors and task definitions."""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import yaml

from . import logs

LOG_LEVEL_DEBUG = "debug"
LOG_LEVEL_INFO = "info"
LOG_LEVEL_WARN = "warn"
LOG_LEVEL_ERROR = "error"


class ConfigError(Exception):
    """Raised when configuration is missing, malformed or inconsistent."""


class ConnectorType(str, Enum):
    MYSQL = "mysql"
    POSTGRES = "postgres"
    STAR_ROCKS = "star_rocks"


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _mapping(data: Any, what: str) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{what} must be a mapping")
    return data


def _string_map(data: Any, what: str) -> dict[str, str]:
    return {str(key): _text(value) for key, value in _mapping(data, what).items()}


def _connector_type(value: Any) -> ConnectorType | str:
    text = _text(value)
    try:
        return ConnectorType(text)
    except ValueError:
        return text


@dataclass
class Connector:
    id: str = ""
    type: ConnectorType | str = ""
    alias: str = ""
    host: str = ""
    port: int = 0
    username: str = ""
    password: str = ""
    database: str = ""
    extras: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Any) -> Connector:
        data = _mapping(data, "connector")
        try:
            port = int(data.get("port") or 0)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid port: {data.get('port')!r}") from exc
        return cls(
            id=_text(data.get("id")),
            type=_connector_type(data.get("type")),
            alias=_text(data.get("alias")),
            host=_text(data.get("host")),
            port=port,
            username=_text(data.get("username")),
            password=_text(data.get("password")),
            database=_text(data.get("database")),
            extras=_string_map(data.get("extras"), "extras"),
        )

    def __str__(self) -> str:
        return f"host={self.host},port={self.port},database={self.database}"


@dataclass
class ReaderConfig:
    connector: str = ""
    tables: list[str] = field(default_factory=list)
    extras: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Any) -> ReaderConfig:
        data = _mapping(data, "reader")
        tables = data.get("tables") or []
        if not isinstance(tables, list):
            raise ConfigError("reader tables must be a list")
        return cls(
            connector=_text(data.get("connector")),
            tables=[_text(table) for table in tables],
            extras=_string_map(data.get("extras"), "extras"),
        )


@dataclass
class WriterConfig:
    connector: str = ""

    @classmethod
    def from_mapping(cls, data: Any) -> WriterConfig:
        return cls(connector=_text(_mapping(data, "writer").get("connector")))


@dataclass
class TaskConfig:
    path: str = ""
    name: str = ""
    reader: ReaderConfig = field(default_factory=ReaderConfig)
    writers: list[WriterConfig] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Any, path: str = "") -> TaskConfig:
        data = _mapping(data, "task")
        writers = data.get("writers") or []
        if not isinstance(writers, list):
            raise ConfigError("task writers must be a list")
        return cls(
            path=path,
            name=_text(data.get("name")),
            reader=ReaderConfig.from_mapping(data.get("reader")),
            writers=[WriterConfig.from_mapping(item) for item in writers],
        )

    def reload(self) -> TaskConfig:
        """Read the task file again and return the fresh definition."""
        return TaskConfig.from_mapping(load_yaml(self.path), path=self.path)


@dataclass
class AdminConfig:
    listen: str = ":9999"

    @classmethod
    def from_mapping(cls, data: Any) -> AdminConfig:
        data = _mapping(data, "admin")
        return cls(listen=_text(data.get("listen")) or ":9999")


@dataclass
class BaseConfig:
    data_dir: str = ""
    log_level: str = LOG_LEVEL_INFO
    admin: AdminConfig = field(default_factory=AdminConfig)

    @classmethod
    def from_mapping(cls, data: Any) -> BaseConfig:
        data = _mapping(data, "config")
        return cls(
            data_dir=_text(data.get("data_dir")),
            log_level=_text(data.get("log_level")) or LOG_LEVEL_INFO,
            admin=AdminConfig.from_mapping(data.get("admin")),
        )


@dataclass
class Config:
    base: BaseConfig = field(default_factory=BaseConfig)
    connectors: dict[str, Connector] = field(default_factory=dict)
    tasks: list[TaskConfig] = field(default_factory=list)


current = Config()


def load_yaml(path: str) -> Any:
    """Read and parse one YAML file; an empty file yields an empty mapping."""
    logs.info("Starting loadYAML:%s", path)
    with open(path, encoding="utf-8") as handle:
        content = handle.read()
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    return {} if data is None else data


def _walk(root: str) -> Iterator[str]:
    if not os.path.isdir(root):
        return
    for name in sorted(os.listdir(root)):
        full = os.path.join(root, name)
        yield full
        if os.path.isdir(full):
            yield from _walk(full)


def _load_tasks(root: str) -> list[TaskConfig]:
    tasks: list[TaskConfig] = []
    seen: set[str] = set()
    for path in _walk(root):
        if not path.endswith(".yaml"):
            continue
        try:
            task = TaskConfig.from_mapping(load_yaml(path), path=path)
        except (OSError, ConfigError) as exc:
            logs.error("can not load task file:%s, because of %s", path, exc)
            continue
        if task.name in seen:
            logs.error("duplicate tasks, already define task %s before.", task.name)
            continue
        seen.add(task.name)
        tasks.append(task)
    return tasks


def parse(directory: str) -> Config:
    """Load config.yaml, connectors.yaml and tasks/**.yaml from ``directory``."""
    logs.info("Starting parse config on dir:%s", directory)

    path = os.path.join(directory, "config.yaml")
    try:
        base = BaseConfig.from_mapping(load_yaml(path))
    except (OSError, ConfigError) as exc:
        logs.error("Can not load %s, because of %s", path, exc)
        raise
    current.base = base

    path = os.path.join(directory, "connectors.yaml")
    try:
        listed = _mapping(load_yaml(path), "connectors file").get("connectors") or []
        if not isinstance(listed, list):
            raise ConfigError("connectors must be a list")
        connectors = [Connector.from_mapping(item) for item in listed]
    except (OSError, ConfigError) as exc:
        logs.error("Can not load %s, because of %s", path, exc)
        raise

    current.connectors = {}
    for position, connector in enumerate(connectors):
        if not connector.alias:
            logs.error("empty connector alias on index: %d", position)
            raise ConfigError("INVALID_CONFIG")
        if connector.alias in current.connectors:
            logs.error(
                "duplicate connectors, already define connector %s before.",
                connector.alias,
            )
            raise ConfigError("INVALID_CONFIG")
        current.connectors[connector.alias] = connector

    current.tasks = _load_tasks(os.path.join(directory, "tasks"))
    return current


def get_connector(name: str) -> Connector:
    """Return the connector registered under ``name``."""
    try:
        return current.connectors[name]
    except KeyError:
        logs.error("connector %s not found", name)
        raise ConfigError("can not found connector " + name) from None


def get_state_file_name(name: str) -> str:
    """Path of the file holding the saved position of task ``name``."""
    return os.path.join(current.base.data_dir, name + ".sv")