"""A task wires one reader to its writers and counts the events it forwards."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from . import logs
from .config import TaskConfig
from .event import Event, EventType
from .reader import Reader, ReaderOptions, Subscriber, new_reader
from .state import State
from .writer import Writer, new_writer

EXECUTE_ATTEMPTS = 3


class TaskStatus(str, Enum):
    STARTED = "started"
    STOPPED = "stopped"


@dataclass
class Metric:
    last_event_at: datetime | None = None
    synced_event: dict[str, dict[EventType, int]] = field(default_factory=dict)

    def new_event(self, table: str, event_type: EventType) -> None:
        """Count one forwarded event of ``event_type`` on ``table``."""
        counts = self.synced_event.setdefault(table, {})
        counts[event_type] = counts.get(event_type, 0) + 1


class Task(Subscriber):
    """Forwards the events of one reader to every configured writer."""

    def __init__(self, conf: TaskConfig) -> None:
        self.conf = conf
        self.reader: Reader | None = None
        self.writers: list[Writer] = []
        self.metric = Metric()
        self.status = TaskStatus.STOPPED

    def prepare(self) -> None:
        """Build and prepare the reader and the writers."""
        reader = new_reader(
            self.conf.reader,
            ReaderOptions(subscriber=self, state_loader=State(self.conf.name)),
        )
        reader.prepare()
        self.reader = reader
        self.writers = []
        for writer_conf in self.conf.writers:
            writer = new_writer(writer_conf)
            writer.prepare()
            self.writers.append(writer)

    def start(self) -> None:
        """Run the reader until it stops; raises if the task is already running."""
        if self.status == TaskStatus.STARTED:
            raise logs.errorf("task already started: %s", self.conf.name)
        if self.reader is None:
            raise logs.errorf("task not prepared: %s", self.conf.name)
        self.status = TaskStatus.STARTED
        try:
            self.reader.start()
        except Exception:
            logs.info("task stopped after failure: %s", self.conf.name)
            self.status = TaskStatus.STOPPED
            raise

    def _deliver(self, writer: Writer, event: Event) -> bool:
        for _ in range(EXECUTE_ATTEMPTS):
            try:
                writer.execute(event)
            except Exception as exc:  # any writer failure is retried
                logs.error(
                    "failed to execute event on writer %s/%s,%s %s",
                    self.conf.name,
                    writer.conf,
                    event,
                    exc,
                )
            else:
                return True
        return False

    def consume(self, event: Event) -> None:
        """Apply ``event`` on all writers concurrently; raises if any writer failed."""
        if self.writers:
            with ThreadPoolExecutor(max_workers=len(self.writers)) as pool:
                delivered = list(
                    pool.map(lambda writer: self._deliver(writer, event), self.writers)
                )
            if not all(delivered):
                raise RuntimeError("Failed to execute event")
        self.metric.new_event(event.full_table_name(), event.type)

    def save_state(self) -> None:
        if self.reader is None:
            raise logs.errorf("task not prepared: %s", self.conf.name)
        self.reader.save()

    def stop(self) -> None:
        """Save the position and stop the reader; stopping twice only logs."""
        if self.status == TaskStatus.STOPPED or self.reader is None:
            logs.error("task already stopped: %s", self.conf.name)
            return
        try:
            self.reader.save()
        except Exception as exc:  # a failed save must not prevent stopping
            logs.error("can not save state of task %s: %s", self.conf.name, exc)
        self.reader.stop()
        self.status = TaskStatus.STOPPED