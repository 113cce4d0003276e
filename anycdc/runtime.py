"""The set of tasks a running process manages."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from . import logs
from .config import TaskConfig
from .task import Task, TaskStatus


class TaskNotFoundError(LookupError):
    """Raised when no task has the requested name."""


class Runtime:
    """Holds the tasks by their file path and starts, stops and reloads them."""

    def __init__(
        self,
        task_factory: Callable[[TaskConfig], Task] = Task,
        reload_delay: float = 2.0,
    ) -> None:
        self.task_factory = task_factory
        self.reload_delay = reload_delay
        self.tasks: dict[str, Task] = {}
        self.threads: list[threading.Thread] = []

    def _find(self, name: str) -> Task:
        task = next((t for t in self.tasks.values() if t.conf.name == name), None)
        if task is None:
            raise TaskNotFoundError(logs.errorf("can not find task by name: %s", name))
        return task

    def stop(self) -> None:
        logs.info("starting stop...")
        for task in self.tasks.values():
            try:
                task.stop()
            except Exception as exc:
                logs.error("can not stop task %s: %s", task.conf.name, exc)

    def task_reload(self, name: str) -> None:
        task = self._find(name)
        logs.info("start reload task %s from %s", task.conf.name, task.conf.path)
        try:
            conf = task.conf.reload()
        except Exception as exc:
            raise logs.errorf("can not reload config: %s", exc) from exc
        if task.status == TaskStatus.STARTED:
            self.task_stop(name)
        time.sleep(self.reload_delay)
        fresh = self.task_factory(conf)
        self.tasks[conf.path] = fresh
        self.task_start(conf.name)

    def task_start(self, name: str) -> None:
        """Prepare the task now and run it in a background thread."""
        task = self._find(name)
        logs.info("start task %s from %s", task.conf.name, task.conf.path)
        try:
            task.prepare()
        except Exception as exc:
            raise logs.errorf("can not prepare task:%s, err: %s", name, exc) from exc

        def run() -> None:
            try:
                task.start()
            except Exception as exc:
                logs.error("failed start task %s, err: %s", name, exc)

        thread = threading.Thread(target=run, name=f"task-{name}", daemon=True)
        self.threads.append(thread)
        thread.start()

    def task_stop(self, name: str) -> None:
        task = self._find(name)
        logs.info("start stop task %s from %s", task.conf.name, task.conf.path)
        task.stop()

    def state_sync(self) -> None:
        """Save the position of every task."""
        logs.info("starting flush state...")
        for task in self.tasks.values():
            try:
                task.save_state()
            except Exception as exc:
                logs.error("can not save state of task %s: %s", task.conf.name, exc)


def state_sync_job(runtime: Runtime, interval: float, stop_event: threading.Event) -> None:
    """Call ``runtime.state_sync`` every ``interval`` seconds until ``stop_event`` is set."""
    while not stop_event.wait(interval):
        runtime.state_sync()