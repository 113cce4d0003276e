"""Persistence of a task's replication position in the data directory."""

from __future__ import annotations

import contextlib
import os

from . import config, logs


class State:
    """The saved position of one task, kept in ``<data_dir>/<name>.sv``."""

    def __init__(self, name: str) -> None:
        self.name = name

    @property
    def path(self) -> str:
        return config.get_state_file_name(self.name)

    def load(self) -> str:
        """Return the saved state, or an empty string if there is none."""
        try:
            with open(self.path, encoding="utf-8") as handle:
                return handle.read()
        except OSError:
            return ""

    def save(self, state: str) -> None:
        path = self.path
        logs.info("saving state to file: %s,state=%s", path, state)
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(state)

    def clear(self) -> None:
        with contextlib.suppress(OSError):
            os.remove(self.path)