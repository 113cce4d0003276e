"""Command-line entry point that runs every configured task."""

from __future__ import annotations

import argparse
import signal
import sys
import threading

from . import config, logs
from . import mysql_reader, mysql_writer, postgres_reader, postgres_writer  # noqa: F401  registers
from .admin import start_admin_server
from .runtime import Runtime, state_sync_job

HEADER = """
=====================================================
=================== AnyCDC ==========================
=====================================================
"""

STATE_SYNC_SECONDS = 60.0
SHUTDOWN_TIMEOUT = 30.0


def print_header() -> None:
    """Write the start-up banner to standard output."""
    stream = sys.stdout
    stream.write(HEADER)
    stream.flush()


def main(argv: list[str] | None = None) -> int:
    print_header()
    parser = argparse.ArgumentParser(prog="anycdc")
    parser.add_argument("--config-dir", default="./", help="root config dir")
    args = parser.parse_args(argv)

    try:
        conf = config.parse(args.config_dir)
    except (OSError, config.ConfigError) as exc:
        logs.error("load config file failed,err: %s", exc)
        return 1

    runtime = Runtime()
    try:
        server = start_admin_server(runtime, conf.base.admin.listen)
    except RuntimeError:
        return 1

    for task_conf in conf.tasks:
        runtime.tasks[task_conf.path] = runtime.task_factory(task_conf)

    def start(name: str) -> None:
        try:
            runtime.task_start(name)
        except Exception as exc:
            logs.error("start task failed,err: %s", exc)

    for task_conf in conf.tasks:
        threading.Thread(target=start, args=(task_conf.name,), daemon=True).start()

    finished = threading.Event()
    threading.Thread(
        target=state_sync_job, args=(runtime, STATE_SYNC_SECONDS, finished), daemon=True
    ).start()

    for signum in (signal.SIGINT, signal.SIGTERM, getattr(signal, "SIGHUP", None)):
        if signum is not None:
            signal.signal(signum, lambda *_: finished.set())
    finished.wait()

    stopper = threading.Thread(target=runtime.stop, daemon=True)
    stopper.start()
    stopper.join(SHUTDOWN_TIMEOUT)
    if stopper.is_alive():
        logs.error("exited after timeout")
    server.shutdown()
    return 0