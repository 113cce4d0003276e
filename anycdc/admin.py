"""HTTP control endpoint for starting, stopping and reloading tasks."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from . import logs
from .runtime import Runtime

CMD_TASK_START = "task_start"
CMD_TASK_STOP = "task_stop"
CMD_TASK_RELOAD = "task_reload"
CONTROL_PATH = "/admin/ctl"


@dataclass
class Command:
    cmd: str = ""
    task: str = ""


def _parse(body: bytes) -> Command:
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise logs.errorf("can not parse body:%s", exc) from exc
    if not isinstance(data, dict):
        raise logs.errorf("can not parse body:%s", "expected an object")
    return Command(cmd=str(data.get("cmd") or ""), task=str(data.get("task") or ""))


def handle_request(runtime: Runtime, body: bytes) -> tuple[int, dict[str, Any]]:
    """Run the command in ``body``; return the HTTP status and the JSON reply."""
    handlers = {
        CMD_TASK_START: runtime.task_start,
        CMD_TASK_STOP: runtime.task_stop,
        CMD_TASK_RELOAD: runtime.task_reload,
    }
    try:
        command = _parse(body)
        handler = handlers.get(command.cmd)
        if handler is not None:
            handler(command.task)
    except Exception as exc:
        return 500, {"error": str(exc)}
    return 200, {"success": True}


def _address(listen: str) -> tuple[str, int]:
    host, _, port = listen.rpartition(":")
    return host, int(port)


def make_server(runtime: Runtime, listen: str) -> ThreadingHTTPServer:
    """Build (and bind) the control server on ``host:port``."""

    class Handler(BaseHTTPRequestHandler):
        def _serve(self) -> None:
            if self.path.split("?", 1)[0] != CONTROL_PATH:
                self.send_error(404)
                return
            length = int(self.headers.get("Content-Length") or 0)
            status, reply = handle_request(runtime, self.rfile.read(length))
            payload = json.dumps(reply).encode()
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)

        do_GET = do_POST = _serve

        def log_message(self, format: str, *args: Any) -> None:
            logs.debug(format, *args)

    return ThreadingHTTPServer(_address(listen), Handler)


def start_admin_server(runtime: Runtime, listen: str) -> ThreadingHTTPServer:
    """Serve the control endpoint in a background thread."""
    try:
        server = make_server(runtime, listen)
    except (OSError, ValueError) as exc:
        raise logs.errorf("can not start admin api server: %s", exc) from exc
    threading.Thread(target=server.serve_forever, name="admin", daemon=True).start()
    return server