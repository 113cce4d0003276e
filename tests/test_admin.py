import json
import urllib.request

from anycdc.admin import handle_request, start_admin_server


class FakeRuntime:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def _record(self, kind, name):
        if self.fail:
            raise LookupError("can not find task by name: " + name)
        self.calls.append((kind, name))

    def task_start(self, name):
        self._record("start", name)

    def task_stop(self, name):
        self._record("stop", name)

    def task_reload(self, name):
        self._record("reload", name)


def test_start_command():
    runtime = FakeRuntime()
    status, reply = handle_request(runtime, b'{"cmd": "task_start", "task": "a"}')
    assert (status, reply) == (200, {"success": True})
    assert runtime.calls == [("start", "a")]


def test_unknown_command_succeeds_without_action():
    runtime = FakeRuntime()
    assert handle_request(runtime, b'{"cmd": "other"}')[0] == 200
    assert runtime.calls == []


def test_failure_reports_error():
    status, reply = handle_request(FakeRuntime(fail=True), b'{"cmd": "task_stop", "task": "x"}')
    assert status == 500
    assert "x" in reply["error"]


def test_bad_body():
    status, reply = handle_request(FakeRuntime(), b"not json")
    assert status == 500
    assert reply["error"].startswith("can not parse body")


def test_server_round_trip():
    runtime = FakeRuntime()
    server = start_admin_server(runtime, "127.0.0.1:0")
    try:
        port = server.server_address[1]
        request = urllib.request.Request(
            f"http://127.0.0.1:{port}/admin/ctl",
            data=json.dumps({"cmd": "task_reload", "task": "b"}).encode(),
            method="POST",
        )
        with urllib.request.urlopen(request, timeout=5) as response:
            assert json.loads(response.read()) == {"success": True}
    finally:
        server.shutdown()
        server.server_close()
    assert runtime.calls == [("reload", "b")]