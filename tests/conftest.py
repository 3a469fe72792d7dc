import base64
import hashlib
import hmac
import json
import sys
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

from ycmlink.config import Settings
from ycmlink.rpc import RpcSession
from ycmlink.server import ServerProcess

FAKE_YCMD = str(Path(__file__).parent / "fake_ycmd.py")
TEST_PORT = 45678


def sign_b64(key: bytes, body: bytes) -> str:
    """Reference HMAC computed with the stdlib, for checking our own."""
    return base64.b64encode(hmac.new(key, body, hashlib.sha256).digest()).decode()


@pytest.fixture
def options_file(tmp_path):
    p = tmp_path / "default_settings.json"
    p.write_text(json.dumps({"hmac_secret": "", "min_num_of_chars_for_completion": 2}))
    return p


@pytest.fixture
def settings(options_file):
    return Settings(
        server_directory=FAKE_YCMD,
        python_executable=sys.executable,
        options_file=str(options_file),
        port_timeout_seconds=10.0,
        request_timeout_seconds=5.0,
        stop_timeout_seconds=2.0,
    )


@pytest.fixture
def fake_server():
    server = MagicMock(spec=ServerProcess)
    server.wait_for_port.return_value = TEST_PORT
    server.pid = 4242
    server.is_running.return_value = True
    return server


class DaemonStub:
    """httpx handler that records requests and answers with signed JSON."""

    def __init__(self, session_ref):
        self._session_ref = session_ref
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, tuple[int, object]] = {}
        self.sign_responses = True
        self.raw_body: bytes | None = None
        self.gate = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.gate is not None:
            self.gate.wait(5)
        status, document = self.responses.get(request.url.path, (200, {}))
        body = self.raw_body if self.raw_body is not None else json.dumps(document).encode()
        headers = {"Content-Type": "application/json"}
        if self.sign_responses:
            key = self._session_ref().secrets.current()
            headers["X-Ycm-Hmac"] = sign_b64(key, body)
        return httpx.Response(status, content=body, headers=headers)


@pytest.fixture
def daemon_stub():
    holder = {}
    stub = DaemonStub(lambda: holder["session"])
    stub.holder = holder
    return stub


@pytest.fixture
def session(settings, fake_server, daemon_stub):
    s = RpcSession(settings, server=fake_server, transport=httpx.MockTransport(daemon_stub))
    daemon_stub.holder["session"] = s
    s.start()
    yield s
    s.stop()
