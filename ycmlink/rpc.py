"""Authenticated RPC session with the completion daemon."""

import json
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import httpx
import structlog

from ycmlink import signing
from ycmlink.config import Settings
from ycmlink.errors import (
    HmacMismatch,
    NoActiveSecret,
    ParseError,
    ServerError,
    TransportError,
)
from ycmlink.options import load_options, write_options_file
from ycmlink.secret import SecretStore
from ycmlink.server import ServerAddress, ServerProcess

logger = structlog.get_logger()

SuccessCallback = Callable[[Any], None]
ErrorCallback = Callable[[Exception], None]


class SessionState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


class RpcSession:
    """Owns one daemon session: its secret, its address and its timer handle.

    Requests are signed on the caller's thread and sent from a worker pool;
    every post returns a Future and never blocks. There is no queueing and no
    retrying, and posts complete in no particular order.
    """

    def __init__(
        self,
        settings: Settings,
        server: ServerProcess | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings
        self.server = server or ServerProcess(
            settings.server_directory,
            settings.python_executable,
            settings.server_args,
        )
        self.secrets = SecretStore()
        self.state = SessionState.STOPPED
        self._transport = transport
        self._address: ServerAddress | None = None
        self._options_path: Path | None = None
        self._client: httpx.Client | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._timer = None

    def __enter__(self) -> "RpcSession":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    @property
    def is_running(self) -> bool:
        return self.state == SessionState.RUNNING

    @property
    def address(self) -> ServerAddress | None:
        return self._address if self.is_running else None

    def start(self) -> None:
        if self.state != SessionState.STOPPED:
            logger.debug("Session already started", state=self.state.value)
            return

        self.state = SessionState.STARTING
        try:
            options = load_options(self.settings.options_file)
            self.secrets.generate()
            self._options_path = write_options_file(options, self.secrets.encoded())
            self.server.start(str(self._options_path))
            port = self.server.wait_for_port(
                timeout=self.settings.port_timeout_seconds,
                poll_interval=self.settings.port_poll_interval_seconds,
                max_interval=self.settings.port_poll_max_interval_seconds,
            )
        except Exception:
            logger.warning("Session start failed, rolling back")
            self.stop()
            raise

        self._address = ServerAddress(self.settings.host, port)
        self._client = httpx.Client(
            transport=self._transport,
            timeout=self.settings.request_timeout_seconds,
            trust_env=False,
        )
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.rpc_workers,
            thread_name_prefix="ycmlink-rpc",
        )
        self.state = SessionState.RUNNING
        logger.info("Session running", url=self._address.url, pid=self.server.pid)

    def stop(self) -> None:
        """Tear the session down. Safe to call in any state; never raises."""
        if self._timer is not None:
            try:
                self._timer.cancel()
            except Exception:
                logger.exception("Failed to cancel idle timer")
            self._timer = None

        self.server.stop(timeout=self.settings.stop_timeout_seconds)
        self.secrets.clear()
        self._address = None

        if self._options_path is not None:
            self._options_path.unlink(missing_ok=True)
            self._options_path = None
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        if self._client is not None:
            self._client.close()
            self._client = None

        if self.state != SessionState.STOPPED:
            logger.info("Session stopped")
        self.state = SessionState.STOPPED

    def attach_timer(self, handle) -> None:
        """Keep an idle-timer handle so stop() cancels it."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = handle

    def current_key(self) -> bytes:
        if not self.is_running:
            raise NoActiveSecret(f"Session is {self.state.value}")
        return self.secrets.current()

    def post(
        self,
        path: str,
        body: Any,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> Future:
        """Sign body and POST it to the daemon without blocking.

        Raises NoActiveSecret right away when the session is not running.
        Everything that goes wrong afterwards is delivered to on_error and
        the returned Future; with no on_error it is dropped.
        """
        key = self.current_key()
        payload = json.dumps(body).encode("utf-8")
        signature = signing.encode_signature(signing.sign(key, payload))
        url = f"{self._address.url}/{path.lstrip('/')}"

        future = self._executor.submit(
            self._send, self._client, url, payload, signature, key
        )
        future.add_done_callback(
            lambda fut: self._dispatch(fut, path, on_success, on_error)
        )
        return future

    def _send(
        self, client: httpx.Client, url: str, payload: bytes, signature: str, key: bytes
    ) -> Any:
        headers = {
            "Content-Type": "application/json",
            signing.HMAC_HEADER: signature,
        }
        try:
            resp = client.post(url, content=payload, headers=headers)
        except httpx.TimeoutException:
            raise TransportError(f"Request to {url} timed out")
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e}")
        except RuntimeError:
            # client closed by stop() while the request was queued
            raise TransportError(f"Request to {url} aborted, session stopped")

        if self.settings.verify_response_hmac:
            signing.verify(key, resp.content, resp.headers.get(signing.HMAC_HEADER))

        if not resp.is_success:
            raise _server_error(resp)

        try:
            return json.loads(resp.content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(f"Malformed JSON from {url}: {e}")

    def _dispatch(
        self,
        future: Future,
        path: str,
        on_success: SuccessCallback | None,
        on_error: ErrorCallback | None,
    ) -> None:
        if future.cancelled():
            exc = TransportError(f"Request to {path} cancelled, session stopped")
        else:
            exc = future.exception()
        if exc is None:
            if on_success is not None:
                on_success(future.result())
            return

        if isinstance(exc, HmacMismatch):
            logger.warning("Rejected unauthenticated response", path=path)
        if on_error is not None:
            on_error(exc)
        else:
            logger.debug("Dropped request error", path=path, error=str(exc))


def _server_error(resp: httpx.Response) -> ServerError:
    """Build a ServerError from the daemon's JSON error document, if any."""
    message = resp.text
    exception_type = None
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        message = data.get("message", message)
        exc_info = data.get("exception")
        if isinstance(exc_info, dict):
            exception_type = exc_info.get("TYPE")
    return ServerError(resp.status_code, message, exception_type)
