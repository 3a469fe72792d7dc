"""Daemon subprocess lifecycle and port discovery from its output."""

import re
import subprocess
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum

import structlog

from ycmlink.errors import PortNotFound, ProcessError

logger = structlog.get_logger()

SERVING_PATTERN = re.compile(
    r"serving on http://(127\.0\.0\.1):(\d+)", re.IGNORECASE
)
OUTPUT_TAIL_LINES = 1000


class ProcessState(str, Enum):
    NOT_STARTED = "not_started"
    SPAWNED = "spawned"
    PORT_RESOLVED = "port_resolved"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class ServerAddress:
    host: str
    port: int

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


def find_port(output: str) -> ServerAddress | None:
    """Return the address announced last in the daemon output, if any."""
    matches = SERVING_PATTERN.findall(output)
    if not matches:
        return None
    host, port = matches[-1]
    return ServerAddress(host, int(port))


class ServerProcess:
    """Runs the completion daemon and scrapes its listening port.

    Output (stdout and stderr merged) is copied line by line into an in-memory
    buffer by a daemon thread, so the port can be found without blocking.
    """

    def __init__(
        self,
        server_directory: str,
        python_executable: str,
        extra_args: list[str] | None = None,
    ):
        self.server_directory = server_directory
        self.python_executable = python_executable
        self.extra_args = list(extra_args or [])
        self.state = ProcessState.NOT_STARTED
        self._proc: subprocess.Popen | None = None
        self._reader: threading.Thread | None = None
        self._lines: deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)
        self._address: ServerAddress | None = None

    def command(self, options_file_path: str) -> list[str]:
        return [
            self.python_executable,
            self.server_directory,
            f"--options_file={options_file_path}",
            *self.extra_args,
        ]

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    @property
    def returncode(self) -> int | None:
        return self._proc.poll() if self._proc else None

    @property
    def address(self) -> ServerAddress | None:
        return self._address if self.is_running() else None

    def is_running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def start(self, options_file_path: str) -> None:
        if self.is_running():
            logger.debug("Daemon already running", pid=self.pid)
            return

        cmd = self.command(str(options_file_path))
        try:
            self._proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            self.state = ProcessState.TERMINATED
            raise ProcessError(f"Failed to spawn daemon {cmd[0]}: {e}")

        self._lines = deque(maxlen=OUTPUT_TAIL_LINES)
        self._address = None
        self.state = ProcessState.SPAWNED
        self._reader = threading.Thread(
            target=self._read_output,
            args=(self._proc,),
            name="ycmlink-daemon-output",
            daemon=True,
        )
        self._reader.start()
        logger.info("Daemon spawned", pid=self._proc.pid, directory=self.server_directory)

    def _read_output(self, proc: subprocess.Popen) -> None:
        for line in proc.stdout:
            self._lines.append(line)
            logger.debug("Daemon output", line=line.rstrip())

    def output(self) -> str:
        return "".join(self._lines)

    def discover_port(self) -> int:
        """Return the port the daemon announced. Raises PortNotFound."""
        if not self.is_running():
            self._address = None
            raise PortNotFound("Daemon is not running")
        if self._address is not None:
            return self._address.port

        address = find_port(self.output())
        if address is None:
            raise PortNotFound("Daemon has not announced a port yet")

        self._address = address
        self.state = ProcessState.PORT_RESOLVED
        logger.info("Daemon port resolved", port=address.port)
        return address.port

    def wait_for_port(
        self,
        timeout: float = 10.0,
        poll_interval: float = 0.05,
        max_interval: float = 1.0,
    ) -> int:
        """Poll discover_port with backoff until the daemon announces itself."""
        deadline = time.monotonic() + timeout
        delay = poll_interval

        while True:
            if self._proc is None:
                raise ProcessError("Daemon was not started")
            if not self.is_running():
                raise ProcessError(
                    f"Daemon exited with code {self.returncode} before serving"
                )
            try:
                return self.discover_port()
            except PortNotFound:
                if time.monotonic() >= deadline:
                    raise PortNotFound(f"Daemon did not announce a port within {timeout}s")
            time.sleep(delay)
            delay = min(delay * 2, max_interval)

    def stop(self, timeout: float = 5.0) -> None:
        """Terminate the daemon if it is running. Never raises."""
        proc = self._proc
        if proc is None:
            return

        if proc.poll() is None:
            try:
                proc.terminate()
                try:
                    proc.wait(timeout=timeout)
                except subprocess.TimeoutExpired:
                    logger.warning("Daemon ignored SIGTERM, killing", pid=proc.pid)
                    proc.kill()
                    proc.wait(timeout=timeout)
            except (OSError, subprocess.TimeoutExpired):
                logger.exception("Failed to stop daemon", pid=proc.pid)
            else:
                logger.info("Daemon stopped", pid=proc.pid, returncode=proc.returncode)

        if self._reader is not None:
            self._reader.join(timeout=1.0)
            self._reader = None
        if proc.stdout is not None:
            try:
                proc.stdout.close()
            except OSError:
                pass

        self._proc = None
        self._address = None
        self.state = ProcessState.TERMINATED
