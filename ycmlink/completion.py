"""Completion requests and parse notifications built on an RpcSession."""

import threading
from concurrent.futures import Future
from typing import Callable

import structlog
from pydantic import ValidationError

from ycmlink.editor import Buffer, Editor, IdleScheduler
from ycmlink.errors import ParseError
from ycmlink.rpc import ErrorCallback, RpcSession
from ycmlink.schemas import (
    BaseRequest,
    CompletionCandidate,
    CompletionsResponse,
    EventNotification,
    ExtraConfRequest,
    FileData,
)

logger = structlog.get_logger()

COMPLETIONS_PATH = "completions"
EVENT_NOTIFICATION_PATH = "event_notification"
LOAD_EXTRA_CONF_PATH = "load_extra_conf_file"

MODE_FILETYPES = {
    "python-mode": "python",
    "js-mode": "javascript",
    "js2-mode": "javascript",
    "js3-mode": "javascript",
    "c++-mode": "cpp",
}
UNKNOWN_FILETYPE = "unknown"


def filetypes_for_mode(mode: str) -> list[str]:
    return [MODE_FILETYPES.get(mode, UNKNOWN_FILETYPE)]


def parse_completions(document) -> list[CompletionCandidate]:
    """Convert a completions response into candidates, keeping daemon order."""
    try:
        return CompletionsResponse.model_validate(document).completions
    except ValidationError as e:
        raise ParseError(f"Malformed completions response: {e}")


class CompletionClient:
    def __init__(self, session: RpcSession, eligible_modes: list[str] | None = None):
        self.session = session
        if eligible_modes is None:
            eligible_modes = session.settings.eligible_modes
        self.eligible_modes = frozenset(eligible_modes)
        self._parsing: set[str] = set()
        self._parsing_lock = threading.Lock()

    def is_eligible(self, buffer: Buffer) -> bool:
        return buffer.mode in self.eligible_modes

    def build_base_request(self, editor: Editor) -> BaseRequest:
        """Snapshot the current buffer, the cursor and every eligible buffer."""
        current = editor.current_buffer()
        line, column = editor.cursor_position()

        file_data = {
            buf.path: FileData(
                contents=buf.contents(), filetypes=filetypes_for_mode(buf.mode)
            )
            for buf in editor.buffers()
            if self.is_eligible(buf)
        }
        if current.path not in file_data:
            file_data[current.path] = FileData(
                contents=current.contents(),
                filetypes=filetypes_for_mode(current.mode),
            )

        return BaseRequest(
            line_num=line,
            column_num=column,
            filepath=current.path,
            file_data=file_data,
        )

    def request_completions(
        self,
        editor: Editor,
        callback: Callable[[list[CompletionCandidate]], None] | None = None,
        on_error: ErrorCallback | None = None,
    ) -> Future:
        """Ask the daemon for candidates at the cursor.

        The returned Future resolves to the candidate list, or to the error.
        Without on_error, failures are logged at warning level.
        """
        result: Future = Future()
        request = self.build_base_request(editor)

        def fail(exc: Exception) -> None:
            result.set_exception(exc)
            if on_error is not None:
                on_error(exc)
            else:
                logger.warning(
                    "Completion request failed",
                    filepath=request.filepath,
                    error=str(exc),
                )

        def succeed(document) -> None:
            try:
                candidates = parse_completions(document)
            except ParseError as e:
                fail(e)
                return
            result.set_result(candidates)
            if callback is not None:
                callback(candidates)

        self.session.post(COMPLETIONS_PATH, request.model_dump(), succeed, fail)
        return result

    def notify_file_ready_to_parse(self, editor: Editor) -> Future | None:
        """Tell the daemon the current buffer is worth parsing.

        Best effort: errors are dropped, and a notification for a buffer that
        still has one in flight is skipped.
        """
        if not self.session.is_running:
            return None
        current = editor.current_buffer()
        if not self.is_eligible(current):
            return None

        path = current.path
        with self._parsing_lock:
            if path in self._parsing:
                logger.debug("Parse notification in flight, skipping", filepath=path)
                return None
            self._parsing.add(path)

        try:
            base = self.build_base_request(editor)
            event = EventNotification(**base.model_dump())
            future = self.session.post(
                EVENT_NOTIFICATION_PATH,
                event.model_dump(),
                on_error=lambda exc: logger.debug(
                    "Parse notification failed", filepath=path, error=str(exc)
                ),
            )
        except Exception:
            self._done_parsing(path)
            raise

        future.add_done_callback(lambda _: self._done_parsing(path))
        return future

    def _done_parsing(self, path: str) -> None:
        with self._parsing_lock:
            self._parsing.discard(path)

    def load_extra_config(
        self,
        path: str,
        on_success: Callable | None = None,
        on_error: ErrorCallback | None = None,
    ) -> Future:
        request = ExtraConfRequest(filepath=path)
        return self.session.post(
            LOAD_EXTRA_CONF_PATH, request.model_dump(), on_success, on_error
        )

    def enable_parse_notifications(
        self, editor: Editor, scheduler: IdleScheduler, interval: float | None = None
    ) -> None:
        """Send FileReadyToParse after every idle period until the session stops."""
        if interval is None:
            interval = self.session.settings.idle_interval_seconds
        handle = scheduler.schedule_idle(
            interval, lambda: self.notify_file_ready_to_parse(editor)
        )
        self.session.attach_timer(handle)
