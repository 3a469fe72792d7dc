"""Editor collaborator interfaces, plus a file-backed editor for the CLI."""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Protocol

EXTENSION_MODES = {
    ".c": "c-mode",
    ".h": "c++-mode",
    ".cc": "c++-mode",
    ".cpp": "c++-mode",
    ".cxx": "c++-mode",
    ".hpp": "c++-mode",
    ".py": "python-mode",
    ".js": "js-mode",
    ".mjs": "js-mode",
}


class Buffer(Protocol):
    path: str
    mode: str

    def contents(self) -> str: ...


class Editor(Protocol):
    def current_buffer(self) -> Buffer: ...

    def cursor_position(self) -> tuple[int, int]:
        """Return the 1-based (line, column) of the cursor."""
        ...

    def buffers(self) -> Iterable[Buffer]: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class IdleScheduler(Protocol):
    def schedule_idle(
        self, interval: float, callback: Callable[[], None]
    ) -> TimerHandle:
        """Call callback each time the editor has been idle for interval seconds."""
        ...


def mode_for_path(path: str) -> str:
    return EXTENSION_MODES.get(Path(path).suffix.lower(), "fundamental-mode")


@dataclass
class FileBuffer:
    path: str
    mode: str

    @classmethod
    def open(cls, path: str) -> "FileBuffer":
        full = str(Path(path).expanduser().resolve())
        return cls(full, mode_for_path(full))

    def contents(self) -> str:
        return Path(self.path).read_text(errors="replace")


class FileEditor:
    """Treats files on disk as the open buffers, with a fixed cursor."""

    def __init__(self, current: FileBuffer, line: int = 1, column: int = 1,
                 others: Iterable[FileBuffer] = ()):
        self._current = current
        self._others = list(others)
        self._position = (line, column)

    def current_buffer(self) -> FileBuffer:
        return self._current

    def cursor_position(self) -> tuple[int, int]:
        return self._position

    def buffers(self) -> list[FileBuffer]:
        return [self._current, *self._others]
