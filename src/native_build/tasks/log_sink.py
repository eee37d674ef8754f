"""Per-task log files."""

from __future__ import annotations

from pathlib import Path


class LogSink:
    """Append-only text stream owned by exactly one task execution.

    Parallel tasks each get their own sink, so their output never interleaves.
    Every write is flushed so the file is useful even if the build dies.
    """

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self._handle = path.open("w", encoding="utf-8")

    @property
    def closed(self) -> bool:
        return self._handle.closed

    def write(self, text: str) -> None:
        if self._handle.closed:
            raise ValueError(f"Log sink {self.path} is closed")
        self._handle.write(text)
        self._handle.flush()

    def log(self, message: str) -> None:
        self.write(message + "\n")

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()
