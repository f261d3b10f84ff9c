"""Build log sink: the operator-facing console of one build."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from pretested_integration.constants import LOG_PREFIX

if TYPE_CHECKING:
    from typing import TextIO


class BuildLog:
    """Collects prefixed build-log lines and mirrors them to an optional stream."""

    def __init__(self, stream: TextIO | None = None, *, prefix: str = LOG_PREFIX) -> None:
        self._stream = stream
        self._prefix = prefix
        self._lines: list[str] = []
        self._lock = threading.Lock()

    @property
    def lines(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._lines)

    def println(self, message: str) -> None:
        rendered = [f"{self._prefix}{line}" for line in (message.splitlines() or [""])]
        with self._lock:
            self._lines.extend(rendered)
            if self._stream is not None:
                for line in rendered:
                    self._stream.write(line + "\n")
                self._stream.flush()

    def command(self, command_line: str) -> None:
        self.println(command_line)

    def text(self) -> str:
        return "\n".join(self.lines)


__all__ = ["BuildLog"]
