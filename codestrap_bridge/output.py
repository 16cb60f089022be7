"""Output log and user notifications.

The editor shows codestrap output in an output channel and surfaces
success/failure as message popups.  Here the output channel is a bounded
line buffer mirrored to logging, and popups go through a ``Notifier``.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from .models import Notification, OutputLine, Severity, Stream

log = logging.getLogger(__name__)
output_log = logging.getLogger("codestrap_bridge.output")


@dataclass
class OutputLog:
    """Fixed-size ring buffer of output lines, tracked by sequence number."""

    max_lines: int = 5_000
    _buf: deque[OutputLine] = field(default_factory=deque)
    _seq: int = 0  # monotonic sequence counter (one per append)

    def append(self, text: str, stream: Stream = Stream.STDOUT) -> None:
        self._buf.append(OutputLine(stream=stream, text=text))
        self._seq += 1
        while len(self._buf) > self.max_lines:
            self._buf.popleft()
        output_log.info("%s", text)

    @property
    def seq(self) -> int:
        return self._seq

    def tail(self, num_lines: int = 200) -> list[OutputLine]:
        """Return the last `num_lines` buffered lines, oldest first."""
        if num_lines <= 0:
            return []
        return list(self._buf)[-num_lines:]

    def text(self, num_lines: int = 200) -> str:
        return "\n".join(line.text for line in self.tail(num_lines))


class Notifier(ABC):
    """Surface user-visible messages (the editor's info/warning/error popups)."""

    @abstractmethod
    def notify(self, severity: Severity, message: str) -> None:
        ...

    def info(self, message: str) -> None:
        self.notify(Severity.INFO, message)

    def warning(self, message: str) -> None:
        self.notify(Severity.WARNING, message)

    def error(self, message: str) -> None:
        self.notify(Severity.ERROR, message)


_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class LogNotifier(Notifier):
    """Logs notifications and keeps the most recent ones for the control server."""

    def __init__(self, history: int = 100) -> None:
        self._history: deque[Notification] = deque(maxlen=history)

    def notify(self, severity: Severity, message: str) -> None:
        self._history.append(
            Notification(severity=severity, message=message, timestamp=time.time())
        )
        log.log(_LEVELS[severity], "[notify] %s", message)

    def recent(self, limit: int = 20) -> list[dict[str, Any]]:
        items = list(self._history)[-limit:] if limit > 0 else []
        return [
            {
                "severity": n.severity.value,
                "message": n.message,
                "timestamp": n.timestamp,
            }
            for n in items
        ]
