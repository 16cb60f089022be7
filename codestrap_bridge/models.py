from __future__ import annotations

import enum
from dataclasses import dataclass, field

from .errors import ProcessFailed


class Stream(enum.Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


class Severity(enum.Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Process results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OutputLine:
    stream: Stream
    text: str


@dataclass(frozen=True)
class Completion:
    """Terminal signal of a codestrap run, delivered exactly once."""

    operation: str
    ok: bool


@dataclass
class ProcessResult:
    operation: str
    args: list[str]
    exit_code: int | None = None
    lines: list[OutputLine] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def stdout(self) -> list[str]:
        return [line.text for line in self.lines if line.stream is Stream.STDOUT]

    @property
    def stderr(self) -> list[str]:
        return [line.text for line in self.lines if line.stream is Stream.STDERR]

    def check(self) -> ProcessResult:
        """Raise ProcessFailed unless the run succeeded."""
        if not self.ok:
            raise ProcessFailed(self.operation, self.exit_code)
        return self


# ---------------------------------------------------------------------------
# Editor profiles
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProfileInfo:
    id: str
    name: str

    def matches(self, name_or_id: str) -> bool:
        key = name_or_id.strip()
        return key in (self.name.strip(), self.id)


@dataclass(frozen=True)
class Notification:
    severity: Severity
    message: str
    timestamp: float
