from __future__ import annotations


class BridgeError(Exception):
    """Base class for codestrap-bridge errors."""


class ExecutableNotFound(BridgeError):
    """The codestrap CLI could not be resolved; the operation never started."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            "codestrap not found (set CODESTRAP_BIN or install /usr/local/bin/codestrap)."
        )
        self.operation = operation


class ProcessFailed(BridgeError):
    """The codestrap CLI exited non-zero or was killed by a signal."""

    def __init__(self, operation: str, exit_code: int | None) -> None:
        super().__init__(f"Codestrap {operation} failed (exit {exit_code})")
        self.operation = operation
        self.exit_code = exit_code


class CapabilityUnsupported(BridgeError):
    """The editor host does not provide the requested capability."""

    def __init__(self, capability: str) -> None:
        super().__init__(f"Host does not support {capability}")
        self.capability = capability


class MalformedCommand(BridgeError):
    """Flag file content does not match the channel's command grammar."""

    def __init__(self, content: str) -> None:
        super().__init__(f"Malformed flag command: {content!r}")
        self.content = content
