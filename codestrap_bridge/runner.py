"""Process runner: spawns the codestrap CLI and streams its output."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ExecutableNotFound
from .models import Completion, OutputLine, ProcessResult, Stream
from .output import Notifier, OutputLog

log = logging.getLogger(__name__)

DEFAULT_CANDIDATES = ("/usr/local/bin/codestrap", "/usr/bin/codestrap")
DEFAULT_FALLBACK_SCRIPT = "/custom-cont-init.d/10-codestrap.sh"

READ_CHUNK = 4096
MAX_PARTIAL_LINE = 64 * 1024  # chars; longer unterminated output is flushed as is

CompletionCallback = Callable[[Completion], None]


@dataclass(frozen=True)
class ResolvedCommand:
    cmd: str
    base_args: list[str] = field(default_factory=list)


def resolve_command(
    explicit: str | None,
    candidates: Sequence[str] = DEFAULT_CANDIDATES,
    fallback_script: str | None = DEFAULT_FALLBACK_SCRIPT,
) -> ResolvedCommand | None:
    """Find the codestrap executable.

    Order: explicit path (if it exists), fixed install locations, then the
    container init script run as ``sh <script> cli``.
    """
    if explicit and Path(explicit).exists():
        return ResolvedCommand(explicit)
    for candidate in candidates:
        if Path(candidate).exists():
            return ResolvedCommand(candidate)
    if fallback_script and Path(fallback_script).exists():
        return ResolvedCommand("sh", [fallback_script, "cli"])
    return None


class CompletionSlot:
    """Single-resolution completion: the callback fires at most once."""

    def __init__(self, operation: str, callback: CompletionCallback | None) -> None:
        self.operation = operation
        self._callback = callback
        self._future: asyncio.Future[Completion] = (
            asyncio.get_running_loop().create_future()
        )

    @property
    def done(self) -> bool:
        return self._future.done()

    def resolve(self, ok: bool) -> None:
        if self._future.done():
            return
        completion = Completion(operation=self.operation, ok=ok)
        self._future.set_result(completion)
        if self._callback is not None:
            try:
                self._callback(completion)
            except Exception:
                log.exception("Completion callback for '%s' raised", self.operation)

    async def wait(self) -> Completion:
        return await self._future


class ProcessRunner:
    """Runs codestrap subcommands without a TTY and reports completion once."""

    def __init__(
        self,
        output: OutputLog,
        notifier: Notifier,
        *,
        explicit_bin: str | None = None,
        candidates: Sequence[str] = DEFAULT_CANDIDATES,
        fallback_script: str | None = DEFAULT_FALLBACK_SCRIPT,
    ) -> None:
        self.output = output
        self.notifier = notifier
        self.explicit_bin = explicit_bin
        self.candidates = tuple(candidates)
        self.fallback_script = fallback_script

    def resolve(self) -> ResolvedCommand | None:
        return resolve_command(self.explicit_bin, self.candidates, self.fallback_script)

    async def run(
        self,
        operation: str,
        args: Sequence[str],
        *,
        env: dict[str, str] | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> ProcessResult:
        """Run ``codestrap <args>`` and wait for it to exit.

        Raises ExecutableNotFound (after resolving the completion with
        ``ok=False``) when no executable can be found.  A non-zero exit is
        returned as a failed ProcessResult; call ``check()`` to raise.
        """
        slot = CompletionSlot(operation, on_complete)
        result = ProcessResult(operation=operation, args=list(args))

        resolved = self.resolve()
        if resolved is None:
            err = ExecutableNotFound(operation)
            self.notifier.error(str(err))
            slot.resolve(False)
            raise err

        self.output.append(f"$ codestrap {' '.join(args)}")

        spawn_env = os.environ.copy()
        spawn_env["CODESTRAP_NO_TTY"] = "1"
        if env:
            spawn_env.update(env)

        try:
            proc = await asyncio.create_subprocess_exec(
                resolved.cmd,
                *resolved.base_args,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=spawn_env,
            )
        except OSError as exc:
            self.output.append(f"[error] {exc}", Stream.STDERR)
            self.notifier.error(f"Codestrap {operation} could not start: {exc}")
            slot.resolve(False)
            raise

        log.info("Started codestrap %s (pid=%s)", operation, proc.pid)
        try:
            await asyncio.gather(
                self._read_stream(proc.stdout, Stream.STDOUT, result),  # type: ignore[arg-type]
                self._read_stream(proc.stderr, Stream.STDERR, result),  # type: ignore[arg-type]
            )
            code = await proc.wait()
        except asyncio.CancelledError:
            _kill(proc)
            slot.resolve(False)
            raise
        except Exception as exc:
            log.exception("Reading output of codestrap %s failed", operation)
            self.output.append(f"[error] {exc}", Stream.STDERR)
            _kill(proc)
            await proc.wait()
            self.notifier.error(
                f'Codestrap {operation} failed ({exc}). See "Codestrap" output for details.'
            )
            slot.resolve(False)
            raise

        # asyncio reports signal termination as a negative return code
        result.exit_code = code
        if result.ok:
            self.output.append("[exit] success (code 0)")
        else:
            detail = f"code {code}" if code >= 0 else f"signal {-code}"
            self.output.append(f"[exit] failed ({detail})")
            self.notifier.error(
                f'Codestrap {operation} failed (exit {code}). See "Codestrap" output for details.'
            )
        slot.resolve(result.ok)
        return result

    async def _read_stream(
        self,
        stream: asyncio.StreamReader,
        kind: Stream,
        result: ProcessResult,
    ) -> None:
        """Forward lines to the output log as they arrive.

        Reads fixed-size chunks rather than ``readline()`` so a line longer
        than the stream limit cannot fail the run.  A partial line is held
        until its newline arrives, until it grows past MAX_PARTIAL_LINE, or
        until EOF.
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                break
            pending += decoder.decode(chunk)
            *lines, pending = pending.split("\n")
            for line in lines:
                self._emit(line, kind, result)
            if len(pending) >= MAX_PARTIAL_LINE:
                self._emit(pending, kind, result)
                pending = ""
        pending += decoder.decode(b"", final=True)
        if pending:
            self._emit(pending, kind, result)

    def _emit(self, line: str, kind: Stream, result: ProcessResult) -> None:
        text = line.rstrip("\r")
        result.lines.append(OutputLine(stream=kind, text=text))
        self.output.append(text, kind)


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
