"""Flag channels: a one-slot file mailbox shared with the codestrap CLI.

The CLI overwrites a well-known file with a command, we poll it, run a
handler at most once per command, and overwrite it with ``ACK:<payload>``.

Polling (not inotify) is deliberate: the file often lives on a bind mount
or network filesystem where change notification never fires.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from .errors import MalformedCommand
from .io_utils import atomic_write_text

log = logging.getLogger(__name__)

IDLE = "IDLE"
ACK_PREFIX = "ACK:"
DEFAULT_INTERVAL = 0.5  # seconds


@dataclass(frozen=True)
class FlagCommand:
    payload: str
    nonce: int | None = None


@dataclass
class ChannelSession:
    """Per-channel delivery state.  In memory only; a restart starts fresh."""

    high_water: int | None = None  # highest nonce honored
    last_value: str | None = None  # last name acted upon
    busy: bool = False
    honored: int = 0


class CommandGrammar(ABC):
    """Parses flag file content and decides whether a command is new."""

    @abstractmethod
    def parse(self, content: str) -> FlagCommand | None:
        """Return a command, None for idle/ACK content, or raise MalformedCommand."""
        ...

    @abstractmethod
    def is_new(self, command: FlagCommand, session: ChannelSession) -> bool:
        ...

    @abstractmethod
    def remember(self, command: FlagCommand, session: ChannelSession) -> None:
        ...

    def ack(self, command: FlagCommand) -> str:
        return f"{ACK_PREFIX}{command.payload}"


class NonceGrammar(CommandGrammar):
    """``<VERB>:<integer nonce>``; honored only when the nonce grows."""

    def __init__(self, verb: str = "RELOAD") -> None:
        self.verb = verb
        self._pattern = re.compile(rf"^{re.escape(verb)}:(\d+)$")

    def parse(self, content: str) -> FlagCommand | None:
        text = content.strip()
        if not text or text == IDLE or text.startswith(ACK_PREFIX):
            return None
        match = self._pattern.match(text)
        if not match:
            raise MalformedCommand(text)
        return FlagCommand(payload=match.group(1), nonce=int(match.group(1)))

    def is_new(self, command: FlagCommand, session: ChannelSession) -> bool:
        if command.nonce is None:
            return False
        return session.high_water is None or command.nonce > session.high_water

    def remember(self, command: FlagCommand, session: ChannelSession) -> None:
        session.high_water = command.nonce


class NameGrammar(CommandGrammar):
    """A bare name per file; honored only when it differs from the last one."""

    def parse(self, content: str) -> FlagCommand | None:
        text = content.strip()
        if not text or text == IDLE or text.startswith(ACK_PREFIX):
            return None
        if "\n" in text:
            # Half-written or concatenated content; wait for the next poll.
            raise MalformedCommand(text)
        return FlagCommand(payload=text)

    def is_new(self, command: FlagCommand, session: ChannelSession) -> bool:
        return command.payload != session.last_value

    def remember(self, command: FlagCommand, session: ChannelSession) -> None:
        session.last_value = command.payload


CommandHandler = Callable[[FlagCommand], Awaitable[None]]


class FlagChannel:
    """Polls one flag file and dispatches new commands to a handler."""

    def __init__(
        self,
        path: Path,
        grammar: CommandGrammar,
        handler: CommandHandler,
        *,
        interval: float = DEFAULT_INTERVAL,
        name: str | None = None,
        seed: str = IDLE,
    ) -> None:
        if interval <= 0:
            raise ValueError("flag channel interval must be > 0")
        self.path = Path(path)
        self.grammar = grammar
        self.handler = handler
        self.interval = interval
        self.name = name or self.path.name
        self.seed = seed
        self.session = ChannelSession()
        self._task: asyncio.Task[None] | None = None
        self._cycle: asyncio.Task[bool] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ensure_file(self) -> None:
        """Create the flag file seeded with the idle marker if it is absent."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            atomic_write_text(self.path, self.seed + "\n")
            log.info("[%s] seeded %s", self.name, self.path)

    async def start(self) -> None:
        if self._task is not None:
            return
        self.ensure_file()
        self._task = asyncio.create_task(self._poll_loop(), name=f"flag-{self.name}")
        log.info("[%s] watching %s every %.2fs", self.name, self.path, self.interval)

    async def stop(self) -> None:
        """Stop polling.  Safe to call before or without start()."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        # Let an in-flight handler finish and write its ACK.
        cycle, self._cycle = self._cycle, None
        if cycle is not None and not cycle.done():
            # Failures are logged by _cycle_done.
            await asyncio.wait({cycle})

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.session.busy:
                log.debug("[%s] previous cycle still running; skipping poll", self.name)
                continue
            self._cycle = asyncio.create_task(
                self.poll_once(), name=f"flag-{self.name}-cycle"
            )
            self._cycle.add_done_callback(self._cycle_done)

    def _cycle_done(self, task: asyncio.Task[bool]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("[%s] poll cycle failed", self.name, exc_info=exc)

    def _read(self) -> str:
        try:
            return self.path.read_bytes().decode("utf-8")
        except FileNotFoundError:
            return ""
        except UnicodeDecodeError:
            # Usually a write caught halfway; the next poll sees the rest.
            log.debug("[%s] ignoring undecodable content in %s", self.name, self.path)
            return ""
        except OSError:
            log.warning("[%s] could not read %s", self.name, self.path, exc_info=True)
            return ""

    async def poll_once(self) -> bool:
        """Run one poll cycle.  Returns True if a command was honored."""
        if self.session.busy:
            return False
        self.session.busy = True
        try:
            content = self._read()
            try:
                command = self.grammar.parse(content)
            except MalformedCommand as exc:
                log.debug("[%s] ignoring: %s", self.name, exc)
                return False
            if command is None or not self.grammar.is_new(command, self.session):
                return False

            # Mark as seen before the handler so a slow handler can't be re-triggered.
            self.grammar.remember(command, self.session)
            self.session.honored += 1
            log.info("[%s] honoring command %r", self.name, command.payload)
            try:
                await self.handler(command)
            except Exception:
                log.exception("[%s] handler failed for %r", self.name, command.payload)

            try:
                atomic_write_text(self.path, self.grammar.ack(command) + "\n")
            except OSError:
                log.warning("[%s] could not write ACK to %s", self.name, self.path, exc_info=True)
            return True
        finally:
            self.session.busy = False
