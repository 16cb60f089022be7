"""Profile switch state machine.

Editor builds disagree on which profile commands exist and which argument
shape they take, so a switch is a short, ordered series of probes that
stops at the first one that works:

    direct switch        name, then {"name": name}
    create-and-switch    name, then {"name": name}
    create, then switch  name, then {"name": name}; on success retry direct

A failed or unsupported probe just moves on to the next one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..flag_channel import FlagCommand
from ..output import Notifier
from .host import CREATE_AND_SWITCH_PROFILE, CREATE_PROFILE, SWITCH_PROFILE, EditorHost

log = logging.getLogger(__name__)


class ProfileSwitcher:
    def __init__(self, host: EditorHost) -> None:
        self.host = host
        self.attempts: list[tuple[str, str]] = []  # (command, form) of the last switch

    async def _attempt(self, command: str, arg: Any) -> bool:
        form = "string" if isinstance(arg, str) else "structured"
        self.attempts.append((command, form))
        try:
            result = await self.host.execute_command(command, arg)
        except Exception as exc:
            log.debug("%s (%s form) not ok: %s", command, form, exc)
            return False
        return result is not False

    async def _both_forms(self, command: str, name: str) -> bool:
        return await self._attempt(command, name) or await self._attempt(
            command, {"name": name}
        )

    async def switch_to(self, name: str) -> bool:
        name = name.strip()
        self.attempts = []
        if not name:
            return False

        if await self._both_forms(SWITCH_PROFILE, name):
            log.info("Switched to profile '%s'", name)
            return True

        if await self._both_forms(CREATE_AND_SWITCH_PROFILE, name):
            log.info("Created and switched to profile '%s'", name)
            return True

        if await self._both_forms(CREATE_PROFILE, name):
            if await self._both_forms(SWITCH_PROFILE, name):
                log.info("Created profile '%s', then switched", name)
                return True

        log.warning("No profile switch strategy worked for '%s'", name)
        return False


class ProfileSwitchHandler:
    """Handler for the profile-switch flag channel.

    Switching and acknowledging are separate: the channel writes
    ``ACK:<name>`` whatever happens here.
    """

    def __init__(
        self,
        switcher: ProfileSwitcher,
        notifier: Notifier,
        *,
        apply: Callable[[], Awaitable[Any]] | None = None,
        settle_delay: float = 0.4,
    ) -> None:
        self.switcher = switcher
        self.notifier = notifier
        self.apply = apply
        self.settle_delay = settle_delay

    async def __call__(self, command: FlagCommand) -> None:
        name = command.payload
        if not await self.switcher.switch_to(name):
            self.notifier.warning(
                f"Could not switch to profile '{name}' automatically. "
                "Switch profiles manually from the Profiles menu."
            )
            return

        self.notifier.info(f"Switched to profile '{name}'.")
        if self.apply is not None:
            await asyncio.sleep(self.settle_delay)
            await self.apply()
