"""Startup profile bootstrap.

Runs once per daemon start: make sure the target profile exists, switch to
it the first time only, and if anything changed re-apply codestrap's
config and extensions inside the new profile.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs

from ..io_utils import read_json_object, write_json_object
from .host import EditorHost
from .switcher import ProfileSwitcher

log = logging.getLogger(__name__)

DEFAULT_PROFILE_NAME = "codestrap"
SETTLE_DELAY = 0.4  # seconds for the new profile context to take effect


def resolve_target_profile(
    env_override: str | None,
    startup_query: str | None,
    default: str = DEFAULT_PROFILE_NAME,
) -> str:
    """Pick the profile to bootstrap.

    Explicit override first, then ``profile=`` in the startup query string
    (only some hosting modes pass one), then the default.
    """
    if env_override and env_override.strip():
        return env_override.strip()
    if startup_query:
        values = parse_qs(startup_query.lstrip("?")).get("profile") or []
        for value in values:
            if value.strip():
                return value.strip()
    return default


class SwitchGuard:
    """Persisted "already switched to <profile>" flags, one per profile name."""

    def __init__(self, state_file: Path) -> None:
        self.state_file = Path(state_file)

    @staticmethod
    def key(profile_name: str) -> str:
        return f"codestrap.profileSwitched.{profile_name.strip()}"

    def is_set(self, profile_name: str) -> bool:
        return read_json_object(self.state_file).get(self.key(profile_name)) is True

    def set(self, profile_name: str) -> None:
        data = read_json_object(self.state_file)
        data[self.key(profile_name)] = True
        write_json_object(self.state_file, data)


@dataclass
class BootstrapReport:
    target: str
    supported: bool = True
    created: bool = False
    switched: bool = False
    applied: bool = False


class ProfileBootstrap:
    def __init__(
        self,
        host: EditorHost,
        guard: SwitchGuard,
        apply: Callable[[], Awaitable[Any]],
        *,
        switcher: ProfileSwitcher | None = None,
        settle_delay: float = SETTLE_DELAY,
    ) -> None:
        self.host = host
        self.guard = guard
        self.apply = apply
        self.switcher = switcher or ProfileSwitcher(host)
        self.settle_delay = settle_delay

    async def run(self, target: str) -> BootstrapReport:
        report = BootstrapReport(target=target)
        profiles = self.host.profiles
        if not profiles.supported:
            log.info("Host has no profile API; skipping profile bootstrap for '%s'", target)
            report.supported = False
            return report

        existing = await profiles.find(target)
        if existing is None:
            await profiles.create_profile(target, {})
            report.created = True
            log.info("Created profile '%s'", target)

        if self.guard.is_set(target):
            log.info("Profile '%s' already selected once; not switching again", target)
        elif await self.switcher.switch_to(target):
            self.guard.set(target)
            report.switched = True
        else:
            log.warning("Could not switch to profile '%s' during bootstrap", target)

        if report.created or report.switched:
            await asyncio.sleep(self.settle_delay)
            await self.apply()
            report.applied = True
        return report

    async def run_safely(self, target: str) -> BootstrapReport | None:
        """Run the bootstrap without letting a failure take the daemon down."""
        try:
            return await self.run(target)
        except Exception:
            log.exception("Profile bootstrap for '%s' failed", target)
            return None
