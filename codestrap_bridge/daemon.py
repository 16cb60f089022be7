"""Wires the flag channels, profile bootstrap and panel actions together."""

from __future__ import annotations

import asyncio
import logging

from .actions import PanelActions
from .config import Config
from .errors import CapabilityUnsupported
from .flag_channel import FlagChannel, FlagCommand, NameGrammar, NonceGrammar
from .output import LogNotifier, OutputLog
from .profiles.bootstrap import ProfileBootstrap, SwitchGuard, resolve_target_profile
from .profiles.host import RELOAD_WINDOW, EditorHost
from .profiles.storage import StorageHost
from .profiles.switcher import ProfileSwitcher, ProfileSwitchHandler
from .runner import ProcessRunner

log = logging.getLogger(__name__)


class BridgeDaemon:
    """Owns every long-lived piece of the bridge for one process lifetime."""

    def __init__(
        self,
        config: Config,
        *,
        host: EditorHost | None = None,
        runner: ProcessRunner | None = None,
    ) -> None:
        self.config = config
        self.output = OutputLog()
        self.notifier = LogNotifier()
        self.host = host or StorageHost(config.user_data_dir, config.workspace_dir)
        self.runner = runner or ProcessRunner(
            self.output, self.notifier, explicit_bin=config.codestrap_bin
        )
        self.actions = PanelActions(config, self.runner, self.notifier, self.host)

        self.switcher = ProfileSwitcher(self.host)
        self.reload_channel = FlagChannel(
            config.reload_flag,
            NonceGrammar("RELOAD"),
            self._on_reload,
            interval=config.poll_interval,
            name="reload",
        )
        self.profile_channel = FlagChannel(
            config.profile_flag,
            NameGrammar(),
            ProfileSwitchHandler(
                ProfileSwitcher(self.host),
                self.notifier,
                apply=self.actions.apply_profile,
            ),
            interval=config.poll_interval,
            name="profile",
        )
        self.bootstrap = ProfileBootstrap(
            self.host,
            SwitchGuard(config.state_file),
            self.actions.apply_profile,
            switcher=self.switcher,
        )
        self._bootstrap_task: asyncio.Task[object] | None = None

    async def _on_reload(self, command: FlagCommand) -> None:
        try:
            await self.host.execute_command(RELOAD_WINDOW)
        except CapabilityUnsupported:
            log.warning("Reload %s requested but the host cannot reload windows", command.payload)

    async def start(self) -> None:
        await self.reload_channel.start()
        await self.profile_channel.start()
        target = resolve_target_profile(
            self.config.profile_override, self.config.startup_query
        )
        self._bootstrap_task = asyncio.create_task(
            self.bootstrap.run_safely(target), name="profile-bootstrap"
        )

    async def stop(self) -> None:
        await self.reload_channel.stop()
        await self.profile_channel.stop()
        if self._bootstrap_task is not None and not self._bootstrap_task.done():
            # Let a running apply finish; codestrap runs are not cancelable.
            await self._bootstrap_task
