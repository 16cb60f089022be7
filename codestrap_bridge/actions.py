"""Panel actions: the codestrap operations the editor side panel can trigger.

Each action validates its input, builds the CLI arguments and runs the
CLI through the ProcessRunner.  The result is always a single Completion,
including when validation fails before anything is spawned.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import httpx
import yaml

from .config import Config
from .errors import ExecutableNotFound
from .models import Completion
from .output import Notifier
from .profiles.host import EditorHost
from .runner import ProcessRunner

log = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
SUDO_POLICY_KEY = "allow-sudo-password-change"
EXTENSION_SCOPES = ("all", "missing")
RESTART_TIMEOUT = 2.0  # seconds

# Follow-up after a profile is created or switched to: merge every config
# file into the new profile, then install whatever extensions it lacks.
APPLY_CONFIG_ARGS = ["config", "-s", "true", "-k", "true", "-t", "true", "-e", "true"]
APPLY_EXTENSIONS_ARGS = ["extensions", "-i", "missing"]


def sudo_password_change_allowed(policy_file: Path) -> bool:
    """Best-effort read of the policy file; anything unexpected means "no"."""
    try:
        text = Path(policy_file).read_text(encoding="utf-8")
    except OSError:
        return False
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError:
        log.warning("Could not parse policy file %s", policy_file)
        return False
    if not isinstance(data, dict):
        return False
    return data.get(SUDO_POLICY_KEY) is True


async def call_restart_gate(
    url: str,
    *,
    timeout: float = RESTART_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Ask the supervisor to restart the stack.  Never raises."""
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            await client.get(url)
    except httpx.HTTPError as exc:
        log.debug("Restart gate %s unreachable: %s", url, exc)
        return False
    return True


def _tf(value: bool) -> str:
    return "true" if value else "false"


class PanelActions:
    def __init__(
        self,
        config: Config,
        runner: ProcessRunner,
        notifier: Notifier,
        host: EditorHost,
        *,
        restart_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.runner = runner
        self.notifier = notifier
        self.host = host
        self.restart_transport = restart_transport
        # Read once, like the panel does when it opens.
        self.allow_sudo_password_change = sudo_password_change_allowed(config.policy_file)
        self._background: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _profile_env(self) -> dict[str, str]:
        profiles = self.host.profiles
        if not profiles.supported:
            return {}
        try:
            active = await profiles.active_profile()
        except Exception:
            log.debug("Could not read active profile", exc_info=True)
            return {}
        if active is None:
            return {}
        return {"CODESTRAP_PROFILE_ID": active.id, "CODESTRAP_PROFILE_NAME": active.name}

    async def _run(self, operation: str, args: list[str]) -> Completion:
        completions: list[Completion] = []
        env = await self._profile_env()
        try:
            await self.runner.run(operation, args, env=env, on_complete=completions.append)
        except (ExecutableNotFound, OSError) as exc:
            # Already surfaced to the user by the runner.
            log.debug("codestrap %s did not run: %s", operation, exc)
        return completions[0] if completions else Completion(operation, False)

    def _check_password(self, password: str, confirm: str) -> bool:
        if len(password) < MIN_PASSWORD_LENGTH:
            self.notifier.error(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
            )
            return False
        if password != confirm:
            self.notifier.error("Passwords do not match.")
            return False
        return True

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def set_password(self, password: str, confirm: str) -> Completion:
        if not self._check_password(password or "", confirm or ""):
            return Completion("passwd", False)
        return await self._run("passwd", ["passwd", "--set", password, confirm])

    async def set_sudo_password(self, password: str, confirm: str) -> Completion:
        if not self.allow_sudo_password_change:
            self.notifier.warning("Changing sudo password is disabled by policy.")
            return Completion("sudopasswd", False)
        if not self._check_password(password or "", confirm or ""):
            return Completion("sudopasswd", False)
        return await self._run("sudopasswd", ["sudopasswd", "--set", password, confirm])

    async def run_config(
        self,
        *,
        settings: bool | None = None,
        keybindings: bool | None = None,
        tasks: bool | None = None,
        extensions: bool | None = None,
    ) -> Completion:
        args = ["config"]
        for flag, value in (
            ("-s", settings),
            ("-k", keybindings),
            ("-t", tasks),
            ("-e", extensions),
        ):
            if value is not None:
                args.extend([flag, _tf(value)])
        return await self._run("config", args)

    async def apply_extensions(self, uninstall: str = "", install: str = "") -> Completion:
        un = (uninstall or "").strip().lower()
        ins = (install or "").strip().lower()
        args = ["extensions"]
        if un in EXTENSION_SCOPES:
            args.extend(["-u", un])
        if ins in EXTENSION_SCOPES:
            args.extend(["-i", ins])
        if len(args) == 1:
            self.notifier.warning("Select an Install or Uninstall scope first.")
            return Completion("extensions", False)
        return await self._run("extensions", args)

    async def run_github(
        self,
        *,
        auto: bool = False,
        username: str = "",
        token: str = "",
        name: str = "",
        email: str = "",
        repos: str = "",
        pull: bool | None = None,
    ) -> Completion:
        args = ["github"]
        if auto:
            args.append("--auto")
        else:
            for flag, value in (
                ("-u", username),
                ("-t", token),
                ("-n", name),
                ("-e", email),
                ("-r", repos),
            ):
                if value:
                    args.extend([flag, value])
            if pull is not None:
                args.extend(["-p", _tf(pull)])
        return await self._run("github", args)

    async def apply_profile(self) -> list[Completion]:
        """Merge config and reconcile extensions concurrently; wait for both."""
        completions = await asyncio.gather(
            self._run("config", list(APPLY_CONFIG_ARGS)),
            self._run("extensions", list(APPLY_EXTENSIONS_ARGS)),
        )
        log.info(
            "Profile apply finished: %s",
            ", ".join(f"{c.operation}={'ok' if c.ok else 'failed'}" for c in completions),
        )
        return list(completions)

    def request_restart(self) -> asyncio.Task[bool]:
        """Fire the restart gate in the background and tell the user right away."""
        task = asyncio.create_task(
            call_restart_gate(self.config.restart_url, transport=self.restart_transport),
            name="restart-gate",
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        self.notifier.info("Reboot requested.")
        return task

    def initial_state(self) -> dict[str, Any]:
        gh = self.config.github
        return {
            "GITHUB_USERNAME": gh.username,
            "GITHUB_TOKEN": gh.token,
            "GIT_NAME": gh.name,
            "GIT_EMAIL": gh.email,
            "GITHUB_REPOS": gh.repos,
            "GITHUB_PULL": gh.pull,
            "ALLOW_SUDO_PASSWORD_CHANGE": self.allow_sudo_password_change,
        }
