from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_CONTROL_PORT = 8902
DEFAULT_RESTART_URL = "http://127.0.0.1:9000/restart"
DEFAULT_POLICY_FILE = "/config/.codestrap/policies.yml"


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be > 0")
    return value


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class GitHubDefaults:
    """Initial values for the panel's GitHub form."""

    username: str = ""
    token: str = ""
    name: str = ""
    email: str = ""
    repos: str = ""
    pull: str = ""


@dataclass(frozen=True)
class Config:
    flag_dir: Path
    state_dir: Path
    codestrap_bin: str | None = None
    poll_interval: float = 0.5
    profile_override: str | None = None
    startup_query: str | None = None
    user_data_dir: Path = Path("/config/workspace/config")
    workspace_dir: Path = Path("/config/workspace")
    policy_file: Path = Path(DEFAULT_POLICY_FILE)
    restart_url: str = DEFAULT_RESTART_URL
    control_port: int = DEFAULT_CONTROL_PORT
    github: GitHubDefaults = field(default_factory=GitHubDefaults)

    @property
    def reload_flag(self) -> Path:
        return self.flag_dir / "reload.signal"

    @property
    def profile_flag(self) -> Path:
        return self.flag_dir / "profile.signal"

    @property
    def state_file(self) -> Path:
        return self.state_dir / "state.json"

    @classmethod
    def from_env(cls, env_path: str | Path | None = None) -> Config:
        load_dotenv(env_path)

        flag_dir = Path(
            os.getenv("CODESTRAP_FLAG_DIR") or Path.home() / ".codestrap"
        ).expanduser()
        state_dir = Path(os.getenv("CODESTRAP_STATE_DIR") or flag_dir / "state").expanduser()

        username = os.getenv("GITHUB_USERNAME", "")
        github = GitHubDefaults(
            username=username,
            token=os.getenv("GITHUB_TOKEN", ""),
            name=os.getenv("GIT_NAME") or username,
            email=os.getenv("GIT_EMAIL", ""),
            repos=os.getenv("GITHUB_REPOS", ""),
            pull=os.getenv("GITHUB_PULL", ""),
        )

        return cls(
            flag_dir=flag_dir,
            state_dir=state_dir,
            codestrap_bin=os.getenv("CODESTRAP_BIN") or None,
            poll_interval=_float_env("CODESTRAP_POLL_INTERVAL", 0.5),
            profile_override=os.getenv("CODESTRAP_PROFILE") or None,
            startup_query=os.getenv("CODESTRAP_STARTUP_QUERY") or None,
            user_data_dir=Path(
                os.getenv("CODESTRAP_USER_DATA_DIR", "/config/workspace/config")
            ).expanduser(),
            workspace_dir=Path(os.getenv("WORKSPACE_DIR", "/config/workspace")).expanduser(),
            policy_file=Path(os.getenv("CODESTRAP_POLICY_FILE", DEFAULT_POLICY_FILE)).expanduser(),
            restart_url=os.getenv("CODESTRAP_RESTART_URL", DEFAULT_RESTART_URL),
            control_port=_int_env("CODESTRAP_CONTROL_PORT", DEFAULT_CONTROL_PORT),
            github=github,
        )
