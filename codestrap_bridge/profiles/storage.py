"""File-backed editor host over a code-server user-data directory.

Profiles live in ``User/globalStorage/storage.json``::

    {
      "userDataProfiles": [{"location": "1f2e3d4c", "name": "codestrap"}],
      "profileAssociations": {"workspaces": {"file:///config/workspace": "1f2e3d4c"}}
    }

and each non-default profile gets ``User/profiles/<location>/``.  Changes
take effect the next time the editor window loads.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any

from ..errors import CapabilityUnsupported
from ..io_utils import atomic_write_text, read_json_object, write_json_object
from ..models import ProfileInfo
from .host import (
    CREATE_AND_SWITCH_PROFILE,
    CREATE_PROFILE,
    SWITCH_PROFILE,
    EditorHost,
    ProfileCapability,
)

log = logging.getLogger(__name__)

DEFAULT_PROFILE = ProfileInfo(id="__default__profile__", name="Default")


def _name_arg(arg: Any) -> str:
    """Accept the string form or the structured ``{"name": ...}`` form."""
    if isinstance(arg, str):
        name = arg.strip()
    elif isinstance(arg, dict) and isinstance(arg.get("name"), str):
        name = arg["name"].strip()
    else:
        raise TypeError(f"unsupported profile argument: {arg!r}")
    if not name:
        raise ValueError("profile name must not be empty")
    return name


class StorageProfiles(ProfileCapability):
    def __init__(self, user_data_dir: Path, workspace_dir: Path) -> None:
        self.user_dir = Path(user_data_dir) / "User"
        self.storage_path = self.user_dir / "globalStorage" / "storage.json"
        self.workspace_uri = Path(workspace_dir).resolve().as_uri()

    def _load(self) -> dict[str, Any]:
        return read_json_object(self.storage_path)

    async def list_profiles(self) -> list[ProfileInfo]:
        profiles = [DEFAULT_PROFILE]
        for entry in self._load().get("userDataProfiles") or []:
            if not isinstance(entry, dict):
                continue
            location, name = entry.get("location"), entry.get("name")
            if isinstance(location, str) and isinstance(name, str):
                profiles.append(ProfileInfo(id=location, name=name))
        return profiles

    async def create_profile(
        self, name: str, baseline: dict[str, Any] | None = None
    ) -> ProfileInfo:
        existing = await self.find(name)
        if existing is not None:
            return existing

        profile = ProfileInfo(id=uuid.uuid4().hex[:8], name=name.strip())
        profile_dir = self.user_dir / "profiles" / profile.id
        atomic_write_text(
            profile_dir / "settings.json",
            json.dumps(baseline or {}, indent=2) + "\n",
        )

        data = self._load()
        entries = data.get("userDataProfiles")
        if not isinstance(entries, list):
            entries = []
        entries.append({"location": profile.id, "name": profile.name})
        data["userDataProfiles"] = entries
        write_json_object(self.storage_path, data)
        log.info("Created profile '%s' (%s)", profile.name, profile.id)
        return profile

    async def active_profile(self) -> ProfileInfo | None:
        associations = self._load().get("profileAssociations") or {}
        workspaces = associations.get("workspaces") or {}
        location = workspaces.get(self.workspace_uri)
        if not isinstance(location, str):
            return DEFAULT_PROFILE
        for profile in await self.list_profiles():
            if profile.id == location:
                return profile
        return DEFAULT_PROFILE

    async def select(self, profile: ProfileInfo) -> None:
        data = self._load()
        associations = data.get("profileAssociations")
        if not isinstance(associations, dict):
            associations = {}
        workspaces = associations.get("workspaces")
        if not isinstance(workspaces, dict):
            workspaces = {}
        workspaces[self.workspace_uri] = profile.id
        associations["workspaces"] = workspaces
        associations.setdefault("emptyWindows", {})
        data["profileAssociations"] = associations
        write_json_object(self.storage_path, data)
        log.info("Associated %s with profile '%s'", self.workspace_uri, profile.name)


class StorageHost(EditorHost):
    """Editor host that edits profile state on disk.

    Only the profile commands are available; anything else (window reload,
    UI commands) raises CapabilityUnsupported.
    """

    def __init__(self, user_data_dir: Path, workspace_dir: Path) -> None:
        self.profiles = StorageProfiles(user_data_dir, workspace_dir)

    async def execute_command(self, command: str, *args: Any) -> Any:
        if command not in (SWITCH_PROFILE, CREATE_AND_SWITCH_PROFILE, CREATE_PROFILE):
            raise CapabilityUnsupported(command)
        if len(args) != 1:
            # No-argument forms open an interactive picker in the real editor.
            raise TypeError(f"{command} requires exactly one argument")

        name = _name_arg(args[0])
        profiles: StorageProfiles = self.profiles  # type: ignore[assignment]

        if command == SWITCH_PROFILE:
            profile = await profiles.find(name)
            if profile is None:
                return False
            await profiles.select(profile)
            return True

        profile = await profiles.create_profile(name)
        if command == CREATE_AND_SWITCH_PROFILE:
            await profiles.select(profile)
        return True
