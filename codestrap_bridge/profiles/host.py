"""Editor host capabilities.

Older editor builds have no profile API at all.  Rather than probing for
methods at every call site, a host exposes a ``ProfileCapability`` that is
either a working implementation or ``UnsupportedProfiles``; callers check
``supported`` once.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..errors import CapabilityUnsupported
from ..models import ProfileInfo

# Host command ids.  The profile commands take a name or {"name": ...};
# calling them without an argument opens an interactive picker.
SWITCH_PROFILE = "workbench.profiles.actions.switchProfile"
CREATE_AND_SWITCH_PROFILE = "workbench.profiles.actions.createAndSwitchProfile"
CREATE_PROFILE = "workbench.profiles.actions.createProfile"
RELOAD_WINDOW = "workbench.action.reloadWindow"


class ProfileCapability(ABC):
    supported: bool = True

    @abstractmethod
    async def list_profiles(self) -> list[ProfileInfo]:
        ...

    @abstractmethod
    async def create_profile(
        self, name: str, baseline: dict[str, Any] | None = None
    ) -> ProfileInfo:
        ...

    @abstractmethod
    async def active_profile(self) -> ProfileInfo | None:
        ...

    async def find(self, name_or_id: str) -> ProfileInfo | None:
        for profile in await self.list_profiles():
            if profile.matches(name_or_id):
                return profile
        return None


class UnsupportedProfiles(ProfileCapability):
    """Profile capability of a host without profile management."""

    supported = False

    async def list_profiles(self) -> list[ProfileInfo]:
        raise CapabilityUnsupported("profiles")

    async def create_profile(
        self, name: str, baseline: dict[str, Any] | None = None
    ) -> ProfileInfo:
        raise CapabilityUnsupported("profiles")

    async def active_profile(self) -> ProfileInfo | None:
        return None


class EditorHost(ABC):
    profiles: ProfileCapability

    @abstractmethod
    async def execute_command(self, command: str, *args: Any) -> Any:
        """Run a host command.  Raises CapabilityUnsupported if unknown."""
        ...
