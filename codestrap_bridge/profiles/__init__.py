"""Editor profile management: host capabilities, switching and bootstrap."""

from codestrap_bridge.profiles.bootstrap import ProfileBootstrap, SwitchGuard, resolve_target_profile
from codestrap_bridge.profiles.host import EditorHost, ProfileCapability, UnsupportedProfiles
from codestrap_bridge.profiles.storage import StorageHost
from codestrap_bridge.profiles.switcher import ProfileSwitcher, ProfileSwitchHandler

__all__ = [
    "EditorHost",
    "ProfileBootstrap",
    "ProfileCapability",
    "ProfileSwitchHandler",
    "ProfileSwitcher",
    "StorageHost",
    "SwitchGuard",
    "UnsupportedProfiles",
    "resolve_target_profile",
]
