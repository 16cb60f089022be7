"""Codestrap bridge. Lets the codestrap CLI and the editor talk through flag files.

Components:
  - ProcessRunner: runs the codestrap CLI and streams its output
  - FlagChannel:   polls a flag file and delivers each command at most once
  - profiles:      profile switching and the one-time startup bootstrap
"""

from codestrap_bridge.flag_channel import FlagChannel, NameGrammar, NonceGrammar
from codestrap_bridge.runner import ProcessRunner

__all__ = ["FlagChannel", "NameGrammar", "NonceGrammar", "ProcessRunner"]

__version__ = "0.6.0"
