from __future__ import annotations

import asyncio
from pathlib import Path

from fakes import FakeRunner, unsupported_host

from codestrap_bridge.actions import PanelActions
from codestrap_bridge.config import Config
from codestrap_bridge.output import LogNotifier, OutputLog
from codestrap_bridge.server import create_server


def test_server_registers_panel_tools(tmp_path: Path) -> None:
    notifier = LogNotifier()
    actions = PanelActions(
        Config(flag_dir=tmp_path, state_dir=tmp_path, policy_file=tmp_path / "p.yml"),
        FakeRunner(),  # type: ignore[arg-type]
        notifier,
        unsupported_host(),
    )
    server = create_server(actions, OutputLog(), notifier, port=18902)

    tools = asyncio.run(server.list_tools())
    assert {tool.name for tool in tools} == {
        "run_config",
        "apply_extensions",
        "run_github",
        "set_password",
        "set_sudo_password",
        "request_restart",
        "get_initial_state",
        "get_output",
        "list_notifications",
    }
