"""MCP control server exposing the panel actions over HTTP."""

from __future__ import annotations

from dataclasses import asdict

from mcp.server.fastmcp import FastMCP

from .actions import PanelActions
from .config import DEFAULT_CONTROL_PORT
from .models import Completion
from .output import LogNotifier, OutputLog


def _completion(c: Completion) -> dict:
    return asdict(c)


def create_server(
    actions: PanelActions,
    output: OutputLog,
    notifier: LogNotifier,
    port: int = DEFAULT_CONTROL_PORT,
) -> FastMCP:
    """Create and configure the codestrap control server."""

    mcp = FastMCP(
        name="codestrap",
        instructions=(
            "Runs codestrap provisioning operations (config sync, extensions, "
            "GitHub bootstrap, password changes) for this editor. Use get_output "
            "to read the CLI output and list_notifications for recent results."
        ),
        host="127.0.0.1",
        port=port,
        stateless_http=True,
    )

    # ------------------------------------------------------------------
    # Tool: run_config
    # ------------------------------------------------------------------
    @mcp.tool()
    async def run_config(
        settings: bool | None = None,
        keybindings: bool | None = None,
        tasks: bool | None = None,
        extensions: bool | None = None,
    ) -> dict:
        """Sync editor config files from the workspace into the profile.

        Each flag left unset is not passed to the CLI.

        Args:
            settings: Merge settings.json.
            keybindings: Merge keybindings.json.
            tasks: Merge tasks.json.
            extensions: Merge extensions.json recommendations.
        """
        return _completion(
            await actions.run_config(
                settings=settings,
                keybindings=keybindings,
                tasks=tasks,
                extensions=extensions,
            )
        )

    # ------------------------------------------------------------------
    # Tool: apply_extensions
    # ------------------------------------------------------------------
    @mcp.tool()
    async def apply_extensions(uninstall: str = "", install: str = "") -> dict:
        """Install and/or uninstall extensions listed in extensions.json.

        Args:
            uninstall: "all", "missing", or empty to skip.
            install: "all", "missing", or empty to skip.
        """
        return _completion(await actions.apply_extensions(uninstall, install))

    # ------------------------------------------------------------------
    # Tool: run_github
    # ------------------------------------------------------------------
    @mcp.tool()
    async def run_github(
        auto: bool = False,
        username: str = "",
        token: str = "",
        name: str = "",
        email: str = "",
        repos: str = "",
        pull: bool | None = None,
    ) -> dict:
        """Configure git identity and clone repositories.

        With auto=True the CLI reads everything from its environment and the
        other arguments are ignored.
        """
        return _completion(
            await actions.run_github(
                auto=auto,
                username=username,
                token=token,
                name=name,
                email=email,
                repos=repos,
                pull=pull,
            )
        )

    # ------------------------------------------------------------------
    # Tools: passwords
    # ------------------------------------------------------------------
    @mcp.tool()
    async def set_password(password: str, confirm: str) -> dict:
        """Set the editor login password (at least 8 characters)."""
        return _completion(await actions.set_password(password, confirm))

    @mcp.tool()
    async def set_sudo_password(password: str, confirm: str) -> dict:
        """Set the sudo password, if policies.yml allows it."""
        return _completion(await actions.set_sudo_password(password, confirm))

    # ------------------------------------------------------------------
    # Tool: request_restart
    # ------------------------------------------------------------------
    @mcp.tool()
    async def request_restart() -> dict:
        """Ask the container supervisor to restart the editor stack."""
        actions.request_restart()
        return {"status": "requested"}

    # ------------------------------------------------------------------
    # Tools: state
    # ------------------------------------------------------------------
    @mcp.tool()
    async def get_initial_state() -> dict:
        """Initial values for the panel forms, including the sudo policy flag."""
        return actions.initial_state()

    @mcp.tool()
    async def get_output(tail: int = 200) -> dict:
        """Get the most recent codestrap CLI output lines.

        Args:
            tail: Number of lines to return from the end of the buffer.
        """
        lines = output.tail(tail)
        return {
            "seq": output.seq,
            "lines": [{"stream": line.stream.value, "text": line.text} for line in lines],
        }

    @mcp.tool()
    async def list_notifications(limit: int = 20) -> dict:
        """List recent user-facing notifications (successes, warnings, errors)."""
        items = notifier.recent(limit)
        return {"count": len(items), "notifications": items}

    return mcp
