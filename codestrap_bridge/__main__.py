"""Run the codestrap bridge daemon.

Usage:
    python -m codestrap_bridge [--port PORT] [--env-file FILE]

Watches the reload and profile-switch flag files, bootstraps the editor
profile once, and serves the panel actions as an MCP server over HTTP.
"""

import argparse
import asyncio
import logging
import signal
from pathlib import Path

import uvicorn

from codestrap_bridge.config import Config
from codestrap_bridge.daemon import BridgeDaemon
from codestrap_bridge.server import create_server

log = logging.getLogger(__name__)


async def _serve_until_signal(app, port: int) -> None:
    uvi = uvicorn.Server(uvicorn.Config(app, host="127.0.0.1", port=port, log_level="info"))

    # uvicorn.Server.serve() installs its own SIGINT/SIGTERM handlers;
    # _serve() leaves ours in place.
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    serving = asyncio.create_task(uvi._serve(), name="control-server")
    await stop.wait()
    log.info("Signal received, stopping control server")
    uvi.should_exit = True
    await serving


async def _run(config: Config, port: int) -> None:
    daemon = BridgeDaemon(config)
    mcp = create_server(daemon.actions, daemon.output, daemon.notifier, port=port)

    await daemon.start()
    try:
        await _serve_until_signal(mcp.streamable_http_app(), port)
    finally:
        await daemon.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description="Codestrap editor bridge daemon")
    parser.add_argument(
        "--port", type=int, default=None,
        help="Control server port (default: CODESTRAP_CONTROL_PORT or 8902)",
    )
    parser.add_argument(
        "--env-file", type=Path, default=None,
        help="Load environment from this .env file first",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [codestrap-bridge] %(levelname)s %(message)s",
    )

    config = Config.from_env(args.env_file)
    port = args.port or config.control_port
    log.info("Starting codestrap-bridge on http://127.0.0.1:%d/mcp", port)
    asyncio.run(_run(config, port))


if __name__ == "__main__":
    main()
