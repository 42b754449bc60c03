"""castio-raspberrypi-agent entry point.

Runs on the Raspberry Pi itself, next to the ``pigpiod`` daemon.

Usage:
  castio-raspberrypi-agent [--config PATH] [--log-dir DIR] [--verbose]
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

import typer

from castio_sdk import log_setup
from castio_sdk.errors import CastioError

from .agent import RaspberryPiAgent
from .config import DEFAULT_CONFIG_FILE, AgentConfig, load_config
from .hardware import PinController

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="castio-raspberrypi-agent",
    help="Drives Raspberry Pi pins on behalf of a castio host.",
    add_completion=False,
    invoke_without_command=True,
)


@app.callback()
def run(
    config: Path = typer.Option(
        DEFAULT_CONFIG_FILE,
        "--config",
        "-c",
        help="Agent config file (JSON).",
        envvar="CASTIO_AGENT_CONFIG",
    ),
    log_dir: str = typer.Option(
        "",
        "--log-dir",
        help=f"Directory for rotating log files. Defaults to {log_setup.DEFAULT_LOG_DIR}",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Connect to the castio host and serve pin commands until interrupted."""
    log_setup.init(
        "agent-raspberrypi",
        Path(log_dir) if log_dir else None,
        level="DEBUG" if verbose else "INFO",
        foreground=True,
    )
    try:
        agent_config = load_config(config)
        asyncio.run(_serve(agent_config))
    except CastioError as exc:
        logger.error("%s", exc.message)
        raise typer.Exit(1) from exc


async def _serve(config: AgentConfig) -> None:
    pins = PinController.connect(
        config.pigpio_host, config.pigpio_port, debounce_us=config.debounce_us
    )
    agent = RaspberryPiAgent(config, pins)

    def _shutdown(*_: object) -> None:
        logger.info("Shutdown signal received.")
        asyncio.ensure_future(agent.stop())

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, _shutdown)
    else:
        signal.signal(signal.SIGTERM, _shutdown)
        signal.signal(signal.SIGINT, _shutdown)

    try:
        await agent.run()
    finally:
        pins.cleanup()


if __name__ == "__main__":
    app()
