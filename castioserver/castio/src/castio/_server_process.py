"""Entry point for the detached server process spawned by ``castio start``.

Runs the channel server (remote agents connect here) and the FastAPI status
API inside one asyncio event loop, loads the configured service bundles and
creates every enabled service instance.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

logger = logging.getLogger("castio.server_process")


async def _main(foreground: bool = False) -> None:
    from castio_sdk import log_setup
    from castio.config import load_config, mark_started, mark_stopped, resolve_log_dir
    from castio.host import ServiceHost, load_bundles
    from castio.process import remove_pid, write_pid
    from castio.registry import ServiceRegistry
    from castio.server import (
        run_http_server,
        set_namespace_info_provider,
        set_service_info_provider,
    )
    from castio.service_config import list_enabled_services
    from castio.socket_server import ChannelServer

    config = load_config()
    log_setup.init(
        "server",
        resolve_log_dir(config),
        level=config.log_level,
        foreground=foreground,
        log_levels=config.log_levels or None,
    )
    stop_event = asyncio.Event()
    write_pid()

    def _shutdown(*_: object) -> None:
        logger.info("Shutdown signal received.")
        stop_event.set()

    if sys.platform == "win32":
        signal.signal(signal.SIGBREAK, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)
        signal.signal(signal.SIGINT, _shutdown)
    else:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, _shutdown)

    channel_server = ChannelServer(config.channel_host, config.channel_port)
    registry = ServiceRegistry()
    host = ServiceHost(registry=registry, channel_server=channel_server)
    set_service_info_provider(registry.get_service_types, registry.get_instance_info)
    set_namespace_info_provider(channel_server.get_namespace_info)

    try:
        load_bundles(host, config.bundles)
        await channel_server.start()
        for instance in list_enabled_services():
            result = await registry.create_instance(instance)
            if not result.ok:
                logger.warning("Service '%s' not started: %s", instance.name, result.error)
        mark_started(channel_server.url)
        logger.info(
            "castio server running. HTTP: http://%s:%d/status  channels: %s",
            config.http_host,
            config.http_port,
            channel_server.url,
        )
        await run_http_server(config, stop_event)
    finally:
        await registry.stop_all()
        await channel_server.close()
        remove_pid()
        mark_stopped()
        logger.info("castio server exited.")


if __name__ == "__main__":
    asyncio.run(_main(foreground="--foreground" in sys.argv))
