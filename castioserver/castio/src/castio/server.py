"""FastAPI status API for the castio host.

Runs beside the channel server inside the same asyncio event loop.
Endpoints:
  GET /status     — process and channel server status
  GET /services   — registered service types and running instances
  GET /namespaces — bound channel namespaces and their connected peers
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .config import Config, load_state
from .process import is_running, read_pid

logger = logging.getLogger(__name__)

app = FastAPI(title="castio", version="0.1.0", docs_url=None, redoc_url=None)

# Injected by _server_process.py once the registry and channel server exist.
_get_service_types: Callable[[], list[str]] | None = None
_get_instance_info: Callable[[], list[dict[str, Any]]] | None = None
_get_namespace_info: Callable[[], dict[str, list[str]]] | None = None


def set_service_info_provider(
    service_types: Callable[[], list[str]],
    instances: Callable[[], list[dict[str, Any]]],
) -> None:
    global _get_service_types, _get_instance_info
    _get_service_types = service_types
    _get_instance_info = instances


def set_namespace_info_provider(fn: Callable[[], dict[str, list[str]]]) -> None:
    global _get_namespace_info
    _get_namespace_info = fn


@app.get("/status")
async def get_status() -> JSONResponse:
    state = load_state()
    pid = read_pid()
    return JSONResponse(
        {
            "running": is_running(pid),
            "pid": pid,
            "started_at": state.started_at,
            "channel_url": state.channel_url,
        }
    )


@app.get("/services")
async def get_services() -> JSONResponse:
    return JSONResponse(
        {
            "service_types": _get_service_types() if _get_service_types else [],
            "instances": _get_instance_info() if _get_instance_info else [],
        }
    )


@app.get("/namespaces")
async def get_namespaces() -> JSONResponse:
    namespaces = _get_namespace_info() if _get_namespace_info else {}
    return JSONResponse(
        {
            "namespaces": [
                {"name": name, "peers": peers} for name, peers in sorted(namespaces.items())
            ]
        }
    )


async def run_http_server(config: Config, stop_event: asyncio.Event) -> None:
    """Serve the status API until *stop_event* is set."""
    server = uvicorn.Server(
        uvicorn.Config(
            app=app,
            host=config.http_host,
            port=config.http_port,
            log_level="warning",
            loop="none",
        )
    )
    serve_task = asyncio.create_task(server.serve())
    stop_task = asyncio.create_task(stop_event.wait())

    done, _ = await asyncio.wait(
        [serve_task, stop_task], return_when=asyncio.FIRST_COMPLETED
    )
    if stop_task in done:
        server.should_exit = True
        await serve_task
    else:
        stop_task.cancel()
        # uvicorn returned on its own, e.g. the port was taken.
        serve_task.result()
    logger.info("HTTP server stopped.")
