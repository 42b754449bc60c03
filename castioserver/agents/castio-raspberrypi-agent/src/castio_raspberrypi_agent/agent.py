"""RaspberryPiAgent — the websocket client that executes proxy commands.

Usage inside ``main.py``::

    pins = PinController.connect(config.pigpio_host, config.pigpio_port)
    agent = RaspberryPiAgent(config, pins)
    try:
        await agent.run()
    finally:
        pins.cleanup()

The agent:
  1. Connects to the castio host's raspberrypi namespace.
  2. Dispatches ``read`` / ``write`` / ``writePwm`` / ``interrupt`` events
     from the proxy to the ``PinController``.
  3. Replies with ``read {id, value}`` and reports every armed edge as
     ``interrupt {id, value}``.
  4. On any transport failure waits ``retry_interval`` ms and reconnects,
     until ``stop()`` is called. The proxy replays its pin state on every
     new connection, so nothing is resent from this side.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

import websockets
from pydantic import ValidationError
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed, InvalidURI, WebSocketException

from castio_sdk import rpc
from castio_sdk.models import EVENT_INTERRUPT, EVENT_READ, PinRequest, PinValue

from .config import AgentConfig
from .hardware import PinController

logger = logging.getLogger(__name__)


class AgentState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class RaspberryPiAgent:
    """Maintains the connection to the host and drives the pins."""

    def __init__(self, config: AgentConfig, pins: PinController) -> None:
        self._config = config
        self._pins = pins
        self._state = AgentState.DISCONNECTED
        self._stop_event = asyncio.Event()
        self._ws: ClientConnection | None = None
        self._outbox: asyncio.Queue[str] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._running = False

    @property
    def state(self) -> AgentState:
        return self._state

    async def run(self) -> None:
        """Connect and serve, reconnecting after failures until ``stop()``."""
        if self._running:
            raise RuntimeError("Agent is already running")
        self._running = True
        self._loop = asyncio.get_running_loop()
        delay = self._config.retry_seconds
        try:
            while not self._stop_event.is_set():
                try:
                    await self._connect_and_run()
                    if self._stop_event.is_set():
                        break
                    logger.warning("Disconnected from host. Reconnecting in %.1fs…", delay)
                except ConnectionClosed:
                    if self._stop_event.is_set():
                        break
                    logger.warning("Connection to host lost. Reconnecting in %.1fs…", delay)
                except (OSError, InvalidURI, WebSocketException) as exc:
                    if self._stop_event.is_set():
                        break
                    logger.warning(
                        "Could not reach host (%s). Reconnecting in %.1fs…", exc, delay
                    )

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            self._state = AgentState.DISCONNECTED
        logger.info("Agent stopped.")

    async def stop(self) -> None:
        """Stop reconnecting and close the current connection."""
        self._stop_event.set()
        if self._ws is not None:
            await self._ws.close()

    async def _connect_and_run(self) -> None:
        logger.info("Connecting to %s", self._config.url)
        try:
            async with websockets.connect(self._config.url) as ws:
                self._ws = ws
                if self._stop_event.is_set():
                    return
                self._state = AgentState.CONNECTED
                logger.info("Connected to host.")
                outbox: asyncio.Queue[str] = asyncio.Queue()
                self._outbox = outbox
                writer = asyncio.create_task(self._write_loop(ws, outbox))
                try:
                    async for raw in ws:
                        self._handle_frame(raw)
                finally:
                    self._outbox = None
                    writer.cancel()
                    try:
                        await writer
                    except asyncio.CancelledError:
                        pass
        finally:
            self._ws = None
            self._state = AgentState.DISCONNECTED

    @staticmethod
    async def _write_loop(ws: ClientConnection, outbox: asyncio.Queue[str]) -> None:
        while True:
            frame = await outbox.get()
            try:
                await ws.send(frame)
            except ConnectionClosed:
                return

    def _emit(self, event: str, payload: dict[str, Any]) -> None:
        if self._outbox is None:
            logger.debug("Not connected; dropping %s %s", event, payload)
            return
        self._outbox.put_nowait(rpc.build_notification(event, payload))

    # ------------------------------------------------------------------
    # Inbound dispatch
    # ------------------------------------------------------------------

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            req = rpc.parse_notification(raw)
        except ValueError as exc:
            logger.warning("Invalid frame from host: %s", exc)
            return

        try:
            match req.method:
                case "read":
                    pin_id = PinRequest.model_validate(req.params).id
                    value = self._pins.read(pin_id)
                    if value is not None:
                        self._emit(EVENT_READ, {"id": pin_id, "value": value})

                case "write":
                    msg = PinValue.model_validate(req.params)
                    self._pins.write(msg.id, msg.value)

                case "writePwm":
                    msg = PinValue.model_validate(req.params)
                    self._pins.write_pwm(msg.id, msg.value)

                case "interrupt":
                    pin_id = PinRequest.model_validate(req.params).id
                    self._pins.set_interrupt_callback(
                        pin_id, lambda level, pin_id=pin_id: self._on_edge(pin_id, level)
                    )

                case _:
                    logger.warning("Unknown event from host: %s", req.method)

        except ValidationError:
            logger.warning("Malformed %s payload from host: %.200s", req.method, req.params)

    def _on_edge(self, pin_id: int, level: int) -> None:
        # Runs on pigpio's callback thread.
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(
            self._emit, EVENT_INTERRUPT, {"id": pin_id, "value": level}
        )
