"""ChannelServer — the namespaced websocket endpoint remote agents connect to.

Responsibilities:
  - Runs one WebSocket server on ``channel_port`` (default 9090).
  - Routes every connection to the ``Namespace`` named by its URL path
    (``ws://host:9090/raspberrypi`` → namespace ``/raspberrypi``); paths
    without a bound namespace are closed with code 4004.
  - Wraps each connection in a ``Peer`` that decodes JSON-RPC notification
    frames into per-event handler calls and serialises outbound events
    through a FIFO outbox, so ``emit`` never blocks and per-peer order holds.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any
from urllib.parse import urlparse
from uuid import uuid4

import websockets
from websockets.asyncio.server import Server, ServerConnection
from websockets.exceptions import ConnectionClosed

from castio_sdk import rpc
from castio_sdk.channel import ConnectionHandler, EventHandler
from castio_sdk.errors import ConfigError

logger = logging.getLogger(__name__)

CLOSE_UNKNOWN_NAMESPACE = 4004

# Tasks spawned for coroutine handlers; held so they are not collected mid-run.
_background: set[asyncio.Task[Any]] = set()


def _call_handler(handler: Callable[..., Any], *args: Any) -> None:
    try:
        result = handler(*args)
    except Exception:
        logger.exception("Channel handler %r failed", handler)
        return
    if inspect.isawaitable(result):
        task = asyncio.ensure_future(result)
        _background.add(task)
        task.add_done_callback(_finish_background)


def _finish_background(task: asyncio.Task[Any]) -> None:
    _background.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error("Channel handler task failed", exc_info=task.exception())


class Peer:
    """One websocket connection inside a namespace."""

    def __init__(self, ws: ServerConnection, namespace: str) -> None:
        self._ws = ws
        self._id = uuid4().hex[:12]
        self._namespace = namespace
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._disconnect_handlers: list[Callable[[Peer], Any]] = []
        # None is the close sentinel.
        self._outbox: asyncio.Queue[str | None] = asyncio.Queue()
        self._closing = False

    @property
    def id(self) -> str:
        return self._id

    @property
    def remote_address(self) -> str:
        addr = self._ws.remote_address
        return f"{addr[0]}:{addr[1]}" if addr else "?"

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def on_disconnect(self, handler: Callable[[Peer], Any]) -> None:
        self._disconnect_handlers.append(handler)

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        if self._closing:
            logger.debug("Dropping %s for closing peer %s", event, self._id)
            return
        self._outbox.put_nowait(rpc.build_notification(event, payload))

    def disconnect(self) -> None:
        if self._closing:
            return
        self._closing = True
        self._outbox.put_nowait(None)

    # ------------------------------------------------------------------
    # Connection lifetime (driven by Namespace)
    # ------------------------------------------------------------------

    async def _write_loop(self) -> None:
        while True:
            frame = await self._outbox.get()
            if frame is None:
                await self._ws.close()
                return
            try:
                await self._ws.send(frame)
            except ConnectionClosed:
                return

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                self._dispatch(raw)
        except ConnectionClosed:
            pass

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            req = rpc.parse_notification(raw)
        except ValueError as exc:
            logger.warning("Invalid frame from peer %s: %s", self._id, exc)
            return
        handlers = self._handlers.get(req.method)
        if not handlers:
            logger.debug("No handler for %s from peer %s", req.method, self._id)
            return
        for handler in list(handlers):
            _call_handler(handler, req.params)

    def _closed(self) -> None:
        self._closing = True
        self._handlers.clear()
        handlers, self._disconnect_handlers = self._disconnect_handlers, []
        for handler in handlers:
            _call_handler(handler, self)


class Namespace:
    """A named endpoint and the peers currently connected to it."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._peers: dict[str, Peer] = {}
        self._connection_handlers: list[ConnectionHandler] = []

    @property
    def connected(self) -> Mapping[str, Peer]:
        return MappingProxyType(self._peers)

    def on_connection(self, handler: ConnectionHandler) -> None:
        self._connection_handlers.append(handler)

    def off_connection(self, handler: ConnectionHandler) -> None:
        if handler in self._connection_handlers:
            self._connection_handlers.remove(handler)

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        for peer in list(self._peers.values()):
            peer.emit(event, payload)

    def disconnect_all(self) -> None:
        for peer in list(self._peers.values()):
            peer.disconnect()

    async def _accept(self, ws: ServerConnection) -> None:
        peer = Peer(ws, self.name)
        self._peers[peer.id] = peer
        logger.info(
            "Peer %s connected to %s from %s (total=%d)",
            peer.id,
            self.name,
            peer.remote_address,
            len(self._peers),
        )
        writer = asyncio.create_task(self._run_writer(peer))
        for handler in list(self._connection_handlers):
            _call_handler(handler, peer)
        try:
            await peer._read_loop()
        finally:
            self._peers.pop(peer.id, None)
            peer._closed()
            # Unblocks the writer if nobody asked for the disconnect.
            peer._outbox.put_nowait(None)
            await writer
            logger.info(
                "Peer %s disconnected from %s (total=%d)",
                peer.id,
                self.name,
                len(self._peers),
            )

    async def _run_writer(self, peer: Peer) -> None:
        try:
            await peer._write_loop()
        except ConnectionClosed:
            pass
        except Exception:
            logger.exception("Writer for peer %s failed", peer.id)


class ChannelServer:
    """Owns the listening socket and every namespace bound to it."""

    def __init__(self, host: str = "0.0.0.0", port: int = 9090) -> None:
        self._host = host
        self._port = port
        self._namespaces: dict[str, Namespace] = {}
        self._server: Server | None = None

    @property
    def port(self) -> int:
        """Bound port; differs from the configured one when that was 0."""
        if self._server is not None:
            for sock in self._server.sockets:
                return sock.getsockname()[1]
        return self._port

    @property
    def url(self) -> str:
        return f"ws://{self._host}:{self.port}"

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------

    def of(self, name: str) -> Namespace:
        if not name.startswith("/"):
            raise ConfigError(f'The namespace must begin with a "/" (got {name!r})')
        namespace = self._namespaces.get(name)
        if namespace is None:
            namespace = Namespace(name)
            self._namespaces[name] = namespace
            logger.debug("Namespace %s created", name)
        return namespace

    def remove_namespace(self, name: str) -> None:
        namespace = self._namespaces.pop(name, None)
        if namespace is not None:
            namespace.disconnect_all()
            logger.debug("Namespace %s removed", name)

    def get_namespace_info(self) -> dict[str, list[str]]:
        return {
            name: list(ns.connected.keys()) for name, ns in self._namespaces.items()
        }

    # ------------------------------------------------------------------
    # Server lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._server = await websockets.serve(
            self._handle_connection, self._host, self._port
        )
        logger.info("Channel server listening on %s", self.url)

    async def close(self) -> None:
        for namespace in list(self._namespaces.values()):
            namespace.disconnect_all()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("Channel server stopped.")

    async def run(self, stop_event: asyncio.Event) -> None:
        """Serve until *stop_event* is set."""
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.close()

    async def _handle_connection(self, ws: ServerConnection) -> None:
        path = urlparse(ws.request.path).path if ws.request else "/"
        namespace = self._namespaces.get(path)
        if namespace is None:
            logger.warning("Connection to unknown namespace %s refused", path)
            await ws.close(code=CLOSE_UNKNOWN_NAMESPACE, reason="unknown namespace")
            return
        await namespace._accept(ws)
