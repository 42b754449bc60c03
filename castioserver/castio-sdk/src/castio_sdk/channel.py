"""Duplex channel primitives consumed by service bundles.

The host implements these on top of a websocket server
(``castio.socket_server``); bundles only depend on the protocols so they can
be driven by in-memory fakes as well.

A *namespace* is one endpoint of the server (selected by URL path). Every
remote process connected to it is a *peer*. Events are named strings with a
JSON object payload; delivery per peer is in order.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol

EventHandler = Callable[[dict[str, Any]], Any]


class ChannelPeer(Protocol):
    """One connected remote process."""

    @property
    def id(self) -> str: ...

    def on(self, event: str, handler: EventHandler) -> None:
        """Register *handler* for inbound *event* frames from this peer."""

    def off(self, event: str, handler: EventHandler) -> None:
        """Remove a handler registered with ``on``; unknown handlers are ignored."""

    def on_disconnect(self, handler: Callable[[ChannelPeer], Any]) -> None:
        """Invoke *handler* once when the peer goes away."""

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        """Queue an event for this peer without waiting for it to be sent."""

    def disconnect(self) -> None:
        """Close the connection once queued events have been flushed."""


ConnectionHandler = Callable[[ChannelPeer], Any]


class ChannelNamespace(Protocol):
    """A named endpoint and the set of peers connected to it."""

    name: str

    @property
    def connected(self) -> Mapping[str, ChannelPeer]: ...

    def on_connection(self, handler: ConnectionHandler) -> None: ...

    def off_connection(self, handler: ConnectionHandler) -> None: ...

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        """Queue an event for every connected peer."""


class ChannelEndpointServer(Protocol):
    """Owner of all namespaces on one listening socket."""

    def of(self, name: str) -> ChannelNamespace:
        """Return the namespace called *name*, creating it if needed."""

    def remove_namespace(self, name: str) -> None:
        """Release *name*; later connections to it are refused."""
