"""
Pytest configuration and in-memory fakes for the castio tests.

The fakes stand in for the websocket channel (server / namespace / peer) and
for a pigpio handle, so the proxy, arbiter, bundle and agent logic can be
exercised without sockets or hardware.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

import pigpio
import pytest

pytest_plugins = ["pytest_asyncio"]


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "integration: tests that open real loopback sockets",
    )


# =============================================================================
# Channel fakes
# =============================================================================


class FakePeer:
    """Records emitted events; ``receive`` simulates an inbound frame."""

    def __init__(self, peer_id: str) -> None:
        self.id = peer_id
        self.emitted: list[tuple[str, dict[str, Any]]] = []
        self.disconnected = False
        self._handlers: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self._disconnect_handlers: list[Callable[..., Any]] = []
        self.namespace: FakeNamespace | None = None

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Callable[..., Any]) -> None:
        if handler in self._handlers[event]:
            self._handlers[event].remove(handler)

    def on_disconnect(self, handler: Callable[..., Any]) -> None:
        self._disconnect_handlers.append(handler)

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        if self.disconnected:
            return
        self.emitted.append((event, dict(payload)))

    def disconnect(self) -> None:
        if self.disconnected:
            return
        self.disconnected = True
        if self.namespace is not None:
            self.namespace.peers.pop(self.id, None)
        handlers, self._disconnect_handlers = self._disconnect_handlers, []
        for handler in handlers:
            handler(self)

    def receive(self, event: str, payload: dict[str, Any]) -> None:
        for handler in list(self._handlers[event]):
            handler(payload)

    def handler_count(self, event: str) -> int:
        return len(self._handlers[event])


class FakeNamespace:
    def __init__(self, name: str) -> None:
        self.name = name
        self.peers: dict[str, FakePeer] = {}
        self.connection_handlers: list[Callable[..., Any]] = []

    @property
    def connected(self) -> dict[str, FakePeer]:
        return dict(self.peers)

    def on_connection(self, handler: Callable[..., Any]) -> None:
        self.connection_handlers.append(handler)

    def off_connection(self, handler: Callable[..., Any]) -> None:
        if handler in self.connection_handlers:
            self.connection_handlers.remove(handler)

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        for peer in list(self.peers.values()):
            peer.emit(event, payload)

    def connect(self, peer: FakePeer) -> FakePeer:
        peer.namespace = self
        self.peers[peer.id] = peer
        for handler in list(self.connection_handlers):
            handler(peer)
        return peer


class FakeServer:
    def __init__(self) -> None:
        self.namespaces: dict[str, FakeNamespace] = {}
        self.removed: list[str] = []

    def of(self, name: str) -> FakeNamespace:
        if name not in self.namespaces:
            self.namespaces[name] = FakeNamespace(name)
        return self.namespaces[name]

    def remove_namespace(self, name: str) -> None:
        namespace = self.namespaces.pop(name, None)
        self.removed.append(name)
        if namespace is not None:
            for peer in list(namespace.peers.values()):
                peer.disconnect()


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def make_peer() -> Callable[[str], FakePeer]:
    counter = iter(range(1, 1000))

    def _make(peer_id: str | None = None) -> FakePeer:
        return FakePeer(peer_id or f"peer-{next(counter)}")

    return _make


# =============================================================================
# pigpio fake
# =============================================================================


class FakeCallbackHandle:
    def __init__(self, gpio: int, edge: int, func: Callable[[int, int, int], None]) -> None:
        self.gpio = gpio
        self.edge = edge
        self.func = func
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self, level: int, tick: int = 0) -> None:
        if not self.cancelled:
            self.func(self.gpio, level, tick)


class FakePi:
    """Subset of ``pigpio.pi`` used by the agent."""

    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.calls: list[tuple[Any, ...]] = []
        self.levels: dict[int, int] = {}
        self.handles: list[FakeCallbackHandle] = []
        self.stopped = False
        # Method names that raise pigpio.error, as a lost pigpiod link would.
        self.failing: set[str] = set()

    def _check(self, name: str) -> None:
        if name in self.failing:
            raise pigpio.error(f"{name} failed")

    def set_mode(self, gpio: int, mode: int) -> None:
        self._check("set_mode")
        self.calls.append(("set_mode", gpio, mode))

    def read(self, gpio: int) -> int:
        self._check("read")
        self.calls.append(("read", gpio))
        return self.levels.get(gpio, 0)

    def write(self, gpio: int, level: int) -> None:
        self._check("write")
        self.calls.append(("write", gpio, level))

    def set_PWM_dutycycle(self, gpio: int, dutycycle: int) -> None:
        self._check("set_PWM_dutycycle")
        self.calls.append(("set_PWM_dutycycle", gpio, dutycycle))

    def set_glitch_filter(self, gpio: int, steady: int) -> None:
        self._check("set_glitch_filter")
        self.calls.append(("set_glitch_filter", gpio, steady))

    def callback(self, gpio: int, edge: int, func: Callable[[int, int, int], None]) -> FakeCallbackHandle:
        self._check("callback")
        handle = FakeCallbackHandle(gpio, edge, func)
        self.handles.append(handle)
        self.calls.append(("callback", gpio, edge))
        return handle

    def stop(self) -> None:
        self.stopped = True


@pytest.fixture
def fake_pi() -> FakePi:
    return FakePi()
