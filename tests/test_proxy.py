"""
Tests for RaspberryPiProxy.

This test module validates:
- write / write_pwm update the shadow table and emit to the agent
- invalid values are dropped without emitting; invalid pin ids raise
- read futures resolve only from matching read results
- interrupt callbacks are persistent and replaced on re-registration
- the shadow table is replayed, in first-reference order, on (re)connection
- stop() disconnects agents, releases the namespace and fails waiters
"""

from __future__ import annotations

import asyncio

import pytest

from castio_raspberrypi.proxy import DEFAULT_NAMESPACE, RaspberryPiProxy
from castio_sdk.errors import (
    ConfigError,
    PinModeError,
    ReadTimeoutError,
    SessionStoppedError,
)
from castio_sdk.models import PinMode


@pytest.fixture
def proxy(server) -> RaspberryPiProxy:
    p = RaspberryPiProxy(server)
    p.start()
    return p


@pytest.fixture
def agent(server, make_peer, proxy):
    return server.namespaces[DEFAULT_NAMESPACE].connect(make_peer("agent-1"))


# =============================================================================
# Writes
# =============================================================================


def test_write_emits_and_records_value(proxy, agent) -> None:
    proxy.write(17, 1)

    assert agent.emitted == [("write", {"id": 17, "value": 1})]
    pin = proxy.pins.get(17)
    assert pin is not None
    assert pin.mode is PinMode.OUTPUT
    assert pin.value == 1


def test_write_non_binary_value_is_noop(proxy, agent) -> None:
    proxy.write(17, 2)
    proxy.write(17, True)

    assert agent.emitted == []
    assert 17 not in proxy.pins


def test_write_pwm_emits_and_records_value(proxy, agent) -> None:
    proxy.write_pwm(12, 128)

    assert agent.emitted == [("writePwm", {"id": 12, "value": 128})]
    assert proxy.pins.get(12).mode is PinMode.PWM
    assert proxy.pins.get(12).value == 128


@pytest.mark.parametrize("value", [-1, 256, 300])
def test_write_pwm_out_of_range_is_noop(proxy, agent, value) -> None:
    proxy.write_pwm(5, 100)
    agent.emitted.clear()

    proxy.write_pwm(5, value)

    assert agent.emitted == []
    assert proxy.pins.get(5).value == 100


def test_write_pwm_300_leaves_unknown_pin_untouched(proxy, agent) -> None:
    proxy.write_pwm(5, 300)

    assert agent.emitted == []
    assert 5 not in proxy.pins


@pytest.mark.parametrize("pin_id", [-1, 28, 100, "17", 1.5, None])
def test_invalid_pin_id_raises_config_error(proxy, pin_id) -> None:
    with pytest.raises(ConfigError, match="Invalid GPIO pin id"):
        proxy.write(pin_id, 1)


def test_readdressing_pin_in_other_mode_is_rejected(proxy, agent) -> None:
    proxy.write(17, 1)

    with pytest.raises(PinModeError):
        proxy.write_pwm(17, 10)
    with pytest.raises(PinModeError):
        proxy.set_interrupt_callback(17, lambda value: None)

    assert proxy.pins.get(17).mode is PinMode.OUTPUT
    assert agent.emitted == [("write", {"id": 17, "value": 1})]


def test_writes_before_start_only_update_shadow(server) -> None:
    proxy = RaspberryPiProxy(server)
    proxy.write(22, 1)

    assert server.namespaces == {}
    assert proxy.pins.get(22).value == 1


# =============================================================================
# Reads
# =============================================================================


@pytest.mark.asyncio
async def test_read_resolves_with_matching_result(proxy, agent) -> None:
    future = proxy.read(4)
    assert agent.emitted == [("read", {"id": 4})]

    agent.receive("read", {"id": 4, "value": 0})

    assert await future == 0
    assert proxy.pins.get(4).mode is PinMode.INPUT


@pytest.mark.asyncio
async def test_read_ignores_unrelated_ids(proxy, agent) -> None:
    future = proxy.read(4)

    agent.receive("read", {"id": 5, "value": 1})

    assert not future.done()
    agent.receive("read", {"id": 4, "value": 1})
    assert await future == 1


@pytest.mark.asyncio
async def test_read_result_without_pending_read_updates_shadow(proxy, agent) -> None:
    future = proxy.read(4)
    agent.receive("read", {"id": 4, "value": 1})
    await future

    agent.receive("read", {"id": 4, "value": 0})

    assert proxy.pins.get(4).value == 0


@pytest.mark.asyncio
async def test_newer_read_supersedes_older(proxy, agent) -> None:
    first = proxy.read(4)
    second = proxy.read(4)

    agent.receive("read", {"id": 4, "value": 1})

    assert first.cancelled()
    assert await second == 1


@pytest.mark.asyncio
async def test_malformed_read_result_is_dropped(proxy, agent) -> None:
    future = proxy.read(4)

    agent.receive("read", {"id": 4})
    agent.receive("read", {"id": "4", "value": 1})
    agent.receive("read", {"id": 99, "value": 1})

    assert not future.done()


@pytest.mark.asyncio
async def test_read_times_out(proxy, agent) -> None:
    future = proxy.read(4, timeout=0.01)

    with pytest.raises(ReadTimeoutError):
        await future


@pytest.mark.asyncio
async def test_proxy_default_read_timeout(server, make_peer) -> None:
    proxy = RaspberryPiProxy(server, read_timeout=0.01)
    proxy.start()

    future = proxy.read(4)

    with pytest.raises(TimeoutError):
        await future


@pytest.mark.asyncio
async def test_reply_before_timeout_cancels_timer(proxy, agent) -> None:
    future = proxy.read(4, timeout=0.05)
    agent.receive("read", {"id": 4, "value": 1})

    assert await future == 1
    await asyncio.sleep(0.08)
    assert future.result() == 1


# =============================================================================
# Interrupts
# =============================================================================


def test_interrupt_callback_fires_on_every_event(proxy, agent) -> None:
    seen: list[int] = []
    proxy.set_interrupt_callback(27, seen.append)

    assert agent.emitted == [("interrupt", {"id": 27})]
    agent.receive("interrupt", {"id": 27, "value": 1})
    agent.receive("interrupt", {"id": 27, "value": 0})

    assert seen == [1, 0]


def test_interrupt_rebinding_replaces_callback(proxy, agent) -> None:
    old: list[int] = []
    new: list[int] = []
    proxy.set_interrupt_callback(27, old.append)
    proxy.set_interrupt_callback(27, new.append)

    agent.receive("interrupt", {"id": 27, "value": 1})

    assert old == []
    assert new == [1]


def test_interrupt_for_unbound_pin_is_ignored(proxy, agent) -> None:
    seen: list[int] = []
    proxy.set_interrupt_callback(27, seen.append)

    agent.receive("interrupt", {"id": 26, "value": 1})

    assert seen == []


def test_interrupt_callback_must_be_callable(proxy) -> None:
    with pytest.raises(TypeError):
        proxy.set_interrupt_callback(27, None)


def test_failing_interrupt_callback_does_not_break_dispatch(proxy, agent) -> None:
    def boom(value: int) -> None:
        raise RuntimeError("boom")

    proxy.set_interrupt_callback(27, boom)
    agent.receive("interrupt", {"id": 27, "value": 1})

    seen: list[int] = []
    proxy.set_interrupt_callback(26, seen.append)
    agent.receive("interrupt", {"id": 26, "value": 1})
    assert seen == [1]


@pytest.mark.asyncio
async def test_coroutine_interrupt_callback_is_scheduled(proxy, agent) -> None:
    seen: list[int] = []

    async def on_edge(value: int) -> None:
        seen.append(value)

    proxy.set_interrupt_callback(27, on_edge)
    agent.receive("interrupt", {"id": 27, "value": 1})
    await asyncio.sleep(0)

    assert seen == [1]


# =============================================================================
# Replay
# =============================================================================


def test_replay_on_reconnect_in_registration_order(server, make_peer, proxy, agent) -> None:
    proxy.write(22, 1)
    proxy.set_interrupt_callback(27, lambda value: None)
    agent.disconnect()

    assert not proxy.is_connected
    assert proxy.pins.get(22).value == 1

    again = server.namespaces[DEFAULT_NAMESPACE].connect(make_peer("agent-2"))

    assert again.emitted == [
        ("write", {"id": 22, "value": 1}),
        ("interrupt", {"id": 27}),
    ]


@pytest.mark.asyncio
async def test_replay_covers_every_pin_kind(server, make_peer, proxy) -> None:
    proxy.write(17, 0)
    proxy.write(17, 1)
    proxy.write_pwm(18, 200)
    proxy.read(4)
    proxy.set_interrupt_callback(27, lambda value: None)

    peer = server.namespaces[DEFAULT_NAMESPACE].connect(make_peer())

    assert peer.emitted == [
        ("write", {"id": 17, "value": 1}),
        ("writePwm", {"id": 18, "value": 200}),
        ("read", {"id": 4}),
        ("interrupt", {"id": 27}),
    ]


@pytest.mark.asyncio
async def test_replayed_read_resolves_pending_future(server, make_peer, proxy) -> None:
    future = proxy.read(4)
    peer = server.namespaces[DEFAULT_NAMESPACE].connect(make_peer())

    peer.receive("read", {"id": 4, "value": 1})

    assert await future == 1


def test_replay_goes_only_to_new_peer(server, make_peer, proxy, agent) -> None:
    proxy.write(22, 1)
    agent.emitted.clear()

    server.namespaces[DEFAULT_NAMESPACE].connect(make_peer("agent-2"))

    assert agent.emitted == []


def test_disconnect_removes_peer_listeners(proxy, agent) -> None:
    assert agent.handler_count("read") == 1
    agent.disconnect()
    assert agent.handler_count("read") == 0
    assert agent.handler_count("interrupt") == 0


def test_start_adopts_already_connected_peers(server, make_peer) -> None:
    proxy = RaspberryPiProxy(server)
    peer = make_peer()
    server.of(DEFAULT_NAMESPACE).connect(peer)
    proxy.write(17, 1)

    proxy.start()

    assert proxy.is_connected
    assert peer.emitted == [("write", {"id": 17, "value": 1})]


# =============================================================================
# Connection waiting and stop
# =============================================================================


@pytest.mark.asyncio
async def test_wait_for_connection_resolves_immediately_when_connected(proxy, agent) -> None:
    await asyncio.wait_for(proxy.wait_for_connection(), timeout=0.1)


@pytest.mark.asyncio
async def test_wait_for_connection_resolves_on_next_connection(server, make_peer, proxy) -> None:
    waiter = asyncio.ensure_future(proxy.wait_for_connection())
    await asyncio.sleep(0)
    assert not waiter.done()

    server.namespaces[DEFAULT_NAMESPACE].connect(make_peer())

    await asyncio.wait_for(waiter, timeout=0.1)


@pytest.mark.asyncio
async def test_stop_releases_everything(server, proxy, agent) -> None:
    future = proxy.read(4)

    proxy.stop()

    assert agent.disconnected
    assert server.removed == [DEFAULT_NAMESPACE]
    assert not proxy.is_connected
    with pytest.raises(SessionStoppedError):
        await future


@pytest.mark.asyncio
async def test_stop_fails_connection_waiters(proxy) -> None:
    waiter = asyncio.ensure_future(proxy.wait_for_connection())
    await asyncio.sleep(0)

    proxy.stop()

    with pytest.raises(SessionStoppedError):
        await waiter


def test_stop_is_idempotent(server, proxy) -> None:
    proxy.stop()
    proxy.stop()

    assert server.removed == [DEFAULT_NAMESPACE]


def test_operations_after_stop_raise(proxy) -> None:
    proxy.stop()

    with pytest.raises(SessionStoppedError):
        proxy.write(17, 1)
    with pytest.raises(SessionStoppedError):
        proxy.start()


def test_custom_namespace(server, make_peer) -> None:
    proxy = RaspberryPiProxy(server, "/stage-left")
    proxy.start()
    peer = server.namespaces["/stage-left"].connect(make_peer())

    proxy.write(17, 1)

    assert peer.emitted == [("write", {"id": 17, "value": 1})]
    assert proxy.namespace_name == "/stage-left"
