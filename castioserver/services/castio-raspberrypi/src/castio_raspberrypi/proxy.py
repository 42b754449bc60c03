"""RaspberryPiProxy — GPIO-like API backed by a remote agent.

Consumers call ``write`` / ``write_pwm`` / ``read`` / ``set_interrupt_callback``
as if the pins were local. Every call updates the shadow table and is sent
to the connected agent as a channel event; read and interrupt results come
back as events and resolve the matching pending read or invoke the bound
callback.

Whenever an agent connects (first time or after a drop) the whole shadow
table is replayed to it in first-reference order, so consumers never
re-issue configuration after a reconnect:

  - output pins  → ``write {id, value}``
  - pwm pins     → ``writePwm {id, value}``
  - input pins   → ``interrupt {id}`` if a callback is bound, else ``read {id}``

Everything runs on the event loop; handlers run to completion, so the
tables need no locking. The transport delivers events in order per peer;
commands issued while a replay is being queued may interleave with it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any

from pydantic import ValidationError

from castio_sdk.channel import ChannelEndpointServer, ChannelNamespace, ChannelPeer
from castio_sdk.errors import ReadTimeoutError, SessionStoppedError
from castio_sdk.models import (
    EVENT_INTERRUPT,
    EVENT_READ,
    EVENT_WRITE,
    EVENT_WRITE_PWM,
    PinMode,
    PinValue,
)
from castio_sdk.pins import is_binary, is_pwm, is_valid_pin_id, validate_pin_id

from .pins import InterruptCallback, PinRecord, ShadowTable

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "/raspberrypi"


class RaspberryPiProxy:
    """Proxy for the pins of one remote Raspberry Pi agent session."""

    def __init__(
        self,
        server: ChannelEndpointServer,
        namespace: str = DEFAULT_NAMESPACE,
        *,
        read_timeout: float | None = None,
    ) -> None:
        self._server = server
        self._namespace_name = namespace
        self._namespace: ChannelNamespace | None = None
        self._read_timeout = read_timeout
        self._pins = ShadowTable()
        self._pending_reads: dict[int, asyncio.Future[int]] = {}
        self._read_timers: dict[int, asyncio.TimerHandle] = {}
        self._peers: dict[str, ChannelPeer] = {}
        self._connection_waiters: list[asyncio.Future[None]] = []
        self._callback_tasks: set[asyncio.Task[Any]] = set()
        self._stopped = False

    @property
    def namespace_name(self) -> str:
        return self._namespace_name

    @property
    def is_connected(self) -> bool:
        return bool(self._peers)

    @property
    def pins(self) -> ShadowTable:
        return self._pins

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Bind to the namespace and start accepting agent connections."""
        if self._stopped:
            raise SessionStoppedError("A stopped proxy cannot be restarted")
        if self._namespace is not None:
            return
        namespace = self._server.of(self._namespace_name)
        self._namespace = namespace
        namespace.on_connection(self._handle_connection)
        logger.info("Raspberry Pi proxy bound to namespace %s", self._namespace_name)
        for peer in list(namespace.connected.values()):
            self._handle_connection(peer)

    def stop(self) -> None:
        """Disconnect all agents, drop listeners and release the namespace.

        Outstanding reads and ``wait_for_connection`` calls fail with
        ``SessionStoppedError``. Calling it again is a no-op.
        """
        if self._stopped:
            return
        self._stopped = True

        namespace = self._namespace
        self._namespace = None
        if namespace is not None:
            namespace.off_connection(self._handle_connection)
            for peer in list(self._peers.values()):
                self._cleanup_peer(peer)
                peer.disconnect()
            for peer in list(namespace.connected.values()):
                peer.disconnect()
            self._server.remove_namespace(self._namespace_name)

        for timer in self._read_timers.values():
            timer.cancel()
        self._read_timers.clear()
        pending, self._pending_reads = self._pending_reads, {}
        for pin_id, future in pending.items():
            if not future.done():
                future.set_exception(
                    SessionStoppedError(f"Proxy stopped before pin {pin_id} was read")
                )
        waiters, self._connection_waiters = self._connection_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(SessionStoppedError("Proxy stopped"))
        logger.info("Raspberry Pi proxy on %s stopped", self._namespace_name)

    async def wait_for_connection(self) -> None:
        """Return once at least one agent is connected."""
        self._ensure_running()
        if self._peers:
            return
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._connection_waiters.append(waiter)
        await waiter

    # ------------------------------------------------------------------
    # Pin API
    # ------------------------------------------------------------------

    def write(self, pin_id: int, value: int) -> None:
        """Drive an output pin high (1) or low (0). Other values are ignored."""
        self._ensure_running()
        validate_pin_id(pin_id)
        if not is_binary(value):
            logger.debug("Ignoring non-binary write %r to pin %d", value, pin_id)
            return
        pin = self._pins.get_or_create(pin_id, PinMode.OUTPUT)
        pin.value = value
        self._emit(EVENT_WRITE, {"id": pin_id, "value": value})

    def write_pwm(self, pin_id: int, value: int) -> None:
        """Set the PWM duty cycle (0–255). Out-of-range values are ignored."""
        self._ensure_running()
        validate_pin_id(pin_id)
        if not is_pwm(value):
            logger.debug("Ignoring out-of-range PWM value %r for pin %d", value, pin_id)
            return
        pin = self._pins.get_or_create(pin_id, PinMode.PWM)
        pin.value = value
        self._emit(EVENT_WRITE_PWM, {"id": pin_id, "value": value})

    def read(self, pin_id: int, timeout: float | None = None) -> asyncio.Future[int]:
        """Request the pin's digital value; the future resolves with the reply.

        A newer ``read`` of the same pin supersedes this one (the older
        future is cancelled). Without a timeout (argument or proxy default)
        the future stays pending until a reply arrives or the proxy stops.
        """
        self._ensure_running()
        validate_pin_id(pin_id)
        self._pins.get_or_create(pin_id, PinMode.INPUT)
        future: asyncio.Future[int] = asyncio.get_running_loop().create_future()
        self._track_read(pin_id, future, timeout if timeout is not None else self._read_timeout)
        self._emit(EVENT_READ, {"id": pin_id})
        return future

    def set_interrupt_callback(self, pin_id: int, callback: InterruptCallback) -> None:
        """Call *callback(value)* on every edge of the input pin.

        Replaces any previous callback for the pin. Coroutine functions are
        scheduled as tasks.
        """
        self._ensure_running()
        validate_pin_id(pin_id)
        if not callable(callback):
            raise TypeError("callback must be callable")
        pin = self._pins.get_or_create(pin_id, PinMode.INPUT)
        pin.interrupt_callback = callback
        self._emit(EVENT_INTERRUPT, {"id": pin_id})

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _ensure_running(self) -> None:
        if self._stopped:
            raise SessionStoppedError(f"Proxy on {self._namespace_name} has been stopped")

    def _emit(self, event: str, payload: dict[str, Any]) -> None:
        if self._namespace is None:
            logger.debug("Proxy not started; %s for pin %s kept in shadow only", event, payload["id"])
            return
        self._namespace.emit(event, payload)

    def _track_read(
        self, pin_id: int, future: asyncio.Future[int], timeout: float | None
    ) -> None:
        previous = self._pending_reads.pop(pin_id, None)
        timer = self._read_timers.pop(pin_id, None)
        if timer is not None:
            timer.cancel()
        if previous is not None and not previous.done():
            previous.cancel()
        self._pending_reads[pin_id] = future
        if timeout is not None:
            self._read_timers[pin_id] = asyncio.get_running_loop().call_later(
                timeout, self._expire_read, pin_id, future, timeout
            )

    def _expire_read(self, pin_id: int, future: asyncio.Future[int], timeout: float) -> None:
        if self._pending_reads.get(pin_id) is not future:
            return
        del self._pending_reads[pin_id]
        self._read_timers.pop(pin_id, None)
        if not future.done():
            logger.warning("Read of pin %d timed out after %.1fs", pin_id, timeout)
            future.set_exception(
                ReadTimeoutError(
                    f"No value for pin {pin_id} within {timeout}s",
                    details={"pin": pin_id, "timeout": timeout},
                )
            )

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _handle_connection(self, peer: ChannelPeer) -> None:
        if self._stopped:
            peer.disconnect()
            return
        logger.info("Raspberry Pi agent connected with id %s", peer.id)
        self._peers[peer.id] = peer
        peer.on(EVENT_READ, self._handle_read_result)
        peer.on(EVENT_INTERRUPT, self._handle_interrupt)
        peer.on_disconnect(self._cleanup_peer)
        self._replay(peer)

        waiters, self._connection_waiters = self._connection_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def _cleanup_peer(self, peer: ChannelPeer) -> None:
        peer.off(EVENT_READ, self._handle_read_result)
        peer.off(EVENT_INTERRUPT, self._handle_interrupt)
        if self._peers.pop(peer.id, None) is not None:
            logger.info("Raspberry Pi agent %s disconnected", peer.id)

    def _replay(self, peer: ChannelPeer) -> None:
        count = 0
        for pin in self._pins:
            event, payload = self._replay_event(pin)
            peer.emit(event, payload)
            count += 1
        if count:
            logger.info("Replayed %d pin(s) to agent %s", count, peer.id)

    @staticmethod
    def _replay_event(pin: PinRecord) -> tuple[str, dict[str, Any]]:
        match pin.mode:
            case PinMode.OUTPUT:
                return EVENT_WRITE, {"id": pin.id, "value": pin.value}
            case PinMode.PWM:
                return EVENT_WRITE_PWM, {"id": pin.id, "value": pin.value}
            case _:
                if pin.interrupt_callback is not None:
                    return EVENT_INTERRUPT, {"id": pin.id}
                return EVENT_READ, {"id": pin.id}

    @staticmethod
    def _parse_value(event: str, payload: dict[str, Any]) -> PinValue | None:
        try:
            message = PinValue.model_validate(payload)
        except ValidationError:
            logger.warning("Malformed %s result from agent: %.200s", event, payload)
            return None
        if not is_valid_pin_id(message.id):
            logger.warning("%s result for invalid pin id %d ignored", event, message.id)
            return None
        return message

    def _handle_read_result(self, payload: dict[str, Any]) -> None:
        message = self._parse_value(EVENT_READ, payload)
        if message is None:
            return
        pin = self._pins.get(message.id)
        if pin is not None and pin.mode is PinMode.INPUT:
            pin.value = message.value
        future = self._pending_reads.pop(message.id, None)
        timer = self._read_timers.pop(message.id, None)
        if timer is not None:
            timer.cancel()
        if future is not None and not future.done():
            future.set_result(message.value)

    def _handle_interrupt(self, payload: dict[str, Any]) -> None:
        message = self._parse_value(EVENT_INTERRUPT, payload)
        if message is None:
            return
        pin = self._pins.get(message.id)
        callback = pin.interrupt_callback if pin is not None else None
        if callback is None:
            logger.debug("Interrupt for unbound pin %d ignored", message.id)
            return
        try:
            result = callback(message.value)
        except Exception:
            logger.exception("Interrupt callback for pin %d failed", message.id)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._callback_tasks.add(task)
            task.add_done_callback(self._finish_callback)

    def _finish_callback(self, task: asyncio.Task[Any]) -> None:
        self._callback_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Interrupt callback task failed", exc_info=task.exception())
