"""PinController — the agent's view of the physical pins, via pigpio.

Pins are configured lazily: the first operation on an id sets its mode
(input for read / interrupt, output for write / PWM) and the mode stays
fixed for the controller's lifetime. Operations in the other mode, invalid
ids, invalid values and pigpio errors are logged and ignored, never raised:
a live device should not be driven into an undefined state by a bad message.

Requires the ``pigpiod`` daemon to be running on the device.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import pigpio

from castio_sdk.errors import TransportError
from castio_sdk.pins import is_binary, is_pwm, is_valid_pin_id

logger = logging.getLogger(__name__)

EdgeCallback = Callable[[int], None]

_MODE_NAMES = {pigpio.INPUT: "input", pigpio.OUTPUT: "output"}

# pigpio reports this level for watchdog timeouts, not real edges.
_WATCHDOG_LEVEL = 2


class PinController:
    """Owns one pigpio connection and every pin touched through it."""

    def __init__(self, pi: Any, *, debounce_us: int = 10000) -> None:
        self._pi = pi
        self._debounce_us = debounce_us
        self._modes: dict[int, int] = {}
        self._callbacks: dict[int, Any] = {}
        self._closed = False

    @classmethod
    def connect(
        cls, host: str = "localhost", port: int = 8888, *, debounce_us: int = 10000
    ) -> PinController:
        pi = pigpio.pi(host, port)
        if not pi.connected:
            raise TransportError(
                f"Cannot connect to pigpiod at {host}:{port}. "
                "Start it with: sudo systemctl start pigpiod",
                details={"host": host, "port": port},
            )
        logger.info("Connected to pigpiod at %s:%d", host, port)
        return cls(pi, debounce_us=debounce_us)

    @property
    def pins(self) -> dict[int, str]:
        return {pin_id: _MODE_NAMES[mode] for pin_id, mode in self._modes.items()}

    def _claim(self, pin_id: Any, mode: int) -> bool:
        if self._closed:
            logger.debug("Pin controller closed; ignoring pin %s", pin_id)
            return False
        if not is_valid_pin_id(pin_id):
            logger.warning("Ignoring operation on invalid GPIO pin id %r", pin_id)
            return False
        current = self._modes.get(pin_id)
        if current is None:
            try:
                self._pi.set_mode(pin_id, mode)
            except pigpio.error as exc:
                logger.warning("Could not set up pin %d: %s", pin_id, exc)
                return False
            self._modes[pin_id] = mode
            logger.debug("Pin %d set up as %s", pin_id, _MODE_NAMES[mode])
            return True
        if current != mode:
            logger.warning(
                "Pin %d is an %s pin; ignoring %s operation",
                pin_id,
                _MODE_NAMES[current],
                _MODE_NAMES[mode],
            )
            return False
        return True

    def read(self, pin_id: int) -> int | None:
        if not self._claim(pin_id, pigpio.INPUT):
            return None
        try:
            return int(self._pi.read(pin_id))
        except pigpio.error as exc:
            logger.warning("Read of pin %d failed: %s", pin_id, exc)
            return None

    def write(self, pin_id: int, value: int) -> bool:
        if not is_binary(value):
            logger.debug("Ignoring non-binary write %r to pin %s", value, pin_id)
            return False
        if not self._claim(pin_id, pigpio.OUTPUT):
            return False
        try:
            self._pi.write(pin_id, value)
        except pigpio.error as exc:
            logger.warning("Write to pin %d failed: %s", pin_id, exc)
            return False
        return True

    def write_pwm(self, pin_id: int, value: int) -> bool:
        if not is_pwm(value):
            logger.debug("Ignoring out-of-range PWM value %r for pin %s", value, pin_id)
            return False
        if not self._claim(pin_id, pigpio.OUTPUT):
            return False
        try:
            self._pi.set_PWM_dutycycle(pin_id, value)
        except pigpio.error as exc:
            logger.warning("PWM write to pin %d failed: %s", pin_id, exc)
            return False
        return True

    def set_interrupt_callback(self, pin_id: int, callback: EdgeCallback) -> bool:
        """Arm edge detection; *callback(level)* runs on pigpio's thread.

        Re-arming a pin replaces its previous callback.
        """
        if not self._claim(pin_id, pigpio.INPUT):
            return False
        previous = self._callbacks.pop(pin_id, None)
        if previous is not None:
            previous.cancel()

        def _on_edge(gpio: int, level: int, tick: int) -> None:
            if level != _WATCHDOG_LEVEL:
                callback(level)

        try:
            self._pi.set_glitch_filter(pin_id, self._debounce_us)
            self._callbacks[pin_id] = self._pi.callback(pin_id, pigpio.EITHER_EDGE, _on_edge)
        except pigpio.error as exc:
            logger.warning("Could not arm interrupt on pin %d: %s", pin_id, exc)
            return False
        logger.debug("Interrupt armed on pin %d (debounce %dus)", pin_id, self._debounce_us)
        return True

    def cleanup(self) -> None:
        """Cancel callbacks, clear glitch filters and drop the pigpio link."""
        if self._closed:
            return
        self._closed = True
        for pin_id, handle in self._callbacks.items():
            try:
                handle.cancel()
                self._pi.set_glitch_filter(pin_id, 0)
            except pigpio.error as exc:
                logger.warning("Could not release pin %d: %s", pin_id, exc)
        logger.info("Released %d pin(s)", len(self._modes))
        self._callbacks.clear()
        self._modes.clear()
        self._pi.stop()
