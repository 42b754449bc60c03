"""Sample consumer of a ``raspberrypi`` service instance.

Waits for the instance named ``raspberrypi-sample``, then:
  - logs every edge on the button pin (BCM 27)
  - blinks the LED pin (BCM 17) ten times, half a second per phase

Set up the instance with::

    castio service setup raspberrypi-sample raspberrypi
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from castio_sdk.base import ServiceHost
from castio_sdk.errors import SessionStoppedError

logger = logging.getLogger(__name__)

INSTANCE_NAME = "raspberrypi-sample"
LED_PIN = 17
BUTTON_PIN = 27
BLINKS = 10
BLINK_DELAY = 0.5


class BlinkSample:
    def __init__(self, blinks: int = BLINKS, delay: float = BLINK_DELAY) -> None:
        self._blinks = blinks
        self._delay = delay
        self._task: asyncio.Task[None] | None = None

    async def on_available(self, client: Any) -> None:
        self.on_unset()
        self._task = asyncio.current_task()
        proxy = client.get_raw_client()
        try:
            await proxy.wait_for_connection()
            logger.info("Raspberry Pi agent ready on %s", proxy.namespace_name)
            proxy.set_interrupt_callback(BUTTON_PIN, self._on_button)
            await self.blink(proxy)
        except SessionStoppedError:
            logger.info("Raspberry Pi session ended before the sample finished")
        finally:
            if self._task is asyncio.current_task():
                self._task = None

    def on_unset(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def blink(self, proxy: Any) -> None:
        for _ in range(self._blinks):
            proxy.write(LED_PIN, 1)
            await asyncio.sleep(self._delay)
            proxy.write(LED_PIN, 0)
            await asyncio.sleep(self._delay)
        logger.info("Blinked pin %d %d times", LED_PIN, self._blinks)

    @staticmethod
    def _on_button(value: int) -> None:
        logger.info("Button on pin %d is now %s", BUTTON_PIN, "high" if value else "low")


def register(host: ServiceHost) -> BlinkSample:
    """Bundle entry point called by the castio host."""
    sample = BlinkSample()
    host.registry.require_service(INSTANCE_NAME, sample.on_available, sample.on_unset)
    return sample
