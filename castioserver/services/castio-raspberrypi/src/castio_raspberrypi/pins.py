"""Shadow table: the proxy's record of every pin it has configured."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from castio_sdk.errors import PinModeError
from castio_sdk.models import PinMode

InterruptCallback = Callable[[int], Any]


@dataclass
class PinRecord:
    id: int
    mode: PinMode
    value: int = 0
    interrupt_callback: InterruptCallback | None = None


class ShadowTable:
    """Pin records in first-reference order.

    A record's mode is fixed when it is created; asking for the same id in
    another mode raises ``PinModeError``.
    """

    def __init__(self) -> None:
        self._pins: dict[int, PinRecord] = {}

    def get(self, pin_id: int) -> PinRecord | None:
        return self._pins.get(pin_id)

    def get_or_create(self, pin_id: int, mode: PinMode) -> PinRecord:
        pin = self._pins.get(pin_id)
        if pin is None:
            pin = PinRecord(id=pin_id, mode=mode)
            self._pins[pin_id] = pin
        elif pin.mode is not mode:
            raise PinModeError(
                f"GPIO pin {pin_id} is configured as {pin.mode.value}, "
                f"not {mode.value}",
                details={"pin": pin_id, "mode": pin.mode.value, "requested": mode.value},
            )
        return pin

    def __iter__(self) -> Iterator[PinRecord]:
        return iter(list(self._pins.values()))

    def __len__(self) -> int:
        return len(self._pins)

    def __contains__(self, pin_id: object) -> bool:
        return pin_id in self._pins
