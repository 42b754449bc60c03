"""Pin id and value validation shared by the proxy and the agent.

Pins use BCM numbering; the addressable range is that of the Raspberry Pi
40-pin header.
"""

from __future__ import annotations

from typing import Any

from .errors import ConfigError

MIN_PIN_ID = 0
MAX_PIN_ID = 27
PWM_MIN = 0
PWM_MAX = 255


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_pin_id(pin_id: Any) -> int:
    """Return *pin_id* if it is a valid BCM GPIO id, else raise ``ConfigError``."""
    if not _is_int(pin_id) or not MIN_PIN_ID <= pin_id <= MAX_PIN_ID:
        raise ConfigError(
            f'Invalid GPIO pin id "{pin_id}"',
            details={"pin": pin_id, "min": MIN_PIN_ID, "max": MAX_PIN_ID},
        )
    return pin_id


def is_valid_pin_id(pin_id: Any) -> bool:
    return _is_int(pin_id) and MIN_PIN_ID <= pin_id <= MAX_PIN_ID


def is_binary(value: Any) -> bool:
    return _is_int(value) and value in (0, 1)


def is_pwm(value: Any) -> bool:
    return _is_int(value) and PWM_MIN <= value <= PWM_MAX
