"""Sample bundle: blinks an LED and logs button presses on a remote Pi."""

from .plugin import BUTTON_PIN, INSTANCE_NAME, LED_PIN, BlinkSample, register

__all__ = ["BUTTON_PIN", "INSTANCE_NAME", "LED_PIN", "BlinkSample", "register"]
