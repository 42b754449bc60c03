"""Shared Pydantic models — the wire vocabulary of the GPIO channel."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, StrictInt

# Event names carried in the JSON-RPC ``method`` field.
EVENT_READ = "read"
EVENT_WRITE = "write"
EVENT_WRITE_PWM = "writePwm"
EVENT_INTERRUPT = "interrupt"


class PinMode(str, Enum):
    INPUT = "input"
    OUTPUT = "output"
    PWM = "pwm"


class PinRequest(BaseModel):
    """Payload addressing a pin: read requests and interrupt arming."""

    id: StrictInt


class PinValue(BaseModel):
    """Payload carrying a pin value: writes, read results and interrupts."""

    id: StrictInt
    value: StrictInt


class RpcRequest(BaseModel):
    """JSON-RPC 2.0 request or notification (notification when id is None)."""

    jsonrpc: str = "2.0"
    method: str
    params: dict[str, Any] = Field(default_factory=dict)
    id: str | int | None = None


class ServiceInfo(BaseModel):
    """Self-description of a service bundle."""

    name: str
    version: str = "0.1.0"
    description: str = ""
