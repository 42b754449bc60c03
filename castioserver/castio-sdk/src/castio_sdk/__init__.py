"""castio-sdk — shared contract for castio service bundles and remote agents.

Exports the key building blocks every bundle and agent author needs:
  - ServiceBundle    — abstract base class a service bundle implements
  - ServiceResult    — ok / error outcome reported by the host registry
  - PinRequest, PinValue — wire payloads of the GPIO channel
  - rpc              — JSON-RPC 2.0 notification framing (build / parse)
  - errors           — ConfigError, TransportError and friends
"""

from . import log_setup, rpc
from .base import ServiceBundle, ServiceResult
from .errors import (
    CastioError,
    ConfigError,
    PinModeError,
    ReadTimeoutError,
    SessionStoppedError,
    TransportError,
)
from .models import PinMode, PinRequest, PinValue, RpcRequest, ServiceInfo

__version__ = "0.1.0"
__all__ = [
    "log_setup",
    "rpc",
    "ServiceBundle",
    "ServiceResult",
    "ServiceInfo",
    "PinMode",
    "PinRequest",
    "PinValue",
    "RpcRequest",
    "CastioError",
    "ConfigError",
    "PinModeError",
    "ReadTimeoutError",
    "SessionStoppedError",
    "TransportError",
]
