"""castio-raspberrypi — remote GPIO proxy service bundle.

Exports:
  - RaspberryPiProxy   — GPIO-like API backed by a remote agent
  - SessionArbiter     — one active proxy per namespace
  - RaspberryPiService — the ``raspberrypi`` service bundle
  - register           — entry point called by the castio host
"""

from .arbiter import SessionArbiter
from .pins import PinRecord, ShadowTable
from .proxy import DEFAULT_NAMESPACE, RaspberryPiProxy
from .service import (
    RaspberryPiService,
    RaspberryPiServiceClient,
    RaspberryPiServiceConfig,
    register,
)

__version__ = "0.1.0"
__all__ = [
    "DEFAULT_NAMESPACE",
    "PinRecord",
    "RaspberryPiProxy",
    "RaspberryPiService",
    "RaspberryPiServiceClient",
    "RaspberryPiServiceConfig",
    "SessionArbiter",
    "ShadowTable",
    "register",
]
