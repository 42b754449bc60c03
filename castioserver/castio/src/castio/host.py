"""The object handed to bundle modules, and bundle discovery."""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass

from .registry import ServiceRegistry
from .socket_server import ChannelServer

logger = logging.getLogger(__name__)


@dataclass
class ServiceHost:
    registry: ServiceRegistry
    channel_server: ChannelServer


def load_bundles(host: ServiceHost, modules: list[str]) -> list[str]:
    """Import each module and call its ``register(host)``; return those loaded."""
    loaded: list[str] = []
    for module_name in modules:
        try:
            module = importlib.import_module(module_name)
        except ImportError as exc:
            logger.error("Bundle '%s' could not be imported: %s", module_name, exc)
            continue
        register = getattr(module, "register", None)
        if not callable(register):
            logger.error("Bundle '%s' has no register(host) function", module_name)
            continue
        try:
            register(host)
        except Exception:
            logger.exception("Bundle '%s' failed to register", module_name)
            continue
        loaded.append(module_name)
    logger.info("Loaded %d bundle(s): %s", len(loaded), ", ".join(loaded) or "-")
    return loaded
