"""SessionArbiter — at most one active proxy per channel namespace."""

from __future__ import annotations

import logging

from .proxy import RaspberryPiProxy

logger = logging.getLogger(__name__)


class SessionArbiter:
    """Tracks the active proxy of every namespace.

    Activating a proxy for a namespace that already has one stops the old
    proxy first: its agents are disconnected and its listeners removed before
    the new proxy starts accepting connections.
    """

    def __init__(self) -> None:
        self._active: dict[str, RaspberryPiProxy] = {}

    def active(self, namespace: str) -> RaspberryPiProxy | None:
        return self._active.get(namespace)

    def activate(self, proxy: RaspberryPiProxy) -> None:
        namespace = proxy.namespace_name
        previous = self._active.get(namespace)
        if previous is proxy:
            return
        if previous is not None:
            logger.info("Superseding active Raspberry Pi session on %s", namespace)
            previous.stop()
        self._active[namespace] = proxy
        proxy.start()

    def release(self, proxy: RaspberryPiProxy) -> None:
        """Stop *proxy*, forgetting it if it is still the active one."""
        namespace = proxy.namespace_name
        if self._active.get(namespace) is proxy:
            del self._active[namespace]
        proxy.stop()

    def release_all(self) -> None:
        for proxy in list(self._active.values()):
            self.release(proxy)
