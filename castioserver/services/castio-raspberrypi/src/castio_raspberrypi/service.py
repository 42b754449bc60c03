"""The ``raspberrypi`` service bundle.

Each service instance gets a ``RaspberryPiProxy`` on its configured
namespace; remote agents connect to that namespace on the host's channel
server. The bundle owns one ``SessionArbiter`` so two instances on the same
namespace never run side by side.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from castio_sdk.base import ServiceBundle, ServiceHost
from castio_sdk.channel import ChannelEndpointServer
from castio_sdk.models import ServiceInfo

from .arbiter import SessionArbiter
from .proxy import DEFAULT_NAMESPACE, RaspberryPiProxy

logger = logging.getLogger(__name__)


class RaspberryPiServiceConfig(BaseModel):
    namespace: Optional[str] = None
    # Seconds before a pending read fails; None waits indefinitely.
    read_timeout: Optional[float] = Field(default=None, gt=0)

    @field_validator("namespace")
    @classmethod
    def _namespace_is_path(cls, value: Optional[str]) -> Optional[str]:
        if value and not value.startswith("/"):
            raise ValueError('The namespace must begin with a "/"')
        return value

    @property
    def effective_namespace(self) -> str:
        return self.namespace or DEFAULT_NAMESPACE


class RaspberryPiServiceClient:
    """What consumers of a ``raspberrypi`` instance receive."""

    def __init__(self, proxy: RaspberryPiProxy) -> None:
        self._proxy = proxy

    def get_raw_client(self) -> RaspberryPiProxy:
        return self._proxy


class RaspberryPiService(ServiceBundle[RaspberryPiServiceConfig, RaspberryPiServiceClient]):
    config_model = RaspberryPiServiceConfig

    def __init__(self, server: ChannelEndpointServer) -> None:
        self._server = server
        self._arbiter = SessionArbiter()

    @property
    def info(self) -> ServiceInfo:
        return ServiceInfo(
            name="raspberrypi",
            version="0.1.0",
            description="GPIO pins of a remote Raspberry Pi agent.",
        )

    @property
    def arbiter(self) -> SessionArbiter:
        return self._arbiter

    async def create_client(self, config: RaspberryPiServiceConfig) -> RaspberryPiServiceClient:
        proxy = RaspberryPiProxy(
            self._server,
            config.effective_namespace,
            read_timeout=config.read_timeout,
        )
        self._arbiter.activate(proxy)
        logger.info(
            "Raspberry Pi service waiting for agents on %s", config.effective_namespace
        )
        return RaspberryPiServiceClient(proxy)

    async def stop_client(self, client: RaspberryPiServiceClient) -> None:
        self._arbiter.release(client.get_raw_client())


def register(host: ServiceHost) -> RaspberryPiService:
    """Bundle entry point called by the castio host."""
    logger.info("Raspberry Pi bundle started")
    bundle = RaspberryPiService(host.channel_server)
    host.registry.register_service(bundle)
    return bundle
