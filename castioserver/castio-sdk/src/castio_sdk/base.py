"""Abstract base class every castio service bundle implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from .channel import ChannelEndpointServer
from .errors import ConfigError
from .models import ServiceInfo

ConfigT = TypeVar("ConfigT", bound=BaseModel)
ClientT = TypeVar("ClientT")
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """Outcome of a registry operation: ``ok`` with a value, or an error reason."""

    ok: bool
    value: T | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: T | None = None) -> ServiceResult[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> ServiceResult[T]:
        return cls(ok=False, error=reason)


class ServiceRegistrar(Protocol):
    def register_service(self, bundle: ServiceBundle[Any, Any]) -> None: ...

    def require_service(self, instance_name: str, on_available: Any, on_unset: Any = None) -> None: ...


class ServiceHost(Protocol):
    """What the host hands to a bundle module's ``register(host)`` function."""

    registry: ServiceRegistrar
    channel_server: ChannelEndpointServer


class ServiceBundle(ABC, Generic[ConfigT, ClientT]):
    """Contract between the castio host and a service bundle.

    Subclass this, set ``config_model`` to a pydantic model describing the
    instance configuration, implement the abstract methods, then register an
    instance with the host registry.

    Lifecycle (driven by the registry, once per service instance):
      1. ``parse_config(raw)``      — schema validation via ``config_model``
      2. ``validate_config(cfg)``   — extra semantic checks
      3. ``create_client(cfg)``     — build the client handed to consumers
      4. ``stop_client(client)``    — tear the client down

    Hooks signal bad configuration by raising ``ConfigError``.
    """

    config_model: type[ConfigT]

    @property
    @abstractmethod
    def info(self) -> ServiceInfo:
        """Return service type name, version, and description."""

    @property
    def service_type(self) -> str:
        return self.info.name

    def parse_config(self, raw: dict[str, Any]) -> ConfigT:
        try:
            return self.config_model.model_validate(raw)
        except ValidationError as exc:
            raise ConfigError(
                f"Invalid {self.service_type} config: {exc.errors()[0]['msg']}",
                details={"errors": exc.errors(include_url=False)},
            ) from exc

    async def validate_config(self, config: ConfigT) -> None:
        """Optional semantic checks beyond the schema."""
        _ = config

    @abstractmethod
    async def create_client(self, config: ConfigT) -> ClientT:
        """Build and return the client for one service instance."""

    @abstractmethod
    async def stop_client(self, client: ClientT) -> None:
        """Release everything ``create_client`` acquired."""
