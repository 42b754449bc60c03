"""ServiceRegistry — host-side bookkeeping of service bundles and instances.

Responsibilities:
  - Holds every registered ``ServiceBundle`` keyed by its service type.
  - Validates instance configs and creates / stops their clients, turning
    bundle exceptions into ``ServiceResult`` errors.
  - Notifies dependents registered with ``require_service`` whenever an
    instance's client becomes available or goes away.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from castio_sdk.base import ServiceBundle, ServiceResult
from castio_sdk.errors import CastioError

from .service_config import ServiceInstanceConfig

logger = logging.getLogger(__name__)

AvailableHandler = Callable[[Any], Any]
UnsetHandler = Callable[[], Any]


@dataclass
class _Instance:
    name: str
    service_type: str
    client: Any = None
    error: str | None = None

    @property
    def running(self) -> bool:
        return self.client is not None


@dataclass
class _Dependent:
    on_available: AvailableHandler
    on_unset: UnsetHandler | None = None
    tasks: set[asyncio.Task[Any]] = field(default_factory=set)


class ServiceRegistry:
    """Registered bundles, their running instances, and who depends on them."""

    def __init__(self) -> None:
        self._bundles: dict[str, ServiceBundle[Any, Any]] = {}
        self._instances: dict[str, _Instance] = {}
        self._dependents: dict[str, list[_Dependent]] = {}

    # ------------------------------------------------------------------
    # Bundles
    # ------------------------------------------------------------------

    def register_service(self, bundle: ServiceBundle[Any, Any]) -> None:
        service_type = bundle.service_type
        if service_type in self._bundles:
            raise ValueError(f"Service type '{service_type}' is already registered")
        self._bundles[service_type] = bundle
        logger.info("Service registered: %s v%s", service_type, bundle.info.version)

    def get_bundle(self, service_type: str) -> ServiceBundle[Any, Any] | None:
        return self._bundles.get(service_type)

    def get_service_types(self) -> list[str]:
        return list(self._bundles.keys())

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    async def validate_config(
        self, service_type: str, config: dict[str, Any]
    ) -> ServiceResult[None]:
        bundle = self._bundles.get(service_type)
        if bundle is None:
            return ServiceResult.failure(f"Unknown service type '{service_type}'")
        try:
            await bundle.validate_config(bundle.parse_config(config))
        except CastioError as exc:
            return ServiceResult.failure(exc.message)
        return ServiceResult.success()

    async def create_instance(self, instance: ServiceInstanceConfig) -> ServiceResult[Any]:
        """Validate *instance*'s config and create its client.

        An instance that is already running is stopped first, so this also
        serves to apply an updated configuration.
        """
        bundle = self._bundles.get(instance.service_type)
        if bundle is None:
            reason = f"Unknown service type '{instance.service_type}'"
            logger.error("Cannot create service '%s': %s", instance.name, reason)
            return ServiceResult.failure(reason)

        if instance.name in self._instances:
            await self.stop_instance(instance.name)

        entry = _Instance(name=instance.name, service_type=instance.service_type)
        self._instances[instance.name] = entry
        try:
            config = bundle.parse_config(instance.config)
            await bundle.validate_config(config)
            client = await bundle.create_client(config)
        except CastioError as exc:
            entry.error = exc.message
            logger.error("Service '%s' rejected: %s", instance.name, exc.message)
            return ServiceResult.failure(exc.message)
        except Exception as exc:
            entry.error = str(exc)
            logger.exception("Service '%s' failed to start", instance.name)
            return ServiceResult.failure(str(exc))

        entry.client = client
        logger.info("Service instance started: %s (%s)", instance.name, instance.service_type)
        for dependent in self._dependents.get(instance.name, []):
            self._notify(dependent, dependent.on_available, client)
        return ServiceResult.success(client)

    async def stop_instance(self, name: str) -> bool:
        entry = self._instances.pop(name, None)
        if entry is None:
            return False
        if not entry.running:
            return True
        for dependent in self._dependents.get(name, []):
            if dependent.on_unset is not None:
                self._notify(dependent, dependent.on_unset)
        bundle = self._bundles[entry.service_type]
        try:
            await bundle.stop_client(entry.client)
        except Exception:
            logger.exception("Error stopping service '%s'", name)
        logger.info("Service instance stopped: %s", name)
        return True

    async def stop_all(self) -> None:
        for name in list(self._instances):
            await self.stop_instance(name)

    def get_client(self, name: str) -> Any:
        entry = self._instances.get(name)
        return entry.client if entry else None

    def get_instance_info(self) -> list[dict[str, Any]]:
        return [
            {
                "name": entry.name,
                "service_type": entry.service_type,
                "running": entry.running,
                "error": entry.error,
            }
            for entry in self._instances.values()
        ]

    # ------------------------------------------------------------------
    # Dependents
    # ------------------------------------------------------------------

    def require_service(
        self,
        instance_name: str,
        on_available: AvailableHandler,
        on_unset: UnsetHandler | None = None,
    ) -> None:
        """Call *on_available(client)* whenever *instance_name* (re)starts.

        If the instance is already running the handler fires immediately.
        *on_unset* fires each time the instance stops.
        """
        dependent = _Dependent(on_available, on_unset)
        self._dependents.setdefault(instance_name, []).append(dependent)
        client = self.get_client(instance_name)
        if client is not None:
            self._notify(dependent, on_available, client)

    def _notify(self, dependent: _Dependent, handler: Callable[..., Any], *args: Any) -> None:
        try:
            result = handler(*args)
        except Exception:
            logger.exception("Service dependent handler %r failed", handler)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            dependent.tasks.add(task)
            task.add_done_callback(lambda t: self._finish(dependent, t))

    @staticmethod
    def _finish(dependent: _Dependent, task: asyncio.Task[Any]) -> None:
        dependent.tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Service dependent task failed", exc_info=task.exception())
