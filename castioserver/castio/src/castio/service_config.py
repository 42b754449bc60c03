"""Service instance configuration management.

Each configured service instance has a file at:
    ~/.castio/services/<name>.json

The host creates every enabled instance on startup through the registry,
which looks the bundle up by ``service_type``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .config import APP_DIR

logger = logging.getLogger(__name__)

SERVICES_DIR = APP_DIR / "services"


@dataclass
class ServiceInstanceConfig:
    """Persisted configuration for one service instance."""

    name: str
    service_type: str
    enabled: bool = True
    # Bundle-specific settings, validated by the bundle's config model.
    config: dict[str, Any] = field(default_factory=dict)


def ensure_services_dir() -> Path:
    SERVICES_DIR.mkdir(parents=True, exist_ok=True)
    return SERVICES_DIR


def service_config_path(name: str) -> Path:
    return SERVICES_DIR / f"{name}.json"


def _read(path: Path) -> ServiceInstanceConfig | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ServiceInstanceConfig(**data)
    except (OSError, json.JSONDecodeError, TypeError) as exc:
        logger.warning("Skipping unreadable service config %s: %s", path, exc)
        return None


def load_service_config(name: str) -> ServiceInstanceConfig | None:
    path = service_config_path(name)
    if not path.exists():
        return None
    return _read(path)


def save_service_config(cfg: ServiceInstanceConfig) -> None:
    ensure_services_dir()
    service_config_path(cfg.name).write_text(
        json.dumps(asdict(cfg), indent=2), encoding="utf-8"
    )


def list_service_configs() -> list[ServiceInstanceConfig]:
    ensure_services_dir()
    configs = (_read(path) for path in sorted(SERVICES_DIR.glob("*.json")))
    return [cfg for cfg in configs if cfg is not None]


def list_enabled_services() -> list[ServiceInstanceConfig]:
    return [c for c in list_service_configs() if c.enabled]


def delete_service_config(name: str) -> bool:
    path = service_config_path(name)
    if path.exists():
        path.unlink()
        return True
    return False
