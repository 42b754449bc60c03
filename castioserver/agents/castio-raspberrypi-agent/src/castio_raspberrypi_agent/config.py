"""Agent configuration, read from a JSON file next to the agent.

Example ``config.json``::

    {
      "url": "ws://castio-host:9090/raspberrypi",
      "retry_interval": 5000,
      "debounce_us": 10000
    }
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from castio_sdk.errors import ConfigError

DEFAULT_CONFIG_FILE = Path("config.json")


class AgentConfig(BaseModel):
    # Reject unknown keys such as a misspelt "debounce_us".
    model_config = ConfigDict(extra="forbid")

    url: str
    retry_interval: int = Field(default=5000, gt=0)  # ms between connect attempts
    # pigpio glitch filter: level changes shorter than this are ignored.
    debounce_us: int = Field(default=10000, ge=0, le=300000)
    pigpio_host: str = "localhost"
    pigpio_port: int = Field(default=8888, gt=0, le=65535)

    @field_validator("url")
    @classmethod
    def _websocket_url(cls, value: str) -> str:
        if not value.startswith(("ws://", "wss://")):
            raise ValueError("url must be a ws:// or wss:// URL")
        return value

    @property
    def retry_seconds(self) -> float:
        return self.retry_interval / 1000


def load_config(path: Path = DEFAULT_CONFIG_FILE) -> AgentConfig:
    if not path.exists():
        raise ConfigError(f"Agent config not found: {path}", details={"path": str(path)})
    try:
        return AgentConfig.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "config"
        raise ConfigError(
            f"Invalid agent config {path}: {field}: {first['msg']}",
            details={"path": str(path)},
        ) from exc
