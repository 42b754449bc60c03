"""Config and state file management for the castio host.

Files live under ~/.castio/:
  config.json  — persistent settings (listen addresses, bundles, logging)
  state.json   — runtime state updated by the running server process
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

APP_DIR = Path.home() / ".castio"
CONFIG_FILE = APP_DIR / "config.json"
STATE_FILE = APP_DIR / "state.json"
PID_FILE = APP_DIR / "castio.pid"


class Config(BaseModel):
    channel_host: str = "0.0.0.0"
    channel_port: int = Field(default=9090, ge=0, le=65535)
    http_host: str = "127.0.0.1"
    http_port: int = Field(default=18090, ge=0, le=65535)
    log_level: str = "INFO"
    log_dir: str = ""  # empty → APP_DIR / "logs"
    log_levels: dict[str, str] = Field(default_factory=dict)
    # Importable modules exposing ``register(host)``.
    bundles: list[str] = Field(default_factory=lambda: ["castio_raspberrypi"])


class State(BaseModel):
    running: bool = False
    started_at: Optional[str] = None  # ISO 8601
    channel_url: Optional[str] = None


def ensure_app_dir() -> Path:
    APP_DIR.mkdir(parents=True, exist_ok=True)
    return APP_DIR


def resolve_log_dir(config: Config) -> Path:
    return Path(config.log_dir) if config.log_dir else APP_DIR / "logs"


def load_config() -> Config:
    ensure_app_dir()
    if CONFIG_FILE.exists():
        return Config.model_validate_json(CONFIG_FILE.read_text(encoding="utf-8"))
    return Config()


def save_config(config: Config) -> None:
    ensure_app_dir()
    CONFIG_FILE.write_text(config.model_dump_json(indent=2), encoding="utf-8")


def load_state() -> State:
    ensure_app_dir()
    if STATE_FILE.exists():
        try:
            return State.model_validate_json(STATE_FILE.read_text(encoding="utf-8"))
        except (ValidationError, OSError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", STATE_FILE, exc)
    return State()


def save_state(state: State) -> None:
    ensure_app_dir()
    STATE_FILE.write_text(state.model_dump_json(indent=2), encoding="utf-8")


def mark_started(channel_url: str) -> None:
    save_state(
        State(
            running=True,
            started_at=datetime.now(timezone.utc).isoformat(),
            channel_url=channel_url,
        )
    )


def mark_stopped() -> None:
    state = load_state()
    state.running = False
    save_state(state)
