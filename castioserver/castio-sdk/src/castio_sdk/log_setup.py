"""Shared logging initialiser for all castio processes.

Call ``init()`` once at process start, before any other logging calls.
The host and every remote agent write their own rotating log file under
``log_dir`` (``~/.castio/logs`` unless told otherwise). In foreground mode a
:class:`logging.StreamHandler` is added as well.

Log format (human-readable, UTC timestamps)::

    2026-03-02T10:00:00.123Z [INFO    ] castio_raspberrypi.proxy: Replayed 3 pin(s) to peer 9f1c
"""

from __future__ import annotations

import logging
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_DIR = Path.home() / ".castio" / "logs"

_MAX_BYTES = 5 * 1024 * 1024  # 5 MB per file
_BACKUP_COUNT = 5

_FMT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"

# Chatty libraries: every websocket frame / HTTP hit at DEBUG otherwise.
_QUIET_LOGGERS = {
    "websockets": "WARNING",
    "uvicorn.access": "WARNING",
}


class _UtcFormatter(logging.Formatter):
    converter = time.gmtime

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        ct = self.converter(record.created)
        return f"{time.strftime('%Y-%m-%dT%H:%M:%S', ct)}.{int(record.msecs):03d}Z"


def _level(name: str, default: int = logging.INFO) -> int:
    value = getattr(logging, name.upper(), None)
    return value if isinstance(value, int) else default


def init(
    component: str,
    log_dir: Path | None = None,
    *,
    level: str = "INFO",
    foreground: bool = False,
    log_levels: dict[str, str] | None = None,
) -> Path:
    """Initialise logging for one castio process and return the log file path.

    Parameters
    ----------
    component:
        Log-file stem, e.g. ``"server"`` or ``"agent-raspberrypi"``.
    log_dir:
        Directory for the rotating log file. Created if absent.
    level:
        Root logger level name.
    foreground:
        Also log to stderr. Used by ``castio start --foreground`` and by the
        remote agent, which usually runs under a service manager.
    log_levels:
        Per-logger overrides applied last, e.g.
        ``{"castio_raspberrypi.proxy": "DEBUG"}``.
    """
    log_dir = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{component}.log"

    formatter = _UtcFormatter(_FMT)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(_level(level))
    root.handlers.clear()
    root.addHandler(file_handler)

    if foreground:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)

    for logger_name, level_str in {**_QUIET_LOGGERS, **(log_levels or {})}.items():
        logging.getLogger(logger_name).setLevel(_level(level_str))

    return log_file
