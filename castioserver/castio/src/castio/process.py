"""PID file bookkeeping for the detached castio server process.

``castio start`` spawns ``python -m castio._server_process`` and the child
writes its own PID; ``castio stop`` signals that PID. Windows has no
SIGTERM delivery to a detached console process, so ``taskkill`` is used.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys

from . import config

logger = logging.getLogger(__name__)


def write_pid(pid: int | None = None) -> None:
    config.ensure_app_dir()
    config.PID_FILE.write_text(str(pid or os.getpid()), encoding="utf-8")


def read_pid() -> int | None:
    try:
        return int(config.PID_FILE.read_text(encoding="utf-8").strip())
    except FileNotFoundError:
        return None
    except (ValueError, OSError) as exc:
        logger.warning("Ignoring unreadable PID file %s: %s", config.PID_FILE, exc)
        return None


def remove_pid() -> None:
    config.PID_FILE.unlink(missing_ok=True)


def is_running(pid: int | None = None) -> bool:
    pid = read_pid() if pid is None else pid
    if pid is None:
        return False
    if sys.platform == "win32":
        result = subprocess.run(
            ["tasklist", "/FI", f"PID eq {pid}", "/NH"],
            capture_output=True,
            text=True,
        )
        return str(pid) in result.stdout
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to someone else.
        return True
    return True


def terminate(pid: int) -> bool:
    """Ask *pid* to shut down; True if the request was delivered."""
    try:
        if sys.platform == "win32":
            subprocess.run(
                ["taskkill", "/PID", str(pid), "/F"],
                capture_output=True,
                check=True,
            )
        else:
            os.kill(pid, signal.SIGTERM)
    except (OSError, subprocess.CalledProcessError) as exc:
        logger.warning("Could not terminate process %d: %s", pid, exc)
        return False
    return True


def stop_server() -> bool:
    """Stop the running server. False when no server was running."""
    pid = read_pid()
    if pid is None:
        return False
    if not is_running(pid):
        remove_pid()
        return False
    if terminate(pid):
        remove_pid()
        return True
    return False
