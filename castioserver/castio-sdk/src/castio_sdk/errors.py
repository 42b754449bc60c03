"""Error taxonomy shared by the host, the bundles and the remote agent.

Every error carries a short ``error_code`` string so the host can report it
back through a ``ServiceResult`` or the HTTP status API without inventing
ad-hoc status values.
"""

from __future__ import annotations

from typing import Any


class CastioError(Exception):
    """Base class for castio domain errors."""

    error_code = "internal"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ConfigError(CastioError):
    """Invalid configuration or argument: bad URL, namespace, pin id, …

    Surfaced synchronously to the caller and never retried.
    """

    error_code = "invalid_argument"


class PinModeError(ConfigError):
    """A pin id was re-addressed in a mode other than the one it was created in."""

    error_code = "failed_precondition"


class TransportError(CastioError):
    """The duplex channel could not be reached or dropped."""

    error_code = "unavailable"


class ReadTimeoutError(CastioError, TimeoutError):
    """A pending pin read was not answered in time."""

    error_code = "deadline_exceeded"


class SessionStoppedError(CastioError):
    """The owning proxy session was stopped before the operation completed."""

    error_code = "cancelled"
