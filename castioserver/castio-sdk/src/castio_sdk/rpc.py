"""JSON-RPC 2.0 framing for channel events.

Every event crossing the channel is a notification (no id, no response)
whose ``method`` is the event name and whose ``params`` is the payload.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from .models import RpcRequest


def build_notification(
    method: str,
    params: dict[str, Any] | None = None,
) -> str:
    """Serialise a JSON-RPC notification (fire-and-forget, no id)."""
    return RpcRequest(method=method, params=params or {}, id=None).model_dump_json()


def parse_notification(raw: str | bytes) -> RpcRequest:
    """Deserialise a raw frame into an ``RpcRequest``.

    Raises ``ValueError`` when the frame is not JSON or not a request object;
    the caller decides whether to log and drop it.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"frame is not JSON: {exc}") from exc
    if not isinstance(data, dict) or "method" not in data:
        raise ValueError("frame is not a JSON-RPC request")
    try:
        return RpcRequest.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"invalid JSON-RPC request: {exc}") from exc
