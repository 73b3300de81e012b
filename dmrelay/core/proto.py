from __future__ import annotations

import json
import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .model import Message


# ---------------------------------------------------------------------------
# Envelope model (JSON text frames over WebSocket)
# ---------------------------------------------------------------------------

class Envelope(BaseModel):
    """One JSON frame in either direction."""

    type: str
    from_: str = Field(default="", alias="from")
    to: str = ""
    ts: int = 0
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("ts")
    @classmethod
    def _ts_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("timestamp must be non-negative")
        return value

    @field_validator("type")
    @classmethod
    def _type_present(cls, value: str) -> str:
        if not value:
            raise ValueError("type must be non-empty")
        return value


# client -> server
JOIN = "JOIN"
LEAVE = "LEAVE"
CHAT = "CHAT"
LIST_USERS = "LIST_USERS"
HISTORY = "HISTORY"

# server -> client
ACK = "ACK"
USER_DELIVER = "USER_DELIVER"
PRESENCE = "PRESENCE"
LIST_USERS_RESULT = "LIST_USERS_RESULT"
HISTORY_RESULT = "HISTORY_RESULT"
ERROR = "ERROR"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def now_ms() -> int:
    """Milliseconds since the Unix epoch."""

    return int(time.time() * 1000)


def build_frame(
    type: str,
    from_: str,
    to: str,
    payload: Dict[str, Any],
    *,
    ts: Optional[int] = None,
) -> Dict[str, Any]:
    return {
        "type": type,
        "from": from_,
        "to": to,
        "ts": now_ms() if ts is None else ts,
        "payload": payload,
    }


def parse_frame(text: str | bytes) -> Envelope:
    """Decode one frame. Raises ValueError on bad JSON or a bad shape."""

    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid_json: {e}") from e
    if not isinstance(obj, dict):
        raise ValueError("frame must be a JSON object")
    try:
        return Envelope.model_validate(obj)
    except ValidationError as e:
        raise ValueError(f"bad_frame: {e.error_count()} error(s)") from e


def encode_frame(frame: Dict[str, Any]) -> str:
    return json.dumps(frame, separators=(",", ":"))


def message_payload(message: Message) -> Dict[str, Any]:
    return message.model_dump(mode="json", by_alias=True)


def error_payload(code: str, detail: str) -> Dict[str, Any]:
    return {"code": code, "detail": detail}


__all__ = [
    "Envelope",
    "now_ms",
    "build_frame",
    "parse_frame",
    "encode_frame",
    "message_payload",
    "error_payload",
    "JOIN",
    "LEAVE",
    "CHAT",
    "LIST_USERS",
    "HISTORY",
    "ACK",
    "USER_DELIVER",
    "PRESENCE",
    "LIST_USERS_RESULT",
    "HISTORY_RESULT",
    "ERROR",
]
