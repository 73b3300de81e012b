from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageKind(str, Enum):
    JOIN = "JOIN"
    CHAT = "CHAT"
    LEAVE = "LEAVE"


class Message(BaseModel):
    """A chat message. Immutable; the router produces stamped copies.

    ``id`` and ``timestamp`` supplied by a caller are ignored by the router and
    overwritten. ``kind`` travels as ``type`` on the wire.
    """

    id: Optional[str] = None
    content: str = ""
    sender: Optional[str] = None
    receiver: Optional[str] = None
    timestamp: Optional[datetime] = None
    kind: MessageKind = Field(default=MessageKind.CHAT, alias="type")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def involves(self, user_a: str, user_b: str) -> bool:
        """True if this is a directed exchange between the two users, either way."""
        return (self.sender == user_a and self.receiver == user_b) or (
            self.sender == user_b and self.receiver == user_a
        )


__all__ = ["MessageKind", "Message"]
