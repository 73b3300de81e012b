from __future__ import annotations

from typing import Dict, Protocol

from .model import Message


class Transport(Protocol):
    """Outbound side of the relay, implemented by whatever carries the bytes.

    Both calls are hand-offs: implementations must not block waiting for the
    peer, and the core never waits on delivery.
    """

    def deliver_to_user(self, user_id: str, message: Message) -> None: ...

    def broadcast_presence(self, online_users: Dict[str, str]) -> None: ...


__all__ = ["Transport"]
