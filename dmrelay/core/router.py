from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from .errors import require_id
from .history import HistoryStore
from .model import Message, MessageKind
from .transport import Transport

log = logging.getLogger("dmrelay.router")


def stamp(message: Message, kind: MessageKind) -> Message:
    """Return a copy with a fresh id, the current UTC time and ``kind``."""
    return message.model_copy(
        update={
            "id": str(uuid.uuid4()),
            "timestamp": datetime.now(timezone.utc),
            "kind": kind,
        }
    )


class Router:
    """Stamps chat messages, records them, and hands them to the transport."""

    def __init__(self, history: HistoryStore, transport: Transport) -> None:
        self.history = history
        self.transport = transport

    def route(self, message: Message) -> Message:
        require_id(message.sender, "sender")

        routed = stamp(message, MessageKind.CHAT)
        self.history.append(routed)
        log.debug("Routed %s: %s -> %s", routed.id, routed.sender, routed.receiver)

        # Receiver first, then the sender's own echo. A self-addressed
        # message is therefore handed off twice to the same user.
        if routed.receiver:
            self._hand_off(routed.receiver, routed)
        self._hand_off(routed.sender, routed)
        return routed

    def _hand_off(self, user_id: str, message: Message) -> None:
        try:
            self.transport.deliver_to_user(user_id, message)
        except Exception:
            log.exception("Delivery hand-off to %s failed for %s", user_id, message.id)


__all__ = ["Router", "stamp"]
