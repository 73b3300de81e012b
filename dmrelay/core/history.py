from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from .locks import KeyedLocks
from .model import Message

log = logging.getLogger("dmrelay.history")


class HistoryStore:
    """Append-only, per-user message logs held in memory."""

    def __init__(self, locks: Optional[KeyedLocks] = None) -> None:
        self._locks = locks or KeyedLocks()
        self._logs: Dict[str, List[Message]] = {}

    def append(self, message: Message) -> None:
        """Store under the sender's key, and the receiver's when there is one.

        The same message object lands in both logs; a message addressed to
        its own sender therefore appears twice in that log.
        """
        keys = [message.sender]
        if message.receiver:
            keys.append(message.receiver)

        with self._locks.hold(*keys):
            for key in keys:
                self._logs.setdefault(key, []).append(message)
        log.debug("Stored %s under %s", message.id, keys)

    def history_for(self, user_id: str) -> Tuple[Message, ...]:
        with self._locks.hold(user_id):
            return tuple(self._logs.get(user_id, ()))

    def history_between(self, user_id1: str, user_id2: str) -> Tuple[Message, ...]:
        # Only user_id1's log is scanned.
        return tuple(m for m in self.history_for(user_id1) if m.involves(user_id1, user_id2))


__all__ = ["HistoryStore"]
