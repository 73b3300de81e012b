from __future__ import annotations

import logging
from typing import Optional

from .errors import InvalidInput, require_id
from .model import Message, MessageKind
from .registry import IdentityRegistry
from .router import stamp
from .transport import Transport

"""
Presence lifecycle
------------------
Turns session signals from the transport and explicit join/leave requests
from clients into registry updates, then broadcasts the new online set.

Per session: UNKNOWN -> CONNECTED -> (JOINED)? -> DISCONNECTED

  on_connected      informational, the registry is untouched until a join
  submit_join       bind user <-> session, broadcast
  submit_leave      unbind, broadcast (even if the user was already gone)
  on_disconnected   unbind whoever held the session, broadcast; unknown or
                    repeated sessions are ignored

Nothing here assumes a join has settled before the matching disconnect
arrives; the registry serializes the two and whichever lands last wins.
"""

log = logging.getLogger("dmrelay.presence")


class LifecycleCoordinator:
    def __init__(self, registry: IdentityRegistry, transport: Transport) -> None:
        self.registry = registry
        self.transport = transport

    # ------------------------------------------------------------------
    # Transport signals
    # ------------------------------------------------------------------

    def on_connected(self, session_id: str) -> None:
        log.info("New connection: session=%s", session_id)

    def on_disconnected(self, session_id: str) -> Optional[str]:
        """Returns the user that was removed, or None if the session was unbound."""
        user_id = self.registry.disconnect(session_id)
        if user_id is None:
            log.warning("Disconnect for session %s with no joined user", session_id)
            return None
        self.broadcast()
        log.info("User removed after disconnect: %s", user_id)
        return user_id

    # ------------------------------------------------------------------
    # Client requests
    # ------------------------------------------------------------------

    def submit_join(
        self,
        user_id: str,
        display_name: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Message:
        require_id(user_id, "user_id")
        if display_name is not None and not isinstance(display_name, str):
            raise InvalidInput("display_name must be a string")
        self.registry.join(user_id, display_name or user_id, session_id)
        self.broadcast()
        return stamp(Message(sender=user_id), MessageKind.JOIN)

    def submit_leave(self, user_id: str) -> Message:
        require_id(user_id, "user_id")
        self.registry.leave(user_id)
        self.broadcast()
        return stamp(Message(sender=user_id), MessageKind.LEAVE)

    def broadcast(self) -> None:
        snapshot = self.registry.online_users()
        try:
            self.transport.broadcast_presence(snapshot)
        except Exception:
            log.exception("Presence broadcast failed (%d online)", len(snapshot))


__all__ = ["LifecycleCoordinator"]
