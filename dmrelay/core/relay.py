from __future__ import annotations

from typing import Dict, Optional, Tuple

from pydantic import ValidationError

from .errors import InvalidInput
from .history import HistoryStore
from .locks import KeyedLocks
from .model import Message
from .presence import LifecycleCoordinator
from .registry import IdentityRegistry
from .router import Router
from .transport import Transport


class Relay:
    """Everything the outside world may call, wired together.

    The transport feeds session signals and client submissions in, answers
    queries from here, and receives deliveries and presence broadcasts back
    through the ``Transport`` it was constructed with.
    """

    def __init__(self, transport: Transport, *, lock_stripes: int = 64) -> None:
        self.registry = IdentityRegistry(KeyedLocks(lock_stripes))
        self.history = HistoryStore(KeyedLocks(lock_stripes))
        self.router = Router(self.history, transport)
        self.lifecycle = LifecycleCoordinator(self.registry, transport)

    # -- transport signals --

    def on_connected(self, session_id: str) -> None:
        self.lifecycle.on_connected(session_id)

    def on_disconnected(self, session_id: str) -> Optional[str]:
        return self.lifecycle.on_disconnected(session_id)

    # -- client submissions --

    def submit_join(
        self,
        user_id: str,
        display_name: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Message:
        return self.lifecycle.submit_join(user_id, display_name, session_id)

    def submit_leave(self, user_id: str) -> Message:
        return self.lifecycle.submit_leave(user_id)

    def submit_chat(self, content: str, sender: str, receiver: Optional[str] = None) -> Message:
        try:
            message = Message(content=content, sender=sender, receiver=receiver)
        except ValidationError as e:
            raise InvalidInput("content, sender and receiver must be strings") from e
        return self.router.route(message)

    # -- queries --

    def list_online_users(self) -> Dict[str, str]:
        return self.registry.online_users()

    def get_history(self, user_id: str) -> Tuple[Message, ...]:
        return self.history.history_for(user_id)

    def get_history_between(self, user_id1: str, user_id2: str) -> Tuple[Message, ...]:
        return self.history.history_between(user_id1, user_id2)


__all__ = ["Relay"]
