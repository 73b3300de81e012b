from __future__ import annotations

import logging
from typing import Dict, Hashable, Optional

from .errors import require_id
from .locks import KeyedLocks

"""
Identity Registry
-----------------
Single source of truth for who is online and which live connection belongs
to which user.

Three maps are kept:
  names          user_id    -> display name     (the online set)
  user_session   user_id    -> session_id
  session_user   session_id -> user_id

Invariant: user_session and session_user are exact mirrors of each other.
Every write to either side happens while holding the stripes of every user
key and session key it touches, so a join racing a disconnect for the same
identity serializes, while traffic on unrelated identities does not contend.

Related keys (the session a user currently holds, the user that currently
owns a session) are read optimistically before locking and re-checked once
the locks are held; on a mismatch the operation retries.
"""

log = logging.getLogger("dmrelay.registry")


def _user_key(user_id: Optional[str]) -> Optional[Hashable]:
    return None if user_id is None else ("user", user_id)


def _session_key(session_id: Optional[str]) -> Optional[Hashable]:
    return None if session_id is None else ("session", session_id)


class IdentityRegistry:
    def __init__(self, locks: Optional[KeyedLocks] = None) -> None:
        self._locks = locks or KeyedLocks()
        self._names: Dict[str, str] = {}
        self._user_session: Dict[str, str] = {}
        self._session_user: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def join(self, user_id: str, display_name: str, session_id: Optional[str] = None) -> None:
        """Register presence; bind ``session_id`` to the user when given.

        Last write wins for both the display name and the session binding.
        A session already bound to another user evicts that user.
        """
        require_id(user_id, "user_id")
        session_id = session_id or None

        while True:
            owner = self._session_user.get(session_id) if session_id else None
            previous = self._user_session.get(user_id)
            with self._locks.hold(
                _user_key(user_id),
                _session_key(session_id),
                _user_key(owner),
                _session_key(previous),
            ):
                if session_id and self._session_user.get(session_id) != owner:
                    continue
                if self._user_session.get(user_id) != previous:
                    continue

                if owner is not None and owner != user_id:
                    log.info("Session %s rebound from %s to %s", session_id, owner, user_id)
                    self._remove(owner)

                if session_id:
                    if previous is not None and previous != session_id:
                        self._session_user.pop(previous, None)
                    self._session_user[session_id] = user_id
                    self._user_session[user_id] = session_id
                self._names[user_id] = display_name
                break

        log.info("Joined: %s (session=%s)", user_id, session_id)

    def leave(self, user_id: str) -> bool:
        """Drop the presence entry and session binding. Returns False if absent."""
        while True:
            previous = self._user_session.get(user_id)
            with self._locks.hold(_user_key(user_id), _session_key(previous)):
                if self._user_session.get(user_id) != previous:
                    continue
                removed = self._remove(user_id)
                break
        if removed:
            log.info("Left: %s", user_id)
        return removed

    def disconnect(self, session_id: str) -> Optional[str]:
        """Remove whoever is bound to ``session_id``. Returns that user, or None."""
        while True:
            user_id = self._session_user.get(session_id)
            if user_id is None:
                log.debug("Disconnect for unbound session %s", session_id)
                return None
            with self._locks.hold(_session_key(session_id), _user_key(user_id)):
                if self._session_user.get(session_id) != user_id:
                    continue
                self._remove(user_id)
                log.info("Disconnected: %s (session=%s)", user_id, session_id)
                return user_id

    def _remove(self, user_id: str) -> bool:
        # caller holds the stripes for user_id and its current session
        removed = self._names.pop(user_id, None) is not None
        session_id = self._user_session.pop(user_id, None)
        if session_id is not None:
            removed = True
            if self._session_user.get(session_id) == user_id:
                del self._session_user[session_id]
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def online_users(self) -> Dict[str, str]:
        return dict(self._names)

    def resolve_user(self, session_id: str) -> Optional[str]:
        return self._session_user.get(session_id)

    def resolve_session(self, user_id: str) -> Optional[str]:
        return self._user_session.get(user_id)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._names


__all__ = ["IdentityRegistry"]
