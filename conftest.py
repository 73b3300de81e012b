from typing import Dict, List, Tuple

import pytest

from dmrelay.core.model import Message


class FakeTransport:
    """Records hand-offs instead of sending them anywhere."""

    def __init__(self) -> None:
        self.deliveries: List[Tuple[str, Message]] = []
        self.broadcasts: List[Dict[str, str]] = []

    def deliver_to_user(self, user_id: str, message: Message) -> None:
        self.deliveries.append((user_id, message))

    def broadcast_presence(self, online_users: Dict[str, str]) -> None:
        self.broadcasts.append(dict(online_users))

    def delivered_to(self, user_id: str) -> List[Message]:
        return [m for uid, m in self.deliveries if uid == user_id]


@pytest.fixture
def transport():
    return FakeTransport()
