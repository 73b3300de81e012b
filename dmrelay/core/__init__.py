from .errors import InvalidInput, RelayError
from .history import HistoryStore
from .model import Message, MessageKind
from .presence import LifecycleCoordinator
from .registry import IdentityRegistry
from .relay import Relay
from .router import Router
from .transport import Transport

__all__ = [
    "HistoryStore",
    "IdentityRegistry",
    "InvalidInput",
    "LifecycleCoordinator",
    "Message",
    "MessageKind",
    "Relay",
    "RelayError",
    "Router",
    "Transport",
]
