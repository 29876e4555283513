# chat_core/domain/entities.py
from enum import Enum


class ChatKind(str, Enum):
    DIRECT = "direct"
    GROUP = "group"


class MessageKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    EVENT_SHARE = "event-share"
    SYSTEM = "system"


class DeliveryStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


def direct_pair_key(user_a: int, user_b: int) -> str:
    """Canonical key for the unordered pair of a direct chat."""
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"
