# chat_core/domain/events.py
from datetime import datetime
from typing import Any

from pydantic import BaseModel


class Event(BaseModel):
    pass


class ChatEvent(Event):
    chat_id: int


class MessageCreated(ChatEvent):
    # serialized message as sent to clients
    message: dict[str, Any]
    # participants whose sockets must not receive the message
    suppressed_user_ids: list[int] = []


class MessageUpdated(ChatEvent):
    message: dict[str, Any]


class MessageDeleted(ChatEvent):
    message_id: int


class MessagesRead(ChatEvent):
    reader_id: int
    read_at: datetime
    newly_read: int = 0


class MessageDelivered(ChatEvent):
    message_id: int
    user_id: int


class UnreadCountUpdated(ChatEvent):
    user_id: int
    unread_count: int


class MemberRemoved(ChatEvent):
    user_id: int


class ChatDeactivated(ChatEvent):
    pass
