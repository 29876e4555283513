# chat_core/infrastructure/event_handlers.py
import logging
from typing import Any

from chat_core.domain.events import (
    ChatDeactivated,
    ChatEvent,
    MemberRemoved,
    MessageCreated,
    MessageDeleted,
    MessageDelivered,
    MessagesRead,
    MessageUpdated,
    UnreadCountUpdated,
)
from chat_core.infrastructure.connection_registry import ConnectionRegistry
from chat_core.infrastructure.redis_client import RedisClient


class EventHandlers:
    """Fans committed chat events out to local sockets and the Redis bus."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        redis_client: RedisClient | None,
        logger: logging.Logger,
    ):
        self.registry = registry
        self.redis_client = redis_client
        self.logger = logger

    def register_all(self, dispatcher) -> None:
        dispatcher.register("MessageCreated", self.publish_message_created)
        dispatcher.register("MessageUpdated", self.publish_message_updated)
        dispatcher.register("MessageDeleted", self.publish_message_deleted)
        dispatcher.register("MessagesRead", self.publish_messages_read)
        dispatcher.register("MessageDelivered", self.publish_message_delivered)
        dispatcher.register("UnreadCountUpdated", self.publish_unread_count_updated)
        dispatcher.register("MemberRemoved", self.publish_member_removed)
        dispatcher.register("ChatDeactivated", self.publish_chat_deactivated)

    async def publish_to_bus(
        self, channel: str, event_name: str, event: ChatEvent, data: Any
    ) -> None:
        if self.redis_client is None or not self.redis_client.connected:
            return
        await self.redis_client.publish(
            channel, {"event": event_name, "chatId": event.chat_id, "data": data}
        )

    async def publish_message_created(self, event: MessageCreated):
        delivered = await self.registry.emit_to_room(
            event.chat_id,
            "message:new",
            event.message,
            exclude_user_ids=event.suppressed_user_ids,
        )
        self.logger.debug(
            f"message:new {event.message.get('id')} reached {delivered} socket(s) in chat {event.chat_id}"
        )
        await self.publish_to_bus(
            f"chat:{event.chat_id}", "message:new", event, event.message
        )

    async def publish_message_updated(self, event: MessageUpdated):
        await self.registry.emit_to_room(event.chat_id, "message:updated", event.message)
        await self.publish_to_bus(
            f"chat:{event.chat_id}", "message:updated", event, event.message
        )

    async def publish_message_deleted(self, event: MessageDeleted):
        data = {"chatId": event.chat_id, "messageId": event.message_id}
        await self.registry.emit_to_room(event.chat_id, "message:deleted", data)
        await self.publish_to_bus(f"chat:{event.chat_id}", "message:deleted", event, data)

    async def publish_messages_read(self, event: MessagesRead):
        data = {"chatId": event.chat_id, "readerId": event.reader_id}
        # the reader's own sockets already know
        await self.registry.emit_to_room(
            event.chat_id, "message:read", data, exclude_user_ids=[event.reader_id]
        )
        await self.publish_to_bus(
            f"chat:{event.chat_id}:read",
            "message:read",
            event,
            {**data, "readAt": event.read_at.isoformat()},
        )

    async def publish_message_delivered(self, event: MessageDelivered):
        data = {
            "chatId": event.chat_id,
            "messageId": event.message_id,
            "userId": event.user_id,
        }
        await self.registry.emit_to_room(
            event.chat_id, "message:delivered", data, exclude_user_ids=[event.user_id]
        )
        await self.publish_to_bus(
            f"chat:{event.chat_id}:status", "message:delivered", event, data
        )

    async def publish_unread_count_updated(self, event: UnreadCountUpdated):
        data = {"chatId": event.chat_id, "unreadCount": event.unread_count}
        await self.registry.emit_to_user(event.user_id, "unread:updated", data)
        await self.publish_to_bus(
            f"chat:{event.chat_id}:unread_count:{event.user_id}",
            "unread:updated",
            event,
            data,
        )

    async def publish_member_removed(self, event: MemberRemoved):
        evicted = self.registry.evict(event.chat_id, [event.user_id])
        await self.registry.emit_to(evicted, "chat:left", event.chat_id)
        await self.publish_to_bus(
            f"chat:{event.chat_id}",
            "member:removed",
            event,
            {"chatId": event.chat_id, "userId": event.user_id},
        )

    async def publish_chat_deactivated(self, event: ChatDeactivated):
        evicted = self.registry.evict(event.chat_id)
        await self.registry.emit_to(evicted, "chat:left", event.chat_id)
        self.logger.info(f"Chat {event.chat_id} deactivated, closed room for {len(evicted)} socket(s)")
        await self.publish_to_bus(
            f"chat:{event.chat_id}", "chat:deactivated", event, {"chatId": event.chat_id}
        )
