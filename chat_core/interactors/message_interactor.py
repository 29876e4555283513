# chat_core/interactors/message_interactor.py
import logging
import math
from typing import Optional

from chat_core.config import AppConfig
from chat_core.domain.entities import MessageKind
from chat_core.domain.errors import AuthorizationError, NotFoundError, ValidationError
from chat_core.domain.events import (
    MessageCreated,
    MessageDeleted,
    MessageDelivered,
    MessagesRead,
    MessageUpdated,
    UnreadCountUpdated,
)
from chat_core.infrastructure import models, schemas
from chat_core.infrastructure.event_dispatcher import EventDispatcher
from chat_core.infrastructure.event_resolver import OpaqueEventResolver
from chat_core.infrastructure.models import utcnow
from chat_core.infrastructure.unit_of_work import AbstractUnitOfWork
from chat_core.interactors.unread_tracker import UnreadTracker


class MessageInteractor:
    """Orchestrates message writes and reads.

    Every write runs in two phases: the state change commits inside the unit
    of work, then the resulting events are dispatched. A failed dispatch never
    undoes or fails the write.
    """

    def __init__(
        self,
        uow: AbstractUnitOfWork,
        event_dispatcher: EventDispatcher,
        config: AppConfig,
        event_resolver: Optional[OpaqueEventResolver] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.uow = uow
        self.event_dispatcher = event_dispatcher
        self.config = config
        self.event_resolver = event_resolver or OpaqueEventResolver()
        self.tracker = UnreadTracker(uow)
        self.logger = logger or logging.getLogger("ChatCore")

    @staticmethod
    def to_payload(message: schemas.Message) -> dict:
        return message.model_dump(mode="json", by_alias=True)

    async def _active_chat(self, chat_id: int) -> models.Chat:
        chat = await self.uow.chats.get_chat(chat_id)
        if chat is None or not chat.is_active:
            raise NotFoundError("Chat not found")
        return chat

    async def _own_message(self, message_id: int, user_id: int) -> models.Message:
        message = await self.uow.messages.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        if message.sender_id != user_id:
            raise AuthorizationError("Only the sender can change this message")
        return message

    async def send(
        self, chat_id: int, sender_id: int, payload: schemas.MessageCreate
    ) -> schemas.Message:
        async with self.uow:
            chat = await self._active_chat(chat_id)
            if not any(p.user_id == sender_id for p in chat.participants):
                raise AuthorizationError()
            if payload.kind == MessageKind.EVENT_SHARE:
                event_id = await self.event_resolver.resolve(payload.event_id or "")
                payload = payload.model_copy(update={"event_id": event_id})

            db_message = await self.uow.messages.append(chat.id, sender_id, payload)
            recipients = await self.tracker.on_message_sent(chat, sender_id)
            await self.uow.chats.advance_last_message(
                chat.id, db_message.id, db_message.created_at
            )
            unread_counts = await self.uow.chats.get_unread_counts(chat.id)
            suppressed = [
                p.user_id
                for p in chat.participants
                if p.has_blocked and p.user_id != sender_id
            ]
            message = schemas.Message.model_validate(
                await self.uow.messages.get_message(db_message.id)
            )

        self.logger.info(
            f"User {sender_id} sent message {message.id} to chat {chat_id}"
        )
        await self.event_dispatcher.dispatch(
            MessageCreated(
                chat_id=chat_id,
                message=self.to_payload(message),
                suppressed_user_ids=suppressed,
            )
        )
        for user_id in recipients:
            await self.event_dispatcher.dispatch(
                UnreadCountUpdated(
                    chat_id=chat_id,
                    user_id=user_id,
                    unread_count=unread_counts.get(user_id, 0),
                )
            )
        return message

    async def get_messages(
        self,
        chat_id: int,
        user_id: int,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> schemas.MessagePage:
        if page < 1:
            raise ValidationError("page must be 1 or greater")
        if limit is None:
            limit = self.config.MESSAGES_PAGE_SIZE
        if limit < 1:
            raise ValidationError("limit must be 1 or greater")
        limit = min(limit, self.config.MESSAGES_MAX_PAGE_SIZE)

        messages, total = await self.uow.messages.page(chat_id, user_id, page, limit)
        return schemas.MessagePage(
            messages=[schemas.Message.model_validate(m) for m in messages],
            pagination=schemas.Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit),
            ),
        )

    async def mark_read(self, chat_id: int, reader_id: int) -> int:
        async with self.uow:
            chat = await self._active_chat(chat_id)
            newly_read = await self.tracker.mark_read(chat, reader_id)

        await self.event_dispatcher.dispatch(
            MessagesRead(
                chat_id=chat_id,
                reader_id=reader_id,
                read_at=utcnow(),
                newly_read=newly_read,
            )
        )
        await self.event_dispatcher.dispatch(
            UnreadCountUpdated(chat_id=chat_id, user_id=reader_id, unread_count=0)
        )
        return newly_read

    async def delete_for_user(self, message_id: int, user_id: int) -> None:
        # private to the user: nobody else is notified
        async with self.uow:
            await self.uow.messages.soft_delete_for_user(message_id, user_id)

    async def delete_for_everyone(self, message_id: int, user_id: int) -> None:
        async with self.uow:
            message = await self._own_message(message_id, user_id)
            chat_id = message.chat_id
            if message.is_deleted:
                return
            await self.uow.messages.delete_for_everyone(message_id)
            await self.uow.chats.refresh_last_message(chat_id)

        await self.event_dispatcher.dispatch(
            MessageDeleted(chat_id=chat_id, message_id=message_id)
        )

    async def edit_message(
        self, message_id: int, message_update: schemas.MessageUpdate, user_id: int
    ) -> schemas.Message:
        content = message_update.content.strip()
        if not content:
            raise ValidationError("content must not be empty")

        async with self.uow:
            message = await self._own_message(message_id, user_id)
            if message.is_deleted:
                raise ValidationError("Deleted messages cannot be edited")
            if message.kind != MessageKind.TEXT.value:
                raise ValidationError("Only text messages can be edited")
            await self.uow.messages.edit(message_id, content)
            updated = schemas.Message.model_validate(
                await self.uow.messages.get_message(message_id)
            )

        await self.event_dispatcher.dispatch(
            MessageUpdated(chat_id=updated.chat_id, message=self.to_payload(updated))
        )
        return updated

    async def mark_delivered(self, message_id: int, user_id: int) -> bool:
        async with self.uow:
            message = await self.uow.messages.get_message(message_id)
            if message is None or message.is_deleted:
                raise NotFoundError("Message not found")
            chat_id = message.chat_id
            if message.sender_id == user_id:
                raise ValidationError("Senders cannot acknowledge their own messages")
            if not await self.uow.chats.is_participant(chat_id, user_id):
                raise AuthorizationError()
            changed = await self.uow.messages.mark_delivered(message_id)

        if changed:
            await self.event_dispatcher.dispatch(
                MessageDelivered(chat_id=chat_id, message_id=message_id, user_id=user_id)
            )
        return changed

    async def search(self, user_id: int, query: str) -> schemas.SearchResults:
        query = (query or "").strip()
        if len(query) < self.config.SEARCH_MIN_QUERY_LENGTH:
            raise ValidationError(
                f"Search query must be at least {self.config.SEARCH_MIN_QUERY_LENGTH} characters"
            )
        chats = await self.uow.chats.search_by_name(
            user_id, query, self.config.SEARCH_CHAT_LIMIT
        )
        messages = await self.uow.messages.search_content(
            user_id, query, self.config.SEARCH_MESSAGE_LIMIT
        )
        return schemas.SearchResults(
            chats=[schemas.Chat.model_validate(c) for c in chats],
            messages=[schemas.Message.model_validate(m) for m in messages],
        )
