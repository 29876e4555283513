# chat_core/gateways/message_gateway.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, Integer, exists, func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chat_core.domain.entities import DeliveryStatus, MessageKind
from chat_core.domain.errors import AuthorizationError, NotFoundError, ValidationError
from chat_core.gateways.interfaces import IMessageGateway
from chat_core.infrastructure import models
from chat_core.infrastructure.database import dialect_insert
from chat_core.infrastructure.models import utcnow


class MessageGateway(IMessageGateway):
    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _select_messages():
        return select(models.Message).execution_options(populate_existing=True)

    @staticmethod
    def _hidden_for(user_id: int):
        return exists().where(
            models.MessageDeletion.message_id == models.Message.id,
            models.MessageDeletion.user_id == user_id,
        )

    @staticmethod
    def _validate_payload(kind: MessageKind, payload) -> None:
        if kind in (MessageKind.TEXT, MessageKind.SYSTEM) and not (
            payload.content and payload.content.strip()
        ):
            raise ValidationError(f"content is required for {kind.value} messages")
        if kind == MessageKind.IMAGE and not payload.image_url:
            raise ValidationError("imageUrl is required for image messages")
        if kind == MessageKind.EVENT_SHARE and not payload.event_id:
            raise ValidationError("eventId is required for event-share messages")

    async def _is_participant(self, chat_id: int, user_id: int) -> bool:
        stmt = select(
            exists().where(
                models.ChatParticipant.chat_id == chat_id,
                models.ChatParticipant.user_id == user_id,
            )
        )
        return bool(await self.session.scalar(stmt))

    async def get_message(self, message_id: int) -> Optional[models.Message]:
        stmt = self._select_messages().filter(models.Message.id == message_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def append(self, chat_id: int, sender_id: int, payload) -> models.Message:
        """Persist a message; counters and delivery are left to the caller."""
        try:
            kind = MessageKind(payload.kind)
        except ValueError:
            raise ValidationError(f"Unknown message kind: {payload.kind}")
        self._validate_payload(kind, payload)

        if not await self._is_participant(chat_id, sender_id):
            raise AuthorizationError()

        if payload.reply_to is not None:
            reply_chat_id = await self.session.scalar(
                select(models.Message.chat_id).where(
                    models.Message.id == payload.reply_to
                )
            )
            if reply_chat_id != chat_id:
                raise ValidationError("replyTo must reference a message in the same chat")

        db_message = models.Message(
            chat_id=chat_id,
            sender_id=sender_id,
            kind=kind.value,
            content=payload.content,
            image_url=payload.image_url,
            event_ref=payload.event_id,
            reply_to_id=payload.reply_to,
            status=DeliveryStatus.SENT.value,
            created_at=utcnow(),
        )
        self.session.add(db_message)
        await self.session.flush()
        return db_message

    async def page(
        self, chat_id: int, requester_id: int, page: int, page_size: int
    ) -> tuple[List[models.Message], int]:
        chat_found = await self.session.scalar(
            select(models.Chat.id).where(
                models.Chat.id == chat_id, models.Chat.is_active.is_(True)
            )
        )
        if chat_found is None:
            raise NotFoundError("Chat not found")
        if not await self._is_participant(chat_id, requester_id):
            raise AuthorizationError()

        visible = (
            models.Message.chat_id == chat_id,
            models.Message.is_deleted.is_(False),
            ~self._hidden_for(requester_id),
        )
        total = await self.session.scalar(
            select(func.count()).select_from(models.Message).where(*visible)
        )
        # page 1 is the oldest slice; every slice is ascending by id
        stmt = (
            self._select_messages()
            .where(*visible)
            .order_by(models.Message.id.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total or 0

    async def soft_delete_for_user(self, message_id: int, user_id: int) -> bool:
        chat_id = await self.session.scalar(
            select(models.Message.chat_id).where(models.Message.id == message_id)
        )
        if chat_id is None:
            raise NotFoundError("Message not found")
        if not await self._is_participant(chat_id, user_id):
            raise AuthorizationError()

        stmt = (
            dialect_insert(self.session, models.MessageDeletion.__table__)
            .values(message_id=message_id, user_id=user_id, deleted_at=utcnow())
            .on_conflict_do_nothing(index_elements=["message_id", "user_id"])
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def edit(self, message_id: int, content: str) -> None:
        stmt = (
            update(models.Message)
            .where(models.Message.id == message_id)
            .values(content=content, is_edited=True, edited_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def delete_for_everyone(self, message_id: int) -> None:
        stmt = (
            update(models.Message)
            .where(models.Message.id == message_id)
            .values(is_deleted=True)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def add_read_receipts(
        self, chat_id: int, reader_id: int, at: datetime
    ) -> int:
        already_read = exists().where(
            models.MessageRead.message_id == models.Message.id,
            models.MessageRead.user_id == reader_id,
        )
        unread = select(
            models.Message.id,
            literal(reader_id, Integer),
            literal(at, DateTime(timezone=True)),
        ).where(
            models.Message.chat_id == chat_id,
            models.Message.sender_id != reader_id,
            ~already_read,
        )
        stmt = (
            dialect_insert(self.session, models.MessageRead.__table__)
            .from_select(["message_id", "user_id", "read_at"], unread)
            .on_conflict_do_nothing(index_elements=["message_id", "user_id"])
        )
        result = await self.session.execute(stmt)
        return max(result.rowcount, 0)

    async def mark_status_read(self, chat_id: int, reader_id: int) -> int:
        stmt = (
            update(models.Message)
            .where(
                models.Message.chat_id == chat_id,
                models.Message.sender_id != reader_id,
                models.Message.status != DeliveryStatus.READ.value,
            )
            .values(status=DeliveryStatus.READ.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def mark_delivered(self, message_id: int) -> bool:
        stmt = (
            update(models.Message)
            .where(
                models.Message.id == message_id,
                models.Message.status == DeliveryStatus.SENT.value,
            )
            .values(status=DeliveryStatus.DELIVERED.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def search_content(
        self, user_id: int, query: str, limit: int
    ) -> List[models.Message]:
        user_chats = (
            select(models.ChatParticipant.chat_id)
            .join(models.Chat, models.Chat.id == models.ChatParticipant.chat_id)
            .where(
                models.ChatParticipant.user_id == user_id,
                models.Chat.is_active.is_(True),
            )
        )
        stmt = (
            self._select_messages()
            .where(
                models.Message.chat_id.in_(user_chats),
                models.Message.kind == MessageKind.TEXT.value,
                models.Message.content.icontains(query, autoescape=True),
                models.Message.is_deleted.is_(False),
                ~self._hidden_for(user_id),
            )
            .order_by(models.Message.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
