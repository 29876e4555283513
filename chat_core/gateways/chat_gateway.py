# chat_core/gateways/chat_gateway.py
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import delete, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import lazyload

from chat_core.domain.entities import ChatKind, direct_pair_key
from chat_core.domain.errors import ConflictError
from chat_core.gateways.interfaces import IChatGateway
from chat_core.infrastructure import models
from chat_core.infrastructure.database import dialect_insert
from chat_core.infrastructure.models import utcnow


class ChatGateway(IChatGateway):
    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _select_chats():
        # counters are written with bulk UPDATEs, so reads must refresh the identity map
        return select(models.Chat).execution_options(populate_existing=True)

    async def get_chat(self, chat_id: int) -> Optional[models.Chat]:
        stmt = self._select_chats().filter(models.Chat.id == chat_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_chats(
        self, user_id: int, skip: int = 0, limit: int = 100
    ) -> List[models.Chat]:
        stmt = (
            self._select_chats()
            .join(
                models.ChatParticipant,
                models.ChatParticipant.chat_id == models.Chat.id,
            )
            .filter(
                models.ChatParticipant.user_id == user_id,
                models.Chat.is_active.is_(True),
            )
            .order_by(models.Chat.last_activity_at.desc(), models.Chat.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_direct(self, user_a: int, user_b: int) -> Optional[models.Chat]:
        stmt = self._select_chats().filter(
            models.Chat.direct_key == direct_pair_key(user_a, user_b),
            models.Chat.is_active.is_(True),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def insert_direct(self, user_a: int, user_b: int) -> int:
        key = direct_pair_key(user_a, user_b)
        now = utcnow()
        stmt = (
            dialect_insert(self.session, models.Chat)
            .values(
                kind=ChatKind.DIRECT.value,
                direct_key=key,
                is_active=True,
                created_at=now,
                last_activity_at=now,
            )
            .on_conflict_do_nothing(index_elements=["direct_key"])
            .returning(models.Chat.id)
        )
        result = await self.session.execute(stmt)
        chat_id = result.scalar_one_or_none()
        if chat_id is None:
            raise ConflictError(f"Direct chat {key} already exists")

        self.session.add_all(
            [
                models.ChatParticipant(chat_id=chat_id, user_id=user_id, unread_count=0)
                for user_id in (user_a, user_b)
            ]
        )
        await self.session.flush()
        return chat_id

    async def insert_group(
        self,
        name: str,
        participant_ids: List[int],
        creator_id: int,
        group_image: Optional[str] = None,
    ) -> int:
        db_chat = models.Chat(
            kind=ChatKind.GROUP.value, name=name, group_image=group_image
        )
        db_chat.participants = [
            models.ChatParticipant(
                user_id=user_id, unread_count=0, is_admin=user_id == creator_id
            )
            for user_id in participant_ids
        ]
        self.session.add(db_chat)
        await self.session.flush()
        return db_chat.id

    async def get_participant(
        self, chat_id: int, user_id: int, for_update: bool = False
    ) -> Optional[models.ChatParticipant]:
        stmt = (
            select(models.ChatParticipant)
            .filter(
                models.ChatParticipant.chat_id == chat_id,
                models.ChatParticipant.user_id == user_id,
            )
            .execution_options(populate_existing=True)
        )
        if for_update:
            # row lock serialises mark-read against concurrent sends on PostgreSQL
            stmt = stmt.options(lazyload(models.ChatParticipant.user)).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def is_participant(self, chat_id: int, user_id: int) -> bool:
        stmt = select(
            exists().where(
                models.ChatParticipant.chat_id == chat_id,
                models.ChatParticipant.user_id == user_id,
            )
        )
        result = await self.session.execute(stmt)
        return bool(result.scalar())

    async def add_participant(self, chat_id: int, user_id: int) -> bool:
        stmt = (
            dialect_insert(self.session, models.ChatParticipant)
            .values(chat_id=chat_id, user_id=user_id, unread_count=0)
            .on_conflict_do_nothing(index_elements=["chat_id", "user_id"])
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def remove_participant(self, chat_id: int, user_id: int) -> bool:
        stmt = (
            delete(models.ChatParticipant)
            .where(
                models.ChatParticipant.chat_id == chat_id,
                models.ChatParticipant.user_id == user_id,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def update_details(
        self, chat_id: int, name: Optional[str], group_image: Optional[str]
    ) -> None:
        changes = {}
        if name is not None:
            changes["name"] = name
        if group_image is not None:
            changes["group_image"] = group_image
        if not changes:
            return
        stmt = (
            update(models.Chat)
            .where(models.Chat.id == chat_id)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def increment_unread(self, chat_id: int, sender_id: int) -> List[int]:
        stmt = (
            update(models.ChatParticipant)
            .where(
                models.ChatParticipant.chat_id == chat_id,
                models.ChatParticipant.user_id != sender_id,
                models.ChatParticipant.has_blocked.is_(False),
            )
            .values(unread_count=models.ChatParticipant.unread_count + 1)
            .returning(models.ChatParticipant.user_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return sorted(result.scalars().all())

    async def reset_unread(self, chat_id: int, user_id: int) -> None:
        stmt = (
            update(models.ChatParticipant)
            .where(
                models.ChatParticipant.chat_id == chat_id,
                models.ChatParticipant.user_id == user_id,
            )
            .values(unread_count=0)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def get_unread_counts(self, chat_id: int) -> Dict[int, int]:
        stmt = select(
            models.ChatParticipant.user_id, models.ChatParticipant.unread_count
        ).filter(models.ChatParticipant.chat_id == chat_id)
        result = await self.session.execute(stmt)
        return {row.user_id: row.unread_count for row in result}

    async def set_flags(
        self,
        chat_id: int,
        user_id: int,
        archived: Optional[bool] = None,
        muted: Optional[bool] = None,
        blocked: Optional[bool] = None,
    ) -> None:
        changes = {}
        if archived is not None:
            changes["is_archived"] = archived
        if muted is not None:
            changes["is_muted"] = muted
        if blocked is not None:
            changes["has_blocked"] = blocked
        if not changes:
            return
        stmt = (
            update(models.ChatParticipant)
            .where(
                models.ChatParticipant.chat_id == chat_id,
                models.ChatParticipant.user_id == user_id,
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def set_admin(self, chat_id: int, user_id: int) -> None:
        stmt = (
            update(models.ChatParticipant)
            .where(
                models.ChatParticipant.chat_id == chat_id,
                models.ChatParticipant.user_id == user_id,
            )
            .values(is_admin=True)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def advance_last_message(
        self, chat_id: int, message_id: int, at: datetime
    ) -> bool:
        # compare-and-set: the pointer only ever moves to a newer message
        stmt = (
            update(models.Chat)
            .where(
                models.Chat.id == chat_id,
                or_(
                    models.Chat.last_message_id.is_(None),
                    models.Chat.last_message_id < message_id,
                ),
            )
            .values(last_message_id=message_id, last_activity_at=at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def refresh_last_message(self, chat_id: int) -> None:
        latest = (
            select(func.max(models.Message.id))
            .where(
                models.Message.chat_id == chat_id,
                models.Message.is_deleted.is_(False),
            )
            .scalar_subquery()
        )
        stmt = (
            update(models.Chat)
            .where(models.Chat.id == chat_id)
            .values(last_message_id=latest)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def deactivate(self, chat_id: int) -> None:
        # clearing the pair key lets the two users open a fresh direct chat later
        stmt = (
            update(models.Chat)
            .where(models.Chat.id == chat_id)
            .values(is_active=False, direct_key=None)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def search_by_name(
        self, user_id: int, query: str, limit: int
    ) -> List[models.Chat]:
        stmt = (
            self._select_chats()
            .join(
                models.ChatParticipant,
                models.ChatParticipant.chat_id == models.Chat.id,
            )
            .filter(
                models.ChatParticipant.user_id == user_id,
                models.Chat.is_active.is_(True),
                models.Chat.name.icontains(query, autoescape=True),
            )
            .order_by(models.Chat.last_activity_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
