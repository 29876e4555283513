# chat_core/interactors/chat_interactor.py
from typing import List, Optional

from chat_core.domain.entities import ChatKind
from chat_core.domain.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from chat_core.domain.events import ChatDeactivated, MemberRemoved
from chat_core.infrastructure import models, schemas
from chat_core.infrastructure.event_dispatcher import EventDispatcher
from chat_core.infrastructure.unit_of_work import AbstractUnitOfWork


class ChatInteractor:
    """Creates chats and manages who is in them."""

    def __init__(
        self,
        uow: AbstractUnitOfWork,
        event_dispatcher: Optional[EventDispatcher] = None,
    ):
        self.uow = uow
        self.event_dispatcher = event_dispatcher or EventDispatcher()

    async def _load_for(self, chat_id: int, user_id: int) -> models.Chat:
        chat = await self.uow.chats.get_chat(chat_id)
        if chat is None or not chat.is_active:
            raise NotFoundError("Chat not found")
        if not any(p.user_id == user_id for p in chat.participants):
            raise AuthorizationError()
        return chat

    async def _load_group_as_admin(self, chat_id: int, user_id: int) -> models.Chat:
        chat = await self._load_for(chat_id, user_id)
        if chat.kind != ChatKind.GROUP.value:
            raise ValidationError("Only group chats can be managed")
        if not any(p.user_id == user_id and p.is_admin for p in chat.participants):
            raise AuthorizationError("Only group admins can do this")
        return chat

    async def get_or_create_direct(
        self, user_id: int, other_user_id: int
    ) -> schemas.Chat:
        if user_id == other_user_id:
            raise ValidationError("Cannot start a direct chat with yourself")

        async with self.uow:
            if await self.uow.users.get_user(other_user_id) is None:
                raise NotFoundError("User not found")

            chat = await self.uow.chats.get_direct(user_id, other_user_id)
            if chat is None:
                try:
                    chat_id = await self.uow.chats.insert_direct(user_id, other_user_id)
                    chat = await self.uow.chats.get_chat(chat_id)
                except ConflictError:
                    # lost the race: the other participant created it first
                    chat = await self.uow.chats.get_direct(user_id, other_user_id)
            if chat is None:
                raise NotFoundError("Chat not found")
            return schemas.Chat.model_validate(chat)

    async def create_group(
        self,
        name: str,
        participant_ids: List[int],
        creator_id: int,
        group_image: Optional[str] = None,
    ) -> schemas.Chat:
        if not name or not name.strip():
            raise ValidationError("Group name is required")
        others = sorted({pid for pid in participant_ids if pid != creator_id})
        if len(others) < 2:
            raise ValidationError(
                "A group needs at least two participants besides the creator"
            )

        async with self.uow:
            found = await self.uow.users.get_active_ids(others)
            missing = [pid for pid in others if pid not in found]
            if missing:
                raise NotFoundError(f"Users not found: {missing}")

            chat_id = await self.uow.chats.insert_group(
                name.strip(), [creator_id, *others], creator_id, group_image
            )
            chat = await self.uow.chats.get_chat(chat_id)
            return schemas.Chat.model_validate(chat)

    async def get_chat(self, chat_id: int, user_id: int) -> schemas.Chat:
        chat = await self._load_for(chat_id, user_id)
        return schemas.Chat.model_validate(chat)

    async def get_chats(
        self, user_id: int, skip: int = 0, limit: int = 100
    ) -> List[schemas.Chat]:
        chats = await self.uow.chats.get_user_chats(user_id, skip, limit)
        return [schemas.Chat.model_validate(chat) for chat in chats]

    async def update_group(
        self, chat_id: int, chat_update: schemas.ChatUpdate, user_id: int
    ) -> schemas.Chat:
        async with self.uow:
            await self._load_group_as_admin(chat_id, user_id)
            await self.uow.chats.update_details(
                chat_id, chat_update.name, chat_update.group_image
            )
            chat = await self.uow.chats.get_chat(chat_id)
            return schemas.Chat.model_validate(chat)

    async def add_member(
        self, chat_id: int, new_user_id: int, current_user_id: int
    ) -> schemas.Chat:
        async with self.uow:
            await self._load_group_as_admin(chat_id, current_user_id)
            if await self.uow.users.get_user(new_user_id) is None:
                raise NotFoundError("User not found")
            # already a member: nothing to do
            await self.uow.chats.add_participant(chat_id, new_user_id)
            chat = await self.uow.chats.get_chat(chat_id)
            return schemas.Chat.model_validate(chat)

    async def remove_member(
        self, chat_id: int, target_user_id: int, current_user_id: int
    ) -> None:
        async with self.uow:
            chat = await self._load_for(chat_id, current_user_id)
            if chat.kind != ChatKind.GROUP.value:
                raise ValidationError("Members can only be removed from group chats")
            if target_user_id != current_user_id and not any(
                p.user_id == current_user_id and p.is_admin for p in chat.participants
            ):
                raise AuthorizationError("Only group admins can remove other members")
            if not await self.uow.chats.remove_participant(chat_id, target_user_id):
                raise NotFoundError("User is not a member of this chat")

            remaining = [p for p in chat.participants if p.user_id != target_user_id]
            deactivated = not remaining
            if deactivated:
                await self.uow.chats.deactivate(chat_id)
            elif not any(p.is_admin for p in remaining):
                # the group always keeps an admin: the longest-standing member inherits it
                heir = min(remaining, key=lambda p: (p.joined_at, p.user_id))
                await self.uow.chats.set_admin(chat_id, heir.user_id)

        await self.event_dispatcher.dispatch(
            MemberRemoved(chat_id=chat_id, user_id=target_user_id)
        )
        if deactivated:
            await self.event_dispatcher.dispatch(ChatDeactivated(chat_id=chat_id))

    async def update_settings(
        self, chat_id: int, settings: schemas.ChatSettingsUpdate, user_id: int
    ) -> schemas.Chat:
        async with self.uow:
            chat = await self._load_for(chat_id, user_id)
            if settings.blocked is not None and chat.kind != ChatKind.DIRECT.value:
                raise ValidationError("Only direct chats can be blocked")
            await self.uow.chats.set_flags(
                chat_id,
                user_id,
                archived=settings.archived,
                muted=settings.muted,
                blocked=settings.blocked,
            )
            chat = await self.uow.chats.get_chat(chat_id)
            return schemas.Chat.model_validate(chat)
