# chat_core/interactors/unread_tracker.py
from typing import List

from chat_core.domain.entities import ChatKind
from chat_core.domain.errors import AuthorizationError
from chat_core.infrastructure import models
from chat_core.infrastructure.models import utcnow
from chat_core.infrastructure.unit_of_work import AbstractUnitOfWork


class UnreadTracker:
    """Per-participant unread counters and read receipts.

    Runs inside the caller's unit of work; nothing here commits.
    """

    def __init__(self, uow: AbstractUnitOfWork):
        self.uow = uow

    async def on_message_sent(self, chat: models.Chat, sender_id: int) -> List[int]:
        """Count the new message for every recipient; returns their ids."""
        return await self.uow.chats.increment_unread(chat.id, sender_id)

    async def mark_read(self, chat: models.Chat, reader_id: int) -> int:
        # lock first so a send racing with us lands either before or after the reset
        participant = await self.uow.chats.get_participant(
            chat.id, reader_id, for_update=True
        )
        if participant is None:
            raise AuthorizationError()

        newly_read = await self.uow.messages.add_read_receipts(
            chat.id, reader_id, utcnow()
        )
        if chat.kind == ChatKind.DIRECT.value:
            await self.uow.messages.mark_status_read(chat.id, reader_id)
        await self.uow.chats.reset_unread(chat.id, reader_id)
        return newly_read
