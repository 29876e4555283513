# chat_core/gateways/interfaces.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from chat_core.infrastructure import models


class IChatGateway(ABC):
    @abstractmethod
    async def get_chat(self, chat_id: int) -> Optional[models.Chat]:
        pass

    @abstractmethod
    async def get_user_chats(
        self, user_id: int, skip: int = 0, limit: int = 100
    ) -> List[models.Chat]:
        pass

    @abstractmethod
    async def get_direct(self, user_a: int, user_b: int) -> Optional[models.Chat]:
        pass

    @abstractmethod
    async def insert_direct(self, user_a: int, user_b: int) -> int:
        pass

    @abstractmethod
    async def insert_group(
        self,
        name: str,
        participant_ids: List[int],
        creator_id: int,
        group_image: Optional[str] = None,
    ) -> int:
        pass

    @abstractmethod
    async def get_participant(
        self, chat_id: int, user_id: int, for_update: bool = False
    ) -> Optional[models.ChatParticipant]:
        pass

    @abstractmethod
    async def is_participant(self, chat_id: int, user_id: int) -> bool:
        pass

    @abstractmethod
    async def add_participant(self, chat_id: int, user_id: int) -> bool:
        pass

    @abstractmethod
    async def remove_participant(self, chat_id: int, user_id: int) -> bool:
        pass

    @abstractmethod
    async def update_details(
        self, chat_id: int, name: Optional[str], group_image: Optional[str]
    ) -> None:
        pass

    @abstractmethod
    async def increment_unread(self, chat_id: int, sender_id: int) -> List[int]:
        pass

    @abstractmethod
    async def reset_unread(self, chat_id: int, user_id: int) -> None:
        pass

    @abstractmethod
    async def get_unread_counts(self, chat_id: int) -> dict[int, int]:
        pass

    @abstractmethod
    async def set_flags(
        self,
        chat_id: int,
        user_id: int,
        archived: Optional[bool] = None,
        muted: Optional[bool] = None,
        blocked: Optional[bool] = None,
    ) -> None:
        pass

    @abstractmethod
    async def set_admin(self, chat_id: int, user_id: int) -> None:
        pass

    @abstractmethod
    async def advance_last_message(
        self, chat_id: int, message_id: int, at: datetime
    ) -> bool:
        pass

    @abstractmethod
    async def refresh_last_message(self, chat_id: int) -> None:
        pass

    @abstractmethod
    async def deactivate(self, chat_id: int) -> None:
        pass

    @abstractmethod
    async def search_by_name(
        self, user_id: int, query: str, limit: int
    ) -> List[models.Chat]:
        pass


class IMessageGateway(ABC):
    @abstractmethod
    async def get_message(self, message_id: int) -> Optional[models.Message]:
        pass

    @abstractmethod
    async def append(self, chat_id: int, sender_id: int, payload) -> models.Message:
        pass

    @abstractmethod
    async def page(
        self, chat_id: int, requester_id: int, page: int, page_size: int
    ) -> tuple[List[models.Message], int]:
        pass

    @abstractmethod
    async def soft_delete_for_user(self, message_id: int, user_id: int) -> bool:
        pass

    @abstractmethod
    async def edit(self, message_id: int, content: str) -> None:
        pass

    @abstractmethod
    async def delete_for_everyone(self, message_id: int) -> None:
        pass

    @abstractmethod
    async def add_read_receipts(
        self, chat_id: int, reader_id: int, at: datetime
    ) -> int:
        pass

    @abstractmethod
    async def mark_status_read(self, chat_id: int, reader_id: int) -> int:
        pass

    @abstractmethod
    async def mark_delivered(self, message_id: int) -> bool:
        pass

    @abstractmethod
    async def search_content(
        self, user_id: int, query: str, limit: int
    ) -> List[models.Message]:
        pass


class IUserGateway(ABC):
    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[models.User]:
        pass

    @abstractmethod
    async def get_active_ids(self, user_ids: List[int]) -> set[int]:
        pass
