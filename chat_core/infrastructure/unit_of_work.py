# chat_core/infrastructure/unit_of_work.py
from abc import ABC, abstractmethod

from sqlalchemy.ext.asyncio import AsyncSession

from chat_core.gateways.chat_gateway import ChatGateway
from chat_core.gateways.interfaces import IChatGateway, IMessageGateway, IUserGateway
from chat_core.gateways.message_gateway import MessageGateway
from chat_core.gateways.user_gateway import UserGateway


class AbstractUnitOfWork(ABC):
    chats: IChatGateway
    messages: IMessageGateway
    users: IUserGateway

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            await self.rollback()
        else:
            await self.commit()

    @abstractmethod
    async def commit(self):
        raise NotImplementedError

    @abstractmethod
    async def rollback(self):
        raise NotImplementedError


class UnitOfWork(AbstractUnitOfWork):
    """Transaction boundary around the stores sharing one session.

    Leaving the ``async with`` block commits; an exception rolls every store
    write back, so a message is never persisted without its counter updates.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.chats = ChatGateway(session)
        self.messages = MessageGateway(session)
        self.users = UserGateway(session)

    async def commit(self):
        await self.session.commit()

    async def rollback(self):
        await self.session.rollback()
