# chat_core/gateways/user_gateway.py
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chat_core.gateways.interfaces import IUserGateway
from chat_core.infrastructure import models


class UserGateway(IUserGateway):
    """Resolves user ids against the identity projection."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: int) -> Optional[models.User]:
        stmt = select(models.User).filter(
            models.User.id == user_id, models.User.is_active.is_(True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_ids(self, user_ids: List[int]) -> set[int]:
        if not user_ids:
            return set()
        stmt = select(models.User.id).filter(
            models.User.id.in_(set(user_ids)), models.User.is_active.is_(True)
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())
