# chat_core/api/users.py
from fastapi import APIRouter, Depends

from chat_core.api.dependencies import (
    get_connection_registry,
    get_current_user,
    get_uow,
)
from chat_core.domain.errors import NotFoundError
from chat_core.infrastructure import schemas
from chat_core.infrastructure.connection_registry import ConnectionRegistry
from chat_core.infrastructure.unit_of_work import UnitOfWork

router = APIRouter()


@router.get("/me", response_model=schemas.User)
async def read_users_me(current_user: schemas.User = Depends(get_current_user)):
    return current_user


@router.get("/{user_id}/presence", response_model=schemas.Presence)
async def read_presence(
    user_id: int,
    uow: UnitOfWork = Depends(get_uow),
    registry: ConnectionRegistry = Depends(get_connection_registry),
    current_user: schemas.User = Depends(get_current_user),
):
    user = await uow.users.get_user(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return schemas.Presence(user_id=user_id, online=registry.is_online(user_id))
