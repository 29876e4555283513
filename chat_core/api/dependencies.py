# chat_core/api/dependencies.py
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from chat_core.config import AppConfig
from chat_core.infrastructure import schemas
from chat_core.infrastructure.connection_registry import ConnectionRegistry
from chat_core.infrastructure.event_dispatcher import EventDispatcher
from chat_core.infrastructure.security import SecurityService
from chat_core.infrastructure.unit_of_work import UnitOfWork
from chat_core.interactors.chat_interactor import ChatInteractor
from chat_core.interactors.message_interactor import MessageInteractor

bearer_scheme = HTTPBearer(auto_error=False)


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_security_service(request: Request) -> SecurityService:
    return request.app.state.security_service


def get_event_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.event_dispatcher


def get_connection_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.connection_registry


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.database.session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()  # Rollback in case of error
            raise


async def get_uow(session: AsyncSession = Depends(get_session)) -> UnitOfWork:
    return UnitOfWork(session)


def build_message_interactor(state, uow: UnitOfWork) -> MessageInteractor:
    """Shared by the HTTP routes and the socket gateway, which has no request scope."""
    return MessageInteractor(
        uow,
        state.event_dispatcher,
        state.config,
        event_resolver=state.event_resolver,
        logger=state.logger,
    )


async def get_chat_interactor(
    request: Request, uow: UnitOfWork = Depends(get_uow)
) -> ChatInteractor:
    return ChatInteractor(uow, request.app.state.event_dispatcher)


async def get_message_interactor(
    request: Request, uow: UnitOfWork = Depends(get_uow)
) -> MessageInteractor:
    return build_message_interactor(request.app.state, uow)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    security_service: SecurityService = Depends(get_security_service),
    uow: UnitOfWork = Depends(get_uow),
) -> schemas.User:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user_id = security_service.decode_access_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await uow.users.get_user(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return schemas.User.model_validate(user)
