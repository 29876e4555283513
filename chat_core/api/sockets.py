# chat_core/api/sockets.py
"""
Presence and delivery over a single WebSocket endpoint.

A socket authenticates during the handshake, then joins zero or more chat
rooms. Frames in both directions are ``{"event": ..., "data": ...}``.
Server-originated events (``message:new``, ``unread:updated``, ...) are
emitted by the event handlers through the shared connection registry.
"""
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel
from pydantic import ValidationError as PayloadError
from sqlalchemy.exc import InterfaceError, OperationalError

from chat_core.api.dependencies import build_message_interactor
from chat_core.domain.errors import (
    AuthorizationError,
    ChatError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from chat_core.infrastructure import schemas
from chat_core.infrastructure.connection_registry import Connection
from chat_core.infrastructure.unit_of_work import UnitOfWork

router = APIRouter()

Handler = Callable[[Connection, Any], Awaitable[None]]


class SocketGateway:
    def __init__(self, state):
        self.state = state
        self.registry = state.connection_registry
        self.security_service = state.security_service
        self.database = state.database
        self.config = state.config
        self.logger = state.logger
        self.handlers: dict[str, Handler] = {
            "chat:join": self.on_join,
            "chat:leave": self.on_leave,
            "message:read": self.on_read,
            "message:delivered": self.on_delivered,
            "typing:start": self.on_typing_start,
            "typing:stop": self.on_typing_stop,
        }

    @staticmethod
    def _parse(model: type[BaseModel], data: Any, event: str):
        # bare ids are accepted for chat:join / chat:leave
        if isinstance(data, int) and not isinstance(data, bool) and model is schemas.ChatRef:
            data = {"chatId": data}
        try:
            return model.model_validate(data)
        except PayloadError:
            raise ValidationError(f"Invalid payload for {event}")

    @staticmethod
    def _token_from(websocket: WebSocket) -> str | None:
        token = websocket.query_params.get("token")
        if token:
            return token
        scheme, _, credentials = websocket.headers.get("authorization", "").partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
        return None

    async def authenticate(self, websocket: WebSocket) -> int | None:
        token = self._token_from(websocket)
        if token is None:
            return None
        user_id = self.security_service.decode_access_token(token)
        if user_id is None:
            return None
        async with self.database.session() as session:
            user = await UnitOfWork(session).users.get_user(user_id)
        return user.id if user else None

    async def serve(self, websocket: WebSocket) -> None:
        user_id = await self.authenticate(websocket)
        if user_id is None:
            self.logger.info("Rejected socket handshake without a valid token")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.accept()
        connection = Connection(websocket, user_id)
        if self.registry.add(connection):
            await self.registry.broadcast(
                "user:online", user_id, exclude_connection_id=connection.id
            )
        self.logger.info(f"User {user_id} connected on {connection.id}")

        try:
            while True:
                raw = await websocket.receive_text()
                await self.handle_frame(connection, raw)
        except WebSocketDisconnect:
            self.logger.info(f"User {user_id} disconnected from {connection.id}")
        finally:
            await self.registry.drop(connection)

    async def handle_frame(self, connection: Connection, raw: str) -> None:
        try:
            envelope = schemas.SocketEnvelope.model_validate_json(raw)
        except PayloadError:
            await self.send_error(connection, None, ValidationError("Malformed frame"))
            return

        handler = self.handlers.get(envelope.event)
        if handler is None:
            await self.send_error(
                connection,
                envelope.event,
                ValidationError(f"Unknown event: {envelope.event}"),
            )
            return

        try:
            await handler(connection, envelope.data)
        except WebSocketDisconnect:
            raise
        except ChatError as e:
            await self.send_error(connection, envelope.event, e)
        except (OperationalError, InterfaceError) as e:
            self.logger.warning(f"Storage unavailable while handling {envelope.event}: {e!s}")
            await self.send_error(connection, envelope.event, TransientError())
        except Exception:
            self.logger.exception(
                f"Unhandled error in {envelope.event} for user {connection.user_id}"
            )
            await self.send_error(connection, envelope.event, ChatError())

    async def send_error(
        self, connection: Connection, event: str | None, error: ChatError
    ) -> None:
        await connection.send("error", {"event": event, **error.to_dict()})

    async def on_join(self, connection: Connection, data: Any) -> None:
        chat_id = self._parse(schemas.ChatRef, data, "chat:join").chat_id
        if self.config.WS_VERIFY_MEMBERSHIP:
            async with self.database.session() as session:
                uow = UnitOfWork(session)
                chat = await uow.chats.get_chat(chat_id)
                if chat is None or not chat.is_active:
                    raise NotFoundError("Chat not found")
                if not await uow.chats.is_participant(chat_id, connection.user_id):
                    raise AuthorizationError()
        self.registry.join(connection, chat_id)
        await connection.send("chat:joined", chat_id)

    async def on_leave(self, connection: Connection, data: Any) -> None:
        chat_id = self._parse(schemas.ChatRef, data, "chat:leave").chat_id
        self.registry.leave(connection, chat_id)
        await connection.send("chat:left", chat_id)

    async def on_read(self, connection: Connection, data: Any) -> None:
        request = self._parse(schemas.ReadRequest, data, "message:read")
        if request.user_id is not None and request.user_id != connection.user_id:
            raise AuthorizationError("Cannot mark messages read for another user")
        async with self.database.session() as session:
            interactor = build_message_interactor(self.state, UnitOfWork(session))
            await interactor.mark_read(request.chat_id, connection.user_id)

    async def on_delivered(self, connection: Connection, data: Any) -> None:
        message_id = self._parse(schemas.MessageRef, data, "message:delivered").message_id
        async with self.database.session() as session:
            interactor = build_message_interactor(self.state, UnitOfWork(session))
            await interactor.mark_delivered(message_id, connection.user_id)

    async def _typing(self, connection: Connection, data: Any, event: str) -> None:
        chat_id = self._parse(schemas.ChatRef, data, event).chat_id
        if chat_id not in connection.rooms:
            raise AuthorizationError("Join the chat before sending typing events")
        await self.registry.emit_to_room(
            chat_id,
            event,
            {"chatId": chat_id, "userId": connection.user_id},
            exclude_connection_id=connection.id,
        )

    async def on_typing_start(self, connection: Connection, data: Any) -> None:
        await self._typing(connection, data, "typing:start")

    async def on_typing_stop(self, connection: Connection, data: Any) -> None:
        await self._typing(connection, data, "typing:stop")


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.app.state.socket_gateway.serve(websocket)
