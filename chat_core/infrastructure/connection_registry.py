# chat_core/infrastructure/connection_registry.py
"""In-process registry of live sockets, their users and their chat rooms.

One instance is created per application and injected into the socket gateway
and the delivery handlers. All mutations are synchronous and happen on the
event loop, so no locking is needed. Memberships are local to this process:
a deployment with several instances needs a registry backed by a shared bus.
"""
import asyncio
import json
import logging
import uuid
from collections import defaultdict
from typing import Any, Iterable, List

from fastapi import WebSocket


class Connection:
    def __init__(self, websocket: WebSocket, user_id: int):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.user_id = user_id
        self.rooms: set[int] = set()

    async def send(self, event: str, data: Any) -> None:
        await self.websocket.send_text(
            json.dumps({"event": event, "data": data}, default=str)
        )

    def __repr__(self) -> str:
        return f"<Connection {self.id} user={self.user_id}>"


class ConnectionRegistry:
    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self._connections: dict[str, Connection] = {}
        self._users: dict[int, set[str]] = defaultdict(set)
        self._rooms: dict[int, set[str]] = defaultdict(set)

    def __len__(self) -> int:
        return len(self._connections)

    def add(self, connection: Connection) -> bool:
        """Register a connection; True when it is the user's first one."""
        self._connections[connection.id] = connection
        first = not self._users[connection.user_id]
        self._users[connection.user_id].add(connection.id)
        return first

    def remove(self, connection: Connection) -> bool:
        """Drop a connection and its rooms; True when the user has no connection left."""
        if self._connections.pop(connection.id, None) is None:
            return False
        for chat_id in connection.rooms:
            room = self._rooms.get(chat_id)
            if room is not None:
                room.discard(connection.id)
                if not room:
                    del self._rooms[chat_id]
        connection.rooms.clear()

        user_connections = self._users.get(connection.user_id, set())
        user_connections.discard(connection.id)
        if not user_connections:
            self._users.pop(connection.user_id, None)
            return True
        return False

    async def drop(self, connection: Connection) -> None:
        """Unregister a connection and announce the user offline if it was their last."""
        if self.remove(connection):
            await self.broadcast("user:offline", connection.user_id)

    def join(self, connection: Connection, chat_id: int) -> None:
        self._rooms[chat_id].add(connection.id)
        connection.rooms.add(chat_id)

    def leave(self, connection: Connection, chat_id: int) -> None:
        room = self._rooms.get(chat_id)
        if room is not None:
            room.discard(connection.id)
            if not room:
                del self._rooms[chat_id]
        connection.rooms.discard(chat_id)

    def evict(self, chat_id: int, user_ids: Iterable[int] | None = None) -> List[Connection]:
        """Take users' sockets (all sockets when ``user_ids`` is None) out of a room."""
        wanted = None if user_ids is None else set(user_ids)
        evicted = [
            connection
            for connection in self.room(chat_id)
            if wanted is None or connection.user_id in wanted
        ]
        for connection in evicted:
            self.leave(connection, chat_id)
        return evicted

    def room(self, chat_id: int) -> List[Connection]:
        return [self._connections[cid] for cid in self._rooms.get(chat_id, ())]

    def user_connections(self, user_id: int) -> List[Connection]:
        return [self._connections[cid] for cid in self._users.get(user_id, ())]

    def is_online(self, user_id: int) -> bool:
        return bool(self._users.get(user_id))

    def online_users(self) -> List[int]:
        return sorted(self._users)

    async def emit_to_room(
        self,
        chat_id: int,
        event: str,
        data: Any,
        exclude_connection_id: str | None = None,
        exclude_user_ids: Iterable[int] = (),
    ) -> int:
        excluded = set(exclude_user_ids)
        targets = [
            connection
            for connection in self.room(chat_id)
            if connection.id != exclude_connection_id
            and connection.user_id not in excluded
        ]
        return await self._emit(targets, event, data)

    async def emit_to_user(self, user_id: int, event: str, data: Any) -> int:
        return await self._emit(self.user_connections(user_id), event, data)

    async def broadcast(
        self, event: str, data: Any, exclude_connection_id: str | None = None
    ) -> int:
        targets = [
            connection
            for connection in self._connections.values()
            if connection.id != exclude_connection_id
        ]
        return await self._emit(targets, event, data)

    async def emit_to(self, connections: List[Connection], event: str, data: Any) -> int:
        return await self._emit(connections, event, data)

    async def _emit(self, targets: List[Connection], event: str, data: Any) -> int:
        if not targets:
            return 0
        results = await asyncio.gather(
            *(connection.send(event, data) for connection in targets),
            return_exceptions=True,
        )
        delivered = 0
        dead = []
        for connection, result in zip(targets, results):
            if isinstance(result, Exception):
                self.logger.warning(f"Failed to emit {event} to {connection!r}: {result!r}")
                dead.append(connection)
            else:
                delivered += 1
        for connection in dead:
            await self.drop(connection)
        return delivered

    async def close(self) -> None:
        for connection in list(self._connections.values()):
            try:
                await connection.websocket.close(code=1001)
            except RuntimeError as e:
                self.logger.debug(f"{connection!r} already closed: {e!s}")
        self._connections.clear()
        self._users.clear()
        self._rooms.clear()
        self.logger.info("Connection registry closed")
