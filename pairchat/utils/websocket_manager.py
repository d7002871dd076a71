import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket


logger = logging.getLogger(__name__)


class Connection:
    """A live client channel.

    ``user_id``/``username`` hold the in-memory authentication binding and
    stay ``None`` until one of the auth events succeeds on this channel.
    """

    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self.websocket = websocket
        self.user_id: Optional[str] = None
        self.username: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None

    async def emit(self, event: str, data: Any) -> None:
        await self.websocket.send_text(json.dumps({"event": event, "data": data}, default=str))


class ConnectionManager:

    def __init__(self) -> None:
        self.active_connections: Dict[str, Connection] = {}
        self.rooms: Dict[str, Set[str]] = {}

    async def connect(self, connection: Connection) -> None:
        await connection.websocket.accept()
        self.register(connection)

    def register(self, connection: Connection) -> None:
        self.active_connections[connection.id] = connection

    def disconnect(self, connection: Connection) -> None:
        self.active_connections.pop(connection.id, None)
        self.leave_all(connection)

    def leave_all(self, connection: Connection) -> None:
        for room_id in list(self.rooms):
            members = self.rooms[room_id]
            members.discard(connection.id)
            if not members:
                del self.rooms[room_id]

    def get(self, connection_id: Optional[str]) -> Optional[Connection]:
        if not connection_id:
            return None
        return self.active_connections.get(connection_id)

    def join(self, room_id: str, connection: Connection) -> None:
        self.rooms.setdefault(room_id, set()).add(connection.id)

    def is_member(self, room_id: str, connection: Connection) -> bool:
        return connection.id in self.rooms.get(room_id, ())

    def room_members(self, room_id: str) -> List[Connection]:
        ids = self.rooms.get(room_id, set())
        return [self.active_connections[cid] for cid in list(ids) if cid in self.active_connections]

    async def send(self, connection: Connection, event: str, data: Any) -> bool:
        try:
            await connection.emit(event, data)
            return True
        except Exception:
            logger.warning("Dropping unreachable connection", extra={"connection_id": connection.id, "event": event})
            self.disconnect(connection)
            return False

    async def emit_to_room(self, room_id: str, event: str, data: Any, exclude: Optional[Connection] = None) -> None:
        for conn in self.room_members(room_id):
            if exclude is not None and conn.id == exclude.id:
                continue
            await self.send(conn, event, data)

    async def broadcast(self, event: str, data: Any) -> None:
        for conn in list(self.active_connections.values()):
            await self.send(conn, event, data)
