import logging
from typing import Any, Dict, Optional

from pairchat.repositories.user_repository import UserRepository
from pairchat.utils.websocket_manager import Connection, ConnectionManager


logger = logging.getLogger(__name__)


class SessionDirectory:
    """Maps user ids to their currently reachable connection.

    The persisted ``socket_id`` is the source of truth and is re-read on every
    ``route`` call: the most recent successful authentication wins, and a
    superseded connection stays open but is no longer routable.
    """

    def __init__(self, user_repo: UserRepository, manager: ConnectionManager) -> None:
        self._user_repo = user_repo
        self._manager = manager

    async def bind(self, connection: Connection, user: Dict[str, Any]) -> None:
        user_id = str(user["_id"])
        if connection.user_id and connection.user_id != user_id:
            await self.release(connection)
            # rooms were joined on behalf of the previous user
            self._manager.leave_all(connection)
        await self._user_repo.set_online(user_id, connection.id)
        connection.user_id = user_id
        connection.username = user["username"]
        logger.info("Session bound", extra={"user_id": user_id, "connection_id": connection.id})

    async def release(self, connection: Connection) -> bool:
        if not connection.user_id:
            return False
        cleared = await self._user_repo.set_offline(connection.user_id, connection.id)
        logger.info(
            "Session released",
            extra={"user_id": connection.user_id, "connection_id": connection.id, "cleared": cleared},
        )
        return cleared

    async def route(self, user_id: str) -> Optional[Connection]:
        user = await self._user_repo.get_user_by_id(user_id)
        if not user or not user.get("socket_id"):
            return None
        return self._manager.get(user["socket_id"])

    async def deliver(self, user_id: str, event: str, data: Any) -> bool:
        """Best-effort, at-most-once push; dropped when the user is unreachable."""
        connection = await self.route(user_id)
        if connection is None:
            logger.debug("No live connection, dropping push", extra={"user_id": user_id, "event": event})
            return False
        return await self._manager.send(connection, event, data)
