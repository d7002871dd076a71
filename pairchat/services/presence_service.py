import logging
from typing import Dict, List

from pairchat.repositories.user_repository import UserRepository
from pairchat.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)


class PresenceService:

    def __init__(self, user_repo: UserRepository, manager: ConnectionManager) -> None:
        self._user_repo = user_repo
        self._manager = manager

    async def active_users(self) -> List[Dict[str, str]]:
        users = await self._user_repo.list_online()
        return [{"id": u["_id"], "username": u["username"]} for u in users]

    async def publish(self) -> None:
        users = await self.active_users()
        await self._manager.broadcast("active_users", users)

    async def reset(self) -> None:
        """Mark everyone offline; no connection outlives the process."""
        cleared = await self._user_repo.reset_presence()
        if cleared:
            logger.info("Cleared stale presence", extra={"users": cleared})
