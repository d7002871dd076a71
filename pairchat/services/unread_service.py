import logging
from typing import Any, Dict, List

from bson import ObjectId

from pairchat.repositories.conversation_repository import ConversationRepository
from pairchat.repositories.message_repository import MessageRepository
from pairchat.services.session_directory import SessionDirectory


logger = logging.getLogger(__name__)


def other_participant(conversation: Dict[str, Any], user_id: str) -> str:
    for participant in conversation["participants"]:
        if participant != user_id:
            return participant
    return user_id


class UnreadService:
    """Per-conversation unread counts, recomputed from the store on every call."""

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        sessions: SessionDirectory,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._sessions = sessions

    async def counts(self, user_id: str) -> Dict[str, int]:
        result: Dict[str, int] = {}
        for convo in await self._conversation_repo.list_for_user(user_id):
            result[convo["_id"]] = await self._message_repo.count_unread(ObjectId(convo["_id"]), user_id)
        return result

    async def summarize(self, user_id: str) -> List[Dict[str, Any]]:
        updates: List[Dict[str, Any]] = []
        for convo in await self._conversation_repo.list_for_user(user_id):
            count = await self._message_repo.count_unread(ObjectId(convo["_id"]), user_id)
            if count > 0:
                updates.append({
                    "conversationId": convo["_id"],
                    "count": count,
                    "targetUserId": other_participant(convo, user_id),
                })
        return updates

    async def refresh(self, user_id: str) -> None:
        if await self._sessions.route(user_id) is None:
            return
        updates = await self.summarize(user_id)
        # re-routed: the binding may have moved while counting
        await self._sessions.deliver(user_id, "unread_updates", updates)
        logger.debug("Unread summary pushed", extra={"user_id": user_id, "conversations": len(updates)})
