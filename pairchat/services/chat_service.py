import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError

from pairchat.repositories.conversation_repository import ConversationRepository
from pairchat.repositories.message_repository import MessageRepository
from pairchat.repositories.user_repository import UserRepository
from pairchat.services.errors import NotFoundError, StoreError, ValidationError
from pairchat.services.session_directory import SessionDirectory
from pairchat.services.unread_service import UnreadService, other_participant
from pairchat.utils.attachments import AttachmentStore
from pairchat.utils.websocket_manager import Connection, ConnectionManager


logger = logging.getLogger(__name__)

ATTACHMENT_PREVIEW = "📎 Attachment"
PREVIEW_LENGTH = 200


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def serialize_message(doc: Dict[str, Any], room_id: str, sender_name: Optional[str]) -> Dict[str, Any]:
    return {
        "id": str(doc["_id"]),
        "roomId": room_id,
        "senderId": doc["sender_id"],
        "senderName": sender_name,
        "content": doc.get("content", ""),
        "type": doc.get("type", "text"),
        "fileUrl": doc.get("file_url"),
        "timestamp": isoformat(doc.get("created_at")),
        "readBy": list(doc.get("read_by", [])),
    }


def to_object_id(room_id: Any) -> ObjectId:
    if not room_id:
        raise ValidationError("roomId is required")
    try:
        return ObjectId(room_id)
    except (InvalidId, TypeError) as exc:
        raise ValidationError("Malformed roomId") from exc


class ChatService:

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        user_repo: UserRepository,
        manager: ConnectionManager,
        sessions: SessionDirectory,
        unread: UnreadService,
        attachments: AttachmentStore,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._user_repo = user_repo
        self._manager = manager
        self._sessions = sessions
        self._unread = unread
        self._attachments = attachments

    async def resolve_conversation(self, user_a: str, user_b: str) -> Dict[str, Any]:
        if user_a == user_b:
            raise ValidationError("A conversation needs two distinct participants")
        return await self._conversation_repo.get_or_create_one_to_one(user_a, user_b)

    async def open_private_chat(self, connection: Connection, target_user_id: Optional[str]) -> Dict[str, Any]:
        my_id = self._require_user(connection)
        if not target_user_id:
            raise ValidationError("targetUserId is required")
        target = await self._user_repo.get_user_by_id(target_user_id)
        if not target:
            raise NotFoundError("Target user not found")

        conversation = await self.resolve_conversation(my_id, target["_id"])
        room_id = conversation["_id"]
        self._manager.join(room_id, connection)
        history = await self.get_history(conversation)
        return {
            "roomId": room_id,
            "history": history,
            "targetUser": {"id": target["_id"], "username": target["username"]},
        }

    async def get_history(self, conversation: Dict[str, Any]) -> List[Dict[str, Any]]:
        room_id = conversation["_id"]
        names = await self._usernames(conversation["participants"])
        messages = await self._message_repo.list_by_conversation(ObjectId(room_id))
        return [serialize_message(m, room_id, names.get(m["sender_id"])) for m in messages]

    async def send_message(
        self,
        connection: Connection,
        room_id: Optional[str],
        content: Optional[str] = None,
        attachment_payload: Optional[str] = None,
        attachment_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        sender_id = self._require_user(connection)
        conversation = await self._participant_conversation(room_id, sender_id)
        convo_oid = ObjectId(conversation["_id"])

        content = content or ""
        message_type, file_url = "text", None
        if attachment_payload:
            try:
                file_url = await self._attachments.save(sender_id, attachment_name or "", attachment_payload)
            except OSError as exc:
                raise StoreError("Could not store attachment") from exc
            message_type = "attachment"
            content = content or attachment_name or ""
        elif not content.strip():
            raise ValidationError("Message content cannot be empty")

        try:
            saved = await self._message_repo.save_message(
                conversation_id=convo_oid,
                sender_id=sender_id,
                content=content,
                message_type=message_type,
                file_url=file_url,
            )
            preview = ATTACHMENT_PREVIEW if message_type == "attachment" else content[:PREVIEW_LENGTH]
            await self._conversation_repo.update_on_new_message(convo_oid, preview)
        except PyMongoError as exc:
            raise StoreError("Could not persist message") from exc

        payload = serialize_message(saved, conversation["_id"], connection.username)
        await self._manager.emit_to_room(conversation["_id"], "new_message", payload)

        recipient_id = other_participant(conversation, sender_id)
        await self._unread.refresh(recipient_id)
        await self._sessions.deliver(
            recipient_id,
            "message_received_notification",
            {"senderId": sender_id, "senderName": connection.username},
        )
        logger.info(
            "Message sent",
            extra={"room_id": conversation["_id"], "message_id": payload["id"], "sender_id": sender_id},
        )
        return payload

    async def mark_read(self, connection: Connection, room_id: Optional[str]) -> int:
        reader_id = self._require_user(connection)
        conversation = await self._participant_conversation(room_id, reader_id)
        try:
            updated = await self._message_repo.mark_read(ObjectId(conversation["_id"]), reader_id)
        except PyMongoError as exc:
            raise StoreError("Could not update read state") from exc

        await self._manager.emit_to_room(
            conversation["_id"], "messages_read_update", {"roomId": conversation["_id"], "readerId": reader_id}
        )
        await self._unread.refresh(reader_id)
        return updated

    async def notify_typing(self, connection: Connection, room_id: Optional[str], is_typing: bool) -> None:
        if not connection.authenticated or not room_id:
            return
        if not self._manager.is_member(room_id, connection):
            logger.debug("Typing from non-member ignored", extra={"room_id": room_id, "user_id": connection.user_id})
            return
        await self._manager.emit_to_room(
            room_id,
            "typing_status",
            {"userId": connection.user_id, "username": connection.username, "roomId": room_id, "isTyping": is_typing},
            exclude=connection,
        )

    async def list_conversations(self, user_id: str) -> List[Dict[str, Any]]:
        conversations = await self._conversation_repo.list_for_user(user_id)
        counts = await self._unread.counts(user_id)
        items = []
        for convo in conversations:
            target_id = other_participant(convo, user_id)
            target = await self._user_repo.get_user_by_id(target_id)
            items.append({
                "id": convo["_id"],
                "targetUser": {"id": target_id, "username": target["username"] if target else None},
                "lastMessage": convo.get("last_message_preview", ""),
                "lastMessageTime": isoformat(convo.get("last_message_at")),
                "unreadCount": counts.get(convo["_id"], 0),
            })
        return items

    async def get_history_for(self, user_id: str, conversation_id: str) -> List[Dict[str, Any]]:
        conversation = await self._participant_conversation(conversation_id, user_id)
        return await self.get_history(conversation)

    def _require_user(self, connection: Connection) -> str:
        if not connection.authenticated:
            raise ValidationError("Connection is not authenticated")
        return connection.user_id

    async def _participant_conversation(self, room_id: Optional[str], user_id: str) -> Dict[str, Any]:
        conversation = await self._conversation_repo.get_by_id(to_object_id(room_id))
        if not conversation:
            raise NotFoundError("Conversation not found")
        if user_id not in conversation["participants"]:
            raise ValidationError("Not a participant of this conversation")
        return conversation

    async def _usernames(self, user_ids: List[str]) -> Dict[str, str]:
        names: Dict[str, str] = {}
        for user_id in user_ids:
            user = await self._user_repo.get_user_by_id(user_id)
            if user:
                names[user_id] = user["username"]
        return names
