from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from pairchat.models.message import MessageDocument, MessageType


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation_id", ASCENDING), ("created_at", ASCENDING)])
        await self.collection.create_index([("conversation_id", ASCENDING), ("read_by", ASCENDING)])

    async def save_message(
        self,
        conversation_id: ObjectId,
        sender_id: str,
        content: str,
        message_type: MessageType = "text",
        file_url: Optional[str] = None,
    ) -> MessageDocument:
        now = datetime.now(timezone.utc)
        # BSON dates keep milliseconds only
        now = now.replace(microsecond=now.microsecond // 1000 * 1000)
        doc: MessageDocument = {
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "content": content,
            "type": message_type,
            "file_url": file_url,
            "read_by": [sender_id],
            "created_at": now,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def list_by_conversation(self, conversation_id: ObjectId) -> List[MessageDocument]:
        cursor = self.collection.find({"conversation_id": conversation_id}).sort(
            [("created_at", ASCENDING), ("_id", ASCENDING)]
        )
        items = await cursor.to_list(length=None)
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items

    async def mark_read(self, conversation_id: ObjectId, reader_id: str) -> int:
        result = await self.collection.update_many(
            {
                "conversation_id": conversation_id,
                "sender_id": {"$ne": reader_id},
                "read_by": {"$ne": reader_id},
            },
            {"$addToSet": {"read_by": reader_id}},
        )
        return result.modified_count or 0

    async def count_unread(self, conversation_id: ObjectId, user_id: str) -> int:
        return await self.collection.count_documents(
            {
                "conversation_id": conversation_id,
                "sender_id": {"$ne": user_id},
                "read_by": {"$nin": [user_id]},
            }
        )
