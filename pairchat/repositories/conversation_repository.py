from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from pairchat.models.conversation import ConversationDocument


def participant_key(user_a: str, user_b: str) -> str:
    low, high = sorted([user_a, user_b])
    return f"{low}:{high}"


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participant_key", ASCENDING)], unique=True)
        await self.collection.create_index([("participants", ASCENDING)])
        await self.collection.create_index([("last_message_at", DESCENDING)])

    async def get_or_create_one_to_one(self, user_a: str, user_b: str) -> ConversationDocument:
        key = participant_key(user_a, user_b)
        now = datetime.now(timezone.utc)
        try:
            doc = await self.collection.find_one_and_update(
                {"participant_key": key},
                {
                    "$setOnInsert": {
                        "participants": sorted([user_a, user_b]),
                        "last_message_preview": "",
                        "last_message_at": now,
                        "created_at": now,
                    }
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # lost the upsert race; the winner's document is there now
            doc = await self.collection.find_one({"participant_key": key})
        doc["_id"] = str(doc["_id"])
        return doc

    async def get_by_id(self, conversation_id: ObjectId) -> Optional[ConversationDocument]:
        doc = await self.collection.find_one({"_id": conversation_id})
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def update_on_new_message(self, conversation_id: ObjectId, preview: str) -> None:
        await self.collection.update_one(
            {"_id": conversation_id},
            {
                "$set": {
                    "last_message_at": datetime.now(timezone.utc),
                    "last_message_preview": preview,
                },
            },
        )

    async def list_for_user(self, user_id: str, limit: Optional[int] = None) -> List[ConversationDocument]:
        sort = [("last_message_at", DESCENDING), ("_id", DESCENDING)]
        cursor = self.collection.find({"participants": user_id}).sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        items = await cursor.to_list(length=limit)
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items
