from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from pairchat.models.user import UserDocument


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def ensure_indexes(self) -> None:
        await self._collection.create_index([("username", ASCENDING)], unique=True)
        await self._collection.create_index([("is_online", ASCENDING)])

    async def create_user(self, username: str, hashed_password: str, socket_id: Optional[str]) -> str:
        doc = {
            "username": username,
            "hashed_password": hashed_password,
            "is_online": socket_id is not None,
            "socket_id": socket_id,
            "created_at": datetime.now(timezone.utc),
        }
        result = await self._collection.insert_one(doc)
        return str(result.inserted_id)

    async def get_user_by_username(self, username: str) -> Optional[UserDocument]:
        user = await self._collection.find_one({"username": username})
        if user:
            user["_id"] = str(user["_id"])
        return user

    async def get_user_by_id(self, user_id: str) -> Optional[UserDocument]:
        oid = self._to_object_id(user_id)
        if oid is None:
            return None
        user = await self._collection.find_one({"_id": oid})
        if user:
            user["_id"] = str(user["_id"])
        return user

    async def set_online(self, user_id: str, socket_id: str) -> bool:
        result = await self._collection.update_one(
            {"_id": self._to_object_id(user_id)},
            {"$set": {"is_online": True, "socket_id": socket_id}},
        )
        return result.matched_count > 0

    async def set_offline(self, user_id: str, socket_id: str) -> bool:
        # only clears the binding if no newer authentication replaced it
        result = await self._collection.update_one(
            {"_id": self._to_object_id(user_id), "socket_id": socket_id},
            {"$set": {"is_online": False, "socket_id": None}},
        )
        return result.modified_count > 0

    async def reset_presence(self) -> int:
        result = await self._collection.update_many(
            {"$or": [{"is_online": True}, {"socket_id": {"$ne": None}}]},
            {"$set": {"is_online": False, "socket_id": None}},
        )
        return result.modified_count or 0

    async def list_online(self) -> List[UserDocument]:
        cursor = self._collection.find({"is_online": True}, {"username": 1}).sort("username", ASCENDING)
        items = await cursor.to_list(length=None)
        for it in items:
            it["_id"] = str(it["_id"])
        return items

    def _to_object_id(self, user_id: str) -> Optional[ObjectId]:
        try:
            return ObjectId(user_id)
        except (InvalidId, TypeError):
            return None
