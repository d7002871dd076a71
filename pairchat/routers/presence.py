from fastapi import APIRouter, Depends, HTTPException

from pairchat.database.connection import mongo_db_dependency
from pairchat.repositories.user_repository import UserRepository


router = APIRouter(prefix="/presence", tags=["chat"])


@router.get("/{user_id}")
async def presence(user_id: str, db = Depends(mongo_db_dependency)):
    """
    Online status as recorded by the most recent connect/disconnect of the user.
    """
    user = await UserRepository(db).get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user_id": user_id, "username": user["username"], "online": bool(user.get("is_online"))}
