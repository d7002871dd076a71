import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from pairchat.database.connection import close_mongo_connection, connect_to_mongo, get_database
from pairchat.repositories.conversation_repository import ConversationRepository
from pairchat.repositories.message_repository import MessageRepository
from pairchat.repositories.user_repository import UserRepository
from pairchat.routers.chat import router as chat_router
from pairchat.routers.conversations import router as conversations_router
from pairchat.routers.presence import router as presence_router
from pairchat.services.presence_service import PresenceService
from pairchat.utils.dependencies import manager
from pairchat.utils.logging_config import configure_logging


configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):

    await connect_to_mongo()
    db = get_database()
    users = UserRepository(db)
    await users.ensure_indexes()
    await ConversationRepository(db).ensure_indexes()
    await MessageRepository(db).ensure_indexes()
    await PresenceService(users, manager).reset()
    try:
        yield
    finally:
        await close_mongo_connection()


app = FastAPI(title="Pairchat", lifespan=lifespan)


app.include_router(chat_router)
app.include_router(conversations_router)
app.include_router(presence_router)


@app.get("/")
async def root():

    db = get_database()
    collections = await db.list_collection_names()
    return {"status": "ok", "collections": collections}


if __name__ == "__main__":
    uvicorn.run("pairchat.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "3000")))
