from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from motor.motor_asyncio import AsyncIOMotorDatabase

from pairchat.database.connection import mongo_db_dependency
from pairchat.repositories.conversation_repository import ConversationRepository
from pairchat.repositories.message_repository import MessageRepository
from pairchat.repositories.user_repository import UserRepository
from pairchat.services.auth_service import AuthService
from pairchat.services.chat_service import ChatService
from pairchat.services.presence_service import PresenceService
from pairchat.services.session_directory import SessionDirectory
from pairchat.services.unread_service import UnreadService
from pairchat.utils.attachments import AttachmentStore
from pairchat.utils.security import decode_access_token
from pairchat.utils.websocket_manager import ConnectionManager


# process-wide: every live connection and room membership
manager = ConnectionManager()
attachments = AttachmentStore()

bearer = HTTPBearer()


@dataclass
class ChatServices:
    sessions: SessionDirectory
    presence: PresenceService
    unread: UnreadService
    auth: AuthService
    chat: ChatService


def build_services(
    db: AsyncIOMotorDatabase,
    connection_manager: ConnectionManager = manager,
    attachment_store: AttachmentStore = attachments,
) -> ChatServices:
    user_repo = UserRepository(db)
    convo_repo = ConversationRepository(db)
    msg_repo = MessageRepository(db)
    sessions = SessionDirectory(user_repo, connection_manager)
    presence = PresenceService(user_repo, connection_manager)
    unread = UnreadService(msg_repo, convo_repo, sessions)
    auth = AuthService(user_repo, connection_manager, sessions, presence, unread)
    chat = ChatService(msg_repo, convo_repo, user_repo, connection_manager, sessions, unread, attachment_store)
    return ChatServices(sessions=sessions, presence=presence, unread=unread, auth=auth, chat=chat)


def get_services(db = Depends(mongo_db_dependency)) -> ChatServices:
    return build_services(db)


def get_chat_service(services: ChatServices = Depends(get_services)) -> ChatService:
    return services.chat


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    db = Depends(mongo_db_dependency),
) -> dict:
    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    user = await UserRepository(db).get_user_by_id(payload["sub"])
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user
