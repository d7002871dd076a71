import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict

from jose import JWTError
from pymongo.errors import DuplicateKeyError

from pairchat.repositories.user_repository import UserRepository
from pairchat.services.errors import AuthError, ConflictError, NotFoundError, ValidationError
from pairchat.services.presence_service import PresenceService
from pairchat.services.session_directory import SessionDirectory
from pairchat.services.unread_service import UnreadService
from pairchat.utils.security import create_access_token, decode_access_token, hash_password, verify_password
from pairchat.utils.websocket_manager import Connection, ConnectionManager


logger = logging.getLogger(__name__)


@dataclass
class AuthResult:
    user_id: str
    username: str
    token: str

    def to_payload(self) -> Dict[str, str]:
        return {"myId": self.user_id, "username": self.username, "token": self.token}


class AuthService:
    """Service layer binding connections to user accounts"""

    def __init__(
        self,
        user_repository: UserRepository,
        manager: ConnectionManager,
        sessions: SessionDirectory,
        presence: PresenceService,
        unread: UnreadService,
    ) -> None:
        self.user_repository = user_repository
        self.manager = manager
        self.sessions = sessions
        self.presence = presence
        self.unread = unread

    async def signup(self, connection: Connection, username: str, password: str) -> AuthResult:
        """
        Register a new user on this connection
        - Reject taken usernames
        - Hash password
        - Create the user already online and bound to the connection
        """
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError("Username and password are required")

        existing = await self.user_repository.get_user_by_username(username)
        if existing:
            raise ConflictError("Username already taken")

        hashed_password = await asyncio.to_thread(hash_password, password)
        try:
            user_id = await self.user_repository.create_user(username, hashed_password, socket_id=connection.id)
        except DuplicateKeyError as exc:
            # concurrent signup won the unique index
            raise ConflictError("Username already taken") from exc

        await self.sessions.bind(connection, {"_id": user_id, "username": username})
        result = AuthResult(user_id, username, create_access_token(user_id))
        logger.info("Signup succeeded", extra={"user_id": user_id, "connection_id": connection.id})
        await self._announce(connection, result, push_unread=False)
        return result

    async def login(self, connection: Connection, username: str, password: str) -> AuthResult:
        """
        Authenticate with username and password
        - Find user by username
        - Verify password
        - Rebind the user to this connection
        """
        user = await self.user_repository.get_user_by_username((username or "").strip())
        if not user:
            raise NotFoundError("User not found")

        if not await asyncio.to_thread(verify_password, password or "", user.get("hashed_password", "")):
            logger.info("Login rejected", extra={"user_id": user["_id"], "reason": "bad_password"})
            raise AuthError("Incorrect password")

        return await self._establish(connection, user)

    async def reauthenticate(self, connection: Connection, token: str) -> AuthResult:
        """
        Restore a session from a previously issued token
        - Token must be valid and unexpired
        - The referenced user must still exist
        """
        if not token:
            raise AuthError("Session expired. Please log in again.")
        try:
            claims = decode_access_token(token)
        except JWTError as exc:
            logger.info("Token rejected", extra={"connection_id": connection.id, "reason": str(exc)})
            raise AuthError("Session expired. Please log in again.") from exc

        user = await self.user_repository.get_user_by_id(claims["sub"])
        if not user:
            raise AuthError("Session expired. Please log in.")

        return await self._establish(connection, user)

    async def _establish(self, connection: Connection, user: Dict[str, Any]) -> AuthResult:
        await self.sessions.bind(connection, user)
        result = AuthResult(user["_id"], user["username"], create_access_token(user["_id"]))
        logger.info("Login succeeded", extra={"user_id": user["_id"], "connection_id": connection.id})
        await self._announce(connection, result, push_unread=True)
        return result

    async def _announce(self, connection: Connection, result: AuthResult, push_unread: bool) -> None:
        await self.manager.send(connection, "registration_success", result.to_payload())
        # the client is authenticated from here on; later failures must not surface as auth_error
        try:
            await self.presence.publish()
            if push_unread:
                await self.unread.refresh(result.user_id)
        except Exception:
            logger.exception("Post-login announce failed", extra={"user_id": result.user_id, "connection_id": connection.id})
