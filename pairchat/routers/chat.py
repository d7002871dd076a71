import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Set, Type, TypeVar

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from pairchat.schemas.chat import JoinPrivateChatPayload, RoomPayload, SendPrivateMessagePayload, SocketEnvelope
from pairchat.schemas.user import Credentials, TokenPayload
from pairchat.services.errors import ChatError, ValidationError
from pairchat.utils.dependencies import ChatServices, get_services, manager
from pairchat.utils.websocket_manager import Connection


router = APIRouter(tags=["chat"])
logger = logging.getLogger(__name__)

Handler = Callable[[ChatServices, Connection, Any], Awaitable[None]]
M = TypeVar("M", bound=BaseModel)

# user-facing auth_error text when an auth handler fails unexpectedly
AUTH_FAILURE_MESSAGES = {
    "signup": "Signup failed",
    "login": "Login failed",
    "auto_auth": "Session expired. Please log in again.",
}


def _parse(model: Type[M], data: Any) -> M:
    try:
        return model.model_validate(data if data is not None else {})
    except PydanticValidationError as exc:
        raise ValidationError(f"Malformed {model.__name__}") from exc


async def on_signup(services: ChatServices, connection: Connection, data: Any) -> None:
    creds = _parse(Credentials, data)
    await services.auth.signup(connection, creds.username, creds.password)


async def on_login(services: ChatServices, connection: Connection, data: Any) -> None:
    creds = _parse(Credentials, data)
    await services.auth.login(connection, creds.username, creds.password)


async def on_auto_auth(services: ChatServices, connection: Connection, data: Any) -> None:
    payload = _parse(TokenPayload, data)
    await services.auth.reauthenticate(connection, payload.token)


async def on_active_users(services: ChatServices, connection: Connection, data: Any) -> None:
    await services.presence.publish()


async def on_join_private_chat(services: ChatServices, connection: Connection, data: Any) -> None:
    payload = _parse(JoinPrivateChatPayload, data)
    snapshot = await services.chat.open_private_chat(connection, payload.target_user_id)
    await manager.send(connection, "chat_room_loaded", snapshot)


async def on_send_private_message(services: ChatServices, connection: Connection, data: Any) -> None:
    payload = _parse(SendPrivateMessagePayload, data)
    await services.chat.send_message(
        connection,
        payload.room_id,
        content=payload.content,
        attachment_payload=payload.attachment_payload,
        attachment_name=payload.attachment_name,
    )


async def on_mark_messages_read(services: ChatServices, connection: Connection, data: Any) -> None:
    payload = _parse(RoomPayload, data)
    await services.chat.mark_read(connection, payload.room_id)


async def on_typing_start(services: ChatServices, connection: Connection, data: Any) -> None:
    payload = _parse(RoomPayload, data)
    await services.chat.notify_typing(connection, payload.room_id, True)


async def on_typing_stop(services: ChatServices, connection: Connection, data: Any) -> None:
    payload = _parse(RoomPayload, data)
    await services.chat.notify_typing(connection, payload.room_id, False)


HANDLERS: Dict[str, Handler] = {
    "signup": on_signup,
    "login": on_login,
    "auto_auth": on_auto_auth,
    "get_current_active_users": on_active_users,
    "join_private_chat": on_join_private_chat,
    "send_private_message": on_send_private_message,
    "mark_messages_read": on_mark_messages_read,
    "typing_start": on_typing_start,
    "typing_stop": on_typing_stop,
}


async def dispatch(services: ChatServices, connection: Connection, raw: str) -> None:
    try:
        envelope = SocketEnvelope.model_validate_json(raw)
    except PydanticValidationError:
        logger.warning("Ignoring malformed frame", extra={"connection_id": connection.id})
        return

    event = envelope.event
    handler = HANDLERS.get(event)
    if handler is None:
        logger.warning("Ignoring unknown event", extra={"connection_id": connection.id, "event": event})
        return

    try:
        await handler(services, connection, envelope.data)
    except ChatError as exc:
        if event in AUTH_FAILURE_MESSAGES:
            await manager.send(connection, "auth_error", {"message": exc.message})
            return
        logger.warning(
            "Event rejected",
            extra={"connection_id": connection.id, "user_id": connection.user_id, "event": event, "reason": exc.message},
        )
    except Exception:
        logger.exception("Event handler failed", extra={"connection_id": connection.id, "event": event})
        if event in AUTH_FAILURE_MESSAGES:
            await manager.send(connection, "auth_error", {"message": AUTH_FAILURE_MESSAGES[event]})


async def handle_disconnect(services: ChatServices, connection: Connection) -> None:
    manager.disconnect(connection)
    if not connection.authenticated:
        return
    try:
        await services.sessions.release(connection)
        await services.presence.publish()
    except Exception:
        logger.exception("Disconnect cleanup failed", extra={"connection_id": connection.id, "user_id": connection.user_id})


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket, services: ChatServices = Depends(get_services)):
    connection = Connection(websocket)
    await manager.connect(connection)
    logger.info("Socket connected", extra={"connection_id": connection.id})

    # one task per inbound event; handlers on the same socket may overlap
    pending: Set[asyncio.Task] = set()
    try:
        while True:
            raw = await websocket.receive_text()
            task = asyncio.create_task(dispatch(services, connection, raw))
            pending.add(task)
            task.add_done_callback(pending.discard)
    except WebSocketDisconnect:
        pass
    finally:
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await handle_disconnect(services, connection)
        logger.info("Socket disconnected", extra={"connection_id": connection.id, "user_id": connection.user_id})
