"""Tests for signup, login and token reauthentication on live connections."""
import json
import threading

import pytest
from bson import ObjectId

from pairchat.repositories.user_repository import UserRepository
from pairchat.routers.chat import dispatch
from pairchat.services import auth_service
from pairchat.services.errors import AuthError, ConflictError, NotFoundError, ValidationError
from pairchat.utils.security import create_access_token, decode_access_token


@pytest.mark.asyncio
async def test_signup_binds_connection_and_marks_user_online(services, connect, db):
    conn = connect()

    result = await services.auth.signup(conn, "alice", "pw1")

    assert conn.user_id == result.user_id
    assert conn.username == "alice"
    user = await UserRepository(db).get_user_by_id(result.user_id)
    assert user["is_online"] is True
    assert user["socket_id"] == conn.id
    assert user["hashed_password"] != "pw1"
    assert decode_access_token(result.token)["sub"] == result.user_id


@pytest.mark.asyncio
async def test_signup_emits_registration_then_presence(services, connect):
    conn = connect()

    result = await services.auth.signup(conn, "alice", "pw1")

    names = [name for name, _ in conn.events]
    assert names == ["registration_success", "active_users"]
    assert conn.last("registration_success") == {"myId": result.user_id, "username": "alice", "token": result.token}
    assert conn.last("active_users") == [{"id": result.user_id, "username": "alice"}]


@pytest.mark.asyncio
async def test_signup_rejects_taken_username(services, connect):
    await services.auth.signup(connect(), "alice", "pw1")

    with pytest.raises(ConflictError):
        await services.auth.signup(connect(), "alice", "other")


@pytest.mark.asyncio
async def test_signup_requires_username_and_password(services, connect):
    with pytest.raises(ValidationError):
        await services.auth.signup(connect(), "   ", "pw1")
    with pytest.raises(ValidationError):
        await services.auth.signup(connect(), "alice", "")


@pytest.mark.asyncio
async def test_login_unknown_user(services, connect):
    with pytest.raises(NotFoundError):
        await services.auth.login(connect(), "nobody", "pw")


@pytest.mark.asyncio
async def test_login_wrong_password(services, connect):
    await services.auth.signup(connect(), "alice", "pw1")
    conn = connect()

    with pytest.raises(AuthError):
        await services.auth.login(conn, "alice", "wrong")
    assert conn.user_id is None
    assert conn.events == []


@pytest.mark.asyncio
async def test_login_pushes_presence_and_unread_summary(services, connect):
    signed_up = await services.auth.signup(connect(), "alice", "pw1")
    conn = connect()

    result = await services.auth.login(conn, "alice", "pw1")

    assert result.user_id == signed_up.user_id
    assert [name for name, _ in conn.events] == ["registration_success", "active_users", "unread_updates"]
    assert conn.last("unread_updates") == []


@pytest.mark.asyncio
async def test_login_overwrites_previous_binding(services, connect, manager):
    first = connect()
    second = connect()
    result = await services.auth.signup(first, "alice", "pw1")

    await services.auth.login(second, "alice", "pw1")

    assert await services.sessions.route(result.user_id) is second
    # the superseded connection stays open, it is just no longer routable
    assert manager.get(first.id) is first


@pytest.mark.asyncio
async def test_reauthenticate_restores_session(services, connect):
    signed_up = await services.auth.signup(connect(), "alice", "pw1")
    conn = connect()

    result = await services.auth.reauthenticate(conn, signed_up.token)

    assert result.user_id == signed_up.user_id
    assert conn.user_id == signed_up.user_id
    assert await services.sessions.route(signed_up.user_id) is conn
    assert conn.last("registration_success")["myId"] == signed_up.user_id


@pytest.mark.asyncio
async def test_reauthenticate_rejects_garbage_token(services, connect):
    with pytest.raises(AuthError):
        await services.auth.reauthenticate(connect(), "not-a-token")
    with pytest.raises(AuthError):
        await services.auth.reauthenticate(connect(), None)


@pytest.mark.asyncio
async def test_reauthenticate_rejects_expired_token(services, connect):
    signed_up = await services.auth.signup(connect(), "alice", "pw1")
    expired = create_access_token(signed_up.user_id, expires_minutes=-5)

    with pytest.raises(AuthError):
        await services.auth.reauthenticate(connect(), expired)


@pytest.mark.asyncio
async def test_reauthenticate_rejects_token_for_missing_user(services, connect):
    token = create_access_token(str(ObjectId()))

    with pytest.raises(AuthError):
        await services.auth.reauthenticate(connect(), token)


@pytest.mark.asyncio
async def test_switching_user_on_same_connection_releases_old_binding(services, connect, db):
    conn = connect()
    alice = await services.auth.signup(conn, "alice", "pw1")
    bob = await services.auth.signup(connect(), "bob", "pw2")

    await services.auth.login(conn, "bob", "pw2")

    repo = UserRepository(db)
    assert (await repo.get_user_by_id(alice.user_id))["is_online"] is False
    assert conn.user_id == bob.user_id


@pytest.mark.asyncio
async def test_switching_user_leaves_previous_users_rooms(services, connect, manager):
    conn = connect()
    alice = await services.auth.signup(conn, "alice", "pw1")
    bob_conn = connect()
    bob = await services.auth.signup(bob_conn, "bob", "pw2")
    await services.auth.signup(connect(), "carol", "pw3")
    room_id = (await services.chat.open_private_chat(conn, bob.user_id))["roomId"]
    await services.chat.open_private_chat(bob_conn, alice.user_id)

    await services.auth.login(conn, "carol", "pw3")
    conn.clear()
    await services.chat.send_message(bob_conn, room_id, content="secret for alice")
    await services.chat.notify_typing(bob_conn, room_id, True)

    assert not manager.is_member(room_id, conn)
    assert conn.named("new_message") == []
    assert conn.named("typing_status") == []


@pytest.mark.asyncio
async def test_password_hashing_runs_off_the_event_loop(services, connect, monkeypatch):
    loop_thread = threading.get_ident()
    seen = []

    def recording(func):
        def wrapper(*args):
            seen.append(threading.get_ident())
            return func(*args)
        return wrapper

    monkeypatch.setattr(auth_service, "hash_password", recording(auth_service.hash_password))
    monkeypatch.setattr(auth_service, "verify_password", recording(auth_service.verify_password))

    await services.auth.signup(connect(), "alice", "pw1")
    await services.auth.login(connect(), "alice", "pw1")

    assert len(seen) == 2
    assert loop_thread not in seen


@pytest.mark.asyncio
async def test_announce_failure_does_not_report_auth_error(services, connect, monkeypatch):
    await services.auth.signup(connect(), "alice", "pw1")
    conn = connect()

    async def broken_publish():
        raise RuntimeError("presence store unavailable")

    monkeypatch.setattr(services.presence, "publish", broken_publish)
    await dispatch(services, conn, json.dumps({"event": "login", "data": {"username": "alice", "password": "pw1"}}))

    assert conn.last("registration_success")["username"] == "alice"
    assert conn.named("auth_error") == []
