"""Shared fixtures: in-memory MongoDB, recording connections, wired services."""
import os

# cheap hashing for tests; read at import time by pairchat.utils.security
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from typing import Any, List, Optional, Tuple

import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

from pairchat.database.connection import set_database
from pairchat.repositories.conversation_repository import ConversationRepository
from pairchat.repositories.message_repository import MessageRepository
from pairchat.repositories.user_repository import UserRepository
from pairchat.utils.attachments import AttachmentStore
from pairchat.utils.dependencies import build_services
from pairchat.utils.dependencies import manager as shared_manager
from pairchat.utils.websocket_manager import Connection


class RecordingConnection(Connection):
    """Connection stand-in that records emitted events instead of writing to a socket."""

    def __init__(self, connection_id: Optional[str] = None, dead: bool = False) -> None:
        super().__init__(websocket=None, connection_id=connection_id)
        self.events: List[Tuple[str, Any]] = []
        self.dead = dead

    async def emit(self, event: str, data: Any) -> None:
        if self.dead:
            raise RuntimeError("socket closed")
        self.events.append((event, data))

    def named(self, event: str) -> List[Any]:
        return [data for name, data in self.events if name == event]

    def last(self, event: str) -> Any:
        matches = self.named(event)
        assert matches, f"no {event!r} event in {[name for name, _ in self.events]}"
        return matches[-1]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def mongo():
    db = AsyncMongoMockClient()["pairchat_test"]
    yield db
    set_database(None)


@pytest_asyncio.fixture
async def db(mongo):
    await UserRepository(mongo).ensure_indexes()
    await ConversationRepository(mongo).ensure_indexes()
    await MessageRepository(mongo).ensure_indexes()
    return mongo


@pytest.fixture
def manager():
    shared_manager.active_connections.clear()
    shared_manager.rooms.clear()
    yield shared_manager
    shared_manager.active_connections.clear()
    shared_manager.rooms.clear()


@pytest.fixture
def attachment_store(tmp_path):
    return AttachmentStore(root=tmp_path / "uploads")


@pytest.fixture
def services(db, manager, attachment_store):
    return build_services(db, manager, attachment_store)


@pytest.fixture
def connect(manager):
    """Factory registering a fresh recording connection with the shared manager."""

    def _connect(dead: bool = False) -> RecordingConnection:
        connection = RecordingConnection(dead=dead)
        manager.register(connection)
        return connection

    return _connect


@pytest_asyncio.fixture
async def alice_and_bob(services, connect):
    """Two signed-up users, each bound to its own live connection."""
    alice = connect()
    bob = connect()
    await services.auth.signup(alice, "alice", "pw1")
    await services.auth.signup(bob, "bob", "pw2")
    alice.clear()
    bob.clear()
    return alice, bob
