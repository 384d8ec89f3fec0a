"""
Pytest configuration and shared fixtures for the Alumni Connect tests.

The database URL is pointed at a throwaway SQLite file before anything from
``alumni_connect`` is imported, so the app, the chat sockets and background
tasks all share it. Tables are recreated for every test.

Test Categories:
- unit: Store, index, relay and chat session logic
- integration: Requests through the FastAPI app (HTTP and WebSocket)
"""
import os
import tempfile

_TEST_DB_DIR = tempfile.mkdtemp(prefix="alumni-connect-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.pop("RESEND_API_KEY", None)

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from alumni_connect.config import settings
from alumni_connect.core.connection_index import ConnectionIndexRegistry, index_registry
from alumni_connect.core.connection_store import ConnectionStore
from alumni_connect.core.message_store import MessageStore
from alumni_connect.database import Base, SessionLocal, engine
from alumni_connect.main import app
from alumni_connect.realtime.relay import MessageRelay

ALICE = "alice-0001"
BOB = "bob-0002"
CAROL = "carol-0003"


@pytest.fixture(autouse=True)
def fresh_database():
    """Recreate every table and forget cached indexes."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    index_registry.invalidate()
    yield
    index_registry.invalidate()


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def registry():
    return ConnectionIndexRegistry()


@pytest.fixture
def relay():
    return MessageRelay()


@pytest.fixture
def connections(db, registry):
    return ConnectionStore(db, registry=registry)


@pytest.fixture
def messages(db, relay):
    return MessageStore(db, relay=relay)


@pytest.fixture
def accepted(connections):
    """An accepted connection between Alice (sender) and Bob."""
    conn = connections.request(ALICE, BOB)
    return connections.accept(conn.id, BOB)


def make_token(user_id: str, **claims) -> str:
    payload = {"sub": user_id, "aud": settings.JWT_AUDIENCE, "email": f"{user_id}@example.com"}
    payload.update(claims)
    return jwt.encode(payload, settings.SUPABASE_JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def client():
    return TestClient(app)
