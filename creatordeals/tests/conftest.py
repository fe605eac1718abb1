"""Shared test fixtures for the creatordeals test suite.

Uses an in-memory SQLite database with StaticPool so all sessions share the
same connection (committed data is visible across sessions).
"""

import random
import uuid

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from creatordeals.database import Base, get_db
from creatordeals.main import app
from creatordeals.models import *  # noqa: ensure all models are loaded for create_all

DEFAULT_PASSWORD = "Passw0rd123"


# ---------------------------------------------------------------------------
# In-memory SQLite test engine (shared via StaticPool)
# ---------------------------------------------------------------------------

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@event.listens_for(test_engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


# ---------------------------------------------------------------------------
# Auto-use: create/drop tables for every test
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
async def _setup_db(monkeypatch, tmp_path):
    """Create all tables before each test, drop after. Also reset global state."""
    from creatordeals import database
    from creatordeals.core.async_tasks import drain_background_tasks
    from creatordeals.core.chat_broker import chat_broker
    from creatordeals.core.rate_limiter import rate_limiter
    from creatordeals.services import storage_service
    from creatordeals.storage.filestore import FileStore

    # Background jobs open their own sessions; point them at the test DB
    monkeypatch.setattr(database, "async_session", TestSession)
    storage_service.set_storage(FileStore(str(tmp_path / "uploads")))
    chat_broker.clear()
    rate_limiter.reset()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await drain_background_tasks(timeout_seconds=0.1)
    chat_broker.clear()
    storage_service.set_storage(None)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def db():
    """Yield a fresh AsyncSession for direct service-layer tests."""
    async with TestSession() as session:
        yield session


@pytest.fixture
async def client():
    """httpx AsyncClient wired to the FastAPI app with test DB override."""
    import httpx

    async def _override_get_db():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------

def _new_id() -> str:
    return str(uuid.uuid4())


def _new_phone() -> str:
    return "+1555" + "".join(str(random.randint(0, 9)) for _ in range(7))


@pytest.fixture
def auth_header():
    """Return a callable that builds an Authorization header from a JWT."""
    def _build(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}
    return _build


@pytest.fixture
def make_user(db: AsyncSession):
    """Factory fixture: create an active User and return (user, jwt_token)."""
    from creatordeals.core.auth import create_user_token, hash_password
    from creatordeals.models.user import User

    async def _make(user_type: str = "Marketer", name: str = None, **kwargs):
        suffix = _new_id()[:8]
        user = User(
            id=_new_id(),
            phone=kwargs.get("phone") or _new_phone(),
            email=kwargs.get("email"),
            password_hash=hash_password(kwargs.get("password", DEFAULT_PASSWORD)),
            name=name or f"{user_type} {suffix}",
            user_name=kwargs.get("user_name") or f"{user_type.lower()}_{suffix}",
            user_type=user_type,
            is_active=kwargs.get("is_active", True),
            status=kwargs.get("status", "active"),
            creator_data=kwargs.get("creator_data", "{}"),
            marketer_data=kwargs.get("marketer_data", "{}"),
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        token = create_user_token(user.id, user.phone, user.user_type)
        return user, token

    return _make


@pytest.fixture
def make_offer(db: AsyncSession):
    """Factory fixture: a marketer sends an offer to a creator through the service layer.

    Returns the create result: ``{"message", "offer", "chat_room_id"}``.
    """
    from creatordeals.services import offer_service

    async def _make(marketer_id: str, creator_id: str, **kwargs):
        data = {
            "creator_id": creator_id,
            "offer_name": kwargs.pop("offer_name", "Spring Campaign"),
            "proposed_amount": kwargs.pop("proposed_amount", 1000),
            "deliverables": kwargs.pop("deliverables", ["1 Instagram post"]),
            "platforms": kwargs.pop("platforms", ["instagram"]),
        }
        data.update(kwargs)
        return await offer_service.create_offer(db, marketer_id, data)

    return _make


@pytest.fixture
def make_chat(db: AsyncSession):
    """Factory fixture: create (or reuse) a chat room for a marketer/creator pair."""
    from creatordeals.services import chat_service

    async def _make(marketer_id: str, creator_id: str, offer_id: str = None):
        room = await chat_service.get_or_create_room(db, marketer_id, creator_id, offer_id)
        await db.commit()
        return room

    return _make


@pytest.fixture
def make_deal(db: AsyncSession, make_offer):
    """Factory fixture: offer + creator acceptance. Returns the deal dict."""
    from creatordeals.services import negotiation_service

    async def _make(marketer_id: str, creator_id: str, amount: float = 1000, **kwargs):
        created = await make_offer(marketer_id, creator_id, proposed_amount=amount, **kwargs)
        accepted = await negotiation_service.accept_offer(db, created["offer"]["id"], creator_id)
        return accepted["deal"]

    return _make
