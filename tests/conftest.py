"""
Shared fixtures: a throwaway SQLite database per test, an in-process broker,
and an ASGI client with the DB and channel dependencies overridden.
"""
import os

# Must be set before anything under tindo reads settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["BROKER_BACKEND"] = "local"
os.environ["METRICS_ENABLED"] = "false"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import httpx
import pytest
import pytest_asyncio
from jose import jwt
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from tindo.core.config import get_settings
from tindo.db.database import Base, get_db
from tindo.main import app
from tindo.models.user import Restaurant, User
from tindo.orders.lifecycle import OrderLifecycle
from tindo.realtime.broker import LocalBroker
from tindo.realtime.channel import BroadcastChannel, get_channel
from tindo.schemas.order import OrderCreateRequest

settings = get_settings()

# ─── Seed data ─────────────────────────────────────────────────────────────────
CUSTOMER_ID = 1
RESTAURANT_ID = 2
AGENT_ID = 3
OTHER_AGENT_ID = 4
NO_LOCATION_USER_ID = 5
RESTAURANT_STAFF_ID = 6

CUSTOMER_LAT = 12.9716
CUSTOMER_LNG = 77.5946


def make_token(user_id: int, role: str = "customer", **claims) -> str:
    payload = {"sub": str(user_id), "role": role, **claims}
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def auth_header(user_id: int, role: str = "customer", **claims) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, role, **claims)}"}


def order_payload(**overrides) -> dict:
    payload = {
        "user_id": CUSTOMER_ID,
        "restaurant_id": RESTAURANT_ID,
        "items": [{"id": 11, "name": "Masala Dosa", "price": 120.0, "quantity": 2}],
        "total": 240.0,
        "payment_type": "cash",
        "estimated_delivery": "30 mins",
    }
    payload.update(overrides)
    return payload


# ─── Database ──────────────────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def engine(tmp_path):
    # File-backed so that concurrent sessions really use separate connections
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tindo.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as db:
        db.add_all([
            User(id=CUSTOMER_ID, name="Asha", role="customer", phone="+91-9000000001",
                 lat=CUSTOMER_LAT, lng=CUSTOMER_LNG, address="12 MG Road, Bengaluru"),
            User(id=AGENT_ID, name="Ravi", role="delivery", phone="+91-9000000003"),
            User(id=OTHER_AGENT_ID, name="Kiran", role="delivery", phone="+91-9000000004"),
            User(id=NO_LOCATION_USER_ID, name="Nomad", role="customer"),
            User(id=RESTAURANT_STAFF_ID, name="Front Desk", role="restaurant",
                 restaurant_id=RESTAURANT_ID),
            Restaurant(id=RESTAURANT_ID, name="Dosa Corner", phone="+91-8000000002"),
        ])
        await db.commit()
    return factory


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ─── Broadcast ─────────────────────────────────────────────────────────────────
@pytest.fixture
def broker():
    return LocalBroker(queue_size=16)


@pytest.fixture
def channel(broker):
    return BroadcastChannel(broker)


@pytest.fixture
def lifecycle(db, channel):
    return OrderLifecycle(db, channel)


@pytest_asyncio.fixture
async def placed_order(lifecycle):
    return await lifecycle.create(OrderCreateRequest(**order_payload()))


@pytest_asyncio.fixture
async def assigned_order(lifecycle, placed_order):
    return await lifecycle.assign(placed_order.order_id, AGENT_ID)


# ─── HTTP client ───────────────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def client(session_factory, channel):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_channel] = lambda: channel
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
