import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["AUTO_CREATE_TABLES"] = "false"

import pytest
from datetime import datetime, timedelta
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from flash_sale_api import app
from flash_sale_api.core.dependencies import get_db
from flash_sale_api.core.security import create_access_token
from flash_sale_api.db.base import Base
from flash_sale_api.enums import UserRole
from flash_sale_api.models import FlashSaleItemPurchase, FlashSaleItemView, Product


class FrozenClock:
    """Clock handed to the services so tests control "now"."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
async def db_engine():
    """In-memory database shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def db_session_factory(db_engine):
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(db_session_factory):
    async with db_session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 1, 28, 12, 0, 0))


@pytest.fixture
async def products(db_session):
    """Three catalogue products to put on sale."""
    rows = [
        Product(
            name=f"Product {i}",
            slug=f"product-{i}",
            price=100000.0 * i,
            stock=100,
            images=[{"url": f"https://cdn.example.com/p{i}.jpg", "alt": f"Product {i}", "is_main": True}],
        )
        for i in range(1, 4)
    ]
    db_session.add_all(rows)
    await db_session.commit()
    return rows


@pytest.fixture
def add_views(db_session):
    async def _add_views(item_id: int, count: int, created_at: datetime, user_ids=None):
        for i in range(count):
            user_id = user_ids[i % len(user_ids)] if user_ids else None
            db_session.add(
                FlashSaleItemView(
                    flash_sale_item_id=item_id,
                    user_id=user_id,
                    ip_address="127.0.0.1",
                    user_agent="pytest",
                    device_type="desktop",
                    created_at=created_at,
                )
            )
        await db_session.commit()

    return _add_views


@pytest.fixture
def add_purchases(db_session):
    async def _add_purchases(item_id: int, count: int, unit_price: float, created_at: datetime, quantity: int = 1):
        for i in range(count):
            db_session.add(
                FlashSaleItemPurchase(
                    flash_sale_item_id=item_id,
                    user_id=f"buyer-{i}",
                    quantity=quantity,
                    unit_price=unit_price,
                    total_price=unit_price * quantity,
                    created_at=created_at,
                )
            )
        await db_session.commit()

    return _add_purchases


@pytest.fixture
async def client(db_session_factory):
    async def override_get_db():
        async with db_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    token = create_access_token("admin-1", UserRole.ADMIN, session_id="sess-admin", email="admin@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_headers():
    token = create_access_token("customer-1", UserRole.CUSTOMER, session_id="sess-customer")
    return {"Authorization": f"Bearer {token}"}
