"""Integration-test fixtures.

Needs PostgreSQL with migrations applied (alembic upgrade head) and Redis.
Skipped unless SW_INTEGRATION_DB=1.

All integration tests share a single event-loop so that the module-level
SQLAlchemy async engine pool and Redis pool (both created at import time)
remain valid across the entire test session.
"""

import os
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import text

from config.settings import settings
from src.main import app
from src.sw_common.database import async_session_factory


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if os.environ.get("SW_INTEGRATION_DB") == "1":
        return
    skip = pytest.mark.skip(reason="set SW_INTEGRATION_DB=1 to run against PostgreSQL/Redis")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


def make_token(user_id: str, role: str | None = None) -> str:
    claims = {
        "sub": user_id,
        "type": "access",
        "exp": datetime.now(UTC) + timedelta(minutes=15),
    }
    if role:
        claims["role"] = role
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def auth() -> Callable[..., dict[str, str]]:
    """Bearer header for an arbitrary account id."""

    def _auth(user_id: str, role: str | None = None) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}

    return _auth


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    """Session-scoped async HTTP client: keeps the engine pool alive."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture(loop_scope="session")
async def seed_listing() -> Callable[..., Awaitable[str]]:
    """Insert a fresh ACTIVE listing and return its id."""

    async def _seed(seller_id: str, price: int) -> str:
        listing_id = f"L-{uuid.uuid4().hex[:12]}"
        async with async_session_factory() as session:
            await session.execute(
                text("""
                    INSERT INTO listings (id, seller_id, title, price, is_available, status)
                    VALUES (:id, :seller_id, :title, :price, TRUE, 'ACTIVE')
                """),
                {"id": listing_id, "seller_id": seller_id, "title": "test item", "price": price},
            )
            await session.commit()
        return listing_id

    return _seed
