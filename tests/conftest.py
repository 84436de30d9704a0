import pytest
import os
import uuid
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from app.database import Base, get_db
from app.main import app
from app.core.events import trip_event_bus
from app.schemas.order import OrderCreate
from app.schemas.route import RouteCreate, DriverRouteProfileCreate
from app.services import catalog
from app.services.intake import create_order
from tests.fixtures.test_data import (
    generate_route_payload,
    generate_profile_payload,
    generate_order_payload,
    next_weekday,
)

# Use in-memory SQLite for tests by default, unless TEST_DATABASE_URL is set
TEST_DB_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


@pytest.fixture
async def test_engine():
    """Test database engine with a fresh schema."""
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False} if "sqlite" in TEST_DB_URL else {},
        poolclass=StaticPool if "sqlite" in TEST_DB_URL else None,
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Function-scoped DB session inside a transaction that is rolled back."""
    connection = await test_engine.connect()
    transaction = await connection.begin()

    session_maker = async_sessionmaker(
        bind=connection,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    session = session_maker()

    yield session

    await session.close()
    await transaction.rollback()
    await connection.close()


@pytest.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Test client with override for get_db."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    trip_event_bus.clear()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def driver_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def travel_date():
    """A Wednesday in the near future."""
    return next_weekday(3)


@pytest.fixture
async def route(db_session):
    """An active city-pair route."""
    return await catalog.create_route(db_session, RouteCreate(**generate_route_payload()))


@pytest.fixture
async def profile(db_session, route, driver_id):
    """Driver profile on the route: every day, 10 packages / 100 kg."""
    payload = generate_profile_payload(driver_id, route.id, max_packages=10, max_weight_kg=100.0)
    return await catalog.create_profile(db_session, DriverRouteProfileCreate(**payload))


@pytest.fixture
def make_order(db_session, route, travel_date):
    """Factory creating awaiting_driver orders on the route for the travel date."""
    async def _make_order(package_count: int = 1, extra_stops: int = 0, **overrides):
        payload = generate_order_payload(
            route.id,
            overrides.pop("scheduled_date", travel_date),
            package_count=package_count,
            extra_stops=extra_stops,
            **overrides,
        )
        return await create_order(db_session, OrderCreate(**payload))

    return _make_order
