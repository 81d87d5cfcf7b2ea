"""Shared test fixtures and configuration."""
import asyncio
import pytest
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ORDER_STORE", "memory")
os.environ.setdefault("DISPATCH_POLLING_ENABLED", "false")

from pharmfind.main import app
from pharmfind.db.models import Base
from pharmfind.core import dependencies
from pharmfind.services.catalog.in_memory_catalog import InMemoryCatalogProvider
from pharmfind.services.dispatch.board import DispatchBoard
from pharmfind.services.ordering.ledger import OrderLedger, ReadTracker
from pharmfind.services.ordering.models import CartLine, FulfillmentDetails
from pharmfind.services.ordering.stages import FulfillmentMode
from pharmfind.services.persistence.in_memory import InMemoryOrderRepository
from pharmfind.services.review.queue import ReviewQueue
from pharmfind.services.sync.alerts import AlertCenter
from pharmfind.services.sync.events import PoolEventBus


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

START_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock for the ledger and alert center."""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture
def clock():
    """Clock starting at a fixed morning, advanced explicitly by tests."""
    return FakeClock()


@pytest.fixture
def test_catalog_path():
    """Return path to test catalogue YAML file."""
    return Path(__file__).parent / "fixtures" / "test_catalog.yaml"


@pytest.fixture
def catalog(test_catalog_path):
    """Catalogue provider with test data."""
    return InMemoryCatalogProvider(catalog_file=str(test_catalog_path))


@pytest.fixture
def repository():
    return InMemoryOrderRepository()


@pytest.fixture
def pool_events():
    return PoolEventBus()


@pytest.fixture
def alert_center(clock):
    return AlertCenter(clock=clock)


@pytest.fixture
def ledger(repository, catalog, clock):
    """Order ledger over the in-memory repository, with a delivery fee of 1.00."""
    return OrderLedger(repository, catalog, fee_per_pharmacy=1.0, clock=clock)


@pytest.fixture
def review_queue(ledger, pool_events):
    return ReviewQueue(ledger, events=pool_events)


@pytest.fixture
def board(ledger, pool_events, alert_center):
    return DispatchBoard(ledger, events=pool_events, alerts=alert_center)


def delivery_line(medicine_id="1", pharmacy_id="1", quantity=1):
    return CartLine(
        medicine_id=medicine_id,
        pharmacy_id=pharmacy_id,
        quantity=quantity,
        fulfillment_mode=FulfillmentMode.DELIVERY,
    )


def pickup_line(medicine_id="1", pharmacy_id="1", quantity=1):
    return CartLine(
        medicine_id=medicine_id,
        pharmacy_id=pharmacy_id,
        quantity=quantity,
        fulfillment_mode=FulfillmentMode.PICKUP,
    )


DELIVERY_DETAILS = FulfillmentDetails(
    dropoff_address="Hamra Street 12, Beirut",
    customer_name="Rana Haddad",
    customer_phone="+96170000000",
)


@pytest.fixture
def make_order(ledger, clock):
    """Factory creating orders one minute apart; a single delivery line by default."""
    async def _make_order(cart=None, details=None, **kwargs):
        clock.advance(minutes=1)
        return await ledger.create_order(
            cart or [delivery_line(quantity=2)],
            details or DELIVERY_DETAILS,
            **kwargs,
        )
    return _make_order


@pytest.fixture
def make_ready_delivery(make_order, review_queue):
    """Factory returning a delivery order that is ready and waiting in the pool."""
    async def _make_ready_delivery(**kwargs):
        order = await make_order(**kwargs)
        await review_queue.accept(order.order_id)
        await review_queue.mark_preparing(order.order_id)
        return await review_queue.mark_ready(order.order_id)
    return _make_ready_delivery


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def test_db(test_db_engine):
    """Create test database session."""
    async_session = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def test_client(test_catalog_path):
    """Create FastAPI test client with fresh in-memory state."""
    repository = InMemoryOrderRepository()
    catalog = InMemoryCatalogProvider(catalog_file=str(test_catalog_path))
    read_tracker = ReadTracker()
    events = PoolEventBus()
    alerts = AlertCenter()
    claim_lock = asyncio.Lock()

    async def _override_get_order_repository():
        yield repository

    # Override dependencies
    app.dependency_overrides[dependencies.get_order_repository] = _override_get_order_repository
    app.dependency_overrides[dependencies.get_catalog] = lambda: catalog
    app.dependency_overrides[dependencies.get_read_tracker] = lambda: read_tracker
    app.dependency_overrides[dependencies.get_pool_events] = lambda: events
    app.dependency_overrides[dependencies.get_alert_center] = lambda: alerts
    app.dependency_overrides[dependencies.get_claim_lock] = lambda: claim_lock

    client = TestClient(app)

    yield client

    # Clear overrides
    app.dependency_overrides.clear()
