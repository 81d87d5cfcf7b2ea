"""FastAPI dependencies."""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import Depends

from pharmfind.core.config import settings
from pharmfind.db.database import AsyncSessionLocal
from pharmfind.services.catalog.base import CatalogProvider
from pharmfind.services.catalog.in_memory_catalog import InMemoryCatalogProvider
from pharmfind.services.dispatch.board import DispatchBoard
from pharmfind.services.dispatch.models import DeliveryClaim
from pharmfind.services.ordering.ledger import OrderLedger, ReadTracker
from pharmfind.services.persistence.base import OrderRepository
from pharmfind.services.persistence.in_memory import InMemoryOrderRepository
from pharmfind.services.persistence.json_file import JsonFileOrderRepository
from pharmfind.services.persistence.orders import SqlOrderRepository
from pharmfind.services.review.queue import ReviewQueue
from pharmfind.services.sync.alerts import AlertCenter
from pharmfind.services.sync.events import PoolEventBus

# Process-wide singletons
_shared_repository: Optional[OrderRepository] = None
_catalog: Optional[CatalogProvider] = None
_claim_lock: Optional[asyncio.Lock] = None
_read_tracker = ReadTracker()
_pool_events = PoolEventBus()
_alert_center = AlertCenter()


def _get_shared_repository() -> OrderRepository:
    """Repository shared by every request for the memory and json stores."""
    global _shared_repository
    if _shared_repository is None:
        if settings.order_store == "json":
            _shared_repository = JsonFileOrderRepository(settings.order_store_path)
        else:
            _shared_repository = InMemoryOrderRepository()
    return _shared_repository


@asynccontextmanager
async def order_repository_scope() -> AsyncIterator[OrderRepository]:
    """Repository for one unit of work; sql stores get their own session."""
    if settings.order_store == "sql":
        async with AsyncSessionLocal() as session:
            yield SqlOrderRepository(session)
    else:
        yield _get_shared_repository()


async def get_order_repository() -> AsyncIterator[OrderRepository]:
    """Get order repository instance."""
    async with order_repository_scope() as repository:
        yield repository


def get_catalog() -> CatalogProvider:
    """Get catalogue provider instance."""
    global _catalog
    if _catalog is None:
        _catalog = InMemoryCatalogProvider(catalog_file=settings.catalog_file)
    return _catalog


def get_read_tracker() -> ReadTracker:
    return _read_tracker


def get_pool_events() -> PoolEventBus:
    return _pool_events


def get_alert_center() -> AlertCenter:
    return _alert_center


def get_claim_lock() -> asyncio.Lock:
    """Lock serialising claims across requests."""
    global _claim_lock
    if _claim_lock is None:
        _claim_lock = asyncio.Lock()
    return _claim_lock


def get_ledger(
    repository: OrderRepository = Depends(get_order_repository),
    catalog: CatalogProvider = Depends(get_catalog),
    read_tracker: ReadTracker = Depends(get_read_tracker),
) -> OrderLedger:
    """Get order ledger instance."""
    return OrderLedger(
        repository,
        catalog,
        fee_per_pharmacy=settings.delivery_fee_per_pharmacy,
        read_tracker=read_tracker,
    )


def get_review_queue(
    ledger: OrderLedger = Depends(get_ledger),
    events: PoolEventBus = Depends(get_pool_events),
) -> ReviewQueue:
    """Get pharmacist review queue instance."""
    return ReviewQueue(ledger, events=events, min_reason_length=settings.min_rejection_reason_length)


def get_dispatch_board(
    ledger: OrderLedger = Depends(get_ledger),
    events: PoolEventBus = Depends(get_pool_events),
    alerts: AlertCenter = Depends(get_alert_center),
    claim_lock: asyncio.Lock = Depends(get_claim_lock),
) -> DispatchBoard:
    """Get driver dispatch board instance."""
    return DispatchBoard(ledger, events=events, alerts=alerts, claim_lock=claim_lock)


async def fetch_available_pool() -> List[DeliveryClaim]:
    """Current dispatch pool, for the background poller."""
    async with order_repository_scope() as repository:
        ledger = OrderLedger(repository, get_catalog(), read_tracker=_read_tracker)
        return await DispatchBoard(ledger).list_available()
