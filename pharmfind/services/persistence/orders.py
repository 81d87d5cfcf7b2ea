"""Relational order repository."""
import logging
from typing import List, Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pharmfind.db.models import OrderRecord
from pharmfind.services.ordering.models import Order
from pharmfind.services.persistence.base import OrderPredicate, OrderRepository

logger = logging.getLogger(__name__)


class SqlOrderRepository(OrderRepository):
    """Order repository storing each order as a JSON payload row."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _to_order(record: OrderRecord) -> Order:
        return Order.model_validate(record.payload)

    async def get(self, order_id: str) -> Optional[Order]:
        """Get order by id."""
        result = await self.db.execute(
            select(OrderRecord)
            .where(OrderRecord.id == order_id)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        return self._to_order(record) if record else None

    async def put(self, order: Order) -> None:
        """Insert or overwrite an order."""
        record = await self.db.get(OrderRecord, order.order_id)
        if record is None:
            record = OrderRecord(id=order.order_id, created_at=order.created_at)
            self.db.add(record)
        record.status = order.status.value
        record.version = order.version
        record.payload = order.model_dump(mode="json")
        record.updated_at = order.updated_at
        await self.db.commit()

    async def list_where(self, predicate: OrderPredicate) -> List[Order]:
        """List orders matching a predicate, newest first."""
        result = await self.db.execute(
            select(OrderRecord)
            .order_by(OrderRecord.created_at.desc())
            .execution_options(populate_existing=True)
        )
        orders = [self._to_order(record) for record in result.scalars().all()]
        return [order for order in orders if predicate(order)]

    async def compare_and_swap(self, order: Order, expected_version: int) -> bool:
        """Conditional UPDATE keyed on the stored version."""
        result = await self.db.execute(
            update(OrderRecord)
            .where(OrderRecord.id == order.order_id)
            .where(OrderRecord.version == expected_version)
            .values(
                status=order.status.value,
                version=order.version,
                payload=order.model_dump(mode="json"),
                updated_at=order.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        swapped = result.rowcount == 1
        if not swapped:
            logger.info(
                f"[SQL STORE] Version check failed for {order.order_id} "
                f"(expected {expected_version})"
            )
        return swapped
