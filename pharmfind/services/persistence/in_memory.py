"""In-memory order repository."""
import asyncio
from typing import Dict, List, Optional

from pharmfind.services.ordering.models import Order
from pharmfind.services.persistence.base import OrderPredicate, OrderRepository


class InMemoryOrderRepository(OrderRepository):
    """Order repository backed by a dict; the default single-process store."""

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._lock = asyncio.Lock()

    async def get(self, order_id: str) -> Optional[Order]:
        """Get an order by id."""
        order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    async def put(self, order: Order) -> None:
        """Store an order unconditionally."""
        async with self._lock:
            self._orders[order.order_id] = order.model_copy(deep=True)

    async def list_where(self, predicate: OrderPredicate) -> List[Order]:
        """List orders matching a predicate, newest first."""
        matches = [o.model_copy(deep=True) for o in self._orders.values() if predicate(o)]
        return sorted(matches, key=lambda o: o.created_at, reverse=True)

    async def compare_and_swap(self, order: Order, expected_version: int) -> bool:
        """Replace the stored order if its version is unchanged."""
        async with self._lock:
            current = self._orders.get(order.order_id)
            if current is None or current.version != expected_version:
                return False
            self._orders[order.order_id] = order.model_copy(deep=True)
            return True
