"""JSON file order repository."""
import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from pharmfind.services.ordering.models import Order
from pharmfind.services.persistence.base import OrderPredicate, OrderRepository

logger = logging.getLogger(__name__)


class JsonFileOrderRepository(OrderRepository):
    """Order repository persisted as a single JSON document."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._orders: Optional[Dict[str, Order]] = None
        self._lock = asyncio.Lock()

    def _load(self) -> Dict[str, Order]:
        """Load orders from disk on first use."""
        if self._orders is None:
            if self.path.exists():
                with open(self.path, "r") as f:
                    data = json.load(f)
                self._orders = {
                    raw["order_id"]: Order.model_validate(raw) for raw in data.get("orders", [])
                }
                logger.info(f"[JSON STORE] Loaded {len(self._orders)} orders from {self.path}")
            else:
                self._orders = {}
        return self._orders

    def _flush(self, orders: Dict[str, Order]) -> None:
        """Write orders to disk, replacing the file atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        payload = {"orders": [o.model_dump(mode="json") for o in orders.values()]}
        with open(tmp_path, "w") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, self.path)

    def _commit(self, order: Order) -> None:
        """Persist one order, updating memory only once the file is written."""
        staged = dict(self._load())
        staged[order.order_id] = order.model_copy(deep=True)
        self._flush(staged)
        self._orders = staged

    async def get(self, order_id: str) -> Optional[Order]:
        """Get an order by id."""
        order = self._load().get(order_id)
        return order.model_copy(deep=True) if order else None

    async def put(self, order: Order) -> None:
        """Store an order unconditionally."""
        async with self._lock:
            self._commit(order)

    async def list_where(self, predicate: OrderPredicate) -> List[Order]:
        """List orders matching a predicate, newest first."""
        matches = [o.model_copy(deep=True) for o in self._load().values() if predicate(o)]
        return sorted(matches, key=lambda o: o.created_at, reverse=True)

    async def compare_and_swap(self, order: Order, expected_version: int) -> bool:
        """Replace the stored order if its version is unchanged."""
        async with self._lock:
            current = self._load().get(order.order_id)
            if current is None or current.version != expected_version:
                return False
            self._commit(order)
            return True
