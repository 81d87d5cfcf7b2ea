"""Order repository interface."""
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from pharmfind.services.ordering.models import Order

OrderPredicate = Callable[[Order], bool]


class OrderRepository(ABC):
    """Abstract base class for order stores.

    Implementations hand out copies: mutating a returned order never changes
    the stored one until it is written back.
    """

    @abstractmethod
    async def get(self, order_id: str) -> Optional[Order]:
        """Get an order by id."""
        pass

    @abstractmethod
    async def put(self, order: Order) -> None:
        """Store an order unconditionally (used when the order is created)."""
        pass

    @abstractmethod
    async def list_where(self, predicate: OrderPredicate) -> List[Order]:
        """List orders matching a predicate, newest first."""
        pass

    @abstractmethod
    async def compare_and_swap(self, order: Order, expected_version: int) -> bool:
        """
        Replace the stored order only if its version still equals expected_version.

        Returns:
            True if the write happened, False if another writer got there first
        """
        pass
