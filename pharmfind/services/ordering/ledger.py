"""Order ledger: the single source of truth for orders."""
import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Set

from pharmfind.services.catalog.base import CatalogProvider
from pharmfind.services.ordering.errors import (
    ConcurrentUpdateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from pharmfind.services.ordering.models import (
    CartLine,
    FulfillmentDetails,
    Order,
    StatusEntry,
    new_order_id,
    utc_now,
)
from pharmfind.services.ordering.pricing import compute_pricing
from pharmfind.services.ordering.stages import OrderStatus
from pharmfind.services.ordering.transitions import check_order_transition
from pharmfind.services.ordering.validator import OrderValidator
from pharmfind.services.persistence.base import OrderPredicate, OrderRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Statuses that carry delivery-leg or prescription side effects. Only the
# review queue and dispatch board move an order into them.
WORKFLOW_STATUSES = {
    OrderStatus.CONFIRMED: "the review queue",
    OrderStatus.REJECTED: "the review queue",
    OrderStatus.OUT_FOR_DELIVERY: "its delivery",
    OrderStatus.DELIVERED: "its delivery",
}


class ReadTracker:
    """Tracks which orders the patient has seen since their last change."""

    def __init__(self):
        self._read: Set[str] = set()

    def mark_read(self, order_id: str) -> None:
        self._read.add(order_id)

    def mark_unread(self, order_id: str) -> None:
        self._read.discard(order_id)

    def is_read(self, order_id: str) -> bool:
        return order_id in self._read


class OrderLedger:
    """
    Creates orders and moves them through their status machine.

    Mutations follow one pattern: read the order, change it in memory with
    apply_status/apply_note, then save() it with the version that was read.
    The review queue and dispatch board use the same primitives so that a
    single operation always ends in a single conditional write.
    """

    def __init__(
        self,
        repository: OrderRepository,
        catalog: CatalogProvider,
        fee_per_pharmacy: float = 1.0,
        read_tracker: Optional[ReadTracker] = None,
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.catalog = catalog
        self.fee_per_pharmacy = fee_per_pharmacy
        self.read_tracker = read_tracker or ReadTracker()
        self.clock = clock
        self.validator = OrderValidator(catalog)

    def now(self) -> datetime:
        """Current time from the ledger's clock."""
        return self.clock()

    async def create_order(
        self,
        cart: List[CartLine],
        details: Optional[FulfillmentDetails] = None,
        client_total: Optional[float] = None,
    ) -> Order:
        """
        Validate a cart, price it and persist a new pending order.

        Args:
            cart: Lines submitted by checkout
            details: Fulfillment details (address, schedule, payment method)
            client_total: Total the client displayed; only compared, never used

        Returns:
            The persisted order

        Raises:
            ValidationError: if any line cannot be resolved or details are incomplete
        """
        details = details or FulfillmentDetails()
        now = self.now()

        lines, errors = await self.validator.resolve_cart(cart)
        errors.extend(self.validator.check_details(lines, details, now))
        if errors:
            logger.info(f"[LEDGER] Checkout rejected with {len(errors)} error(s): {errors}")
            raise ValidationError("Order could not be created", errors=errors)

        pricing = compute_pricing(lines, self.fee_per_pharmacy)
        if client_total is not None and round(client_total, 2) != pricing.total:
            logger.warning(
                f"[LEDGER] Client total {client_total:.2f} differs from computed "
                f"{pricing.total:.2f}; using computed total"
            )

        order = Order(
            order_id=new_order_id(),
            items=lines,
            details=details,
            prescription_ref=details.prescription_ref,
            pricing=pricing,
            status=OrderStatus.PENDING,
            status_history=[StatusEntry(status=OrderStatus.PENDING, timestamp=now)],
            created_at=now,
            updated_at=now,
        )
        await self.repository.put(order)
        self.read_tracker.mark_unread(order.order_id)
        logger.info(
            f"[LEDGER] Created {order.order_id} - {len(lines)} items, "
            f"total {pricing.total:.2f}, prescription required: {order.requires_prescription}"
        )
        return order

    async def get_order(self, order_id: str) -> Order:
        """Get an order, raising NotFoundError if it does not exist."""
        order = await self.repository.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def list_orders(self, statuses: Optional[Iterable[OrderStatus]] = None) -> List[Order]:
        """List orders, newest first, optionally restricted to some statuses."""
        if statuses is None:
            return await self.repository.list_where(lambda order: True)
        wanted = {OrderStatus(status) for status in statuses}
        return await self.repository.list_where(lambda order: order.status in wanted)

    async def list_where(self, predicate: OrderPredicate) -> List[Order]:
        """List orders matching a predicate, newest first."""
        return await self.repository.list_where(predicate)

    def _next_timestamp(self, order: Order) -> datetime:
        # History timestamps never go backwards, even if the clock does
        return max(self.now(), order.last_timestamp)

    def apply_status(self, order: Order, new_status: OrderStatus, note: Optional[str] = None) -> None:
        """Move an in-memory order to new_status, appending to its history."""
        new_status = OrderStatus(new_status)
        check_order_transition(order, new_status)
        order.status = new_status
        order.status_history.append(
            StatusEntry(status=new_status, timestamp=self._next_timestamp(order), note=note)
        )

    def apply_note(self, order: Order, note: str) -> None:
        """Append a history entry that keeps the current status."""
        order.status_history.append(
            StatusEntry(status=order.status, timestamp=self._next_timestamp(order), note=note)
        )

    async def save(self, order: Order, expected_version: int) -> Order:
        """
        Write an order back if nobody changed it since it was read.

        Raises:
            ConcurrentUpdateError: if the stored version moved on
        """
        order.version = expected_version + 1
        order.updated_at = order.last_timestamp
        if not await self.repository.compare_and_swap(order, expected_version):
            raise ConcurrentUpdateError(
                f"Order {order.order_id} was modified concurrently; reload and retry"
            )
        self.read_tracker.mark_unread(order.order_id)
        return order

    async def append_status(
        self, order_id: str, new_status: OrderStatus, note: Optional[str] = None
    ) -> Order:
        """
        Move an order to its next status.

        Confirmation, rejection and the delivery statuses are refused here;
        ReviewQueue and DispatchBoard set those together with the delivery leg.

        Raises:
            NotFoundError: if the order does not exist
            InvalidTransitionError: if new_status is not a legal successor or
                belongs to the review or delivery workflow
        """
        new_status = OrderStatus(new_status)
        order = await self.get_order(order_id)
        if new_status in WORKFLOW_STATUSES:
            raise InvalidTransitionError(
                f"Order {order_id} moves to '{new_status.value}' through "
                f"{WORKFLOW_STATUSES[new_status]}"
            )
        expected_version = order.version
        old_status = order.status
        self.apply_status(order, new_status, note)
        await self.save(order, expected_version)
        logger.info(f"[LEDGER] {order_id}: {old_status.value} -> {order.status.value}")
        return order

    async def annotate(self, order_id: str, note: str) -> Order:
        """Add a note to an order's history without changing its status."""
        if not note or not note.strip():
            raise ValidationError("Note must not be empty")
        order = await self.get_order(order_id)
        expected_version = order.version
        self.apply_note(order, note.strip())
        return await self.save(order, expected_version)

    async def attach_prescription(self, order_id: str, prescription_ref: str) -> Order:
        """Store the reference of an uploaded prescription on an order under review."""
        if not prescription_ref or not prescription_ref.strip():
            raise ValidationError("Prescription reference must not be empty")
        order = await self.get_order(order_id)
        if order.status not in (OrderStatus.PENDING, OrderStatus.REVIEWING):
            raise InvalidTransitionError(
                f"Cannot attach a prescription to order {order_id} in status '{order.status.value}'"
            )
        expected_version = order.version
        order.prescription_ref = prescription_ref.strip()
        self.apply_note(order, "Prescription attached")
        await self.save(order, expected_version)
        logger.info(f"[LEDGER] Prescription attached to {order_id}")
        return order

    async def mark_read(self, order_id: str) -> None:
        """Mark an order as seen by the patient."""
        await self.get_order(order_id)
        self.read_tracker.mark_read(order_id)

    async def is_unread(self, order_id: str) -> bool:
        """True if the order changed since the patient last looked at it."""
        await self.get_order(order_id)
        return not self.read_tracker.is_read(order_id)

    async def unread_count(self) -> int:
        """Number of orders the patient has not seen since their last change."""
        orders = await self.repository.list_where(lambda order: True)
        return sum(1 for order in orders if not self.read_tracker.is_read(order.order_id))
