"""Pharmacist review queue."""
import logging
from typing import Iterable, List, Optional

from pharmfind.services.ordering.errors import (
    InvalidTransitionError,
    PrescriptionMissingError,
    ValidationError,
)
from pharmfind.services.ordering.ledger import OrderLedger
from pharmfind.services.ordering.models import DeliveryLeg, Order, delivery_id_for
from pharmfind.services.ordering.stages import DeliveryStatus, OrderStatus
from pharmfind.services.ordering.transitions import TERMINAL_ORDER_STATUSES, check_order_transition
from pharmfind.services.review.models import ReviewItem, build_review_item
from pharmfind.services.sync.events import PoolEventBus

logger = logging.getLogger(__name__)


class ReviewQueue:
    """Orders waiting for pharmacist action, and the actions themselves."""

    def __init__(
        self,
        ledger: OrderLedger,
        events: Optional[PoolEventBus] = None,
        min_reason_length: int = 10,
    ):
        self.ledger = ledger
        self.events = events
        self.min_reason_length = min_reason_length

    async def list_by_status(self, statuses: Iterable[OrderStatus]) -> List[ReviewItem]:
        """Orders in any of the given statuses, newest first."""
        orders = await self.ledger.list_orders(statuses)
        return [build_review_item(order) for order in orders]

    async def pending_count(self) -> int:
        """Number of orders nobody has looked at yet."""
        return len(await self.ledger.list_orders([OrderStatus.PENDING]))

    async def start_review(self, order_id: str) -> Order:
        """Mark a pending order as being reviewed."""
        return await self.ledger.append_status(order_id, OrderStatus.REVIEWING, "Review started")

    async def accept(self, order_id: str) -> Order:
        """
        Confirm an order.

        Orders with delivery lines enter the dispatch pool in the same write.

        Raises:
            InvalidTransitionError: if the order is not pending or under review
            PrescriptionMissingError: if a required prescription is not attached
        """
        order = await self.ledger.get_order(order_id)
        check_order_transition(order, OrderStatus.CONFIRMED)
        if order.requires_prescription and not order.prescription_ref:
            logger.info(f"[REVIEW] Accept blocked for {order_id}: prescription missing")
            raise PrescriptionMissingError(
                f"Order {order_id} contains prescription-only medicine; attach a prescription first"
            )

        expected_version = order.version
        self.ledger.apply_status(order, OrderStatus.CONFIRMED, "Accepted by pharmacist")
        if order.has_delivery:
            order.delivery = DeliveryLeg(
                delivery_id=delivery_id_for(order.order_id),
                opened_at=order.last_timestamp,
            )
        await self.ledger.save(order, expected_version)

        logger.info(f"[REVIEW] Accepted {order_id} (delivery: {order.has_delivery})")
        if order.delivery is not None and self.events is not None:
            self.events.emit("added", order.delivery.delivery_id, order.order_id)
        return order

    async def reject(self, order_id: str, reason: str) -> Order:
        """
        Reject an order with a written reason.

        Raises:
            ValidationError: if the reason is shorter than the minimum length
            InvalidTransitionError: if the order is past review
        """
        reason = (reason or "").strip()
        if len(reason) < self.min_reason_length:
            raise ValidationError(
                f"Rejection reason must be at least {self.min_reason_length} characters"
            )

        order = await self.ledger.get_order(order_id)
        expected_version = order.version
        self.ledger.apply_status(order, OrderStatus.REJECTED, reason)
        order.rejection_reason = reason
        await self.ledger.save(order, expected_version)

        logger.info(f"[REVIEW] Rejected {order_id}: {reason}")
        return order

    async def mark_preparing(self, order_id: str) -> Order:
        """Pharmacy started preparing the order."""
        return await self.ledger.append_status(order_id, OrderStatus.PREPARING)

    async def mark_ready(self, order_id: str) -> Order:
        """Order is packed and waiting for the patient or a driver."""
        return await self.ledger.append_status(order_id, OrderStatus.READY)

    async def complete_pickup(self, order_id: str) -> Order:
        """Patient collected a pickup-only order."""
        return await self.ledger.append_status(
            order_id, OrderStatus.COMPLETED, "Collected by patient"
        )

    async def list_failed_deliveries(self) -> List[ReviewItem]:
        """Orders whose current delivery attempt failed and await a decision."""
        orders = await self.ledger.list_where(
            lambda o: o.delivery is not None and o.delivery.status == DeliveryStatus.FAILED
        )
        return [build_review_item(order) for order in orders]

    async def redispatch(self, order_id: str) -> Order:
        """
        Put an order whose delivery failed back into the dispatch pool.

        The failed leg is archived and a new available leg is opened under the
        same delivery id.
        """
        order = await self.ledger.get_order(order_id)
        failed = order.delivery
        if failed is None or failed.status != DeliveryStatus.FAILED:
            raise InvalidTransitionError(f"Order {order_id} has no failed delivery to re-dispatch")
        if order.status in TERMINAL_ORDER_STATUSES:
            raise InvalidTransitionError(
                f"Order {order_id} is '{order.status.value}' and cannot be re-dispatched"
            )

        expected_version = order.version
        order.delivery_attempts.append(failed)
        self.ledger.apply_note(order, f"Re-dispatched after failed attempt {failed.attempt}")
        order.delivery = DeliveryLeg(
            delivery_id=failed.delivery_id,
            attempt=failed.attempt + 1,
            opened_at=order.last_timestamp,
        )
        order.assigned_driver_id = None
        await self.ledger.save(order, expected_version)

        logger.info(f"[REVIEW] Re-dispatched {order_id} (attempt {order.delivery.attempt})")
        if self.events is not None:
            self.events.emit("added", order.delivery.delivery_id, order.order_id)
        return order
