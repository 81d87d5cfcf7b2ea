"""Status transition tables for orders and deliveries."""
import logging
from typing import Dict, Set, TYPE_CHECKING

from pharmfind.services.ordering.errors import InvalidTransitionError
from pharmfind.services.ordering.stages import DeliveryStatus, OrderStatus

if TYPE_CHECKING:
    from pharmfind.services.ordering.models import Order

logger = logging.getLogger(__name__)


ORDER_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.REVIEWING, OrderStatus.CONFIRMED, OrderStatus.REJECTED},
    OrderStatus.REVIEWING: {OrderStatus.CONFIRMED, OrderStatus.REJECTED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING},
    OrderStatus.PREPARING: {OrderStatus.READY},
    OrderStatus.READY: {OrderStatus.COMPLETED, OrderStatus.OUT_FOR_DELIVERY},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # terminal
    OrderStatus.COMPLETED: set(),  # terminal
    OrderStatus.REJECTED: set(),  # terminal
}

TERMINAL_ORDER_STATUSES = frozenset(
    status for status, successors in ORDER_TRANSITIONS.items() if not successors
)

DELIVERY_TRANSITIONS: Dict[DeliveryStatus, Set[DeliveryStatus]] = {
    DeliveryStatus.AVAILABLE: {DeliveryStatus.ASSIGNED},
    DeliveryStatus.ASSIGNED: {DeliveryStatus.PICKED_UP, DeliveryStatus.FAILED},
    DeliveryStatus.PICKED_UP: {DeliveryStatus.IN_TRANSIT, DeliveryStatus.FAILED},
    DeliveryStatus.IN_TRANSIT: {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED},
    DeliveryStatus.DELIVERED: set(),  # terminal
    DeliveryStatus.FAILED: set(),  # terminal
}

TERMINAL_DELIVERY_STATUSES = frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.FAILED})

# A driver holding a claim in one of these is busy
ACTIVE_DELIVERY_STATUSES = frozenset(
    {DeliveryStatus.ASSIGNED, DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT}
)


def order_successors(order: "Order") -> Set[OrderStatus]:
    """Legal next statuses for an order, taking its fulfillment mode into account."""
    successors = set(ORDER_TRANSITIONS[order.status])
    if order.status == OrderStatus.READY:
        if order.has_delivery:
            successors.discard(OrderStatus.COMPLETED)
        else:
            successors.discard(OrderStatus.OUT_FOR_DELIVERY)
    return successors


def check_order_transition(order: "Order", new_status: OrderStatus) -> None:
    """Raise InvalidTransitionError unless new_status may follow the order's status."""
    if new_status not in order_successors(order):
        logger.debug(
            f"[TRANSITION] Rejected {order.order_id}: {order.status.value} -> {new_status.value}"
        )
        raise InvalidTransitionError(
            f"Order {order.order_id} cannot move from "
            f"'{order.status.value}' to '{new_status.value}'"
        )


def check_delivery_transition(current: DeliveryStatus, new_status: DeliveryStatus) -> None:
    """Raise InvalidTransitionError unless new_status may follow current."""
    if new_status not in DELIVERY_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Delivery cannot move from '{current.value}' to '{new_status.value}'"
        )
