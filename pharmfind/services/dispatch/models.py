"""Driver-facing projections."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from pharmfind.services.ordering.models import DeliveryLeg, Order
from pharmfind.services.ordering.stages import DeliveryStatus, OrderStatus


class DeliveryClaim(BaseModel):
    """A delivery as the driver sees it, computed from the order."""

    delivery_id: str
    order_id: str
    status: DeliveryStatus
    order_status: OrderStatus
    attempt: int
    driver_id: Optional[str] = None
    pickup_locations: List[str]
    dropoff_location: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    item_count: int
    delivery_fee: float
    order_total: float
    notes: Optional[str] = None
    opened_at: datetime
    assigned_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    in_transit_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None


class DriverStats(BaseModel):
    """Dashboard figures for one driver."""

    driver_id: str
    today_deliveries: int
    today_earnings: float
    available_orders: int
    active_delivery_id: Optional[str] = None
    total_deliveries: int
    success_rate: float  # percent of finished deliveries that were delivered


def build_claim(order: Order, leg: Optional[DeliveryLeg] = None) -> DeliveryClaim:
    """Project an order's delivery leg (the current one by default) into a claim."""
    leg = leg or order.delivery
    if leg is None:
        raise ValueError(f"Order {order.order_id} has no delivery leg")

    pickup_locations: List[str] = []
    for line in order.delivery_lines:
        if line.pharmacy_address not in pickup_locations:
            pickup_locations.append(line.pharmacy_address)

    return DeliveryClaim(
        delivery_id=leg.delivery_id,
        order_id=order.order_id,
        status=leg.status,
        order_status=order.status,
        attempt=leg.attempt,
        driver_id=leg.driver_id,
        pickup_locations=pickup_locations,
        dropoff_location=order.details.dropoff_address,
        customer_name=order.details.customer_name,
        customer_phone=order.details.customer_phone,
        item_count=sum(line.quantity for line in order.delivery_lines),
        delivery_fee=order.pricing.delivery_fees,
        order_total=order.pricing.total,
        notes=order.details.notes,
        opened_at=leg.opened_at,
        assigned_at=leg.assigned_at,
        picked_up_at=leg.picked_up_at,
        in_transit_at=leg.in_transit_at,
        delivered_at=leg.delivered_at,
        failed_at=leg.failed_at,
        failure_reason=leg.failure_reason,
    )
