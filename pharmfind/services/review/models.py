"""Pharmacist-facing projections."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from pharmfind.services.ordering.models import Order, OrderLine
from pharmfind.services.ordering.stages import DeliveryStatus, OrderStatus


class ReviewItem(BaseModel):
    """An order as the pharmacist sees it, computed from the order."""

    order_id: str
    status: OrderStatus
    items: List[OrderLine]
    requires_prescription: bool
    prescription_ref: Optional[str] = None
    subtotal: float
    total: float
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    dropoff_location: Optional[str] = None
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    delivery_status: Optional[DeliveryStatus] = None
    delivery_failure_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


def build_review_item(order: Order) -> ReviewItem:
    """Project an order into the pharmacist's view."""
    return ReviewItem(
        order_id=order.order_id,
        status=order.status,
        items=order.items,
        requires_prescription=order.requires_prescription,
        prescription_ref=order.prescription_ref,
        subtotal=order.pricing.subtotal,
        total=order.pricing.total,
        customer_name=order.details.customer_name,
        customer_phone=order.details.customer_phone,
        dropoff_location=order.details.dropoff_address,
        notes=order.details.notes,
        rejection_reason=order.rejection_reason,
        delivery_status=order.delivery.status if order.delivery else None,
        delivery_failure_reason=order.delivery.failure_reason if order.delivery else None,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )
