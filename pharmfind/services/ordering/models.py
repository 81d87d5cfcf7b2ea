"""Order models."""
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from pharmfind.services.ordering.stages import DeliveryStatus, FulfillmentMode, OrderStatus

ORDER_ID_PREFIX = "ORD-"
DELIVERY_ID_PREFIX = "DEL-"


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


def new_order_id() -> str:
    """Generate a fresh order id."""
    return f"{ORDER_ID_PREFIX}{uuid4().hex[:12].upper()}"


def delivery_id_for(order_id: str) -> str:
    """Delivery id paired with an order id."""
    return DELIVERY_ID_PREFIX + order_id[len(ORDER_ID_PREFIX):]


def order_id_for(delivery_id: str) -> Optional[str]:
    """Order id paired with a delivery id, or None if the id is malformed."""
    if not delivery_id.startswith(DELIVERY_ID_PREFIX):
        return None
    return ORDER_ID_PREFIX + delivery_id[len(DELIVERY_ID_PREFIX):]


class CartLine(BaseModel):
    """Line submitted by the checkout flow. Prices are looked up, never taken from here."""

    medicine_id: str
    pharmacy_id: str
    quantity: int = Field(1, ge=1)
    fulfillment_mode: FulfillmentMode = FulfillmentMode.DELIVERY


class DeliverySchedule(BaseModel):
    """When the patient wants the delivery."""

    mode: Literal["now", "scheduled"] = "now"
    scheduled_at: Optional[datetime] = None


class FulfillmentDetails(BaseModel):
    """Checkout details that travel with the order."""

    dropoff_address: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    pickup_times: Dict[str, str] = {}  # pharmacy_id -> requested pickup time
    delivery_schedule: DeliverySchedule = DeliverySchedule()
    payment_method: str = "cash"
    notes: Optional[str] = None
    prescription_ref: Optional[str] = None


class OrderLine(BaseModel):
    """Resolved order line."""

    medicine_id: str
    medicine_name: str
    pharmacy_id: str
    pharmacy_name: str
    pharmacy_address: str
    quantity: int
    unit_price: float
    fulfillment_mode: FulfillmentMode
    requires_prescription: bool = False

    @property
    def line_total(self) -> float:
        """Price of the line."""
        return self.unit_price * self.quantity


class Pricing(BaseModel):
    """Server-computed order pricing."""

    subtotal: float
    delivery_fees: float
    total: float


class StatusEntry(BaseModel):
    """Single entry of the order's status history."""

    status: OrderStatus
    timestamp: datetime
    note: Optional[str] = None


class DeliveryLeg(BaseModel):
    """Stored state of an order's delivery leg."""

    delivery_id: str
    status: DeliveryStatus = DeliveryStatus.AVAILABLE
    attempt: int = 1
    driver_id: Optional[str] = None
    opened_at: datetime
    assigned_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    in_transit_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    @property
    def finished_at(self) -> Optional[datetime]:
        """When the leg reached a terminal status."""
        return self.delivered_at or self.failed_at


class Order(BaseModel):
    """Canonical order entity."""

    order_id: str
    items: List[OrderLine]
    details: FulfillmentDetails = FulfillmentDetails()
    prescription_ref: Optional[str] = None
    pricing: Pricing
    status: OrderStatus = OrderStatus.PENDING
    status_history: List[StatusEntry] = []
    assigned_driver_id: Optional[str] = None
    rejection_reason: Optional[str] = None
    delivery: Optional[DeliveryLeg] = None
    delivery_attempts: List[DeliveryLeg] = []  # archived failed legs
    version: int = 0
    created_at: datetime
    updated_at: datetime

    @property
    def requires_prescription(self) -> bool:
        """True if any line's medicine needs a prescription."""
        return any(line.requires_prescription for line in self.items)

    @property
    def delivery_lines(self) -> List[OrderLine]:
        """Lines that go out with a driver."""
        return [line for line in self.items if line.fulfillment_mode == FulfillmentMode.DELIVERY]

    @property
    def has_delivery(self) -> bool:
        """True if at least one line is delivered."""
        return bool(self.delivery_lines)

    @property
    def last_timestamp(self) -> datetime:
        """Timestamp of the latest history entry."""
        return self.status_history[-1].timestamp
