"""Order and delivery status enumerations."""
from enum import Enum


class OrderStatus(str, Enum):
    """Statuses an order moves through."""

    PENDING = "pending"  # Placed by the patient, waiting for a pharmacist
    REVIEWING = "reviewing"  # Opened by a pharmacist
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"  # Ready for pickup by patient or driver
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    COMPLETED = "completed"  # Collected in store
    REJECTED = "rejected"

    def __str__(self) -> str:
        """Return the string value of the status."""
        return self.value


class DeliveryStatus(str, Enum):
    """Statuses of the delivery leg of an order."""

    AVAILABLE = "available"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"

    def __str__(self) -> str:
        """Return the string value of the status."""
        return self.value


class FulfillmentMode(str, Enum):
    """How a single order line reaches the patient."""

    DELIVERY = "delivery"
    PICKUP = "pickup"

    def __str__(self) -> str:
        """Return the string value of the mode."""
        return self.value
