"""Checkout validation service."""
from datetime import datetime, timezone
from typing import List, Tuple

from pharmfind.services.catalog.base import CatalogProvider
from pharmfind.services.ordering.models import CartLine, FulfillmentDetails, OrderLine
from pharmfind.services.ordering.stages import FulfillmentMode


def _as_utc(value: datetime) -> datetime:
    # Naive times from the checkout form are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class OrderValidator:
    """Service for validating checkout input against the catalogue."""

    def __init__(self, catalog: CatalogProvider):
        self.catalog = catalog

    async def resolve_line(self, line: CartLine) -> Tuple[OrderLine | None, List[str]]:
        """
        Resolve a cart line into an order line.

        Returns:
            Tuple of (resolved line or None, list of error messages)
        """
        errors = []

        medicine = await self.catalog.resolve_medicine(line.medicine_id)
        if medicine is None:
            errors.append(f"Unknown medicine '{line.medicine_id}'")

        pharmacy = await self.catalog.resolve_pharmacy(line.pharmacy_id)
        if pharmacy is None:
            errors.append(f"Unknown pharmacy '{line.pharmacy_id}'")

        if medicine is None or pharmacy is None:
            return None, errors

        unit_price = pharmacy.price_of(medicine.id)
        if unit_price is None:
            return None, [f"{pharmacy.name} does not stock {medicine.name}"]

        return (
            OrderLine(
                medicine_id=medicine.id,
                medicine_name=medicine.name,
                pharmacy_id=pharmacy.id,
                pharmacy_name=pharmacy.name,
                pharmacy_address=pharmacy.address,
                quantity=line.quantity,
                unit_price=unit_price,
                fulfillment_mode=line.fulfillment_mode,
                requires_prescription=medicine.requires_prescription,
            ),
            [],
        )

    async def resolve_cart(self, cart: List[CartLine]) -> Tuple[List[OrderLine], List[str]]:
        """
        Resolve every cart line, collecting all problems instead of stopping at the first.

        Returns:
            Tuple of (resolved lines, list of error messages)
        """
        if not cart:
            return [], ["Cart is empty"]

        lines = []
        errors = []
        for index, cart_line in enumerate(cart, start=1):
            line, line_errors = await self.resolve_line(cart_line)
            if line is not None:
                lines.append(line)
            errors.extend(f"Item {index}: {message}" for message in line_errors)
        return lines, errors

    @staticmethod
    def check_details(
        lines: List[OrderLine], details: FulfillmentDetails, now: datetime
    ) -> List[str]:
        """Check checkout details against the fulfillment modes in the cart."""
        errors = []
        has_delivery = any(line.fulfillment_mode == FulfillmentMode.DELIVERY for line in lines)
        if has_delivery:
            if not (details.dropoff_address or "").strip():
                errors.append("A delivery address is required for delivery items")
            schedule = details.delivery_schedule
            if schedule.mode == "scheduled":
                if schedule.scheduled_at is None:
                    errors.append("Scheduled delivery requires a delivery time")
                elif _as_utc(schedule.scheduled_at) <= now:
                    errors.append("Scheduled delivery time must be in the future")
        return errors
