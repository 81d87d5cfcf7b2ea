"""Order pricing."""
from typing import Iterable

from pharmfind.services.ordering.models import OrderLine, Pricing
from pharmfind.services.ordering.stages import FulfillmentMode


def _money(amount: float) -> float:
    return round(amount, 2)


def compute_pricing(lines: Iterable[OrderLine], fee_per_pharmacy: float) -> Pricing:
    """
    Price an order from its resolved lines.

    Each distinct pharmacy supplying at least one delivery line adds one
    delivery fee; pickup lines add nothing.
    """
    lines = list(lines)
    subtotal = sum(line.line_total for line in lines)
    delivery_pharmacies = {
        line.pharmacy_id for line in lines if line.fulfillment_mode == FulfillmentMode.DELIVERY
    }
    delivery_fees = len(delivery_pharmacies) * fee_per_pharmacy
    return Pricing(
        subtotal=_money(subtotal),
        delivery_fees=_money(delivery_fees),
        total=_money(subtotal + delivery_fees),
    )
