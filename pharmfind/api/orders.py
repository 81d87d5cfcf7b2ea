"""Patient order endpoints."""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from pharmfind.core.dependencies import get_ledger, get_review_queue
from pharmfind.services.ordering.ledger import OrderLedger
from pharmfind.services.ordering.models import CartLine, FulfillmentDetails, Order
from pharmfind.services.ordering.stages import OrderStatus
from pharmfind.services.review.queue import ReviewQueue


router = APIRouter()
logger = logging.getLogger(__name__)


class CheckoutRequest(BaseModel):
    """Checkout request model."""
    items: List[CartLine]
    details: FulfillmentDetails = FulfillmentDetails()
    expected_total: Optional[float] = None


class StatusUpdateRequest(BaseModel):
    """Status update request model."""
    status: OrderStatus
    note: Optional[str] = None


class PrescriptionRequest(BaseModel):
    """Prescription attachment request model."""
    prescription_ref: str


class UnreadResponse(BaseModel):
    """Unread state response model."""
    order_id: Optional[str] = None
    unread: Optional[bool] = None
    count: Optional[int] = None


@router.post("/api/orders", response_model=Order, status_code=201)
async def create_order(
    request: Request,
    checkout: CheckoutRequest,
    ledger: OrderLedger = Depends(get_ledger),
):
    """Place an order from the checkout cart."""
    logger.info(
        f"[ORDERS] Checkout received - {len(checkout.items)} items, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )
    return await ledger.create_order(
        checkout.items, checkout.details, client_total=checkout.expected_total
    )


@router.get("/api/orders", response_model=List[Order])
async def list_orders(
    status: Optional[List[OrderStatus]] = Query(None),
    ledger: OrderLedger = Depends(get_ledger),
):
    """List orders, newest first."""
    orders = await ledger.list_orders(status)
    logger.debug(f"[ORDERS] Listing {len(orders)} orders (filter: {status})")
    return orders


@router.get("/api/orders/unread/count", response_model=UnreadResponse)
async def unread_count(ledger: OrderLedger = Depends(get_ledger)):
    """Number of orders with changes the patient has not seen."""
    return UnreadResponse(count=await ledger.unread_count())


@router.get("/api/orders/{order_id}", response_model=Order)
async def get_order(order_id: str, ledger: OrderLedger = Depends(get_ledger)):
    """Get a single order with its status history."""
    return await ledger.get_order(order_id)


@router.post("/api/orders/{order_id}/status", response_model=Order)
async def update_status(
    order_id: str,
    update: StatusUpdateRequest,
    queue: ReviewQueue = Depends(get_review_queue),
):
    """
    Move an order to its next status.

    Pharmacy statuses go through the review queue so that prescription checks
    and dispatch pool entry apply; delivery statuses are driven by the driver.
    """
    logger.info(f"[ORDERS] Status update requested - {order_id} -> {update.status.value}")
    if update.status == OrderStatus.REVIEWING:
        return await queue.start_review(order_id)
    if update.status == OrderStatus.CONFIRMED:
        return await queue.accept(order_id)
    if update.status == OrderStatus.REJECTED:
        return await queue.reject(order_id, update.note or "")
    return await queue.ledger.append_status(order_id, update.status, update.note)


@router.post("/api/orders/{order_id}/prescription", response_model=Order)
async def attach_prescription(
    order_id: str,
    body: PrescriptionRequest,
    ledger: OrderLedger = Depends(get_ledger),
):
    """Attach an uploaded prescription reference to an order."""
    return await ledger.attach_prescription(order_id, body.prescription_ref)


@router.post("/api/orders/{order_id}/read", response_model=UnreadResponse)
async def mark_read(order_id: str, ledger: OrderLedger = Depends(get_ledger)):
    """Mark an order as seen by the patient."""
    await ledger.mark_read(order_id)
    return UnreadResponse(order_id=order_id, unread=await ledger.is_unread(order_id))
