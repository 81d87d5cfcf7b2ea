"""Pharmacist review endpoints."""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from pharmfind.core.dependencies import get_alert_center, get_review_queue
from pharmfind.services.ordering.models import Order
from pharmfind.services.ordering.stages import OrderStatus
from pharmfind.services.review.models import ReviewItem
from pharmfind.services.review.queue import ReviewQueue
from pharmfind.services.sync.alerts import PHARMACISTS, Alert, AlertCenter


router = APIRouter(prefix="/api/pharmacist")
logger = logging.getLogger(__name__)

DEFAULT_QUEUE_STATUSES = [OrderStatus.PENDING, OrderStatus.REVIEWING]


class RejectRequest(BaseModel):
    """Rejection request model."""
    reason: str


class QueueSummary(BaseModel):
    """Pharmacist dashboard counters."""
    pending: int
    failed_deliveries: int


@router.get("/orders", response_model=List[ReviewItem])
async def list_orders(
    status: Optional[List[OrderStatus]] = Query(None),
    queue: ReviewQueue = Depends(get_review_queue),
):
    """Orders in the given statuses (pending and reviewing by default)."""
    return await queue.list_by_status(status or DEFAULT_QUEUE_STATUSES)


@router.get("/orders/failed", response_model=List[ReviewItem])
async def list_failed(queue: ReviewQueue = Depends(get_review_queue)):
    """Orders whose delivery failed and need re-dispatch."""
    return await queue.list_failed_deliveries()


@router.get("/summary", response_model=QueueSummary)
async def summary(queue: ReviewQueue = Depends(get_review_queue)):
    """Dashboard counters."""
    return QueueSummary(
        pending=await queue.pending_count(),
        failed_deliveries=len(await queue.list_failed_deliveries()),
    )


@router.get("/alerts", response_model=List[Alert])
async def alerts(alert_center: AlertCenter = Depends(get_alert_center)):
    """Alerts for pharmacists, newest first."""
    return alert_center.list_for(PHARMACISTS)


@router.post("/orders/{order_id}/review", response_model=Order)
async def start_review(order_id: str, queue: ReviewQueue = Depends(get_review_queue)):
    """Open a pending order for review."""
    return await queue.start_review(order_id)


@router.post("/orders/{order_id}/accept", response_model=Order)
async def accept(order_id: str, queue: ReviewQueue = Depends(get_review_queue)):
    """Accept an order."""
    logger.info(f"[PHARMACIST] Accept requested - {order_id}")
    return await queue.accept(order_id)


@router.post("/orders/{order_id}/reject", response_model=Order)
async def reject(
    order_id: str,
    body: RejectRequest,
    queue: ReviewQueue = Depends(get_review_queue),
):
    """Reject an order with a reason."""
    logger.info(f"[PHARMACIST] Reject requested - {order_id}")
    return await queue.reject(order_id, body.reason)


@router.post("/orders/{order_id}/preparing", response_model=Order)
async def mark_preparing(order_id: str, queue: ReviewQueue = Depends(get_review_queue)):
    return await queue.mark_preparing(order_id)


@router.post("/orders/{order_id}/ready", response_model=Order)
async def mark_ready(order_id: str, queue: ReviewQueue = Depends(get_review_queue)):
    return await queue.mark_ready(order_id)


@router.post("/orders/{order_id}/complete", response_model=Order)
async def complete_pickup(order_id: str, queue: ReviewQueue = Depends(get_review_queue)):
    """Hand a pickup order to the patient."""
    return await queue.complete_pickup(order_id)


@router.post("/orders/{order_id}/redispatch", response_model=Order)
async def redispatch(order_id: str, queue: ReviewQueue = Depends(get_review_queue)):
    """Return an order with a failed delivery to the dispatch pool."""
    logger.info(f"[PHARMACIST] Re-dispatch requested - {order_id}")
    return await queue.redispatch(order_id)
