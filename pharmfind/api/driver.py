"""Driver dispatch endpoints."""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from pharmfind.core.dependencies import get_alert_center, get_dispatch_board, get_pool_events
from pharmfind.services.dispatch.board import DispatchBoard
from pharmfind.services.dispatch.models import DeliveryClaim, DriverStats
from pharmfind.services.ordering.stages import DeliveryStatus
from pharmfind.services.sync.alerts import DRIVERS, Alert, AlertCenter
from pharmfind.services.sync.events import PoolEvent, PoolEventBus


router = APIRouter(prefix="/api/driver")
logger = logging.getLogger(__name__)


class ClaimRequest(BaseModel):
    """Claim request model."""
    driver_id: str


class AdvanceRequest(BaseModel):
    """Delivery progress request model."""
    driver_id: str
    status: DeliveryStatus


class FailRequest(BaseModel):
    """Delivery failure request model."""
    driver_id: str
    reason: str


@router.get("/deliveries/available", response_model=List[DeliveryClaim])
async def list_available(
    driver_id: Optional[str] = None,
    board: DispatchBoard = Depends(get_dispatch_board),
):
    """Deliveries waiting for a driver."""
    claims = await board.list_available(driver_id)
    logger.debug(f"[DRIVER] {len(claims)} deliveries available for {driver_id or 'anyone'}")
    return claims


@router.get("/deliveries/{delivery_id}", response_model=DeliveryClaim)
async def get_delivery(delivery_id: str, board: DispatchBoard = Depends(get_dispatch_board)):
    return await board.get_claim(delivery_id)


@router.post("/deliveries/{delivery_id}/claim", response_model=DeliveryClaim)
async def claim(
    delivery_id: str,
    body: ClaimRequest,
    board: DispatchBoard = Depends(get_dispatch_board),
):
    """Claim an available delivery."""
    logger.info(f"[DRIVER] Claim requested - {delivery_id} by {body.driver_id}")
    return await board.claim(body.driver_id, delivery_id)


@router.post("/deliveries/{delivery_id}/advance", response_model=DeliveryClaim)
async def advance(
    delivery_id: str,
    body: AdvanceRequest,
    board: DispatchBoard = Depends(get_dispatch_board),
):
    """Move a claimed delivery one step forward."""
    return await board.advance(body.driver_id, delivery_id, body.status)


@router.post("/deliveries/{delivery_id}/fail", response_model=DeliveryClaim)
async def fail(
    delivery_id: str,
    body: FailRequest,
    board: DispatchBoard = Depends(get_dispatch_board),
):
    """Report a failed delivery."""
    return await board.fail(body.driver_id, delivery_id, body.reason)


@router.get("/{driver_id}/active", response_model=Optional[DeliveryClaim])
async def active(driver_id: str, board: DispatchBoard = Depends(get_dispatch_board)):
    """The driver's current delivery, or null."""
    return await board.get_active_claim(driver_id)


@router.get("/{driver_id}/history", response_model=List[DeliveryClaim])
async def history(driver_id: str, board: DispatchBoard = Depends(get_dispatch_board)):
    return await board.history(driver_id)


@router.get("/{driver_id}/stats", response_model=DriverStats)
async def stats(driver_id: str, board: DispatchBoard = Depends(get_dispatch_board)):
    return await board.stats(driver_id)


@router.get("/{driver_id}/alerts", response_model=List[Alert])
async def alerts(driver_id: str, alert_center: AlertCenter = Depends(get_alert_center)):
    """Alerts for this driver and for all drivers, newest first."""
    return alert_center.list_for(driver_id, broadcast=DRIVERS)


def _subscription_name(driver_id: str) -> str:
    return f"driver:{driver_id}"


@router.get("/{driver_id}/pool-events", response_model=List[PoolEvent])
async def pool_events(
    driver_id: str,
    wait: float = Query(0, ge=0, le=30),
    events: PoolEventBus = Depends(get_pool_events),
):
    """
    Pool changes since this driver's last call.

    The first call opens the driver's subscription. With wait > 0 the request
    is held until an event arrives or wait seconds pass.
    """
    subscription = events.subscription_for(_subscription_name(driver_id))
    changes = await subscription.wait_and_drain(wait)
    logger.debug(f"[DRIVER] {len(changes)} pool events for {driver_id}")
    return changes


@router.delete("/{driver_id}/pool-events", status_code=204)
async def close_pool_events(driver_id: str, events: PoolEventBus = Depends(get_pool_events)):
    """Stop collecting pool events for this driver."""
    events.unsubscribe(events.subscription_for(_subscription_name(driver_id)))
