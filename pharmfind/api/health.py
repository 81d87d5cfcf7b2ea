"""Health check endpoint."""
import logging
from fastapi import APIRouter, Request

from pharmfind.core.config import settings

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(request: Request):
    """Report liveness, the configured order store and whether pool polling runs."""
    logger.debug(
        f"[HEALTH] Health check requested - Client: {request.client.host if request.client else 'unknown'}"
    )
    poller = getattr(request.app.state, "dispatch_poller", None)
    return {
        "status": "healthy",
        "order_store": settings.order_store,
        "dispatch_polling": bool(poller is not None and poller.running),
    }
