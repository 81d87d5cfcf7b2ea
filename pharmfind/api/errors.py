"""Translate fulfillment errors into HTTP responses."""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pharmfind.services.ordering.errors import (
    AlreadyAssignedError,
    ConcurrentUpdateError,
    DriverBusyError,
    FulfillmentError,
    InvalidTransitionError,
    NotFoundError,
    PrescriptionMissingError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    NotFoundError: 404,
    ValidationError: 422,
    InvalidTransitionError: 409,
    PrescriptionMissingError: 409,
    AlreadyAssignedError: 409,
    DriverBusyError: 409,
    ConcurrentUpdateError: 409,
}


def status_code_for(exc: FulfillmentError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 400


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(FulfillmentError)
    async def fulfillment_error_handler(request: Request, exc: FulfillmentError) -> JSONResponse:
        status_code = status_code_for(exc)
        logger.warning(
            f"[API ERROR] {request.method} {request.url.path} -> {status_code} "
            f"{type(exc).__name__}: {exc.message}"
        )
        return JSONResponse(
            status_code=status_code,
            content={
                "error": {
                    "type": type(exc).__name__,
                    "message": exc.message,
                    "details": getattr(exc, "errors", []),
                }
            },
        )
