"""Fulfillment error taxonomy.

Every ledger, review and dispatch operation either returns the updated entity
or raises one of these. None of them is fatal: the caller re-reads the current
state and retries with corrected input.
"""
from typing import List, Optional


class FulfillmentError(Exception):
    """Base class for all fulfillment errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(FulfillmentError):
    """Referenced order or delivery does not exist."""


class ValidationError(FulfillmentError):
    """Malformed input, rejected before any mutation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class InvalidTransitionError(FulfillmentError):
    """Requested status is not a legal successor of the current one."""


class PrescriptionMissingError(FulfillmentError):
    """Acceptance blocked until the required prescription is attached."""


class AlreadyAssignedError(FulfillmentError):
    """Delivery is no longer available for claiming."""


class DriverBusyError(FulfillmentError):
    """Driver already holds an active delivery."""


class ConcurrentUpdateError(FulfillmentError):
    """Order changed between read and write."""
