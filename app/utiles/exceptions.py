# app/utiles/exceptions.py
"""
Error taxonomy for the stock ledger workflows.

Every class carries the HTTP status the endpoint layer answers with, so services
stay free of FastAPI and the ``handle_exceptions`` decorator does the mapping.
"""
from typing import Optional


class InventoryError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(InventoryError):
    """Malformed or missing input."""
    status_code = 400


class NotFound(InventoryError):
    """Referenced entity is absent or soft-deleted."""
    status_code = 404


class Forbidden(InventoryError):
    """Caller does not own the entity it is trying to touch."""
    status_code = 403


class InsufficientStock(InventoryError):
    """Business rejection: not enough available quantity."""
    status_code = 409

    def __init__(self, medicine_id: Optional[str], requested: int, available: int, message: Optional[str] = None):
        self.medicine_id = medicine_id
        self.requested = requested
        self.available = available
        super().__init__(
            message
            or f"Insufficient available stock for medicine {medicine_id}. Required: {requested}, Available: {available}"
        )


class InvalidStateTransition(InventoryError):
    status_code = 409


class AlreadyReceived(InvalidStateTransition):
    status_code = 409


class ConcurrentUpdate(InventoryError):
    """Another writer committed first; the caller should retry the whole operation."""
    status_code = 409


class StockInconsistency(InventoryError):
    """Reserved and physical stock disagree. Always a bug or an escaped race."""
    status_code = 500
