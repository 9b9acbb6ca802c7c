# Overview: Error taxonomy shared by the inventory, sale, refund and purchasing services.

"""
Every business-rule violation is detected before any mutation and raised as
one of these errors. The HTTP layer renders them through a single error
handler using ``status_code``; ``details`` carries structured context for the
client (product name, available quantity, current status...).
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for core errors."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class NotFoundError(PosError):
    """Product, transaction, purchase order, supplier or user missing."""
    status_code = 404


class ActorNotFoundError(NotFoundError):
    """The acting user record does not exist."""


class InvalidInputError(PosError):
    """Missing required field, malformed payment reference, non-positive quantity."""


class EmptyCartError(InvalidInputError):
    """A sale was submitted with no line items."""


class InsufficientStockError(PosError):
    """A sale would drive a product's quantity negative."""
    status_code = 409


class InvalidStateError(PosError):
    """The operation is not permitted in the entity's current state."""
    status_code = 409


class ConflictError(PosError):
    """Uniqueness violation (SKU, barcode, order number)."""
    status_code = 409


class OperationFailedError(PosError):
    """An atomic operation aborted during its mutation phase and was rolled back."""
    status_code = 500


class PaymentFailedError(OperationFailedError):
    """An atomic sale aborted during its mutation phase and was rolled back."""
