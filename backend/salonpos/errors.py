# Overview: Error taxonomy shared by the settlement core and its service wrappers.

from __future__ import annotations


class SalonPOSError(Exception):
    """Base error carrying a user-facing message and structured details."""

    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(SalonPOSError, ValueError):
    """400-level input problem."""

    status_code = 400


class NotFoundError(SalonPOSError, LookupError):
    """404-level missing record."""

    status_code = 404


class SettlementValidationError(ValidationError):
    """
    Raised while validating a cart, before any mutation.

    The whole sale is rejected; nothing has been written.
    """


class ItemNotFoundError(SettlementValidationError):
    pass


class InsufficientStockError(SettlementValidationError):
    """Requested quantity exceeds the item's authoritative stock."""


class MissingEmployeeAssignmentError(SettlementValidationError):
    """A cart line has no (known) employee assigned."""


class SettlementStateError(SalonPOSError):
    """Operation not allowed in the settlement's current state."""

    status_code = 409


class InvalidRateError(ValidationError):
    """A commission rate outside [0, 100] reached the calculator."""


class InsufficientBatchStockError(SalonPOSError):
    """
    The batch ledger cannot fully cost a drain request.

    Not a validation error: settlement absorbs it and costs the shortfall
    according to the configured shortfall policy.
    """

    status_code = 409

    def __init__(self, item_id, requested, available):
        super().__init__(
            "Insufficient batch stock to cost request",
            details={
                "item_id": item_id,
                "requested_quantity": str(requested),
                "available_quantity": str(available),
            },
        )
        self.item_id = item_id
        self.requested = requested
        self.available = available
