"""Domain error taxonomy for the transaction core."""

from __future__ import annotations

from decimal import Decimal


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class ValidationError(BusinessRuleViolation, ValueError):
    """Raised for malformed or out-of-range input."""


class MissingReferenceError(ValidationError):
    """Raised when a referenced book, associate, transaction or child row is unknown."""


class OverpaymentError(BusinessRuleViolation):
    """Raised when recorded payments would exceed a transaction total."""

    def __init__(self, message: str, *, amount: Decimal, remaining: Decimal) -> None:
        super().__init__(message)
        self.amount = amount
        self.remaining = remaining


class InsufficientStockError(BusinessRuleViolation):
    """Raised when a sale requests more copies than are available."""

    def __init__(self, book_id: str, *, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient stock for book '{book_id}': requested {requested}, available {available}"
        )
        self.book_id = book_id
        self.requested = requested
        self.available = available


class LockedTransactionError(BusinessRuleViolation):
    """Raised when a mutation targets data frozen by the transaction status."""


__all__ = [
    "BusinessRuleViolation",
    "ValidationError",
    "MissingReferenceError",
    "OverpaymentError",
    "InsufficientStockError",
    "LockedTransactionError",
]
