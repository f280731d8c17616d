"""Payment aggregation against a sales transaction total."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from . import log
from .constants import PaymentType, SalesStatus
from .errors import OverpaymentError, ValidationError
from .models import Payment


ZERO = Decimal("0")


def payments_total(payments: Iterable[Payment]) -> Decimal:
    return sum((Decimal(str(payment.amount)) for payment in payments), ZERO)


def remaining_balance(total: Decimal, payments: Iterable[Payment], *, is_new: bool = False) -> Decimal:
    """Return ``total`` minus everything paid so far.

    A transaction that has not been saved yet cannot carry payments, so its
    remaining balance is defined as zero whatever its total.
    """

    if is_new:
        return ZERO
    return total - payments_total(payments)


def validate_payment(amount: Decimal, remaining: Decimal) -> None:
    """Accept ``amount`` only when it is positive and fits the remaining balance.

    Raises:
        ValidationError: If ``amount`` is zero or negative.
        OverpaymentError: If ``amount`` exceeds ``remaining``.
    """

    if amount <= ZERO:
        log.error("Payment validation failed: non-positive amount %s", amount)
        raise ValidationError("Payment amount must be greater than zero")
    if amount > remaining:
        log.error("Payment validation failed: amount %s exceeds remaining %s", amount, remaining)
        raise OverpaymentError(
            f"Payment {amount} exceeds the remaining balance {remaining}",
            amount=amount,
            remaining=remaining,
        )


def ensure_total_covers_payments(total: Decimal, paid: Decimal) -> None:
    """Reject an edit that would shrink ``total`` below what was already paid."""

    if paid > total:
        log.error("Total %s would fall below the %s already paid", total, paid)
        raise OverpaymentError(
            f"Transaction total {total} would be lower than the {paid} already paid",
            amount=paid,
            remaining=total,
        )


def derive_sales_status(payment_type: PaymentType, total: Decimal, paid: Decimal) -> SalesStatus:
    """Status a sales transaction should hold for the given totals.

    A positive total that is fully paid is ``LUNAS``. A partial payment on
    credit terms is ``ANGSURAN``. Anything else is still an open ``PESANAN``.
    """

    if total > ZERO and paid >= total:
        return SalesStatus.LUNAS
    if paid > ZERO and payment_type == PaymentType.CREDIT:
        return SalesStatus.ANGSURAN
    return SalesStatus.PESANAN


__all__ = [
    "payments_total",
    "remaining_balance",
    "validate_payment",
    "ensure_total_covers_payments",
    "derive_sales_status",
]
