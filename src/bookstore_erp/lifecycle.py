"""Status-driven edit permissions and transitions for sales and purchases.

Purchase state machine::

    PENDING --complete--> COMPLETED
    PENDING --cancel----> CANCELLED

``COMPLETED`` and ``CANCELLED`` are terminal and freeze the whole transaction.

Sales transactions start as ``PESANAN`` and move with the payments recorded
against them (see :func:`bookstore_erp.balance.derive_sales_status`). Items are
editable only while ``PESANAN``; shipping and payments stay editable until the
transaction is ``LUNAS``, which freezes everything.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Dict, FrozenSet, Optional

from . import log
from .constants import PaymentType, PurchaseStatus, SalesStatus
from .errors import LockedTransactionError, ValidationError
from .models import PurchaseTransaction


ZERO = Decimal("0")

PURCHASE_TRANSITIONS: Dict[PurchaseStatus, FrozenSet[PurchaseStatus]] = {
    PurchaseStatus.PENDING: frozenset({PurchaseStatus.COMPLETED, PurchaseStatus.CANCELLED}),
    PurchaseStatus.COMPLETED: frozenset(),
    PurchaseStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class Permissions:
    """Capability set of a transaction for its current status."""

    can_edit_header: bool
    can_edit_items: bool
    can_edit_shipping: bool
    can_edit_payments: bool
    can_add_payment: bool


def sales_permissions(status: SalesStatus | int, remaining: Decimal = ZERO) -> Permissions:
    """Capabilities of a sales transaction in ``status``.

    ``can_add_payment`` additionally needs a positive ``remaining`` balance.
    """

    status = SalesStatus(status)
    unlocked = status is not SalesStatus.LUNAS
    return Permissions(
        can_edit_header=unlocked,
        can_edit_items=status is SalesStatus.PESANAN,
        can_edit_shipping=unlocked,
        can_edit_payments=unlocked,
        can_add_payment=unlocked and remaining > ZERO,
    )


def purchase_permissions(status: PurchaseStatus | int) -> Permissions:
    """Capabilities of a purchase transaction in ``status``."""

    pending = PurchaseStatus(status) is PurchaseStatus.PENDING
    return Permissions(
        can_edit_header=pending,
        can_edit_items=pending,
        can_edit_shipping=False,
        can_edit_payments=False,
        can_add_payment=False,
    )


def require_sales_unlocked(status: SalesStatus | int, *, action: str) -> None:
    """Raise :class:`LockedTransactionError` when a sales transaction is ``LUNAS``."""

    if not sales_permissions(status).can_edit_payments:
        log.error("Rejected '%s' on a %s sales transaction", action, SalesStatus(status).label)
        raise LockedTransactionError(f"Cannot {action}: the transaction is already paid off (Lunas)")


def require_sales_items_editable(status: SalesStatus | int) -> None:
    """Raise :class:`LockedTransactionError` unless items may still change."""

    if not sales_permissions(status).can_edit_items:
        log.error("Rejected item edit on a %s sales transaction", SalesStatus(status).label)
        raise LockedTransactionError(
            f"Items are locked while the transaction is {SalesStatus(status).label}"
        )


def require_purchase_editable(status: PurchaseStatus | int) -> None:
    """Raise :class:`LockedTransactionError` unless the purchase is still pending."""

    if not purchase_permissions(status).can_edit_items:
        log.error("Rejected edit on a %s purchase transaction", PurchaseStatus(status).label)
        raise LockedTransactionError(
            f"Purchase transactions with status {PurchaseStatus(status).label} cannot be edited"
        )


def can_transition_purchase(from_status: PurchaseStatus | int, to_status: PurchaseStatus | int) -> bool:
    return PurchaseStatus(to_status) in PURCHASE_TRANSITIONS[PurchaseStatus(from_status)]


def transition_purchase(transaction: PurchaseTransaction, target: PurchaseStatus) -> PurchaseTransaction:
    """Return ``transaction`` moved to ``target`` or raise if the move is illegal."""

    if not can_transition_purchase(transaction.status, target):
        log.error(
            "Illegal purchase transition %s -> %s for '%s'",
            PurchaseStatus(transaction.status).label,
            target.label,
            transaction.purchase_id,
        )
        raise LockedTransactionError(
            f"Cannot move purchase '{transaction.purchase_id}' from "
            f"{PurchaseStatus(transaction.status).label} to {target.label}"
        )
    return replace(transaction, status=target)


def complete_purchase(transaction: PurchaseTransaction) -> PurchaseTransaction:
    return transition_purchase(transaction, PurchaseStatus.COMPLETED)


def cancel_purchase(transaction: PurchaseTransaction) -> PurchaseTransaction:
    return transition_purchase(transaction, PurchaseStatus.CANCELLED)


def validate_credit_terms(
    payment_type: PaymentType | str,
    transaction_date: date,
    due_date: Optional[date],
) -> Optional[date]:
    """Check the due-date precondition and return the due date to store.

    Credit sales need a due date strictly after the transaction date; cash
    sales never keep one.

    Raises:
        ValidationError: If a credit sale lacks a due date or the due date is
            not after the transaction date.
    """

    if PaymentType(payment_type) is PaymentType.CASH:
        return None
    if due_date is None:
        log.error("Credit sale dated %s submitted without a due date", transaction_date)
        raise ValidationError("A due date is required for credit (K) sales")
    if due_date <= transaction_date:
        log.error("Credit due date %s is not after transaction date %s", due_date, transaction_date)
        raise ValidationError("The due date must be after the transaction date")
    return due_date


__all__ = [
    "PURCHASE_TRANSITIONS",
    "Permissions",
    "sales_permissions",
    "purchase_permissions",
    "require_sales_unlocked",
    "require_sales_items_editable",
    "require_purchase_editable",
    "can_transition_purchase",
    "transition_purchase",
    "complete_purchase",
    "cancel_purchase",
    "validate_credit_terms",
]
