"""View models combining pricing, balance and lifecycle for one transaction.

The summaries built here are what every presentation surface (CLI, reports,
invoices) consumes. They are pure functions of the transaction header and its
child rows: no lookups, no caching, same input same output.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional, Sequence, Tuple

from . import log
from .balance import payments_total, remaining_balance
from .constants import DEFAULT_DISCOUNT_CATEGORY
from .lifecycle import Permissions, purchase_permissions, sales_permissions
from .models import Book, Payment, PurchaseItem, PurchaseTransaction, SalesItem, SalesTransaction, Shipping
from .pricing import (
    is_discount_eligible,
    purchase_line_subtotal,
    resolve_book,
    sales_unit_price,
    shipping_total,
)


@dataclass(frozen=True)
class SalesLine:
    item: SalesItem
    book: Book
    base_price: Decimal
    effective_price: Decimal
    subtotal: Decimal
    discount_eligible: bool


@dataclass(frozen=True)
class SalesSummary:
    """Everything a screen needs to render a sales transaction."""

    transaction: SalesTransaction
    lines: Tuple[SalesLine, ...]
    shippings: Tuple[Shipping, ...]
    payments: Tuple[Payment, ...]
    books_subtotal: Decimal
    shipping_total: Decimal
    payments_total: Decimal
    grand_total: Decimal
    remaining_balance: Decimal
    permissions: Permissions


@dataclass(frozen=True)
class PurchaseLine:
    item: PurchaseItem
    book: Optional[Book]
    subtotal: Decimal


@dataclass(frozen=True)
class PurchaseSummary:
    """Everything a screen needs to render a purchase transaction."""

    transaction: PurchaseTransaction
    lines: Tuple[PurchaseLine, ...]
    grand_total: Decimal
    total_quantity: int
    title_count: int
    permissions: Permissions


def summarize_sales_transaction(
    transaction: SalesTransaction,
    items: Sequence[SalesItem],
    books: Mapping[str, Book],
    shippings: Sequence[Shipping] = (),
    payments: Sequence[Payment] = (),
    *,
    discount_category: str = DEFAULT_DISCOUNT_CATEGORY,
) -> SalesSummary:
    """Build the sales view model.

    Args:
        transaction: Header of the transaction; an unsaved header (no id) has
            a remaining balance of zero.
        items: Committed or pending sales lines.
        books: Catalogue lookup covering at least every ``item.book_id``.
        shippings: Shipments attached to the transaction.
        payments: Payments recorded against the transaction.
        discount_category: Category whose books accept promotion/discount.

    Raises:
        MissingReferenceError: If an item references a book absent from
            ``books``.
    """

    lines = []
    for item in items:
        book = resolve_book(books, item.book_id)
        unit = sales_unit_price(item, book, discount_category=discount_category)
        lines.append(
            SalesLine(
                item=item,
                book=book,
                base_price=book.price,
                effective_price=unit,
                subtotal=unit * item.quantity,
                discount_eligible=is_discount_eligible(book, discount_category=discount_category),
            )
        )

    books_total = sum((line.subtotal for line in lines), Decimal("0"))
    shipping_sum = shipping_total(shippings)
    grand_total = books_total + shipping_sum
    remaining = remaining_balance(grand_total, payments, is_new=transaction.is_new)
    log.debug(
        "Summarized sales transaction '%s': total=%s remaining=%s",
        transaction.transaction_id,
        grand_total,
        remaining,
    )
    return SalesSummary(
        transaction=transaction,
        lines=tuple(lines),
        shippings=tuple(shippings),
        payments=tuple(payments),
        books_subtotal=books_total,
        shipping_total=shipping_sum,
        payments_total=payments_total(payments),
        grand_total=grand_total,
        remaining_balance=remaining,
        permissions=sales_permissions(transaction.status, remaining),
    )


def summarize_purchase_transaction(
    transaction: PurchaseTransaction,
    items: Sequence[PurchaseItem],
    books: Optional[Mapping[str, Book]] = None,
) -> PurchaseSummary:
    """Build the purchase view model. ``books`` is only used for display."""

    books = books or {}
    lines = tuple(
        PurchaseLine(item=item, book=books.get(item.book_id), subtotal=purchase_line_subtotal(item))
        for item in items
    )
    return PurchaseSummary(
        transaction=transaction,
        lines=lines,
        grand_total=sum((line.subtotal for line in lines), Decimal("0")),
        total_quantity=sum(item.quantity for item in items),
        title_count=len({item.book_id for item in items}),
        permissions=purchase_permissions(transaction.status),
    )


__all__ = [
    "SalesLine",
    "SalesSummary",
    "PurchaseLine",
    "PurchaseSummary",
    "summarize_sales_transaction",
    "summarize_purchase_transaction",
]
