"""Sole owner of book stock arithmetic.

Stock changes only through the operations below, each tied to a lifecycle
event:

* a sales transaction is created (decrement) or deleted (restore),
* the items of a still-open sales transaction are replaced (net difference),
* a purchase is completed (increment).

Cancelling a purchase is a pure status change. Every operation works on a
mutable ``book_id -> stock`` mapping and is all-or-nothing: the whole request
is checked before any level in the mapping is touched. The caller is
responsible for loading current levels and persisting the returned changes in
one step.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, MutableMapping, Mapping

from . import log
from .errors import InsufficientStockError, MissingReferenceError, ValidationError
from .lifecycle import cancel_purchase
from .models import PurchaseItem, PurchaseTransaction, SalesItem


StockLevels = MutableMapping[str, int]


def clamp_quantity(requested: int, available: int) -> int:
    """Quantity a sales line may hold: at least one, at most ``available``."""

    return max(1, min(requested, available))


def clamp_purchase_quantity(requested: int) -> int:
    """Quantity a purchase line may hold; purchases have no upper bound."""

    return max(1, requested)


def _quantities_by_book(items: Iterable[SalesItem | PurchaseItem]) -> Dict[str, int]:
    totals: Dict[str, int] = defaultdict(int)
    for item in items:
        if item.quantity < 1:
            raise ValidationError(f"Quantity must be at least 1 for book '{item.book_id}'")
        totals[item.book_id] += item.quantity
    return dict(totals)


def _current_level(stock: Mapping[str, int], book_id: str) -> int:
    try:
        return stock[book_id]
    except KeyError as exc:
        log.warning("Stock lookup failed for book '%s'", book_id)
        raise MissingReferenceError(f"Unknown book id: {book_id}") from exc


def _commit(stock: StockLevels, changes: Mapping[str, int]) -> Dict[str, int]:
    for book_id, level in changes.items():
        stock[book_id] = level
    return dict(changes)


def apply_sale_creation(stock: StockLevels, items: Iterable[SalesItem]) -> Dict[str, int]:
    """Decrement stock for every committed sales line.

    Returns:
        dict[str, int]: New stock level of every touched book.

    Raises:
        InsufficientStockError: If any book would go negative. Nothing is
            decremented in that case.
    """

    changes: Dict[str, int] = {}
    for book_id, quantity in _quantities_by_book(items).items():
        available = _current_level(stock, book_id)
        if quantity > available:
            log.error("Sale of %d copies of '%s' exceeds stock %d", quantity, book_id, available)
            raise InsufficientStockError(book_id, requested=quantity, available=available)
        changes[book_id] = available - quantity
    log.info("Applied sale stock decrement to %d book(s)", len(changes))
    return _commit(stock, changes)


def reverse_sale_on_delete(stock: StockLevels, items: Iterable[SalesItem]) -> Dict[str, int]:
    """Restore exactly the quantities captured when the sale was committed."""

    changes: Dict[str, int] = {}
    for book_id, quantity in _quantities_by_book(items).items():
        changes[book_id] = _current_level(stock, book_id) + quantity
    log.info("Restored sale stock for %d book(s)", len(changes))
    return _commit(stock, changes)


def apply_sale_update(
    stock: StockLevels,
    previous_items: Iterable[SalesItem],
    new_items: Iterable[SalesItem],
) -> Dict[str, int]:
    """Replace the committed lines of an open sale with ``new_items``.

    The previous quantities are returned to stock and the new ones taken out,
    checked together so a failed update leaves every level unchanged.

    Raises:
        InsufficientStockError: If a new quantity exceeds the stock available
            once the previous quantity of the same book is given back.
    """

    previous = _quantities_by_book(previous_items)
    requested = _quantities_by_book(new_items)
    changes: Dict[str, int] = {}
    for book_id in sorted(previous.keys() | requested.keys()):
        available = _current_level(stock, book_id) + previous.get(book_id, 0)
        quantity = requested.get(book_id, 0)
        if quantity > available:
            log.error("Updated sale of %d copies of '%s' exceeds stock %d", quantity, book_id, available)
            raise InsufficientStockError(book_id, requested=quantity, available=available)
        changes[book_id] = available - quantity
    log.info("Applied sale stock update to %d book(s)", len(changes))
    return _commit(stock, changes)


def apply_purchase_completion(stock: StockLevels, items: Iterable[PurchaseItem]) -> Dict[str, int]:
    """Add purchased quantities to stock.

    Only call this for the Pending -> Completed transition; the lifecycle gate,
    not this function, prevents a purchase from being completed twice.
    """

    changes: Dict[str, int] = {}
    for book_id, quantity in _quantities_by_book(items).items():
        changes[book_id] = _current_level(stock, book_id) + quantity
    log.info("Applied purchase stock increment to %d book(s)", len(changes))
    return _commit(stock, changes)


def apply_purchase_cancellation(transaction: PurchaseTransaction) -> PurchaseTransaction:
    """Cancel a pending purchase. No stock is touched."""

    return cancel_purchase(transaction)


__all__ = [
    "StockLevels",
    "clamp_quantity",
    "clamp_purchase_quantity",
    "apply_sale_creation",
    "reverse_sale_on_delete",
    "apply_sale_update",
    "apply_purchase_completion",
    "apply_purchase_cancellation",
]
