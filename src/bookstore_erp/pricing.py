"""Line-item pricing and transaction totals.

Every screen that shows a price, a subtotal or a total goes through this
module. Sales items never store a unit price: it is derived from the book's
selling price, a flat promotion and a percentage discount, in that order::

    effective = max(0, (price - promotion) * (1 - discount / 100))

Only books whose category matches the discount category (``LKS`` by default)
take promotion and discount into account; other books are priced at their full
selling price and any promotion/discount on their lines is ignored rather than
rejected. Purchase items carry a buyer-entered unit cost that may not exceed the
book's selling price.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Sequence

from . import log
from .constants import DEFAULT_DISCOUNT_CATEGORY
from .errors import MissingReferenceError, ValidationError
from .models import Book, PurchaseItem, SalesAssociate, SalesItem, Shipping


ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _to_decimal(value: object) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def cap_promotion(promotion: object, base_price: object) -> Decimal:
    """Clamp a flat promotion into ``[0, base_price]``."""

    promotion = _to_decimal(promotion)
    base_price = _to_decimal(base_price)
    return min(max(promotion, ZERO), max(base_price, ZERO))


def clamp_discount(discount: object) -> Decimal:
    """Clamp a percentage discount into ``[0, 100]``."""

    return min(max(_to_decimal(discount), ZERO), HUNDRED)


def effective_price(base_price: object, promotion: object = ZERO, discount_percent: object = ZERO) -> Decimal:
    """Return the unit price after promotion and percentage discount.

    The promotion is subtracted before the discount is applied. Inputs outside
    their domain are clamped (promotion into ``[0, base_price]``, discount into
    ``[0, 100]``) so the function never raises and never returns a negative
    price.

    Args:
        base_price: Selling price of the book, expected to be nonnegative.
        promotion: Flat currency amount taken off the base price.
        discount_percent: Percentage discount applied after the promotion.

    Returns:
        Decimal: Effective unit price, always ``>= 0``.
    """

    base = max(_to_decimal(base_price), ZERO)
    net = base - cap_promotion(promotion, base)
    price = net * (1 - clamp_discount(discount_percent) / HUNDRED)
    return max(price, ZERO)


def is_discount_eligible(book: Book, *, discount_category: str = DEFAULT_DISCOUNT_CATEGORY) -> bool:
    """Return ``True`` when ``book`` accepts promotion and discount."""

    return (book.category_code or "").strip().upper() == discount_category.strip().upper()


def sales_unit_price(item: SalesItem, book: Book, *, discount_category: str = DEFAULT_DISCOUNT_CATEGORY) -> Decimal:
    """Effective unit price of a sales line, honouring category eligibility."""

    if not is_discount_eligible(book, discount_category=discount_category):
        return effective_price(book.price)
    return effective_price(book.price, item.promotion, item.discount)


def sales_line_subtotal(item: SalesItem, book: Book, *, discount_category: str = DEFAULT_DISCOUNT_CATEGORY) -> Decimal:
    return sales_unit_price(item, book, discount_category=discount_category) * item.quantity


def purchase_line_subtotal(item: PurchaseItem) -> Decimal:
    return _to_decimal(item.price) * item.quantity


def line_subtotal(
    item: SalesItem | PurchaseItem,
    book: Optional[Book] = None,
    *,
    discount_category: str = DEFAULT_DISCOUNT_CATEGORY,
) -> Decimal:
    """Subtotal of a sales or purchase line.

    Sales lines need the referenced ``book`` because their price is derived;
    purchase lines are priced from their own ``price`` field.
    """

    if isinstance(item, PurchaseItem):
        return purchase_line_subtotal(item)
    if book is None:
        raise MissingReferenceError(f"Book required to price sales item '{item.book_id}'")
    return sales_line_subtotal(item, book, discount_category=discount_category)


def resolve_book(books: Mapping[str, Book], book_id: str) -> Book:
    try:
        return books[book_id]
    except KeyError as exc:
        log.warning("Pricing lookup failed for book '%s'", book_id)
        raise MissingReferenceError(f"Unknown book id: {book_id}") from exc


def books_subtotal(
    items: Iterable[SalesItem],
    books: Mapping[str, Book],
    *,
    discount_category: str = DEFAULT_DISCOUNT_CATEGORY,
) -> Decimal:
    total = ZERO
    for item in items:
        total += sales_line_subtotal(item, resolve_book(books, item.book_id), discount_category=discount_category)
    return total


def shipping_total(shippings: Iterable[Shipping]) -> Decimal:
    return sum((_to_decimal(shipping.total_amount) for shipping in shippings), ZERO)


def transaction_total(
    items: Iterable[SalesItem],
    books: Mapping[str, Book],
    shippings: Iterable[Shipping] = (),
    *,
    discount_category: str = DEFAULT_DISCOUNT_CATEGORY,
) -> Decimal:
    """Grand total of a sales transaction: discounted lines plus shipping."""

    total = books_subtotal(items, books, discount_category=discount_category) + shipping_total(shippings)
    log.debug("Computed sales transaction total %s", total)
    return total


def purchase_total(items: Iterable[PurchaseItem]) -> Decimal:
    """Grand total of a purchase transaction; purchases have no shipping term."""

    return sum((purchase_line_subtotal(item) for item in items), ZERO)


def cap_purchase_price(price: object, book: Book) -> Decimal:
    """Clamp a buyer-entered unit cost to the book's current selling price."""

    price = max(_to_decimal(price), ZERO)
    if price > book.price:
        log.debug("Capping purchase price %s of book '%s' to %s", price, book.book_id, book.price)
        return book.price
    return price


def seed_sales_item(
    book: Book,
    quantity: int = 1,
    *,
    associate: Optional[SalesAssociate] = None,
    discount_category: str = DEFAULT_DISCOUNT_CATEGORY,
) -> SalesItem:
    """Build the line added when ``book`` is picked for a sales transaction.

    Eligible books inherit the associate's default discount; other books start
    with no promotion or discount.
    """

    discount = ZERO
    if associate is not None and is_discount_eligible(book, discount_category=discount_category):
        discount = clamp_discount(associate.discount)
    return SalesItem(book_id=book.book_id, quantity=quantity, promotion=ZERO, discount=discount)


def seed_purchase_item(book: Book, quantity: int = 1) -> PurchaseItem:
    """Build the line added when ``book`` is picked for a purchase."""

    seed = book.purchasing_price if book.purchasing_price is not None else book.price
    return PurchaseItem(book_id=book.book_id, quantity=quantity, price=cap_purchase_price(seed, book))


def apply_general_discount(
    items: Sequence[SalesItem],
    books: Mapping[str, Book],
    *,
    promotion: object = ZERO,
    discount: object = ZERO,
    discount_category: str = DEFAULT_DISCOUNT_CATEGORY,
) -> List[SalesItem]:
    """Apply one promotion/discount pair to every eligible line.

    Lines whose book is not eligible are returned untouched. The promotion is
    capped at each book's price.
    """

    updated: List[SalesItem] = []
    for item in items:
        book = resolve_book(books, item.book_id)
        if is_discount_eligible(book, discount_category=discount_category):
            item = replace(
                item,
                promotion=cap_promotion(promotion, book.price),
                discount=clamp_discount(discount),
            )
        updated.append(item)
    return updated


def validate_sales_item(item: SalesItem) -> None:
    """Reject malformed sales lines.

    Raises:
        ValidationError: If the quantity is below one, the promotion is
            negative, or the discount falls outside ``[0, 100]``.
    """

    if item.quantity < 1:
        log.error("Sales item '%s' has invalid quantity %s", item.book_id, item.quantity)
        raise ValidationError(f"Quantity must be at least 1 for book '{item.book_id}'")
    if _to_decimal(item.promotion) < ZERO:
        log.error("Sales item '%s' has negative promotion %s", item.book_id, item.promotion)
        raise ValidationError(f"Promotion cannot be negative for book '{item.book_id}'")
    discount = _to_decimal(item.discount)
    if discount < ZERO or discount > HUNDRED:
        log.error("Sales item '%s' has out-of-range discount %s", item.book_id, item.discount)
        raise ValidationError(f"Discount must be between 0 and 100 for book '{item.book_id}'")


def validate_purchase_item(item: PurchaseItem, book: Book) -> None:
    """Reject malformed purchase lines, re-checking the price cap against ``book``.

    Raises:
        ValidationError: If the quantity is below one, the price is not
            positive, or the price exceeds the book's current selling price.
    """

    if item.quantity < 1:
        log.error("Purchase item '%s' has invalid quantity %s", item.book_id, item.quantity)
        raise ValidationError(f"Quantity must be at least 1 for book '{item.book_id}'")
    price = _to_decimal(item.price)
    if price <= ZERO:
        log.error("Purchase item '%s' has non-positive price %s", item.book_id, price)
        raise ValidationError(f"Purchase price must be greater than zero for book '{item.book_id}'")
    if price > book.price:
        log.error(
            "Purchase price %s of book '%s' exceeds selling price %s",
            price,
            item.book_id,
            book.price,
        )
        raise ValidationError(
            f"Purchase price {price} exceeds the selling price {book.price} of book '{item.book_id}'"
        )


__all__ = [
    "cap_promotion",
    "clamp_discount",
    "effective_price",
    "is_discount_eligible",
    "sales_unit_price",
    "sales_line_subtotal",
    "purchase_line_subtotal",
    "line_subtotal",
    "resolve_book",
    "books_subtotal",
    "shipping_total",
    "transaction_total",
    "purchase_total",
    "cap_purchase_price",
    "seed_sales_item",
    "seed_purchase_item",
    "apply_general_discount",
    "validate_sales_item",
    "validate_purchase_item",
]
