"""Business logic layer for the bookstore ERP.

This module orchestrates the pure transaction core (pricing, balance, stock
guard, lifecycle, aggregator) against the workbook. It consumes the Data Access
Layer (DAL) for all I/O and follows one discipline for every mutation: resolve
references, validate the whole request, compute stock changes on a fresh copy
of the stock levels, and only then write rows. A rule violation therefore never
leaves a half-written transaction behind.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from openpyxl.workbook import Workbook

from . import data_manager, lifecycle, log, stock_guard
from .aggregator import (
    PurchaseSummary,
    SalesSummary,
    summarize_purchase_transaction,
    summarize_sales_transaction,
)
from .balance import derive_sales_status, ensure_total_covers_payments, payments_total, validate_payment
from .constants import EXPECTED_SCHEMA_VERSION, PaymentType, PurchaseStatus, SalesStatus, SLAStatus
from .errors import BusinessRuleViolation, LockedTransactionError, MissingReferenceError, ValidationError
from .models import (
    Book,
    Expedition,
    Payment,
    Publisher,
    PurchaseItem,
    PurchaseTransaction,
    SalesAssociate,
    SalesItem,
    SalesTransaction,
    Shipping,
)
from .pricing import transaction_total, validate_purchase_item, validate_sales_item


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class SalesTransactionCommand:
    """User intent for creating or updating a sales transaction.

    ``transaction_id`` is ``None`` for a new transaction.
    """

    sales_associate_id: str
    payment_type: PaymentType
    items: Tuple[SalesItem, ...]
    transaction_date: Optional[date] = None
    due_date: Optional[date] = None
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class PurchaseTransactionCommand:
    """User intent for creating or updating a pending purchase."""

    supplier_id: str
    items: Tuple[PurchaseItem, ...]
    purchase_date: Optional[date] = None
    note: Optional[str] = None
    purchase_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentCommand:
    """User intent for recording a payment against a sales transaction."""

    transaction_id: str
    amount: Decimal
    payment_date: Optional[date] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class ShippingCommand:
    """User intent for adding (no ``shipping_id``) or editing a shipment."""

    transaction_id: str
    expedition_id: str
    no_resi: str
    total_amount: Decimal
    shipping_id: Optional[str] = None


@dataclass(frozen=True)
class StockReportRow:
    book_id: str
    title: str
    category_code: str
    stock: int
    low_stock: bool


@dataclass(frozen=True)
class CreditReportRow:
    transaction_id: str
    sales_associate_id: str
    transaction_date: date
    due_date: Optional[date]
    grand_total: Decimal
    paid: Decimal
    remaining: Decimal
    overdue: bool


@dataclass(frozen=True)
class CreditsReport:
    """Outstanding credit sales as of ``as_of``."""

    as_of: date
    rows: Tuple[CreditReportRow, ...]
    total_outstanding: Decimal
    overdue_count: int


@dataclass(frozen=True)
class SalesReportRow:
    transaction_id: str
    sales_associate_id: str
    transaction_date: date
    payment_type: PaymentType
    status: SalesStatus
    grand_total: Decimal
    paid: Decimal
    remaining: Decimal


@dataclass(frozen=True)
class SalesReport:
    """Sales transactions in a period with cash/credit totals."""

    start_date: Optional[date]
    end_date: Optional[date]
    rows: Tuple[SalesReportRow, ...]
    total_amount: Decimal
    cash_total: Decimal
    credit_total: Decimal

    @property
    def total_transactions(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class PurchaseReportRow:
    purchase_id: str
    supplier_id: str
    purchase_date: date
    status: PurchaseStatus
    title_count: int
    total_quantity: int
    grand_total: Decimal


@dataclass(frozen=True)
class PurchaseReport:
    start_date: Optional[date]
    end_date: Optional[date]
    rows: Tuple[PurchaseReportRow, ...]
    total_amount: Decimal
    completed_count: int
    pending_count: int
    by_supplier: Dict[str, Decimal]

    @property
    def total_purchases(self) -> int:
        return len(self.rows)


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    return candidate if candidate is not None else datetime.now(UTC)


def _resolve_date(candidate: Optional[date]) -> date:
    return candidate if candidate is not None else date.today()


def _to_money(value: object, *, label: str) -> Decimal:
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        log.error("%s is not a valid amount: %r", label, value)
        raise ValidationError(f"{label} must be a number") from exc


def _to_payment_type(value: object) -> PaymentType:
    try:
        return PaymentType(value)
    except ValueError as exc:
        log.error("Unsupported payment type provided: %s", value)
        raise ValidationError(f"Unsupported payment type: {value}") from exc


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return a mutable cache bucket dedicated to the supplied name.

    The business logic layer keeps in-memory caches keyed by domain area
    (books, associates, transactions). Buckets are plain dictionaries holding
    precomputed query results so repeated lookups do not re-scan the workbook.
    """

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating workbook state.

    Missing buckets are ignored so callers can request targeted invalidation.
    """

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def _ensure_master_cache(context: RuntimeContext, name: str, loader, key: str) -> Dict[str, Any]:
    """Populate a master-data bucket with ``all``, ``active`` and ``by_id`` views."""

    bucket = _get_cache_bucket(context, name)
    if "all" not in bucket:
        records = list(loader(context.workbook))
        bucket["all"] = records
        bucket["active"] = [record for record in records if record.is_active]
        bucket["by_id"] = {getattr(record, key): record for record in records}
        log.debug(
            "Populated %s cache with %d entries (%d active)",
            name,
            len(records),
            len(bucket["active"]),
        )
    return bucket


def _ensure_books_cache(context: RuntimeContext) -> Dict[str, Any]:
    return _ensure_master_cache(context, "books", data_manager.iter_books, "book_id")


def _ensure_sales_associates_cache(context: RuntimeContext) -> Dict[str, Any]:
    return _ensure_master_cache(
        context, "sales_associates", data_manager.iter_sales_associates, "sales_associate_id"
    )


def _ensure_publishers_cache(context: RuntimeContext) -> Dict[str, Any]:
    return _ensure_master_cache(context, "publishers", data_manager.iter_publishers, "publisher_id")


def _ensure_expeditions_cache(context: RuntimeContext) -> Dict[str, Any]:
    return _ensure_master_cache(context, "expeditions", data_manager.iter_expeditions, "expedition_id")


def _ensure_sales_transactions_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = _get_cache_bucket(context, "sales_transactions")
    if "all" not in bucket:
        records = list(data_manager.iter_sales_transactions(context.workbook))
        bucket["all"] = records
        bucket["by_id"] = {record.transaction_id: record for record in records}
        log.debug("Populated sales transactions cache with %d entries", len(records))
    return bucket


def _ensure_purchase_transactions_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = _get_cache_bucket(context, "purchase_transactions")
    if "all" not in bucket:
        records = list(data_manager.iter_purchase_transactions(context.workbook))
        bucket["all"] = records
        bucket["by_id"] = {record.purchase_id: record for record in records}
        log.debug("Populated purchase transactions cache with %d entries", len(records))
    return bucket


def _lookup(bucket: Dict[str, Any], record_id: str, *, kind: str) -> Any:
    try:
        return bucket["by_id"][record_id]
    except KeyError as exc:
        log.warning("%s lookup failed for id '%s'", kind.capitalize(), record_id)
        raise MissingReferenceError(f"Unknown {kind} id: {record_id}") from exc


# ---------------------------------------------------------------------------
# Runtime context lifecycle
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Settings, open workbook and an empty cache store.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Persist any in-memory workbook changes to the configured data file."""
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context with a newly opened workbook and an empty
            cache.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)


def generate_id(prefix: str, *, when: Optional[datetime] = None) -> str:
    """Generate a sortable identifier such as ``S20240110093000123456-1a2b3c``.

    The timestamp keeps identifiers in chronological order; the random suffix
    separates records created within the same microsecond.
    """
    when = _resolve_timestamp(when)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}-{uuid4().hex[:6]}"


# ---------------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------------


def list_books(context: RuntimeContext, *, include_inactive: bool = False) -> List[Book]:
    """Return cached books in sheet order, active ones only by default."""
    cache = _ensure_books_cache(context)
    return list(cache["all"] if include_inactive else cache["active"])


def list_sales_associates(context: RuntimeContext, *, include_inactive: bool = False) -> List[SalesAssociate]:
    cache = _ensure_sales_associates_cache(context)
    return list(cache["all"] if include_inactive else cache["active"])


def list_publishers(context: RuntimeContext, *, include_inactive: bool = False) -> List[Publisher]:
    cache = _ensure_publishers_cache(context)
    return list(cache["all"] if include_inactive else cache["active"])


def list_expeditions(context: RuntimeContext, *, include_inactive: bool = False) -> List[Expedition]:
    cache = _ensure_expeditions_cache(context)
    return list(cache["all"] if include_inactive else cache["active"])


def get_book(context: RuntimeContext, book_id: str) -> Book:
    """Resolve a book by id.

    Raises:
        MissingReferenceError: If ``book_id`` is absent from the workbook.
    """
    return _lookup(_ensure_books_cache(context), book_id, kind="book")


def get_sales_associate(context: RuntimeContext, sales_associate_id: str) -> SalesAssociate:
    return _lookup(_ensure_sales_associates_cache(context), sales_associate_id, kind="sales associate")


def get_publisher(context: RuntimeContext, publisher_id: str) -> Publisher:
    return _lookup(_ensure_publishers_cache(context), publisher_id, kind="publisher")


def get_expedition(context: RuntimeContext, expedition_id: str) -> Expedition:
    return _lookup(_ensure_expeditions_cache(context), expedition_id, kind="expedition")


def _require_new_id(exists: bool, record_id: str, *, kind: str) -> None:
    if exists:
        log.error("Duplicate %s id '%s'", kind, record_id)
        raise ValidationError(f"{kind.capitalize()} id already exists: {record_id}")


def add_book(
    context: RuntimeContext,
    *,
    book_id: str,
    title: str,
    category_code: str,
    price: Decimal,
    stock: int = 0,
    purchasing_price: Optional[Decimal] = None,
) -> Book:
    """Register a new catalogue entry.

    ``stock`` is the opening balance of the title. Afterwards the level only
    moves through sales and purchase lifecycle events.

    Raises:
        ValidationError: If the id is taken, a price is negative or the opening
            stock is negative.
    """
    _require_new_id(book_id in _ensure_books_cache(context)["by_id"], book_id, kind="book")
    price = _to_money(price, label="Price")
    if price < 0:
        log.error("Rejected negative price %s for book '%s'", price, book_id)
        raise ValidationError("Price must be zero or positive")
    if purchasing_price is not None:
        purchasing_price = _to_money(purchasing_price, label="Purchasing price")
        if purchasing_price < 0:
            raise ValidationError("Purchasing price must be zero or positive")
    if stock < 0:
        log.error("Rejected negative opening stock %s for book '%s'", stock, book_id)
        raise ValidationError("Opening stock must be zero or positive")

    book = Book(
        book_id=book_id,
        title=title,
        category_code=category_code.strip().upper(),
        price=price,
        stock=stock,
        purchasing_price=purchasing_price,
    )
    data_manager.append_book(context.workbook, book)
    _invalidate_cache(context, "books")
    log.info("Added book '%s' (%s) at price %s", book_id, book.category_code, price)
    return book


UPDATABLE_BOOK_FIELDS = {
    "title": "Title",
    "category_code": "CategoryCode",
    "price": "Price",
    "purchasing_price": "PurchasingPrice",
    "is_active": "IsActive",
}


def update_book(context: RuntimeContext, book_id: str, **changes: Any) -> Book:
    """Edit catalogue fields of a book.

    The ``stock`` field is refused: stock belongs to the stock guard.

    Raises:
        MissingReferenceError: If the book does not exist.
        ValidationError: For unknown fields, ``stock``, or a negative price.
    """
    book = get_book(context, book_id)
    if "stock" in changes:
        log.error("Rejected direct stock edit for book '%s'", book_id)
        raise ValidationError("Stock can only change through sales and purchases")
    unknown = set(changes) - set(UPDATABLE_BOOK_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown book field(s): {', '.join(sorted(unknown))}")
    for money_field in ("price", "purchasing_price"):
        if changes.get(money_field) is not None:
            changes[money_field] = _to_money(changes[money_field], label=money_field)
            if changes[money_field] < 0:
                raise ValidationError(f"{money_field} must be zero or positive")
    if "category_code" in changes:
        changes["category_code"] = str(changes["category_code"]).strip().upper()

    updated = replace(book, **changes)
    data_manager.update_row(
        context.workbook,
        data_manager.BOOKS_SHEET,
        "BookID",
        book_id,
        field_values={UPDATABLE_BOOK_FIELDS[name]: value for name, value in changes.items()},
    )
    _invalidate_cache(context, "books")
    log.info("Updated book '%s': %s", book_id, ", ".join(sorted(changes)))
    return updated


def add_sales_associate(
    context: RuntimeContext,
    *,
    sales_associate_id: str,
    name: str,
    discount: Decimal = Decimal("0"),
    payment_type: PaymentType = PaymentType.CASH,
) -> SalesAssociate:
    """Register a sales associate with a default discount percentage."""
    _require_new_id(
        sales_associate_id in _ensure_sales_associates_cache(context)["by_id"],
        sales_associate_id,
        kind="sales associate",
    )
    discount = _to_money(discount, label="Discount")
    if discount < 0 or discount > 100:
        log.error("Rejected discount %s for sales associate '%s'", discount, sales_associate_id)
        raise ValidationError("Discount must be between 0 and 100")

    associate = SalesAssociate(
        sales_associate_id=sales_associate_id,
        name=name,
        discount=discount,
        payment_type=_to_payment_type(payment_type),
    )
    data_manager.append_sales_associate(context.workbook, associate)
    _invalidate_cache(context, "sales_associates")
    log.info("Added sales associate '%s'", sales_associate_id)
    return associate


def add_publisher(context: RuntimeContext, *, publisher_id: str, name: str) -> Publisher:
    _require_new_id(publisher_id in _ensure_publishers_cache(context)["by_id"], publisher_id, kind="publisher")
    publisher = Publisher(publisher_id=publisher_id, name=name)
    data_manager.append_publisher(context.workbook, publisher)
    _invalidate_cache(context, "publishers")
    log.info("Added publisher '%s'", publisher_id)
    return publisher


def add_expedition(context: RuntimeContext, *, expedition_id: str, name: str) -> Expedition:
    _require_new_id(expedition_id in _ensure_expeditions_cache(context)["by_id"], expedition_id, kind="expedition")
    expedition = Expedition(expedition_id=expedition_id, name=name)
    data_manager.append_expedition(context.workbook, expedition)
    _invalidate_cache(context, "expeditions")
    log.info("Added expedition '%s'", expedition_id)
    return expedition


# ---------------------------------------------------------------------------
# Transactions: lookups and summaries
# ---------------------------------------------------------------------------


def list_sales_transactions(context: RuntimeContext) -> List[SalesTransaction]:
    return list(_ensure_sales_transactions_cache(context)["all"])


def list_purchase_transactions(context: RuntimeContext) -> List[PurchaseTransaction]:
    return list(_ensure_purchase_transactions_cache(context)["all"])


def get_sales_transaction(context: RuntimeContext, transaction_id: str) -> SalesTransaction:
    return _lookup(_ensure_sales_transactions_cache(context), transaction_id, kind="sales transaction")


def get_purchase_transaction(context: RuntimeContext, purchase_id: str) -> PurchaseTransaction:
    return _lookup(_ensure_purchase_transactions_cache(context), purchase_id, kind="purchase transaction")


def get_sales_summary(context: RuntimeContext, transaction_id: str) -> SalesSummary:
    """Build the aggregated view of a stored sales transaction.

    Raises:
        MissingReferenceError: If the transaction or one of its books is
            unknown.
    """
    transaction = get_sales_transaction(context, transaction_id)
    return summarize_sales_transaction(
        transaction,
        data_manager.iter_sales_items(context.workbook, transaction_id),
        _ensure_books_cache(context)["by_id"],
        data_manager.iter_shippings(context.workbook, transaction_id),
        data_manager.iter_payments(context.workbook, transaction_id),
        discount_category=context.settings.discount_category,
    )


def get_purchase_summary(context: RuntimeContext, purchase_id: str) -> PurchaseSummary:
    transaction = get_purchase_transaction(context, purchase_id)
    return summarize_purchase_transaction(
        transaction,
        data_manager.iter_purchase_items(context.workbook, purchase_id),
        _ensure_books_cache(context)["by_id"],
    )


def _sales_total(
    context: RuntimeContext,
    items: Sequence[SalesItem],
    shippings: Sequence[Shipping],
) -> Decimal:
    return transaction_total(
        items,
        _ensure_books_cache(context)["by_id"],
        shippings,
        discount_category=context.settings.discount_category,
    )


def _sync_sales_status(context: RuntimeContext, transaction: SalesTransaction) -> SalesTransaction:
    """Re-derive the stored status of ``transaction`` from its totals."""

    summary = get_sales_summary(context, transaction.transaction_id)
    status = derive_sales_status(transaction.payment_type, summary.grand_total, summary.payments_total)
    if status != transaction.status:
        data_manager.update_sales_status(context.workbook, transaction.transaction_id, status)
        _invalidate_cache(context, "sales_transactions")
        log.info(
            "Sales transaction '%s' moved from %s to %s",
            transaction.transaction_id,
            SalesStatus(transaction.status).label,
            status.label,
        )
    return replace(transaction, status=status)


# ---------------------------------------------------------------------------
# Sales transactions
# ---------------------------------------------------------------------------


def _validate_sales_items(context: RuntimeContext, items: Sequence[SalesItem]) -> None:
    if not items:
        log.error("Sales transaction submitted without items")
        raise ValidationError("A sales transaction needs at least one item")
    for item in items:
        validate_sales_item(item)
        get_book(context, item.book_id)


def persist_sales_transaction(context: RuntimeContext, command: SalesTransactionCommand) -> SalesTransaction:
    """Create or update a sales transaction together with its items.

    Stock is evaluated against levels re-read from the workbook at this point,
    so a quantity that no longer fits fails here even if it fitted when the
    line was selected. New transactions decrement stock by their quantities;
    updates move only the net difference between the stored and the new items.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (SalesTransactionCommand): Header and full item list.

    Returns:
        SalesTransaction: The stored header with its derived status.

    Raises:
        ValidationError: For malformed header or items, including credit terms
            without a valid due date.
        MissingReferenceError: If the associate, a book or the transaction to
            update is unknown.
        LockedTransactionError: If the transaction is Lunas, or items change
            once payments moved it past Pesanan.
        InsufficientStockError: If a book lacks the requested copies.
        OverpaymentError: If an update would push the total below what has
            already been paid.
    """
    items = list(command.items)
    existing = None
    previous_items: List[SalesItem] = []
    if command.transaction_id is not None:
        # Locks win over every other rule.
        existing = get_sales_transaction(context, command.transaction_id)
        lifecycle.require_sales_unlocked(existing.status, action="edit the transaction")
        previous_items = data_manager.iter_sales_items(context.workbook, existing.transaction_id)
        if previous_items != items:
            lifecycle.require_sales_items_editable(existing.status)

    associate = get_sales_associate(context, command.sales_associate_id)
    payment_type = _to_payment_type(command.payment_type)
    transaction_date = _resolve_date(command.transaction_date)
    due_date = lifecycle.validate_credit_terms(payment_type, transaction_date, command.due_date)
    _validate_sales_items(context, items)
    stock = data_manager.read_stock_levels(context.workbook)

    if existing is None:
        if not associate.is_active:
            log.warning("Attempted sale with inactive sales associate '%s'", associate.sales_associate_id)
            raise BusinessRuleViolation(f"Sales associate '{associate.sales_associate_id}' is inactive")
        changes = stock_guard.apply_sale_creation(stock, items)
        transaction = SalesTransaction(
            transaction_id=generate_id("S"),
            sales_associate_id=associate.sales_associate_id,
            payment_type=payment_type,
            transaction_date=transaction_date,
            due_date=due_date,
        )
    else:
        shippings = data_manager.iter_shippings(context.workbook, existing.transaction_id)
        paid = payments_total(data_manager.iter_payments(context.workbook, existing.transaction_id))
        total = _sales_total(context, items, shippings)
        ensure_total_covers_payments(total, paid)
        changes = stock_guard.apply_sale_update(stock, previous_items, items)
        transaction = replace(
            existing,
            sales_associate_id=associate.sales_associate_id,
            payment_type=payment_type,
            transaction_date=transaction_date,
            due_date=due_date,
            status=derive_sales_status(payment_type, total, paid),
        )

    data_manager.write_sales_transaction(context.workbook, transaction, items)
    data_manager.write_stock_levels(context.workbook, changes)
    _invalidate_cache(context, "books", "sales_transactions")
    log.info(
        "Saved sales transaction '%s' with %d item(s) (status=%s)",
        transaction.transaction_id,
        len(items),
        transaction.status.label,
    )
    return transaction


def delete_sales_transaction(context: RuntimeContext, transaction_id: str) -> Dict[str, int]:
    """Delete a sales transaction and give its quantities back to stock.

    The restored quantities are the stored ``(book_id, quantity)`` rows, not a
    recomputation from the current catalogue.

    Returns:
        dict[str, int]: New stock level of every restored book.

    Raises:
        MissingReferenceError: If the transaction is unknown.
        LockedTransactionError: If the transaction is Lunas.
    """
    transaction = get_sales_transaction(context, transaction_id)
    lifecycle.require_sales_unlocked(transaction.status, action="delete the transaction")
    items = data_manager.iter_sales_items(context.workbook, transaction_id)
    stock = data_manager.read_stock_levels(context.workbook)
    changes = stock_guard.reverse_sale_on_delete(stock, items)

    data_manager.write_stock_levels(context.workbook, changes)
    for sheet_name in (
        data_manager.SALES_ITEMS_SHEET,
        data_manager.SHIPPINGS_SHEET,
        data_manager.PAYMENTS_SHEET,
        data_manager.SALES_TRANSACTIONS_SHEET,
    ):
        data_manager.delete_rows(context.workbook, sheet_name, "TransactionID", transaction_id)
    _invalidate_cache(context, "books", "sales_transactions")
    log.info("Deleted sales transaction '%s' and restored %d book(s)", transaction_id, len(changes))
    return changes


# ---------------------------------------------------------------------------
# Payments and shipping
# ---------------------------------------------------------------------------


def add_payment(context: RuntimeContext, command: PaymentCommand) -> Payment:
    """Record a payment and re-derive the transaction status.

    Raises:
        MissingReferenceError: If the transaction is unknown.
        LockedTransactionError: If the transaction is already Lunas.
        ValidationError: If the amount is not positive.
        OverpaymentError: If the amount exceeds the remaining balance.
    """
    transaction = get_sales_transaction(context, command.transaction_id)
    lifecycle.require_sales_unlocked(transaction.status, action="add a payment")
    amount = _to_money(command.amount, label="Payment amount")
    summary = get_sales_summary(context, command.transaction_id)
    validate_payment(amount, summary.remaining_balance)

    payment = Payment(
        payment_id=generate_id("PAY"),
        transaction_id=transaction.transaction_id,
        payment_date=_resolve_date(command.payment_date),
        amount=amount,
        note=command.note,
    )
    data_manager.append_payment(context.workbook, payment)
    log.info("Recorded payment '%s' of %s on '%s'", payment.payment_id, amount, transaction.transaction_id)
    _sync_sales_status(context, transaction)
    return payment


def _find_payment(context: RuntimeContext, payment_id: str) -> Payment:
    for payment in data_manager.iter_payments(context.workbook):
        if payment.payment_id == payment_id:
            return payment
    log.warning("Payment lookup failed for id '%s'", payment_id)
    raise MissingReferenceError(f"Unknown payment id: {payment_id}")


def delete_payment(context: RuntimeContext, payment_id: str) -> SalesTransaction:
    """Remove a payment from a transaction that is not yet Lunas."""
    payment = _find_payment(context, payment_id)
    transaction = get_sales_transaction(context, payment.transaction_id)
    lifecycle.require_sales_unlocked(transaction.status, action="remove a payment")
    data_manager.delete_rows(context.workbook, data_manager.PAYMENTS_SHEET, "PaymentID", payment_id)
    log.info("Deleted payment '%s' from '%s'", payment_id, transaction.transaction_id)
    return _sync_sales_status(context, transaction)


def _find_shipping(context: RuntimeContext, shipping_id: str) -> Shipping:
    for shipping in data_manager.iter_shippings(context.workbook):
        if shipping.shipping_id == shipping_id:
            return shipping
    log.warning("Shipping lookup failed for id '%s'", shipping_id)
    raise MissingReferenceError(f"Unknown shipping id: {shipping_id}")


def _check_total_after_shipping_change(
    context: RuntimeContext,
    transaction_id: str,
    shippings: Sequence[Shipping],
) -> None:
    items = data_manager.iter_sales_items(context.workbook, transaction_id)
    paid = payments_total(data_manager.iter_payments(context.workbook, transaction_id))
    ensure_total_covers_payments(_sales_total(context, items, shippings), paid)


def add_or_update_shipping(context: RuntimeContext, command: ShippingCommand) -> Shipping:
    """Attach a shipment to a transaction, or edit one it already has.

    Raises:
        MissingReferenceError: If the transaction, the expedition or the
            shipping to edit is unknown.
        LockedTransactionError: If the transaction is Lunas.
        ValidationError: If the amount is negative or the shipping belongs to
            another transaction.
        OverpaymentError: If a lower amount would push the total below what
            has already been paid.
    """
    transaction = get_sales_transaction(context, command.transaction_id)
    lifecycle.require_sales_unlocked(transaction.status, action="edit shipping")
    get_expedition(context, command.expedition_id)
    amount = _to_money(command.total_amount, label="Shipping amount")
    if amount < 0:
        log.error("Rejected negative shipping amount %s", amount)
        raise ValidationError("Shipping amount must be zero or positive")

    others = data_manager.iter_shippings(context.workbook, transaction.transaction_id)
    if command.shipping_id is not None:
        existing = _find_shipping(context, command.shipping_id)
        if existing.transaction_id != transaction.transaction_id:
            raise ValidationError(
                f"Shipping '{command.shipping_id}' does not belong to '{transaction.transaction_id}'"
            )
        others = [s for s in others if s.shipping_id != command.shipping_id]

    shipping = Shipping(
        shipping_id=command.shipping_id or generate_id("SHP"),
        transaction_id=transaction.transaction_id,
        expedition_id=command.expedition_id,
        no_resi=command.no_resi,
        total_amount=amount,
    )
    _check_total_after_shipping_change(context, transaction.transaction_id, [*others, shipping])
    data_manager.write_shipping(context.workbook, shipping)
    log.info("Saved shipping '%s' on '%s' (%s)", shipping.shipping_id, transaction.transaction_id, amount)
    _sync_sales_status(context, transaction)
    return shipping


def delete_shipping(context: RuntimeContext, shipping_id: str) -> SalesTransaction:
    """Remove a shipment from a transaction that is not yet Lunas."""
    shipping = _find_shipping(context, shipping_id)
    transaction = get_sales_transaction(context, shipping.transaction_id)
    lifecycle.require_sales_unlocked(transaction.status, action="remove shipping")
    remaining = [
        s
        for s in data_manager.iter_shippings(context.workbook, transaction.transaction_id)
        if s.shipping_id != shipping_id
    ]
    _check_total_after_shipping_change(context, transaction.transaction_id, remaining)
    data_manager.delete_rows(context.workbook, data_manager.SHIPPINGS_SHEET, "ShippingID", shipping_id)
    log.info("Deleted shipping '%s' from '%s'", shipping_id, transaction.transaction_id)
    return _sync_sales_status(context, transaction)


# ---------------------------------------------------------------------------
# Purchase transactions
# ---------------------------------------------------------------------------


def persist_purchase_transaction(
    context: RuntimeContext, command: PurchaseTransactionCommand
) -> PurchaseTransaction:
    """Create or update a pending purchase.

    Unit prices are checked again against the books' current selling prices,
    so a price that was valid at selection but exceeds a since-lowered selling
    price is rejected here. An edit of a Completed or Cancelled purchase is
    refused before any of those checks run.

    Raises:
        ValidationError: For an empty item list or a malformed line.
        MissingReferenceError: If the supplier, a book or the purchase to
            update is unknown.
        LockedTransactionError: If the purchase is Completed or Cancelled.
    """
    existing = None
    if command.purchase_id is not None:
        existing = get_purchase_transaction(context, command.purchase_id)
        lifecycle.require_purchase_editable(existing.status)

    supplier = get_publisher(context, command.supplier_id)
    items = list(command.items)
    if not items:
        log.error("Purchase transaction submitted without items")
        raise ValidationError("A purchase transaction needs at least one item")
    for item in items:
        validate_purchase_item(item, get_book(context, item.book_id))

    if existing is None:
        transaction = PurchaseTransaction(
            purchase_id=generate_id("P"),
            supplier_id=supplier.publisher_id,
            purchase_date=_resolve_date(command.purchase_date),
            note=command.note,
        )
    else:
        transaction = replace(
            existing,
            supplier_id=supplier.publisher_id,
            purchase_date=_resolve_date(command.purchase_date or existing.purchase_date),
            note=command.note,
        )

    data_manager.write_purchase_transaction(context.workbook, transaction, items)
    _invalidate_cache(context, "purchase_transactions")
    log.info("Saved purchase transaction '%s' with %d item(s)", transaction.purchase_id, len(items))
    return transaction


def complete_purchase(context: RuntimeContext, purchase_id: str) -> PurchaseTransaction:
    """Move a pending purchase to Completed and add its quantities to stock.

    Raises:
        MissingReferenceError: If the purchase is unknown.
        LockedTransactionError: If the purchase is not Pending.
    """
    transaction = lifecycle.complete_purchase(get_purchase_transaction(context, purchase_id))
    items = data_manager.iter_purchase_items(context.workbook, purchase_id)
    stock = data_manager.read_stock_levels(context.workbook)
    changes = stock_guard.apply_purchase_completion(stock, items)

    data_manager.write_stock_levels(context.workbook, changes)
    data_manager.update_purchase_status(context.workbook, purchase_id, transaction.status)
    _invalidate_cache(context, "books", "purchase_transactions")
    log.info("Completed purchase '%s'; restocked %d book(s)", purchase_id, len(changes))
    return transaction


def cancel_purchase(context: RuntimeContext, purchase_id: str) -> PurchaseTransaction:
    """Move a pending purchase to Cancelled. Stock is untouched."""
    transaction = stock_guard.apply_purchase_cancellation(get_purchase_transaction(context, purchase_id))
    data_manager.update_purchase_status(context.workbook, purchase_id, transaction.status)
    _invalidate_cache(context, "purchase_transactions")
    log.info("Cancelled purchase '%s'", purchase_id)
    return transaction


def delete_purchase_transaction(context: RuntimeContext, purchase_id: str) -> None:
    """Delete a Pending or Cancelled purchase.

    Raises:
        LockedTransactionError: If the purchase is Completed; its quantities
            are already part of stock.
    """
    transaction = get_purchase_transaction(context, purchase_id)
    if transaction.status is PurchaseStatus.COMPLETED:
        log.error("Rejected delete of completed purchase '%s'", purchase_id)
        raise LockedTransactionError(f"Completed purchase '{purchase_id}' cannot be deleted")
    data_manager.delete_rows(context.workbook, data_manager.PURCHASE_ITEMS_SHEET, "PurchaseID", purchase_id)
    data_manager.delete_rows(context.workbook, data_manager.PURCHASE_TRANSACTIONS_SHEET, "PurchaseID", purchase_id)
    _invalidate_cache(context, "purchase_transactions")
    log.info("Deleted purchase transaction '%s'", purchase_id)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def stock_report(context: RuntimeContext, *, include_inactive: bool = False) -> List[StockReportRow]:
    """List stock levels, flagging books at or below the low-stock threshold."""
    threshold = context.settings.low_stock_threshold
    rows = [
        StockReportRow(
            book_id=book.book_id,
            title=book.title,
            category_code=book.category_code,
            stock=book.stock,
            low_stock=book.stock <= threshold,
        )
        for book in list_books(context, include_inactive=include_inactive)
    ]
    log.debug("Built stock report with %d rows (threshold=%d)", len(rows), threshold)
    return rows


def credits_report(context: RuntimeContext, *, as_of: Optional[date] = None) -> CreditsReport:
    """Outstanding credit sales: credit terms with a positive remaining balance.

    A row is overdue when its due date lies before ``as_of`` (today by
    default).
    """
    as_of = _resolve_date(as_of)
    rows = []
    for transaction in list_sales_transactions(context):
        if transaction.payment_type is not PaymentType.CREDIT:
            continue
        summary = get_sales_summary(context, transaction.transaction_id)
        if summary.remaining_balance <= 0:
            continue
        rows.append(
            CreditReportRow(
                transaction_id=transaction.transaction_id,
                sales_associate_id=transaction.sales_associate_id,
                transaction_date=transaction.transaction_date,
                due_date=transaction.due_date,
                grand_total=summary.grand_total,
                paid=summary.payments_total,
                remaining=summary.remaining_balance,
                overdue=transaction.due_date is not None and transaction.due_date < as_of,
            )
        )
    return CreditsReport(
        as_of=as_of,
        rows=tuple(rows),
        total_outstanding=sum((row.remaining for row in rows), Decimal("0")),
        overdue_count=sum(1 for row in rows if row.overdue),
    )


def _in_period(value: date, start_date: Optional[date], end_date: Optional[date]) -> bool:
    if start_date is not None and value < start_date:
        return False
    if end_date is not None and value > end_date:
        return False
    return True


def sales_report(
    context: RuntimeContext,
    *,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    payment_type: Optional[PaymentType] = None,
    status: Optional[SalesStatus] = None,
    sales_associate_id: Optional[str] = None,
) -> SalesReport:
    """List sales transactions matching every supplied filter, with totals.

    The period bounds are inclusive. Filters left as ``None`` match all rows.

    Args:
        context (RuntimeContext): Runtime context providing workbook access.
        start_date (date | None): First transaction date to include.
        end_date (date | None): Last transaction date to include.
        payment_type (PaymentType | None): Cash or credit only.
        status (SalesStatus | None): Restrict to one status.
        sales_associate_id (str | None): Restrict to one associate.

    Returns:
        SalesReport: Matching rows ordered by date, the overall total and
            the split between cash and credit sales.
    """
    if payment_type is not None:
        payment_type = _to_payment_type(payment_type)
    if status is not None:
        status = SalesStatus(status)

    rows = []
    for transaction in list_sales_transactions(context):
        if not _in_period(transaction.transaction_date, start_date, end_date):
            continue
        if payment_type is not None and transaction.payment_type != payment_type:
            continue
        if status is not None and transaction.status != status:
            continue
        if sales_associate_id is not None and transaction.sales_associate_id != sales_associate_id:
            continue
        summary = get_sales_summary(context, transaction.transaction_id)
        rows.append(
            SalesReportRow(
                transaction_id=transaction.transaction_id,
                sales_associate_id=transaction.sales_associate_id,
                transaction_date=transaction.transaction_date,
                payment_type=transaction.payment_type,
                status=SalesStatus(transaction.status),
                grand_total=summary.grand_total,
                paid=summary.payments_total,
                remaining=summary.remaining_balance,
            )
        )
    rows.sort(key=lambda row: (row.transaction_date, row.transaction_id))

    def _total(selected) -> Decimal:
        return sum((row.grand_total for row in selected), Decimal("0"))

    report = SalesReport(
        start_date=start_date,
        end_date=end_date,
        rows=tuple(rows),
        total_amount=_total(rows),
        cash_total=_total(row for row in rows if row.payment_type == PaymentType.CASH),
        credit_total=_total(row for row in rows if row.payment_type == PaymentType.CREDIT),
    )
    log.debug("Built sales report with %d rows", len(rows))
    return report


def purchase_report(
    context: RuntimeContext,
    *,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    supplier_id: Optional[str] = None,
    status: Optional[PurchaseStatus] = None,
) -> PurchaseReport:
    """List purchases in a period, optionally for one supplier or status.

    Besides the overall total the report groups totals per supplier and counts
    completed and pending purchases.
    """
    if status is not None:
        status = PurchaseStatus(status)

    rows = []
    for transaction in list_purchase_transactions(context):
        if not _in_period(transaction.purchase_date, start_date, end_date):
            continue
        if supplier_id is not None and transaction.supplier_id != supplier_id:
            continue
        if status is not None and transaction.status != status:
            continue
        summary = get_purchase_summary(context, transaction.purchase_id)
        rows.append(
            PurchaseReportRow(
                purchase_id=transaction.purchase_id,
                supplier_id=transaction.supplier_id,
                purchase_date=transaction.purchase_date,
                status=PurchaseStatus(transaction.status),
                title_count=summary.title_count,
                total_quantity=summary.total_quantity,
                grand_total=summary.grand_total,
            )
        )
    rows.sort(key=lambda row: (row.purchase_date, row.purchase_id))

    by_supplier: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for row in rows:
        by_supplier[row.supplier_id] += row.grand_total

    return PurchaseReport(
        start_date=start_date,
        end_date=end_date,
        rows=tuple(rows),
        total_amount=sum((row.grand_total for row in rows), Decimal("0")),
        completed_count=sum(1 for row in rows if row.status is PurchaseStatus.COMPLETED),
        pending_count=sum(1 for row in rows if row.status is PurchaseStatus.PENDING),
        by_supplier=dict(by_supplier),
    )


def _end_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def calculate_sla_status(order_date: Optional[date], payment_date: Optional[date]) -> SLAStatus:
    """Classify a payment by the calendar month it landed in.

    Paid by the end of the order's month is on time, by the end of the
    following month is ``h+1``, anything later is late.
    """
    if order_date is None or payment_date is None:
        return SLAStatus.UNKNOWN
    if payment_date <= _end_of_month(order_date.year, order_date.month):
        return SLAStatus.ONTIME
    next_year, next_month = (order_date.year + 1, 1) if order_date.month == 12 else (order_date.year, order_date.month + 1)
    if payment_date <= _end_of_month(next_year, next_month):
        return SLAStatus.H_PLUS_ONE
    return SLAStatus.LATE


def payment_sla_summary(context: RuntimeContext) -> Dict[SLAStatus, int]:
    """Count every recorded payment per SLA bucket."""
    counts = {status: 0 for status in SLAStatus}
    by_id = _ensure_sales_transactions_cache(context)["by_id"]
    for payment in data_manager.iter_payments(context.workbook):
        transaction = by_id.get(payment.transaction_id)
        order_date = transaction.transaction_date if transaction is not None else None
        counts[calculate_sla_status(order_date, payment.payment_date)] += 1
    return counts
