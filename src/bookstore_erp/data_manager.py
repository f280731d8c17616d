"""Data access layer for the bookstore ERP.

This module provides low-level helpers that read from and write to the
``bookstore_master.xlsx`` workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading structured records and appending, updating or
   deleting individual rows.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import (
    DEFAULT_DISCOUNT_CATEGORY,
    DEFAULT_LOW_STOCK_THRESHOLD,
    PaymentType,
    PurchaseStatus,
    SalesStatus,
    SheetName,
)
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


CONFIG_FILE_NAME = "config.ini"

BOOKS_SHEET = SheetName.BOOKS.value
SALES_ASSOCIATES_SHEET = SheetName.SALES_ASSOCIATES.value
PUBLISHERS_SHEET = SheetName.PUBLISHERS.value
EXPEDITIONS_SHEET = SheetName.EXPEDITIONS.value
SALES_TRANSACTIONS_SHEET = SheetName.SALES_TRANSACTIONS.value
SALES_ITEMS_SHEET = SheetName.SALES_ITEMS.value
SHIPPINGS_SHEET = SheetName.SHIPPINGS.value
PAYMENTS_SHEET = SheetName.PAYMENTS.value
PURCHASE_TRANSACTIONS_SHEET = SheetName.PURCHASE_TRANSACTIONS.value
PURCHASE_ITEMS_SHEET = SheetName.PURCHASE_ITEMS.value

# Column order of every sheet; serializers below follow it exactly.
SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    BOOKS_SHEET: ["BookID", "Title", "CategoryCode", "Price", "PurchasingPrice", "Stock", "IsActive"],
    SALES_ASSOCIATES_SHEET: ["SalesAssociateID", "Name", "Discount", "PaymentType", "IsActive"],
    PUBLISHERS_SHEET: ["PublisherID", "Name", "IsActive"],
    EXPEDITIONS_SHEET: ["ExpeditionID", "Name", "IsActive"],
    SALES_TRANSACTIONS_SHEET: [
        "TransactionID",
        "SalesAssociateID",
        "PaymentType",
        "TransactionDate",
        "DueDate",
        "Status",
    ],
    SALES_ITEMS_SHEET: ["TransactionID", "BookID", "Quantity", "Promotion", "Discount"],
    SHIPPINGS_SHEET: ["ShippingID", "TransactionID", "ExpeditionID", "NoResi", "TotalAmount"],
    PAYMENTS_SHEET: ["PaymentID", "TransactionID", "PaymentDate", "Amount", "Note"],
    PURCHASE_TRANSACTIONS_SHEET: ["PurchaseID", "SupplierID", "PurchaseDate", "Note", "Status"],
    PURCHASE_ITEMS_SHEET: ["PurchaseID", "BookID", "Quantity", "Price"],
}


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    store_name: str
    schema_version: str
    discount_category: str = DEFAULT_DISCOUNT_CATEGORY
    low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. When no explicit path is given the function walks up
    from the current working directory toward the filesystem root looking for a
    file named ``CONFIG_FILE_NAME``. The first match that exists on disk is
    considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser(inline_comment_prefixes=(";", "#"))
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` entries are mandatory. The optional ``[Policy]`` section
    overrides the discount-eligible category and the low-stock threshold.
    Relative ``DataFile`` paths are anchored at ``base_path`` (or the current
    working directory) and resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory to use as the anchor for relative
            ``DataFile`` entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ValueError: If ``LowStockThreshold`` is not an integer.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        store_name = parser.get("System", "StoreName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    discount_category = parser.get("Policy", "DiscountCategory", fallback=DEFAULT_DISCOUNT_CATEGORY)
    low_stock_threshold = parser.getint("Policy", "LowStockThreshold", fallback=DEFAULT_LOW_STOCK_THRESHOLD)

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        store_name=store_name,
        schema_version=schema_version,
        discount_category=discount_category.strip().upper(),
        low_stock_threshold=low_stock_threshold,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the master Excel workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


# ---------------------------------------------------------------------------
# Generic sheet operations
# ---------------------------------------------------------------------------


def iter_raw_rows(workbook: Workbook, sheet_name: str) -> Iterator[Tuple[Any, ...]]:
    """Yield the value tuples of every non-empty data row of ``sheet_name``."""

    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def append_row(workbook: Workbook, sheet_name: str, values: Sequence[object]) -> None:
    workbook[sheet_name].append(list(values))


def header_map(workbook: Workbook, sheet_name: str) -> dict[str, int]:
    """Map header titles of ``sheet_name`` to 1-based column indices."""

    return {cell.value: idx + 1 for idx, cell in enumerate(workbook[sheet_name][1])}


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find the first row whose ``key_column`` equals ``key_value``.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    columns = header_map(workbook, sheet_name)
    if key_column not in columns:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = columns[key_column]
    sheet = workbook[sheet_name]
    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row[key_col_index - 1] == key_value:
            return row_idx

    return None


def locate_rows(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> List[int]:
    """Return every 1-based row index whose ``key_column`` equals ``key_value``."""

    columns = header_map(workbook, sheet_name)
    if key_column not in columns:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = columns[key_column]
    sheet = workbook[sheet_name]
    return [
        row_idx
        for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2)
        if row[key_col_index - 1] == key_value
    ]


def update_row(
    workbook: Workbook,
    sheet_name: str,
    key_column: str,
    key_value: str,
    *,
    field_values: Mapping[str, Any],
) -> None:
    """Update selected columns of the row identified by ``key_value``.

    Only the specified fields are modified, leaving other columns untouched.

    Raises:
        KeyError: If the row or any referenced column cannot be found.
    """

    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        raise KeyError(f"{sheet_name} row not found: {key_value}")

    columns = header_map(workbook, sheet_name)
    sheet = workbook[sheet_name]
    for field, value in field_values.items():
        if field not in columns:
            raise KeyError(f"Unknown {sheet_name} field: {field}")
        sheet.cell(row=row_index, column=columns[field], value=value)


def delete_rows(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> int:
    """Delete every row whose ``key_column`` equals ``key_value``.

    Rows are removed bottom-up so earlier indices stay valid.

    Returns:
        int: Number of rows removed.
    """

    indices = locate_rows(workbook, sheet_name, key_column, key_value)
    sheet = workbook[sheet_name]
    for row_index in reversed(indices):
        sheet.delete_rows(row_index)
    if indices:
        log.debug("Deleted %d row(s) from '%s' where %s=%s", len(indices), sheet_name, key_column, key_value)
    return len(indices)


# ---------------------------------------------------------------------------
# Typed readers
# ---------------------------------------------------------------------------


def iter_books(workbook: Workbook) -> Iterable[Book]:
    for raw in iter_raw_rows(workbook, BOOKS_SHEET):
        yield deserialize_book(raw)


def iter_sales_associates(workbook: Workbook) -> Iterable[SalesAssociate]:
    for raw in iter_raw_rows(workbook, SALES_ASSOCIATES_SHEET):
        yield deserialize_sales_associate(raw)


def iter_publishers(workbook: Workbook) -> Iterable[Publisher]:
    for raw in iter_raw_rows(workbook, PUBLISHERS_SHEET):
        yield Publisher(publisher_id=str(raw[0]), name=str(raw[1]), is_active=bool(raw[2]))


def iter_expeditions(workbook: Workbook) -> Iterable[Expedition]:
    for raw in iter_raw_rows(workbook, EXPEDITIONS_SHEET):
        yield Expedition(expedition_id=str(raw[0]), name=str(raw[1]), is_active=bool(raw[2]))


def iter_sales_transactions(workbook: Workbook) -> Iterable[SalesTransaction]:
    for raw in iter_raw_rows(workbook, SALES_TRANSACTIONS_SHEET):
        yield deserialize_sales_transaction(raw)


def iter_sales_items(workbook: Workbook, transaction_id: str) -> List[SalesItem]:
    """Return the committed lines of one sales transaction in sheet order."""

    return [
        deserialize_sales_item(raw)
        for raw in iter_raw_rows(workbook, SALES_ITEMS_SHEET)
        if str(raw[0]) == transaction_id
    ]


def iter_shippings(workbook: Workbook, transaction_id: Optional[str] = None) -> List[Shipping]:
    shippings = (deserialize_shipping(raw) for raw in iter_raw_rows(workbook, SHIPPINGS_SHEET))
    return [s for s in shippings if transaction_id is None or s.transaction_id == transaction_id]


def iter_payments(workbook: Workbook, transaction_id: Optional[str] = None) -> List[Payment]:
    payments = (deserialize_payment(raw) for raw in iter_raw_rows(workbook, PAYMENTS_SHEET))
    return [p for p in payments if transaction_id is None or p.transaction_id == transaction_id]


def iter_purchase_transactions(workbook: Workbook) -> Iterable[PurchaseTransaction]:
    for raw in iter_raw_rows(workbook, PURCHASE_TRANSACTIONS_SHEET):
        yield deserialize_purchase_transaction(raw)


def iter_purchase_items(workbook: Workbook, purchase_id: str) -> List[PurchaseItem]:
    return [
        deserialize_purchase_item(raw)
        for raw in iter_raw_rows(workbook, PURCHASE_ITEMS_SHEET)
        if str(raw[0]) == purchase_id
    ]


def read_stock_levels(workbook: Workbook) -> dict[str, int]:
    """Read the current ``Stock`` column straight from the sheet."""

    return {book.book_id: book.stock for book in iter_books(workbook)}


# ---------------------------------------------------------------------------
# Typed writers
# ---------------------------------------------------------------------------


def append_book(workbook: Workbook, record: Book) -> None:
    append_row(workbook, BOOKS_SHEET, serialize_book(record))


def append_sales_associate(workbook: Workbook, record: SalesAssociate) -> None:
    append_row(workbook, SALES_ASSOCIATES_SHEET, serialize_sales_associate(record))


def append_publisher(workbook: Workbook, record: Publisher) -> None:
    append_row(workbook, PUBLISHERS_SHEET, [record.publisher_id, record.name, record.is_active])


def append_expedition(workbook: Workbook, record: Expedition) -> None:
    append_row(workbook, EXPEDITIONS_SHEET, [record.expedition_id, record.name, record.is_active])


def write_sales_transaction(workbook: Workbook, record: SalesTransaction, items: Sequence[SalesItem]) -> None:
    """Insert or replace a sales header together with its full item list."""

    if record.transaction_id is None:
        raise ValueError("Sales transaction must have an id before it is written")
    values = serialize_sales_transaction(record)
    if locate_row(workbook, SALES_TRANSACTIONS_SHEET, "TransactionID", record.transaction_id) is None:
        append_row(workbook, SALES_TRANSACTIONS_SHEET, values)
    else:
        columns = SHEET_COLUMNS[SALES_TRANSACTIONS_SHEET]
        update_row(
            workbook,
            SALES_TRANSACTIONS_SHEET,
            "TransactionID",
            record.transaction_id,
            field_values=dict(zip(columns[1:], values[1:])),
        )
    delete_rows(workbook, SALES_ITEMS_SHEET, "TransactionID", record.transaction_id)
    for item in items:
        append_row(workbook, SALES_ITEMS_SHEET, serialize_sales_item(record.transaction_id, item))


def update_sales_status(workbook: Workbook, transaction_id: str, status: SalesStatus) -> None:
    update_row(
        workbook,
        SALES_TRANSACTIONS_SHEET,
        "TransactionID",
        transaction_id,
        field_values={"Status": int(status)},
    )


def write_purchase_transaction(workbook: Workbook, record: PurchaseTransaction, items: Sequence[PurchaseItem]) -> None:
    """Insert or replace a purchase header together with its full item list."""

    if record.purchase_id is None:
        raise ValueError("Purchase transaction must have an id before it is written")
    values = serialize_purchase_transaction(record)
    if locate_row(workbook, PURCHASE_TRANSACTIONS_SHEET, "PurchaseID", record.purchase_id) is None:
        append_row(workbook, PURCHASE_TRANSACTIONS_SHEET, values)
    else:
        columns = SHEET_COLUMNS[PURCHASE_TRANSACTIONS_SHEET]
        update_row(
            workbook,
            PURCHASE_TRANSACTIONS_SHEET,
            "PurchaseID",
            record.purchase_id,
            field_values=dict(zip(columns[1:], values[1:])),
        )
    delete_rows(workbook, PURCHASE_ITEMS_SHEET, "PurchaseID", record.purchase_id)
    for item in items:
        append_row(workbook, PURCHASE_ITEMS_SHEET, serialize_purchase_item(record.purchase_id, item))


def update_purchase_status(workbook: Workbook, purchase_id: str, status: PurchaseStatus) -> None:
    update_row(
        workbook,
        PURCHASE_TRANSACTIONS_SHEET,
        "PurchaseID",
        purchase_id,
        field_values={"Status": int(status)},
    )


def write_shipping(workbook: Workbook, record: Shipping) -> None:
    """Insert or replace one shipping row keyed by ``ShippingID``."""

    if record.shipping_id is None:
        raise ValueError("Shipping must have an id before it is written")
    values = serialize_shipping(record)
    if locate_row(workbook, SHIPPINGS_SHEET, "ShippingID", record.shipping_id) is None:
        append_row(workbook, SHIPPINGS_SHEET, values)
    else:
        columns = SHEET_COLUMNS[SHIPPINGS_SHEET]
        update_row(
            workbook,
            SHIPPINGS_SHEET,
            "ShippingID",
            record.shipping_id,
            field_values=dict(zip(columns[1:], values[1:])),
        )


def append_payment(workbook: Workbook, record: Payment) -> None:
    append_row(workbook, PAYMENTS_SHEET, serialize_payment(record))


def write_stock_levels(workbook: Workbook, levels: Mapping[str, int]) -> None:
    """Write new ``Stock`` values for the given books.

    The business layer only passes levels returned by the stock guard.
    """

    for book_id, level in levels.items():
        update_row(workbook, BOOKS_SHEET, "BookID", book_id, field_values={"Stock": int(level)})


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def serialize_book(record: Book) -> list[object]:
    return [
        record.book_id,
        record.title,
        record.category_code,
        record.price,
        record.purchasing_price,
        record.stock,
        record.is_active,
    ]


def serialize_sales_associate(record: SalesAssociate) -> list[object]:
    return [
        record.sales_associate_id,
        record.name,
        record.discount,
        PaymentType(record.payment_type).value,
        record.is_active,
    ]


def serialize_sales_transaction(record: SalesTransaction) -> list[object]:
    return [
        record.transaction_id,
        record.sales_associate_id,
        PaymentType(record.payment_type).value,
        record.transaction_date.isoformat(),
        record.due_date.isoformat() if record.due_date is not None else None,
        int(record.status),
    ]


def serialize_sales_item(transaction_id: str, item: SalesItem) -> list[object]:
    return [transaction_id, item.book_id, item.quantity, item.promotion, item.discount]


def serialize_shipping(record: Shipping) -> list[object]:
    return [
        record.shipping_id,
        record.transaction_id,
        record.expedition_id,
        record.no_resi,
        record.total_amount,
    ]


def serialize_payment(record: Payment) -> list[object]:
    return [
        record.payment_id,
        record.transaction_id,
        record.payment_date.isoformat(),
        record.amount,
        record.note,
    ]


def serialize_purchase_transaction(record: PurchaseTransaction) -> list[object]:
    return [
        record.purchase_id,
        record.supplier_id,
        record.purchase_date.isoformat(),
        record.note,
        int(record.status),
    ]


def serialize_purchase_item(purchase_id: str, item: PurchaseItem) -> list[object]:
    return [purchase_id, item.book_id, item.quantity, item.price]


# ---------------------------------------------------------------------------
# Deserialization
# ---------------------------------------------------------------------------


def _to_decimal(raw: object, default: str = "0") -> Decimal:
    return Decimal(str(raw)) if raw is not None else Decimal(default)


def _to_optional_decimal(raw: object) -> Optional[Decimal]:
    return Decimal(str(raw)) if raw is not None else None


def _to_int(raw: object) -> int:
    return int(Decimal(str(raw))) if raw is not None else 0


def _to_date(raw: object) -> date:
    """Normalize a date cell: openpyxl may hand back ``datetime`` or ISO text."""

    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw)[:10])


def _to_optional_date(raw: object) -> Optional[date]:
    if raw is None or raw == "":
        return None
    return _to_date(raw)


def _to_optional_str(raw: object) -> Optional[str]:
    return str(raw) if raw is not None else None


def deserialize_book(raw_row: Sequence[object]) -> Book:
    """Convert a raw ``Books`` row into a :class:`Book`.

    Prices become :class:`~decimal.Decimal`, stock an ``int``, and identifiers
    are coerced to ``str`` so numeric-looking ids survive Excel round trips.
    """

    book_id, title, category_code, price, purchasing_price, stock, is_active = raw_row[:7]
    return Book(
        book_id=str(book_id),
        title=str(title) if title is not None else "",
        category_code=str(category_code) if category_code is not None else "",
        price=_to_decimal(price, "0.00"),
        purchasing_price=_to_optional_decimal(purchasing_price),
        stock=_to_int(stock),
        is_active=bool(is_active),
    )


def deserialize_sales_associate(raw_row: Sequence[object]) -> SalesAssociate:
    sales_associate_id, name, discount, payment_type, is_active = raw_row[:5]
    return SalesAssociate(
        sales_associate_id=str(sales_associate_id),
        name=str(name) if name is not None else "",
        discount=_to_decimal(discount),
        payment_type=PaymentType(payment_type or PaymentType.CASH.value),
        is_active=bool(is_active),
    )


def deserialize_sales_transaction(raw_row: Sequence[object]) -> SalesTransaction:
    transaction_id, sales_associate_id, payment_type, transaction_date, due_date, status = raw_row[:6]
    return SalesTransaction(
        transaction_id=str(transaction_id),
        sales_associate_id=str(sales_associate_id),
        payment_type=PaymentType(payment_type),
        transaction_date=_to_date(transaction_date),
        due_date=_to_optional_date(due_date),
        status=SalesStatus(_to_int(status)),
    )


def deserialize_sales_item(raw_row: Sequence[object]) -> SalesItem:
    _, book_id, quantity, promotion, discount = raw_row[:5]
    return SalesItem(
        book_id=str(book_id),
        quantity=_to_int(quantity),
        promotion=_to_decimal(promotion),
        discount=_to_decimal(discount),
    )


def deserialize_shipping(raw_row: Sequence[object]) -> Shipping:
    shipping_id, transaction_id, expedition_id, no_resi, total_amount = raw_row[:5]
    return Shipping(
        shipping_id=str(shipping_id),
        transaction_id=_to_optional_str(transaction_id),
        expedition_id=str(expedition_id),
        no_resi=str(no_resi) if no_resi is not None else "",
        total_amount=_to_decimal(total_amount, "0.00"),
    )


def deserialize_payment(raw_row: Sequence[object]) -> Payment:
    payment_id, transaction_id, payment_date, amount, note = raw_row[:5]
    return Payment(
        payment_id=str(payment_id),
        transaction_id=_to_optional_str(transaction_id),
        payment_date=_to_date(payment_date),
        amount=_to_decimal(amount, "0.00"),
        note=_to_optional_str(note),
    )


def deserialize_purchase_transaction(raw_row: Sequence[object]) -> PurchaseTransaction:
    purchase_id, supplier_id, purchase_date, note, status = raw_row[:5]
    return PurchaseTransaction(
        purchase_id=str(purchase_id),
        supplier_id=str(supplier_id),
        purchase_date=_to_date(purchase_date),
        note=_to_optional_str(note),
        status=PurchaseStatus(_to_int(status)),
    )


def deserialize_purchase_item(raw_row: Sequence[object]) -> PurchaseItem:
    _, book_id, quantity, price = raw_row[:4]
    return PurchaseItem(book_id=str(book_id), quantity=_to_int(quantity), price=_to_decimal(price, "0.00"))
