"""Enumerations shared across the bookstore ERP modules.

Centralises domain constants so that the data access layer (DAL), the pure
transaction core, the business logic layer (BLL) and the CLI rely on a single
source of truth for status codes, payment types and sheet names.
"""

from __future__ import annotations

from enum import Enum, IntEnum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Book category whose items accept promotion and percentage discount.
DEFAULT_DISCOUNT_CATEGORY = "LKS"

# Books at or below this stock level are flagged by the stock report.
DEFAULT_LOW_STOCK_THRESHOLD = 5


class PaymentType(str, Enum):
    """Enumerate the payment terms of a sales transaction."""

    CASH = "T"
    CREDIT = "K"

    @property
    def label(self) -> str:
        return "Tunai" if self is PaymentType.CASH else "Kredit"


class SalesStatus(IntEnum):
    """Status codes of a sales transaction."""

    PESANAN = 0
    LUNAS = 1
    ANGSURAN = 2

    @property
    def label(self) -> str:
        return {
            SalesStatus.PESANAN: "Pesanan",
            SalesStatus.LUNAS: "Lunas",
            SalesStatus.ANGSURAN: "Angsuran",
        }[self]


class PurchaseStatus(IntEnum):
    """Status codes of a purchase transaction."""

    PENDING = 0
    COMPLETED = 1
    CANCELLED = 2

    @property
    def label(self) -> str:
        return {
            PurchaseStatus.PENDING: "Pending",
            PurchaseStatus.COMPLETED: "Selesai",
            PurchaseStatus.CANCELLED: "Dibatalkan",
        }[self]


class SLAStatus(str, Enum):
    """Timeliness of a payment relative to the month its order was placed."""

    ONTIME = "ontime"
    H_PLUS_ONE = "h+1"
    LATE = "late"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        return {
            SLAStatus.ONTIME: "Tepat Waktu",
            SLAStatus.H_PLUS_ONE: "H+1",
            SLAStatus.LATE: "Terlambat",
            SLAStatus.UNKNOWN: "Tidak Ada Data",
        }[self]


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    BOOKS = "Books"
    SALES_ASSOCIATES = "SalesAssociates"
    PUBLISHERS = "Publishers"
    EXPEDITIONS = "Expeditions"
    SALES_TRANSACTIONS = "SalesTransactions"
    SALES_ITEMS = "SalesItems"
    SHIPPINGS = "Shippings"
    PAYMENTS = "Payments"
    PURCHASE_TRANSACTIONS = "PurchaseTransactions"
    PURCHASE_ITEMS = "PurchaseItems"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_DISCOUNT_CATEGORY",
    "DEFAULT_LOW_STOCK_THRESHOLD",
    "PaymentType",
    "SalesStatus",
    "PurchaseStatus",
    "SLAStatus",
    "SheetName",
]
