"""Immutable domain records shared by the transaction core and the data layer.

Records are plain frozen dataclasses: they carry no behaviour beyond trivial
properties so that the pricing, balance, stock and lifecycle modules remain the
only place where rules live. Child collections (items, shippings, payments) are
kept apart from their transaction header and passed alongside it, mirroring how
the workbook stores them in separate sheets.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from .constants import PaymentType, PurchaseStatus, SalesStatus


@dataclass(frozen=True)
class Book:
    """Catalogue entry for a title held in inventory."""

    book_id: str
    title: str
    category_code: str
    price: Decimal
    stock: int
    purchasing_price: Optional[Decimal] = None
    is_active: bool = True


@dataclass(frozen=True)
class SalesAssociate:
    """Reseller through which sales transactions are booked."""

    sales_associate_id: str
    name: str
    discount: Decimal = Decimal("0")
    payment_type: PaymentType = PaymentType.CASH
    is_active: bool = True


@dataclass(frozen=True)
class Publisher:
    """Supplier of purchase transactions."""

    publisher_id: str
    name: str
    is_active: bool = True


@dataclass(frozen=True)
class Expedition:
    """Courier referenced by shipping entries."""

    expedition_id: str
    name: str
    is_active: bool = True


@dataclass(frozen=True)
class SalesItem:
    """Line of a sales transaction; its unit price is always derived."""

    book_id: str
    quantity: int
    promotion: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")


@dataclass(frozen=True)
class PurchaseItem:
    """Line of a purchase transaction with a buyer-entered unit cost."""

    book_id: str
    quantity: int
    price: Decimal


@dataclass(frozen=True)
class Shipping:
    """Shipment attached to a sales transaction."""

    shipping_id: Optional[str]
    transaction_id: Optional[str]
    expedition_id: str
    no_resi: str
    total_amount: Decimal


@dataclass(frozen=True)
class Payment:
    """Payment (installment) recorded against a sales transaction."""

    payment_id: Optional[str]
    transaction_id: Optional[str]
    payment_date: date
    amount: Decimal
    note: Optional[str] = None


@dataclass(frozen=True)
class SalesTransaction:
    """Header of a sales transaction. ``transaction_id`` is ``None`` until saved."""

    transaction_id: Optional[str]
    sales_associate_id: str
    payment_type: PaymentType
    transaction_date: date
    due_date: Optional[date] = None
    status: SalesStatus = SalesStatus.PESANAN

    @property
    def is_new(self) -> bool:
        return self.transaction_id is None


@dataclass(frozen=True)
class PurchaseTransaction:
    """Header of a purchase transaction. ``purchase_id`` is ``None`` until saved."""

    purchase_id: Optional[str]
    supplier_id: str
    purchase_date: date
    note: Optional[str] = None
    status: PurchaseStatus = PurchaseStatus.PENDING

    @property
    def is_new(self) -> bool:
        return self.purchase_id is None


__all__ = [
    "Book",
    "SalesAssociate",
    "Publisher",
    "Expedition",
    "SalesItem",
    "PurchaseItem",
    "Shipping",
    "Payment",
    "SalesTransaction",
    "PurchaseTransaction",
]
