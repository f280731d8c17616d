"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from bookstore_erp import data_manager
from bookstore_erp.constants import PaymentType, PurchaseStatus, SalesStatus, SheetName
from bookstore_erp.models import (
    Book,
    Payment,
    Publisher,
    PurchaseItem,
    PurchaseTransaction,
    SalesItem,
    SalesTransaction,
    Shipping,
)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    assert data_manager.find_config_file(config_file) == config_file


def test_find_config_file_discovers_in_parent_directory(tmp_path, monkeypatch):
    """Auto-discovery walks up from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=bookstore_master.xlsx")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    parser = data_manager.read_config(config_file)

    assert parser.get("System", "StoreName") == "Toko Buku Uji"
    assert parser.get("Policy", "DiscountCategory") == "LKS"


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    bundle = config_factory(make_relative=True, low_stock_threshold=3)
    parser = configparser.ConfigParser()
    parser.read(bundle.config_path)

    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)

    assert settings.data_file == (bundle.config_path.parent / bundle.workbook_path.name).resolve()
    assert settings.store_name == "Toko Buku Uji"
    assert settings.low_stock_threshold == 3


def test_parse_settings_policy_section_is_optional(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[System]\nDataFile=/tmp/x.xlsx\nStoreName=Toko\nSchemaVersion=1.0.0\n")

    settings = data_manager.parse_settings(parser, base_path=tmp_path)

    assert settings.discount_category == "LKS"
    assert settings.low_stock_threshold == 5


def test_parse_settings_normalizes_discount_category(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile=x.xlsx\nStoreName=Toko\nSchemaVersion=1.0.0\n[Policy]\nDiscountCategory= lks \n"
    )

    assert data_manager.parse_settings(parser, base_path=tmp_path).discount_category == "LKS"


def test_parse_settings_requires_system_section(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def test_open_workbook_returns_openpyxl_instance(master_workbook_path):
    assert isinstance(data_manager.open_workbook(master_workbook_path), OpenpyxlWorkbook)


def test_open_workbook_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "missing.xlsx")


def test_master_workbook_has_every_sheet(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)

    assert sorted(workbook.sheetnames) == sorted(member.value for member in SheetName)
    for sheet_name, columns in data_manager.SHEET_COLUMNS.items():
        assert [cell.value for cell in workbook[sheet_name][1]] == list(columns)


def test_save_and_refresh_round_trip(master_workbook_path, tmp_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_publisher(workbook, Publisher("PUB-1", "Erlangga"))
    copy_path = tmp_path / "copy" / "copy.xlsx"
    data_manager.save_workbook(workbook, copy_path)

    refreshed = data_manager.refresh_workbook(copy_path)

    assert refreshed is not workbook
    assert [p.publisher_id for p in data_manager.iter_publishers(refreshed)] == ["PUB-1"]
    assert list(data_manager.iter_publishers(data_manager.open_workbook(master_workbook_path))) == []


# ---------------------------------------------------------------------------
# Generic row helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def workbook(master_workbook_path):
    return data_manager.open_workbook(master_workbook_path)


def test_iter_raw_rows_skips_blank_rows(workbook):
    sheet = workbook[data_manager.PUBLISHERS_SHEET]
    sheet.append(["PUB-1", "A", True])
    sheet.append([None, None, None])
    sheet.append(["PUB-2", "B", False])

    rows = list(data_manager.iter_raw_rows(workbook, data_manager.PUBLISHERS_SHEET))

    assert [row[0] for row in rows] == ["PUB-1", "PUB-2"]


def test_locate_row_and_unknown_column(workbook):
    data_manager.append_publisher(workbook, Publisher("PUB-1", "A"))
    data_manager.append_publisher(workbook, Publisher("PUB-2", "B"))

    assert data_manager.locate_row(workbook, data_manager.PUBLISHERS_SHEET, "PublisherID", "PUB-2") == 3
    assert data_manager.locate_row(workbook, data_manager.PUBLISHERS_SHEET, "PublisherID", "PUB-9") is None
    with pytest.raises(KeyError):
        data_manager.locate_row(workbook, data_manager.PUBLISHERS_SHEET, "Nope", "PUB-1")


def test_update_row_changes_selected_columns(workbook):
    data_manager.append_publisher(workbook, Publisher("PUB-1", "Lama"))

    data_manager.update_row(
        workbook, data_manager.PUBLISHERS_SHEET, "PublisherID", "PUB-1", field_values={"Name": "Baru"}
    )

    assert next(iter(data_manager.iter_publishers(workbook))).name == "Baru"


def test_update_row_missing_row_raises(workbook):
    with pytest.raises(KeyError):
        data_manager.update_row(
            workbook, data_manager.PUBLISHERS_SHEET, "PublisherID", "PUB-1", field_values={"Name": "X"}
        )


def test_delete_rows_removes_every_match(workbook):
    for book_id in ("A", "B", "A"):
        workbook[data_manager.SALES_ITEMS_SHEET].append(["S-1" if book_id == "A" else "S-2", book_id, 1, 0, 0])

    removed = data_manager.delete_rows(workbook, data_manager.SALES_ITEMS_SHEET, "TransactionID", "S-1")

    assert removed == 2
    assert data_manager.iter_sales_items(workbook, "S-1") == []
    assert [item.book_id for item in data_manager.iter_sales_items(workbook, "S-2")] == ["B"]


# ---------------------------------------------------------------------------
# Typed records
# ---------------------------------------------------------------------------


def test_book_round_trip_and_stock_levels(workbook):
    book = Book("LKS-1", "LKS Matematika", "LKS", Decimal("100000"), 10, purchasing_price=Decimal("70000"))
    data_manager.append_book(workbook, book)

    assert list(data_manager.iter_books(workbook)) == [book]
    data_manager.write_stock_levels(workbook, {"LKS-1": 4})
    assert data_manager.read_stock_levels(workbook) == {"LKS-1": 4}


def test_deserialize_book_coerces_cell_types():
    book = data_manager.deserialize_book((101, "Judul", "BT", 45000.5, None, 3.0, 1))

    assert book == Book("101", "Judul", "BT", Decimal("45000.5"), 3, None, True)


def test_default_sales_associate_is_seeded(workbook):
    associates = list(data_manager.iter_sales_associates(workbook))

    assert [a.sales_associate_id for a in associates] == ["SA-UMUM"]
    assert associates[0].payment_type is PaymentType.CASH


def test_sales_transaction_write_replaces_items(workbook):
    header = SalesTransaction("S-1", "SA-1", PaymentType.CREDIT, date(2024, 1, 10), date(2024, 2, 10))
    data_manager.write_sales_transaction(
        workbook,
        header,
        [SalesItem("A", 2, Decimal("1000"), Decimal("5")), SalesItem("B", 1)],
    )

    data_manager.write_sales_transaction(workbook, header, [SalesItem("A", 3)])
    data_manager.update_sales_status(workbook, "S-1", SalesStatus.ANGSURAN)

    stored = list(data_manager.iter_sales_transactions(workbook))
    assert stored == [SalesTransaction("S-1", "SA-1", PaymentType.CREDIT, date(2024, 1, 10), date(2024, 2, 10), SalesStatus.ANGSURAN)]
    assert data_manager.iter_sales_items(workbook, "S-1") == [SalesItem("A", 3)]


def test_write_sales_transaction_requires_id(workbook):
    with pytest.raises(ValueError):
        data_manager.write_sales_transaction(
            workbook, SalesTransaction(None, "SA-1", PaymentType.CASH, date(2024, 1, 1)), []
        )


def test_deserialize_sales_transaction_accepts_datetime_cells():
    transaction = data_manager.deserialize_sales_transaction(
        ("S-1", "SA-1", "T", datetime(2024, 1, 10, 8, 30), None, 1)
    )

    assert transaction.transaction_date == date(2024, 1, 10)
    assert transaction.due_date is None
    assert transaction.status is SalesStatus.LUNAS


def test_payments_and_shippings_are_filtered_by_transaction(workbook):
    data_manager.append_payment(workbook, Payment("PAY-1", "S-1", date(2024, 1, 11), Decimal("5000"), "DP"))
    data_manager.append_payment(workbook, Payment("PAY-2", "S-2", date(2024, 1, 12), Decimal("7000")))
    data_manager.write_shipping(workbook, Shipping("SHP-1", "S-1", "EXP-1", "JN01", Decimal("12000")))
    data_manager.write_shipping(workbook, Shipping("SHP-1", "S-1", "EXP-1", "JN02", Decimal("15000")))

    assert [p.payment_id for p in data_manager.iter_payments(workbook, "S-1")] == ["PAY-1"]
    assert len(data_manager.iter_payments(workbook)) == 2
    assert data_manager.iter_shippings(workbook, "S-1") == [
        Shipping("SHP-1", "S-1", "EXP-1", "JN02", Decimal("15000"))
    ]


def test_purchase_transaction_round_trip(workbook):
    header = PurchaseTransaction("P-1", "PUB-1", date(2024, 3, 1), "Semester 2")
    items = [PurchaseItem("A", 5, Decimal("60000"))]
    data_manager.write_purchase_transaction(workbook, header, items)
    data_manager.update_purchase_status(workbook, "P-1", PurchaseStatus.COMPLETED)

    stored = list(data_manager.iter_purchase_transactions(workbook))

    assert stored[0].status is PurchaseStatus.COMPLETED
    assert stored[0].note == "Semester 2"
    assert data_manager.iter_purchase_items(workbook, "P-1") == items


def test_records_survive_save_and_reload(workbook, master_workbook_path):
    header = SalesTransaction("S-9", "SA-1", PaymentType.CASH, date(2024, 5, 2))
    data_manager.write_sales_transaction(workbook, header, [SalesItem("A", 2, Decimal("2500"), Decimal("12.5"))])
    data_manager.save_workbook(workbook, master_workbook_path)

    reloaded = openpyxl.load_workbook(master_workbook_path)

    assert list(data_manager.iter_sales_transactions(reloaded)) == [header]
    assert data_manager.iter_sales_items(reloaded, "S-9") == [SalesItem("A", 2, Decimal("2500"), Decimal("12.5"))]
