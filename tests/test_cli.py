"""Unit tests describing the CLI presentation layer contract."""

from __future__ import annotations

import argparse
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Iterable

import pytest

from bookstore_erp import cli, constants, core_logic, data_manager, setup_excel
from bookstore_erp.errors import BusinessRuleViolation, InsufficientStockError
from bookstore_erp.models import PurchaseItem


WRITE_COMMANDS = {
    "add-book",
    "add-sales-associate",
    "add-publisher",
    "add-expedition",
    "sale",
    "pay",
    "ship",
    "delete-sale",
    "purchase",
    "complete-purchase",
    "cancel-purchase",
    "delete-purchase",
}

READ_COMMANDS = {
    "stock",
    "credits",
    "show-sale",
    "show-purchase",
    "sales-report",
    "purchase-report",
}

# ---------------------------------------------------------------------------
# Parser construction
# ---------------------------------------------------------------------------


def test_build_parser_sets_program_metadata():
    parser = cli.build_parser()

    assert isinstance(parser, argparse.ArgumentParser)
    assert parser.prog == "bookstore-cli"
    assert "bookstore" in (parser.description or "")


def test_configure_subcommands_registers_every_command(cli_parser):
    """configure_subcommands should wire both mutating and reporting commands."""

    command_table = cli.configure_subcommands(cli_parser)

    assert set(command_table) == WRITE_COMMANDS | READ_COMMANDS
    assert _registered_choices(cli_parser) == WRITE_COMMANDS | READ_COMMANDS


def test_write_and_read_specs_are_flagged(subparsers_action):
    write_specs = cli.register_write_commands(subparsers_action)
    read_specs = cli.register_read_commands(subparsers_action)

    assert set(write_specs) == WRITE_COMMANDS
    assert set(read_specs) == READ_COMMANDS
    assert all(spec.writes for spec in write_specs.values())
    assert not any(spec.writes for spec in read_specs.values())


def test_register_sale_command_configures_arguments():
    parser = argparse.ArgumentParser(prog="cli")
    subparsers = parser.add_subparsers(dest="command")
    spec = cli.register_sale_command(subparsers)
    spec.register(subparsers)

    namespace = parser.parse_args(
        [
            "sale",
            "--sales-associate-id",
            "SA-01",
            "--payment-type",
            constants.PaymentType.CREDIT.value,
            "--item",
            "LKS-1:2",
            "--item",
            "BT-1:1:5000:20",
            "--date",
            "2024-01-10",
            "--due-date",
            "2024-02-10",
            "--general-discount",
            "5",
        ]
    )

    assert namespace.command == "sale"
    assert namespace.items == [("LKS-1", 2, None, None), ("BT-1", 1, Decimal("5000"), Decimal("20"))]
    assert namespace.date == date(2024, 1, 10)
    assert namespace.due_date == date(2024, 2, 10)
    assert namespace.general_discount == Decimal("5")
    assert namespace.general_promotion is None
    assert namespace.transaction_id is None


def test_register_purchase_command_configures_arguments():
    parser = argparse.ArgumentParser(prog="cli")
    subparsers = parser.add_subparsers(dest="command")
    spec = cli.register_purchase_command(subparsers)
    spec.register(subparsers)

    namespace = parser.parse_args(
        ["purchase", "--supplier-id", "PUB-01", "--item", "LKS-1:5:60000", "--note", "Semester 2"]
    )

    assert namespace.items == [PurchaseItem("LKS-1", 5, Decimal("60000"))]
    assert namespace.supplier_id == "PUB-01"
    assert namespace.note == "Semester 2"


def test_register_purchase_action_command_uses_supplied_executor(subparsers_action):
    spec = cli.register_purchase_action_command(subparsers_action, "complete-purchase", "help", cli.run_complete_purchase)
    parser = spec.register(subparsers_action)

    assert spec.execute is cli.run_complete_purchase
    assert parser.parse_args(["--purchase-id", "P-1"]).purchase_id == "P-1"


def test_register_stock_command_supports_all_flag(subparsers_action):
    spec = cli.register_stock_command(subparsers_action)
    parser = spec.register(subparsers_action)

    assert parser.parse_args([]).include_inactive is False
    assert parser.parse_args(["--all"]).include_inactive is True


def test_register_sales_report_command_configures_filters(subparsers_action):
    spec = cli.register_sales_report_command(subparsers_action)
    parser = spec.register(subparsers_action)

    assert spec.writes is False
    defaults = parser.parse_args([])
    assert defaults.start_date is None and defaults.payment_type is None and defaults.status is None
    namespace = parser.parse_args(
        ["--start-date", "2024-01-01", "--end-date", "2024-01-31", "--payment-type", "K", "--status", "2",
         "--sales-associate-id", "SA-01"]
    )
    assert namespace.start_date == date(2024, 1, 1)
    assert namespace.end_date == date(2024, 1, 31)
    assert namespace.payment_type == "K"
    assert namespace.status == 2
    assert namespace.sales_associate_id == "SA-01"
    with pytest.raises(SystemExit):
        parser.parse_args(["--status", "7"])


def test_register_purchase_report_command_configures_filters(subparsers_action):
    spec = cli.register_purchase_report_command(subparsers_action)
    parser = spec.register(subparsers_action)

    namespace = parser.parse_args(["--supplier-id", "PUB-01", "--status", "1"])
    assert spec.execute is cli.run_purchase_report
    assert namespace.supplier_id == "PUB-01"
    assert namespace.status == 1
    assert namespace.start_date is None


# ---------------------------------------------------------------------------
# Argument types
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("LKS-1:3", ("LKS-1", 3, None, None)),
        ("LKS-1:3:1000", ("LKS-1", 3, Decimal("1000"), None)),
        ("LKS-1:3::15", ("LKS-1", 3, None, Decimal("15"))),
    ],
)
def test_sales_item_arg_parses_optional_parts(raw, expected):
    assert cli.sales_item_arg(raw) == expected


@pytest.mark.parametrize("raw", ["LKS-1", ":3", "LKS-1:x", "A:1:2:3:4", "A:1:abc"])
def test_sales_item_arg_rejects_malformed_values(raw):
    with pytest.raises(argparse.ArgumentTypeError):
        cli.sales_item_arg(raw)


@pytest.mark.parametrize("raw", ["LKS-1:3", "LKS-1:x:100", "LKS-1:1:abc"])
def test_purchase_item_arg_rejects_malformed_values(raw):
    with pytest.raises(argparse.ArgumentTypeError):
        cli.purchase_item_arg(raw)


def test_iso_date_and_money_reject_garbage():
    assert cli.iso_date("2024-02-29") == date(2024, 2, 29)
    assert cli.money("1500.50") == Decimal("1500.50")
    with pytest.raises(argparse.ArgumentTypeError):
        cli.iso_date("29/02/2024")
    with pytest.raises(argparse.ArgumentTypeError):
        cli.money("lots")


# ---------------------------------------------------------------------------
# Runtime context and dispatch helpers
# ---------------------------------------------------------------------------


def test_load_runtime_context_uses_provided_path(config_file, monkeypatch):
    sentinel_context = object()

    def fake_loader(path: Path | None) -> object:
        assert path == config_file
        return sentinel_context

    monkeypatch.setattr(core_logic, "load_runtime_context", fake_loader)
    assert cli.load_runtime_context(config_file) is sentinel_context


def test_load_runtime_context_defaults_to_search(monkeypatch):
    seen = {}

    def fake_loader(path: Path | None) -> object:
        seen["path"] = path
        return "context"

    monkeypatch.setattr(core_logic, "load_runtime_context", fake_loader)

    assert cli.load_runtime_context() == "context"
    assert seen["path"] is None


def test_dispatch_command_invokes_executor(runtime_context):
    called = {}

    def execute(context, args):
        called["context"] = context
        return 0

    spec = cli.CommandSpec("stock", "help", lambda s: s.add_parser("stock"), execute)
    result = cli.dispatch_command(runtime_context, argparse.Namespace(command="stock"), {"stock": spec})

    assert result == 0
    assert called["context"] is runtime_context


def test_dispatch_command_checks_schema_for_writes(monkeypatch, runtime_context):
    checked = []
    monkeypatch.setattr(core_logic, "ensure_schema_version", lambda context: checked.append(context))
    spec = cli.CommandSpec("pay", "help", lambda s: s.add_parser("pay"), lambda *_: 0, writes=True)

    cli.dispatch_command(runtime_context, argparse.Namespace(command="pay"), {"pay": spec})

    assert checked == [runtime_context]


def test_dispatch_command_handles_unknown_commands(runtime_context):
    with pytest.raises(KeyError):
        cli.dispatch_command(runtime_context, argparse.Namespace(command="unknown"), {})


def test_build_command_table_indexes_specs(command_spec_iterable):
    table = cli.build_command_table(command_spec_iterable)
    assert set(table) == {spec.name for spec in command_spec_iterable}


def test_build_command_table_detects_duplicate_commands():
    specs = [
        cli.CommandSpec("alpha", "A", lambda s: s.add_parser("alpha"), lambda c, a: 0),
        cli.CommandSpec("alpha", "Duplicate", lambda s: s.add_parser("alpha"), lambda c, a: 0),
    ]
    with pytest.raises(ValueError):
        cli.build_command_table(specs)


# ---------------------------------------------------------------------------
# Translation helpers
# ---------------------------------------------------------------------------


def _sale_args(**overrides) -> argparse.Namespace:
    values = dict(
        transaction_id=None,
        sales_associate_id="SA-01",
        payment_type=constants.PaymentType.CREDIT.value,
        items=[("LKS-MTK-7", 2, None, None), ("BT-IPA-8", 1, None, None)],
        date=date(2024, 1, 10),
        due_date=date(2024, 2, 10),
        general_promotion=None,
        general_discount=None,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


def test_translate_add_book_returns_payload():
    args = argparse.Namespace(
        book_id="LKS-1",
        title="LKS Matematika",
        category="LKS",
        price=Decimal("100000"),
        purchasing_price=None,
        stock=4,
    )

    assert cli.translate_add_book(args) == {
        "book_id": "LKS-1",
        "title": "LKS Matematika",
        "category_code": "LKS",
        "price": Decimal("100000"),
        "purchasing_price": None,
        "stock": 4,
    }


def test_translate_sale_seeds_associate_discount_on_eligible_lines(seeded_context):
    """Only the LKS line inherits the associate's 10% default discount."""

    command = cli.translate_sale(seeded_context, _sale_args())

    assert isinstance(command, core_logic.SalesTransactionCommand)
    assert command.payment_type is constants.PaymentType.CREDIT
    assert [(item.book_id, item.quantity, item.discount) for item in command.items] == [
        ("LKS-MTK-7", 2, Decimal("10")),
        ("BT-IPA-8", 1, Decimal("0")),
    ]
    assert command.due_date == date(2024, 2, 10)


def test_translate_sale_explicit_values_override_seed(seeded_context):
    args = _sale_args(items=[("LKS-MTK-7", 1, Decimal("5000"), Decimal("20"))])

    (item,) = cli.translate_sale(seeded_context, args).items

    assert item.promotion == Decimal("5000")
    assert item.discount == Decimal("20")


def test_translate_sale_general_discount_skips_ineligible_books(seeded_context):
    args = _sale_args(general_promotion=Decimal("2000"), general_discount=Decimal("25"))

    lks, textbook = cli.translate_sale(seeded_context, args).items

    assert (lks.promotion, lks.discount) == (Decimal("2000"), Decimal("25"))
    assert (textbook.promotion, textbook.discount) == (Decimal("0"), Decimal("0"))


def test_translate_pay_and_ship_build_commands():
    pay = cli.translate_pay(
        argparse.Namespace(transaction_id="S-1", amount=Decimal("5000"), date=None, note="DP")
    )
    ship = cli.translate_ship(
        argparse.Namespace(
            transaction_id="S-1", expedition_id="EXP-01", no_resi="JN01", amount=Decimal("12000"), shipping_id=None
        )
    )

    assert pay == core_logic.PaymentCommand("S-1", Decimal("5000"), None, "DP")
    assert ship == core_logic.ShippingCommand("S-1", "EXP-01", "JN01", Decimal("12000"))


def test_format_money_groups_thousands():
    assert cli.format_money(Decimal("171000")) == "171,000.00"


# ---------------------------------------------------------------------------
# Error handling and persistence
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "error, expected",
    [
        (BusinessRuleViolation("invalid"), 2),
        (InsufficientStockError("LKS-1", requested=5, available=2), 2),
        (FileNotFoundError("missing"), 3),
        (RuntimeError("schema"), 1),
    ],
)
def test_handle_cli_error_returns_exit_code(error: Exception, expected: int, caplog: pytest.LogCaptureFixture):
    caplog.set_level("ERROR")

    assert cli.handle_cli_error(error) == expected
    assert any(str(error) in record.getMessage() for record in caplog.records)


def test_persist_workbook_handles_read_only_workbooks(runtime_context, monkeypatch):
    def fake_persist(_: core_logic.RuntimeContext) -> None:
        raise PermissionError("read-only")

    monkeypatch.setattr(cli.core_logic, "persist_context", fake_persist)
    with pytest.raises(RuntimeError, match="read-only"):
        cli.persist_workbook(runtime_context)


# ---------------------------------------------------------------------------
# Program entry point
# ---------------------------------------------------------------------------


def test_main_skips_persistence_for_read_commands(monkeypatch, runtime_context):
    parser = _stub_parser(command="stock")
    command_table = {"stock": cli.CommandSpec("stock", "help", lambda _: parser, lambda *_: 0)}

    monkeypatch.setattr(cli, "build_parser", lambda: parser)
    monkeypatch.setattr(cli, "configure_subcommands", lambda _: command_table)
    monkeypatch.setattr(cli, "load_runtime_context", lambda path=None: runtime_context)
    monkeypatch.setattr(cli, "persist_workbook", lambda _: (_ for _ in ()).throw(AssertionError("should not persist")))

    assert cli.main(["stock"]) == 0


def test_main_handles_bll_errors(monkeypatch, runtime_context):
    parser = _stub_parser(command="sale")
    command_table = {"sale": cli.CommandSpec("sale", "help", lambda _: parser, lambda *_: 0, writes=True)}

    monkeypatch.setattr(cli, "build_parser", lambda: parser)
    monkeypatch.setattr(cli, "configure_subcommands", lambda _: command_table)
    monkeypatch.setattr(cli, "load_runtime_context", lambda path=None: runtime_context)

    def fake_dispatch(*_: object) -> int:
        raise BusinessRuleViolation("invalid")

    monkeypatch.setattr(cli, "dispatch_command", fake_dispatch)
    monkeypatch.setattr(cli, "persist_workbook", lambda _: (_ for _ in ()).throw(AssertionError("should not persist")))

    assert cli.main(["sale"]) == 2


def test_main_round_trip_through_workbook(config_factory, capsys):
    """Writes are saved to disk; a later invocation sees them."""

    bundle = config_factory()
    config = ["--config", str(bundle.config_path)]

    assert cli.main([*config, "add-book", "--book-id", "LKS-1", "--title", "LKS IPA", "--category", "lks",
                     "--price", "100000", "--stock", "5"]) == 0
    assert cli.main([*config, "sale", "--sales-associate-id", "SA-UMUM", "--payment-type", "T",
                     "--item", "LKS-1:2"]) == 0
    output = capsys.readouterr().out
    assert "Added book LKS-1" in output
    assert "total 200,000.00" in output

    workbook = data_manager.open_workbook(bundle.workbook_path)
    assert data_manager.read_stock_levels(workbook) == {"LKS-1": 3}
    (transaction,) = data_manager.iter_sales_transactions(workbook)
    assert transaction.status is constants.SalesStatus.PESANAN

    assert cli.main([*config, "stock"]) == 0
    assert "LOW" in capsys.readouterr().out


def test_main_prints_sales_and_purchase_reports(config_factory, capsys):
    bundle = config_factory()
    config = ["--config", str(bundle.config_path)]

    assert cli.main([*config, "add-book", "--book-id", "LKS-1", "--title", "LKS IPA", "--category", "lks",
                     "--price", "100000", "--stock", "5"]) == 0
    assert cli.main([*config, "add-publisher", "--publisher-id", "PUB-01", "--name", "Erlangga"]) == 0
    assert cli.main([*config, "sale", "--sales-associate-id", "SA-UMUM", "--payment-type", "T",
                     "--item", "LKS-1:2"]) == 0
    assert cli.main([*config, "purchase", "--supplier-id", "PUB-01", "--item", "LKS-1:3:60000"]) == 0
    capsys.readouterr()

    assert cli.main([*config, "sales-report", "--payment-type", "T"]) == 0
    output = capsys.readouterr().out
    assert "1 transaction(s), total 200,000.00 (cash 200,000.00, credit 0.00)" in output

    assert cli.main([*config, "purchase-report", "--status", "0"]) == 0
    output = capsys.readouterr().out
    assert "1 purchase(s), total 180,000.00; 0 completed, 1 pending" in output


def test_main_reports_insufficient_stock_without_saving(config_factory):
    bundle = config_factory()
    config = ["--config", str(bundle.config_path)]
    assert cli.main([*config, "add-book", "--book-id", "BT-1", "--title", "Fisika", "--category", "BT",
                     "--price", "80000", "--stock", "1"]) == 0

    exit_code = cli.main([*config, "sale", "--sales-associate-id", "SA-UMUM", "--payment-type", "T",
                          "--item", "BT-1:2"])

    assert exit_code == 2
    workbook = data_manager.open_workbook(bundle.workbook_path)
    assert data_manager.read_stock_levels(workbook) == {"BT-1": 1}
    assert list(data_manager.iter_sales_transactions(workbook)) == []


def test_main_missing_config_exits_with_file_error(tmp_path):
    assert cli.main(["--config", str(tmp_path / "missing.ini"), "stock"]) == 3


# ---------------------------------------------------------------------------
# Workbook bootstrap script
# ---------------------------------------------------------------------------


def test_setup_main_creates_workbook_from_config(tmp_path, capsys):
    config_path = tmp_path / "config.ini"
    config_path.write_text(
        "[System]\nDataFile = data/master.xlsx\nStoreName = Toko\nSchemaVersion = 1.0.0\n"
    )

    assert setup_excel.main(["--config", str(config_path)]) == 0
    assert (tmp_path / "data" / "master.xlsx").exists()
    assert "[SUCCESS]" in capsys.readouterr().out

    assert setup_excel.main(["--config", str(config_path)]) == 1
    assert "--force" in capsys.readouterr().out
    assert setup_excel.main(["--config", str(config_path), "--force"]) == 0


def test_create_master_workbook_without_default_associate(tmp_path):
    path = setup_excel.create_master_workbook(tmp_path / "empty.xlsx", default_sales_associate=None)

    assert list(data_manager.iter_sales_associates(data_manager.open_workbook(path))) == []


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _stub_parser(command: str) -> argparse.ArgumentParser:
    """Create a stub parser that always returns the supplied command."""

    class _Stub(argparse.ArgumentParser):
        def parse_args(self, args: Iterable[str] | None = None, namespace: argparse.Namespace | None = None):  # type: ignore[override]
            return argparse.Namespace(command=command)

    return _Stub(prog="test")


def _registered_choices(parser: argparse.ArgumentParser) -> set[str]:
    """Return the set of registered sub-command names for assertion helpers."""

    actions = getattr(parser, "_subparsers", None)
    if not actions:
        return set()
    group_actions = actions._group_actions  # type: ignore[attr-defined]
    if not group_actions:
        return set()
    return set(group_actions[0].choices)  # type: ignore[index]
