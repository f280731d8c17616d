"""Command-line entry points for the bookstore ERP.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the business
layer, and printing results. Keeping the CLI thin means the same parser
configuration can be reused by tests and scripts.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence, Tuple

from . import core_logic, log
from .constants import PaymentType, PurchaseStatus, SalesStatus
from .errors import BusinessRuleViolation
from .models import PurchaseItem, SalesItem
from .pricing import apply_general_discount, seed_sales_item


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    writes: bool = False


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="bookstore-cli",
        description="Command-line tools for the bookstore ERP workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upward from the working directory by default).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


# ---------------------------------------------------------------------------
# Argument types
# ---------------------------------------------------------------------------


def money(raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid amount: {raw!r}") from exc


def iso_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date (expected YYYY-MM-DD): {raw!r}") from exc


def sales_item_arg(raw: str) -> Tuple[str, int, Optional[Decimal], Optional[Decimal]]:
    """Parse ``BOOK:QTY[:PROMOTION[:DISCOUNT]]``."""
    parts = raw.split(":")
    if not 2 <= len(parts) <= 4 or not parts[0]:
        raise argparse.ArgumentTypeError(f"expected BOOK:QTY[:PROMOTION[:DISCOUNT]], got {raw!r}")
    try:
        quantity = int(parts[1])
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid quantity in {raw!r}") from exc
    promotion = money(parts[2]) if len(parts) > 2 and parts[2] else None
    discount = money(parts[3]) if len(parts) > 3 and parts[3] else None
    return parts[0], quantity, promotion, discount


def purchase_item_arg(raw: str) -> PurchaseItem:
    """Parse ``BOOK:QTY:PRICE``."""
    parts = raw.split(":")
    if len(parts) != 3 or not parts[0]:
        raise argparse.ArgumentTypeError(f"expected BOOK:QTY:PRICE, got {raw!r}")
    try:
        quantity = int(parts[1])
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid quantity in {raw!r}") from exc
    return PurchaseItem(book_id=parts[0], quantity=quantity, price=money(parts[2]))


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands."""
    specs = {
        "add-book": register_add_book_command(subparsers),
        "add-sales-associate": register_add_sales_associate_command(subparsers),
        "add-publisher": register_add_publisher_command(subparsers),
        "add-expedition": register_add_expedition_command(subparsers),
        "sale": register_sale_command(subparsers),
        "pay": register_pay_command(subparsers),
        "ship": register_ship_command(subparsers),
        "delete-sale": register_delete_sale_command(subparsers),
        "purchase": register_purchase_command(subparsers),
        "complete-purchase": register_purchase_action_command(
            subparsers, "complete-purchase", "Complete a pending purchase and restock its books.", run_complete_purchase
        ),
        "cancel-purchase": register_purchase_action_command(
            subparsers, "cancel-purchase", "Cancel a pending purchase.", run_cancel_purchase
        ),
        "delete-purchase": register_purchase_action_command(
            subparsers, "delete-purchase", "Delete a pending or cancelled purchase.", run_delete_purchase
        ),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "stock": register_stock_command(subparsers),
        "credits": register_credits_command(subparsers),
        "show-sale": register_show_sale_command(subparsers),
        "show-purchase": register_show_purchase_command(subparsers),
        "sales-report": register_sales_report_command(subparsers),
        "purchase-report": register_purchase_report_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_add_book_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "add-book"
    help_text = "Register a new book in the Books sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--book-id", required=True)
        parser.add_argument("--title", required=True)
        parser.add_argument("--category", required=True, help="Category code, e.g. LKS.")
        parser.add_argument("--price", required=True, type=money)
        parser.add_argument("--purchasing-price", type=money, default=None)
        parser.add_argument("--stock", type=int, default=0, help="Opening stock (default: 0).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_book, writes=True)


def register_add_sales_associate_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "add-sales-associate"
    help_text = "Register a new sales associate."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sales-associate-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--discount", type=money, default=Decimal("0"), help="Default discount in percent.")
        parser.add_argument(
            "--payment-type",
            choices=[member.value for member in PaymentType],
            default=PaymentType.CASH.value,
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar, execute=run_add_sales_associate, writes=True
    )


def register_add_publisher_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "add-publisher"
    help_text = "Register a new publisher (purchase supplier)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--publisher-id", required=True)
        parser.add_argument("--name", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_publisher, writes=True)


def register_add_expedition_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "add-expedition"
    help_text = "Register a new expedition (courier)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--expedition-id", required=True)
        parser.add_argument("--name", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_expedition, writes=True)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Create a sales transaction, or replace one with --transaction-id."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", default=None, help="Update this transaction instead of creating one.")
        parser.add_argument("--sales-associate-id", required=True)
        parser.add_argument(
            "--payment-type",
            choices=[member.value for member in PaymentType],
            required=True,
        )
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            required=True,
            type=sales_item_arg,
            metavar="BOOK:QTY[:PROMOTION[:DISCOUNT]]",
            help="Repeat for every line. Omitted discounts default to the associate's discount.",
        )
        parser.add_argument("--date", type=iso_date, default=None)
        parser.add_argument("--due-date", type=iso_date, default=None)
        parser.add_argument("--general-promotion", type=money, default=None)
        parser.add_argument("--general-discount", type=money, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale, writes=True)


def register_pay_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "pay"
    help_text = "Record a payment against a sales transaction."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", required=True)
        parser.add_argument("--amount", required=True, type=money)
        parser.add_argument("--date", type=iso_date, default=None)
        parser.add_argument("--note", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_pay, writes=True)


def register_ship_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "ship"
    help_text = "Add a shipment to a sales transaction, or edit one with --shipping-id."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", required=True)
        parser.add_argument("--expedition-id", required=True)
        parser.add_argument("--no-resi", required=True, help="Tracking number.")
        parser.add_argument("--amount", required=True, type=money)
        parser.add_argument("--shipping-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_ship, writes=True)


def register_delete_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "delete-sale"
    help_text = "Delete a sales transaction and restore its stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_sale, writes=True)


def register_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "purchase"
    help_text = "Create a pending purchase, or replace one with --purchase-id."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", default=None)
        parser.add_argument("--supplier-id", required=True, help="Publisher id.")
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            required=True,
            type=purchase_item_arg,
            metavar="BOOK:QTY:PRICE",
        )
        parser.add_argument("--date", type=iso_date, default=None)
        parser.add_argument("--note", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_purchase, writes=True)


def register_purchase_action_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    name: str,
    help_text: str,
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
) -> CommandSpec:
    """Register a command that acts on one purchase by id."""

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute, writes=True)


def register_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "stock"
    help_text = "Display current stock levels."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--all", dest="include_inactive", action="store_true", help="Include inactive books.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stock_report)


def register_credits_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "credits"
    help_text = "Display outstanding credit sales."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--as-of", type=iso_date, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_credits_report)


def register_show_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "show-sale"
    help_text = "Display one sales transaction with totals."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_show_sale)


def register_show_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "show-purchase"
    help_text = "Display one purchase transaction with totals."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_show_purchase)


def register_sales_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "sales-report"
    help_text = "Display sales transactions filtered by period, payment type, status or associate."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--start-date", type=iso_date, default=None)
        parser.add_argument("--end-date", type=iso_date, default=None)
        parser.add_argument("--payment-type", choices=[member.value for member in PaymentType], default=None)
        parser.add_argument(
            "--status",
            type=int,
            choices=[int(member) for member in SalesStatus],
            default=None,
            help="0 Pesanan, 1 Lunas, 2 Angsuran.",
        )
        parser.add_argument("--sales-associate-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sales_report)


def register_purchase_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    name = "purchase-report"
    help_text = "Display purchases filtered by period, supplier or status."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--start-date", type=iso_date, default=None)
        parser.add_argument("--end-date", type=iso_date, default=None)
        parser.add_argument("--supplier-id", default=None)
        parser.add_argument(
            "--status",
            type=int,
            choices=[int(member) for member in PurchaseStatus],
            default=None,
            help="0 Pending, 1 Selesai, 2 Dibatalkan.",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_purchase_report)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return core_logic.load_runtime_context(Path(config_path) if config_path is not None else None)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    if spec.writes:
        core_logic.ensure_schema_version(context)
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def translate_add_book(args: argparse.Namespace) -> Mapping[str, Any]:
    return {
        "book_id": args.book_id,
        "title": args.title,
        "category_code": args.category,
        "price": args.price,
        "purchasing_price": args.purchasing_price,
        "stock": args.stock,
    }


def translate_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.SalesTransactionCommand:
    """Translate CLI args into a sales transaction command.

    Lines without an explicit discount are seeded from the associate's default
    discount. A general promotion/discount is then applied to eligible lines.
    """
    associate = core_logic.get_sales_associate(context, args.sales_associate_id)
    category = context.settings.discount_category
    books = {}
    items = []
    for book_id, quantity, promotion, discount in args.items:
        book = core_logic.get_book(context, book_id)
        books[book_id] = book
        item = seed_sales_item(book, quantity, associate=associate, discount_category=category)
        if promotion is not None:
            item = replace(item, promotion=promotion)
        if discount is not None:
            item = replace(item, discount=discount)
        items.append(item)
    if args.general_promotion is not None or args.general_discount is not None:
        items = apply_general_discount(
            items,
            books,
            promotion=args.general_promotion or Decimal("0"),
            discount=args.general_discount or Decimal("0"),
            discount_category=category,
        )
    return core_logic.SalesTransactionCommand(
        sales_associate_id=associate.sales_associate_id,
        payment_type=PaymentType(args.payment_type),
        items=tuple(items),
        transaction_date=args.date,
        due_date=args.due_date,
        transaction_id=args.transaction_id,
    )


def translate_purchase(args: argparse.Namespace) -> core_logic.PurchaseTransactionCommand:
    return core_logic.PurchaseTransactionCommand(
        supplier_id=args.supplier_id,
        items=tuple(args.items),
        purchase_date=args.date,
        note=args.note,
        purchase_id=args.purchase_id,
    )


def translate_pay(args: argparse.Namespace) -> core_logic.PaymentCommand:
    return core_logic.PaymentCommand(
        transaction_id=args.transaction_id,
        amount=args.amount,
        payment_date=args.date,
        note=args.note,
    )


def translate_ship(args: argparse.Namespace) -> core_logic.ShippingCommand:
    return core_logic.ShippingCommand(
        transaction_id=args.transaction_id,
        expedition_id=args.expedition_id,
        no_resi=args.no_resi,
        total_amount=args.amount,
        shipping_id=args.shipping_id,
    )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def format_money(amount: Decimal) -> str:
    return f"{amount:,.2f}"


def run_add_book(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    book = core_logic.add_book(context, **translate_add_book(args))
    print(f"Added book {book.book_id}: {book.title}")
    return 0


def run_add_sales_associate(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    associate = core_logic.add_sales_associate(
        context,
        sales_associate_id=args.sales_associate_id,
        name=args.name,
        discount=args.discount,
        payment_type=PaymentType(args.payment_type),
    )
    print(f"Added sales associate {associate.sales_associate_id}: {associate.name}")
    return 0


def run_add_publisher(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    publisher = core_logic.add_publisher(context, publisher_id=args.publisher_id, name=args.name)
    print(f"Added publisher {publisher.publisher_id}: {publisher.name}")
    return 0


def run_add_expedition(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    expedition = core_logic.add_expedition(context, expedition_id=args.expedition_id, name=args.name)
    print(f"Added expedition {expedition.expedition_id}: {expedition.name}")
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = core_logic.persist_sales_transaction(context, translate_sale(context, args))
    summary = core_logic.get_sales_summary(context, transaction.transaction_id)
    print(f"Saved sales transaction {transaction.transaction_id} total {format_money(summary.grand_total)}")
    return 0


def run_pay(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    payment = core_logic.add_payment(context, translate_pay(args))
    summary = core_logic.get_sales_summary(context, payment.transaction_id)
    print(
        f"Recorded payment {payment.payment_id}; remaining {format_money(summary.remaining_balance)} "
        f"({summary.transaction.status.label})"
    )
    return 0


def run_ship(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    shipping = core_logic.add_or_update_shipping(context, translate_ship(args))
    print(f"Saved shipping {shipping.shipping_id} ({format_money(shipping.total_amount)})")
    return 0


def run_delete_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    restored = core_logic.delete_sales_transaction(context, args.transaction_id)
    print(f"Deleted sales transaction {args.transaction_id}; restored stock for {len(restored)} book(s)")
    return 0


def run_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = core_logic.persist_purchase_transaction(context, translate_purchase(args))
    summary = core_logic.get_purchase_summary(context, transaction.purchase_id)
    print(
        f"Saved purchase {transaction.purchase_id}: {summary.title_count} title(s), "
        f"{summary.total_quantity} copies, total {format_money(summary.grand_total)}"
    )
    return 0


def run_complete_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = core_logic.complete_purchase(context, args.purchase_id)
    print(f"Purchase {transaction.purchase_id} is now {transaction.status.label}")
    return 0


def run_cancel_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = core_logic.cancel_purchase(context, args.purchase_id)
    print(f"Purchase {transaction.purchase_id} is now {transaction.status.label}")
    return 0


def run_delete_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_purchase_transaction(context, args.purchase_id)
    print(f"Deleted purchase {args.purchase_id}")
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for row in core_logic.stock_report(context, include_inactive=getattr(args, "include_inactive", False)):
        flag = "  LOW" if row.low_stock else ""
        print(f"{row.book_id:<12} {row.category_code:<6} {row.stock:>6}  {row.title}{flag}")
    return 0


def run_credits_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    report = core_logic.credits_report(context, as_of=args.as_of)
    for row in report.rows:
        flag = "  OVERDUE" if row.overdue else ""
        due = row.due_date.isoformat() if row.due_date else "-"
        print(f"{row.transaction_id}  {row.sales_associate_id}  due {due}  remaining {format_money(row.remaining)}{flag}")
    print(f"Outstanding {format_money(report.total_outstanding)} across {len(report.rows)} sale(s), {report.overdue_count} overdue")
    return 0


def run_sales_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    report = core_logic.sales_report(
        context,
        start_date=args.start_date,
        end_date=args.end_date,
        payment_type=PaymentType(args.payment_type) if args.payment_type else None,
        status=SalesStatus(args.status) if args.status is not None else None,
        sales_associate_id=args.sales_associate_id,
    )
    for row in report.rows:
        print(
            f"{row.transaction_id}  {row.transaction_date.isoformat()}  {row.sales_associate_id:<10} "
            f"{row.payment_type.label:<6} {format_money(row.grand_total):>16}  {row.status.label}"
        )
    print(
        f"{report.total_transactions} transaction(s), total {format_money(report.total_amount)} "
        f"(cash {format_money(report.cash_total)}, credit {format_money(report.credit_total)})"
    )
    return 0


def run_purchase_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    report = core_logic.purchase_report(
        context,
        start_date=args.start_date,
        end_date=args.end_date,
        supplier_id=args.supplier_id,
        status=PurchaseStatus(args.status) if args.status is not None else None,
    )
    for row in report.rows:
        print(
            f"{row.purchase_id}  {row.purchase_date.isoformat()}  {row.supplier_id:<10} "
            f"{row.total_quantity:>5} pcs {format_money(row.grand_total):>16}  {row.status.label}"
        )
    print(
        f"{report.total_purchases} purchase(s), total {format_money(report.total_amount)}; "
        f"{report.completed_count} completed, {report.pending_count} pending"
    )
    return 0


def run_show_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    summary = core_logic.get_sales_summary(context, args.transaction_id)
    transaction = summary.transaction
    print(
        f"{transaction.transaction_id}  {transaction.transaction_date.isoformat()}  "
        f"{PaymentType(transaction.payment_type).label}  {transaction.status.label}"
    )
    for line in summary.lines:
        print(
            f"  {line.book.book_id:<12} x{line.item.quantity:<4} "
            f"{format_money(line.effective_price):>14} {format_money(line.subtotal):>16}"
        )
    print(f"  Books     {format_money(summary.books_subtotal):>16}")
    print(f"  Shipping  {format_money(summary.shipping_total):>16}")
    print(f"  Total     {format_money(summary.grand_total):>16}")
    print(f"  Paid      {format_money(summary.payments_total):>16}")
    print(f"  Remaining {format_money(summary.remaining_balance):>16}")
    return 0


def run_show_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    summary = core_logic.get_purchase_summary(context, args.purchase_id)
    transaction = summary.transaction
    print(f"{transaction.purchase_id}  {transaction.purchase_date.isoformat()}  {transaction.status.label}")
    for line in summary.lines:
        print(f"  {line.item.book_id:<12} x{line.item.quantity:<4} {format_money(line.subtotal):>16}")
    print(f"  {summary.title_count} title(s), {summary.total_quantity} copies, total {format_money(summary.grand_total)}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    log.error("%s", error)
    if isinstance(error, BusinessRuleViolation):
        return 2
    if isinstance(error, FileNotFoundError):
        return 3
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].writes:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
