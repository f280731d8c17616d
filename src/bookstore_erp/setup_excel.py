"""Utility for initializing the bookstore master workbook.

The module doubles as a script (``bookstore-setup``) and as a library used by
tests or other tooling, so the workbook bootstrap stays identical on both
paths.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Mapping, Optional, Sequence
import sys

import openpyxl
from openpyxl.styles import Font

from .constants import PaymentType
from .data_manager import (
    CONFIG_FILE_NAME,
    SALES_ASSOCIATES_SHEET,
    SHEET_COLUMNS,
    parse_settings,
    read_config,
)

# Walk-in customer account so cash sales work on a fresh workbook.
DEFAULT_SALES_ASSOCIATE: Mapping[str, object] = {
    "SalesAssociateID": "SA-UMUM",
    "Name": "Penjualan Umum",
    "Discount": 0,
    "PaymentType": PaymentType.CASH.value,
    "IsActive": True,
}


def create_master_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    default_sales_associate: Optional[Mapping[str, object]] = DEFAULT_SALES_ASSOCIATE,
    overwrite: bool = False,
) -> Path:
    """Create the master workbook at ``destination``.

    Every sheet gets a bold header row. Parameters are overridable to make
    testing easy. Pass ``default_sales_associate=None`` for a workbook with
    empty sheets.

    Raises:
        FileExistsError: If the target exists and ``overwrite`` is ``False``.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing master workbook: {destination}"
        )

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()

    # Drop the sheet openpyxl creates by default.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    if default_sales_associate is not None and SALES_ASSOCIATES_SHEET in sheet_columns:
        workbook[SALES_ASSOCIATES_SHEET].append(
            [default_sales_associate[column] for column in sheet_columns[SALES_ASSOCIATES_SHEET]]
        )

    workbook.save(destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook named by ``DataFile`` in ``config_path``."""

    config_path = Path(config_path).expanduser().resolve()
    settings = parse_settings(read_config(config_path), base_path=config_path.parent)
    return create_master_workbook(settings.data_file, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Initialize the bookstore ERP data file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE_NAME,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Bookstore ERP Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created master workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
