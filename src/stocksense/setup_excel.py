"""Utility for initializing the StockSense ledger workbook.

The module doubles as a script (``python -m stocksense.setup_excel``) and as a
library used by tests or by :func:`stocksense.core_logic.new_runtime_context`.
Shared helpers keep the workbook bootstrap consistent regardless of the
execution path.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Mapping, Sequence

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook

from . import data_manager
from .constants import SHEET_COLUMNS, SheetName

CONFIG_FILE = "config.ini"

# Departments seeded into a fresh workbook so outwards can be recorded at once.
DEFAULT_DEPARTMENTS: Sequence[str] = ("Kitchen", "Bar", "Service Floor")


def build_master_workbook(
    *,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    default_departments: Sequence[str] = DEFAULT_DEPARTMENTS,
) -> Workbook:
    """Create an in-memory workbook with every ledger sheet and its header row."""

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    departments_sheet = workbook[SheetName.DEPARTMENTS.value]
    for department_id, name in enumerate(default_departments, start=1):
        departments_sheet.append([department_id, name])

    return workbook


def create_master_workbook(
    destination: Path,
    *,
    default_departments: Sequence[str] = DEFAULT_DEPARTMENTS,
    overwrite: bool = False,
) -> Path:
    """Create the StockSense ledger workbook at ``destination``.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing ledger workbook: {destination}"
        )

    workbook = build_master_workbook(default_departments=default_departments)
    data_manager.save_workbook(workbook, destination)
    return destination


def run_from_config(
    config_path: Path,
    *,
    overwrite: bool = False,
    default_departments: Sequence[str] = DEFAULT_DEPARTMENTS,
) -> Path:
    """Create the workbook named by the ``DataFile`` entry of ``config_path``."""

    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.expanduser().resolve().parent)
    return create_master_workbook(
        settings.data_file,
        default_departments=default_departments,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(
        prog="stocksense-setup",
        description="Initialize the StockSense ledger workbook",
    )
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    parser.add_argument(
        "--no-default-departments",
        dest="seed_departments",
        action="store_false",
        help="Leave the Departments sheet empty instead of seeding %s." % ", ".join(DEFAULT_DEPARTMENTS),
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()
    departments = DEFAULT_DEPARTMENTS if args.seed_departments else ()

    print("--- StockSense Setup Script ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(
            config_path,
            overwrite=args.force,
            default_departments=departments,
        )
    except FileNotFoundError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except (KeyError, ValueError) as exc:
        print(f"\n[ERROR] Invalid configuration: {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created ledger workbook at '{output_path}'.")
    if departments:
        print(f"Seeded departments: {', '.join(departments)}")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
