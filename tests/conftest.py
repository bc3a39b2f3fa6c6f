"""Shared pytest fixtures and utilities for StockSense tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from stocksense import cli, constants, core_logic, data_manager  # noqa: E402
from stocksense.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "CompanyName = {company_name}\n"
    "SchemaVersion = {schema_version}\n"
    "AutoSave = {auto_save}\n\n"
    "[Defaults]\n"
    "PaymentMode = Cash\n"
    "GstType = INTRA\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    company_name: str
    auto_save: bool


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized ledger workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        filename: str = "stocksense_ledger.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh ledger workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        company_name: str = "Test Company",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        auto_save: bool = False,
    ) -> ConfigBundle:
        bundle_dir_name = f"bundle_{uuid.uuid4().hex}"
        bundle_dir = tmp_path / bundle_dir_name
        workbook_path = workbook_factory(subdir=bundle_dir_name)
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                company_name=company_name,
                schema_version=schema_version,
                auto_save="true" if auto_save else "false",
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            company_name=company_name,
            auto_save=auto_save,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="stocksense-cli", description="StockSense CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_table_entry() -> tuple[str, cli.CommandSpec]:
    """Provide a placeholder command table entry for dispatch tests."""

    def execute(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
        execute.__dict__["called"] = True
        return 0

    def register(
        subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    ) -> argparse.ArgumentParser:
        return subparsers.add_parser("stock-check")

    spec = cli.CommandSpec(
        name="stock-check",
        help_text="help",
        register=register,
        execute=execute,
    )
    return "stock-check", spec


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "stocksense_ledger.xlsx",
        company_name="Test Company",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def context(settings: data_manager.ConfigSettings) -> core_logic.RuntimeContext:
    """In-memory context; departments 1-3 are Kitchen, Bar and Service Floor."""

    return core_logic.new_runtime_context(settings)


@pytest.fixture
def stocked_context(context: core_logic.RuntimeContext) -> core_logic.RuntimeContext:
    """Context with one vendor and two products.

    Product 1 ("Cola") opens at 100 units costing 10. Product 2 ("Milk") opens
    at 20 units costing 2.50 with a 5% GST rate.
    """

    core_logic.add_category(context, "Beverages")
    core_logic.add_vendor(context, core_logic.VendorCommand(name="Acme Supplies", email="sales@acme.test"))
    core_logic.add_product(
        context,
        core_logic.ProductCommand(
            name="Cola",
            unit="btl",
            category_id=1,
            vendor_id=1,
            purchase_price=Decimal("10"),
            reorder_level=Decimal("25"),
            initial_quantity=Decimal("100"),
        ),
    )
    core_logic.add_product(
        context,
        core_logic.ProductCommand(
            name="Milk",
            unit="ltr",
            category_id=1,
            vendor_id=1,
            purchase_price=Decimal("2.50"),
            gst_rate=Decimal("5"),
            initial_quantity=Decimal("20"),
        ),
    )
    return context


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply
