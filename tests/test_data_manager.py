"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from stocksense import constants, data_manager, setup_excel  # noqa: E402


def _purchase(purchase_id: str = "P1") -> data_manager.PurchaseRow:
    return data_manager.PurchaseRow(
        purchase_id=purchase_id,
        vendor_id=1,
        invoice_number="INV-7",
        date=datetime(2024, 3, 5, 9, 30, tzinfo=UTC),
        gst_type=constants.GstType.INTRA.value,
        items=(
            data_manager.PurchaseItemRow(1, Decimal("50"), Decimal("10"), Decimal("0")),
            data_manager.PurchaseItemRow(2, Decimal("4"), Decimal("2.5"), Decimal("5")),
        ),
        total_amount=Decimal("510.5"),
        paid_amount=Decimal("0"),
        payment_status=constants.PaymentStatus.UNPAID.value,
    )


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    result = data_manager.find_config_file(config_file)
    assert result == config_file


def test_find_config_file_discovers_in_parent_directories(tmp_path, monkeypatch):
    """Auto-discovery should walk up from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=stocksense_ledger.xlsx")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    """Absent configuration should surface a clear FileNotFoundError."""

    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    """read_config should return a populated ConfigParser."""

    parser = data_manager.read_config(config_file)
    assert parser.get("System", "CompanyName") == "Test Company"
    assert parser.get("Defaults", "PaymentMode") == "Cash"


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    parser = configparser.ConfigParser()
    bundle = config_factory(make_relative=True)
    parser.read(bundle.config_path)
    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)
    assert settings.data_file == (bundle.config_path.parent / bundle.workbook_path.name).resolve()
    assert settings.company_name == "Test Company"
    assert settings.auto_save is False
    assert settings.default_payment_mode is constants.PaymentMode.CASH
    assert settings.default_gst_type is constants.GstType.INTRA


def test_parse_settings_reads_optional_entries(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile = ledger.xlsx\nCompanyName = X\nSchemaVersion = 1.0.0\nAutoSave = yes\n"
        "[Defaults]\nPaymentMode = UPI\nGstType = INTER\n"
    )
    settings = data_manager.parse_settings(parser, base_path=tmp_path)
    assert settings.auto_save is True
    assert settings.default_payment_mode is constants.PaymentMode.UPI
    assert settings.default_gst_type is constants.GstType.INTER


def test_parse_settings_requires_expected_sections(tmp_path):
    """Missing keys should result in a descriptive KeyError."""

    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_parse_settings_rejects_unknown_payment_mode(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile = l.xlsx\nCompanyName = X\nSchemaVersion = 1.0.0\n[Defaults]\nPaymentMode = Barter\n"
    )
    with pytest.raises(ValueError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_open_workbook_returns_openpyxl_instance(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    assert isinstance(workbook, OpenpyxlWorkbook)


def test_open_workbook_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "missing.xlsx")


def test_open_workbook_rejects_missing_sheet(master_workbook_path):
    """A workbook lacking one of the ledger sheets is not usable."""

    workbook = openpyxl.load_workbook(master_workbook_path)
    workbook.remove(workbook[constants.SheetName.OUTWARD_ITEMS.value])
    workbook.save(master_workbook_path)

    with pytest.raises(KeyError):
        data_manager.open_workbook(master_workbook_path)


def test_validate_workbook_rejects_unexpected_header():
    workbook = setup_excel.build_master_workbook()
    workbook[constants.SheetName.VENDORS.value].cell(row=1, column=2, value="Supplier")

    with pytest.raises(KeyError):
        data_manager.validate_workbook(workbook)


def test_save_workbook_creates_parent_directories(tmp_path):
    workbook = setup_excel.build_master_workbook()
    destination = tmp_path / "deep" / "nested" / "ledger.xlsx"

    data_manager.save_workbook(workbook, destination)

    assert destination.exists()


def test_refresh_workbook_returns_new_instance(master_workbook_path):
    original = data_manager.open_workbook(master_workbook_path)
    original[constants.SheetName.CATEGORIES.value].append([1, "Dairy"])
    data_manager.save_workbook(original, master_workbook_path)

    refreshed = data_manager.refresh_workbook(master_workbook_path)
    assert refreshed is not original
    assert list(data_manager.iter_categories(refreshed)) == [data_manager.CategoryRow(1, "Dairy")]


def test_to_decimal_avoids_float_artefacts():
    assert data_manager.to_decimal(0.1) == Decimal("0.1")
    assert data_manager.to_decimal(None) == Decimal("0")
    assert data_manager.to_decimal("", default="5") == Decimal("5")


def test_parse_timestamp_treats_naive_values_as_utc():
    assert data_manager.parse_timestamp("2024-03-05T10:00:00") == datetime(2024, 3, 5, 10, tzinfo=UTC)


def test_parse_timestamp_keeps_offsets():
    parsed = data_manager.parse_timestamp("2024-03-05T10:00:00+05:30")
    assert parsed.utcoffset() == timedelta(hours=5, minutes=30)
    assert parsed == datetime(2024, 3, 5, 4, 30, tzinfo=UTC)


def test_parse_timestamp_rejects_empty_cells():
    with pytest.raises(ValueError):
        data_manager.parse_timestamp(None)


def test_serialize_purchase_splits_items_by_parent_id():
    header, items = data_manager.serialize_purchase(_purchase())

    assert header[0] == "P1"
    assert header[3] == "2024-03-05T09:30:00+00:00"
    assert [row[0] for row in items] == ["P1", "P1"]
    assert items[1][1:] == [2, "4", "2.5", "5"]
    assert header[5:7] == ["510.5", "0"]


def test_deserialize_product_coerces_types():
    row = data_manager.deserialize_product(
        [3.0, "Bread", "loaf", 2, 1, None, 1.25, 0, 5, 12, 14, None, "8901"]
    )
    assert row.product_id == 3
    assert row.warehouse_id == 0
    assert row.purchase_price == Decimal("1.25")
    assert row.quantity == Decimal("14")
    assert row.hsn is None
    assert row.barcode == "8901"


def test_iter_sheet_rows_skips_blank_rows():
    workbook = setup_excel.build_master_workbook(default_departments=())
    sheet = workbook[constants.SheetName.DEPARTMENTS.value]
    sheet.append([1, "Kitchen"])
    sheet.append([None, None])
    sheet.append([2, "Bar"])

    assert [row.name for row in data_manager.iter_departments(workbook)] == ["Kitchen", "Bar"]


def test_iter_purchases_reattaches_items():
    workbook = setup_excel.build_master_workbook()
    purchase = _purchase()
    header, items = data_manager.serialize_purchase(purchase)
    workbook[constants.SheetName.PURCHASES.value].append(header)
    for item in items:
        workbook[constants.SheetName.PURCHASE_ITEMS.value].append(item)

    assert list(data_manager.iter_purchases(workbook)) == [purchase]


def test_write_state_then_load_state_round_trips(tmp_path):
    """Every collection should survive a save to disk and a reload."""

    moment = datetime(2024, 3, 5, 9, 30, tzinfo=timezone.utc)
    state = data_manager.LedgerState(
        products=[
            data_manager.ProductRow(
                1, "Cola", "btl", 1, 1, 1, Decimal("10"), Decimal("0"), Decimal("5"),
                Decimal("100"), Decimal("146"), hsn="2202", barcode=None,
            )
        ],
        categories=[data_manager.CategoryRow(1, "Beverages")],
        vendors=[data_manager.VendorRow(1, "Acme", "a@acme.test", phone="555")],
        departments=[data_manager.DepartmentRow(1, "Kitchen")],
        purchases=[_purchase()],
        outwards=[
            data_manager.OutwardRow(
                "O1", 1, "REQ-1", moment,
                (data_manager.OutwardItemRow(1, Decimal("4"), Decimal("10")),),
                Decimal("40"),
            )
        ],
        stock_adjustments=[data_manager.StockAdjustmentRow("A1", 1, Decimal("-0.5"), moment, "Breakage")],
        vendor_payments=[data_manager.VendorPaymentRow("VP1", "P1", 1, Decimal("100"), moment, "UPI")],
        activity_log=[data_manager.ActivityRow("L1", moment, "Purchase", "CREATE", "Recorded")],
    )
    workbook = setup_excel.build_master_workbook(default_departments=())
    data_manager.write_state(workbook, state)
    destination = tmp_path / "ledger.xlsx"
    data_manager.save_workbook(workbook, destination)

    reloaded = data_manager.load_state(data_manager.open_workbook(destination))

    assert reloaded == state


def test_write_state_drops_rows_removed_from_state():
    """Rewriting a shorter collection must not leave stale rows behind."""

    workbook = setup_excel.build_master_workbook(default_departments=("A", "B", "C"))
    state = data_manager.load_state(workbook)
    state.departments = [data_manager.DepartmentRow(2, "B")]

    data_manager.write_state(workbook, state)

    assert list(data_manager.iter_departments(workbook)) == [data_manager.DepartmentRow(2, "B")]
    assert workbook[constants.SheetName.DEPARTMENTS.value].max_row == 2


def test_decimals_keep_every_digit_through_a_saved_workbook(tmp_path):
    """Values beyond float precision must reload exactly."""

    precise = Decimal("0.12345678901234567891")
    product = data_manager.ProductRow(
        1, "Saffron", "g", 1, 1, 1, Decimal("123456789.123456789"), Decimal("5"), Decimal("0"),
        Decimal("0"), precise,
    )
    state = data_manager.LedgerState(
        products=[product],
        stock_adjustments=[
            data_manager.StockAdjustmentRow("A1", 1, precise, datetime(2024, 3, 5, tzinfo=UTC), "Count")
        ],
    )
    workbook = setup_excel.build_master_workbook(default_departments=())
    data_manager.write_state(workbook, state)
    destination = tmp_path / "ledger.xlsx"
    data_manager.save_workbook(workbook, destination)

    reloaded = data_manager.load_state(data_manager.open_workbook(destination))

    assert reloaded.products[0].quantity == precise
    assert reloaded.products[0].purchase_price == Decimal("123456789.123456789")
    assert reloaded.stock_adjustments[0].quantity == precise
