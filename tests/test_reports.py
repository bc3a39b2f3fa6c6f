"""Tests for the read-only reporting projections."""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from stocksense import core_logic, reports
from stocksense.constants import GstType

MARCH = (date(2024, 3, 1), date(2024, 3, 31))


@pytest.fixture
def march_context(stocked_context):
    """Ledger with activity in February and March 2024.

    Cola opens March at 130 and Milk (moved to "Dairy") at 20. Current prices
    end up at 12 for Cola and 3 for Milk.
    """

    context = stocked_context
    core_logic.add_category(context, "Dairy")
    core_logic.update_product(context, 2, category_id=2)

    core_logic.record_purchase(
        context,
        core_logic.PurchaseCommand(
            vendor_id=1,
            invoice_number="FEB-1",
            items=(core_logic.PurchaseItemInput(1, Decimal("30"), Decimal("10")),),
            date=datetime(2024, 2, 20, 10, tzinfo=UTC),
        ),
    )
    march_invoice = core_logic.record_purchase(
        context,
        core_logic.PurchaseCommand(
            vendor_id=1,
            invoice_number="MAR-1",
            items=(
                core_logic.PurchaseItemInput(1, Decimal("50"), Decimal("12")),
                core_logic.PurchaseItemInput(2, Decimal("10"), Decimal("3")),
            ),
            date=datetime(2024, 3, 5, 9, tzinfo=UTC),
        ),
    )
    core_logic.record_payment(context, core_logic.PaymentCommand(march_invoice.purchase_id, Decimal("200")))
    core_logic.record_outward(
        context,
        core_logic.OutwardCommand(
            department_id=1,
            items=(
                core_logic.OutwardItemInput(1, Decimal("20")),
                core_logic.OutwardItemInput(2, Decimal("4")),
            ),
            date=datetime(2024, 3, 10, 18, tzinfo=UTC),
        ),
    )
    core_logic.record_outward(
        context,
        core_logic.OutwardCommand(
            department_id=2,
            items=(core_logic.OutwardItemInput(1, Decimal("5")),),
            date=datetime(2024, 3, 12, tzinfo=UTC),
        ),
    )
    core_logic.adjust_stock(
        context,
        core_logic.AdjustStockCommand(2, Decimal("25"), "Spoilage", date=datetime(2024, 3, 15, tzinfo=UTC)),
    )
    return context


def test_vendor_balances_cover_every_vendor(march_context):
    core_logic.add_vendor(march_context, core_logic.VendorCommand(name="Idle Vendor"))

    balances = reports.vendor_balances(march_context)

    assert balances == {1: Decimal("731.5"), 2: Decimal("0")}


def test_stock_ledger_report_for_march(march_context):
    cola, milk = reports.stock_ledger_report(march_context, *MARCH)

    assert (cola.opening_quantity, cola.inward_quantity, cola.outward_quantity, cola.closing_quantity) == (
        Decimal("130"),
        Decimal("50"),
        Decimal("25"),
        Decimal("155"),
    )
    assert cola.opening_value == Decimal("1560")
    assert cola.inward_value == Decimal("600")
    assert cola.outward_value == Decimal("300")
    assert cola.closing_value == Decimal("1860")

    assert milk.adjustment_quantity == Decimal("-1")
    assert milk.closing_quantity == Decimal("25")
    assert milk.inward_value == Decimal("30")


def test_stock_ledger_report_filters_by_category(march_context):
    rows = reports.stock_ledger_report(march_context, *MARCH, category_id=2)

    assert [row.product_name for row in rows] == ["Milk"]


def test_stock_ledger_report_skips_idle_products(march_context):
    core_logic.add_product(
        march_context,
        core_logic.ProductCommand(name="Empty", unit="pcs", category_id=1, vendor_id=1, purchase_price=Decimal("1")),
    )

    rows = reports.stock_ledger_report(march_context, *MARCH)

    assert "Empty" not in [row.product_name for row in rows]


def test_stock_ledger_report_rejects_reversed_window(march_context):
    with pytest.raises(core_logic.ValidationError):
        reports.stock_ledger_report(march_context, date(2024, 3, 31), date(2024, 3, 1))


def test_stock_valuation_uses_live_stock_and_current_price(march_context):
    rows = {row.product_id: row for row in reports.stock_valuation(march_context)}

    assert rows[1].quantity == Decimal("155")
    assert rows[1].value == Decimal("1860")
    assert rows[2].value == Decimal("75")
    assert [row.product_id for row in reports.stock_valuation(march_context, category_id=2)] == [2]


def test_low_stock_includes_products_at_reorder_level(march_context):
    assert reports.low_stock_products(march_context) == []

    core_logic.update_product(march_context, 2, reorder_level=Decimal("25"))

    assert [product.name for product in reports.low_stock_products(march_context)] == ["Milk"]


def test_department_consumption_lists_every_department(march_context):
    rows = reports.department_consumption(march_context, *MARCH)

    assert [(row.department_name, row.total_items, row.total_cost) for row in rows] == [
        ("Kitchen", Decimal("24"), Decimal("252")),
        ("Bar", Decimal("5"), Decimal("60")),
        ("Service Floor", Decimal("0"), Decimal("0")),
    ]


def test_department_consumption_outside_window_is_zero(march_context):
    rows = reports.department_consumption(march_context, date(2024, 2, 1), date(2024, 2, 29))

    assert all(row.total_cost == Decimal("0") for row in rows)


def test_detailed_department_consumption(march_context):
    cola, milk = reports.detailed_department_consumption(march_context, 1, *MARCH)

    assert (cola.category_name, cola.total_quantity, cola.average_cost, cola.total_cost) == (
        "Beverages",
        Decimal("20"),
        Decimal("12"),
        Decimal("240"),
    )
    assert (milk.category_name, milk.unit, milk.total_cost) == ("Dairy", "ltr", Decimal("12"))


def test_detailed_department_consumption_unknown_department(march_context):
    with pytest.raises(core_logic.NotFoundError):
        reports.detailed_department_consumption(march_context, 99, *MARCH)


def test_department_category_consumption(march_context):
    matrix = reports.department_category_consumption(march_context, *MARCH)

    assert matrix == {
        1: {1: Decimal("240"), 2: Decimal("12")},
        2: {1: Decimal("60")},
    }


def test_item_purchase_matrix(march_context):
    matrix = reports.item_purchase_matrix(march_context, date(2024, 2, 1), date(2024, 3, 31))

    assert matrix.dates == (date(2024, 2, 20), date(2024, 3, 5))
    cola, milk = matrix.rows
    assert cola.quantities == {date(2024, 2, 20): Decimal("30"), date(2024, 3, 5): Decimal("50")}
    assert cola.total_quantity == Decimal("80")
    assert milk.quantities == {date(2024, 3, 5): Decimal("10")}

    march_only = reports.item_purchase_matrix(march_context, *MARCH)
    assert march_only.dates == (date(2024, 3, 5),)


def test_purchase_register_splits_intra_state_tax(march_context):
    cola, milk = reports.purchase_register(march_context, *MARCH)

    assert (cola.invoice_number, cola.vendor_name, cola.gst_type) == ("MAR-1", "Acme Supplies", "INTRA")
    assert cola.base_amount == Decimal("600")
    assert cola.gst_amount == Decimal("0")
    assert milk.base_amount == Decimal("30")
    assert milk.gst_amount == Decimal("1.5")
    assert (milk.cgst, milk.sgst, milk.igst) == (Decimal("0.75"), Decimal("0.75"), Decimal("0"))
    assert milk.total == Decimal("31.5")


def test_purchase_register_puts_inter_state_tax_in_igst(march_context):
    core_logic.record_purchase(
        march_context,
        core_logic.PurchaseCommand(
            vendor_id=1,
            invoice_number="MAR-2",
            items=(core_logic.PurchaseItemInput(2, Decimal("4"), Decimal("5")),),
            date=datetime(2024, 3, 20, tzinfo=UTC),
            gst_type=GstType.INTER,
        ),
    )

    line = reports.purchase_register(march_context, *MARCH)[-1]

    assert line.invoice_number == "MAR-2"
    assert line.gst_amount == Decimal("1")
    assert (line.cgst, line.sgst, line.igst) == (Decimal("0"), Decimal("0"), Decimal("1"))


def test_purchase_register_filters_by_vendor(march_context):
    other = core_logic.add_vendor(march_context, core_logic.VendorCommand(name="Other Vendor"))

    assert reports.purchase_register(march_context, *MARCH, vendor_id=other.vendor_id) == []
    assert len(reports.purchase_register(march_context, date(2024, 2, 1), date(2024, 3, 31), vendor_id=1)) == 3


def test_gst_split_rejects_unknown_type():
    with pytest.raises(core_logic.ValidationError):
        reports.gst_split(Decimal("10"), "EXPORT")


def test_invoice_purchases_summary_numbers_invoices_in_date_order(march_context):
    feb, mar = reports.invoice_purchases_summary(march_context, date(2024, 2, 1), date(2024, 3, 31))

    assert (feb.sr, feb.invoice_number, feb.total_amount) == (1, "FEB-1", Decimal("300"))
    assert (mar.sr, mar.invoice_number, mar.vendor_name) == (2, "MAR-1", "Acme Supplies")
    assert mar.base_amount == Decimal("630")
    assert (mar.cgst, mar.sgst, mar.igst) == (Decimal("0.75"), Decimal("0.75"), Decimal("0"))
    assert mar.total_amount == Decimal("631.5")
    assert mar.paid_amount == Decimal("200")
    assert mar.payment_status == "Partial"


def test_item_purchase_history_reports_current_stock(march_context):
    rows = reports.item_purchase_history(march_context, date(2024, 2, 1), date(2024, 3, 31))

    assert [(row.invoice_number, row.product_name, row.quantity) for row in rows] == [
        ("FEB-1", "Cola", Decimal("30")),
        ("MAR-1", "Cola", Decimal("50")),
        ("MAR-1", "Milk", Decimal("10")),
    ]
    assert rows[0].current_stock == Decimal("155")
    assert rows[2].category_name == "Dairy"
    assert rows[2].current_stock == Decimal("25")

    (dairy,) = reports.item_purchase_history(march_context, *MARCH, category_id=2)
    assert dairy.unit_cost == Decimal("3")


def test_item_stock_flow_values_at_purchase_price(march_context):
    cola, milk = reports.item_stock_flow(march_context, *MARCH)

    assert (cola.opening_quantity, cola.purchased_quantity, cola.closing_quantity) == (
        Decimal("130"),
        Decimal("50"),
        Decimal("155"),
    )
    assert (cola.opening_cost, cola.purchased_cost, cola.closing_cost) == (
        Decimal("1560"),
        Decimal("600"),
        Decimal("1860"),
    )
    assert (milk.opening_cost, milk.purchased_cost, milk.closing_cost) == (
        Decimal("60"),
        Decimal("30"),
        Decimal("75"),
    )


def test_reports_do_not_mutate_state(march_context):
    before = march_context.state.activity_log.copy()
    products = march_context.state.products.copy()

    reports.stock_ledger_report(march_context, *MARCH)
    reports.department_consumption(march_context, *MARCH)
    reports.vendor_balances(march_context)

    assert march_context.state.activity_log == before
    assert march_context.state.products == products


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (Decimal("1234.5"), "1,234.50"),
        (Decimal("0.005"), "0.01"),
        (Decimal("-2.675"), "-2.68"),
        (Decimal("1000000"), "1,000,000.00"),
    ],
)
def test_format_money(value, expected):
    assert reports.format_money(value) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (Decimal("2.500"), "2.5"),
        (Decimal("100"), "100"),
        (Decimal("1.23456"), "1.235"),
        (Decimal("-0.0004"), "0"),
    ],
)
def test_format_quantity(value, expected):
    assert reports.format_quantity(value) == expected
