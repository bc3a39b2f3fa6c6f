"""Read-only reporting projections over the StockSense ledger.

Every report aggregates the state of a :class:`~stocksense.core_logic.RuntimeContext`
without mutating it. Figures stay exact ``Decimal`` values; rounding happens
only in :func:`format_money` and :func:`format_quantity`.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Tuple

from . import core_logic, data_manager, log, stock_engine
from .constants import GstType

ZERO = Decimal("0")


@dataclass(frozen=True)
class StockLedgerRow:
    """Opening, movement and closing figures for one product over a window."""

    product_id: int
    product_name: str
    unit: str
    category_id: int
    opening_quantity: Decimal
    opening_value: Decimal
    inward_quantity: Decimal
    inward_value: Decimal
    outward_quantity: Decimal
    outward_value: Decimal
    adjustment_quantity: Decimal
    closing_quantity: Decimal
    closing_value: Decimal


@dataclass(frozen=True)
class StockValuationRow:
    product_id: int
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    value: Decimal


@dataclass(frozen=True)
class DepartmentConsumptionRow:
    department_id: int
    department_name: str
    total_items: Decimal
    total_cost: Decimal


@dataclass(frozen=True)
class ConsumptionDetailRow:
    """Per-product consumption of a single department."""

    product_id: int
    product_name: str
    category_name: str
    unit: str
    total_quantity: Decimal
    average_cost: Decimal
    total_cost: Decimal


@dataclass(frozen=True)
class PurchaseMatrixRow:
    product_id: int
    product_name: str
    quantities: Dict[date, Decimal]
    total_quantity: Decimal


@dataclass(frozen=True)
class PurchaseMatrix:
    """Purchased quantities laid out as purchase dates × products."""

    dates: Tuple[date, ...]
    rows: Tuple[PurchaseMatrixRow, ...]


@dataclass(frozen=True)
class GstSplit:
    cgst: Decimal
    sgst: Decimal
    igst: Decimal


@dataclass(frozen=True)
class PurchaseRegisterRow:
    """One invoice line with its taxable base and GST breakdown."""

    date: datetime
    purchase_id: str
    invoice_number: str
    vendor_name: str
    product_id: int
    product_name: str
    unit: str
    quantity: Decimal
    unit_cost: Decimal
    gst_rate: Decimal
    gst_type: str
    base_amount: Decimal
    gst_amount: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    total: Decimal


@dataclass(frozen=True)
class InvoiceSummaryRow:
    sr: int
    date: datetime
    purchase_id: str
    invoice_number: str
    vendor_name: str
    base_amount: Decimal
    gst_amount: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    payment_status: str


@dataclass(frozen=True)
class PurchaseHistoryRow:
    date: datetime
    product_id: int
    product_name: str
    category_name: str
    vendor_name: str
    invoice_number: str
    quantity: Decimal
    unit_cost: Decimal
    current_stock: Decimal


@dataclass(frozen=True)
class StockFlowRow:
    """Opening, purchased and closing stock of one product, valued at purchase price."""

    product_id: int
    product_name: str
    category_name: str
    opening_quantity: Decimal
    opening_cost: Decimal
    purchased_quantity: Decimal
    purchased_cost: Decimal
    closing_quantity: Decimal
    closing_cost: Decimal


def _window(period_start: stock_engine.DateLike, period_end: stock_engine.DateLike) -> Tuple[datetime, datetime]:
    try:
        return stock_engine.period_bounds(period_start, period_end)
    except ValueError as exc:
        log.error("Invalid report window: %s", exc)
        raise core_logic.ValidationError(str(exc)) from exc


def _outwards_within(
    context: core_logic.RuntimeContext, start: datetime, end: datetime
) -> List[data_manager.OutwardRow]:
    return [
        outward
        for outward in context.state.outwards
        if start <= stock_engine.as_utc(outward.date) <= end
    ]


def _purchases_within(
    context: core_logic.RuntimeContext, start: datetime, end: datetime
) -> List[data_manager.PurchaseRow]:
    return [
        purchase
        for purchase in context.state.purchases
        if start <= stock_engine.as_utc(purchase.date) <= end
    ]


def vendor_balances(context: core_logic.RuntimeContext) -> Dict[int, Decimal]:
    """Return the outstanding amount (Σ total − Σ paid) owed to each vendor.

    Every known vendor appears in the mapping, with zero when nothing is due.
    """

    balances: Dict[int, Decimal] = {vendor.vendor_id: ZERO for vendor in context.state.vendors}
    for purchase in context.state.purchases:
        balances[purchase.vendor_id] = (
            balances.get(purchase.vendor_id, ZERO) + purchase.total_amount - purchase.paid_amount
        )
    log.debug("Calculated balances for %d vendors", len(balances))
    return balances


def stock_ledger_report(
    context: core_logic.RuntimeContext,
    period_start: stock_engine.DateLike,
    period_end: stock_engine.DateLike,
    category_id: Optional[int] = None,
) -> List[StockLedgerRow]:
    """Build the stock ledger for a reporting window.

    Quantities come from the derivation engine. Inward value uses each
    invoice line's unit cost and outward value the cost snapshot taken at
    issue; opening and closing stock are valued at the current purchase
    price. Products with no stock and no movement are omitted.

    Args:
        context (core_logic.RuntimeContext): Context owning the ledger.
        period_start (date | datetime): First day of the window.
        period_end (date | datetime): Last day of the window.
        category_id (int | None): Restrict the report to one category.

    Returns:
        list[StockLedgerRow]: One row per product in creation order.

    Raises:
        core_logic.ValidationError: If the window is reversed.
    """

    start, end = _window(period_start, period_end)
    inward_value: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    outward_value: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    for purchase in _purchases_within(context, start, end):
        for item in purchase.items:
            inward_value[item.product_id] += item.quantity * item.unit_cost
    for outward in _outwards_within(context, start, end):
        for item in outward.items:
            outward_value[item.product_id] += item.quantity * item.cost_at_time

    rows: List[StockLedgerRow] = []
    for product in context.state.products:
        if category_id is not None and product.category_id != category_id:
            continue
        stock = stock_engine.compute_stock(context.state, product.product_id, period_start, period_end)
        if not any(
            (stock.month_opening, stock.inward, stock.outward, stock.adjustment, stock.closing_stock)
        ):
            continue
        rows.append(
            StockLedgerRow(
                product_id=product.product_id,
                product_name=product.name,
                unit=product.unit,
                category_id=product.category_id,
                opening_quantity=stock.month_opening,
                opening_value=stock.month_opening * product.purchase_price,
                inward_quantity=stock.inward,
                inward_value=inward_value[product.product_id],
                outward_quantity=stock.outward,
                outward_value=outward_value[product.product_id],
                adjustment_quantity=stock.adjustment,
                closing_quantity=stock.closing_stock,
                closing_value=stock.closing_stock * product.purchase_price,
            )
        )
    return rows


def stock_valuation(context: core_logic.RuntimeContext, category_id: Optional[int] = None) -> List[StockValuationRow]:
    """Value live stock at each product's current purchase price."""

    rows = []
    for product in context.state.products:
        if category_id is not None and product.category_id != category_id:
            continue
        quantity = stock_engine.live_stock(context.state, product.product_id)
        rows.append(
            StockValuationRow(
                product_id=product.product_id,
                product_name=product.name,
                quantity=quantity,
                unit_price=product.purchase_price,
                value=quantity * product.purchase_price,
            )
        )
    return rows


def low_stock_products(context: core_logic.RuntimeContext) -> List[data_manager.ProductRow]:
    """Return products whose live stock is at or below their reorder level."""

    levels = stock_engine.live_stock_levels(context.state)
    return [
        product
        for product in context.state.products
        if levels[product.product_id] <= product.reorder_level
    ]


def department_consumption(
    context: core_logic.RuntimeContext,
    period_start: stock_engine.DateLike,
    period_end: stock_engine.DateLike,
) -> List[DepartmentConsumptionRow]:
    """Summarize items issued and their cost per department.

    Every department appears, including those with no outward in the window.
    """

    start, end = _window(period_start, period_end)
    items: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    costs: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    for outward in _outwards_within(context, start, end):
        items[outward.department_id] += sum((item.quantity for item in outward.items), ZERO)
        costs[outward.department_id] += outward.total_cost
    return [
        DepartmentConsumptionRow(
            department_id=department.department_id,
            department_name=department.name,
            total_items=items[department.department_id],
            total_cost=costs[department.department_id],
        )
        for department in context.state.departments
    ]


def detailed_department_consumption(
    context: core_logic.RuntimeContext,
    department_id: int,
    period_start: stock_engine.DateLike,
    period_end: stock_engine.DateLike,
) -> List[ConsumptionDetailRow]:
    """Break one department's consumption down per product.

    Raises:
        core_logic.NotFoundError: If the department is unknown.
    """

    core_logic.get_department(context, department_id)
    start, end = _window(period_start, period_end)
    quantities: Dict[int, Decimal] = {}
    costs: Dict[int, Decimal] = {}
    for outward in _outwards_within(context, start, end):
        if outward.department_id != department_id:
            continue
        for item in outward.items:
            quantities[item.product_id] = quantities.get(item.product_id, ZERO) + item.quantity
            costs[item.product_id] = costs.get(item.product_id, ZERO) + item.quantity * item.cost_at_time

    categories = {category.category_id: category.name for category in context.state.categories}
    rows = []
    for product_id, quantity in quantities.items():
        product = stock_engine.find_product(context.state, product_id)
        if product is None:
            continue
        rows.append(
            ConsumptionDetailRow(
                product_id=product_id,
                product_name=product.name,
                category_name=categories.get(product.category_id, "N/A"),
                unit=product.unit,
                total_quantity=quantity,
                average_cost=costs[product_id] / quantity,
                total_cost=costs[product_id],
            )
        )
    return rows


def department_category_consumption(
    context: core_logic.RuntimeContext,
    period_start: stock_engine.DateLike,
    period_end: stock_engine.DateLike,
) -> Dict[int, Dict[int, Decimal]]:
    """Return consumed value keyed by department id, then category id."""

    start, end = _window(period_start, period_end)
    categories = {product.product_id: product.category_id for product in context.state.products}
    matrix: Dict[int, Dict[int, Decimal]] = {}
    for outward in _outwards_within(context, start, end):
        by_category = matrix.setdefault(outward.department_id, {})
        for item in outward.items:
            category_id = categories.get(item.product_id)
            if category_id is None:
                continue
            by_category[category_id] = by_category.get(category_id, ZERO) + item.quantity * item.cost_at_time
    return matrix


def item_purchase_matrix(
    context: core_logic.RuntimeContext,
    period_start: stock_engine.DateLike,
    period_end: stock_engine.DateLike,
) -> PurchaseMatrix:
    """Lay out purchased quantities by UTC purchase date and product.

    Products never purchased in the window are left out.
    """

    start, end = _window(period_start, period_end)
    purchases = _purchases_within(context, start, end)
    dates = tuple(sorted({stock_engine.calendar_day(purchase.date) for purchase in purchases}))

    per_product: Dict[int, Dict[date, Decimal]] = defaultdict(dict)
    for purchase in purchases:
        day = stock_engine.calendar_day(purchase.date)
        for item in purchase.items:
            quantities = per_product[item.product_id]
            quantities[day] = quantities.get(day, ZERO) + item.quantity

    rows = tuple(
        PurchaseMatrixRow(
            product_id=product.product_id,
            product_name=product.name,
            quantities=dict(per_product[product.product_id]),
            total_quantity=sum(per_product[product.product_id].values(), ZERO),
        )
        for product in context.state.products
        if product.product_id in per_product
    )
    return PurchaseMatrix(dates=dates, rows=rows)


def gst_split(tax: Decimal, gst_type: str) -> GstSplit:
    """Split a tax amount into CGST/SGST halves (intra-state) or IGST (inter-state).

    Raises:
        core_logic.ValidationError: If ``gst_type`` is not a known GST type.
    """

    try:
        kind = GstType(gst_type)
    except ValueError as exc:
        log.error("Unsupported GST type in ledger: %s", gst_type)
        raise core_logic.ValidationError(f"Unsupported GST type: {gst_type}") from exc
    if kind is GstType.INTER:
        return GstSplit(cgst=ZERO, sgst=ZERO, igst=tax)
    half = tax / 2
    return GstSplit(cgst=half, sgst=half, igst=ZERO)


def _vendor_names(context: core_logic.RuntimeContext) -> Dict[int, str]:
    return {vendor.vendor_id: vendor.name for vendor in context.state.vendors}


def _category_names(context: core_logic.RuntimeContext) -> Dict[int, str]:
    return {category.category_id: category.name for category in context.state.categories}


def purchase_register(
    context: core_logic.RuntimeContext,
    period_start: stock_engine.DateLike,
    period_end: stock_engine.DateLike,
    vendor_id: Optional[int] = None,
) -> List[PurchaseRegisterRow]:
    """List every purchased line in the window with its GST breakdown.

    The base amount is quantity × unit cost and the GST amount is
    base × rate / 100. The tax is split by the invoice's GST type:
    intra-state invoices carry equal CGST and SGST halves, inter-state
    invoices carry the whole tax as IGST.

    Args:
        context (core_logic.RuntimeContext): Context owning the ledger.
        period_start (date | datetime): First day of the window.
        period_end (date | datetime): Last day of the window.
        vendor_id (int | None): Restrict the register to one vendor.

    Returns:
        list[PurchaseRegisterRow]: Rows ordered by purchase date, then line.

    Raises:
        core_logic.ValidationError: If the window is reversed.
    """

    start, end = _window(period_start, period_end)
    vendors = _vendor_names(context)
    purchases = sorted(_purchases_within(context, start, end), key=lambda purchase: stock_engine.as_utc(purchase.date))
    rows: List[PurchaseRegisterRow] = []
    for purchase in purchases:
        if vendor_id is not None and purchase.vendor_id != vendor_id:
            continue
        for item in purchase.items:
            product = stock_engine.find_product(context.state, item.product_id)
            base = item.quantity * item.unit_cost
            tax = base * item.gst_rate / Decimal("100")
            split = gst_split(tax, purchase.gst_type)
            rows.append(
                PurchaseRegisterRow(
                    date=purchase.date,
                    purchase_id=purchase.purchase_id,
                    invoice_number=purchase.invoice_number,
                    vendor_name=vendors.get(purchase.vendor_id, "N/A"),
                    product_id=item.product_id,
                    product_name=product.name if product is not None else "N/A",
                    unit=product.unit if product is not None else "",
                    quantity=item.quantity,
                    unit_cost=item.unit_cost,
                    gst_rate=item.gst_rate,
                    gst_type=purchase.gst_type,
                    base_amount=base,
                    gst_amount=tax,
                    cgst=split.cgst,
                    sgst=split.sgst,
                    igst=split.igst,
                    total=base + tax,
                )
            )
    log.debug("Purchase register holds %d lines", len(rows))
    return rows


def invoice_purchases_summary(
    context: core_logic.RuntimeContext,
    period_start: stock_engine.DateLike,
    period_end: stock_engine.DateLike,
) -> List[InvoiceSummaryRow]:
    """Summarize each invoice in the window, numbered in date order."""

    start, end = _window(period_start, period_end)
    vendors = _vendor_names(context)
    purchases = sorted(_purchases_within(context, start, end), key=lambda purchase: stock_engine.as_utc(purchase.date))
    rows = []
    for sr, purchase in enumerate(purchases, start=1):
        base = sum((item.quantity * item.unit_cost for item in purchase.items), ZERO)
        tax = sum((item.quantity * item.unit_cost * item.gst_rate / Decimal("100") for item in purchase.items), ZERO)
        split = gst_split(tax, purchase.gst_type)
        rows.append(
            InvoiceSummaryRow(
                sr=sr,
                date=purchase.date,
                purchase_id=purchase.purchase_id,
                invoice_number=purchase.invoice_number,
                vendor_name=vendors.get(purchase.vendor_id, "N/A"),
                base_amount=base,
                gst_amount=tax,
                cgst=split.cgst,
                sgst=split.sgst,
                igst=split.igst,
                total_amount=purchase.total_amount,
                paid_amount=purchase.paid_amount,
                payment_status=purchase.payment_status,
            )
        )
    return rows


def item_purchase_history(
    context: core_logic.RuntimeContext,
    period_start: stock_engine.DateLike,
    period_end: stock_engine.DateLike,
    category_id: Optional[int] = None,
) -> List[PurchaseHistoryRow]:
    """List purchased lines alongside each product's current live stock."""

    start, end = _window(period_start, period_end)
    vendors = _vendor_names(context)
    categories = _category_names(context)
    levels = stock_engine.live_stock_levels(context.state)
    purchases = sorted(_purchases_within(context, start, end), key=lambda purchase: stock_engine.as_utc(purchase.date))
    rows = []
    for purchase in purchases:
        for item in purchase.items:
            product = stock_engine.find_product(context.state, item.product_id)
            if product is None:
                continue
            if category_id is not None and product.category_id != category_id:
                continue
            rows.append(
                PurchaseHistoryRow(
                    date=purchase.date,
                    product_id=product.product_id,
                    product_name=product.name,
                    category_name=categories.get(product.category_id, "N/A"),
                    vendor_name=vendors.get(purchase.vendor_id, "N/A"),
                    invoice_number=purchase.invoice_number,
                    quantity=item.quantity,
                    unit_cost=item.unit_cost,
                    current_stock=levels.get(product.product_id, ZERO),
                )
            )
    return rows


def item_stock_flow(
    context: core_logic.RuntimeContext,
    period_start: stock_engine.DateLike,
    period_end: stock_engine.DateLike,
    category_id: Optional[int] = None,
) -> List[StockFlowRow]:
    """Show opening, purchased and closing stock per product.

    Every cost is valued at the product's current purchase price.
    """

    _window(period_start, period_end)
    categories = _category_names(context)
    rows = []
    for product in context.state.products:
        if category_id is not None and product.category_id != category_id:
            continue
        stock = stock_engine.compute_stock(context.state, product.product_id, period_start, period_end)
        rows.append(
            StockFlowRow(
                product_id=product.product_id,
                product_name=product.name,
                category_name=categories.get(product.category_id, "N/A"),
                opening_quantity=stock.month_opening,
                opening_cost=stock.month_opening * product.purchase_price,
                purchased_quantity=stock.inward,
                purchased_cost=stock.inward * product.purchase_price,
                closing_quantity=stock.closing_stock,
                closing_cost=stock.closing_stock * product.purchase_price,
            )
        )
    return rows


def format_money(value: Decimal) -> str:
    """Render a money value with two places (half-up) and thousands separators."""

    return f"{Decimal(value).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,.2f}"


def format_quantity(value: Decimal) -> str:
    """Render a quantity with up to three decimals, dropping trailing zeros."""

    rounded = Decimal(value).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP)
    text = f"{rounded:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


__all__ = [
    "StockLedgerRow",
    "StockValuationRow",
    "DepartmentConsumptionRow",
    "ConsumptionDetailRow",
    "PurchaseMatrixRow",
    "PurchaseMatrix",
    "GstSplit",
    "PurchaseRegisterRow",
    "InvoiceSummaryRow",
    "PurchaseHistoryRow",
    "StockFlowRow",
    "vendor_balances",
    "stock_ledger_report",
    "stock_valuation",
    "low_stock_products",
    "department_consumption",
    "detailed_department_consumption",
    "department_category_consumption",
    "item_purchase_matrix",
    "gst_split",
    "purchase_register",
    "invoice_purchases_summary",
    "item_purchase_history",
    "item_stock_flow",
    "format_money",
    "format_quantity",
]
