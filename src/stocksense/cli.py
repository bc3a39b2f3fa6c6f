"""Command-line entry points for the StockSense toolkit.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into the command objects consumed by the business
layer. Keeping the CLI thin ensures the same parser configuration can be
reused by tests, scripts, or any alternative front-end that wants to expose
the package capabilities.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log, reports
from .constants import GstType, PaymentMode


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed.

    ``mutates`` marks commands whose success must be persisted to the workbook.
    """

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    mutates: bool = True


# ---------------------------------------------------------------------------
# Argument value parsers
# ---------------------------------------------------------------------------


def parse_decimal(raw: str) -> Decimal:
    """argparse ``type`` converting text into a :class:`Decimal`."""
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a number: {raw!r}") from exc


def parse_date(raw: str) -> datetime:
    """argparse ``type`` accepting ``YYYY-MM-DD`` or a full ISO-8601 timestamp."""
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO date: {raw!r}") from exc
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _split_item(raw: str, minimum: int, maximum: int, layout: str) -> list[str]:
    parts = raw.split(":")
    if not minimum <= len(parts) <= maximum or not all(parts):
        raise argparse.ArgumentTypeError(f"item must look like {layout}, got {raw!r}")
    return parts


def parse_purchase_item(raw: str) -> core_logic.PurchaseItemInput:
    """Parse ``PRODUCT:QTY:COST[:GST]`` into a purchase line."""
    parts = _split_item(raw, 3, 4, "PRODUCT:QTY:COST[:GST]")
    try:
        return core_logic.PurchaseItemInput(
            product_id=int(parts[0]),
            quantity=Decimal(parts[1]),
            unit_cost=Decimal(parts[2]),
            gst_rate=Decimal(parts[3]) if len(parts) == 4 else None,
        )
    except (ValueError, InvalidOperation) as exc:
        raise argparse.ArgumentTypeError(f"invalid purchase item {raw!r}") from exc


def parse_outward_item(raw: str) -> core_logic.OutwardItemInput:
    """Parse ``PRODUCT:QTY[:COST]`` into an outward line."""
    parts = _split_item(raw, 2, 3, "PRODUCT:QTY[:COST]")
    try:
        return core_logic.OutwardItemInput(
            product_id=int(parts[0]),
            quantity=Decimal(parts[1]),
            cost=Decimal(parts[2]) if len(parts) == 3 else None,
        )
    except (ValueError, InvalidOperation) as exc:
        raise argparse.ArgumentTypeError(f"invalid outward item {raw!r}") from exc


# ---------------------------------------------------------------------------
# Parser construction
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="stocksense-cli",
        description="Command-line tools for the StockSense ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upwards from the working directory by default).",
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


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as purchases and outwards."""
    specs = {
        "add-category": register_add_category_command(subparsers),
        "add-vendor": register_add_vendor_command(subparsers),
        "add-department": register_add_department_command(subparsers),
        "add-product": register_add_product_command(subparsers),
        "purchase": register_purchase_command(subparsers),
        "update-purchase": register_update_purchase_command(subparsers),
        "delete-purchase": register_delete_purchase_command(subparsers),
        "pay": register_pay_command(subparsers),
        "outward": register_outward_command(subparsers),
        "update-outward": register_update_outward_command(subparsers),
        "delete-outward": register_delete_outward_command(subparsers),
        "adjust": register_adjust_command(subparsers),
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
        "balances": register_balances_command(subparsers),
        "ledger": register_ledger_command(subparsers),
        "activity": register_activity_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _named_master_command(
    name: str,
    help_text: str,
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def register_add_category_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-category``."""
    return _named_master_command("add-category", "Register a product category.", run_add_category)


def register_add_department_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-department``."""
    return _named_master_command("add-department", "Register a consuming department.", run_add_department)


def register_add_vendor_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-vendor``."""
    name = "add-vendor"
    help_text = "Register a vendor."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--email", default="")
        parser.add_argument("--phone")
        parser.add_argument("--address")
        parser.add_argument("--gstin")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_vendor)


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Register a product with its opening quantity."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--unit", required=True)
        parser.add_argument("--category-id", type=int, required=True)
        parser.add_argument("--vendor-id", type=int, required=True)
        parser.add_argument("--price", type=parse_decimal, required=True)
        parser.add_argument("--gst-rate", type=parse_decimal, default=Decimal("0"))
        parser.add_argument("--reorder-level", type=parse_decimal, default=Decimal("0"))
        parser.add_argument("--opening-quantity", type=parse_decimal, default=Decimal("0"))
        parser.add_argument("--warehouse-id", type=int, default=1)
        parser.add_argument("--hsn")
        parser.add_argument("--barcode")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product)


def _add_purchase_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--vendor-id", type=int, required=True)
    parser.add_argument("--invoice", required=True, help="Vendor invoice number.")
    parser.add_argument(
        "--item",
        dest="items",
        action="append",
        type=parse_purchase_item,
        required=True,
        help="Invoice line as PRODUCT:QTY:COST[:GST]; repeat for several lines.",
    )
    parser.add_argument("--date", type=parse_date, help="Invoice date (defaults to now).")
    parser.add_argument("--gst-type", choices=[gst.value for gst in GstType])


def register_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``purchase``."""
    name = "purchase"
    help_text = "Record a purchase invoice."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_purchase_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_purchase)


def register_update_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-purchase``."""
    name = "update-purchase"
    help_text = "Replace the contents of a purchase invoice."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", required=True)
        _add_purchase_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update_purchase)


def register_delete_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-purchase``."""
    name = "delete-purchase"
    help_text = "Delete a purchase invoice and its payments."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_purchase)


def register_pay_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``pay``."""
    name = "pay"
    help_text = "Record a payment against a purchase invoice."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", required=True)
        parser.add_argument("--amount", type=parse_decimal, required=True)
        parser.add_argument(
            "--mode",
            choices=[mode.value for mode in PaymentMode],
            help="Payment mode (defaults to the configured mode).",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_pay)


def _add_outward_items_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--department-id", type=int, required=True)
    parser.add_argument(
        "--item",
        dest="items",
        action="append",
        type=parse_outward_item,
        required=True,
        help="Issue line as PRODUCT:QTY[:COST]; repeat for several lines.",
    )
    parser.add_argument("--date", type=parse_date, help="Issue date (defaults to now).")
    parser.add_argument("--requisition")


def register_outward_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``outward``."""
    name = "outward"
    help_text = "Issue stock to a department."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_outward_items_argument(parser)
        parser.add_argument("--purchase-id", help="Mark this purchase invoice as outwarded.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_outward)


def register_update_outward_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-outward``."""
    name = "update-outward"
    help_text = "Replace the contents of an outward."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--outward-id", required=True)
        _add_outward_items_argument(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update_outward)


def register_delete_outward_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-outward``."""
    name = "delete-outward"
    help_text = "Delete an outward, returning its stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--outward-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_outward)


def register_adjust_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``adjust``."""
    name = "adjust"
    help_text = "Set a product's stock to a counted quantity."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", type=int, required=True)
        parser.add_argument("--target", type=parse_decimal, required=True)
        parser.add_argument("--reason", required=True)
        parser.add_argument("--date", type=parse_date)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_adjust)


def register_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    name = "stock"
    help_text = "Display stock figures for the current month or a given window."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--from", dest="start", type=parse_date)
        parser.add_argument("--to", dest="end", type=parse_date)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stock_report, mutates=False)


def register_balances_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``balances``."""
    name = "balances"
    help_text = "Display outstanding vendor balances."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_balances_report, mutates=False)


def register_ledger_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``ledger``."""
    name = "ledger"
    help_text = "Display the stock ledger with values for a window."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--from", dest="start", type=parse_date, required=True)
        parser.add_argument("--to", dest="end", type=parse_date, required=True)
        parser.add_argument("--category-id", type=int)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_ledger_report, mutates=False)


def register_activity_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``activity``."""
    name = "activity"
    help_text = "Display the most recent activity log entries."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--limit", type=int, default=20)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_activity_report, mutates=False)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    context = core_logic.load_runtime_context(Path(config_path) if config_path is not None else None)
    core_logic.ensure_schema_version(context)
    return context


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


def translate_add_vendor(args: argparse.Namespace) -> core_logic.VendorCommand:
    """Translate CLI args into a vendor command object."""
    return core_logic.VendorCommand(
        name=args.name,
        email=args.email or "",
        phone=args.phone,
        address=args.address,
        gstin=args.gstin,
    )


def translate_add_product(args: argparse.Namespace) -> core_logic.ProductCommand:
    """Translate CLI args into a product command object."""
    return core_logic.ProductCommand(
        name=args.name,
        unit=args.unit,
        category_id=args.category_id,
        vendor_id=args.vendor_id,
        purchase_price=args.price,
        gst_rate=args.gst_rate,
        reorder_level=args.reorder_level,
        initial_quantity=args.opening_quantity,
        warehouse_id=args.warehouse_id,
        hsn=args.hsn,
        barcode=args.barcode,
    )


def _gst_type(args: argparse.Namespace) -> Optional[GstType]:
    return GstType(args.gst_type) if getattr(args, "gst_type", None) else None


def translate_purchase(args: argparse.Namespace) -> core_logic.PurchaseCommand:
    """Translate CLI args into a purchase command object."""
    return core_logic.PurchaseCommand(
        vendor_id=args.vendor_id,
        invoice_number=args.invoice,
        items=tuple(args.items),
        date=args.date,
        gst_type=_gst_type(args),
    )


def translate_update_purchase(args: argparse.Namespace) -> core_logic.PurchaseUpdateCommand:
    """Translate CLI args into a purchase update command object."""
    return core_logic.PurchaseUpdateCommand(
        purchase_id=args.purchase_id,
        vendor_id=args.vendor_id,
        invoice_number=args.invoice,
        items=tuple(args.items),
        date=args.date,
        gst_type=_gst_type(args),
    )


def translate_pay(args: argparse.Namespace) -> core_logic.PaymentCommand:
    """Translate CLI args into a payment command object."""
    return core_logic.PaymentCommand(
        purchase_id=args.purchase_id,
        amount=args.amount,
        mode=PaymentMode(args.mode) if args.mode else None,
    )


def translate_outward(args: argparse.Namespace) -> core_logic.OutwardCommand:
    """Translate CLI args into an outward command object."""
    return core_logic.OutwardCommand(
        department_id=args.department_id,
        items=tuple(args.items),
        date=args.date,
        requisition_number=args.requisition,
        purchase_id=args.purchase_id,
    )


def translate_update_outward(args: argparse.Namespace) -> core_logic.OutwardUpdateCommand:
    """Translate CLI args into an outward update command object."""
    return core_logic.OutwardUpdateCommand(
        outward_id=args.outward_id,
        department_id=args.department_id,
        items=tuple(args.items),
        date=args.date,
        requisition_number=args.requisition,
    )


def translate_adjust(args: argparse.Namespace) -> core_logic.AdjustStockCommand:
    """Translate CLI args into a stock adjustment command object."""
    return core_logic.AdjustStockCommand(
        product_id=args.product_id,
        target_quantity=args.target,
        reason=args.reason,
        date=args.date,
    )


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def run_add_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    category = core_logic.add_category(context, args.name)
    print(f"Category {category.category_id}: {category.name}")
    return 0


def run_add_department(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    department = core_logic.add_department(context, args.name)
    print(f"Department {department.department_id}: {department.name}")
    return 0


def run_add_vendor(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    vendor = core_logic.add_vendor(context, translate_add_vendor(args))
    print(f"Vendor {vendor.vendor_id}: {vendor.name}")
    return 0


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    product = core_logic.add_product(context, translate_add_product(args))
    print(f"Product {product.product_id}: {product.name} ({reports.format_quantity(product.quantity)} {product.unit})")
    return 0


def run_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the purchase workflow via the BLL."""
    purchase = core_logic.record_purchase(context, translate_purchase(args))
    print(f"Purchase {purchase.purchase_id}: total {reports.format_money(purchase.total_amount)}")
    return 0


def run_update_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    purchase = core_logic.update_purchase(context, translate_update_purchase(args))
    print(f"Purchase {purchase.purchase_id}: total {reports.format_money(purchase.total_amount)} ({purchase.payment_status})")
    return 0


def run_delete_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_purchase(context, args.purchase_id)
    print(f"Deleted purchase {args.purchase_id}")
    return 0


def run_pay(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the vendor payment workflow via the BLL."""
    payment = core_logic.record_payment(context, translate_pay(args))
    purchase = core_logic.get_purchase(context, payment.purchase_id)
    print(f"Payment {payment.payment_id}: {reports.format_money(payment.amount)} ({purchase.payment_status})")
    return 0


def run_outward(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the outward workflow via the BLL."""
    outward = core_logic.record_outward(context, translate_outward(args))
    print(f"Outward {outward.outward_id}: cost {reports.format_money(outward.total_cost)}")
    return 0


def run_update_outward(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    outward = core_logic.update_outward(context, translate_update_outward(args))
    print(f"Outward {outward.outward_id}: cost {reports.format_money(outward.total_cost)}")
    return 0


def run_delete_outward(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_outward(context, args.outward_id)
    print(f"Deleted outward {args.outward_id}")
    return 0


def run_adjust(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stock adjustment workflow via the BLL."""
    adjustment = core_logic.adjust_stock(context, translate_adjust(args))
    print(f"Adjustment {adjustment.adjustment_id}: delta {reports.format_quantity(adjustment.quantity)}")
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print opening, movement and closing figures per product."""
    end = args.end or datetime.now(UTC)
    start = args.start or date(end.year, end.month, 1)
    for product in core_logic.list_products(context):
        stock = core_logic.compute_stock(context, product.product_id, start, end)
        print(
            f"{product.product_id}\t{product.name}\t"
            f"open {reports.format_quantity(stock.month_opening)}\t"
            f"in {reports.format_quantity(stock.inward)}\t"
            f"out {reports.format_quantity(stock.outward)}\t"
            f"adj {reports.format_quantity(stock.adjustment)}\t"
            f"close {reports.format_quantity(stock.closing_stock)}\t"
            f"live {reports.format_quantity(stock.live_stock)} {product.unit}"
        )
    return 0


def run_balances_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the outstanding balance of every vendor."""
    names = {vendor.vendor_id: vendor.name for vendor in core_logic.list_vendors(context)}
    for vendor_id, balance in reports.vendor_balances(context).items():
        print(f"{vendor_id}\t{names.get(vendor_id, 'Unknown')}\t{reports.format_money(balance)}")
    return 0


def run_ledger_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the valued stock ledger for the requested window."""
    for row in reports.stock_ledger_report(context, args.start, args.end, args.category_id):
        print(
            f"{row.product_name}\t"
            f"{reports.format_quantity(row.opening_quantity)} ({reports.format_money(row.opening_value)})\t"
            f"+{reports.format_quantity(row.inward_quantity)} ({reports.format_money(row.inward_value)})\t"
            f"-{reports.format_quantity(row.outward_quantity)} ({reports.format_money(row.outward_value)})\t"
            f"adj {reports.format_quantity(row.adjustment_quantity)}\t"
            f"{reports.format_quantity(row.closing_quantity)} ({reports.format_money(row.closing_value)})"
        )
    return 0


def run_activity_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the newest activity log entries."""
    for entry in core_logic.list_activity(context)[: max(args.limit, 0)]:
        print(f"{entry.timestamp.isoformat()}\t{entry.entity}\t{entry.action}\t{entry.details}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, core_logic.PersistenceError):
        log.error("%s", error)
        return 4
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    core_logic.persist_context(context)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        spec = command_table[args.command]
        if exit_code == 0 and spec.mutates and not context.settings.auto_save:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
