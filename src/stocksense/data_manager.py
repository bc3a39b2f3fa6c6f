"""Data access layer for StockSense.

This module provides low-level helpers that read from and write to the ledger
workbook. Business rules belong in :mod:`stocksense.core_logic`; stock
derivation belongs in :mod:`stocksense.stock_engine`.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Record types: the frozen dataclasses that model master data and the
   movement ledger, plus the :class:`LedgerState` that owns them.
4. Sheet operations: converting every collection to and from worksheet rows.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import SHEET_COLUMNS, GstType, PaymentMode, SheetName


CONFIG_FILE_NAME = "config.ini"


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Optional[Path]
    company_name: str
    schema_version: str
    auto_save: bool = False
    default_payment_mode: PaymentMode = PaymentMode.CASH
    default_gst_type: GstType = GstType.INTRA


# ---------------------------------------------------------------------------
# Master data records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CategoryRow:
    """In-memory view of a row from the ``Categories`` sheet."""

    category_id: int
    name: str


@dataclass(frozen=True)
class VendorRow:
    """In-memory view of a row from the ``Vendors`` sheet."""

    vendor_id: int
    name: str
    email: str = ""
    phone: Optional[str] = None
    address: Optional[str] = None
    gstin: Optional[str] = None


@dataclass(frozen=True)
class DepartmentRow:
    """In-memory view of a row from the ``Departments`` sheet."""

    department_id: int
    name: str


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet.

    ``initial_quantity`` is the baseline recorded when the product was created
    and never changes afterwards. ``quantity`` caches the live stock derived
    from the ledger and is rebuilt after every ledger mutation.
    """

    product_id: int
    name: str
    unit: str
    category_id: int
    vendor_id: int
    warehouse_id: int
    purchase_price: Decimal
    gst_rate: Decimal
    reorder_level: Decimal
    initial_quantity: Decimal
    quantity: Decimal
    hsn: Optional[str] = None
    barcode: Optional[str] = None


# ---------------------------------------------------------------------------
# Movement ledger records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PurchaseItemRow:
    """One line of a purchase invoice."""

    product_id: int
    quantity: Decimal
    unit_cost: Decimal
    gst_rate: Decimal


@dataclass(frozen=True)
class PurchaseRow:
    """A purchase invoice together with its line items."""

    purchase_id: str
    vendor_id: int
    invoice_number: str
    date: datetime
    gst_type: str
    items: Tuple[PurchaseItemRow, ...]
    total_amount: Decimal
    paid_amount: Decimal
    payment_status: str
    is_outwarded: bool = False


@dataclass(frozen=True)
class OutwardItemRow:
    """One line of an outward issue, carrying the cost snapshot."""

    product_id: int
    quantity: Decimal
    cost_at_time: Decimal


@dataclass(frozen=True)
class OutwardRow:
    """An outward (issue to department) transaction."""

    outward_id: str
    department_id: int
    requisition_number: Optional[str]
    date: datetime
    items: Tuple[OutwardItemRow, ...]
    total_cost: Decimal


@dataclass(frozen=True)
class StockAdjustmentRow:
    """A signed stock correction; ``quantity`` is the delta, not a target."""

    adjustment_id: str
    product_id: int
    quantity: Decimal
    date: datetime
    reason: str


@dataclass(frozen=True)
class VendorPaymentRow:
    """A payment settled against a purchase invoice."""

    payment_id: str
    purchase_id: str
    vendor_id: int
    amount: Decimal
    date: datetime
    mode: str


@dataclass(frozen=True)
class ActivityRow:
    """An entry of the activity (audit) log."""

    log_id: str
    timestamp: datetime
    entity: str
    action: str
    details: str


@dataclass
class LedgerState:
    """Owner of every master data and ledger collection.

    One instance backs one runtime context, so independent contexts never
    share collections.
    """

    products: List[ProductRow] = field(default_factory=list)
    categories: List[CategoryRow] = field(default_factory=list)
    vendors: List[VendorRow] = field(default_factory=list)
    departments: List[DepartmentRow] = field(default_factory=list)
    purchases: List[PurchaseRow] = field(default_factory=list)
    outwards: List[OutwardRow] = field(default_factory=list)
    stock_adjustments: List[StockAdjustmentRow] = field(default_factory=list)
    vendor_payments: List[VendorPaymentRow] = field(default_factory=list)
    activity_log: List[ActivityRow] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` must provide ``DataFile``, ``CompanyName`` and
    ``SchemaVersion``. ``AutoSave`` and the whole ``[Defaults]`` section are
    optional. Relative data file paths are expanded against ``base_path`` (or
    the current working directory) and resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory to use as the anchor for relative
            ``DataFile`` entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required option is missing.
        ValueError: If ``AutoSave`` or one of the defaults holds an unknown
            value.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        company_name = parser.get("System", "CompanyName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    auto_save = parser.getboolean("System", "AutoSave", fallback=False)
    payment_mode = PaymentMode(parser.get("Defaults", "PaymentMode", fallback=PaymentMode.CASH.value))
    gst_type = GstType(parser.get("Defaults", "GstType", fallback=GstType.INTRA.value))

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        company_name=company_name,
        schema_version=schema_version,
        auto_save=auto_save,
        default_payment_mode=payment_mode,
        default_gst_type=gst_type,
    )


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def open_workbook(data_file: Path) -> Workbook:
    """Open the ledger workbook and return a live ``openpyxl`` workbook.

    Args:
        data_file (Path): Filesystem path to the ledger workbook.

    Returns:
        Workbook: ``openpyxl`` workbook instance backed by the provided file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
        KeyError: If one of the expected sheets is missing.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    validate_workbook(wb)
    return wb


def validate_workbook(workbook: Workbook) -> None:
    """Check that every sheet of the layout exists with the expected header."""

    for sheet_name, columns in SHEET_COLUMNS.items():
        if sheet_name not in workbook.sheetnames:
            raise KeyError(f"Workbook is missing sheet: {sheet_name}")
        header = tuple(cell.value for cell in workbook[sheet_name][1])[: len(columns)]
        if header != columns:
            raise KeyError(f"Unexpected header on sheet '{sheet_name}': {header}")


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk, creating parent directories on demand.

    Args:
        workbook (Workbook): Workbook instance to persist.
        destination (Path): Filesystem path that should receive the serialized
            workbook.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def to_decimal(raw: object, default: str = "0") -> Decimal:
    """Normalize a cell value into a :class:`~decimal.Decimal`.

    Going through ``str`` avoids carrying binary float artefacts (``0.1``
    stays ``Decimal("0.1")``).
    """

    if raw is None or raw == "":
        return Decimal(default)
    if isinstance(raw, Decimal):
        return raw
    return Decimal(str(raw))


def format_decimal(value: Decimal) -> str:
    """Serialize a Decimal as text so no digits are lost to Excel floats."""

    return str(value)


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime as an ISO-8601 string."""

    return value.isoformat()


def parse_timestamp(raw: object) -> datetime:
    """Parse an ISO-8601 cell value back into a timezone-aware datetime.

    Naive values are interpreted as UTC, matching how the orchestration layer
    normalizes caller-supplied dates.

    Raises:
        ValueError: If the cell is empty or not a valid ISO-8601 string.
    """

    if isinstance(raw, datetime):
        parsed = raw
    elif raw is None or raw == "":
        raise ValueError("Missing timestamp value")
    else:
        parsed = datetime.fromisoformat(str(raw))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _optional_str(raw: object) -> Optional[str]:
    return str(raw) if raw is not None and raw != "" else None


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product dataclass into the ``Products`` column ordering."""

    return [
        record.product_id,
        record.name,
        record.unit,
        record.category_id,
        record.vendor_id,
        record.warehouse_id,
        format_decimal(record.purchase_price),
        format_decimal(record.gst_rate),
        format_decimal(record.reorder_level),
        format_decimal(record.initial_quantity),
        format_decimal(record.quantity),
        record.hsn,
        record.barcode,
    ]


def serialize_category(record: CategoryRow) -> list[object]:
    return [record.category_id, record.name]


def serialize_vendor(record: VendorRow) -> list[object]:
    return [record.vendor_id, record.name, record.email, record.phone, record.address, record.gstin]


def serialize_department(record: DepartmentRow) -> list[object]:
    return [record.department_id, record.name]


def serialize_purchase(record: PurchaseRow) -> Tuple[list[object], List[list[object]]]:
    """Split a purchase into its header row and its item rows.

    Returns:
        tuple: ``(header_row, item_rows)`` matching the ``Purchases`` and
            ``PurchaseItems`` column orderings.
    """

    header = [
        record.purchase_id,
        record.vendor_id,
        record.invoice_number,
        format_timestamp(record.date),
        record.gst_type,
        format_decimal(record.total_amount),
        format_decimal(record.paid_amount),
        record.payment_status,
        record.is_outwarded,
    ]
    items = [
        [
            record.purchase_id,
            item.product_id,
            format_decimal(item.quantity),
            format_decimal(item.unit_cost),
            format_decimal(item.gst_rate),
        ]
        for item in record.items
    ]
    return header, items


def serialize_outward(record: OutwardRow) -> Tuple[list[object], List[list[object]]]:
    """Split an outward transaction into its header row and its item rows."""

    header = [
        record.outward_id,
        record.department_id,
        record.requisition_number,
        format_timestamp(record.date),
        format_decimal(record.total_cost),
    ]
    items = [
        [record.outward_id, item.product_id, format_decimal(item.quantity), format_decimal(item.cost_at_time)]
        for item in record.items
    ]
    return header, items


def serialize_stock_adjustment(record: StockAdjustmentRow) -> list[object]:
    return [
        record.adjustment_id,
        record.product_id,
        format_decimal(record.quantity),
        format_timestamp(record.date),
        record.reason,
    ]


def serialize_vendor_payment(record: VendorPaymentRow) -> list[object]:
    return [
        record.payment_id,
        record.purchase_id,
        record.vendor_id,
        format_decimal(record.amount),
        format_timestamp(record.date),
        record.mode,
    ]


def serialize_activity(record: ActivityRow) -> list[object]:
    return [
        record.log_id,
        format_timestamp(record.timestamp),
        record.entity,
        record.action,
        record.details,
    ]


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw ``Products`` row into a strongly typed product record.

    Numeric columns become :class:`~decimal.Decimal` instances and identifier
    columns are coerced to ``int`` to hide Excel's number handling.
    """

    (
        product_id,
        name,
        unit,
        category_id,
        vendor_id,
        warehouse_id,
        purchase_price,
        gst_rate,
        reorder_level,
        initial_quantity,
        quantity,
        hsn,
        barcode,
    ) = tuple(raw_row)[:13]
    return ProductRow(
        product_id=int(product_id),
        name=str(name),
        unit=str(unit) if unit is not None else "",
        category_id=int(category_id),
        vendor_id=int(vendor_id),
        warehouse_id=int(warehouse_id) if warehouse_id is not None else 0,
        purchase_price=to_decimal(purchase_price),
        gst_rate=to_decimal(gst_rate),
        reorder_level=to_decimal(reorder_level),
        initial_quantity=to_decimal(initial_quantity),
        quantity=to_decimal(quantity),
        hsn=_optional_str(hsn),
        barcode=_optional_str(barcode),
    )


def deserialize_category(raw_row: Sequence[object]) -> CategoryRow:
    category_id, name = tuple(raw_row)[:2]
    return CategoryRow(category_id=int(category_id), name=str(name))


def deserialize_vendor(raw_row: Sequence[object]) -> VendorRow:
    vendor_id, name, email, phone, address, gstin = tuple(raw_row)[:6]
    return VendorRow(
        vendor_id=int(vendor_id),
        name=str(name),
        email=str(email) if email is not None else "",
        phone=_optional_str(phone),
        address=_optional_str(address),
        gstin=_optional_str(gstin),
    )


def deserialize_department(raw_row: Sequence[object]) -> DepartmentRow:
    department_id, name = tuple(raw_row)[:2]
    return DepartmentRow(department_id=int(department_id), name=str(name))


def deserialize_purchase_item(raw_row: Sequence[object]) -> Tuple[str, PurchaseItemRow]:
    """Return the owning purchase id and the decoded item."""

    purchase_id, product_id, quantity, unit_cost, gst_rate = tuple(raw_row)[:5]
    return str(purchase_id), PurchaseItemRow(
        product_id=int(product_id),
        quantity=to_decimal(quantity),
        unit_cost=to_decimal(unit_cost),
        gst_rate=to_decimal(gst_rate),
    )


def deserialize_purchase(raw_row: Sequence[object], items: Iterable[PurchaseItemRow]) -> PurchaseRow:
    """Convert a raw ``Purchases`` row plus its decoded items into a record."""

    (
        purchase_id,
        vendor_id,
        invoice_number,
        date_raw,
        gst_type,
        total_amount,
        paid_amount,
        payment_status,
        is_outwarded,
    ) = tuple(raw_row)[:9]
    return PurchaseRow(
        purchase_id=str(purchase_id),
        vendor_id=int(vendor_id),
        invoice_number=str(invoice_number) if invoice_number is not None else "",
        date=parse_timestamp(date_raw),
        gst_type=str(gst_type) if gst_type is not None else GstType.INTRA.value,
        items=tuple(items),
        total_amount=to_decimal(total_amount),
        paid_amount=to_decimal(paid_amount),
        payment_status=str(payment_status),
        is_outwarded=bool(is_outwarded),
    )


def deserialize_outward_item(raw_row: Sequence[object]) -> Tuple[str, OutwardItemRow]:
    """Return the owning outward id and the decoded item."""

    outward_id, product_id, quantity, cost_at_time = tuple(raw_row)[:4]
    return str(outward_id), OutwardItemRow(
        product_id=int(product_id),
        quantity=to_decimal(quantity),
        cost_at_time=to_decimal(cost_at_time),
    )


def deserialize_outward(raw_row: Sequence[object], items: Iterable[OutwardItemRow]) -> OutwardRow:
    outward_id, department_id, requisition_number, date_raw, total_cost = tuple(raw_row)[:5]
    return OutwardRow(
        outward_id=str(outward_id),
        department_id=int(department_id),
        requisition_number=_optional_str(requisition_number),
        date=parse_timestamp(date_raw),
        items=tuple(items),
        total_cost=to_decimal(total_cost),
    )


def deserialize_stock_adjustment(raw_row: Sequence[object]) -> StockAdjustmentRow:
    adjustment_id, product_id, quantity, date_raw, reason = tuple(raw_row)[:5]
    return StockAdjustmentRow(
        adjustment_id=str(adjustment_id),
        product_id=int(product_id),
        quantity=to_decimal(quantity),
        date=parse_timestamp(date_raw),
        reason=str(reason) if reason is not None else "",
    )


def deserialize_vendor_payment(raw_row: Sequence[object]) -> VendorPaymentRow:
    payment_id, purchase_id, vendor_id, amount, date_raw, mode = tuple(raw_row)[:6]
    return VendorPaymentRow(
        payment_id=str(payment_id),
        purchase_id=str(purchase_id),
        vendor_id=int(vendor_id),
        amount=to_decimal(amount),
        date=parse_timestamp(date_raw),
        mode=str(mode),
    )


def deserialize_activity(raw_row: Sequence[object]) -> ActivityRow:
    log_id, timestamp_raw, entity, action, details = tuple(raw_row)[:5]
    return ActivityRow(
        log_id=str(log_id),
        timestamp=parse_timestamp(timestamp_raw),
        entity=str(entity),
        action=str(action),
        details=str(details) if details is not None else "",
    )


# ---------------------------------------------------------------------------
# Sheet operations
# ---------------------------------------------------------------------------


def iter_sheet_rows(workbook: Workbook, sheet_name: str) -> Iterable[Tuple[object, ...]]:
    """Yield the raw value tuples of a sheet, skipping header and blank rows."""

    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if any(cell is not None for cell in raw):
            yield raw


def _iter_records(workbook: Workbook, sheet: SheetName, decoder: Callable[[Sequence[object]], Any]) -> Iterable[Any]:
    for raw in iter_sheet_rows(workbook, sheet.value):
        yield decoder(raw)


def iter_products(workbook: Workbook) -> Iterable[ProductRow]:
    return _iter_records(workbook, SheetName.PRODUCTS, deserialize_product)


def iter_categories(workbook: Workbook) -> Iterable[CategoryRow]:
    return _iter_records(workbook, SheetName.CATEGORIES, deserialize_category)


def iter_vendors(workbook: Workbook) -> Iterable[VendorRow]:
    return _iter_records(workbook, SheetName.VENDORS, deserialize_vendor)


def iter_departments(workbook: Workbook) -> Iterable[DepartmentRow]:
    return _iter_records(workbook, SheetName.DEPARTMENTS, deserialize_department)


def iter_purchases(workbook: Workbook) -> Iterable[PurchaseRow]:
    """Stream purchase invoices, reattaching their rows from ``PurchaseItems``.

    Items keep their sheet order, which is the order they were entered.
    """

    items_by_purchase: Dict[str, List[PurchaseItemRow]] = {}
    for raw in iter_sheet_rows(workbook, SheetName.PURCHASE_ITEMS.value):
        purchase_id, item = deserialize_purchase_item(raw)
        items_by_purchase.setdefault(purchase_id, []).append(item)
    for raw in iter_sheet_rows(workbook, SheetName.PURCHASES.value):
        yield deserialize_purchase(raw, items_by_purchase.get(str(raw[0]), []))


def iter_outwards(workbook: Workbook) -> Iterable[OutwardRow]:
    """Stream outward transactions, reattaching their rows from ``OutwardItems``."""

    items_by_outward: Dict[str, List[OutwardItemRow]] = {}
    for raw in iter_sheet_rows(workbook, SheetName.OUTWARD_ITEMS.value):
        outward_id, item = deserialize_outward_item(raw)
        items_by_outward.setdefault(outward_id, []).append(item)
    for raw in iter_sheet_rows(workbook, SheetName.OUTWARDS.value):
        yield deserialize_outward(raw, items_by_outward.get(str(raw[0]), []))


def iter_stock_adjustments(workbook: Workbook) -> Iterable[StockAdjustmentRow]:
    return _iter_records(workbook, SheetName.STOCK_ADJUSTMENTS, deserialize_stock_adjustment)


def iter_vendor_payments(workbook: Workbook) -> Iterable[VendorPaymentRow]:
    return _iter_records(workbook, SheetName.VENDOR_PAYMENTS, deserialize_vendor_payment)


def iter_activity(workbook: Workbook) -> Iterable[ActivityRow]:
    return _iter_records(workbook, SheetName.ACTIVITY_LOG, deserialize_activity)


def load_state(workbook: Workbook) -> LedgerState:
    """Read every sheet of ``workbook`` into a fresh :class:`LedgerState`."""

    state = LedgerState(
        products=list(iter_products(workbook)),
        categories=list(iter_categories(workbook)),
        vendors=list(iter_vendors(workbook)),
        departments=list(iter_departments(workbook)),
        purchases=list(iter_purchases(workbook)),
        outwards=list(iter_outwards(workbook)),
        stock_adjustments=list(iter_stock_adjustments(workbook)),
        vendor_payments=list(iter_vendor_payments(workbook)),
        activity_log=list(iter_activity(workbook)),
    )
    log.debug(
        "Loaded ledger state: %d products, %d purchases, %d outwards, %d adjustments",
        len(state.products),
        len(state.purchases),
        len(state.outwards),
        len(state.stock_adjustments),
    )
    return state


def replace_sheet_rows(workbook: Workbook, sheet_name: str, rows: Iterable[Sequence[object]]) -> None:
    """Overwrite the data rows of ``sheet_name`` with ``rows`` in order.

    The header row is left untouched. Rows are written by index and surplus
    rows from a previous, longer write are deleted afterwards.
    """

    sheet = workbook[sheet_name]
    previous_last_row = sheet.max_row
    last_row = 1
    for last_row, row in enumerate(rows, start=2):
        for column_index, value in enumerate(row, start=1):
            sheet.cell(row=last_row, column=column_index, value=value)
    if previous_last_row > last_row:
        sheet.delete_rows(last_row + 1, previous_last_row - last_row)


def write_state(workbook: Workbook, state: LedgerState) -> None:
    """Rewrite every sheet of ``workbook`` from ``state``.

    Updates and deletions replace ledger records wholesale, so the whole
    collection is written back rather than patched row by row.
    """

    purchase_rows: List[list[object]] = []
    purchase_item_rows: List[list[object]] = []
    for purchase in state.purchases:
        header, items = serialize_purchase(purchase)
        purchase_rows.append(header)
        purchase_item_rows.extend(items)

    outward_rows: List[list[object]] = []
    outward_item_rows: List[list[object]] = []
    for outward in state.outwards:
        header, items = serialize_outward(outward)
        outward_rows.append(header)
        outward_item_rows.extend(items)

    replace_sheet_rows(workbook, SheetName.PRODUCTS.value, map(serialize_product, state.products))
    replace_sheet_rows(workbook, SheetName.CATEGORIES.value, map(serialize_category, state.categories))
    replace_sheet_rows(workbook, SheetName.VENDORS.value, map(serialize_vendor, state.vendors))
    replace_sheet_rows(workbook, SheetName.DEPARTMENTS.value, map(serialize_department, state.departments))
    replace_sheet_rows(workbook, SheetName.PURCHASES.value, purchase_rows)
    replace_sheet_rows(workbook, SheetName.PURCHASE_ITEMS.value, purchase_item_rows)
    replace_sheet_rows(workbook, SheetName.OUTWARDS.value, outward_rows)
    replace_sheet_rows(workbook, SheetName.OUTWARD_ITEMS.value, outward_item_rows)
    replace_sheet_rows(
        workbook,
        SheetName.STOCK_ADJUSTMENTS.value,
        map(serialize_stock_adjustment, state.stock_adjustments),
    )
    replace_sheet_rows(
        workbook,
        SheetName.VENDOR_PAYMENTS.value,
        map(serialize_vendor_payment, state.vendor_payments),
    )
    replace_sheet_rows(workbook, SheetName.ACTIVITY_LOG.value, map(serialize_activity, state.activity_log))
