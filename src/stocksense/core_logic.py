"""Business logic layer for StockSense.

This module contains the transaction orchestrator. Every command validates
its whole input before touching the :class:`~stocksense.data_manager.LedgerState`
held by the runtime context, then appends or replaces ledger records, rebuilds
the cached live stock of every product from a full rescan and appends an
activity log entry. Quantities are always derived by
:mod:`stocksense.stock_engine`; nothing here keeps a running counter.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from openpyxl.workbook import Workbook

from . import data_manager, log, setup_excel, stock_engine
from .constants import (
    ACTIVITY_LOG_LIMIT,
    EXPECTED_SCHEMA_VERSION,
    ActivityAction,
    GstType,
    PaymentMode,
    PaymentStatus,
)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class ValidationError(BusinessRuleViolation, ValueError):
    """Raised when command input is malformed or out of range."""


class NotFoundError(ValidationError, LookupError):
    """Raised when a referenced product, vendor, invoice, or record is unknown."""


class OverpaymentError(ValidationError):
    """Raised when a payment or invoice edit would leave paid above total."""


class InsufficientStockError(BusinessRuleViolation):
    """Raised when a movement would drive live stock below zero.

    ``product_ids`` lists every offending product, not only the first one.
    """

    def __init__(self, message: str, product_ids: Iterable[int] = ()) -> None:
        super().__init__(message)
        self.product_ids: Tuple[int, ...] = tuple(product_ids)


class ReferenceInUseError(BusinessRuleViolation):
    """Raised when deleting master data that ledger records still reference."""


class PersistenceError(RuntimeError):
    """Raised when the ledger cannot be written to its workbook."""


# ---------------------------------------------------------------------------
# Runtime context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, workbook and ledger state used by the BLL.

    The workbook is only touched when the context is loaded or persisted; all
    commands operate on ``state``.
    """

    settings: data_manager.ConfigSettings
    workbook: Workbook
    state: data_manager.LedgerState = field(default_factory=data_manager.LedgerState)
    _cache: Dict[str, Dict[Any, Any]] = field(default_factory=dict, repr=False, compare=False)


# ---------------------------------------------------------------------------
# Command objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductCommand:
    """User intent for creating a product with its opening quantity."""

    name: str
    unit: str
    category_id: int
    vendor_id: int
    purchase_price: Decimal
    gst_rate: Decimal = Decimal("0")
    reorder_level: Decimal = Decimal("0")
    initial_quantity: Decimal = Decimal("0")
    warehouse_id: int = 1
    hsn: Optional[str] = None
    barcode: Optional[str] = None


@dataclass(frozen=True)
class VendorCommand:
    """User intent for creating or replacing a vendor."""

    name: str
    email: str = ""
    phone: Optional[str] = None
    address: Optional[str] = None
    gstin: Optional[str] = None


@dataclass(frozen=True)
class PurchaseItemInput:
    """One invoice line as entered; ``gst_rate`` defaults to the product's rate."""

    product_id: int
    quantity: Decimal
    unit_cost: Decimal
    gst_rate: Optional[Decimal] = None


@dataclass(frozen=True)
class PurchaseCommand:
    """User intent for recording a purchase invoice."""

    vendor_id: int
    invoice_number: str
    items: Tuple[PurchaseItemInput, ...]
    date: Optional[datetime] = None
    gst_type: Optional[GstType] = None


@dataclass(frozen=True)
class PurchaseUpdateCommand:
    """Wholesale replacement of an invoice; ``None`` keeps the stored date or GST type."""

    purchase_id: str
    vendor_id: int
    invoice_number: str
    items: Tuple[PurchaseItemInput, ...]
    date: Optional[datetime] = None
    gst_type: Optional[GstType] = None


@dataclass(frozen=True)
class PaymentCommand:
    """User intent for settling (part of) a purchase invoice."""

    purchase_id: str
    amount: Decimal
    mode: Optional[PaymentMode] = None


@dataclass(frozen=True)
class OutwardItemInput:
    """One issue line; ``cost`` overrides the product's current purchase price."""

    product_id: int
    quantity: Decimal
    cost: Optional[Decimal] = None


@dataclass(frozen=True)
class OutwardCommand:
    """User intent for issuing stock to a department."""

    department_id: int
    items: Tuple[OutwardItemInput, ...]
    date: Optional[datetime] = None
    requisition_number: Optional[str] = None
    purchase_id: Optional[str] = None


@dataclass(frozen=True)
class OutwardUpdateCommand:
    """Wholesale replacement of an outward; ``date=None`` keeps the stored date."""

    outward_id: str
    department_id: int
    items: Tuple[OutwardItemInput, ...]
    date: Optional[datetime] = None
    requisition_number: Optional[str] = None


@dataclass(frozen=True)
class AdjustStockCommand:
    """User intent for bringing a product's live stock to ``target_quantity``."""

    product_id: int
    target_quantity: Decimal
    reason: str
    date: Optional[datetime] = None


# Product fields callers may change after creation.
PRODUCT_PROTECTED_FIELDS = frozenset({"product_id", "quantity", "initial_quantity"})
PRODUCT_MONEY_FIELDS = frozenset({"purchase_price", "gst_rate", "reorder_level"})


# ---------------------------------------------------------------------------
# Context lifecycle
# ---------------------------------------------------------------------------


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Resolve optional timestamps into consistent, timezone-aware values.

    Args:
        candidate (datetime | date | None): Caller-provided timestamp, usually
            sourced from a command object.

    Returns:
        datetime: ``candidate`` normalized to UTC when provided, otherwise the
            current UTC datetime generated via :func:`datetime.now`.
    """

    if candidate is None:
        return datetime.now(UTC)
    return stock_engine.as_utc(candidate)


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[Any, Any]:
    """Return a mutable cache bucket dedicated to the supplied name.

    Buckets hold id indexes over the state collections so lookups do not scan
    lists repeatedly between mutations.
    """

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict cache buckets after mutating state; no names evicts everything."""

    targets = names or tuple(context._cache)
    if not targets:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(targets))

    for name in targets:
        context._cache.pop(name, None)


def _index(context: RuntimeContext, name: str, records: Iterable[Any], key: str) -> Dict[Any, Any]:
    bucket = _get_cache_bucket(context, name)
    if not bucket:
        bucket.update({getattr(record, key): record for record in records})
    return bucket


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings, the workbook, and the ledger state.

    The live stock cache stored in the ``Products`` sheet is reconciled with a
    full ledger rescan before the context is handed out.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for orchestration
            functions.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options or sheets are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    state = data_manager.load_state(workbook)
    context = RuntimeContext(settings=settings, workbook=workbook, state=state)
    reconcile_stock_cache(context)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return context


def new_runtime_context(
    settings: Optional[data_manager.ConfigSettings] = None,
    *,
    default_departments: Sequence[str] = setup_excel.DEFAULT_DEPARTMENTS,
) -> RuntimeContext:
    """Create a context backed by a fresh in-memory workbook.

    Without ``settings`` the context has no data file and cannot be persisted.
    Each call returns an independent ledger.
    """

    if settings is None:
        settings = data_manager.ConfigSettings(
            data_file=None,
            company_name="StockSense",
            schema_version=EXPECTED_SCHEMA_VERSION,
        )
    workbook = setup_excel.build_master_workbook(default_departments=default_departments)
    state = data_manager.load_state(workbook)
    return RuntimeContext(settings=settings, workbook=workbook, state=state)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Write the ledger state into the workbook and save it to disk.

    Raises:
        PersistenceError: If no data file is configured or the save fails.
    """
    if context.settings.data_file is None:
        log.error("Cannot persist a context without a data file")
        raise PersistenceError("No data file configured for this context")
    try:
        data_manager.write_state(context.workbook, context.state)
        data_manager.save_workbook(
            context.workbook,
            destination=context.settings.data_file,
        )
    except OSError as exc:
        log.error("Failed to persist workbook '%s': %s", context.settings.data_file, exc)
        raise PersistenceError(f"Unable to save workbook '{context.settings.data_file}': {exc}") from exc
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context with a newly opened workbook, state
            reloaded from it, and an empty cache.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    state = data_manager.load_state(workbook)
    refreshed = RuntimeContext(settings=context.settings, workbook=workbook, state=state)
    reconcile_stock_cache(refreshed)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return refreshed


# ---------------------------------------------------------------------------
# Live stock cache
# ---------------------------------------------------------------------------


def sync_live_stock(context: RuntimeContext) -> List[int]:
    """Rebuild every product's cached ``quantity`` from a full ledger rescan.

    Returns:
        list[int]: Identifiers of the products whose cached value changed.
    """

    levels = stock_engine.live_stock_levels(context.state)
    changed: List[int] = []
    products = context.state.products
    for index, product in enumerate(products):
        level = levels[product.product_id]
        if product.quantity != level:
            products[index] = replace(product, quantity=level)
            changed.append(product.product_id)
    if changed:
        _invalidate_cache(context, "products")
    log.debug("Live stock rescan updated %d product(s)", len(changed))
    return changed


def reconcile_stock_cache(context: RuntimeContext) -> List[int]:
    """Correct cached quantities loaded from disk, warning about each divergence."""

    stored = {product.product_id: product.quantity for product in context.state.products}
    corrected = sync_live_stock(context)
    for product_id in corrected:
        log.warning(
            "Cached stock for product %s diverged from the ledger (%s); corrected to %s",
            product_id,
            stored[product_id],
            get_product(context, product_id).quantity,
        )
    return corrected


# ---------------------------------------------------------------------------
# Identifiers, validators and shared helpers
# ---------------------------------------------------------------------------


def generate_record_id(*, prefix: str, when: Optional[datetime] = None) -> str:
    """Generate a sortable ledger identifier using UTC timestamps.

    Returns:
        str: Identifier formed as ``{prefix}{YYYYMMDDHHMMSSffffff}``.
    """
    when = when or _resolve_timestamp(None)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}"


def _unique_record_id(prefix: str, existing: Iterable[str]) -> str:
    taken = set(existing)
    candidate = base = generate_record_id(prefix=prefix)
    suffix = 1
    while candidate in taken:
        suffix += 1
        candidate = f"{base}-{suffix}"
    return candidate


def next_master_id(existing_ids: Iterable[int]) -> int:
    """Return ``max(existing) + 1`` or ``1`` for an empty collection."""

    return max(existing_ids, default=0) + 1


def _as_decimal(value: Any, label: str) -> Decimal:
    try:
        return data_manager.to_decimal(value)
    except ArithmeticError as exc:
        log.error("%s is not a number: %r", label, value)
        raise ValidationError(f"{label} must be numeric, got {value!r}") from exc


def require_positive_quantity(quantity: Decimal) -> None:
    """Validate that a quantity is strictly positive.

    Raises:
        ValidationError: If ``quantity`` is zero or negative.
    """
    if quantity <= Decimal("0"):
        log.error("Quantity validation failed: %s", quantity)
        raise ValidationError("Quantity must be greater than zero")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value or rate is nonnegative.

    Raises:
        ValidationError: If ``amount`` is less than zero.
    """
    if amount < Decimal("0"):
        log.error("Monetary value validation failed: %s", amount)
        raise ValidationError("Amount must be zero or positive")


def require_name(name: str, label: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        log.error("%s name validation failed: %r", label, name)
        raise ValidationError(f"{label} name must not be empty")
    return cleaned


def _resolve_payment_mode(context: RuntimeContext, mode: Optional[Any]) -> PaymentMode:
    if mode is None:
        return context.settings.default_payment_mode
    try:
        return PaymentMode(mode)
    except ValueError as exc:
        log.error("Unsupported payment mode provided: %s", mode)
        raise ValidationError(f"Unsupported payment mode: {mode}") from exc


def _resolve_gst_type(context: RuntimeContext, gst_type: Optional[Any]) -> GstType:
    if gst_type is None:
        return context.settings.default_gst_type
    try:
        return GstType(gst_type)
    except ValueError as exc:
        log.error("Unsupported GST type provided: %s", gst_type)
        raise ValidationError(f"Unsupported GST type: {gst_type}") from exc


def payment_status_for(paid_amount: Decimal, total_amount: Decimal) -> PaymentStatus:
    """Derive the settlement status purely from ``(paid, total)``."""

    if paid_amount >= total_amount:
        return PaymentStatus.PAID
    if paid_amount > Decimal("0"):
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID


def purchase_total(items: Iterable[data_manager.PurchaseItemRow]) -> Decimal:
    """Return Σ quantity × unit cost × (1 + gst_rate / 100)."""

    return sum(
        (item.quantity * item.unit_cost * (Decimal("1") + item.gst_rate / Decimal("100")) for item in items),
        Decimal("0"),
    )


def outward_total(items: Iterable[data_manager.OutwardItemRow]) -> Decimal:
    """Return Σ quantity × cost at time."""

    return sum((item.quantity * item.cost_at_time for item in items), Decimal("0"))


def _log_activity(context: RuntimeContext, entity: str, action: ActivityAction, details: str) -> None:
    entries = context.state.activity_log
    entry = data_manager.ActivityRow(
        log_id=_unique_record_id("L", (row.log_id for row in entries)),
        timestamp=_resolve_timestamp(None),
        entity=entity,
        action=action.value,
        details=details,
    )
    entries.insert(0, entry)
    del entries[ACTIVITY_LOG_LIMIT:]


def _commit(context: RuntimeContext, entity: str, action: ActivityAction, details: str) -> None:
    """Finish a successful mutation: rescan stock, audit, and auto-save."""

    _invalidate_cache(context)
    sync_live_stock(context)
    _log_activity(context, entity, action, details)
    if context.settings.auto_save:
        persist_context(context)


def _remove_by_id(records: List[Any], key: str, value: Any) -> None:
    records[:] = [record for record in records if getattr(record, key) != value]


def _replace_by_id(records: List[Any], key: str, value: Any, updated: Any) -> None:
    for index, record in enumerate(records):
        if getattr(record, key) == value:
            records[index] = updated
            return


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def list_products(context: RuntimeContext) -> List[data_manager.ProductRow]:
    """Return a copy of the product collection in creation order."""
    return list(context.state.products)


def list_categories(context: RuntimeContext) -> List[data_manager.CategoryRow]:
    return list(context.state.categories)


def list_vendors(context: RuntimeContext) -> List[data_manager.VendorRow]:
    return list(context.state.vendors)


def list_departments(context: RuntimeContext) -> List[data_manager.DepartmentRow]:
    return list(context.state.departments)


def list_purchases(context: RuntimeContext) -> List[data_manager.PurchaseRow]:
    return list(context.state.purchases)


def list_outwards(context: RuntimeContext) -> List[data_manager.OutwardRow]:
    return list(context.state.outwards)


def list_stock_adjustments(context: RuntimeContext) -> List[data_manager.StockAdjustmentRow]:
    return list(context.state.stock_adjustments)


def list_vendor_payments(context: RuntimeContext, purchase_id: Optional[str] = None) -> List[data_manager.VendorPaymentRow]:
    """Return vendor payments, optionally only those settling ``purchase_id``."""
    payments = context.state.vendor_payments
    if purchase_id is None:
        return list(payments)
    return [payment for payment in payments if payment.purchase_id == purchase_id]


def list_activity(context: RuntimeContext) -> List[data_manager.ActivityRow]:
    """Return the activity log, newest entry first."""
    return list(context.state.activity_log)


def _lookup(context: RuntimeContext, bucket: str, records: Iterable[Any], key: str, value: Any, label: str) -> Any:
    index = _index(context, bucket, records, key)
    try:
        return index[value]
    except KeyError as exc:
        log.warning("%s lookup failed for id '%s'", label, value)
        raise NotFoundError(f"Unknown {label.lower()} id: {value}") from exc


def get_product(context: RuntimeContext, product_id: int) -> data_manager.ProductRow:
    """Resolve a product record by its identifier.

    Raises:
        NotFoundError: If ``product_id`` is unknown.
    """
    return _lookup(context, "products", context.state.products, "product_id", product_id, "Product")


def get_category(context: RuntimeContext, category_id: int) -> data_manager.CategoryRow:
    return _lookup(context, "categories", context.state.categories, "category_id", category_id, "Category")


def get_vendor(context: RuntimeContext, vendor_id: int) -> data_manager.VendorRow:
    return _lookup(context, "vendors", context.state.vendors, "vendor_id", vendor_id, "Vendor")


def get_department(context: RuntimeContext, department_id: int) -> data_manager.DepartmentRow:
    return _lookup(context, "departments", context.state.departments, "department_id", department_id, "Department")


def get_purchase(context: RuntimeContext, purchase_id: str) -> data_manager.PurchaseRow:
    """Resolve a purchase invoice by its identifier.

    Raises:
        NotFoundError: If the invoice does not exist.
    """
    return _lookup(context, "purchases", context.state.purchases, "purchase_id", purchase_id, "Purchase")


def get_outward(context: RuntimeContext, outward_id: str) -> data_manager.OutwardRow:
    return _lookup(context, "outwards", context.state.outwards, "outward_id", outward_id, "Outward")


def compute_stock(
    context: RuntimeContext,
    product_id: int,
    period_start: stock_engine.DateLike,
    period_end: stock_engine.DateLike,
) -> stock_engine.ProductStock:
    """Derive windowed stock figures for ``product_id``.

    See :func:`stocksense.stock_engine.compute_stock`; unknown products yield a
    zeroed record.

    Raises:
        ValidationError: If ``period_end`` falls before ``period_start``.
    """
    try:
        return stock_engine.compute_stock(context.state, product_id, period_start, period_end)
    except ValueError as exc:
        log.error("Invalid stock window: %s", exc)
        raise ValidationError(str(exc)) from exc


def current_stock(context: RuntimeContext, product_id: int, as_of: Optional[stock_engine.DateLike] = None) -> Decimal:
    """Return stock on hand at the end of ``as_of`` (today when omitted)."""

    moment = as_of if as_of is not None else _resolve_timestamp(None)
    return stock_engine.stock_as_of(context.state, product_id, moment)


def live_stock(context: RuntimeContext, product_id: int) -> Decimal:
    """Return the full-history stock of ``product_id``, future entries included."""

    return stock_engine.live_stock(context.state, product_id)


# ---------------------------------------------------------------------------
# Master data: categories, departments, vendors
# ---------------------------------------------------------------------------


def add_category(context: RuntimeContext, name: str) -> data_manager.CategoryRow:
    """Create a category with the next free identifier."""
    cleaned = require_name(name, "Category")
    category = data_manager.CategoryRow(
        category_id=next_master_id(row.category_id for row in context.state.categories),
        name=cleaned,
    )
    context.state.categories.append(category)
    _commit(context, "Category", ActivityAction.CREATE, f"Added category {cleaned}")
    log.info("Added category %s '%s'", category.category_id, cleaned)
    return category


def update_category(context: RuntimeContext, category_id: int, name: str) -> data_manager.CategoryRow:
    existing = get_category(context, category_id)
    updated = replace(existing, name=require_name(name, "Category"))
    _replace_by_id(context.state.categories, "category_id", category_id, updated)
    _commit(context, "Category", ActivityAction.UPDATE, f"Renamed category {existing.name} to {updated.name}")
    log.info("Updated category %s", category_id)
    return updated


def delete_category(context: RuntimeContext, category_id: int) -> None:
    """Delete a category no product belongs to.

    Raises:
        ReferenceInUseError: If a product still uses the category.
    """
    existing = get_category(context, category_id)
    if any(product.category_id == category_id for product in context.state.products):
        log.warning("Refusing to delete category %s while products use it", category_id)
        raise ReferenceInUseError(f"Category '{existing.name}' is used by products")
    _remove_by_id(context.state.categories, "category_id", category_id)
    _commit(context, "Category", ActivityAction.DELETE, f"Deleted category {existing.name}")
    log.info("Deleted category %s", category_id)


def add_department(context: RuntimeContext, name: str) -> data_manager.DepartmentRow:
    """Create a department with the next free identifier."""
    cleaned = require_name(name, "Department")
    department = data_manager.DepartmentRow(
        department_id=next_master_id(row.department_id for row in context.state.departments),
        name=cleaned,
    )
    context.state.departments.append(department)
    _commit(context, "Department", ActivityAction.CREATE, f"Added department {cleaned}")
    log.info("Added department %s '%s'", department.department_id, cleaned)
    return department


def update_department(context: RuntimeContext, department_id: int, name: str) -> data_manager.DepartmentRow:
    existing = get_department(context, department_id)
    updated = replace(existing, name=require_name(name, "Department"))
    _replace_by_id(context.state.departments, "department_id", department_id, updated)
    _commit(context, "Department", ActivityAction.UPDATE, f"Renamed department {existing.name} to {updated.name}")
    log.info("Updated department %s", department_id)
    return updated


def delete_department(context: RuntimeContext, department_id: int) -> None:
    """Delete a department with no outward issued to it.

    Raises:
        ReferenceInUseError: If an outward references the department.
    """
    existing = get_department(context, department_id)
    if any(outward.department_id == department_id for outward in context.state.outwards):
        log.warning("Refusing to delete department %s while outwards reference it", department_id)
        raise ReferenceInUseError(f"Department '{existing.name}' has outward records")
    _remove_by_id(context.state.departments, "department_id", department_id)
    _commit(context, "Department", ActivityAction.DELETE, f"Deleted department {existing.name}")
    log.info("Deleted department %s", department_id)


def _build_vendor(vendor_id: int, command: VendorCommand) -> data_manager.VendorRow:
    return data_manager.VendorRow(
        vendor_id=vendor_id,
        name=require_name(command.name, "Vendor"),
        email=command.email or "",
        phone=command.phone,
        address=command.address,
        gstin=command.gstin,
    )


def add_vendor(context: RuntimeContext, command: VendorCommand) -> data_manager.VendorRow:
    """Create a vendor with the next free identifier."""
    vendor = _build_vendor(next_master_id(row.vendor_id for row in context.state.vendors), command)
    context.state.vendors.append(vendor)
    _commit(context, "Vendor", ActivityAction.CREATE, f"Added vendor {vendor.name}")
    log.info("Added vendor %s '%s'", vendor.vendor_id, vendor.name)
    return vendor


def update_vendor(context: RuntimeContext, vendor_id: int, command: VendorCommand) -> data_manager.VendorRow:
    """Replace every field of an existing vendor."""
    get_vendor(context, vendor_id)
    updated = _build_vendor(vendor_id, command)
    _replace_by_id(context.state.vendors, "vendor_id", vendor_id, updated)
    _commit(context, "Vendor", ActivityAction.UPDATE, f"Updated vendor {updated.name}")
    log.info("Updated vendor %s", vendor_id)
    return updated


def delete_vendor(context: RuntimeContext, vendor_id: int) -> None:
    """Delete a vendor that supplies no product and has no invoice.

    Raises:
        ReferenceInUseError: If products or purchases reference the vendor.
    """
    existing = get_vendor(context, vendor_id)
    if any(product.vendor_id == vendor_id for product in context.state.products) or any(
        purchase.vendor_id == vendor_id for purchase in context.state.purchases
    ):
        log.warning("Refusing to delete vendor %s while it is referenced", vendor_id)
        raise ReferenceInUseError(f"Vendor '{existing.name}' is referenced by products or purchases")
    _remove_by_id(context.state.vendors, "vendor_id", vendor_id)
    _commit(context, "Vendor", ActivityAction.DELETE, f"Deleted vendor {existing.name}")
    log.info("Deleted vendor %s", vendor_id)


# ---------------------------------------------------------------------------
# Master data: products
# ---------------------------------------------------------------------------


def _build_product(context: RuntimeContext, product_id: int, command: ProductCommand) -> data_manager.ProductRow:
    name = require_name(command.name, "Product")
    get_category(context, command.category_id)
    get_vendor(context, command.vendor_id)
    purchase_price = _as_decimal(command.purchase_price, "Purchase price")
    gst_rate = _as_decimal(command.gst_rate, "GST rate")
    reorder_level = _as_decimal(command.reorder_level, "Reorder level")
    initial_quantity = _as_decimal(command.initial_quantity, "Opening quantity")
    for value in (purchase_price, gst_rate, reorder_level):
        require_nonnegative_money(value)
    if initial_quantity < Decimal("0"):
        log.error("Opening quantity validation failed: %s", initial_quantity)
        raise ValidationError("Opening quantity must be zero or positive")
    return data_manager.ProductRow(
        product_id=product_id,
        name=name,
        unit=command.unit,
        category_id=command.category_id,
        vendor_id=command.vendor_id,
        warehouse_id=command.warehouse_id,
        purchase_price=purchase_price,
        gst_rate=gst_rate,
        reorder_level=reorder_level,
        initial_quantity=initial_quantity,
        quantity=initial_quantity,
        hsn=command.hsn,
        barcode=command.barcode,
    )


def add_product(context: RuntimeContext, command: ProductCommand) -> data_manager.ProductRow:
    """Create a product whose opening quantity becomes its immutable baseline.

    Raises:
        NotFoundError: If the category or vendor does not exist.
        ValidationError: If a name is blank or a value is negative.
    """
    product = _build_product(
        context,
        next_master_id(row.product_id for row in context.state.products),
        command,
    )
    context.state.products.append(product)
    _commit(context, "Product", ActivityAction.CREATE, f"Added product {product.name}")
    log.info(
        "Added product %s '%s' (opening quantity=%s)",
        product.product_id,
        product.name,
        product.initial_quantity,
    )
    return product


def add_products(context: RuntimeContext, commands: Sequence[ProductCommand]) -> List[data_manager.ProductRow]:
    """Bulk-create products; nothing is added unless every entry validates."""

    next_id = next_master_id(row.product_id for row in context.state.products)
    products = [_build_product(context, next_id + offset, command) for offset, command in enumerate(commands)]
    if not products:
        return []
    context.state.products.extend(products)
    _commit(context, "Product", ActivityAction.CREATE, f"Imported {len(products)} products")
    log.info("Imported %d products", len(products))
    return products


def update_product(context: RuntimeContext, product_id: int, **changes: Any) -> data_manager.ProductRow:
    """Change master fields of a product.

    ``quantity`` and ``initial_quantity`` belong to the ledger and cannot be
    edited here; use :func:`adjust_stock` instead.

    Raises:
        ValidationError: If a protected or unknown field is supplied.
        NotFoundError: If the product, or a new category or vendor, is unknown.
    """
    existing = get_product(context, product_id)
    protected = PRODUCT_PROTECTED_FIELDS.intersection(changes)
    if protected:
        log.error("Rejected update of protected product fields: %s", sorted(protected))
        raise ValidationError(f"Fields cannot be updated directly: {', '.join(sorted(protected))}")
    known = {item.name for item in fields(data_manager.ProductRow)}
    unknown = set(changes) - known
    if unknown:
        log.error("Rejected update of unknown product fields: %s", sorted(unknown))
        raise ValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")

    cleaned: Dict[str, Any] = dict(changes)
    if "name" in cleaned:
        cleaned["name"] = require_name(cleaned["name"], "Product")
    if "category_id" in cleaned:
        get_category(context, cleaned["category_id"])
    if "vendor_id" in cleaned:
        get_vendor(context, cleaned["vendor_id"])
    for name in PRODUCT_MONEY_FIELDS.intersection(cleaned):
        cleaned[name] = _as_decimal(cleaned[name], name)
        require_nonnegative_money(cleaned[name])

    updated = replace(existing, **cleaned)
    _replace_by_id(context.state.products, "product_id", product_id, updated)
    _commit(context, "Product", ActivityAction.UPDATE, f"Updated product {updated.name}: {', '.join(sorted(cleaned))}")
    log.info("Updated product %s (%s)", product_id, ", ".join(sorted(cleaned)))
    return updated


def _product_in_ledger(context: RuntimeContext, product_id: int) -> bool:
    state = context.state
    return (
        any(item.product_id == product_id for purchase in state.purchases for item in purchase.items)
        or any(item.product_id == product_id for outward in state.outwards for item in outward.items)
        or any(adjustment.product_id == product_id for adjustment in state.stock_adjustments)
    )


def delete_product(context: RuntimeContext, product_id: int) -> None:
    """Delete a product that no ledger record references.

    Raises:
        ReferenceInUseError: If a purchase, outward or adjustment uses it.
    """
    existing = get_product(context, product_id)
    if _product_in_ledger(context, product_id):
        log.warning("Refusing to delete product %s while ledger entries reference it", product_id)
        raise ReferenceInUseError(f"Product '{existing.name}' has ledger entries")
    _remove_by_id(context.state.products, "product_id", product_id)
    _commit(context, "Product", ActivityAction.DELETE, f"Deleted product {existing.name}")
    log.info("Deleted product %s", product_id)


# ---------------------------------------------------------------------------
# Purchases and payments
# ---------------------------------------------------------------------------


def _build_purchase_items(
    context: RuntimeContext, items: Sequence[PurchaseItemInput]
) -> Tuple[data_manager.PurchaseItemRow, ...]:
    if not items:
        log.error("Purchase rejected: no items supplied")
        raise ValidationError("A purchase needs at least one item")
    rows = []
    for item in items:
        product = get_product(context, item.product_id)
        quantity = _as_decimal(item.quantity, "Quantity")
        unit_cost = _as_decimal(item.unit_cost, "Unit cost")
        gst_rate = product.gst_rate if item.gst_rate is None else _as_decimal(item.gst_rate, "GST rate")
        require_positive_quantity(quantity)
        require_nonnegative_money(unit_cost)
        require_nonnegative_money(gst_rate)
        rows.append(
            data_manager.PurchaseItemRow(
                product_id=product.product_id,
                quantity=quantity,
                unit_cost=unit_cost,
                gst_rate=gst_rate,
            )
        )
    return tuple(rows)


def _quantities_by_product(items: Iterable[Any]) -> Dict[int, Decimal]:
    totals: Dict[int, Decimal] = defaultdict(lambda: Decimal("0"))
    for item in items:
        totals[item.product_id] += item.quantity
    return dict(totals)


def _require_stock(context: RuntimeContext, shortfalls: Mapping[int, Decimal], action: str) -> None:
    """Raise :class:`InsufficientStockError` naming every product below zero."""

    offending = sorted(product_id for product_id, remaining in shortfalls.items() if remaining < Decimal("0"))
    if not offending:
        return
    names = ", ".join(f"{get_product(context, pid).name} ({shortfalls[pid]})" for pid in offending)
    log.warning("%s rejected; stock would turn negative for: %s", action, names)
    raise InsufficientStockError(f"Insufficient stock for {action}: {names}", offending)


def record_purchase(context: RuntimeContext, command: PurchaseCommand) -> data_manager.PurchaseRow:
    """Validate and append a purchase invoice.

    The invoice starts unpaid. Every referenced product's purchase price is
    set to the unit cost of its last line on this invoice.

    Args:
        context (RuntimeContext): Runtime context owning the ledger state.
        command (PurchaseCommand): Structured intent describing the invoice.

    Returns:
        data_manager.PurchaseRow: Newly appended invoice.

    Raises:
        NotFoundError: If the vendor or a product is unknown.
        ValidationError: If the item list is empty or a value is out of range.
    """
    vendor = get_vendor(context, command.vendor_id)
    items = _build_purchase_items(context, command.items)
    gst_type = _resolve_gst_type(context, command.gst_type)
    timestamp = _resolve_timestamp(command.date)

    total = purchase_total(items)
    purchase = data_manager.PurchaseRow(
        purchase_id=_unique_record_id("P", (row.purchase_id for row in context.state.purchases)),
        vendor_id=vendor.vendor_id,
        invoice_number=command.invoice_number,
        date=timestamp,
        gst_type=gst_type.value,
        items=items,
        total_amount=total,
        paid_amount=Decimal("0"),
        payment_status=payment_status_for(Decimal("0"), total).value,
    )
    context.state.purchases.append(purchase)

    latest_cost = {item.product_id: item.unit_cost for item in items}
    products = context.state.products
    for index, product in enumerate(products):
        if product.product_id in latest_cost:
            products[index] = replace(product, purchase_price=latest_cost[product.product_id])

    _commit(
        context,
        "Purchase",
        ActivityAction.CREATE,
        f"Recorded invoice {command.invoice_number} from {vendor.name} ({len(items)} items, total {total})",
    )
    log.info(
        "Recorded purchase '%s' from vendor %s (items=%d, total=%s)",
        purchase.purchase_id,
        vendor.vendor_id,
        len(items),
        total,
    )
    return purchase


def update_purchase(context: RuntimeContext, command: PurchaseUpdateCommand) -> data_manager.PurchaseRow:
    """Replace an invoice's vendor, number, date, GST type and items.

    The paid amount and ``is_outwarded`` flag survive; the status is recomputed
    against the new total. Product purchase prices are left untouched.

    Raises:
        NotFoundError: If the invoice, vendor or a product is unknown.
        OverpaymentError: If the new total is below the amount already paid.
        InsufficientStockError: If removing inward quantity would leave a
            product with negative live stock.
    """
    existing = get_purchase(context, command.purchase_id)
    vendor = get_vendor(context, command.vendor_id)
    items = _build_purchase_items(context, command.items)
    gst_type = _resolve_gst_type(context, command.gst_type or existing.gst_type)
    timestamp = existing.date if command.date is None else _resolve_timestamp(command.date)

    total = purchase_total(items)
    if total < existing.paid_amount:
        log.warning(
            "Purchase '%s' update rejected: new total %s below paid %s",
            existing.purchase_id,
            total,
            existing.paid_amount,
        )
        raise OverpaymentError(
            f"New total {total} is below the {existing.paid_amount} already paid on invoice {existing.invoice_number}"
        )

    levels = stock_engine.live_stock_levels(context.state)
    old_quantities = _quantities_by_product(existing.items)
    new_quantities = _quantities_by_product(items)
    _require_stock(
        context,
        {
            product_id: levels.get(product_id, Decimal("0"))
            - old_quantities.get(product_id, Decimal("0"))
            + new_quantities.get(product_id, Decimal("0"))
            for product_id in old_quantities
            if new_quantities.get(product_id, Decimal("0")) < old_quantities[product_id]
        },
        "purchase update",
    )

    updated = replace(
        existing,
        vendor_id=vendor.vendor_id,
        invoice_number=command.invoice_number,
        date=timestamp,
        gst_type=gst_type.value,
        items=items,
        total_amount=total,
        payment_status=payment_status_for(existing.paid_amount, total).value,
    )
    _replace_by_id(context.state.purchases, "purchase_id", existing.purchase_id, updated)
    _commit(context, "Purchase", ActivityAction.UPDATE, f"Updated invoice {updated.invoice_number} (total {total})")
    log.info("Updated purchase '%s' (total=%s)", updated.purchase_id, total)
    return updated


def delete_purchase(context: RuntimeContext, purchase_id: str) -> None:
    """Remove an invoice together with every payment made against it.

    Raises:
        NotFoundError: If the invoice does not exist.
    """
    existing = get_purchase(context, purchase_id)
    payments_before = len(context.state.vendor_payments)
    _remove_by_id(context.state.purchases, "purchase_id", purchase_id)
    _remove_by_id(context.state.vendor_payments, "purchase_id", purchase_id)
    removed_payments = payments_before - len(context.state.vendor_payments)
    _commit(
        context,
        "Purchase",
        ActivityAction.DELETE,
        f"Deleted invoice {existing.invoice_number} and {removed_payments} payment(s)",
    )
    log.info("Deleted purchase '%s' (cascaded payments=%d)", purchase_id, removed_payments)


def record_payment(context: RuntimeContext, command: PaymentCommand) -> data_manager.VendorPaymentRow:
    """Settle part or all of an invoice's outstanding balance.

    Returns:
        data_manager.VendorPaymentRow: The appended payment, dated now.

    Raises:
        NotFoundError: If the invoice does not exist.
        ValidationError: If the amount is not positive or the mode unknown.
        OverpaymentError: If the amount exceeds ``total - paid``.
    """
    purchase = get_purchase(context, command.purchase_id)
    amount = _as_decimal(command.amount, "Payment amount")
    if amount <= Decimal("0"):
        log.error("Payment amount validation failed: %s", amount)
        raise ValidationError("Payment amount must be greater than zero")
    outstanding = purchase.total_amount - purchase.paid_amount
    if amount > outstanding:
        log.warning(
            "Payment of %s on purchase '%s' exceeds outstanding %s",
            amount,
            purchase.purchase_id,
            outstanding,
        )
        raise OverpaymentError(f"Payment {amount} exceeds outstanding balance {outstanding}")
    mode = _resolve_payment_mode(context, command.mode)

    payment = data_manager.VendorPaymentRow(
        payment_id=_unique_record_id("VP", (row.payment_id for row in context.state.vendor_payments)),
        purchase_id=purchase.purchase_id,
        vendor_id=purchase.vendor_id,
        amount=amount,
        date=_resolve_timestamp(None),
        mode=mode.value,
    )
    paid = purchase.paid_amount + amount
    updated = replace(
        purchase,
        paid_amount=paid,
        payment_status=payment_status_for(paid, purchase.total_amount).value,
    )
    _replace_by_id(context.state.purchases, "purchase_id", purchase.purchase_id, updated)
    context.state.vendor_payments.append(payment)
    _commit(
        context,
        "Payment",
        ActivityAction.CREATE,
        f"Paid {amount} ({mode.value}) on invoice {purchase.invoice_number}; status {updated.payment_status}",
    )
    log.info(
        "Recorded payment '%s' of %s on purchase '%s' (status=%s)",
        payment.payment_id,
        amount,
        purchase.purchase_id,
        updated.payment_status,
    )
    return payment


# ---------------------------------------------------------------------------
# Outwards
# ---------------------------------------------------------------------------


def _validate_outward_items(
    context: RuntimeContext, items: Sequence[OutwardItemInput]
) -> List[Tuple[data_manager.ProductRow, Decimal, Optional[Decimal]]]:
    if not items:
        log.error("Outward rejected: no items supplied")
        raise ValidationError("An outward needs at least one item")
    validated = []
    for item in items:
        product = get_product(context, item.product_id)
        quantity = _as_decimal(item.quantity, "Quantity")
        require_positive_quantity(quantity)
        cost = None if item.cost is None else _as_decimal(item.cost, "Cost")
        if cost is not None:
            require_nonnegative_money(cost)
        validated.append((product, quantity, cost))
    return validated


def record_outward(context: RuntimeContext, command: OutwardCommand) -> data_manager.OutwardRow:
    """Issue stock to a department.

    Quantities are aggregated per product before the stock check so repeated
    lines cannot slip past it. Each line snapshots its cost: the override when
    given, else the product's current purchase price.

    Raises:
        NotFoundError: If the department, a product, or the linked purchase
            is unknown.
        ValidationError: If the item list is empty or a value is out of range.
        InsufficientStockError: If any product lacks live stock for the
            requested quantity.
    """
    department = get_department(context, command.department_id)
    validated = _validate_outward_items(context, command.items)
    linked = get_purchase(context, command.purchase_id) if command.purchase_id is not None else None
    timestamp = _resolve_timestamp(command.date)

    levels = stock_engine.live_stock_levels(context.state)
    requested = _quantities_by_product(
        data_manager.OutwardItemRow(product.product_id, quantity, Decimal("0")) for product, quantity, _ in validated
    )
    _require_stock(
        context,
        {product_id: levels.get(product_id, Decimal("0")) - quantity for product_id, quantity in requested.items()},
        "outward",
    )

    items = tuple(
        data_manager.OutwardItemRow(
            product_id=product.product_id,
            quantity=quantity,
            cost_at_time=product.purchase_price if cost is None else cost,
        )
        for product, quantity, cost in validated
    )
    outward = data_manager.OutwardRow(
        outward_id=_unique_record_id("O", (row.outward_id for row in context.state.outwards)),
        department_id=department.department_id,
        requisition_number=command.requisition_number,
        date=timestamp,
        items=items,
        total_cost=outward_total(items),
    )
    context.state.outwards.append(outward)

    if linked is not None:
        if linked.is_outwarded:
            log.warning("Purchase '%s' was already outwarded; recording another outward against it", linked.purchase_id)
        _replace_by_id(context.state.purchases, "purchase_id", linked.purchase_id, replace(linked, is_outwarded=True))

    _commit(
        context,
        "Outward",
        ActivityAction.CREATE,
        f"Issued {len(items)} items to {department.name} (cost {outward.total_cost})",
    )
    log.info(
        "Recorded outward '%s' to department %s (items=%d, cost=%s)",
        outward.outward_id,
        department.department_id,
        len(items),
        outward.total_cost,
    )
    return outward


def update_outward(context: RuntimeContext, command: OutwardUpdateCommand) -> data_manager.OutwardRow:
    """Replace an outward's department, date, requisition and items.

    Lines without a cost override keep the snapshot the previous version held
    for that product, falling back to the current purchase price.

    Raises:
        NotFoundError: If the outward, department or a product is unknown.
        InsufficientStockError: If live stock plus the previously issued
            quantity cannot cover the new quantity.
    """
    existing = get_outward(context, command.outward_id)
    department = get_department(context, command.department_id)
    validated = _validate_outward_items(context, command.items)
    timestamp = existing.date if command.date is None else _resolve_timestamp(command.date)

    levels = stock_engine.live_stock_levels(context.state)
    old_quantities = _quantities_by_product(existing.items)
    new_quantities = _quantities_by_product(
        data_manager.OutwardItemRow(product.product_id, quantity, Decimal("0")) for product, quantity, _ in validated
    )
    _require_stock(
        context,
        {
            product_id: levels.get(product_id, Decimal("0")) + old_quantities.get(product_id, Decimal("0")) - quantity
            for product_id, quantity in new_quantities.items()
        },
        "outward update",
    )

    previous_cost: Dict[int, Decimal] = {}
    for item in existing.items:
        previous_cost.setdefault(item.product_id, item.cost_at_time)
    items = tuple(
        data_manager.OutwardItemRow(
            product_id=product.product_id,
            quantity=quantity,
            cost_at_time=cost if cost is not None else previous_cost.get(product.product_id, product.purchase_price),
        )
        for product, quantity, cost in validated
    )
    updated = replace(
        existing,
        department_id=department.department_id,
        requisition_number=command.requisition_number,
        date=timestamp,
        items=items,
        total_cost=outward_total(items),
    )
    _replace_by_id(context.state.outwards, "outward_id", existing.outward_id, updated)
    _commit(context, "Outward", ActivityAction.UPDATE, f"Updated outward to {department.name} (cost {updated.total_cost})")
    log.info("Updated outward '%s' (cost=%s)", updated.outward_id, updated.total_cost)
    return updated


def delete_outward(context: RuntimeContext, outward_id: str) -> None:
    """Remove an outward, returning its quantities to stock.

    Raises:
        NotFoundError: If the outward does not exist.
    """
    existing = get_outward(context, outward_id)
    _remove_by_id(context.state.outwards, "outward_id", outward_id)
    _commit(context, "Outward", ActivityAction.DELETE, f"Deleted outward of {len(existing.items)} items")
    log.info("Deleted outward '%s'", outward_id)


# ---------------------------------------------------------------------------
# Stock adjustments
# ---------------------------------------------------------------------------


def adjust_stock(context: RuntimeContext, command: AdjustStockCommand) -> data_manager.StockAdjustmentRow:
    """Record the delta that brings live stock to ``target_quantity``.

    The stored quantity is ``target - live`` (which may be zero or negative),
    never the target itself. The entry is dated at ``command.date`` or now.

    Raises:
        NotFoundError: If the product is unknown.
        ValidationError: If the target is negative.
    """
    product = get_product(context, command.product_id)
    target = _as_decimal(command.target_quantity, "Target quantity")
    if target < Decimal("0"):
        log.error("Adjustment target validation failed: %s", target)
        raise ValidationError("Target quantity must be zero or positive")

    delta = target - stock_engine.live_stock(context.state, product.product_id)
    adjustment = data_manager.StockAdjustmentRow(
        adjustment_id=_unique_record_id("A", (row.adjustment_id for row in context.state.stock_adjustments)),
        product_id=product.product_id,
        quantity=delta,
        date=_resolve_timestamp(command.date),
        reason=command.reason,
    )
    context.state.stock_adjustments.append(adjustment)
    _commit(
        context,
        "Stock",
        ActivityAction.ADJUST,
        f"Adjusted {product.name} to target {target} (diff {delta}). Reason: {command.reason}",
    )
    log.info(
        "Adjusted product %s to %s (delta=%s, reason=%s)",
        product.product_id,
        target,
        delta,
        command.reason,
    )
    return adjustment
