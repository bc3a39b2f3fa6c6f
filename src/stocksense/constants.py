"""Enumerations and workbook layout shared across StockSense modules.

Centralises domain constants so that the data access layer (DAL), the stock
engine, the orchestration layer, and the CLI rely on a single source of truth
for identifiers that end up persisted in the ledger workbook.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Number of activity log entries retained, newest first.
ACTIVITY_LOG_LIMIT = 100


class PaymentStatus(str, Enum):
    """Settlement state of a purchase invoice, derived from paid vs total."""

    PAID = "Paid"
    PARTIAL = "Partial"
    UNPAID = "Unpaid"


class PaymentMode(str, Enum):
    """Enumerate supported mechanisms for settling vendor invoices."""

    CASH = "Cash"
    BANK_TRANSFER = "Bank Transfer"
    CREDIT_CARD = "Credit Card"
    UPI = "UPI"


class GstType(str, Enum):
    """Intra-state invoices split tax into CGST+SGST, inter-state use IGST."""

    INTRA = "INTRA"
    INTER = "INTER"


class ActivityAction(str, Enum):
    """Enumerate the actions recorded in the activity log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ADJUST = "ADJUST"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    PRODUCTS = "Products"
    CATEGORIES = "Categories"
    VENDORS = "Vendors"
    DEPARTMENTS = "Departments"
    PURCHASES = "Purchases"
    PURCHASE_ITEMS = "PurchaseItems"
    OUTWARDS = "Outwards"
    OUTWARD_ITEMS = "OutwardItems"
    STOCK_ADJUSTMENTS = "StockAdjustments"
    VENDOR_PAYMENTS = "VendorPayments"
    ACTIVITY_LOG = "ActivityLog"


SHEET_COLUMNS: Dict[str, Tuple[str, ...]] = {
    SheetName.PRODUCTS.value: (
        "ProductID",
        "ProductName",
        "Unit",
        "CategoryID",
        "VendorID",
        "WarehouseID",
        "PurchasePrice",
        "GstRate",
        "ReorderLevel",
        "InitialQuantity",
        "Quantity",
        "HSN",
        "Barcode",
    ),
    SheetName.CATEGORIES.value: ("CategoryID", "CategoryName"),
    SheetName.VENDORS.value: ("VendorID", "VendorName", "Email", "Phone", "Address", "GSTIN"),
    SheetName.DEPARTMENTS.value: ("DepartmentID", "DepartmentName"),
    SheetName.PURCHASES.value: (
        "PurchaseID",
        "VendorID",
        "InvoiceNumber",
        "Date",
        "GstType",
        "TotalAmount",
        "PaidAmount",
        "PaymentStatus",
        "IsOutwarded",
    ),
    SheetName.PURCHASE_ITEMS.value: ("PurchaseID", "ProductID", "Quantity", "UnitCost", "GstRate"),
    SheetName.OUTWARDS.value: ("OutwardID", "DepartmentID", "RequisitionNumber", "Date", "TotalCost"),
    SheetName.OUTWARD_ITEMS.value: ("OutwardID", "ProductID", "Quantity", "CostAtTime"),
    SheetName.STOCK_ADJUSTMENTS.value: ("AdjustmentID", "ProductID", "Quantity", "Date", "Reason"),
    SheetName.VENDOR_PAYMENTS.value: ("PaymentID", "PurchaseID", "VendorID", "Amount", "Date", "Mode"),
    SheetName.ACTIVITY_LOG.value: ("LogID", "Timestamp", "Entity", "Action", "Details"),
}


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "ACTIVITY_LOG_LIMIT",
    "PaymentStatus",
    "PaymentMode",
    "GstType",
    "ActivityAction",
    "SheetName",
    "SHEET_COLUMNS",
]
