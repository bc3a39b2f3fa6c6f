"""Stock derivation engine.

Quantities are never stored as running counters. Every figure produced here is
derived from the movement ledger held by a :class:`~stocksense.data_manager.LedgerState`:
purchases add stock, outwards remove it and stock adjustments carry a signed
delta. ``Product.initial_quantity`` is the baseline every derivation starts
from.

The functions are pure; they never mutate the state they read. Validation of
caller input and the domain error taxonomy live in :mod:`stocksense.core_logic`,
so invalid windows surface here as plain ``ValueError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from decimal import Decimal
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

from . import log
from .data_manager import LedgerState, ProductRow

DateLike = Union[date, datetime]

# Lower bound used when a window should cover the whole ledger history.
EPOCH = date(1970, 1, 1)

ZERO = Decimal("0")


@dataclass(frozen=True)
class MovementTotals:
    """Summed ledger movements for one product over some time range."""

    inward: Decimal = ZERO
    outward: Decimal = ZERO
    adjustment: Decimal = ZERO

    @property
    def net(self) -> Decimal:
        return self.inward - self.outward + self.adjustment


@dataclass(frozen=True)
class ProductStock:
    """Windowed stock figures for a single product.

    ``initial_opening`` is the product's immutable baseline quantity.
    ``month_opening`` is the stock on hand at the start of the requested window.
    ``live_stock`` ignores the window entirely and sums the full ledger.
    """

    initial_opening: Decimal = ZERO
    month_opening: Decimal = ZERO
    inward: Decimal = ZERO
    outward: Decimal = ZERO
    adjustment: Decimal = ZERO
    closing_stock: Decimal = ZERO
    live_stock: Decimal = ZERO


def as_utc(value: DateLike) -> datetime:
    """Normalize a date or datetime into a timezone-aware UTC datetime.

    Plain dates become midnight UTC and naive datetimes are interpreted as
    UTC. Aware datetimes are converted.
    """

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    return datetime.combine(value, time.min, tzinfo=UTC)


def calendar_day(value: DateLike) -> date:
    """Return the UTC calendar day a date or datetime falls on."""

    if isinstance(value, datetime):
        return as_utc(value).date()
    return value


def period_bounds(period_start: DateLike, period_end: DateLike) -> Tuple[datetime, datetime]:
    """Expand two calendar days into an inclusive ``[start, end]`` window.

    The window starts at 00:00:00 of ``period_start`` and ends at the last
    representable instant of ``period_end``, both in UTC.

    Raises:
        ValueError: If ``period_end`` falls on a day before ``period_start``.
    """

    start_day = calendar_day(period_start)
    end_day = calendar_day(period_end)
    if end_day < start_day:
        raise ValueError(f"Period end {end_day.isoformat()} precedes period start {start_day.isoformat()}")
    return (
        datetime.combine(start_day, time.min, tzinfo=UTC),
        datetime.combine(end_day, time.max, tzinfo=UTC),
    )


def find_product(state: LedgerState, product_id: int) -> Optional[ProductRow]:
    for product in state.products:
        if product.product_id == product_id:
            return product
    return None


def iter_movements(state: LedgerState, product_id: int) -> Iterable[Tuple[datetime, str, Decimal]]:
    """Yield ``(when, kind, quantity)`` for every ledger line touching a product.

    ``kind`` is one of ``"inward"``, ``"outward"`` or ``"adjustment"``. Outward
    quantities are yielded as positive magnitudes; adjustments keep their sign.
    """

    for purchase in state.purchases:
        for item in purchase.items:
            if item.product_id == product_id:
                yield as_utc(purchase.date), "inward", item.quantity
    for outward in state.outwards:
        for item in outward.items:
            if item.product_id == product_id:
                yield as_utc(outward.date), "outward", item.quantity
    for adjustment in state.stock_adjustments:
        if adjustment.product_id == product_id:
            yield as_utc(adjustment.date), "adjustment", adjustment.quantity


def movement_totals(
    state: LedgerState,
    product_id: int,
    predicate: Optional[Callable[[datetime], bool]] = None,
) -> MovementTotals:
    """Sum a product's movements whose timestamp satisfies ``predicate``.

    Without a predicate the whole ledger is summed.
    """

    totals = {"inward": ZERO, "outward": ZERO, "adjustment": ZERO}
    for when, kind, quantity in iter_movements(state, product_id):
        if predicate is None or predicate(when):
            totals[kind] += quantity
    return MovementTotals(**totals)


def live_stock(state: LedgerState, product_id: int) -> Decimal:
    """Return baseline plus every ledger movement, regardless of date.

    Future-dated entries are included. Unknown products report zero.
    """

    product = find_product(state, product_id)
    if product is None:
        return ZERO
    return product.initial_quantity + movement_totals(state, product_id).net


def live_stock_levels(state: LedgerState) -> Dict[int, Decimal]:
    """Compute live stock for every product in a single pass over the ledger."""

    levels: Dict[int, Decimal] = {product.product_id: product.initial_quantity for product in state.products}

    def _apply(product_id: int, delta: Decimal) -> None:
        if product_id in levels:
            levels[product_id] += delta

    for purchase in state.purchases:
        for item in purchase.items:
            _apply(item.product_id, item.quantity)
    for outward in state.outwards:
        for item in outward.items:
            _apply(item.product_id, -item.quantity)
    for adjustment in state.stock_adjustments:
        _apply(adjustment.product_id, adjustment.quantity)
    return levels


def compute_stock(
    state: LedgerState,
    product_id: int,
    period_start: DateLike,
    period_end: DateLike,
) -> ProductStock:
    """Derive opening, movement and closing figures for a reporting window.

    Args:
        state (LedgerState): Ledger to derive from.
        product_id (int): Product whose movements are summed.
        period_start (date | datetime): First calendar day of the window.
        period_end (date | datetime): Last calendar day of the window.

    Returns:
        ProductStock: Window figures. An unknown product yields a zeroed
            record rather than an error.

    Raises:
        ValueError: If ``period_end`` precedes ``period_start``.
    """

    start, end = period_bounds(period_start, period_end)
    product = find_product(state, product_id)
    if product is None:
        log.debug("compute_stock requested for unknown product %s", product_id)
        return ProductStock()

    before = movement_totals(state, product_id, lambda when: when < start)
    within = movement_totals(state, product_id, lambda when: start <= when <= end)
    everything = movement_totals(state, product_id)

    opening = product.initial_quantity + before.net
    closing = opening + within.net
    return ProductStock(
        initial_opening=product.initial_quantity,
        month_opening=opening,
        inward=within.inward,
        outward=within.outward,
        adjustment=within.adjustment,
        closing_stock=closing,
        live_stock=product.initial_quantity + everything.net,
    )


def stock_as_of(state: LedgerState, product_id: int, as_of: DateLike) -> Decimal:
    """Return the closing stock at the end of the ``as_of`` calendar day."""

    return compute_stock(state, product_id, min(EPOCH, calendar_day(as_of)), as_of).closing_stock


__all__ = [
    "EPOCH",
    "MovementTotals",
    "ProductStock",
    "as_utc",
    "calendar_day",
    "period_bounds",
    "find_product",
    "iter_movements",
    "movement_totals",
    "live_stock",
    "live_stock_levels",
    "compute_stock",
    "stock_as_of",
]
