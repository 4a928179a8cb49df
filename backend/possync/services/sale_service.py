"""
Sale confirmation engine.

Turns one client-recorded sale event into exactly one durable sale (header +
priced lines) and the matching stock decrements, inside a single
transaction. Either everything is committed or nothing is.

ORDER OF OPERATIONS (per event):
1. Authorization: a seller may only sell at the shop they are bound to.
2. Idempotency fast path: an existing sale with the same client_id is
   returned as a duplicate without further writes.
3. Value validation of the parsed event.
4. Quantities are summed per product, so listing one product on several
   lines cannot bypass the stock check.
5. Every affected stock row is locked (ascending product_id) before any
   check or write; then availability is checked for all of them.
6. Lines are priced from the catalog.
7. Sale, lines, and stock changes are written; the transaction commits.

IDEMPOTENCY: the unique index on sales.client_id is the real guard. The
lookups in steps 2 and 5 only avoid wasted work; an IntegrityError on insert
means a concurrent submission of the same event won, and is reported as a
duplicate of that sale.

MONEY: Decimal throughout. Each line's tax is rounded to cents (half-up)
before it is added to the totals; all other amounts are exact.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..models import Sale, SaleLineItem
from ..models.auth import ROLE_SELLER
from ..time_utils import utcnow
from ..validation import LineRequest, SaleEvent, validate_sale_event
from .catalog_service import ProductPricing, get_product
from .concurrency import (
    begin_locked_transaction,
    is_deadlock,
    is_disconnect,
    is_lock_timeout,
    run_with_retry,
    transaction,
)
from .errors import ForbiddenShop, LockTimeout, StoreUnavailable
from .stock_service import decrement_stock, ensure_available, increment_sold_count, lock_stock_rows


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal(100)

STATUS_SYNCED = "synced"
STATUS_DUPLICATE = "duplicate"


@dataclass(frozen=True)
class Actor:
    """The authenticated account a sale is recorded for."""
    seller_id: int
    role: str
    shop_id: int | None = None


@dataclass(frozen=True)
class SaleOutcome:
    status: str  # "synced" | "duplicate"
    sale_id: int

    def to_result(self) -> dict:
        return {"status": self.status, "sale_id": self.sale_id}


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    quantity: int
    unit_price: Decimal
    line_subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal
    profit_amount: Decimal


@dataclass
class SaleTotals:
    subtotal: Decimal = ZERO
    tax_total: Decimal = ZERO
    discount_total: Decimal = ZERO
    lines: list[PricedLine] = field(default_factory=list)

    def add(self, line: PricedLine) -> None:
        self.lines.append(line)
        self.subtotal += line.line_subtotal
        self.tax_total += line.tax_amount
        self.discount_total += line.discount_amount

    @property
    def grand_total(self) -> Decimal:
        return self.subtotal + self.tax_total - self.discount_total


def _cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def authorize(event: SaleEvent, actor: Actor) -> None:
    if actor.role == ROLE_SELLER and (actor.shop_id or 0) != event.shop_id:
        raise ForbiddenShop(event.shop_id)


def aggregate_quantities(lines: Iterable[LineRequest]) -> dict[int, int]:
    """Total requested quantity per distinct product."""
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


def price_line(pricing: ProductPricing, line: LineRequest) -> PricedLine:
    """
    Price one line.

    The charged price is the client's requested price when given, else the
    catalog price. Charging less than the catalog price is recorded as a
    discount; charging more never produces a negative discount.
    """
    catalog_price = _cents(pricing.sell_price)
    if line.requested_unit_price is not None and line.requested_unit_price >= 0:
        price = _cents(line.requested_unit_price)
    else:
        price = catalog_price

    quantity = Decimal(line.quantity)
    line_subtotal = price * quantity
    tax_amount = _cents(pricing.tax_rate / HUNDRED * line_subtotal)
    discount_amount = max(ZERO, catalog_price - price) * quantity
    profit_amount = (price - _cents(pricing.cost_price)) * quantity

    return PricedLine(
        product_id=line.product_id,
        quantity=line.quantity,
        unit_price=price,
        line_subtotal=line_subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        line_total=line_subtotal + tax_amount,
        profit_amount=profit_amount,
    )


def price_sale(session: Session, lines: Iterable[LineRequest]) -> SaleTotals:
    """Price every line against the catalog. Raises ProductNotFound."""
    totals = SaleTotals()
    catalog: dict[int, ProductPricing] = {}
    for line in lines:
        pricing = catalog.get(line.product_id)
        if pricing is None:
            pricing = catalog[line.product_id] = get_product(session, line.product_id)
        totals.add(price_line(pricing, line))
    return totals


def find_sale_by_client_id(session: Session, client_id: str) -> Sale | None:
    return session.query(Sale).filter_by(client_id=client_id).one_or_none()


def insert_sale(
    session: Session,
    *,
    event: SaleEvent,
    actor: Actor,
    totals: SaleTotals,
    synced_from_offline: bool,
) -> Sale:
    now = utcnow()
    sale = Sale(
        shop_id=event.shop_id,
        seller_id=actor.seller_id,
        subtotal=totals.subtotal,
        tax_total=totals.tax_total,
        discount_total=totals.discount_total,
        grand_total=totals.grand_total,
        payment_status="paid",
        created_at=now,
        client_id=event.client_id,
        client_created_at=event.client_created_at,
        synced_from_offline=synced_from_offline,
        synced_at=now if synced_from_offline else None,
    )
    session.add(sale)
    # Raises IntegrityError here when another submission of this client_id won
    session.flush()
    return sale


def insert_line_items(session: Session, sale: Sale, lines: Iterable[PricedLine]) -> list[SaleLineItem]:
    items = [
        SaleLineItem(
            sale_id=sale.id,
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            discount_amount=line.discount_amount,
            tax_amount=line.tax_amount,
            line_total=line.line_total,
            profit_amount=line.profit_amount,
        )
        for line in lines
    ]
    session.add_all(items)
    return items


def _confirm_locked(
    session: Session,
    event: SaleEvent,
    actor: Actor,
    *,
    max_age_hours: int | None,
    synced_from_offline: bool,
) -> SaleOutcome:
    existing = find_sale_by_client_id(session, event.client_id)
    if existing is not None:
        return SaleOutcome(STATUS_DUPLICATE, existing.id)

    validate_sale_event(event, max_age_hours=max_age_hours)

    quantities = aggregate_quantities(event.lines)
    rows = lock_stock_rows(session, event.shop_id, quantities)

    # A resubmission of this event may have committed while we waited on a lock
    existing = find_sale_by_client_id(session, event.client_id)
    if existing is not None:
        return SaleOutcome(STATUS_DUPLICATE, existing.id)

    for product_id in sorted(quantities):
        ensure_available(rows[product_id], quantities[product_id])

    totals = price_sale(session, event.lines)

    sale = insert_sale(
        session,
        event=event,
        actor=actor,
        totals=totals,
        synced_from_offline=synced_from_offline,
    )
    insert_line_items(session, sale, totals.lines)

    for product_id in sorted(quantities):
        row = rows[product_id]
        decrement_stock(row, quantities[product_id])
        increment_sold_count(row, quantities[product_id])

    session.flush()
    return SaleOutcome(STATUS_SYNCED, sale.id)


def confirm_sale(
    session: Session,
    event: SaleEvent,
    actor: Actor,
    *,
    lock_timeout_ms: int | None = None,
    max_age_hours: int | None = None,
    synced_from_offline: bool = False,
    attempts: int = 3,
) -> SaleOutcome:
    """
    Confirm one sale event.

    Returns SaleOutcome("synced", id) for a newly committed sale or
    SaleOutcome("duplicate", id) when the client_id was already recorded.
    Raises a SaleConfirmationError subclass (nothing committed) for
    classified failures and StoreUnavailable when the database is gone.
    """
    authorize(event, actor)

    def _op() -> SaleOutcome:
        with transaction(session):
            begin_locked_transaction(session, lock_timeout_ms)
            return _confirm_locked(
                session,
                event,
                actor,
                max_age_hours=max_age_hours,
                synced_from_offline=synced_from_offline,
            )

    try:
        outcome = run_with_retry(_op, session=session, attempts=attempts)
    except IntegrityError:
        existing = find_sale_by_client_id(session, event.client_id)
        session.rollback()
        if existing is None:
            raise
        logger.info("Sale client_id=%s lost insert race; duplicate of sale %s", event.client_id, existing.id)
        return SaleOutcome(STATUS_DUPLICATE, existing.id)
    except (DBAPIError, StaleDataError) as exc:
        if is_disconnect(exc):
            raise StoreUnavailable(str(exc)) from exc
        if is_lock_timeout(exc) or is_deadlock(exc):
            logger.warning("Sale client_id=%s timed out waiting for stock locks", event.client_id)
            raise LockTimeout() from exc
        raise

    if outcome.status == STATUS_SYNCED:
        logger.info(
            "Sale %s confirmed (client_id=%s shop_id=%s seller_id=%s lines=%d)",
            outcome.sale_id, event.client_id, event.shop_id, actor.seller_id, len(event.lines),
        )
    else:
        logger.info("Sale client_id=%s already recorded as sale %s", event.client_id, outcome.sale_id)
    return outcome


def get_sale(session: Session, sale_id: int) -> Sale | None:
    return session.get(Sale, sale_id)
