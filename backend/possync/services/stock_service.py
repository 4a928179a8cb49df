# Overview: Stock ledger primitives; the only code that reads stock under lock or changes it.

"""
Stock ledger invariants (authoritative)

- One StockRow per (shop_id, product_id); created by the first transfer
  into that shop.
- on_hand >= 0 at all times. A decrement that would go below zero is
  refused, never clamped.
- on_hand / sold_count change only inside a transaction that holds the
  row's lock (SELECT ... FOR UPDATE, or the SQLite write lock).
- When several rows are locked in one transaction they are locked in
  ascending product_id order, so two sales touching overlapping products
  cannot deadlock on each other.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import Product, Shop, StockRow
from .concurrency import begin_locked_transaction, is_deadlock, lock_for_update, run_with_retry, transaction
from .errors import InsufficientStock, ProductNotFound, StockNotFound


class StockError(Exception):
    """Raised for invalid stock transfer requests."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class StockLevel:
    shop_id: int
    product_id: int
    on_hand: int
    sold_count: int

    def to_dict(self) -> dict:
        return {
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "on_hand": self.on_hand,
            "sold_count": self.sold_count,
        }


def lock_stock(session: Session, shop_id: int, product_id: int) -> StockRow:
    """
    Read a stock row while holding its exclusive lock until the current
    transaction ends.

    Raises StockNotFound if the shop has no row for this product.
    """
    row = lock_for_update(
        session.query(StockRow).filter_by(shop_id=shop_id, product_id=product_id)
    ).one_or_none()
    if row is None:
        raise StockNotFound(product_id)
    return row


def lock_stock_rows(session: Session, shop_id: int, product_ids: Iterable[int]) -> dict[int, StockRow]:
    """Lock several stock rows of one shop in ascending product_id order."""
    rows: dict[int, StockRow] = {}
    for product_id in sorted(set(product_ids)):
        rows[product_id] = lock_stock(session, shop_id, product_id)
    return rows


def ensure_available(row: StockRow, quantity: int) -> None:
    if row.on_hand < quantity:
        raise InsufficientStock(
            product_id=row.product_id,
            available=int(row.on_hand),
            requested=int(quantity),
        )


def decrement_stock(row: StockRow, quantity: int) -> None:
    """Remove sold units from a locked row. Never drives on_hand negative."""
    if quantity <= 0:
        raise ValueError("quantity must be positive")
    ensure_available(row, quantity)
    row.on_hand = row.on_hand - quantity


def increment_sold_count(row: StockRow, quantity: int) -> None:
    if quantity <= 0:
        raise ValueError("quantity must be positive")
    row.sold_count = (row.sold_count or 0) + quantity


def get_stock(session: Session, shop_id: int, product_id: int) -> StockLevel:
    """Non-locking read. A missing row reads as zero stock."""
    row = session.query(StockRow).filter_by(shop_id=shop_id, product_id=product_id).one_or_none()
    if row is None:
        return StockLevel(shop_id=shop_id, product_id=product_id, on_hand=0, sold_count=0)
    return StockLevel(
        shop_id=row.shop_id,
        product_id=row.product_id,
        on_hand=int(row.on_hand),
        sold_count=int(row.sold_count or 0),
    )


def transfer_stock(
    session: Session,
    shop_id: int,
    product_id: int,
    quantity: int,
    *,
    lock_timeout_ms: int | None = None,
    attempts: int = 3,
) -> StockLevel:
    """
    Move units from a product's central pool (products.total_stock) into a
    shop's stock row, creating the row on first transfer.

    Both rows are locked for the whole transaction, product first, so a
    transfer and a sale of the same product serialize on the stock row.
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise StockError("quantity must be a positive integer")

    def _op() -> StockLevel:
        with transaction(session):
            begin_locked_transaction(session, lock_timeout_ms)

            if session.get(Shop, shop_id) is None:
                raise StockError("shop_not_found", details={"shop_id": shop_id})

            product = lock_for_update(session.query(Product).filter_by(id=product_id)).one_or_none()
            if product is None:
                raise ProductNotFound(product_id)
            if (product.total_stock or 0) < quantity:
                raise StockError(
                    "insufficient_store_stock",
                    details={"available": int(product.total_stock or 0), "requested": quantity},
                )
            product.total_stock = product.total_stock - quantity

            row = lock_for_update(
                session.query(StockRow).filter_by(shop_id=shop_id, product_id=product_id)
            ).one_or_none()
            if row is None:
                row = StockRow(shop_id=shop_id, product_id=product_id, on_hand=0, sold_count=0)
                session.add(row)
            row.on_hand = (row.on_hand or 0) + quantity
            session.flush()

            return StockLevel(
                shop_id=shop_id,
                product_id=product_id,
                on_hand=int(row.on_hand),
                sold_count=int(row.sold_count or 0),
            )

    # A concurrent first transfer may create the row between our lookup and
    # insert; the retry then finds and locks it.
    return run_with_retry(
        _op,
        session=session,
        attempts=attempts,
        retry_if=lambda exc: isinstance(exc, IntegrityError) or is_deadlock(exc),
    )
