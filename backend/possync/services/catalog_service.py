# Overview: Read-only catalog lookups used when pricing a sale.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from ..models import Product
from .errors import ProductNotFound


@dataclass(frozen=True)
class ProductPricing:
    """Snapshot of the catalog values a sale line is priced from."""
    product_id: int
    sell_price: Decimal
    cost_price: Decimal
    tax_rate: Decimal  # percent
    active: bool


def get_product(session: Session, product_id: int) -> ProductPricing:
    """
    Return the pricing of an active product.

    Raises ProductNotFound when the product does not exist or has been
    deactivated. The catalog is never locked: a price edit racing a sale
    affects only which price that sale sees.
    """
    product = session.get(Product, product_id)
    if product is None or not product.active:
        raise ProductNotFound(product_id)

    return ProductPricing(
        product_id=product.id,
        sell_price=Decimal(product.sell_price),
        cost_price=Decimal(product.cost_price or 0),
        tax_rate=Decimal(product.tax_rate or 0),
        active=bool(product.active),
    )
