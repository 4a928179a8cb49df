from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


def _money(value):
    return None if value is None else str(value)


class Shop(db.Model):
    """A selling location. Sellers are bound to one shop; stock is kept per shop."""
    __tablename__ = "shops"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Shop id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Catalog entry: the authoritative price, cost and tax rate of a product.

    The sale engine only reads from this table. total_stock is the central
    pool not yet distributed to any shop; stock transfers draw from it.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("total_stock >= 0", name="ck_products_total_stock_nonneg"),
        db.Index("ix_products_active_name", "active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=True)

    # Currency amounts, two decimal places
    sell_price = db.Column(db.Numeric(12, 2), nullable=False)
    cost_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Percent, e.g. 10.00 = 10%
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    active = db.Column(db.Boolean, nullable=False, default=True)
    total_stock = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} active={self.active}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "sell_price": _money(self.sell_price),
            "cost_price": _money(self.cost_price),
            "tax_rate": _money(self.tax_rate),
            "active": self.active,
            "total_stock": self.total_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
