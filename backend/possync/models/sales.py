from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


def _money(value):
    return None if value is None else str(value)


class Sale(db.Model):
    """
    Confirmed sale header. Append-only: written once by the sale engine,
    never updated or deleted afterwards.

    client_id is the idempotency key supplied by the recording device. The
    unique index on it is what guarantees at most one sale per client event,
    including when the same event is submitted concurrently.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("client_id", name="uq_sales_client_id"),
        db.Index("ix_sales_shop_created", "shop_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)

    # Totals (currency, two decimal places)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    tax_total = db.Column(db.Numeric(12, 2), nullable=False)
    discount_total = db.Column(db.Numeric(12, 2), nullable=False)
    grand_total = db.Column(db.Numeric(12, 2), nullable=False)

    payment_status = db.Column(db.String(16), nullable=False, default="paid")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Offline sync bookkeeping
    client_id = db.Column(db.String(128), nullable=False)
    client_created_at = db.Column(db.DateTime(timezone=True), nullable=True)
    synced_from_offline = db.Column(db.Boolean, nullable=False, default=False)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship(
        "SaleLineItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleLineItem.id",
        lazy=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "seller_id": self.seller_id,
            "subtotal": _money(self.subtotal),
            "tax_total": _money(self.tax_total),
            "discount_total": _money(self.discount_total),
            "grand_total": _money(self.grand_total),
            "payment_status": self.payment_status,
            "created_at": to_utc_z(self.created_at),
            "client_id": self.client_id,
            "client_created_at": to_utc_z(self.client_created_at),
            "synced_from_offline": self.synced_from_offline,
            "synced_at": to_utc_z(self.synced_at),
        }


class SaleLineItem(db.Model):
    """One priced line of a sale; lives and dies with its Sale."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(
        db.Integer,
        db.ForeignKey("sales.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    # Price actually charged; may differ from the catalog price
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)
    profit_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    sale = db.relationship("Sale", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "discount_amount": _money(self.discount_amount),
            "tax_amount": _money(self.tax_amount),
            "line_total": _money(self.line_total),
            "profit_amount": _money(self.profit_amount),
        }
