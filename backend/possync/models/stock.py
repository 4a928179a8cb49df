from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StockRow(db.Model):
    """
    Sellable quantity of one product at one shop.

    INVARIANT: on_hand >= 0. The sale engine decrements on_hand and
    increments sold_count only while holding this row's lock; stock
    transfers are the only other writer.
    """
    __tablename__ = "stock"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "product_id", name="uq_stock_shop_product"),
        db.CheckConstraint("on_hand >= 0", name="ck_stock_on_hand_nonneg"),
        db.CheckConstraint("sold_count >= 0", name="ck_stock_sold_count_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    on_hand = db.Column(db.Integer, nullable=False, default=0)
    sold_count = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    shop = db.relationship("Shop", backref=db.backref("stock_rows", lazy=True))
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<StockRow shop_id={self.shop_id} product_id={self.product_id} "
            f"on_hand={self.on_hand} sold_count={self.sold_count}>"
        )

    def to_dict(self) -> dict:
        return {
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "on_hand": self.on_hand,
            "sold_count": self.sold_count,
            "updated_at": to_utc_z(self.updated_at),
        }
