from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .enums import MovementType, coerce_enum


class StockMovement(db.Model):
    """
    One immutable stock ledger entry.

    INVARIANT: stock_after = stock_before + signed_delta(type, quantity).

    `quantity` is a magnitude for directional types (sale, purchase, ...) and a
    signed value for adjustment / sale_adjustment. Rows are never updated or
    deleted; a compensation is a new row (see db_guards).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_id_id", "product_id", "id"),
        db.Index("ix_stock_movements_order", "order_id"),
        db.CheckConstraint("quantity <> 0", name="ck_stock_movements_quantity_nonzero"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    # plain column: order_items already references stock_movements
    order_item_id = db.Column(db.Integer, nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    reference = db.Column(db.String(128), nullable=True)
    reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_by = db.Column(db.String(64), nullable=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    @validates("type")
    def _validate_type(self, key, value):
        return coerce_enum(MovementType, value, field="movement type").value

    @property
    def delta(self) -> int:
        return self.stock_after - self.stock_before

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product_id={self.product_id} type={self.type} "
            f"{self.stock_before}->{self.stock_after}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "order_id": self.order_id,
            "order_item_id": self.order_item_id,
            "supplier_id": self.supplier_id,
            "unit_cost_cents": self.unit_cost_cents,
            "reference": self.reference,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }
