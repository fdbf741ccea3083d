from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .enums import ItemStatus, OrderStatus, PaymentStatus, SupplierType, coerce_enum

# cancel, refund and return reasons
REASON_MAX_LENGTH = 255


class Order(db.Model):
    """
    Customer order.

    Order.status and the statuses of its items are kept consistent by
    order_service: an order whose last active item is cancelled is cancelled
    automatically.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "CMD-000123")
    order_number = db.Column(db.String(64), nullable=False)
    customer_name = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=OrderStatus.PENDING.value, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PaymentStatus.PENDING.value, index=True)

    # Amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    tracking_number = db.Column(db.String(128), nullable=True)
    tracking_url = db.Column(db.String(512), nullable=True)

    # Transition timestamps
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processing_at = db.Column(db.DateTime(timezone=True), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    cancel_reason = db.Column(db.String(REASON_MAX_LENGTH), nullable=True)
    refund_requested = db.Column(db.Boolean, nullable=False, default=False)
    refund_reason = db.Column(db.String(REASON_MAX_LENGTH), nullable=True)

    # Issued when the order is refunded; rendering happens elsewhere
    credit_note_number = db.Column(db.String(64), nullable=True)

    @validates("status")
    def _validate_status(self, key, value):
        return coerce_enum(OrderStatus, value, field="order status").value

    @validates("payment_status")
    def _validate_payment_status(self, key, value):
        return coerce_enum(PaymentStatus, value, field="payment status").value

    @property
    def active_items(self) -> list["OrderItem"]:
        return [item for item in self.items if item.status == ItemStatus.ACTIVE.value]

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, *, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "status": self.status,
            "payment_status": self.payment_status,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "shipping_cents": self.shipping_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "tracking_number": self.tracking_number,
            "tracking_url": self.tracking_url,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "processing_at": to_utc_z(self.processing_at),
            "shipped_at": to_utc_z(self.shipped_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "refunded_at": to_utc_z(self.refunded_at),
            "paid_at": to_utc_z(self.paid_at),
            "updated_at": to_utc_z(self.updated_at),
            "cancel_reason": self.cancel_reason,
            "refund_requested": self.refund_requested,
            "refund_reason": self.refund_reason,
            "credit_note_number": self.credit_note_number,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    Line item of an order.

    Lifecycle: active -> cancelled or active -> returned, both terminal.
    Supplier linkage, type and consignment rate are snapshots taken at sale
    time so later catalog edits never rewrite historical settlements.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.Index("ix_order_items_supplier_created", "supplier_id", "created_at"),
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    sku = db.Column(db.String(64), nullable=True)
    title = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=ItemStatus.ACTIVE.value, index=True)

    # Movement recorded at sale time / at cancel-or-return time
    stock_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)
    reversed_stock_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    return_reason = db.Column(db.String(REASON_MAX_LENGTH), nullable=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True)
    supplier_type = db.Column(db.String(16), nullable=True)
    consignment_rate = db.Column(db.Numeric(5, 4), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship(
        "Order",
        backref=db.backref("items", lazy=True, order_by="OrderItem.id"),
    )
    product = db.relationship("Product")

    @validates("status")
    def _validate_status(self, key, value):
        return coerce_enum(ItemStatus, value, field="item status").value

    @validates("supplier_type")
    def _validate_supplier_type(self, key, value):
        if value is None:
            return None
        return coerce_enum(SupplierType, value, field="supplier type").value

    @property
    def is_active(self) -> bool:
        return self.status == ItemStatus.ACTIVE.value

    def __repr__(self) -> str:
        return f"<OrderItem id={self.id} order_id={self.order_id} qty={self.quantity} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "title": self.title,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "status": self.status,
            "stock_movement_id": self.stock_movement_id,
            "reversed_stock_movement_id": self.reversed_stock_movement_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "returned_at": to_utc_z(self.returned_at),
            "return_reason": self.return_reason,
            "supplier_id": self.supplier_id,
            "supplier_type": self.supplier_type,
            "consignment_rate": str(self.consignment_rate) if self.consignment_rate is not None else None,
            "created_at": to_utc_z(self.created_at),
        }
