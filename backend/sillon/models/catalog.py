from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from ..time_utils import to_utc_z
from .enums import SupplierType, coerce_enum


def _rate_to_str(value) -> str | None:
    return str(value) if value is not None else None


class Supplier(db.Model):
    """
    Supplier of records.

    commission_rate (0..1) is the house share of each sale and is only
    meaningful for consignment and depot_vente suppliers.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.CheckConstraint(
            "commission_rate IS NULL OR (commission_rate >= 0 AND commission_rate <= 1)",
            name="ck_suppliers_commission_rate_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False, default=SupplierType.PURCHASE.value, index=True)
    commission_rate = db.Column(db.Numeric(5, 4), nullable=True)

    email = db.Column(db.String(255), nullable=True)
    iban = db.Column(db.String(64), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @validates("type")
    def _validate_type(self, key, value):
        return coerce_enum(SupplierType, value, field="supplier type").value

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "commission_rate": _rate_to_str(self.commission_rate),
            "email": self.email,
            "iban": self.iban,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Catalog product (a record pressing).

    `stock` is a cached counter owned by the stock ledger: it is written only
    by stock_service.apply_movement, always together with a StockMovement row.
    Everything else here is ordinary catalog data.

    version_id is an optimistic lock: two writers that both read the same
    stock value cannot both write their result.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_supplier", "supplier_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    artist_name = db.Column(db.String(255), nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    stock_threshold = db.Column(db.Integer, nullable=False, default=0)

    cost_price_cents = db.Column(db.Integer, nullable=True)
    selling_price_cents = db.Column(db.Integer, nullable=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True)
    supplier_type = db.Column(db.String(16), nullable=True)
    consignment_rate = db.Column(db.Numeric(5, 4), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @validates("supplier_type")
    def _validate_supplier_type(self, key, value):
        if value is None:
            return None
        return coerce_enum(SupplierType, value, field="supplier type").value

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.stock_threshold

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "title": self.title,
            "artist_name": self.artist_name,
            "stock": self.stock,
            "stock_threshold": self.stock_threshold,
            "is_low_stock": self.is_low_stock,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "supplier_id": self.supplier_id,
            "supplier_type": self.supplier_type,
            "consignment_rate": _rate_to_str(self.consignment_rate),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
