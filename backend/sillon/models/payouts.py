from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .enums import PayoutStatus, coerce_enum


class SupplierPayout(db.Model):
    """
    Amount owed to a consignment / depot-vente supplier for a period.

    Amounts are trusted as entered at creation time (usually pre-filled from a
    computed settlement). pending -> paid happens once and is irreversible.
    """
    __tablename__ = "supplier_payouts"
    __table_args__ = (
        db.Index("ix_supplier_payouts_supplier_period", "supplier_id", "period_start"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)

    gross_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    commission_cents = db.Column(db.Integer, nullable=False, default=0)
    payout_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=PayoutStatus.PENDING.value, index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_reference = db.Column(db.String(128), nullable=True)

    # Supplier invoice issued on payment (REV-000001); the document itself is rendered elsewhere
    invoice_id = db.Column(db.Integer, nullable=True)
    invoice_number = db.Column(db.String(64), nullable=True, unique=True)

    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    supplier = db.relationship("Supplier", backref=db.backref("payouts", lazy=True))

    @validates("status")
    def _validate_status(self, key, value):
        return coerce_enum(PayoutStatus, value, field="payout status").value

    @property
    def is_paid(self) -> bool:
        return self.status == PayoutStatus.PAID.value

    def __repr__(self) -> str:
        return f"<SupplierPayout id={self.id} supplier_id={self.supplier_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "gross_sales_cents": self.gross_sales_cents,
            "commission_cents": self.commission_cents,
            "payout_cents": self.payout_cents,
            "status": self.status,
            "paid_at": to_utc_z(self.paid_at),
            "payment_reference": self.payment_reference,
            "invoice_id": self.invoice_id,
            "invoice_number": self.invoice_number,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
