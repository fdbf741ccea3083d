from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class DocumentSequence(db.Model):
    """
    Atomic per-type document sequences.

    WHY: Prevent race conditions when generating document numbers
    (order numbers, payout invoices, credit notes).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class LedgerEvent(db.Model):
    """
    Append-only audit log for order and payout events.

    Written inside the same DB transaction as the change it records. Stock
    changes are not duplicated here; StockMovement is their ledger.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., order.auto_cancelled, payout.paid
    event_category = db.Column(db.String(32), nullable=False, index=True)  # orders, payouts

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    actor = db.Column(db.String(64), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    # Optional structured metadata (keep small; do not denormalize domain state)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor": self.actor,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": self.payload,
        }
