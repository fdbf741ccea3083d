# Overview: Supplier settlement calculation and the supplier payout lifecycle.

"""
Supplier Settlement

A settlement is read-only arithmetic over a closed set of sold items:

- gross = sum of item totals for the supplier whose order falls in [start, end]
- items sold under consignment / depot_vente: commission = sum(total x rate), where
  rate = item snapshot rate, else supplier commission rate, else 0;
  payout = their gross - commission
- items sold under purchase / own: nothing is owed, the house keeps them

The type applied is the one saved on the item at sale time.

Amounts are integer cents. Commission is summed exactly and rounded once,
half-up, so payout + commission equals the commissioned gross with no drift.

Payouts record what was actually agreed: amounts are trusted as given at
creation time and may differ from a fresh computation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from flask import current_app
from sqlalchemy import func, update

from ..errors import NotFound, PayoutAlreadyPaid, ValidationError
from ..extensions import db
from ..models import Order, OrderItem, Supplier, SupplierPayout
from ..models.enums import (
    COMMISSION_SUPPLIER_TYPES,
    ORDER_VOID_STATUSES,
    PAYOUT_TRANSITIONS,
    ItemStatus,
    PayoutStatus,
    SupplierType,
    can_transition,
    coerce_enum,
    transition_sources,
)
from ..time_utils import normalize_period_bound, utcnow
from .concurrency import run_atomic
from .document_service import DOC_PAYOUT_INVOICE, next_document_number
from .ledger_service import append_ledger_event

CENT = Decimal("1")


def _to_rate(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


@dataclass
class Settlement:
    supplier_id: int
    supplier_name: str | None
    supplier_type: str
    period_start: date
    period_end: date
    gross_sales_cents: int = 0
    commission_cents: int = 0
    payout_cents: int = 0
    our_margin_cents: int = 0
    items_sold: int = 0
    orders_count: int = 0
    commission_rate: Decimal | None = None
    item_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "supplier_type": self.supplier_type,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "gross_sales_cents": self.gross_sales_cents,
            "commission_cents": self.commission_cents,
            "payout_cents": self.payout_cents,
            "our_margin_cents": self.our_margin_cents,
            "items_sold": self.items_sold,
            "orders_count": self.orders_count,
            "commission_rate": str(self.commission_rate) if self.commission_rate is not None else None,
        }


def _bound(value, *, end: bool = False):
    try:
        return normalize_period_bound(value, end=end)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid period bound {value!r}") from None


def _as_date(value, *, end: bool = False) -> date:
    return _bound(value, end=end).date()


# =============================================================================
# CALCULATION
# =============================================================================

def _sold_at(item):
    """Sale time of an item: its order's creation time, else its own."""
    order = getattr(item, "order", None)
    if order is not None and order.created_at is not None:
        return order.created_at
    return item.created_at


def _item_supplier_type(item, supplier) -> SupplierType:
    """Supplier type saved on the item at sale time, else the supplier's current type."""
    value = item.supplier_type if item.supplier_type is not None else supplier.type
    try:
        return coerce_enum(SupplierType, value, field="supplier type")
    except ValueError as exc:
        raise ValidationError(str(exc)) from None


def compute_period_settlement(supplier: Supplier, period_start, period_end, items) -> Settlement:
    """
    Settle one supplier over a period from the given items.

    Only items of this supplier sold within the (inclusive) period count; an
    item is dated by its order. Each item settles under the supplier type it
    was sold under, so changing a supplier's type never rewrites past sales.
    No database access; the caller decides which items are settled.
    """
    start = _bound(period_start)
    end = _bound(period_end, end=True)
    if end < start:
        raise ValidationError("period_end must not be before period_start")

    settlement = Settlement(
        supplier_id=supplier.id,
        supplier_name=supplier.name,
        supplier_type=coerce_enum(SupplierType, supplier.type, field="supplier type").value,
        period_start=start.date(),
        period_end=end.date(),
        commission_rate=_to_rate(supplier.commission_rate) if supplier.commission_rate is not None else None,
    )

    selected = []
    for item in items:
        if item.supplier_id != supplier.id:
            continue
        sold_at = _sold_at(item)
        if sold_at is not None and start <= sold_at <= end:
            selected.append(item)

    exact_commission = Decimal("0")
    commissioned_gross = 0
    order_ids = set()
    for item in selected:
        settlement.gross_sales_cents += item.total_price_cents
        settlement.items_sold += item.quantity
        settlement.item_ids.append(item.id)
        order_ids.add(item.order_id)
        if _item_supplier_type(item, supplier) in COMMISSION_SUPPLIER_TYPES:
            rate = item.consignment_rate if item.consignment_rate is not None else supplier.commission_rate
            commissioned_gross += item.total_price_cents
            exact_commission += Decimal(item.total_price_cents) * _to_rate(rate)
    settlement.orders_count = len(order_ids)

    # Bought stock owes nothing; the house keeps its whole gross
    settlement.commission_cents = int(exact_commission.quantize(CENT, rounding=ROUND_HALF_UP))
    settlement.payout_cents = commissioned_gross - settlement.commission_cents
    settlement.our_margin_cents = settlement.gross_sales_cents - settlement.payout_cents
    return settlement


def _settled_items_query(period_start, period_end):
    start = _bound(period_start)
    end = _bound(period_end, end=True)
    if end < start:
        raise ValidationError("period_end must not be before period_start")
    return (
        db.session.query(OrderItem)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            OrderItem.status == ItemStatus.ACTIVE.value,
            Order.status.notin_([s.value for s in ORDER_VOID_STATUSES]),
            Order.created_at >= start,
            Order.created_at <= end,
        )
    )


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFound("Supplier", supplier_id)
    return supplier


def settle_supplier_period(supplier_id: int, period_start, period_end) -> Settlement:
    """Settlement for one supplier over sold items (active, order not cancelled/refunded)."""
    supplier = get_supplier(supplier_id)
    items = (
        _settled_items_query(period_start, period_end)
        .filter(OrderItem.supplier_id == supplier.id)
        .order_by(OrderItem.id)
        .all()
    )
    return compute_period_settlement(supplier, period_start, period_end, items)


def supplier_sales_report(period_start, period_end) -> dict:
    """
    Monthly-style report: one settlement per supplier with sales in the period.
    """
    items = _settled_items_query(period_start, period_end).filter(OrderItem.supplier_id.isnot(None)).all()
    by_supplier: dict[int, list[OrderItem]] = {}
    for item in items:
        by_supplier.setdefault(item.supplier_id, []).append(item)

    settlements = []
    for supplier_id in sorted(by_supplier):
        supplier = get_supplier(supplier_id)
        settlements.append(
            compute_period_settlement(supplier, period_start, period_end, by_supplier[supplier_id])
        )

    return {
        "period_start": _as_date(period_start).isoformat(),
        "period_end": _as_date(period_end, end=True).isoformat(),
        "suppliers": [s.to_dict() for s in settlements],
        "totals": {
            "gross_sales_cents": sum(s.gross_sales_cents for s in settlements),
            "commission_cents": sum(s.commission_cents for s in settlements),
            "payout_cents": sum(s.payout_cents for s in settlements),
            "our_margin_cents": sum(s.our_margin_cents for s in settlements),
            "items_sold": sum(s.items_sold for s in settlements),
        },
    }


# =============================================================================
# PAYOUTS
# =============================================================================

_EDITABLE_PAYOUT_FIELDS = (
    "period_start",
    "period_end",
    "gross_sales_cents",
    "commission_cents",
    "payout_cents",
    "notes",
)


def _cents(value, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{label} must be an integer amount in cents")
    return value


def _apply_payout_fields(payout: SupplierPayout, fields: dict) -> None:
    for key, value in fields.items():
        if key not in _EDITABLE_PAYOUT_FIELDS:
            raise ValidationError(f"Field {key!r} cannot be set on a payout")
        if key in ("period_start", "period_end"):
            value = _as_date(value, end=(key == "period_end"))
        elif key.endswith("_cents"):
            value = _cents(value, key)
        setattr(payout, key, value)
    if payout.period_start and payout.period_end and payout.period_end < payout.period_start:
        raise ValidationError("period_end must not be before period_start")


def get_payout(payout_id: int) -> SupplierPayout:
    payout = db.session.get(SupplierPayout, payout_id)
    if payout is None:
        raise NotFound("Payout", payout_id)
    return payout


def create_payout(
    supplier_id: int,
    period_start,
    period_end,
    *,
    gross_sales_cents: int = 0,
    commission_cents: int = 0,
    payout_cents: int = 0,
    notes: str | None = None,
) -> SupplierPayout:
    """
    Record a pending payout with caller-supplied amounts.

    Only the supplier must exist; amounts are not recomputed.
    """
    def _op():
        supplier = get_supplier(supplier_id)
        payout = SupplierPayout(supplier_id=supplier.id, status=PayoutStatus.PENDING)
        _apply_payout_fields(
            payout,
            {
                "period_start": period_start,
                "period_end": period_end,
                "gross_sales_cents": gross_sales_cents,
                "commission_cents": commission_cents,
                "payout_cents": payout_cents,
                "notes": notes,
            },
        )
        db.session.add(payout)
        db.session.flush()
        return payout

    return run_atomic(_op)


def update_payout(payout_id: int, **fields) -> SupplierPayout:
    """Edit a payout before it is paid. Paid payouts are frozen."""
    def _op():
        payout = get_payout(payout_id)
        # editable only while it can still be paid
        if not can_transition(PAYOUT_TRANSITIONS, PayoutStatus(payout.status), PayoutStatus.PAID):
            raise PayoutAlreadyPaid(payout_id)
        _apply_payout_fields(payout, fields)
        return payout

    return run_atomic(_op)


def mark_paid(payout_id: int, payment_reference: str | None = None, *, actor: str | None = None) -> SupplierPayout:
    """
    pending -> paid, once.

    Allocates the supplier invoice number (REV-000001) that document
    generation picks up.
    """
    def _op():
        payout = get_payout(payout_id)
        if not can_transition(PAYOUT_TRANSITIONS, PayoutStatus(payout.status), PayoutStatus.PAID):
            raise PayoutAlreadyPaid(payout_id)

        now = utcnow()
        result = db.session.execute(
            update(SupplierPayout)
            .where(
                SupplierPayout.id == payout_id,
                SupplierPayout.status.in_(transition_sources(PAYOUT_TRANSITIONS, PayoutStatus.PAID)),
            )
            .values(status=PayoutStatus.PAID.value, paid_at=now)
        )
        if result.rowcount != 1:
            raise PayoutAlreadyPaid(payout_id)
        db.session.refresh(payout)

        payout.payment_reference = payment_reference or None
        payout.invoice_number = next_document_number(
            document_type=DOC_PAYOUT_INVOICE,
            prefix=current_app.config["SILLON_PAYOUT_INVOICE_PREFIX"],
        )
        append_ledger_event(
            event_type="payout.paid",
            event_category="payouts",
            entity_type="supplier_payout",
            entity_id=payout.id,
            actor=actor,
            note=payment_reference,
            payload={
                "supplier_id": payout.supplier_id,
                "payout_cents": payout.payout_cents,
                "invoice_number": payout.invoice_number,
            },
        )
        return payout

    return run_atomic(_op)


def delete_payout(payout_id: int, *, actor: str | None = None) -> None:
    """
    Delete a payout, paid or not.

    The payout's last state is kept in a payout.deleted ledger event.
    """
    def _op():
        payout = get_payout(payout_id)
        if payout.is_paid:
            current_app.logger.warning("Deleting paid payout %s (%s)", payout.id, payout.invoice_number)
        append_ledger_event(
            event_type="payout.deleted",
            event_category="payouts",
            entity_type="supplier_payout",
            entity_id=payout.id,
            actor=actor,
            payload=payout.to_dict(),
        )
        db.session.delete(payout)

    run_atomic(_op)


def list_payouts(*, status=None, supplier_id: int | None = None) -> list[SupplierPayout]:
    q = db.session.query(SupplierPayout)
    if status is not None:
        try:
            status = coerce_enum(PayoutStatus, status, field="payout status")
        except ValueError as exc:
            raise ValidationError(str(exc)) from None
        q = q.filter(SupplierPayout.status == status.value)
    if supplier_id is not None:
        q = q.filter(SupplierPayout.supplier_id == supplier_id)
    return q.order_by(SupplierPayout.created_at.desc(), SupplierPayout.id.desc()).all()


def payout_totals() -> dict:
    """Pending and paid amounts across all suppliers."""
    rows = (
        db.session.query(SupplierPayout.status, func.coalesce(func.sum(SupplierPayout.payout_cents), 0))
        .group_by(SupplierPayout.status)
        .all()
    )
    totals = {s.value: 0 for s in PayoutStatus}
    for status, amount in rows:
        totals[status] = int(amount)
    return {
        "pending_cents": totals[PayoutStatus.PENDING.value],
        "paid_cents": totals[PayoutStatus.PAID.value],
    }
