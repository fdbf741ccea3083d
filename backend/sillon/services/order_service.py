# Overview: Order status coordinator; status commands, totals and the auto-cancel cascade.

"""
Order Status Coordinator

Order.status follows pending -> confirmed -> processing -> shipped ->
delivered, with cancelled and refunded as side exits. The generic setter
trusts the operator UI (any recognized status is accepted) but cancelled and
refunded are only reachable through the reason-carrying commands.

AUTO-CANCEL:
- When an item is cancelled, the remaining active items are counted from the
  database (post-transition, never a cached count).
- Zero remaining moves the order to cancelled with a conditional update
  (`WHERE status NOT IN ('cancelled', 'refunded')`), so a second evaluation,
  sequential or concurrent, changes nothing and is not an error.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, update

from ..errors import InvalidOrderStatus, MissingReason, NotFound, ValidationError
from ..extensions import db
from ..models import Order, OrderItem
from ..models.orders import REASON_MAX_LENGTH
from ..models.enums import (
    ORDER_REASON_STATUSES,
    ORDER_STATUS_TIMESTAMPS,
    ORDER_TERMINAL_STATUSES,
    ItemStatus,
    OrderStatus,
    PaymentStatus,
    coerce_enum,
)
from ..time_utils import utcnow
from . import order_item_service
from .concurrency import run_atomic
from .document_service import DOC_CREDIT_NOTE, DOC_ORDER, next_document_number
from .ledger_service import append_ledger_event

AUTO_CANCEL_REASON = "All items cancelled"


def _coerce_order_status(value) -> OrderStatus:
    try:
        return coerce_enum(OrderStatus, value, field="order status")
    except ValueError as exc:
        raise InvalidOrderStatus(str(exc)) from None


def _coerce_payment_status(value) -> PaymentStatus:
    try:
        return coerce_enum(PaymentStatus, value, field="payment status")
    except ValueError as exc:
        raise ValidationError(str(exc)) from None


def _check_reason_length(reason: str) -> str:
    if len(reason) > REASON_MAX_LENGTH:
        raise ValidationError(f"reason exceeds max length {REASON_MAX_LENGTH}")
    return reason


def _require_reason(reason: str | None) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise MissingReason()
    return _check_reason_length(reason)


def _require_non_terminal(order: Order, action: str) -> None:
    status = OrderStatus(order.status)
    if status in ORDER_TERMINAL_STATUSES:
        raise InvalidOrderStatus(f"Order {order.id} is {status.value} and cannot be {action}")


def _non_negative_cents(value, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{label} must be a non-negative integer")
    return value


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order", order_id)
    return order


def list_orders(*, status=None, limit: int = 100) -> list[Order]:
    q = db.session.query(Order)
    if status is not None:
        q = q.filter(Order.status == _coerce_order_status(status).value)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def _record(order: Order, event_type: str, *, note: str | None = None, payload: dict | None = None, actor: str | None = None):
    append_ledger_event(
        event_type=event_type,
        event_category="orders",
        entity_type="order",
        entity_id=order.id,
        actor=actor,
        note=note,
        payload=payload,
    )


# =============================================================================
# TOTALS
# =============================================================================

def recalculate_totals(order: Order) -> Order:
    """
    subtotal = sum of active item totals
    total = subtotal - discount + shipping + tax
    """
    subtotal = (
        db.session.query(func.coalesce(func.sum(OrderItem.total_price_cents), 0))
        .filter(OrderItem.order_id == order.id, OrderItem.status == ItemStatus.ACTIVE.value)
        .scalar()
    )
    order.subtotal_cents = int(subtotal)
    order.total_cents = (
        order.subtotal_cents
        - (order.discount_cents or 0)
        + (order.shipping_cents or 0)
        + (order.tax_cents or 0)
    )
    return order


# =============================================================================
# CREATION
# =============================================================================

def create_order(
    items: list[dict],
    *,
    customer_name: str | None = None,
    discount_cents: int = 0,
    shipping_cents: int = 0,
    tax_cents: int = 0,
    payment_status=PaymentStatus.PENDING,
    created_by: str | None = None,
) -> Order:
    """
    Create a pending order and sell its items.

    `items` is a list of {"product_id", "quantity", "unit_price_cents"?}.
    The order number comes from the CMD document sequence.
    """
    pay_status = _coerce_payment_status(payment_status)
    discount_cents = _non_negative_cents(discount_cents, "discount_cents")
    shipping_cents = _non_negative_cents(shipping_cents, "shipping_cents")
    tax_cents = _non_negative_cents(tax_cents, "tax_cents")

    def _op():
        order = Order(
            order_number=next_document_number(
                document_type=DOC_ORDER,
                prefix=current_app.config["SILLON_ORDER_NUMBER_PREFIX"],
            ),
            customer_name=customer_name,
            status=OrderStatus.PENDING,
            payment_status=pay_status,
            discount_cents=discount_cents,
            shipping_cents=shipping_cents,
            tax_cents=tax_cents,
        )
        if pay_status == PaymentStatus.PAID:
            order.paid_at = utcnow()
        db.session.add(order)
        db.session.flush()

        for line in items or []:
            order_item_service.add_item(
                order.id,
                line.get("product_id"),
                line.get("quantity"),
                line.get("unit_price_cents"),
                title=line.get("title"),
                created_by=created_by,
                commit=False,
            )

        recalculate_totals(order)
        _record(order, "order.created", actor=created_by, payload={"items": len(items or [])})
        return order

    return run_atomic(_op)


# =============================================================================
# STATUS COMMANDS
# =============================================================================

def _stamp(order: Order, status: OrderStatus, now) -> None:
    attr = ORDER_STATUS_TIMESTAMPS.get(status)
    if attr:
        setattr(order, attr, now)


def set_status(order_id: int, new_status, *, actor: str | None = None) -> Order:
    """
    Generic status setter for the operator UI.

    Accepts any recognized status except cancelled/refunded, which need
    cancel_order/refund_order. Stamps the matching transition timestamp.
    """
    status = _coerce_order_status(new_status)
    if status in ORDER_REASON_STATUSES:
        raise InvalidOrderStatus(f"Status {status.value!r} requires a dedicated command with a reason")

    def _op():
        order = get_order(order_id)
        previous = order.status
        now = utcnow()
        order.status = status
        _stamp(order, status, now)
        order.updated_at = now
        _record(order, "order.status_changed", actor=actor, payload={"from": previous, "to": status.value})
        return order

    return run_atomic(_op)


def ship_order(
    order_id: int,
    tracking_number: str | None = None,
    tracking_url: str | None = None,
    *,
    actor: str | None = None,
) -> Order:
    def _op():
        order = get_order(order_id)
        previous = order.status
        now = utcnow()
        order.status = OrderStatus.SHIPPED
        order.shipped_at = now
        order.tracking_number = tracking_number or None
        order.tracking_url = tracking_url or None
        order.updated_at = now
        _record(
            order,
            "order.shipped",
            actor=actor,
            payload={"from": previous, "tracking_number": order.tracking_number},
        )
        return order

    return run_atomic(_op)


def cancel_order(order_id: int, reason: str, *, actor: str | None = None) -> Order:
    """
    Cancel an order explicitly.

    Every still-active item is cancelled (one sale_reversal each), then the
    order is marked cancelled. Cancelling an already cancelled order is a
    no-op; delivered and refunded orders are terminal and cannot be cancelled.
    """
    reason = _require_reason(reason)

    def _op():
        order = get_order(order_id)
        if order.status == OrderStatus.CANCELLED.value:
            return order
        _require_non_terminal(order, "cancelled")

        for item in list(order.active_items):
            order_item_service.cancel_item(item.id, reason=reason, created_by=actor, commit=False)

        db.session.refresh(order)
        if order.status != OrderStatus.CANCELLED.value:
            now = utcnow()
            order.status = OrderStatus.CANCELLED
            order.cancelled_at = now
            order.updated_at = now
        order.cancel_reason = reason
        _record(order, "order.cancelled", actor=actor, note=reason)
        return order

    return run_atomic(_op)


def refund_order(order_id: int, reason: str | None = None, *, actor: str | None = None) -> Order:
    """
    Refund an order: status and payment status become refunded.

    A credit note number (AV-000001) is allocated here; rendering the credit
    note is someone else's job. Items and stock are left as they are.
    Refunding again is a no-op; delivered and cancelled orders are terminal.
    """
    reason = _check_reason_length((reason or "").strip()) or None

    def _op():
        order = get_order(order_id)
        if order.status == OrderStatus.REFUNDED.value:
            return order
        _require_non_terminal(order, "refunded")

        now = utcnow()
        previous = order.status
        order.status = OrderStatus.REFUNDED
        order.payment_status = PaymentStatus.REFUNDED
        order.refunded_at = now
        order.updated_at = now
        if reason:
            order.refund_reason = reason
        if not order.credit_note_number:
            order.credit_note_number = next_document_number(
                document_type=DOC_CREDIT_NOTE,
                prefix=current_app.config["SILLON_CREDIT_NOTE_PREFIX"],
            )
        _record(
            order,
            "order.refunded",
            actor=actor,
            note=order.refund_reason,
            payload={"from": previous, "credit_note_number": order.credit_note_number},
        )
        return order

    return run_atomic(_op)


def request_refund(order_id: int, reason: str, *, actor: str | None = None) -> Order:
    reason = _require_reason(reason)

    def _op():
        order = get_order(order_id)
        order.refund_requested = True
        order.refund_reason = reason
        order.updated_at = utcnow()
        _record(order, "order.refund_requested", actor=actor, note=reason)
        return order

    return run_atomic(_op)


def set_payment_status(order_id: int, payment_status, *, actor: str | None = None) -> Order:
    status = _coerce_payment_status(payment_status)

    def _op():
        order = get_order(order_id)
        previous = order.payment_status
        now = utcnow()
        order.payment_status = status
        if status == PaymentStatus.PAID and order.paid_at is None:
            order.paid_at = now
        order.updated_at = now
        _record(
            order,
            "order.payment_status_changed",
            actor=actor,
            payload={"from": previous, "to": status.value},
        )
        return order

    return run_atomic(_op)


# =============================================================================
# AUTO-CANCEL CASCADE
# =============================================================================

def handle_item_terminal(order_id: int, item_status, *, commit: bool = True) -> bool:
    """
    Re-evaluate an order after one of its items left `active`.

    Only a cancellation can auto-cancel the order; returned items leave the
    order as it is, and so do terminal orders (delivered, cancelled,
    refunded). Returns True when this call moved the order to cancelled.
    """
    status = coerce_enum(ItemStatus, item_status, field="item status")
    if status != ItemStatus.CANCELLED:
        return False

    def _op():
        remaining = (
            db.session.query(func.count(OrderItem.id))
            .filter(OrderItem.order_id == order_id, OrderItem.status == ItemStatus.ACTIVE.value)
            .scalar()
        )
        if remaining:
            return False

        now = utcnow()
        result = db.session.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status.notin_([s.value for s in ORDER_TERMINAL_STATUSES]),
            )
            .values(
                status=OrderStatus.CANCELLED.value,
                cancelled_at=now,
                updated_at=now,
                cancel_reason=AUTO_CANCEL_REASON,
            )
        )
        if result.rowcount != 1:
            return False

        order = get_order(order_id)
        db.session.refresh(order)
        _record(order, "order.auto_cancelled", note=AUTO_CANCEL_REASON)
        current_app.logger.info("Order %s auto-cancelled: no active items left", order.order_number)
        return True

    return run_atomic(_op, commit=commit)
