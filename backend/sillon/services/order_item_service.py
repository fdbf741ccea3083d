# Overview: Order item lifecycle (sale, cancel, return, quantity change) and its stock movements.

"""
Order Item Lifecycle

Each item is active, cancelled or returned; cancelled and returned are
terminal. Every transition that touches stock records exactly one movement
through stock_service, inside the same transaction as the status change.

CONCURRENCY:
- Status changes are compare-and-set updates guarded by `status = 'active'`.
  Of two racing cancellations only one matches the guard; the other raises
  ItemNotActive before any stock movement is written. This is what makes
  "at most one sale_reversal per item" hold.
- After a terminal transition the parent order is re-evaluated exactly once
  (order_service.handle_item_terminal) in the same transaction.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..errors import (
    ConcurrentConflict,
    InvalidOrderStatus,
    InvalidQuantity,
    ItemNotActive,
    MissingReturnReason,
    NotFound,
    ValidationError,
)
from ..extensions import db
from ..models import Order, OrderItem, Product
from ..models.orders import REASON_MAX_LENGTH
from ..models.enums import (
    ITEM_TRANSITIONS,
    ORDER_VOID_STATUSES,
    ItemStatus,
    MovementType,
    OrderStatus,
    can_transition,
    transition_sources,
)
from ..time_utils import utcnow
from . import order_service, stock_service
from .concurrency import run_atomic


def _check_reason_length(reason: str | None) -> None:
    if reason and len(reason) > REASON_MAX_LENGTH:
        raise ValidationError(f"reason exceeds max length {REASON_MAX_LENGTH}")


def _require_positive_int(value, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidQuantity(f"{label} must be a positive integer")
    return value


def get_item(item_id: int) -> OrderItem:
    item = db.session.get(OrderItem, item_id)
    if item is None:
        raise NotFound("Order item", item_id)
    return item


# =============================================================================
# SALE
# =============================================================================

def add_item(
    order_id: int,
    product_id: int,
    quantity: int,
    unit_price_cents: int | None = None,
    *,
    title: str | None = None,
    created_by: str | None = None,
    commit: bool = True,
) -> OrderItem:
    """
    Sell `quantity` units of a product on an order.

    Snapshots sku, title, unit cost and the supplier linkage (id, type,
    consignment rate) from the catalog, so later catalog edits never change
    what this sale settles for. Records the `sale` movement and links it.
    """
    _require_positive_int(quantity, "quantity")

    def _op():
        order = db.session.get(Order, order_id)
        if order is None:
            raise NotFound("Order", order_id)
        if OrderStatus(order.status) in ORDER_VOID_STATUSES:
            raise InvalidOrderStatus(f"Cannot add items to a {order.status} order")

        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFound("Product", product_id)

        price = unit_price_cents if unit_price_cents is not None else product.selling_price_cents
        if price is None:
            raise ValidationError(f"Product {product_id} has no selling price; unit_price_cents is required")
        if isinstance(price, bool) or not isinstance(price, int) or price < 0:
            raise ValidationError("unit_price_cents must be a non-negative integer")

        supplier_type = product.supplier_type
        if supplier_type is None and product.supplier is not None:
            supplier_type = product.supplier.type

        item = OrderItem(
            order_id=order.id,
            product_id=product.id,
            sku=product.sku,
            title=title or product.title,
            quantity=quantity,
            unit_price_cents=price,
            total_price_cents=quantity * price,
            unit_cost_cents=product.cost_price_cents,
            status=ItemStatus.ACTIVE,
            supplier_id=product.supplier_id,
            supplier_type=supplier_type,
            consignment_rate=product.consignment_rate,
        )
        db.session.add(item)
        db.session.flush()

        movement = stock_service.apply_movement(
            product.id,
            MovementType.SALE,
            quantity,
            order_id=order.id,
            order_item_id=item.id,
            supplier_id=product.supplier_id,
            unit_cost_cents=product.cost_price_cents,
            reference=order.order_number,
            created_by=created_by,
            commit=False,
        )
        item.stock_movement_id = movement.id

        order_service.recalculate_totals(order)
        return item

    return run_atomic(_op, commit=commit)


# =============================================================================
# TERMINAL TRANSITIONS
# =============================================================================

def _claim_terminal(item_id: int, target: ItemStatus, values: dict) -> None:
    """
    Move an item to `target` with a compare-and-set update.

    The guard is every status ITEM_TRANSITIONS allows `target` from. Raises
    ItemNotActive when the item is already terminal or another transaction
    got there first.
    """
    result = db.session.execute(
        update(OrderItem)
        .where(
            OrderItem.id == item_id,
            OrderItem.status.in_(transition_sources(ITEM_TRANSITIONS, target)),
        )
        .values(**values)
    )
    if result.rowcount != 1:
        current = db.session.query(OrderItem.status).filter(OrderItem.id == item_id).scalar()
        raise ItemNotActive(item_id, current)


def _finish_terminal(item_id: int, target: ItemStatus, values: dict, *, reason: str | None, created_by: str | None):
    item = get_item(item_id)
    if not can_transition(ITEM_TRANSITIONS, ItemStatus(item.status), target):
        raise ItemNotActive(item_id, item.status)

    _claim_terminal(item_id, target, values)
    db.session.refresh(item)

    if item.product_id is not None:
        movement = stock_service.apply_movement(
            item.product_id,
            MovementType.SALE_REVERSAL,
            item.quantity,
            order_id=item.order_id,
            order_item_id=item.id,
            supplier_id=item.supplier_id,
            unit_cost_cents=item.unit_cost_cents,
            reason=reason,
            created_by=created_by,
            commit=False,
        )
        item.reversed_stock_movement_id = movement.id
    else:
        current_app.logger.warning(
            "Order item %s has no product; %s without stock reversal", item.id, target.value
        )

    order_service.handle_item_terminal(item.order_id, target, commit=False)
    order_service.recalculate_totals(item.order)
    return item


def cancel_item(
    item_id: int,
    *,
    reason: str | None = None,
    created_by: str | None = None,
    commit: bool = True,
) -> OrderItem:
    """
    Cancel an active item and put its quantity back in stock.

    Raises:
        ItemNotActive: item already cancelled or returned
    """
    _check_reason_length(reason)

    def _op():
        now = utcnow()
        return _finish_terminal(
            item_id,
            ItemStatus.CANCELLED,
            {"status": ItemStatus.CANCELLED.value, "cancelled_at": now},
            reason=reason or "Item cancelled",
            created_by=created_by,
        )

    return run_atomic(_op, commit=commit)


def return_item(
    item_id: int,
    reason: str,
    *,
    created_by: str | None = None,
    commit: bool = True,
) -> OrderItem:
    """
    Record a customer return: the item leaves the sale and its stock comes back.

    Raises:
        MissingReturnReason: reason is empty
        ItemNotActive: item already cancelled or returned
    """
    reason = (reason or "").strip()
    if not reason:
        raise MissingReturnReason()
    _check_reason_length(reason)

    def _op():
        now = utcnow()
        return _finish_terminal(
            item_id,
            ItemStatus.RETURNED,
            {"status": ItemStatus.RETURNED.value, "returned_at": now, "return_reason": reason},
            reason=reason,
            created_by=created_by,
        )

    return run_atomic(_op, commit=commit)


# =============================================================================
# QUANTITY CHANGE
# =============================================================================

def update_quantity(
    item_id: int,
    new_quantity: int,
    *,
    created_by: str | None = None,
    commit: bool = True,
) -> OrderItem:
    """
    Change the quantity sold on an active item.

    The stock movement is a sale_adjustment whose signed quantity is
    current - new: selling more takes more stock, selling less gives it back.
    """
    _require_positive_int(new_quantity, "new_quantity")

    def _op():
        item = get_item(item_id)
        if item.status != ItemStatus.ACTIVE.value:
            raise ItemNotActive(item_id, item.status)

        current_quantity = item.quantity
        if new_quantity == current_quantity:
            raise InvalidQuantity(f"Order item {item_id} already has quantity {current_quantity}")

        result = db.session.execute(
            update(OrderItem)
            .where(
                OrderItem.id == item_id,
                OrderItem.status == ItemStatus.ACTIVE.value,
                OrderItem.quantity == current_quantity,
            )
            .values(quantity=new_quantity, total_price_cents=new_quantity * item.unit_price_cents)
        )
        if result.rowcount != 1:
            db.session.refresh(item)
            if item.status != ItemStatus.ACTIVE.value:
                raise ItemNotActive(item_id, item.status)
            raise ConcurrentConflict(f"Order item {item_id} quantity changed concurrently to {item.quantity}")
        db.session.refresh(item)

        if item.product_id is not None:
            stock_service.apply_movement(
                item.product_id,
                MovementType.SALE_ADJUSTMENT,
                current_quantity - new_quantity,
                order_id=item.order_id,
                order_item_id=item.id,
                supplier_id=item.supplier_id,
                unit_cost_cents=item.unit_cost_cents,
                reason=f"Quantity {current_quantity} -> {new_quantity}",
                created_by=created_by,
                commit=False,
            )

        order_service.recalculate_totals(item.order)
        return item

    return run_atomic(_op, commit=commit)
