# Overview: Stock ledger engine; the only code path that changes Product.stock.

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..errors import InsufficientStock, InvalidMovementType, InvalidQuantity, NotFound
from ..extensions import db
from ..models import Product, StockMovement
from ..models.enums import MOVEMENT_DIRECTION, SIGNED_MOVEMENT_TYPES, MovementType, coerce_enum
from .concurrency import lock_for_update, run_atomic
"""
Stock ledger invariants (authoritative)

- Every stock change is one StockMovement row; Product.stock is the cached
  running total of that ledger.
- stock_after = stock_before + signed_delta(type, quantity) on every row.
- The product write and the movement insert happen in one transaction. The
  product row is locked (FOR UPDATE) and carries a version column, so a
  writer holding a stale stock_before fails instead of losing an update.
- Movements are never edited or deleted. A cancelled sale is a new
  sale_reversal row.
- Oversell is recorded and logged, not blocked (SILLON_ALLOW_NEGATIVE_STOCK).
  stock_after is always the true value, even when negative.
- No deduplication here: callers guarantee one call per logical event.
"""


def _coerce_type(movement_type) -> MovementType:
    try:
        return coerce_enum(MovementType, movement_type, field="movement type")
    except ValueError as exc:
        raise InvalidMovementType(str(exc)) from None


def signed_delta(movement_type, quantity: int) -> int:
    """
    Stock change produced by a movement.

    Additive and subtractive types take a positive magnitude; adjustment and
    sale_adjustment take the signed change itself.
    """
    mtype = _coerce_type(movement_type)
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity("quantity must be an integer")

    if mtype in SIGNED_MOVEMENT_TYPES:
        if quantity == 0:
            raise InvalidQuantity(f"{mtype.value} quantity must be non-zero")
        return quantity

    if quantity <= 0:
        raise InvalidQuantity(f"{mtype.value} quantity must be positive")
    return MOVEMENT_DIRECTION[mtype] * quantity


def _get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFound("Product", product_id)
    return product


def apply_movement(
    product_id: int,
    movement_type,
    quantity: int,
    *,
    order_id: int | None = None,
    order_item_id: int | None = None,
    supplier_id: int | None = None,
    unit_cost_cents: int | None = None,
    reason: str | None = None,
    reference: str | None = None,
    created_by: str | None = None,
    commit: bool = True,
) -> StockMovement:
    """
    Record one stock movement and update the product's stock with it.

    Returns the new StockMovement. With commit=False the caller owns the
    transaction (order item commands fold the movement into their own unit
    of work).
    """
    mtype = _coerce_type(movement_type)
    delta = signed_delta(mtype, quantity)

    def _op():
        product = _get_product(product_id, lock=True)

        stock_before = product.stock or 0
        stock_after = stock_before + delta

        if stock_after < 0 and delta < 0:
            if not current_app.config.get("SILLON_ALLOW_NEGATIVE_STOCK", True):
                raise InsufficientStock(
                    f"{mtype.value} of {abs(delta)} would take product {product_id} "
                    f"from {stock_before} to {stock_after}"
                )
            current_app.logger.warning(
                "Oversell on product %s (%s): %s movement takes stock from %s to %s",
                product.id, product.sku, mtype.value, stock_before, stock_after,
            )

        movement = StockMovement(
            product_id=product.id,
            type=mtype.value,
            quantity=quantity,
            stock_before=stock_before,
            stock_after=stock_after,
            order_id=order_id,
            order_item_id=order_item_id,
            supplier_id=supplier_id if supplier_id is not None else product.supplier_id,
            unit_cost_cents=unit_cost_cents,
            reason=reason,
            reference=reference,
            created_by=created_by,
        )
        product.stock = stock_after
        db.session.add(movement)
        db.session.flush()
        return movement

    return run_atomic(_op, commit=commit)


def adjust_stock(
    product_id: int,
    new_stock: int,
    *,
    reason: str | None = None,
    created_by: str | None = None,
) -> StockMovement | None:
    """
    Set a product's stock to a counted value through an adjustment movement.

    Returns None when the count already matches.
    """
    if isinstance(new_stock, bool) or not isinstance(new_stock, int) or new_stock < 0:
        raise InvalidQuantity("counted stock must be a non-negative integer")

    def _op():
        product = _get_product(product_id, lock=True)
        difference = new_stock - (product.stock or 0)
        if difference == 0:
            return None
        return apply_movement(
            product_id,
            MovementType.ADJUSTMENT,
            difference,
            reason=reason or "Inventory count",
            created_by=created_by,
            commit=False,
        )

    return run_atomic(_op)


def get_stock(product_id: int) -> int:
    return _get_product(product_id).stock


def list_movements(
    *,
    product_id: int | None = None,
    order_id: int | None = None,
    movement_type=None,
    limit: int = 200,
) -> list[StockMovement]:
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if order_id is not None:
        q = q.filter(StockMovement.order_id == order_id)
    if movement_type is not None:
        q = q.filter(StockMovement.type == _coerce_type(movement_type).value)
    return q.order_by(StockMovement.id.desc()).limit(limit).all()


def list_low_stock(threshold: int | None = None) -> list[Product]:
    """Products at or below their own stock_threshold (or a global override)."""
    q = db.session.query(Product)
    if threshold is not None:
        q = q.filter(Product.stock <= threshold)
    else:
        q = q.filter(Product.stock <= Product.stock_threshold)
    return q.order_by(Product.stock.asc(), Product.id.asc()).all()


@dataclass
class LedgerReplay:
    product_id: int
    movement_count: int
    opening_stock: int | None
    replayed_stock: int | None
    current_stock: int
    problems: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.problems

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "movement_count": self.movement_count,
            "opening_stock": self.opening_stock,
            "replayed_stock": self.replayed_stock,
            "current_stock": self.current_stock,
            "consistent": self.consistent,
            "problems": list(self.problems),
        }


def replay_stock(product_id: int) -> LedgerReplay:
    """
    Rebuild a product's stock from its ledger and compare with Product.stock.

    Starts from the first movement's stock_before and applies every movement
    in creation order. Reports rows whose own arithmetic is wrong, breaks in
    the before/after chain, and a final mismatch with the stored counter.
    """
    product = _get_product(product_id)
    movements = (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )
    report = LedgerReplay(
        product_id=product_id,
        movement_count=len(movements),
        opening_stock=None,
        replayed_stock=None,
        current_stock=product.stock,
    )
    if not movements:
        return report

    running = movements[0].stock_before
    report.opening_stock = running
    for mv in movements:
        try:
            expected_delta = signed_delta(mv.type, mv.quantity)
        except (InvalidMovementType, InvalidQuantity) as exc:
            report.problems.append(f"movement {mv.id}: {exc}")
            expected_delta = mv.stock_after - mv.stock_before

        if mv.stock_after != mv.stock_before + expected_delta:
            report.problems.append(
                f"movement {mv.id}: stock_after {mv.stock_after} != "
                f"stock_before {mv.stock_before} + delta {expected_delta}"
            )
        if mv.stock_before != running:
            report.problems.append(
                f"movement {mv.id}: stock_before {mv.stock_before} does not follow previous stock_after {running}"
            )
        running = mv.stock_before + expected_delta

    report.replayed_stock = running
    if running != product.stock:
        report.problems.append(f"replayed stock {running} != product stock {product.stock}")
    return report


def verify_all_products() -> list[LedgerReplay]:
    product_ids = [row[0] for row in db.session.query(Product.id).order_by(Product.id).all()]
    return [replay_stock(pid) for pid in product_ids]
