"""
Closed status vocabularies and their transition tables.

Statuses are persisted as plain strings; models validate every assignment
against these enums so an unknown value fails at construction time instead of
slipping through as a silent no-op.
"""

from __future__ import annotations

import enum


class MovementType(str, enum.Enum):
    PURCHASE = "purchase"
    SALE = "sale"
    RETURN = "return"
    ADJUSTMENT = "adjustment"
    LOSS = "loss"
    CONSIGNMENT_IN = "consignment_in"
    CONSIGNMENT_OUT = "consignment_out"
    SALE_REVERSAL = "sale_reversal"
    SALE_ADJUSTMENT = "sale_adjustment"


# +1 adds to stock, -1 removes, 0 means the quantity already carries its sign
MOVEMENT_DIRECTION = {
    MovementType.PURCHASE: 1,
    MovementType.RETURN: 1,
    MovementType.CONSIGNMENT_IN: 1,
    MovementType.SALE_REVERSAL: 1,
    MovementType.SALE: -1,
    MovementType.LOSS: -1,
    MovementType.CONSIGNMENT_OUT: -1,
    MovementType.ADJUSTMENT: 0,
    MovementType.SALE_ADJUSTMENT: 0,
}

SIGNED_MOVEMENT_TYPES = frozenset(t for t, d in MOVEMENT_DIRECTION.items() if d == 0)


class ItemStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    RETURNED = "returned"


ITEM_TRANSITIONS = {
    ItemStatus.ACTIVE: frozenset({ItemStatus.CANCELLED, ItemStatus.RETURNED}),
    ItemStatus.CANCELLED: frozenset(),
    ItemStatus.RETURNED: frozenset(),
}


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


ORDER_TERMINAL_STATUSES = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)

# Statuses that only the reason-carrying commands may set
ORDER_REASON_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})

# Orders in these statuses no longer count towards supplier settlements
ORDER_VOID_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})

ORDER_STATUS_TIMESTAMPS = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.PROCESSING: "processing_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.REFUNDED: "refunded_at",
}


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"
    REFUNDED = "refunded"
    FAILED = "failed"


class SupplierType(str, enum.Enum):
    CONSIGNMENT = "consignment"
    PURCHASE = "purchase"
    OWN = "own"
    DEPOT_VENTE = "depot_vente"


# Suppliers paid a share of each sale rather than upfront
COMMISSION_SUPPLIER_TYPES = frozenset({SupplierType.CONSIGNMENT, SupplierType.DEPOT_VENTE})


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


PAYOUT_TRANSITIONS = {
    PayoutStatus.PENDING: frozenset({PayoutStatus.PAID}),
    PayoutStatus.PAID: frozenset(),
}


def coerce_enum(enum_cls, value, *, field: str):
    """
    Return `value` as a member of `enum_cls`.

    Raises ValueError for anything outside the vocabulary; callers translate it
    into the matching domain error.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"invalid {field} {value!r} (expected one of: {allowed})") from None


def can_transition(table, current, target) -> bool:
    """True when `table` allows current -> target."""
    return target in table.get(current, frozenset())


def transition_sources(table, target) -> list[str]:
    """Stored status values from which `target` is reachable, for compare-and-set guards."""
    return sorted(status.value for status, targets in table.items() if target in targets)
