# Overview: Typed error taxonomy for the settlement core; routes map these to JSON responses.

"""
Settlement core errors.

Every command failure is one of these types. Each carries a machine-readable
`code` and the HTTP status the JSON adapter answers with. Callers catch by
type, never by message.

    SettlementError
    +-- NotFound
    +-- ValidationError
    |   +-- InvalidMovementType
    |   +-- InvalidQuantity
    |   +-- MissingReturnReason
    |   +-- MissingReason
    |   +-- InvalidOrderStatus
    +-- StateError
    |   +-- ItemNotActive
    |   +-- PayoutAlreadyPaid
    |   +-- InsufficientStock
    +-- ConcurrentConflict
    +-- ImmutableRecordError
"""

from __future__ import annotations


class SettlementError(Exception):
    """Base class for every error raised by the settlement core."""

    code = "settlement_error"
    http_status = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotFound(SettlementError):
    """Referenced record does not exist."""

    code = "not_found"
    http_status = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(SettlementError):
    """400-level input problem."""

    code = "validation_error"


class InvalidMovementType(ValidationError):
    """Unrecognized stock movement type."""

    code = "invalid_movement_type"


class InvalidQuantity(ValidationError):
    """Quantity is not valid for this operation."""

    code = "invalid_quantity"


class MissingReturnReason(ValidationError):
    """A return requires a non-empty reason."""

    code = "missing_return_reason"


class MissingReason(ValidationError):
    """Cancellation and refund require a reason."""

    code = "missing_reason"


class InvalidOrderStatus(ValidationError):
    """Order status is unknown or needs a dedicated command."""

    code = "invalid_order_status"


class StateError(SettlementError):
    """409-level business rule conflict with the record's current state."""

    code = "state_error"
    http_status = 409


class ItemNotActive(StateError):
    """Order item is no longer active."""

    code = "item_not_active"

    def __init__(self, item_id, status: str | None = None):
        detail = f" (status: {status})" if status else ""
        super().__init__(f"Order item {item_id} is not active{detail}")
        self.item_id = item_id
        self.status = status


class PayoutAlreadyPaid(StateError):
    """Supplier payout has already been paid."""

    code = "payout_already_paid"

    def __init__(self, payout_id):
        super().__init__(f"Payout {payout_id} is already paid")
        self.payout_id = payout_id


class InsufficientStock(StateError):
    """Movement would take stock below zero."""

    code = "insufficient_stock"


class ConcurrentConflict(SettlementError):
    """Another writer changed the record first; re-read and retry."""

    code = "concurrent_conflict"
    http_status = 409


class ImmutableRecordError(SettlementError):
    """Append-only record cannot be modified or deleted."""

    code = "immutable_record"
    http_status = 500
