# Overview: ORM listeners that keep the stock ledger and audit log append-only.

"""
Append-only enforcement at the ORM layer.

StockMovement and LedgerEvent rows are facts. Once flushed they are never
updated or deleted; a correction is a new row. These listeners intercept
UPDATE/DELETE before any SQL is sent and abort the flush with
ImmutableRecordError.

Bulk `update()`/`delete()` statements bypass mapper events; the services
never issue those against these tables.

Usage (done by create_app):

    from sillon.db_guards import register_immutability_listeners
    register_immutability_listeners()
"""

from __future__ import annotations

import logging

from sqlalchemy import event, inspect

from .errors import ImmutableRecordError
from .models import LedgerEvent, StockMovement

logger = logging.getLogger(__name__)

_PROTECTED_MODELS = (StockMovement, LedgerEvent)


def _has_column_changes(target) -> bool:
    # before_update fires for every dirty instance, even without net changes
    state = inspect(target)
    return any(state.attrs[attr.key].history.has_changes() for attr in state.mapper.column_attrs)


def _block_update(mapper, connection, target):
    if not _has_column_changes(target):
        return
    logger.error("blocked update of %s id=%s", type(target).__name__, target.id)
    raise ImmutableRecordError(f"{type(target).__name__} {target.id} is append-only and cannot be modified")


def _block_delete(mapper, connection, target):
    logger.error("blocked delete of %s id=%s", type(target).__name__, target.id)
    raise ImmutableRecordError(f"{type(target).__name__} {target.id} is append-only and cannot be deleted")


def register_immutability_listeners() -> None:
    """Install the listeners. Safe to call repeatedly."""
    for model in _PROTECTED_MODELS:
        if not event.contains(model, "before_update", _block_update):
            event.listen(model, "before_update", _block_update)
        if not event.contains(model, "before_delete", _block_delete):
            event.listen(model, "before_delete", _block_delete)
