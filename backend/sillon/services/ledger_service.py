# Overview: Append-only audit events for order and payout changes.

from __future__ import annotations

from typing import Optional

from ..extensions import db
from ..models import LedgerEvent
"""
Audit ledger invariants

- Append-only audit log for order and payout events.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the change they record.
"""


def append_ledger_event(
    *,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    actor: str | None = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    """
    Append one event.

    - No domain logic here.
    - No deletes/updates of existing events.
    """
    ev = LedgerEvent(
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor=actor,
        note=note[:255] if note else None,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_ledger_events(
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    event_category: str | None = None,
    limit: int = 200,
) -> list[LedgerEvent]:
    q = db.session.query(LedgerEvent)
    if entity_type is not None:
        q = q.filter(LedgerEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(LedgerEvent.entity_id == entity_id)
    if event_category is not None:
        q = q.filter(LedgerEvent.event_category == event_category)
    return q.order_by(LedgerEvent.id.desc()).limit(limit).all()
