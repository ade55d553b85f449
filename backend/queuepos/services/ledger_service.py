# Overview: Append-only audit ledger for queue and sale events.

from __future__ import annotations

import json
from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import LedgerEvent
from queuepos.time_utils import utcnow
"""
Ledger Invariants

- Append-only audit log for cross-cutting domain events.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the change they record.
- occurred_at is business time (defaults to now); created_at is system time (DB default).
"""


def append_ledger_event(
    *,
    shop_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    token_id: int | None = None,
    sale_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: dict | None = None,
) -> LedgerEvent:
    """Stage a ledger row in the current transaction (flush, no commit)."""
    ev = LedgerEvent(
        shop_id=shop_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        token_id=token_id,
        sale_id=sale_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_ledger_events(shop_id: int, *, token_id: int | None = None, limit: int = 100) -> list[LedgerEvent]:
    q = db.session.query(LedgerEvent).filter(LedgerEvent.shop_id == shop_id)
    if token_id is not None:
        q = q.filter(LedgerEvent.token_id == token_id)
    return q.order_by(LedgerEvent.id.asc()).limit(limit).all()
