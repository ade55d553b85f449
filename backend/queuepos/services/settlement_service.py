# Overview: Exactly-once conversion of a queue token into a sale.

"""
Queue Settlement

INVARIANT: a token yields at most one sale, no matter how many times or
from how many terminals settle is called.

Mechanism (single transaction):
1. Re-read the token under a write lock.
2. Already settled: return the existing sale id, nothing is written.
3. Create the sale (commit=False) from the token's item snapshots.
4. Compare-and-set settled_sale_id on the condition that it is still NULL.
5. Lost the race: roll the whole unit back (the sale disappears with it)
   and report the winner's sale id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, update

from ..extensions import db
from ..errors import IllegalTransition, NotFoundError, ValidationError
from ..models import QueueToken
from ..signals import notify_board_changed
from queuepos.time_utils import utcnow
from . import queue_workflow as workflow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
from .queue_token_service import NOTE_MAX, clean_optional_text
from .sales_service import SaleLineInput, create_sale

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    token_id: int
    sale_id: int
    already_settled: bool

    def to_dict(self) -> dict:
        return {
            "token_id": self.token_id,
            "sale_id": self.sale_id,
            "already_settled": self.already_settled,
        }


def _load_locked(token_id: int) -> QueueToken | None:
    return lock_for_update(
        db.session.query(QueueToken).filter(QueueToken.id == token_id)
    ).populate_existing().first()


def settle(
    token_id: int,
    *,
    note: str | None = None,
    payment_method: str = "cash",
    actor_user_id: int | None = None,
    scope_shop_id: int | None = None,
    now: datetime | None = None,
) -> SettlementResult:
    def _op():
        begin_write_transaction()
        at = now or utcnow()

        token = _load_locked(token_id)
        if not token or (scope_shop_id is not None and token.shop_id != scope_shop_id):
            raise NotFoundError("Queue token not found", details={"token_id": token_id})

        if token.settled_sale_id:
            existing_sale_id = token.settled_sale_id
            db.session.rollback()
            return SettlementResult(token_id=token_id, sale_id=existing_sale_id, already_settled=True)

        if workflow.normalize_status(token.status) == workflow.CANCELLED:
            raise IllegalTransition(
                "Cancelled token cannot be settled",
                details={"current_status": workflow.CANCELLED},
            )
        if not token.items:
            raise ValidationError("Queue token has no items to settle", details={"token_id": token_id})

        lines = [
            SaleLineInput(
                product_id=item.product_id,
                name=item.product_name_snapshot,
                unit_price_cents=item.unit_price_cents,
                quantity=item.quantity,
            )
            for item in token.items
        ]
        sale = create_sale(
            token.shop_id,
            lines,
            payment_method=payment_method,
            note=clean_optional_text(note, NOTE_MAX) or token.note,
            user_id=actor_user_id,
            commit=False,
        )

        result = db.session.execute(
            update(QueueToken)
            .where(
                QueueToken.id == token.id,
                QueueToken.settled_sale_id.is_(None),
                QueueToken.status != workflow.CANCELLED,
            )
            .values(
                settled_sale_id=sale.id,
                settled_at=at,
                status=workflow.DONE,
                served_at=func.coalesce(QueueToken.served_at, at),
            )
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            db.session.rollback()
            winner = db.session.get(QueueToken, token_id)
            if winner is not None and winner.settled_sale_id:
                logger.info("Lost settlement race for queue token %s; keeping sale %s", token_id, winner.settled_sale_id)
                return SettlementResult(token_id=token_id, sale_id=winner.settled_sale_id, already_settled=True)
            raise IllegalTransition(
                "Queue token changed during settlement",
                details={"current_status": winner.status if winner else None},
            )

        append_ledger_event(
            shop_id=token.shop_id,
            event_type="queue_token.settled",
            entity_type="queue_token",
            entity_id=token.id,
            actor_user_id=actor_user_id,
            token_id=token.id,
            sale_id=sale.id,
            occurred_at=at,
            note=f"Token {token.token_label} -> {sale.document_number}",
        )
        db.session.commit()
        return SettlementResult(token_id=token_id, sale_id=sale.id, already_settled=False)

    result = run_with_retry(_op)
    if result.already_settled:
        logger.info("Queue token %s already settled as sale %s", token_id, result.sale_id)
    else:
        logger.info("Queue token %s settled as sale %s", token_id, result.sale_id)
        token = db.session.get(QueueToken, token_id)
        notify_board_changed(token.shop_id, "token.settled", token_id=token_id, sale_id=result.sale_id)
    return result
