# Overview: End-of-day cleanup of tokens that never got settled.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import func, update

from ..extensions import db
from ..models import QueueToken
from ..signals import notify_board_changed
from queuepos.time_utils import utcnow
from . import queue_workflow as workflow
from .concurrency import begin_write_transaction, run_with_retry
from .ledger_service import append_ledger_event
from .shop_service import require_shop, resolve_requested_business_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayCloseResult:
    shop_id: int
    business_date: date
    pending_count: int
    cancelled_count: int
    pending_total_cents: int

    def to_dict(self) -> dict:
        return {
            "shop_id": self.shop_id,
            "business_date": self.business_date.isoformat(),
            "pending_count": self.pending_count,
            "cancelled_count": self.cancelled_count,
            "pending_total_cents": self.pending_total_cents,
        }


def close_day(
    shop_id: int,
    business_date: str | date | None = None,
    *,
    actor_user_id: int | None = None,
    scope_shop_id: int | None = None,
    now: datetime | None = None,
) -> DayCloseResult:
    """
    Cancel every unsettled token of one business day that is not already cancelled.

    Releases their reservations. Running it again for the same day finds
    nothing left and reports zero.
    """
    def _op():
        begin_write_transaction()
        at = now or utcnow()
        shop = require_shop(shop_id, scope_shop_id)
        day = resolve_requested_business_date(shop, business_date, at)

        open_filter = (
            QueueToken.shop_id == shop.id,
            QueueToken.business_date == day,
            QueueToken.settled_sale_id.is_(None),
            QueueToken.status != workflow.CANCELLED,
        )
        pending_count, pending_total = (
            db.session.query(
                func.count(QueueToken.id),
                func.coalesce(func.sum(QueueToken.total_cents), 0),
            )
            .filter(*open_filter)
            .one()
        )

        cancelled = 0
        if pending_count:
            result = db.session.execute(
                update(QueueToken)
                .where(*open_filter)
                .values(
                    status=workflow.CANCELLED,
                    cancelled_at=func.coalesce(QueueToken.cancelled_at, at),
                )
                .execution_options(synchronize_session=False)
            )
            cancelled = result.rowcount or 0

        if cancelled:
            append_ledger_event(
                shop_id=shop.id,
                event_type="queue_day.closed",
                entity_type="shop",
                entity_id=shop.id,
                actor_user_id=actor_user_id,
                occurred_at=at,
                note=f"Closed business day {day.isoformat()}",
                payload={"cancelled_count": cancelled, "pending_total_cents": int(pending_total or 0)},
            )
        db.session.commit()

        return DayCloseResult(
            shop_id=shop.id,
            business_date=day,
            pending_count=int(pending_count or 0),
            cancelled_count=cancelled,
            pending_total_cents=int(pending_total or 0),
        )

    result = run_with_retry(_op)
    if result.cancelled_count:
        logger.info(
            "Closed business day %s for shop %s: %d token(s) cancelled",
            result.business_date, result.shop_id, result.cancelled_count,
        )
        notify_board_changed(result.shop_id, "day.closed", business_date=result.business_date.isoformat())
    return result
