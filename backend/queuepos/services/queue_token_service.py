# Overview: Queue token intake, board snapshot and workflow status changes.

"""
Queue Token Service

UNIT OF WORK:
Token creation is one transaction: lock the requested product rows,
recompute their reservations, allocate the day's next number, insert the
token and its items, append the ledger event, commit. Any failure rolls
every step back, so there is never a partial token nor a consumed number
without a token.

STATUS CHANGES:
Updates are compare-and-set on (status, settled_sale_id IS NULL); a token
that moved underneath the caller is reported as an IllegalTransition
rather than silently overwritten.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime

from sqlalchemy import func, update

from ..extensions import db
from ..errors import (
    CapacityConflict,
    IllegalTransition,
    NotFoundError,
    QueueDisabledError,
    ValidationError,
)
from ..models import Product, QueueToken, QueueTokenItem, Shop
from ..signals import notify_board_changed
from queuepos.time_utils import utcnow
from . import queue_workflow as workflow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
from .reservation_service import available_stock, reserved_quantities
from .sequence_service import allocate_token_number
from .shop_service import current_business_date, require_shop, resolve_requested_business_date

logger = logging.getLogger(__name__)

CUSTOMER_NAME_MAX = 80
CUSTOMER_PHONE_MAX = 20
NOTE_MAX = 200


def clean_optional_text(value: str | None, max_length: int = 120) -> str | None:
    trimmed = (value or "").strip()
    if not trimmed:
        return None
    return trimmed[:max_length]


def clean_phone(value: str | None) -> str | None:
    cleaned = re.sub(r"[^\d+]", "", (value or "").strip())[:CUSTOMER_PHONE_MAX]
    return cleaned or None


def _parse_quantity(raw) -> int:
    if isinstance(raw, bool):
        raise ValueError
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
        return int(raw.strip())
    raise ValueError


def normalize_token_items(items) -> list[tuple[int, int]]:
    """
    Validate order lines and merge repeats of the same product.

    Returns [(product_id, quantity), ...] in first-seen order.
    """
    merged: dict[int, int] = {}
    for index, item in enumerate(items or []):
        if not isinstance(item, dict):
            raise ValidationError("Each item must be an object", details={"index": index})
        try:
            product_id = int(item.get("product_id"))
        except (TypeError, ValueError):
            raise ValidationError("product_id is required for every item", details={"index": index})
        try:
            quantity = _parse_quantity(item.get("quantity"))
        except ValueError:
            raise ValidationError("quantity must be a whole number", details={"index": index})
        if quantity <= 0:
            raise ValidationError("quantity must be at least 1", details={"index": index, "product_id": product_id})
        merged[product_id] = merged.get(product_id, 0) + quantity

    if not merged:
        raise ValidationError("At least one item is required")
    return list(merged.items())


def _require_queue_enabled(shop: Shop) -> None:
    if not shop.queue_token_enabled:
        raise QueueDisabledError("Queue token feature is disabled for this shop", details={"shop_id": shop.id})


def _check_capacity(products: dict[int, Product], lines: list[tuple[int, int]], reserved: dict[int, int]) -> None:
    for product_id, quantity in lines:
        product = products[product_id]
        available = available_stock(product, reserved)
        if available is None:
            continue
        if quantity > available:
            raise CapacityConflict(
                f'Only {available} of "{product.name}" available right now; cannot take {quantity}',
                details={
                    "product_id": product.id,
                    "product_name": product.name,
                    "requested_quantity": quantity,
                    "available_quantity": available,
                },
            )


def create_token(
    shop_id: int,
    items,
    *,
    order_type: str | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    note: str | None = None,
    actor_user_id: int | None = None,
    scope_shop_id: int | None = None,
    now: datetime | None = None,
) -> QueueToken:
    """Accept a new pending order into the shop's queue."""
    lines = normalize_token_items(items)
    product_ids = [product_id for product_id, _ in lines]
    customer_name = clean_optional_text(customer_name, CUSTOMER_NAME_MAX)
    customer_phone = clean_phone(customer_phone)
    note = clean_optional_text(note, NOTE_MAX)

    def _op():
        begin_write_transaction()
        created_at = now or utcnow()

        shop = require_shop(shop_id, scope_shop_id)
        _require_queue_enabled(shop)
        profile = workflow.profile_for_shop(shop)

        # Ordered locking keeps concurrent creators from deadlocking
        products = {
            p.id: p
            for p in lock_for_update(
                db.session.query(Product)
                .filter(
                    Product.id.in_(product_ids),
                    Product.shop_id == shop.id,
                    Product.is_active == True,  # noqa: E712
                )
                .order_by(Product.id)
            ).populate_existing().all()
        }
        missing = [pid for pid in product_ids if pid not in products]
        if missing:
            raise NotFoundError(
                "One or more products are not active in this shop",
                details={"product_ids": missing},
            )

        _check_capacity(products, lines, reserved_quantities(shop.id, product_ids))

        business_date = current_business_date(shop, created_at)
        token_no, token_label = allocate_token_number(shop.id, business_date, shop.queue_token_prefix)

        token = QueueToken(
            shop_id=shop.id,
            token_no=token_no,
            token_label=token_label,
            business_date=business_date,
            order_type=workflow.normalize_order_type(order_type, profile),
            customer_name=customer_name,
            customer_phone=customer_phone,
            note=note,
            status=workflow.WAITING,
            total_cents=0,
            created_by_user_id=actor_user_id,
        )
        db.session.add(token)
        db.session.flush()

        total_cents = 0
        for product_id, quantity in lines:
            product = products[product_id]
            line_total = product.price_cents * quantity
            total_cents += line_total
            db.session.add(QueueTokenItem(
                token_id=token.id,
                product_id=product.id,
                product_name_snapshot=product.name,
                quantity=quantity,
                unit_price_cents=product.price_cents,
                line_total_cents=line_total,
            ))
        token.total_cents = total_cents

        append_ledger_event(
            shop_id=shop.id,
            event_type="queue_token.created",
            entity_type="queue_token",
            entity_id=token.id,
            actor_user_id=actor_user_id,
            token_id=token.id,
            occurred_at=created_at,
            note=f"Token {token_label}",
            payload={"items": [[pid, qty] for pid, qty in lines], "total_cents": total_cents},
        )

        db.session.commit()
        return token

    token = run_with_retry(_op)
    logger.info("Queue token %s created for shop %s", token.token_label, token.shop_id)
    notify_board_changed(token.shop_id, "token.created", token_id=token.id)
    return token


def get_token(token_id: int, scope_shop_id: int | None = None) -> QueueToken:
    token = db.session.get(QueueToken, token_id) if token_id else None
    if not token or (scope_shop_id is not None and token.shop_id != scope_shop_id):
        raise NotFoundError("Queue token not found", details={"token_id": token_id})
    return token


def serialize_token(token: QueueToken, profile: workflow.WorkflowProfile) -> dict:
    data = token.to_dict()
    data["status_label"] = workflow.status_label(token.status, profile)
    data["order_type_label"] = workflow.order_type_label(token.order_type, profile)
    data["next_action"] = None if token.settled_sale_id else workflow.next_action_label(token.status, profile)
    return data


def get_board_snapshot(
    shop_id: int,
    business_date: str | date | None = None,
    *,
    scope_shop_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    """All tokens of one business day: active ones first, then by token number."""
    shop = require_shop(shop_id, scope_shop_id)
    day = resolve_requested_business_date(shop, business_date, now)
    profile = workflow.profile_for_shop(shop)

    tokens = (
        db.session.query(QueueToken)
        .filter(QueueToken.shop_id == shop.id, QueueToken.business_date == day)
        .order_by(QueueToken.token_no.asc(), QueueToken.created_at.asc())
        .all()
    )
    tokens.sort(key=lambda t: (workflow.status_sort_rank(t.status), t.token_no))

    return {
        "shop": shop.to_dict(),
        "workflow": profile.to_dict(),
        "business_date": day.isoformat(),
        "tokens": [serialize_token(t, profile) for t in tokens],
    }


def _status_values(status: str, at: datetime) -> dict:
    values = {"status": status}
    field = workflow.STATUS_TIMESTAMP_FIELDS.get(status)
    if field:
        column = getattr(QueueToken, field)
        values[field] = func.coalesce(column, at)
    return values


def call_next(
    shop_id: int,
    business_date: str | date | None = None,
    *,
    actor_user_id: int | None = None,
    scope_shop_id: int | None = None,
    now: datetime | None = None,
) -> QueueToken | None:
    """
    Move the lowest-numbered WAITING token of the day to CALLED.

    Returns None when nobody is waiting. If another caller grabs the same
    token first, the next waiting one is tried.
    """
    def _op():
        begin_write_transaction()
        at = now or utcnow()
        shop = require_shop(shop_id, scope_shop_id)
        _require_queue_enabled(shop)
        profile = workflow.profile_for_shop(shop)
        if workflow.next_action(workflow.WAITING, profile) != workflow.CALLED:
            raise IllegalTransition(
                f"The {profile.name} workflow does not call tokens",
                details={"current_status": workflow.WAITING, "requested_status": workflow.CALLED},
            )
        day = resolve_requested_business_date(shop, business_date, at)

        while True:
            candidate = (
                db.session.query(QueueToken.id)
                .filter(
                    QueueToken.shop_id == shop.id,
                    QueueToken.business_date == day,
                    QueueToken.status == workflow.WAITING,
                    QueueToken.settled_sale_id.is_(None),
                )
                .order_by(QueueToken.token_no.asc(), QueueToken.created_at.asc(), QueueToken.id.asc())
                .first()
            )
            if candidate is None:
                db.session.rollback()
                return None

            result = db.session.execute(
                update(QueueToken)
                .where(
                    QueueToken.id == candidate.id,
                    QueueToken.status == workflow.WAITING,
                    QueueToken.settled_sale_id.is_(None),
                )
                .values(**_status_values(workflow.CALLED, at))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                break

        append_ledger_event(
            shop_id=shop.id,
            event_type="queue_token.called",
            entity_type="queue_token",
            entity_id=candidate.id,
            actor_user_id=actor_user_id,
            token_id=candidate.id,
            occurred_at=at,
        )
        db.session.commit()
        return db.session.get(QueueToken, candidate.id)

    token = run_with_retry(_op)
    if token is not None:
        notify_board_changed(token.shop_id, "token.called", token_id=token.id)
    return token


def update_status(
    token_id: int,
    status: str,
    *,
    actor_user_id: int | None = None,
    scope_shop_id: int | None = None,
    now: datetime | None = None,
) -> QueueToken:
    """Apply one workflow step (or CANCELLED) to a token."""
    requested = workflow.normalize_status(status)

    def _op():
        begin_write_transaction()
        at = now or utcnow()
        token = lock_for_update(
            db.session.query(QueueToken).filter(QueueToken.id == token_id)
        ).populate_existing().first()
        if not token or (scope_shop_id is not None and token.shop_id != scope_shop_id):
            raise NotFoundError("Queue token not found", details={"token_id": token_id})

        current = workflow.normalize_status(token.status)
        profile = workflow.profile_for_shop(token.shop)
        workflow.validate_transition(
            current, requested, profile, settled=token.settled_sale_id is not None
        )

        result = db.session.execute(
            update(QueueToken)
            .where(
                QueueToken.id == token.id,
                QueueToken.status == token.status,
                QueueToken.settled_sale_id.is_(None),
            )
            .values(**_status_values(requested, at))
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            raise IllegalTransition(
                "Token changed while updating; reload and retry",
                details={"current_status": current, "requested_status": requested},
            )

        append_ledger_event(
            shop_id=token.shop_id,
            event_type="queue_token.status_changed",
            entity_type="queue_token",
            entity_id=token.id,
            actor_user_id=actor_user_id,
            token_id=token.id,
            occurred_at=at,
            payload={"from": current, "to": requested},
        )
        db.session.commit()
        db.session.refresh(token)
        return token

    token = run_with_retry(_op)
    notify_board_changed(token.shop_id, "token.status", token_id=token.id, status=token.status)
    return token


def get_print_data(token_id: int, scope_shop_id: int | None = None) -> dict:
    token = get_token(token_id, scope_shop_id)
    shop = token.shop
    profile = workflow.profile_for_shop(shop)
    data = serialize_token(token, profile)
    data["shop"] = {
        "id": shop.id,
        "name": shop.name,
        "business_type": shop.business_type,
        "queue_workflow": profile.name,
    }
    return data
