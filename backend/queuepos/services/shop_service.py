# Overview: Shop and catalog lookups the queue services read from.

from __future__ import annotations

from datetime import date, datetime

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Shop, Product
from queuepos.time_utils import utcnow, parse_business_date, resolve_business_date
from .concurrency import run_with_retry
from .queue_workflow import sanitize_workflow
from .sequence_service import sanitize_token_prefix


def require_shop(shop_id: int, scope_shop_id: int | None = None) -> Shop:
    """
    Load an active shop or raise NotFoundError.

    scope_shop_id is the actor's shop (None for unrestricted actors); a shop
    outside that scope is reported as not found.
    """
    shop = db.session.get(Shop, shop_id) if shop_id else None
    if not shop or not shop.is_active:
        raise NotFoundError("Shop not found", details={"shop_id": shop_id})
    if scope_shop_id is not None and shop.id != scope_shop_id:
        raise NotFoundError("Shop not found", details={"shop_id": shop_id})
    return shop


def shop_timezone(shop: Shop) -> str:
    return shop.timezone or current_app.config.get("QUEUE_DEFAULT_TIMEZONE", "UTC")


def current_business_date(shop: Shop, now: datetime | None = None) -> date:
    rollover = shop.day_rollover_hour
    if rollover is None:
        rollover = current_app.config.get("QUEUE_DEFAULT_ROLLOVER_HOUR", 0)
    return resolve_business_date(shop_timezone(shop), rollover, now or utcnow())


def resolve_requested_business_date(shop: Shop, value, now: datetime | None = None) -> date:
    """Explicit 'YYYY-MM-DD' (or date) wins; absent means the shop's current business day."""
    if isinstance(value, date):
        return value
    try:
        parsed = parse_business_date(value)
    except ValueError:
        raise ValidationError("business_date must be YYYY-MM-DD", details={"business_date": value})
    return parsed or current_business_date(shop, now)


def create_shop(
    name: str,
    *,
    code: str | None = None,
    business_type: str | None = None,
    queue_token_enabled: bool = True,
    queue_workflow: str | None = None,
    queue_token_prefix: str | None = None,
    timezone: str | None = None,
    day_rollover_hour: int = 0,
) -> Shop:
    def _op():
        if not name:
            raise ValidationError("Shop name is required")
        if queue_workflow and not sanitize_workflow(queue_workflow):
            raise ValidationError("Unknown queue workflow", details={"queue_workflow": queue_workflow})
        if not 0 <= int(day_rollover_hour) <= 23:
            raise ValidationError("day_rollover_hour must be between 0 and 23")

        shop = Shop(
            name=name,
            code=code,
            business_type=business_type,
            queue_token_enabled=queue_token_enabled,
            queue_workflow=sanitize_workflow(queue_workflow),
            queue_token_prefix=sanitize_token_prefix(queue_token_prefix),
            timezone=timezone or current_app.config.get("QUEUE_DEFAULT_TIMEZONE", "UTC"),
            day_rollover_hour=int(day_rollover_hour),
        )
        db.session.add(shop)
        db.session.commit()
        return shop

    return run_with_retry(_op)


def update_queue_settings(
    shop_id: int,
    *,
    queue_token_enabled: bool | None = None,
    queue_workflow: str | None = None,
    queue_token_prefix: str | None = None,
) -> Shop:
    def _op():
        shop = require_shop(shop_id)
        if queue_token_enabled is not None:
            shop.queue_token_enabled = bool(queue_token_enabled)
        if queue_workflow is not None:
            if queue_workflow and not sanitize_workflow(queue_workflow):
                raise ValidationError("Unknown queue workflow", details={"queue_workflow": queue_workflow})
            shop.queue_workflow = sanitize_workflow(queue_workflow)
        if queue_token_prefix is not None:
            shop.queue_token_prefix = sanitize_token_prefix(queue_token_prefix)
        db.session.commit()
        return shop

    return run_with_retry(_op)


def create_product(
    shop_id: int,
    *,
    sku: str,
    name: str,
    price_cents: int,
    track_stock: bool = False,
    stock_qty: int = 0,
) -> Product:
    def _op():
        require_shop(shop_id)
        if price_cents is None or int(price_cents) < 0:
            raise ValidationError("price_cents must be a non-negative integer")
        product = Product(
            shop_id=shop_id,
            sku=sku,
            name=name,
            price_cents=int(price_cents),
            track_stock=track_stock,
            stock_qty=int(stock_qty or 0),
        )
        db.session.add(product)
        db.session.commit()
        return product

    return run_with_retry(_op)
