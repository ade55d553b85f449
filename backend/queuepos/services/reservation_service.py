# Overview: Derived stock reservations held by open queue tokens.

"""
Reservation Ledger

Nothing is stored. For a product:

    reserved(product)  = SUM(item.quantity) over tokens with
                         settled_sale_id IS NULL and status != CANCELLED
    available(product) = max(stock_qty - reserved(product), 0)

Products with track_stock = False have unlimited availability (None).

The acceptance-time check in queue_token_service calls these inside the
same transaction that inserts the new token; numbers shown on the order
entry screen are only a hint.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Product, QueueToken, QueueTokenItem
from .queue_workflow import CANCELLED


def reserved_quantities(shop_id: int, product_ids: list[int] | None = None) -> dict[int, int]:
    """Map product_id -> quantity held by the shop's active tokens."""
    if product_ids is not None and not product_ids:
        return {}

    q = (
        db.session.query(
            QueueTokenItem.product_id,
            func.coalesce(func.sum(QueueTokenItem.quantity), 0),
        )
        .join(QueueToken, QueueToken.id == QueueTokenItem.token_id)
        .filter(
            QueueToken.shop_id == shop_id,
            QueueToken.settled_sale_id.is_(None),
            QueueToken.status != CANCELLED,
        )
    )
    if product_ids:
        q = q.filter(QueueTokenItem.product_id.in_(product_ids))

    rows = q.group_by(QueueTokenItem.product_id).all()
    return {product_id: int(total or 0) for product_id, total in rows}


def available_stock(product: Product, reserved: dict[int, int]) -> int | None:
    """None means unlimited (stock not tracked)."""
    if not product.track_stock:
        return None
    return max(int(product.stock_qty or 0) - reserved.get(product.id, 0), 0)


def get_queue_product_options(shop_id: int) -> list[dict]:
    """Active products for the order entry screen with an 'available now' number."""
    products = (
        db.session.query(Product)
        .filter(Product.shop_id == shop_id, Product.is_active == True)  # noqa: E712
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    reserved = reserved_quantities(shop_id, [p.id for p in products])

    return [
        {
            "id": product.id,
            "name": product.name,
            "price_cents": product.price_cents,
            "track_stock": bool(product.track_stock),
            "reserved_qty": reserved.get(product.id, 0),
            "available_stock": available_stock(product, reserved),
        }
        for product in products
    ]
