# Overview: Sale creation; the financial document a settled queue token becomes.

"""
Sales Service

create_sale is the only way revenue is recorded. It writes the sale, its
lines, an invoice number and the stock decrement for tracked products as
one unit. Queue settlement calls it with commit=False so the sale and the
token's settled marker land in the same transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import update

from ..extensions import db
from ..models import Sale, SaleLine, Product
from .document_service import next_document_number
from .ledger_service import append_ledger_event


PAYMENT_METHODS = ("cash", "card", "mobile", "due")


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class SaleLineInput:
    product_id: int
    name: str
    unit_price_cents: int
    quantity: int


def _decrement_stock(product: Product, quantity: int) -> None:
    result = db.session.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock_qty >= quantity)
        .values(stock_qty=Product.stock_qty - quantity)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise SaleError(
            f'Insufficient stock for "{product.name}"',
            details={"product_id": product.id, "requested_quantity": quantity},
        )


def create_sale(
    shop_id: int,
    lines: list[SaleLineInput],
    *,
    payment_method: str = "cash",
    note: str | None = None,
    user_id: int | None = None,
    commit: bool = True,
) -> Sale:
    """Create a sale from already priced lines."""
    if not lines:
        raise SaleError("Cart is empty")
    if payment_method not in PAYMENT_METHODS:
        raise SaleError("Unsupported payment method", details={"payment_method": payment_method})

    product_ids = {line.product_id for line in lines}
    products = {
        p.id: p
        for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    }
    if len(products) != len(product_ids):
        raise SaleError("Some products not found")

    total_cents = 0
    for line in lines:
        product = products[line.product_id]
        if product.shop_id != shop_id:
            raise SaleError("Product does not belong to shop", details={"product_id": product.id})
        if not product.is_active:
            raise SaleError("Inactive product in cart", details={"product_id": product.id})
        if line.quantity <= 0:
            raise SaleError("Quantity must be positive", details={"product_id": product.id})
        total_cents += line.unit_price_cents * line.quantity

    sale = Sale(
        shop_id=shop_id,
        document_number=next_document_number(shop_id=shop_id, document_type="SALE", prefix="S"),
        payment_method=payment_method,
        total_cents=total_cents,
        note=note[:200] if note else None,
        created_by_user_id=user_id,
    )
    db.session.add(sale)
    db.session.flush()

    for line in lines:
        db.session.add(SaleLine(
            sale_id=sale.id,
            product_id=line.product_id,
            name=line.name or "Item",
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            line_total_cents=line.unit_price_cents * line.quantity,
        ))
        product = products[line.product_id]
        if product.track_stock:
            _decrement_stock(product, line.quantity)

    append_ledger_event(
        shop_id=shop_id,
        event_type="sale.created",
        entity_type="sale",
        entity_id=sale.id,
        actor_user_id=user_id,
        sale_id=sale.id,
        note=f"Sale {sale.document_number}",
        payload={"payment_method": payment_method, "total_cents": total_cents},
    )

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return sale
