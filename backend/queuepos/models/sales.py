from __future__ import annotations

from ..extensions import db
from queuepos.time_utils import to_utc_z


class Sale(db.Model):
    """
    Financial sale document.

    WHY: A sale is the immutable, auditable record of revenue. Queue tokens
    only become sales through settlement; there is no draft stage here.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "document_number", name="uq_sales_shop_docnum"),
        db.Index("ix_sales_shop_created", "shop_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    # Human-readable invoice number (e.g., "S-001-0042")
    document_number = db.Column(db.String(64), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, default="cash", index=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    note = db.Column(db.String(200), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shop = db.relationship("Shop", backref=db.backref("sales", lazy=True))
    lines = db.relationship("SaleLine", back_populates="sale", lazy="selectin", order_by="SaleLine.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "document_number": self.document_number,
            "payment_method": self.payment_method,
            "total_cents": self.total_cents,
            "note": self.note,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class SaleLine(db.Model):
    """Individual line items on a sale document."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
