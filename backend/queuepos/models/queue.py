from __future__ import annotations

from ..extensions import db
from queuepos.time_utils import to_utc_z


class QueueToken(db.Model):
    """
    Pending, unpaid order waiting in the shop queue.

    LIFECYCLE:
    - Created WAITING with a per-shop, per-business-day token_no.
    - Moves forward along the shop's workflow profile, or to CANCELLED.
    - settled_sale_id goes from NULL to a sale id exactly once; after that
      the workflow is frozen.
    - Never deleted. Cancellation is a terminal status.

    Each *_at stage timestamp is written the first time that status is
    reached and never touched again.
    """
    __tablename__ = "queue_tokens"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "business_date", "token_no", name="uq_queue_tokens_shop_day_no"),
        db.Index("ix_queue_tokens_shop_day_status", "shop_id", "business_date", "status"),
        db.Index("ix_queue_tokens_shop_open", "shop_id", "settled_sale_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    token_no = db.Column(db.Integer, nullable=False)
    token_label = db.Column(db.String(32), nullable=False)
    business_date = db.Column(db.Date, nullable=False, index=True)

    order_type = db.Column(db.String(32), nullable=False)
    customer_name = db.Column(db.String(80), nullable=True)
    customer_phone = db.Column(db.String(20), nullable=True)
    note = db.Column(db.String(200), nullable=True)

    # Frozen at creation
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="WAITING", index=True)

    settled_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, unique=True)
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    called_at = db.Column(db.DateTime(timezone=True), nullable=True)
    in_kitchen_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ready_at = db.Column(db.DateTime(timezone=True), nullable=True)
    served_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    shop = db.relationship("Shop", backref=db.backref("queue_tokens", lazy=True))
    items = db.relationship(
        "QueueTokenItem",
        back_populates="token",
        lazy="selectin",
        order_by="QueueTokenItem.id",
    )

    def __repr__(self) -> str:
        return f"<QueueToken id={self.id} label={self.token_label!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "shop_id": self.shop_id,
            "token_no": self.token_no,
            "token_label": self.token_label,
            "business_date": self.business_date.isoformat() if self.business_date else None,
            "order_type": self.order_type,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "note": self.note,
            "total_cents": self.total_cents,
            "status": self.status,
            "settled_sale_id": self.settled_sale_id,
            "settled_at": to_utc_z(self.settled_at),
            "called_at": to_utc_z(self.called_at),
            "in_kitchen_at": to_utc_z(self.in_kitchen_at),
            "ready_at": to_utc_z(self.ready_at),
            "served_at": to_utc_z(self.served_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class QueueTokenItem(db.Model):
    """Line on a queue token. Owned by the token; frozen at creation."""
    __tablename__ = "queue_token_items"
    __table_args__ = (
        db.Index("ix_queue_token_items_product", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    token_id = db.Column(db.Integer, db.ForeignKey("queue_tokens.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # Snapshot so old tokens stay readable after a rename or removal
    product_name_snapshot = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    token = db.relationship("QueueToken", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "token_id": self.token_id,
            "product_id": self.product_id,
            "product_name": self.product_name_snapshot or "Unnamed product",
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
