from __future__ import annotations

from ..extensions import db
from queuepos.time_utils import to_utc_z


class Shop(db.Model):
    """
    Shop: the scope every queue token, product and user hangs off.

    WHY: Queue numbering, reservations and the business day are all
    shop-relative. The queue_* columns are the inputs to the workflow
    profile and the token label.
    """
    __tablename__ = "shops"
    __table_args__ = (
        db.Index("ix_shops_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    # Free text from onboarding ("Restaurant", "Beauty Parlour", ...)
    business_type = db.Column(db.String(64), nullable=True)

    # Queue configuration
    queue_token_enabled = db.Column(db.Boolean, nullable=False, default=False)
    queue_workflow = db.Column(db.String(32), nullable=True)  # explicit profile override
    queue_token_prefix = db.Column(db.String(12), nullable=True)

    # Business day boundary
    timezone = db.Column(db.String(64), nullable=False, default="Asia/Dhaka")
    day_rollover_hour = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Shop id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "business_type": self.business_type,
            "queue_token_enabled": self.queue_token_enabled,
            "queue_workflow": self.queue_workflow,
            "queue_token_prefix": self.queue_token_prefix,
            "timezone": self.timezone,
            "day_rollover_hour": self.day_rollover_hour,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
