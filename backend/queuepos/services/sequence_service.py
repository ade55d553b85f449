# Overview: Queue token number allocation and label formatting.

"""
Sequence Allocator

Token numbers are unique and increasing per (shop, business day). The
counter row is incremented inside the caller's transaction, so:
- two concurrent creators can never observe the same number (the UPDATE
  holds the row lock until commit);
- an aborted creation rolls its increment back with everything else, so
  gaps only appear as a consequence of an abort.
"""

from __future__ import annotations

import re
from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import QueueTokenSequence


DEFAULT_TOKEN_PREFIX = "TK"
TOKEN_SERIAL_PAD = 4
_PREFIX_STRIP = re.compile(r"[^A-Z0-9]")


def sanitize_token_prefix(value: str | None) -> str | None:
    """Uppercase, keep A-Z0-9 only, at most 12 chars. Empty -> None."""
    raw = (value or "").strip().upper()
    cleaned = _PREFIX_STRIP.sub("", raw)[:12]
    return cleaned or None


def format_token_label(prefix: str | None, token_no: int) -> str:
    """Pure label formatter: ('a-1', 7) -> 'A1-0007'."""
    resolved = sanitize_token_prefix(prefix) or DEFAULT_TOKEN_PREFIX
    serial = max(1, int(token_no))
    return f"{resolved}-{serial:0{TOKEN_SERIAL_PAD}d}"


def _current_counter(shop_id: int, business_date: date) -> int:
    return (
        db.session.query(QueueTokenSequence.next_number)
        .filter_by(shop_id=shop_id, business_date=business_date)
        .scalar()
    )


def allocate_token_number(shop_id: int, business_date: date, prefix: str | None = None) -> tuple[int, str]:
    """
    Allocate (token_no, token_label) for a new token.

    Must be called inside the transaction that inserts the token; nothing
    is committed here.
    """
    stmt = (
        update(QueueTokenSequence)
        .where(
            QueueTokenSequence.shop_id == shop_id,
            QueueTokenSequence.business_date == business_date,
        )
        .values(next_number=QueueTokenSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        token_no = _current_counter(shop_id, business_date) - 1
    else:
        # First token of the day for this shop
        try:
            with db.session.begin_nested():
                db.session.add(
                    QueueTokenSequence(shop_id=shop_id, business_date=business_date, next_number=2)
                )
            token_no = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            token_no = _current_counter(shop_id, business_date) - 1

    if token_no < 1:
        raise RuntimeError("Invalid queue token sequence")

    return token_no, format_token_label(prefix, token_no)
