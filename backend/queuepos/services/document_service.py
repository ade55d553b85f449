# Overview: Per-shop document numbering for sale invoices.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(
    *,
    shop_id: int,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for a shop/type in the caller's transaction.

    The UPDATE takes the counter row lock, so concurrent callers queue up
    behind it. The first number for a new (shop, type) inserts the row under
    a savepoint; losing that insert race falls back to the UPDATE.
    """
    if not shop_id:
        raise DocumentSequenceError("shop_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.shop_id == shop_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(shop_id=shop_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(shop_id=shop_id, document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            current = (
                db.session.query(DocumentSequence.next_number)
                .filter_by(shop_id=shop_id, document_type=document_type)
                .scalar()
            )
            next_num = current - 1

    return f"{prefix}-{shop_id:03d}-{next_num:0{pad}d}"
