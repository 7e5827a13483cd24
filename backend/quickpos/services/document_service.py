# Overview: Atomic allocation of human-readable document numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence

ORDER_DOCUMENT_TYPE = "order"
ORDER_PREFIX = "ORD"


def _current_next_number(document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Atomically allocate the next document number for a type.

    Increments the (document_type) row with a single UPDATE so concurrent
    callers serialize on that row. Runs inside the caller's transaction:
    if the caller rolls back, the number is released with it.
    """
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_next_number(document_type) - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            # Another transaction created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current_next_number(document_type) - 1

    return f"{prefix}-{next_num:0{pad}d}"


def next_order_number() -> str:
    return next_document_number(document_type=ORDER_DOCUMENT_TYPE, prefix=ORDER_PREFIX)
