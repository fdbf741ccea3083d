# Overview: Document number allocation for orders, payout invoices and credit notes.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence

DOC_ORDER = "ORDER"
DOC_PAYOUT_INVOICE = "PAYOUT_INVOICE"
DOC_CREDIT_NOTE = "CREDIT_NOTE"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _bump(document_type: str):
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt)


def _current(document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )


def next_document_number(*, document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Allocate the next document number for a type inside the caller's transaction.

    The increment is a single UPDATE on the sequence row, so two transactions
    can never hand out the same number. The first allocation inserts the row
    in a savepoint; losing that insert race falls back to the UPDATE.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if not prefix:
        raise DocumentSequenceError("prefix is required")

    result = _bump(document_type)
    if result.rowcount:
        next_num = _current(document_type) - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            result = _bump(document_type)
            if not result.rowcount:
                raise
            next_num = _current(document_type) - 1

    return f"{prefix}-{next_num:0{pad}d}"
