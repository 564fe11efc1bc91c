# Overview: Service-layer operations for document numbering; encapsulates sequence allocation.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from .errors import OperationError


class DocumentSequenceError(OperationError):
    """Raised when document sequence operations fail."""
    pass


def _current_number(org_id: int, document_type: str) -> int:
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(org_id=org_id, document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    org_id: int,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Atomically allocate the next document number for an org/type.

    Runs inside the caller's transaction and never commits, so a rolled-back
    operation gives its number back. The counter row is created on first
    use; losing that creation race to another writer aborts the operation
    with a retryable error.
    """
    if not org_id:
        raise DocumentSequenceError("org_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.org_id == org_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_number(org_id, document_type)
    else:
        seq = DocumentSequence(org_id=org_id, document_type=document_type, next_number=2)
        db.session.add(seq)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise DocumentSequenceError(
                f"{document_type} sequence was created concurrently", retryable=True
            ) from exc
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"


def next_payment_number(*, org_id: int, payment_date: datetime) -> str:
    """Payment numbers restart daily: PAY-YYYYMMDD-00001."""
    day = payment_date.strftime("%Y%m%d")
    return next_document_number(
        org_id=org_id,
        document_type=f"PAYMENT:{day}",
        prefix=f"PAY-{day}",
        pad=5,
    )


def next_transfer_reference(*, org_id: int) -> str:
    return next_document_number(org_id=org_id, document_type="TRANSFER", prefix="TRF")
