"""Document repository - Database operations for billing documents"""

import re
from typing import Optional

from sqlalchemy.orm import Session

from ...models import BillingDocument, DocumentStatus

FIRST_DOCUMENT_NUMBER = 10001
_DIGITS = re.compile(r"\D")


def _dialect_insert(db: Session):
    """Insert construct supporting ON CONFLICT for the bound dialect"""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Insert-if-absent not supported for dialect {dialect}")
    return insert


class DocumentRepository:
    """Repository for billing document database operations"""

    @staticmethod
    def get_document(
        db: Session, document_id: str, merchant_id: Optional[str] = None
    ) -> Optional[BillingDocument]:
        """Get a document by ID, optionally restricted to one merchant"""
        query = db.query(BillingDocument).filter(BillingDocument.id == document_id)
        if merchant_id is not None:
            query = query.filter(BillingDocument.merchant_id == merchant_id)
        return query.first()

    @staticmethod
    def get_templates(db: Session) -> list[BillingDocument]:
        """Get all documents carrying a recurrence rule"""
        return (
            db.query(BillingDocument)
            .filter(BillingDocument.recurrence_frequency.isnot(None))
            .order_by(BillingDocument.created_at, BillingDocument.id)
            .all()
        )

    @staticmethod
    def get_generated_template_ids(db: Session, template_ids: list[str], period: str) -> set[str]:
        """Template IDs that already have an occurrence for the period"""
        if not template_ids:
            return set()
        rows = (
            db.query(BillingDocument.source_document_id)
            .filter(
                BillingDocument.source_document_id.in_(template_ids),
                BillingDocument.recurrence_period == period,
            )
            .all()
        )
        return {row[0] for row in rows}

    @staticmethod
    def get_next_document_numbers(db: Session, merchant_ids: set[str]) -> dict[str, int]:
        """Next free numeric document number for each merchant"""
        next_numbers = {merchant_id: FIRST_DOCUMENT_NUMBER for merchant_id in merchant_ids}
        if not merchant_ids:
            return next_numbers
        rows = (
            db.query(BillingDocument.merchant_id, BillingDocument.document_number)
            .filter(BillingDocument.merchant_id.in_(merchant_ids))
            .all()
        )
        for merchant_id, document_number in rows:
            digits = _DIGITS.sub("", document_number or "")
            if digits and int(digits) >= next_numbers[merchant_id]:
                next_numbers[merchant_id] = int(digits) + 1
        return next_numbers

    @staticmethod
    def insert_occurrences_if_absent(db: Session, rows: list[dict]) -> int:
        """
        Insert generated occurrences in one statement.

        Rows whose (source_document_id, recurrence_period) already exists are skipped.
        Does not commit; the caller owns the transaction.

        Returns:
            Number of rows actually inserted
        """
        if not rows:
            return 0
        insert = _dialect_insert(db)
        table = BillingDocument.__table__
        stmt = (
            insert(table)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["source_document_id", "recurrence_period"])
            .returning(table.c.id)
        )
        return len(db.execute(stmt).scalars().all())

    @staticmethod
    def set_payment_link(db: Session, document: BillingDocument, link_id: str, url: str) -> None:
        """Overwrite the document's payment link"""
        document.payment_link_id = link_id
        document.payment_link_url = url
        db.commit()

    @staticmethod
    def mark_paid_by_payment_link(db: Session, merchant_id: str, payment_link_id: str) -> int:
        """
        Mark the merchant's documents carrying the payment link as paid.

        Already paid and void documents are left untouched, so re-applying is a no-op.

        Returns:
            Number of documents updated
        """
        affected = (
            db.query(BillingDocument)
            .filter(
                BillingDocument.merchant_id == merchant_id,
                BillingDocument.payment_link_id == payment_link_id,
                BillingDocument.status.notin_(
                    [DocumentStatus.PAID.value, DocumentStatus.VOID.value]
                ),
            )
            .update({BillingDocument.status: DocumentStatus.PAID.value}, synchronize_session=False)
        )
        db.commit()
        return affected
