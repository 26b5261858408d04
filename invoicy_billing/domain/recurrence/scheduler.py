"""
Recurrence scheduler - Materializes draft invoices from recurring templates.

Period key: the UTC calendar month of the run (YYYY-MM). A monthly template is due
when its anchor day, clamped to the month's last day, equals the run's UTC day.
Generated rows carry (source_document_id, recurrence_period), which is unique in
storage, so re-running on the same day cannot create a second occurrence.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import Result, UpstreamError
from ...models import (
    BillingDocument,
    DocumentKind,
    DocumentStatus,
    RecurrenceFrequency,
    generate_id,
)
from ..documents.repository import DocumentRepository
from .lease import LeaseRepository

logger = logging.getLogger(__name__)

LEASE_NAME = "recurring-invoices"


@dataclass(frozen=True)
class RecurrenceRunSummary:
    created_count: int
    period: str
    skipped: bool = False


def period_key(day: date) -> str:
    return day.strftime("%Y-%m")


def effective_anchor_day(anchor_day: int, day: date) -> int:
    """Clamp the anchor to the month's length (31 -> 30 in April, 28/29 in February)"""
    return min(anchor_day, calendar.monthrange(day.year, day.month)[1])


def is_due(template: BillingDocument, day: date) -> bool:
    if template.recurrence_frequency != RecurrenceFrequency.MONTHLY.value:
        return False
    if template.status == DocumentStatus.VOID.value:
        return False
    anchor = template.recurrence_anchor_day
    if anchor is None:
        anchor = template.issue_date.day
    return effective_anchor_day(anchor, day) == day.day


def build_occurrence(
    template: BillingDocument, day: date, document_number: str, due_days: int
) -> dict:
    """Row for a new draft copied from the template, without its recurrence rule"""
    return {
        "id": generate_id(),
        "merchant_id": template.merchant_id,
        "kind": DocumentKind.INVOICE.value,
        "status": DocumentStatus.DRAFT.value,
        "document_number": document_number,
        "recurrence_frequency": None,
        "recurrence_anchor_day": None,
        "source_document_id": template.id,
        "recurrence_period": period_key(day),
        "customer": template.customer,
        "line_items": template.line_items,
        "company": template.company,
        "notes": template.notes,
        "subtotal": template.subtotal,
        "tax_amount": template.tax_amount,
        "total_amount": template.total_amount,
        "currency": template.currency,
        "payment_link_id": None,
        "payment_link_url": None,
        "issue_date": day,
        "due_date": day + timedelta(days=due_days),
    }


class RecurrenceScheduler:
    """Periodically materializes new draft documents from recurring templates"""

    def __init__(self, db: Session, lease_ttl_seconds: int = 600, due_days: int = 30):
        self.db = db
        self.lease_ttl_seconds = lease_ttl_seconds
        self.due_days = due_days
        self.documents = DocumentRepository()
        self.leases = LeaseRepository()

    def run(self, now: datetime) -> Result[RecurrenceRunSummary]:
        """Generate every occurrence due on `now`; returns how many were created"""
        day = now.astimezone(timezone.utc).date() if now.tzinfo else now.date()

        try:
            token = self.leases.acquire(self.db, LEASE_NAME, self.lease_ttl_seconds)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Could not acquire lease '{LEASE_NAME}': {e}")
            return Result.fail(UpstreamError(str(e)))

        if token is None:
            logger.info(f"⏭️ Recurring invoice run for {day} skipped: another run holds the lease")
            summary = RecurrenceRunSummary(created_count=0, period=period_key(day), skipped=True)
            return Result.ok(summary)

        try:
            return self._generate(day)
        finally:
            try:
                self.leases.release(self.db, LEASE_NAME, token)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"❌ Failed to release lease '{LEASE_NAME}', it will expire: {e}")

    def _generate(self, day: date) -> Result[RecurrenceRunSummary]:
        period = period_key(day)
        logger.info(f"🔄 Starting recurring invoice run for {day} (period {period})")

        try:
            templates = self.documents.get_templates(self.db)
            due = [t for t in templates if is_due(t, day)]
            generated = self.documents.get_generated_template_ids(
                self.db, [t.id for t in due], period
            )
            pending = [t for t in due if t.id not in generated]
            next_numbers = self.documents.get_next_document_numbers(
                self.db, {t.merchant_id for t in pending}
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Recurring invoice run aborted while reading templates: {e}")
            return Result.fail(UpstreamError(str(e)))

        rows = []
        for template in pending:
            number = next_numbers[template.merchant_id]
            next_numbers[template.merchant_id] = number + 1
            rows.append(build_occurrence(template, day, f"INV-{number}", self.due_days))

        try:
            created = self.documents.insert_occurrences_if_absent(self.db, rows)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Recurring invoice batch rolled back ({len(rows)} rows): {e}")
            return Result.fail(UpstreamError(str(e)))

        logger.info(
            f"✅ Recurring invoice run complete: {len(templates)} templates, "
            f"{len(due)} due, {created} created"
        )
        return Result.ok(RecurrenceRunSummary(created_count=created, period=period))
