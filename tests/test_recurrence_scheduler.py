"""
Tests for the recurring invoice run.

The scheduler is driven directly with a fixed clock; the HTTP trigger and the arq
task are covered at the bottom.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from factories import TRIGGER_TOKEN, make_document
from invoicy_billing.domain.recurrence import scheduler as scheduler_module
from invoicy_billing.domain.recurrence.scheduler import (
    LEASE_NAME,
    RecurrenceScheduler,
    effective_anchor_day,
    is_due,
    period_key,
)
from invoicy_billing.errors import UpstreamError
from invoicy_billing.models import BillingDocument, SchedulerLease

MARCH_15 = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)


def occurrences_of(db, template):
    db.expire_all()
    return (
        db.query(BillingDocument)
        .filter(BillingDocument.source_document_id == template.id)
        .all()
    )


@pytest.fixture
def template(db):
    return make_document(
        db,
        document_number="INV-10001",
        recurrence_frequency="monthly",
        recurrence_anchor_day=15,
        payment_link_id="plink_template",
        payment_link_url="https://buy.stripe.com/template",
        notes="Thanks for your business",
    )


class TestDueDates:
    def test_period_key_is_year_month(self):
        assert period_key(date(2026, 3, 1)) == "2026-03"
        assert period_key(date(2026, 12, 31)) == "2026-12"

    def test_anchor_clamped_to_short_months(self):
        assert effective_anchor_day(31, date(2026, 4, 10)) == 30
        assert effective_anchor_day(31, date(2026, 2, 10)) == 28
        assert effective_anchor_day(30, date(2028, 2, 10)) == 29
        assert effective_anchor_day(12, date(2026, 2, 10)) == 12

    def test_anchor_31_fires_on_last_day_only(self, db):
        doc = make_document(db, recurrence_frequency="monthly", recurrence_anchor_day=31)

        assert is_due(doc, date(2026, 4, 30))
        assert is_due(doc, date(2026, 2, 28))
        assert is_due(doc, date(2026, 1, 31))
        assert not is_due(doc, date(2026, 4, 29))
        assert not is_due(doc, date(2026, 1, 30))

    def test_missing_anchor_falls_back_to_issue_day(self, db):
        doc = make_document(
            db,
            recurrence_frequency="monthly",
            recurrence_anchor_day=None,
            issue_date=date(2026, 1, 20),
        )

        assert is_due(doc, date(2026, 3, 20))
        assert not is_due(doc, date(2026, 3, 15))

    @pytest.mark.parametrize("anchor", [0, 32, 45, -1])
    def test_anchor_outside_calendar_days_is_refused(self, db, anchor):
        with pytest.raises(IntegrityError):
            make_document(db, recurrence_frequency="monthly", recurrence_anchor_day=anchor)
        db.rollback()

        assert db.query(BillingDocument).count() == 0

    def test_void_and_unknown_frequencies_are_never_due(self, db):
        void = make_document(
            db, status="void", recurrence_frequency="monthly", recurrence_anchor_day=15
        )
        weekly = make_document(db, recurrence_frequency="weekly", recurrence_anchor_day=15)

        assert not is_due(void, date(2026, 3, 15))
        assert not is_due(weekly, date(2026, 3, 15))


class TestRecurrenceRun:
    def test_repeated_runs_create_exactly_one_occurrence(self, db, template):
        scheduler = RecurrenceScheduler(db)

        first = scheduler.run(MARCH_15)
        second = scheduler.run(MARCH_15 + timedelta(hours=6))
        third = scheduler.run(MARCH_15 + timedelta(hours=12))

        assert first.is_ok and first.value.created_count == 1
        assert second.is_ok and second.value.created_count == 0
        assert third.is_ok and third.value.created_count == 0
        assert len(occurrences_of(db, template)) == 1

    def test_occurrence_is_a_fresh_draft_copied_from_template(self, db, template):
        result = RecurrenceScheduler(db, due_days=30).run(MARCH_15)

        assert result.is_ok
        assert result.value.period == "2026-03"
        [occurrence] = occurrences_of(db, template)
        assert occurrence.id != template.id
        assert occurrence.status == "draft"
        assert occurrence.kind == "invoice"
        assert occurrence.document_number == "INV-10002"
        assert occurrence.issue_date == date(2026, 3, 15)
        assert occurrence.due_date == date(2026, 4, 14)
        assert occurrence.customer == template.customer
        assert occurrence.line_items == template.line_items
        assert occurrence.company == template.company
        assert occurrence.notes == "Thanks for your business"
        assert occurrence.total_amount == template.total_amount
        assert occurrence.currency == template.currency
        assert occurrence.recurrence_frequency is None
        assert occurrence.recurrence_anchor_day is None
        assert occurrence.payment_link_id is None
        assert occurrence.payment_link_url is None
        assert occurrence.recurrence_period == "2026-03"

    def test_quote_templates_generate_invoices(self, db):
        quote = make_document(
            db, kind="quote", recurrence_frequency="monthly", recurrence_anchor_day=15
        )

        RecurrenceScheduler(db).run(MARCH_15)

        [occurrence] = occurrences_of(db, quote)
        assert occurrence.kind == "invoice"

    def test_next_month_gets_its_own_occurrence(self, db, template):
        scheduler = RecurrenceScheduler(db)

        scheduler.run(MARCH_15)
        april = scheduler.run(datetime(2026, 4, 15, 9, 0, tzinfo=timezone.utc))

        assert april.value.created_count == 1
        periods = sorted(o.recurrence_period for o in occurrences_of(db, template))
        assert periods == ["2026-03", "2026-04"]

    def test_not_due_day_creates_nothing(self, db, template):
        result = RecurrenceScheduler(db).run(datetime(2026, 3, 16, 9, 0, tzinfo=timezone.utc))

        assert result.is_ok
        assert result.value.created_count == 0
        assert occurrences_of(db, template) == []

    def test_due_day_is_evaluated_in_utc(self, db, template):
        # 23:30 on the 14th at UTC-5 is already the 15th in UTC
        local = datetime(2026, 3, 14, 23, 30, tzinfo=timezone(timedelta(hours=-5)))

        result = RecurrenceScheduler(db).run(local)

        assert result.value.created_count == 1
        assert result.value.period == "2026-03"

    def test_numbers_are_distinct_per_merchant(self, db):
        a = make_document(
            db,
            document_number="INV-10001",
            recurrence_frequency="monthly",
            recurrence_anchor_day=15,
        )
        b = make_document(
            db,
            document_number="INV-10005",
            recurrence_frequency="monthly",
            recurrence_anchor_day=15,
        )
        other = make_document(
            db,
            merchant_id="merchant-2",
            document_number="INV-20000",
            recurrence_frequency="monthly",
            recurrence_anchor_day=15,
        )

        result = RecurrenceScheduler(db).run(MARCH_15)

        assert result.value.created_count == 3
        numbers = {o.document_number for o in occurrences_of(db, a) + occurrences_of(db, b)}
        assert numbers == {"INV-10006", "INV-10007"}
        [other_occurrence] = occurrences_of(db, other)
        assert other_occurrence.document_number == "INV-20001"
        assert other_occurrence.merchant_id == "merchant-2"

    def test_generated_occurrences_are_not_templates(self, db, template):
        scheduler = RecurrenceScheduler(db)
        scheduler.run(MARCH_15)

        [occurrence] = occurrences_of(db, template)
        assert template.is_template
        assert not occurrence.is_template
        assert occurrences_of(db, occurrence) == []


class TestLeaseDuringRun:
    def test_live_lease_skips_run(self, db, template):
        db.add(
            SchedulerLease(
                name=LEASE_NAME,
                holder="other-run",
                expires_at=datetime.now(timezone.utc) + timedelta(minutes=5),
            )
        )
        db.commit()

        result = RecurrenceScheduler(db).run(MARCH_15)

        assert result.is_ok
        assert result.value.skipped is True
        assert result.value.created_count == 0
        assert occurrences_of(db, template) == []

    def test_expired_lease_is_reclaimed(self, db, template):
        db.add(
            SchedulerLease(
                name=LEASE_NAME,
                holder="crashed-run",
                expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
            )
        )
        db.commit()

        result = RecurrenceScheduler(db).run(MARCH_15)

        assert result.value.skipped is False
        assert result.value.created_count == 1

    def test_lease_released_after_run(self, db, template):
        RecurrenceScheduler(db).run(MARCH_15)

        db.expire_all()
        assert db.query(SchedulerLease).count() == 0


class TestFailedRun:
    def test_insert_failure_writes_nothing(self, db, monkeypatch):
        first = make_document(db, recurrence_frequency="monthly", recurrence_anchor_day=15)
        second = make_document(db, recurrence_frequency="monthly", recurrence_anchor_day=15)
        original = scheduler_module.build_occurrence

        # Same number twice for one merchant violates the per-merchant numbering constraint
        def colliding(template, day, _number, due_days):
            return original(template, day, "INV-99999", due_days)

        monkeypatch.setattr(scheduler_module, "build_occurrence", colliding)

        result = RecurrenceScheduler(db).run(MARCH_15)

        assert not result.is_ok
        assert isinstance(result.error, UpstreamError)
        assert result.error.status_code == 502
        assert occurrences_of(db, first) == []
        assert occurrences_of(db, second) == []
        assert db.query(SchedulerLease).count() == 0

    def test_read_failure_reports_error(self, db, template, monkeypatch):
        from sqlalchemy.exc import OperationalError

        def broken(_db):
            raise OperationalError("SELECT", {}, Exception("connection lost"))

        monkeypatch.setattr(
            scheduler_module.DocumentRepository, "get_templates", staticmethod(broken)
        )

        result = RecurrenceScheduler(db).run(MARCH_15)

        assert isinstance(result.error, UpstreamError)
        assert result.error.message == "Upstream service error"
        assert occurrences_of(db, template) == []


class TestTrigger:
    def test_trigger_requires_token(self, client):
        response = client.post("/internal/recurring-invoices/run")
        assert response.status_code == 401

        response = client.post(
            "/internal/recurring-invoices/run", headers={"Authorization": "Bearer wrong"}
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid trigger token"}

    def test_unconfigured_trigger_is_503(self, client, monkeypatch):
        from invoicy_billing import webhook_security

        monkeypatch.setattr(webhook_security, "SCHEDULER_TRIGGER_TOKEN", None)

        response = client.post(
            "/internal/recurring-invoices/run", headers={"Authorization": "Bearer anything"}
        )

        assert response.status_code == 503
        assert response.json() == {"error": "Scheduler trigger not configured"}

    def test_trigger_runs_for_today(self, client, db):
        today = datetime.now(timezone.utc).date()
        template = make_document(
            db, recurrence_frequency="monthly", recurrence_anchor_day=today.day
        )
        headers = {"Authorization": f"Bearer {TRIGGER_TOKEN}"}

        first = client.post("/internal/recurring-invoices/run", headers=headers)
        second = client.post("/internal/recurring-invoices/run", headers=headers)

        assert first.status_code == 200
        assert first.json() == {
            "createdCount": 1,
            "skipped": False,
            "period": today.strftime("%Y-%m"),
        }
        assert second.json()["createdCount"] == 0
        assert len(occurrences_of(db, template)) == 1


class TestWorkerTask:
    async def test_cron_task_runs_scheduler(self, session_factory, db, monkeypatch):
        from invoicy_billing import worker

        today = datetime.now(timezone.utc).date()
        template = make_document(
            db, recurrence_frequency="monthly", recurrence_anchor_day=today.day
        )
        monkeypatch.setattr(worker, "ServiceSessionLocal", session_factory)

        summary = await worker.recurring_invoices_task({})

        assert summary["created"] == 1
        assert summary["skipped"] is False
        assert len(occurrences_of(db, template)) == 1

    async def test_cron_task_raises_on_failure(self, session_factory, monkeypatch):
        from invoicy_billing import worker

        def failing_run(self, now):
            from invoicy_billing.errors import Result

            return Result.fail(UpstreamError("database unavailable"))

        monkeypatch.setattr(worker, "ServiceSessionLocal", session_factory)
        monkeypatch.setattr(worker.RecurrenceScheduler, "run", failing_run)

        with pytest.raises(UpstreamError):
            await worker.recurring_invoices_task({})
