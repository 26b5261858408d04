"""Internal trigger for the recurring invoice run"""

import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...config import RECURRENCE_DUE_DAYS, RECURRENCE_LEASE_TTL_SECONDS
from ...database import get_service_db
from ...responses import error_response
from ...webhook_security import verify_trigger_token
from .scheduler import RecurrenceScheduler
from .schemas import RecurrenceRunResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/internal/recurring-invoices",
    tags=["Internal"],
    dependencies=[Depends(verify_trigger_token)],
)


def get_recurrence_scheduler(db: Session = Depends(get_service_db)) -> RecurrenceScheduler:
    return RecurrenceScheduler(
        db, lease_ttl_seconds=RECURRENCE_LEASE_TTL_SECONDS, due_days=RECURRENCE_DUE_DAYS
    )


@router.post("/run", response_model=RecurrenceRunResponse)
async def run_recurring_invoices(
    scheduler: RecurrenceScheduler = Depends(get_recurrence_scheduler),
):
    """Generate today's recurring invoices; safe to call more than once a day"""
    result = await asyncio.to_thread(scheduler.run, datetime.now(timezone.utc))
    if not result.is_ok:
        return error_response(result.error)
    summary = result.value
    return RecurrenceRunResponse(
        created_count=summary.created_count, skipped=summary.skipped, period=summary.period
    )
