"""Single-flight lease stored as a database row"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import SchedulerLease

logger = logging.getLogger(__name__)


class LeaseRepository:
    """
    Acquire/release a named lease with row-level atomic statements only.

    A live row means the lease is held. An expired row (holder crashed or timed out)
    is reclaimed by a conditional update; a missing row is claimed by insert, where the
    primary key decides between concurrent claimants.
    """

    @staticmethod
    def acquire(db: Session, name: str, ttl_seconds: int) -> Optional[str]:
        """
        Returns:
            Holder token, or None if another holder has a live lease
        """
        now = datetime.now(timezone.utc)
        token = secrets.token_hex(16)
        expires_at = now + timedelta(seconds=ttl_seconds)

        reclaimed = (
            db.query(SchedulerLease)
            .filter(SchedulerLease.name == name, SchedulerLease.expires_at < now)
            .update(
                {SchedulerLease.holder: token, SchedulerLease.expires_at: expires_at},
                synchronize_session=False,
            )
        )
        if reclaimed:
            db.commit()
            logger.warning(f"⚠️ Reclaimed expired lease '{name}'")
            return token

        try:
            db.execute(
                insert(SchedulerLease).values(name=name, holder=token, expires_at=expires_at)
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            return None
        return token

    @staticmethod
    def release(db: Session, name: str, token: str) -> bool:
        """Drop the lease if this token still holds it"""
        deleted = (
            db.query(SchedulerLease)
            .filter(SchedulerLease.name == name, SchedulerLease.holder == token)
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted == 1
