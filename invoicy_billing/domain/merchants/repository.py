"""Merchant repository - Database operations for merchant profiles"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import MerchantProfile

logger = logging.getLogger(__name__)


class MerchantRepository:
    """Repository for merchant profile database operations"""

    @staticmethod
    def get_profile(db: Session, user_id: str) -> Optional[MerchantProfile]:
        """Get profile by user ID"""
        return db.query(MerchantProfile).filter(MerchantProfile.id == user_id).first()

    @staticmethod
    def get_profile_by_connected_account(
        db: Session, connected_account_id: str
    ) -> Optional[MerchantProfile]:
        """Get profile by Stripe connected account ID"""
        return (
            db.query(MerchantProfile)
            .filter(MerchantProfile.connected_account_id == connected_account_id)
            .first()
        )

    @staticmethod
    def create_default_profile(db: Session, user_id: str, email: str) -> MerchantProfile:
        """Create a default profile, tolerating a concurrent insert of the same row"""
        profile = MerchantProfile(id=user_id, email=email, company_name=email)
        db.add(profile)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(f"Profile for user {user_id} created concurrently, reusing it")
            return db.query(MerchantProfile).filter(MerchantProfile.id == user_id).one()
        db.refresh(profile)
        return profile

    @staticmethod
    def assign_connected_account_if_absent(
        db: Session, user_id: str, connected_account_id: str
    ) -> bool:
        """
        Persist the connected account only if none is set yet.

        Returns:
            True if this call wrote the ID, False if another ID was already stored
        """
        updated = (
            db.query(MerchantProfile)
            .filter(
                MerchantProfile.id == user_id,
                MerchantProfile.connected_account_id.is_(None),
            )
            .update(
                {MerchantProfile.connected_account_id: connected_account_id},
                synchronize_session=False,
            )
        )
        db.commit()
        return updated == 1

    @staticmethod
    def mark_onboarding_complete(db: Session, user_id: str) -> None:
        """Set the onboarding-complete flag"""
        db.query(MerchantProfile).filter(MerchantProfile.id == user_id).update(
            {MerchantProfile.onboarding_complete: True}, synchronize_session=False
        )
        db.commit()
