"""Onboarding service - Connected account creation and onboarding links"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...database import set_rls_context
from ...errors import BillingError, Result, UpstreamError, ValidationError
from ..merchants.repository import MerchantRepository
from ..payments.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)


class AccountOnboardingService:
    """
    Ensures a merchant has a Stripe connected account.

    Two sessions with different credentials are used on purpose:
      - caller_db: application role with the caller's RLS context, for the caller's own reads
      - service_db: elevated role, for profile creation and updates
    """

    def __init__(
        self, caller_db: Session, service_db: Session, gateway: StripeGateway, app_url: str
    ):
        self.caller_db = caller_db
        self.service_db = service_db
        self.gateway = gateway
        self.app_url = app_url
        self.repo = MerchantRepository()

    @property
    def settings_url(self) -> str:
        return f"{self.app_url}/settings"

    def ensure_account(self, user_id: str, user_email: str) -> Result[str]:
        """Create the connected account if needed and return a fresh onboarding URL"""
        if not user_email:
            return Result.fail(ValidationError("User email is missing."))

        try:
            set_rls_context(self.caller_db, user_id)
            profile = self.repo.get_profile(self.caller_db, user_id)
            if not profile:
                logger.info(f"📝 Creating default merchant profile for user {user_id}")
                profile = self.repo.create_default_profile(self.service_db, user_id, user_email)
            account_id = profile.connected_account_id
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to load merchant profile for user {user_id}: {e}")
            return Result.fail(UpstreamError(str(e)))

        try:
            if not account_id:
                account_id = self._create_account(user_id, user_email)

            url = self.gateway.create_onboarding_link(
                account_id, refresh_url=self.settings_url, return_url=self.settings_url
            )
        except BillingError as e:
            return Result.fail(e)
        except SQLAlchemyError as e:
            self.service_db.rollback()
            logger.error(f"❌ Failed to persist connected account for user {user_id}: {e}")
            return Result.fail(UpstreamError(str(e)))

        logger.info(f"✅ Onboarding link created for user {user_id} (account {account_id})")
        return Result.ok(url)

    def _create_account(self, user_id: str, user_email: str) -> str:
        """
        Create the remote account and persist it only if no ID is stored yet.

        The idempotency key makes concurrent first calls receive the same Stripe
        account; the conditional update guarantees a single persisted ID regardless.
        """
        new_account_id = self.gateway.create_connected_account(
            user_email, idempotency_key=f"connected-account:{user_id}"
        )

        if self.repo.assign_connected_account_if_absent(self.service_db, user_id, new_account_id):
            logger.info(f"💾 Persisted connected account {new_account_id} for user {user_id}")
            return new_account_id

        winner = self.repo.get_profile(self.service_db, user_id)
        if winner is None or not winner.connected_account_id:
            raise UpstreamError(f"Profile {user_id} vanished while assigning connected account")
        if winner.connected_account_id != new_account_id:
            logger.warning(
                f"⚠️ Concurrent onboarding for user {user_id}: keeping "
                f"{winner.connected_account_id}, account {new_account_id} is orphaned"
            )
        return winner.connected_account_id

    def refresh_status(self, user_id: str) -> Result[bool]:
        """Whether onboarding is complete, persisting the flag once Stripe enables charges"""
        try:
            set_rls_context(self.caller_db, user_id)
            profile = self.repo.get_profile(self.caller_db, user_id)
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to load merchant profile for user {user_id}: {e}")
            return Result.fail(UpstreamError(str(e)))

        if not profile or not profile.connected_account_id:
            return Result.ok(False)
        if profile.onboarding_complete:
            return Result.ok(True)

        try:
            charges_enabled = self.gateway.retrieve_charges_enabled(profile.connected_account_id)
            if charges_enabled:
                self.repo.mark_onboarding_complete(self.service_db, user_id)
                logger.info(f"✅ Onboarding complete for user {user_id}")
        except BillingError as e:
            return Result.fail(e)
        except SQLAlchemyError as e:
            self.service_db.rollback()
            logger.error(f"❌ Failed to persist onboarding status for user {user_id}: {e}")
            return Result.fail(UpstreamError(str(e)))

        return Result.ok(charges_enabled)
