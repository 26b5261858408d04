"""
Webhook reconciler - Applies verified Stripe events to billing documents.

Stripe delivers at least once and in any order. The only write is a predicate
update (merchant + payment link -> paid), so duplicates and reordering are harmless.
Once the signature has passed, every outcome is acknowledged with success: a
non-2xx response would make Stripe redeliver the same event indefinitely.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import BillingError, ConfigurationError, Result
from ..documents.repository import DocumentRepository
from ..merchants.repository import MerchantRepository
from ..payments.stripe_gateway import StripeGateway
from .events import CheckoutCompleted, PaymentEvent, parse_event

logger = logging.getLogger(__name__)


class WebhookReconciler:
    """Verifies and applies processor-delivered status events"""

    def __init__(self, db: Session, gateway: StripeGateway, signing_secret: Optional[str]):
        self.db = db
        self.gateway = gateway
        self.signing_secret = signing_secret
        self.documents = DocumentRepository()
        self.merchants = MerchantRepository()

    def handle(self, raw_body: bytes, signature_header: Optional[str]) -> Result[dict]:
        """Verify the delivery, apply it, and return the acknowledgement body"""
        if not self.signing_secret:
            logger.error("❌ STRIPE_WEBHOOK_SIGNING_SECRET not configured")
            return Result.fail(ConfigurationError("Webhook signing secret missing"))

        try:
            envelope = self.gateway.construct_event(
                raw_body, signature_header or "", self.signing_secret
            )
        except BillingError as e:
            logger.warning(f"🚫 Stripe webhook rejected: {e.detail}")
            return Result.fail(e)

        event = parse_event(envelope)
        logger.info(f"📥 Stripe webhook verified: id={event.event_id} type={event.kind}")

        try:
            self._apply(event)
        except Exception as e:
            # Acknowledged anyway; see module docstring
            logger.error(f"❌ Failed to apply Stripe event {event.event_id} ({event.kind}): {e}")
            self.db.rollback()

        return Result.ok({"received": True})

    def _apply(self, event: PaymentEvent) -> None:
        if not isinstance(event, CheckoutCompleted):
            logger.info(f"ℹ️ Ignoring Stripe event {event.kind}: {event.reason}")
            return

        profile = self.merchants.get_profile_by_connected_account(self.db, event.account)
        if not profile:
            logger.error(f"❌ No merchant profile for Stripe account {event.account}")
            return

        # Scoped by merchant so a link collision across tenants cannot leak
        updated = self.documents.mark_paid_by_payment_link(
            self.db, profile.id, event.payment_link
        )
        if updated:
            logger.info(
                f"✅ Marked {updated} document(s) paid for link {event.payment_link} "
                f"(merchant {profile.id})"
            )
        else:
            logger.info(
                f"ℹ️ No unpaid document for link {event.payment_link} (merchant {profile.id})"
            )
