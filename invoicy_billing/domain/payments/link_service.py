"""Payment link issuer - Hosted payment links for one document"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...database import set_rls_context
from ...errors import (
    BillingError,
    NotFoundError,
    PreconditionFailedError,
    Result,
    UpstreamError,
    ValidationError,
)
from ..documents.repository import DocumentRepository
from ..merchants.repository import MerchantRepository
from .amounts import to_minor_units
from .stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

ONBOARDING_REQUIRED_MESSAGE = (
    "Stripe account not connected. Finish payment setup under Settings "
    "before creating payment links."
)


class PaymentLinkIssuer:
    """
    Creates product -> price -> payment link on the merchant's connected account.

    The three calls are not atomic. Each carries an idempotency key derived from the
    document, amount and currency, so retrying a failed issuance within Stripe's
    idempotency window reuses the product and price from the earlier attempt instead
    of leaving them orphaned. Outside that window an orphan can still remain.
    """

    def __init__(self, db: Session, gateway: StripeGateway, app_url: str):
        self.db = db
        self.gateway = gateway
        self.app_url = app_url
        self.documents = DocumentRepository()
        self.merchants = MerchantRepository()

    def create(
        self, document_id: str, connected_account_id: str, merchant_id: Optional[str] = None
    ) -> Result[str]:
        """Issue a payment link for the document and return its URL"""
        if not connected_account_id:
            return Result.fail(PreconditionFailedError(ONBOARDING_REQUIRED_MESSAGE))
        if not document_id:
            return Result.fail(ValidationError("invoice.id is required"))

        try:
            if merchant_id is not None:
                set_rls_context(self.db, merchant_id)
            document = self.documents.get_document(self.db, document_id, merchant_id)
            if not document:
                return Result.fail(NotFoundError("Document not found"))
            profile = self.merchants.get_profile(self.db, document.merchant_id)
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to load document {document_id} for payment link: {e}")
            return Result.fail(UpstreamError(str(e)))

        if not profile or profile.connected_account_id != connected_account_id:
            logger.warning(
                f"⚠️ Account {connected_account_id} does not belong to "
                f"merchant {document.merchant_id}"
            )
            return Result.fail(
                PreconditionFailedError("Stripe account does not match this business.")
            )

        amount = to_minor_units(document.total_amount)
        currency = (document.currency or "usd").lower()
        key_prefix = f"payment-link:{document.id}:{amount}:{currency}"

        try:
            product_id = self.gateway.create_product(
                name=f"Invoice {document.document_number}",
                account=connected_account_id,
                idempotency_key=f"{key_prefix}:product",
            )
            price_id = self.gateway.create_price(
                product_id=product_id,
                unit_amount=amount,
                currency=currency,
                account=connected_account_id,
                idempotency_key=f"{key_prefix}:price",
            )
            link = self.gateway.create_payment_link(
                price_id=price_id,
                redirect_url=f"{self.app_url}/payment-success?invoice_id={document.id}",
                account=connected_account_id,
                idempotency_key=f"{key_prefix}:link",
            )
        except BillingError as e:
            return Result.fail(e)

        try:
            self.documents.set_payment_link(self.db, document, link.id, link.url)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to persist payment link {link.id} on {document.id}: {e}")
            return Result.fail(UpstreamError(str(e)))

        logger.info(f"✅ Payment link {link.id} issued for document {document.id}")
        return Result.ok(link.url)
