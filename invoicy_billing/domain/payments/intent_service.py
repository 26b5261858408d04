"""Payment intent factory - Fee-split payment intents for one document"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

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
from .amounts import Number, platform_fee, to_minor_units
from .stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)


class PaymentIntentFactory:
    """
    Creates a Stripe payment intent routed to the document owner's connected account.

    Every call creates a new intent; there is no deduplication per document. Intents
    stay inert until the payer confirms them, and abandoned ones are never cleaned up.
    """

    def __init__(self, db: Session, gateway: StripeGateway, fee_rate: Number):
        self.db = db
        self.gateway = gateway
        self.fee_rate = fee_rate
        self.documents = DocumentRepository()
        self.merchants = MerchantRepository()

    def create(self, document_id: str) -> Result[str]:
        """Create an intent for the document and return its client secret"""
        if not document_id:
            return Result.fail(ValidationError("documentId is required"))

        try:
            document = self.documents.get_document(self.db, document_id)
            if not document:
                return Result.fail(NotFoundError("Document not found"))

            profile = self.merchants.get_profile(self.db, document.merchant_id)
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to load document {document_id} for payment: {e}")
            return Result.fail(UpstreamError(str(e)))

        if not profile or not profile.connected_account_id:
            logger.warning(f"⚠️ Merchant {document.merchant_id} has no connected account")
            return Result.fail(
                PreconditionFailedError("Business has not connected a Stripe account.")
            )

        amount = to_minor_units(document.total_amount)
        fee = platform_fee(amount, self.fee_rate)

        try:
            intent = self.gateway.create_payment_intent(
                amount=amount,
                currency=(document.currency or "usd").lower(),
                application_fee_amount=fee,
                destination_account=profile.connected_account_id,
                metadata={"document_id": document.id, "merchant_id": document.merchant_id},
            )
        except BillingError as e:
            return Result.fail(e)

        logger.info(
            f"✅ Created payment intent {intent.id} for document {document.id}: "
            f"amount={amount} fee={fee}"
        )
        return Result.ok(intent.client_secret)
