"""Stripe gateway - Integration with the Stripe API on behalf of connected accounts"""

import json
import logging
from typing import Any, NamedTuple, Optional

import stripe

from ...errors import ConfigurationError, SignatureError, UpstreamError

logger = logging.getLogger(__name__)


class CreatedIntent(NamedTuple):
    id: str
    client_secret: str


class CreatedLink(NamedTuple):
    id: str
    url: str


class StripeGateway:
    """
    Service for Stripe API operations.

    The API key is injected per instance and passed on every request; nothing is
    written to the module-level `stripe.api_key`.
    """

    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    def _require_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("STRIPE_API_KEY is not configured")
        return self.api_key

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        application_fee_amount: int,
        destination_account: str,
        metadata: Optional[dict] = None,
    ) -> CreatedIntent:
        """Create a destination charge intent with the platform fee retained"""
        api_key = self._require_key()
        try:
            intent = stripe.PaymentIntent.create(
                api_key=api_key,
                amount=amount,
                currency=currency,
                automatic_payment_methods={"enabled": True},
                application_fee_amount=application_fee_amount,
                transfer_data={"destination": destination_account},
                metadata=metadata or {},
            )
            return CreatedIntent(id=intent.id, client_secret=intent.client_secret)
        except stripe.StripeError as e:
            logger.error(f"Failed to create payment intent for {destination_account}: {e}")
            raise UpstreamError(f"Stripe payment intent creation failed: {e}") from e

    def create_product(self, name: str, account: str, idempotency_key: str) -> str:
        """Create a product on the connected account"""
        api_key = self._require_key()
        try:
            product = stripe.Product.create(
                api_key=api_key,
                stripe_account=account,
                idempotency_key=idempotency_key,
                name=name,
            )
            return product.id
        except stripe.StripeError as e:
            logger.error(f"Failed to create product '{name}' on {account}: {e}")
            raise UpstreamError(f"Stripe product creation failed: {e}") from e

    def create_price(
        self, product_id: str, unit_amount: int, currency: str, account: str, idempotency_key: str
    ) -> str:
        """Create a one-off price for a product on the connected account"""
        api_key = self._require_key()
        try:
            price = stripe.Price.create(
                api_key=api_key,
                stripe_account=account,
                idempotency_key=idempotency_key,
                product=product_id,
                unit_amount=unit_amount,
                currency=currency,
            )
            return price.id
        except stripe.StripeError as e:
            logger.error(f"Failed to create price for product {product_id} on {account}: {e}")
            raise UpstreamError(f"Stripe price creation failed: {e}") from e

    def create_payment_link(
        self, price_id: str, redirect_url: str, account: str, idempotency_key: str
    ) -> CreatedLink:
        """Create a single-line-item payment link redirecting on completion"""
        api_key = self._require_key()
        try:
            link = stripe.PaymentLink.create(
                api_key=api_key,
                stripe_account=account,
                idempotency_key=idempotency_key,
                line_items=[{"price": price_id, "quantity": 1}],
                after_completion={"type": "redirect", "redirect": {"url": redirect_url}},
            )
            return CreatedLink(id=link.id, url=link.url)
        except stripe.StripeError as e:
            logger.error(f"Failed to create payment link for price {price_id} on {account}: {e}")
            raise UpstreamError(f"Stripe payment link creation failed: {e}") from e

    def create_connected_account(self, email: str, idempotency_key: str) -> str:
        """Create an express connected account keyed by email"""
        api_key = self._require_key()
        try:
            account = stripe.Account.create(
                api_key=api_key,
                idempotency_key=idempotency_key,
                type="express",
                email=email,
            )
            return account.id
        except stripe.StripeError as e:
            logger.error(f"Failed to create connected account: {e}")
            raise UpstreamError(f"Stripe account creation failed: {e}") from e

    def retrieve_charges_enabled(self, account_id: str) -> bool:
        """Whether the connected account can accept charges"""
        api_key = self._require_key()
        try:
            account = stripe.Account.retrieve(account_id, api_key=api_key)
            return bool(account.charges_enabled)
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve connected account {account_id}: {e}")
            raise UpstreamError(f"Stripe account retrieval failed: {e}") from e

    def create_onboarding_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        """Create a fresh account onboarding link"""
        api_key = self._require_key()
        try:
            account_link = stripe.AccountLink.create(
                api_key=api_key,
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            )
            return account_link.url
        except stripe.StripeError as e:
            logger.error(f"Failed to create onboarding link for {account_id}: {e}")
            raise UpstreamError(f"Stripe account link creation failed: {e}") from e

    def construct_event(self, payload: bytes, signature_header: str, secret: str) -> Any:
        """
        Verify a webhook delivery and return its decoded JSON body.

        The body is returned as-is once the signature holds, even when it is not a JSON
        object; the event parser decides what to do with its shape.

        Raises:
            SignatureError: missing header, signature mismatch, stale timestamp or
                a body that is not UTF-8 JSON
        """
        if not signature_header:
            raise SignatureError("Missing Stripe-Signature header")
        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(body, signature_header, secret)
        except stripe.SignatureVerificationError as e:
            raise SignatureError(f"Invalid webhook signature: {e.user_message or e}") from e
        except ValueError as e:
            raise SignatureError("Invalid webhook payload") from e

        try:
            return json.loads(body)
        except ValueError as e:
            raise SignatureError("Invalid webhook payload") from e
