"""In-memory test doubles"""

import itertools

from invoicy_billing.domain.payments.stripe_gateway import (
    CreatedIntent,
    CreatedLink,
    StripeGateway,
)
from invoicy_billing.errors import UpstreamError


class FakeStripeGateway(StripeGateway):
    """
    In-memory Stripe double.

    Only the remote calls are replaced; webhook verification is inherited, so signed
    test deliveries go through the real Stripe SDK check.
    """

    def __init__(self):
        super().__init__("sk_test_fake")
        self.calls = []
        self.fail_on = set()
        self.charges_enabled = False
        self._ids = itertools.count(1)

    def _record(self, call: str, /, **kwargs) -> int:
        self.calls.append((call, kwargs))
        if call in self.fail_on:
            raise UpstreamError(f"{call} failed")
        return next(self._ids)

    def calls_named(self, name: str) -> list:
        return [kwargs for call, kwargs in self.calls if call == name]

    def create_payment_intent(
        self, amount, currency, application_fee_amount, destination_account, metadata=None
    ):
        n = self._record(
            "create_payment_intent",
            amount=amount,
            currency=currency,
            application_fee_amount=application_fee_amount,
            destination_account=destination_account,
            metadata=metadata,
        )
        return CreatedIntent(id=f"pi_{n}", client_secret=f"pi_{n}_secret_test")

    def create_product(self, name, account, idempotency_key):
        n = self._record(
            "create_product", name=name, account=account, idempotency_key=idempotency_key
        )
        return f"prod_{n}"

    def create_price(self, product_id, unit_amount, currency, account, idempotency_key):
        n = self._record(
            "create_price",
            product_id=product_id,
            unit_amount=unit_amount,
            currency=currency,
            account=account,
            idempotency_key=idempotency_key,
        )
        return f"price_{n}"

    def create_payment_link(self, price_id, redirect_url, account, idempotency_key):
        n = self._record(
            "create_payment_link",
            price_id=price_id,
            redirect_url=redirect_url,
            account=account,
            idempotency_key=idempotency_key,
        )
        return CreatedLink(id=f"plink_{n}", url=f"https://buy.stripe.com/test_{n}")

    def create_connected_account(self, email, idempotency_key):
        n = self._record(
            "create_connected_account", email=email, idempotency_key=idempotency_key
        )
        return f"acct_{n}"

    def retrieve_charges_enabled(self, account_id):
        self._record("retrieve_charges_enabled", account_id=account_id)
        return self.charges_enabled

    def create_onboarding_link(self, account_id, refresh_url, return_url):
        self._record(
            "create_onboarding_link",
            account_id=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
        )
        return f"https://connect.stripe.com/setup/{account_id}"
