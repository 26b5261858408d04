"""Payments router - Payment intents and hosted payment links"""

import asyncio
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import CallerIdentity, get_current_user
from ...config import APP_URL, PLATFORM_FEE_RATE, STRIPE_API_KEY
from ...database import get_db, get_service_db
from ...responses import error_response
from .intent_service import PaymentIntentFactory
from .link_service import PaymentLinkIssuer
from .schemas import (
    PaymentIntentRequest,
    PaymentIntentResponse,
    PaymentLinkRequest,
    PaymentLinkResponse,
)
from .stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def get_stripe_gateway() -> StripeGateway:
    """Dependency injection for the Stripe gateway"""
    return StripeGateway(STRIPE_API_KEY)


def get_intent_factory(
    db: Session = Depends(get_service_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> PaymentIntentFactory:
    """Payers are not merchants, so the document is read with the service session"""
    return PaymentIntentFactory(db, gateway, PLATFORM_FEE_RATE)


def get_link_issuer(
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> PaymentLinkIssuer:
    return PaymentLinkIssuer(db, gateway, APP_URL)


@router.post("/intents", response_model=PaymentIntentResponse)
async def create_payment_intent(
    body: PaymentIntentRequest,
    factory: PaymentIntentFactory = Depends(get_intent_factory),
):
    """Create a fee-split payment intent and return its client secret"""
    result = await asyncio.to_thread(factory.create, body.document_id)
    if not result.is_ok:
        return error_response(result.error)
    return PaymentIntentResponse(client_secret=result.value)


@router.post("/links", response_model=PaymentLinkResponse)
async def create_payment_link(
    body: PaymentLinkRequest,
    user: CallerIdentity = Depends(get_current_user),
    issuer: PaymentLinkIssuer = Depends(get_link_issuer),
):
    """Issue a hosted payment link for one of the caller's invoices"""
    result = await asyncio.to_thread(
        issuer.create, body.invoice.id, body.connected_account_id, user.uid
    )
    if not result.is_ok:
        return error_response(result.error)
    return PaymentLinkResponse(payment_link_url=result.value)
