"""Stripe webhook router"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...config import STRIPE_WEBHOOK_SIGNING_SECRET
from ...database import get_service_db
from ...responses import error_response
from ..payments.router import get_stripe_gateway
from ..payments.stripe_gateway import StripeGateway
from .reconciler import WebhookReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def get_webhook_reconciler(
    db: Session = Depends(get_service_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> WebhookReconciler:
    """Events span every tenant, so the reconciler runs on the service session"""
    return WebhookReconciler(db, gateway, STRIPE_WEBHOOK_SIGNING_SECRET)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    """
    Receive a Stripe event.

    The raw body is read before any parsing; signature verification needs the exact bytes.
    """
    raw_body = await request.body()
    signature = request.headers.get("Stripe-Signature")

    result = await asyncio.to_thread(reconciler.handle, raw_body, signature)
    if not result.is_ok:
        return error_response(result.error)
    return result.value
