"""
Webhook and internal trigger security helpers.

Stripe deliveries are verified by the Stripe SDK itself (see StripeGateway). This
module holds the primitives shared by the internal scheduler trigger and by tests
that need to produce correctly signed deliveries.
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import Header, HTTPException

from .config import SCHEDULER_TRIGGER_TOKEN

logger = logging.getLogger(__name__)


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def create_stripe_signature(secret: str, payload: bytes, timestamp: Optional[int] = None) -> str:
    """
    Create a Stripe-Signature header value for a payload.

    Stripe signs "<timestamp>.<payload>" and sends "t=<timestamp>,v1=<hex digest>".
    """
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    return f"t={timestamp},v1={compute_hmac_sha256(secret, signed_payload)}"


def verify_trigger_token(authorization: Optional[str] = Header(default=None)) -> None:
    """
    FastAPI dependency guarding the internal scheduler trigger.

    Expects `Authorization: Bearer <SCHEDULER_TRIGGER_TOKEN>`.
    """
    if not SCHEDULER_TRIGGER_TOKEN:
        logger.error("❌ SCHEDULER_TRIGGER_TOKEN not configured, refusing trigger")
        raise HTTPException(status_code=503, detail="Scheduler trigger not configured")

    scheme, _, token = (authorization or "").partition(" ")
    valid = scheme.lower() == "bearer" and constant_time_compare(
        token.strip(), SCHEDULER_TRIGGER_TOKEN
    )
    if not valid:
        logger.warning("🚫 Scheduler trigger rejected: invalid token")
        raise HTTPException(status_code=401, detail="Invalid trigger token")
