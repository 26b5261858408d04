"""Typed Stripe events - parsed once at the webhook boundary"""

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel

CHECKOUT_COMPLETED = "checkout.session.completed"


class CheckoutCompleted(BaseModel):
    """A hosted checkout finished on a merchant's connected account"""

    kind: Literal["checkout.session.completed"] = CHECKOUT_COMPLETED
    event_id: Optional[str] = None
    payment_link: str
    account: str


class Unhandled(BaseModel):
    """Any event this service does not act on, including malformed known kinds"""

    kind: str
    event_id: Optional[str] = None
    reason: str = "unhandled event type"


PaymentEvent = Union[CheckoutCompleted, Unhandled]


def _reference_id(value) -> Optional[str]:
    """Stripe references arrive as an ID string or an expanded object"""
    if isinstance(value, str) and value:
        return value
    if isinstance(value, dict) and isinstance(value.get("id"), str) and value["id"]:
        return value["id"]
    return None


def parse_event(event: Any) -> PaymentEvent:
    """Map a verified Stripe event envelope to a PaymentEvent; unknown shapes fail closed"""
    if not isinstance(event, dict):
        return Unhandled(kind="unknown", reason="event body is not a JSON object")

    kind = event.get("type")
    event_id = event.get("id") if isinstance(event.get("id"), str) else None
    if not isinstance(kind, str) or not kind:
        return Unhandled(kind="unknown", event_id=event_id, reason="missing event type")

    if kind != CHECKOUT_COMPLETED:
        return Unhandled(kind=kind, event_id=event_id)

    data = event.get("data")
    session = data.get("object") if isinstance(data, dict) else None
    if not isinstance(session, dict):
        return Unhandled(kind=kind, event_id=event_id, reason="missing checkout session")

    payment_link = _reference_id(session.get("payment_link"))
    if not payment_link:
        return Unhandled(kind=kind, event_id=event_id, reason="checkout not from a payment link")

    account = event.get("account")
    if not isinstance(account, str) or not account:
        return Unhandled(kind=kind, event_id=event_id, reason="missing connected account")

    return CheckoutCompleted(event_id=event_id, payment_link=payment_link, account=account)
