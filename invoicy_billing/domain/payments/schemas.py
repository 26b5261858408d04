"""Payments domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class PaymentIntentRequest(BaseModel):
    """Schema for creating a payment intent for one document"""

    model_config = ConfigDict(populate_by_name=True)

    document_id: Optional[str] = Field(default=None, alias="documentId")

    @field_validator("document_id")
    @classmethod
    def normalize_document_id(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class PaymentIntentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_secret: str = Field(alias="clientSecret")


class InvoiceReference(BaseModel):
    id: Optional[str] = None


class PaymentLinkRequest(BaseModel):
    """Schema for issuing a payment link; the account must be the caller's own"""

    model_config = ConfigDict(populate_by_name=True)

    invoice: InvoiceReference = Field(default_factory=InvoiceReference)
    connected_account_id: Optional[str] = Field(default=None, alias="connectedAccountId")

    @field_validator("connected_account_id")
    @classmethod
    def normalize_account(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class PaymentLinkResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_link_url: str = Field(alias="paymentLinkUrl")
