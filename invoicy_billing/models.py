"""
Billing document, merchant profile and scheduler lease models
"""

import enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a unique id for documents"""
    return str(uuid.uuid4())


class DocumentKind(str, enum.Enum):
    INVOICE = "invoice"
    QUOTE = "quote"


class DocumentStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    VOID = "void"


class RecurrenceFrequency(str, enum.Enum):
    MONTHLY = "monthly"


class BillingDocument(Base):
    """Invoice or quote issued by a merchant; a template when it carries a recurrence rule"""

    __tablename__ = "billing_documents"
    __table_args__ = (
        UniqueConstraint("merchant_id", "document_number", name="uq_documents_merchant_number"),
        # At most one generated occurrence per template per period
        UniqueConstraint(
            "source_document_id", "recurrence_period", name="uq_documents_source_period"
        ),
        Index("ix_documents_merchant_payment_link", "merchant_id", "payment_link_id"),
        CheckConstraint(
            "recurrence_anchor_day BETWEEN 1 AND 31", name="ck_documents_anchor_day"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    # Owning merchant (= MerchantProfile.id); never reassigned after creation
    merchant_id = Column(String(128), nullable=False, index=True)

    kind = Column(String(20), nullable=False, default=DocumentKind.INVOICE.value)
    status = Column(String(20), nullable=False, default=DocumentStatus.DRAFT.value)
    document_number = Column(String(50), nullable=False)

    # Recurrence rule; a non-null frequency marks the document as a template
    recurrence_frequency = Column(String(20), nullable=True, index=True)
    recurrence_anchor_day = Column(Integer, nullable=True)

    # Set only on occurrences generated from a template
    source_document_id = Column(String(36), nullable=True)
    recurrence_period = Column(String(7), nullable=True)  # YYYY-MM

    # Content copied verbatim into generated occurrences
    customer = Column(JSON, nullable=True)
    line_items = Column(JSON, default=list)
    company = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    # Pricing (flat tax percentage already applied upstream)
    subtotal = Column(Float, default=0)
    tax_amount = Column(Float, default=0)
    total_amount = Column(Float, nullable=False)
    currency = Column(String(10), default="usd")

    # Stripe payment link (last write wins)
    payment_link_id = Column(String(255), nullable=True)
    payment_link_url = Column(String(500), nullable=True)

    # Dates
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)

    # Audit
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_template(self) -> bool:
        return self.recurrence_frequency is not None


class MerchantProfile(Base):
    """Merchant (service provider) profile; id is the authenticated user id"""

    __tablename__ = "merchant_profiles"

    id = Column(String(128), primary_key=True)
    email = Column(String(255), nullable=True)
    company_name = Column(String(255), nullable=True)

    # Stripe connected account; set once and never overwritten
    connected_account_id = Column(String(255), nullable=True, unique=True)
    onboarding_complete = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SchedulerLease(Base):
    """Single-flight lease row; one per scheduled job name"""

    __tablename__ = "scheduler_leases"

    name = Column(String(100), primary_key=True)
    holder = Column(String(64), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
