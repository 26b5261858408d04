"""
Billing error taxonomy and the Result value returned by every public operation.

Client-facing kinds (validation, not found, precondition, signature) carry a
human-readable message. Server-side kinds (upstream, configuration) expose a generic
message; the detail is only logged.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class BillingError(Exception):
    """Base class for billing failures"""

    status_code = 500
    public_message = "Internal server error"
    expose_detail = False

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.public_message)
        self.detail = detail or self.public_message

    @property
    def message(self) -> str:
        """Message safe to return to the caller"""
        return self.detail if self.expose_detail else self.public_message

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500


class ValidationError(BillingError):
    """Missing or malformed required input"""

    status_code = 400
    expose_detail = True


class NotFoundError(BillingError):
    """Document or profile absent"""

    status_code = 404
    expose_detail = True


class PreconditionFailedError(BillingError):
    """Merchant has not completed processor onboarding"""

    status_code = 412
    expose_detail = True


class SignatureError(BillingError):
    """Webhook signature verification failed"""

    status_code = 400
    expose_detail = True


class UpstreamError(BillingError):
    """Payment processor or store call failed"""

    status_code = 502
    public_message = "Upstream service error"


class ConfigurationError(BillingError):
    """A required secret or setting is missing"""

    status_code = 500
    public_message = "Server configuration error"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Success value or one BillingError, never both"""

    value: Optional[T] = None
    error: Optional[BillingError] = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: BillingError) -> "Result[T]":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None
