"""Payment settlement schemas."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class SettlementOutcome(str, Enum):
    """What a settlement callback did to its appointment."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    REFUND_REQUIRED = "refund_required"
    IGNORED = "ignored"


class CheckoutRequest(BaseModel):
    """Billing details forwarded to the hosted checkout page."""

    first_name: str = Field(default="Unknown", max_length=100)
    last_name: str = Field(default="Unknown", max_length=100)
    email: str = Field(default="no-email@domain.com", max_length=255)
    phone_number: str = Field(default="+201000000000", max_length=20)
    city: str = Field(default="Cairo", max_length=100)
    country: str = Field(default="EGY", max_length=3)


class CheckoutResponse(BaseModel):
    """Where to send the patient to pay."""

    appointment_id: UUID
    redirect_url: str
    external_order_id: str


class SettlementCallbackResponse(BaseModel):
    """Acknowledgement returned to the payment provider."""

    received: bool = True
    appointment_id: UUID
    outcome: SettlementOutcome
