"""Appointment schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer, field_validator

from app.core.slot_calendar import parse_date_key, parse_time_label


class AppointmentStatus(str, Enum):
    """Appointment lifecycle status."""

    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    """Payment sub-state of an appointment."""

    NOT_PAID = "not_paid"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    # Captured after the appointment was cancelled; owed back to the patient
    REFUND_DUE = "refund_due"
    REFUNDED = "refunded"


class ActorRole(str, Enum):
    """Who triggered a status change."""

    PATIENT = "patient"
    ADMIN = "admin"
    PROVIDER = "provider"
    PAYMENT = "payment"
    SYSTEM = "system"


# Lifecycle: every status change must appear here
ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING_PAYMENT: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    """Check whether ``current -> target`` is an allowed status change."""
    return target in ALLOWED_TRANSITIONS[current]


def sources_for(target: AppointmentStatus) -> list[AppointmentStatus]:
    """Statuses from which ``target`` can be reached."""
    return [status for status, targets in ALLOWED_TRANSITIONS.items() if target in targets]


class AppointmentCreate(BaseModel):
    """Schema for reserving a slot."""

    provider_id: UUID
    slot_date: str = Field(..., min_length=5, max_length=16, examples=["5_6_2025"])
    slot_time: str = Field(..., min_length=4, max_length=5, examples=["14:30"])

    @field_validator("slot_date")
    @classmethod
    def validate_slot_date(cls, v: str) -> str:
        """Validate the date key format."""
        parse_date_key(v)
        return v

    @field_validator("slot_time")
    @classmethod
    def validate_slot_time(cls, v: str) -> str:
        """Validate the time label format."""
        parse_time_label(v)
        return v


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=500)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    patient_id: UUID
    provider_id: UUID
    provider_kind: str
    provider_name: str
    slot_date: str
    slot_time: str
    amount: Decimal
    currency: str
    status: AppointmentStatus
    payment_status: PaymentStatus
    payment_method: str | None = None
    external_order_id: str | None = None
    checkout_started_at: datetime | None = None
    transaction_id: str | None = None
    paid_amount: Decimal | None = None
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    created_at: datetime
    updated_at: datetime
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_serializer("amount", "paid_amount", when_used="json")
    def serialize_decimal(self, value: Decimal | None) -> float | None:
        """Serialize Decimal to float for JSON."""
        return float(value) if value is not None else None


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    payment_status: PaymentStatus | None = None
    patient_id: UUID | None = None
    provider_id: UUID | None = None
    slot_date: str | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)
