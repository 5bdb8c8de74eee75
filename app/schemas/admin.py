"""Dashboard schemas."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from app.schemas.appointments import AppointmentResponse


class AdminDashboardResponse(BaseModel):
    """Response schema for the admin dashboard counters."""

    doctors: int
    labs: int
    appointments: int
    patients: int
    appointments_by_status: dict[str, int] = Field(
        default_factory=dict,
        examples=[{"pending_payment": 3, "confirmed": 12, "cancelled": 4, "completed": 30}],
    )
    latest_appointments: list[AppointmentResponse]

    model_config = ConfigDict(from_attributes=True)


class ExpireReservationsResponse(BaseModel):
    """Result of a stale reservation sweep."""

    expired: int
    hold_minutes: int


class ProviderDashboardResponse(BaseModel):
    """Counters a doctor or lab sees for its own bookings."""

    earnings: Decimal = Field(..., description="Paid amounts of confirmed and completed visits")
    appointments: int
    patients: int
    appointments_by_status: dict[str, int] = Field(default_factory=dict)
    latest_appointments: list[AppointmentResponse]

    @field_serializer("earnings", when_used="json")
    def serialize_decimal(self, value: Decimal) -> float:
        """Serialize Decimal to float for JSON."""
        return float(value)
