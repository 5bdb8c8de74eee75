"""Provider schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer

# ============================================================================
# Provider Base Schemas
# ============================================================================


class ProviderKind(str, Enum):
    """Bookable provider kinds."""

    DOCTOR = "doctor"
    LAB = "lab"


class ProviderBase(BaseModel):
    """Base schema for provider."""

    kind: ProviderKind
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=255)
    speciality: str | None = Field(None, max_length=200)
    degree: str | None = Field(None, max_length=200)
    experience: str | None = Field(None, max_length=100)
    about: str | None = None
    image_url: str | None = None
    fee: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    address_line1: str = Field(default="", max_length=500)
    address_line2: str = Field(default="", max_length=500)


class ProviderCreate(ProviderBase):
    """Schema for creating a provider."""

    available: bool = True


class ProviderUpdate(BaseModel):
    """Schema for updating a provider."""

    name: str | None = Field(None, min_length=1, max_length=200)
    speciality: str | None = Field(None, max_length=200)
    degree: str | None = Field(None, max_length=200)
    experience: str | None = Field(None, max_length=100)
    about: str | None = None
    image_url: str | None = None
    fee: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    address_line1: str | None = Field(None, max_length=500)
    address_line2: str | None = Field(None, max_length=500)


class ProviderResponse(ProviderBase):
    """Provider response schema."""

    id: UUID
    available: bool
    created_at: datetime
    updated_at: datetime
    slots_booked: dict[str, list[str]] = Field(default_factory=dict)

    model_config = {"from_attributes": True}

    @field_serializer("fee", when_used="json")
    def serialize_decimal(self, value: Decimal) -> float:
        """Serialize Decimal to float for JSON."""
        return float(value)


class ProviderListResponse(BaseModel):
    """Paginated provider list."""

    total: int
    page: int
    page_size: int
    items: list[ProviderResponse]


class ProviderSelfUpdate(BaseModel):
    """Fields a doctor or lab may change on its own profile."""

    fee: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    address_line1: str | None = Field(None, max_length=500)
    address_line2: str | None = Field(None, max_length=500)
    about: str | None = None
    available: bool | None = None
