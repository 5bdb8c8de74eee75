"""Slot listing schemas."""

from datetime import date
from uuid import UUID

from pydantic import BaseModel


class DaySlots(BaseModel):
    """Free slots for one calendar day, in time order."""

    date_key: str
    date: date
    times: list[str]


class AvailableSlotsResponse(BaseModel):
    """Free slots for a provider over the booking window, in day order."""

    provider_id: UUID
    window_days: int
    days: list[DaySlots]
