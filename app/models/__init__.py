"""Database models."""

from app.models.appointments import appointments
from app.models.base import metadata
from app.models.providers import providers
from app.models.slot_reservations import slot_reservations

__all__ = [
    "appointments",
    "metadata",
    "providers",
    "slot_reservations",
]
