"""Authentication schemas."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class Role(str, Enum):
    """Caller roles carried in the access token."""

    PATIENT = "patient"
    ADMIN = "admin"
    DOCTOR = "doctor"
    LAB = "lab"


class Principal(BaseModel):
    """
    Authenticated caller.

    For doctor and lab tokens ``id`` is the provider id, so a provider can
    act on its own appointments.
    """

    id: UUID
    role: Role = Role.PATIENT

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_provider(self) -> bool:
        return self.role in (Role.DOCTOR, Role.LAB)
