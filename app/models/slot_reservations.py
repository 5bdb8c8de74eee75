"""Slot ledger table model using SQLAlchemy Core.

One row per reserved (provider, date-key, time-label). The unique constraint
is the atomic add-if-absent primitive: a second insert for the same slot
fails inside the database instead of in application code.
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    String,
    Table,
    UniqueConstraint,
    Uuid,
    func,
)

from app.models.base import metadata

slot_reservations = Table(
    "slot_reservations",
    metadata,
    Column(
        "provider_id",
        Uuid,
        ForeignKey("providers.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("slot_date", String(16), nullable=False),
    Column("slot_time", String(8), nullable=False),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("provider_id", "slot_date", "slot_time", name="uq_slot_reservations_slot"),
)
