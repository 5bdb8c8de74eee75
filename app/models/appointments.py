"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from app.models.base import metadata

appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True),
    # Ownership / references
    Column("patient_id", Uuid, nullable=False, index=True),
    Column(
        "provider_id",
        Uuid,
        ForeignKey("providers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    ),
    # Snapshot fields (denormalized for history)
    Column("provider_kind", String(20), nullable=False),
    Column("provider_name", Text, nullable=False),
    # Slot
    Column("slot_date", String(16), nullable=False),
    Column("slot_time", String(8), nullable=False),
    # Price is copied from the provider fee at booking time and never updated
    Column("amount", Numeric(10, 2), nullable=False),
    Column("currency", String(3), nullable=False),
    # Status management
    Column("status", String(20), nullable=False, server_default="pending_payment", index=True),
    Column("payment_status", String(20), nullable=False, server_default="not_paid"),
    Column("payment_method", String(20), nullable=True),
    Column("external_order_id", String(64), nullable=True, index=True),
    # Latest hosted checkout; the gateway payment key expires a hold period after it
    Column("checkout_started_at", DateTime(timezone=True), nullable=True),
    Column("transaction_id", String(64), nullable=True),
    Column("paid_amount", Numeric(10, 2), nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    Column("cancelled_by", String(20), nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("confirmed_at", DateTime(timezone=True), nullable=True),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    # Constraints
    CheckConstraint(
        "status IN ('pending_payment', 'confirmed', 'cancelled', 'completed')",
        name="status",
    ),
    CheckConstraint(
        "payment_status IN "
        "('not_paid', 'processing', 'paid', 'failed', 'refund_due', 'refunded')",
        name="payment_status",
    ),
    Index("ix_appointments_provider_slot", "provider_id", "slot_date", "slot_time"),
)
