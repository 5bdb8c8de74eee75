"""Create providers, appointments and slot_reservations tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "providers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("speciality", sa.String(length=200), nullable=True),
        sa.Column("degree", sa.String(length=200), nullable=True),
        sa.Column("experience", sa.String(length=100), nullable=True),
        sa.Column("about", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("fee", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("available", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("address_line1", sa.Text(), server_default="", nullable=False),
        sa.Column("address_line2", sa.Text(), server_default="", nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.CheckConstraint("kind IN ('doctor', 'lab')", name="ck_providers_kind"),
        sa.CheckConstraint("fee >= 0", name="ck_providers_fee_non_negative"),
        sa.PrimaryKeyConstraint("id", name="pk_providers"),
        sa.UniqueConstraint("email", name="uq_providers_email"),
    )
    op.create_index("ix_providers_kind", "providers", ["kind"])
    op.create_index("ix_providers_speciality", "providers", ["speciality"])
    op.create_index("ix_providers_available", "providers", ["available"])

    op.create_table(
        "appointments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("patient_id", sa.Uuid(), nullable=False),
        sa.Column("provider_id", sa.Uuid(), nullable=False),
        sa.Column("provider_kind", sa.String(length=20), nullable=False),
        sa.Column("provider_name", sa.Text(), nullable=False),
        sa.Column("slot_date", sa.String(length=16), nullable=False),
        sa.Column("slot_time", sa.String(length=8), nullable=False),
        sa.Column("amount", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column(
            "status", sa.String(length=20), server_default="pending_payment", nullable=False
        ),
        sa.Column(
            "payment_status", sa.String(length=20), server_default="not_paid", nullable=False
        ),
        sa.Column("payment_method", sa.String(length=20), nullable=True),
        sa.Column("external_order_id", sa.String(length=64), nullable=True),
        sa.Column("transaction_id", sa.String(length=64), nullable=True),
        sa.Column("paid_amount", sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by", sa.String(length=20), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending_payment', 'confirmed', 'cancelled', 'completed')",
            name="ck_appointments_status",
        ),
        sa.CheckConstraint(
            "payment_status IN ('not_paid', 'processing', 'paid', 'failed', 'refunded')",
            name="ck_appointments_payment_status",
        ),
        sa.ForeignKeyConstraint(
            ["provider_id"],
            ["providers.id"],
            name="fk_appointments_provider_id_providers",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_appointments"),
    )
    op.create_index("ix_appointments_patient_id", "appointments", ["patient_id"])
    op.create_index("ix_appointments_provider_id", "appointments", ["provider_id"])
    op.create_index("ix_appointments_status", "appointments", ["status"])
    op.create_index("ix_appointments_external_order_id", "appointments", ["external_order_id"])
    op.create_index(
        "ix_appointments_provider_slot",
        "appointments",
        ["provider_id", "slot_date", "slot_time"],
    )

    # The unique slot constraint is what makes reservations atomic
    op.create_table(
        "slot_reservations",
        sa.Column("provider_id", sa.Uuid(), nullable=False),
        sa.Column("slot_date", sa.String(length=16), nullable=False),
        sa.Column("slot_time", sa.String(length=8), nullable=False),
        sa.Column("appointment_id", sa.Uuid(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.ForeignKeyConstraint(
            ["provider_id"],
            ["providers.id"],
            name="fk_slot_reservations_provider_id_providers",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["appointment_id"],
            ["appointments.id"],
            name="fk_slot_reservations_appointment_id_appointments",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "provider_id", "slot_date", "slot_time", name="uq_slot_reservations_slot"
        ),
        sa.UniqueConstraint("appointment_id", name="uq_slot_reservations_appointment_id"),
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table("slot_reservations")
    op.drop_index("ix_appointments_provider_slot", table_name="appointments")
    op.drop_index("ix_appointments_external_order_id", table_name="appointments")
    op.drop_index("ix_appointments_status", table_name="appointments")
    op.drop_index("ix_appointments_provider_id", table_name="appointments")
    op.drop_index("ix_appointments_patient_id", table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("ix_providers_available", table_name="providers")
    op.drop_index("ix_providers_speciality", table_name="providers")
    op.drop_index("ix_providers_kind", table_name="providers")
    op.drop_table("providers")
