"""Provider (doctor / lab) table model using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from app.models.base import metadata

providers = Table(
    "providers",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("kind", String(20), nullable=False, index=True),
    # Identity
    Column("name", Text, nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    # Directory details
    Column("speciality", String(200), index=True),
    Column("degree", String(200)),
    Column("experience", String(100)),
    Column("about", Text),
    Column("image_url", Text),
    # Booking
    Column("fee", Numeric(10, 2), nullable=False),
    Column("available", Boolean, nullable=False, server_default=text("true"), index=True),
    # Address
    Column("address_line1", Text, nullable=False, server_default=""),
    Column("address_line2", Text, nullable=False, server_default=""),
    # Metadata
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("kind IN ('doctor', 'lab')", name="kind"),
    CheckConstraint("fee >= 0", name="fee_non_negative"),
)
