"""Track checkout start and payments owed back after cancellation.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 12:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OLD_PAYMENT_STATUSES = "('not_paid', 'processing', 'paid', 'failed', 'refunded')"
NEW_PAYMENT_STATUSES = "('not_paid', 'processing', 'paid', 'failed', 'refund_due', 'refunded')"


def upgrade() -> None:
    """Upgrade database schema."""
    # Batch mode so the constraint swap also works on SQLite
    with op.batch_alter_table("appointments") as batch_op:
        batch_op.add_column(
            sa.Column("checkout_started_at", sa.DateTime(timezone=True), nullable=True)
        )
        batch_op.drop_constraint("ck_appointments_payment_status", type_="check")
        batch_op.create_check_constraint(
            "ck_appointments_payment_status",
            f"payment_status IN {NEW_PAYMENT_STATUSES}",
        )

    # Existing checkouts: best available start is the last update
    op.execute(
        "UPDATE appointments SET checkout_started_at = updated_at "
        "WHERE payment_status = 'processing'"
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.execute(
        "UPDATE appointments SET payment_status = 'paid' WHERE payment_status = 'refund_due'"
    )
    with op.batch_alter_table("appointments") as batch_op:
        batch_op.drop_constraint("ck_appointments_payment_status", type_="check")
        batch_op.create_check_constraint(
            "ck_appointments_payment_status",
            f"payment_status IN {OLD_PAYMENT_STATUSES}",
        )
        batch_op.drop_column("checkout_started_at")
