"""Appointment service for business logic."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
)
from app.models.appointments import appointments
from app.schemas.appointments import (
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    PaymentStatus,
    can_transition,
    sources_for,
)
from app.schemas.auth import Principal
from app.services.notification_service import NotificationService

logger = structlog.get_logger(__name__)

# Timestamp column stamped when a status is entered
_STATUS_TIMESTAMPS = {
    AppointmentStatus.CONFIRMED: "confirmed_at",
    AppointmentStatus.CANCELLED: "cancelled_at",
    AppointmentStatus.COMPLETED: "completed_at",
}


def to_minor_units(amount: Decimal | str | float) -> int:
    """Convert a money amount to integer minor units (cents / piastres)."""
    return int((Decimal(str(amount)) * 100).to_integral_value())


class AppointmentService:
    """Service for appointment records and their status lifecycle."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def get_record(self, appointment_id: UUID) -> dict | None:
        """Load an appointment row without access checks."""
        result = await self.db.execute(
            select(appointments).where(appointments.c.id == appointment_id)
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def require_record(self, appointment_id: UUID) -> dict:
        """Load an appointment row or raise NotFoundException."""
        record = await self.get_record(appointment_id)
        if not record:
            raise NotFoundException("Appointment not found")
        return record

    @staticmethod
    def check_access(record: dict, principal: Principal) -> None:
        """
        Ensure the caller may act on an appointment.

        Patients see their own records, providers see appointments booked
        with them, administrators see everything.

        Raises:
            ForbiddenException: If the caller does not own the record
        """
        if principal.is_admin:
            return
        if principal.is_provider and record["provider_id"] == principal.id:
            return
        if not principal.is_provider and record["patient_id"] == principal.id:
            return
        raise ForbiddenException("Access denied to this appointment")

    async def get_appointment(
        self,
        appointment_id: UUID,
        principal: Principal,
    ) -> AppointmentResponse:
        """
        Get appointment by ID.

        Args:
            appointment_id: Appointment ID
            principal: Requesting caller

        Returns:
            Appointment details

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If caller doesn't have access
        """
        record = await self.require_record(appointment_id)
        self.check_access(record, principal)
        return AppointmentResponse.model_validate(record)

    async def list_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """
        List appointments with filtering and pagination.

        Args:
            filters: Filter and pagination parameters; callers scope the
                query by setting ``patient_id`` or ``provider_id``

        Returns:
            Paginated list of appointments, newest first
        """
        conditions = []

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.payment_status:
            conditions.append(appointments.c.payment_status == filters.payment_status.value)

        if filters.patient_id:
            conditions.append(appointments.c.patient_id == filters.patient_id)

        if filters.provider_id:
            conditions.append(appointments.c.provider_id == filters.provider_id)

        if filters.slot_date:
            conditions.append(appointments.c.slot_date == filters.slot_date)

        count_stmt = select(func.count()).select_from(appointments).where(*conditions)
        total = (await self.db.execute(count_stmt)).scalar() or 0

        offset = (filters.page - 1) * filters.page_size

        stmt = (
            select(appointments)
            .where(*conditions)
            .order_by(appointments.c.created_at.desc(), appointments.c.id)
            .limit(filters.page_size)
            .offset(offset)
        )

        rows = (await self.db.execute(stmt)).mappings().all()
        items = [AppointmentResponse.model_validate(dict(row)) for row in rows]

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=items,
        )

    async def apply_transition(
        self,
        appointment_id: UUID,
        target: AppointmentStatus,
        values: dict[str, Any] | None = None,
        *,
        expected: list[AppointmentStatus] | None = None,
    ) -> dict:
        """
        Move an appointment to ``target`` if its current status allows it.

        The status check and the write are one conditional UPDATE, so two
        callers racing on the same record cannot both succeed. Nothing is
        committed here; the caller owns the transaction.

        Args:
            appointment_id: Appointment ID
            target: Status to move to
            values: Extra columns to write with the status change
            expected: Narrower set of source statuses than the lifecycle allows

        Returns:
            The updated row

        Raises:
            NotFoundException: If appointment not found
            InvalidTransitionException: If the current status does not allow it
        """
        allowed = sources_for(target)
        if expected is not None:
            allowed = [status for status in expected if can_transition(status, target)]

        now = datetime.now(UTC)
        update_values: dict[str, Any] = {
            **(values or {}),
            "status": target.value,
            "updated_at": now,
        }
        if target in _STATUS_TIMESTAMPS:
            update_values[_STATUS_TIMESTAMPS[target]] = now

        result = await self.db.execute(
            update(appointments)
            .where(
                appointments.c.id == appointment_id,
                appointments.c.status.in_([status.value for status in allowed]),
            )
            .values(**update_values)
        )

        record = await self.require_record(appointment_id)
        if result.rowcount == 0:
            logger.info(
                "appointment_transition_rejected",
                appointment_id=str(appointment_id),
                current=record["status"],
                target=target.value,
            )
            raise InvalidTransitionException(
                f"Cannot change appointment from {record['status']} to {target.value}"
            )

        logger.info(
            "appointment_transitioned",
            appointment_id=str(appointment_id),
            target=target.value,
        )
        return record

    async def update_payment_fields(
        self,
        appointment_id: UUID,
        values: dict[str, Any],
        *,
        only_status: AppointmentStatus | None = None,
    ) -> bool:
        """
        Write payment sub-state columns without changing the lifecycle status.

        Returns:
            True if the row was updated
        """
        conditions = [appointments.c.id == appointment_id]
        if only_status is not None:
            conditions.append(appointments.c.status == only_status.value)

        result = await self.db.execute(
            update(appointments)
            .where(*conditions)
            .values(**values, updated_at=datetime.now(UTC))
        )
        return bool(result.rowcount)

    async def complete_appointment(
        self,
        appointment_id: UUID,
        principal: Principal,
    ) -> AppointmentResponse:
        """
        Mark a confirmed appointment as rendered.

        Only the provider the appointment is booked with, or an administrator,
        may do this.
        """
        record = await self.require_record(appointment_id)
        is_owner = principal.is_provider and record["provider_id"] == principal.id
        if not (principal.is_admin or is_owner):
            raise ForbiddenException("Only the provider can complete this appointment")

        try:
            record = await self.apply_transition(appointment_id, AppointmentStatus.COMPLETED)
        except InvalidTransitionException:
            await self.db.rollback()
            raise
        await self.db.commit()

        await NotificationService.send_appointment_status_notification(record)

        return AppointmentResponse.model_validate(record)

    async def status_counts(self, provider_id: UUID | None = None) -> dict[str, int]:
        """Count appointments per status, optionally for one provider."""
        stmt = select(appointments.c.status, func.count()).group_by(appointments.c.status)
        if provider_id is not None:
            stmt = stmt.where(appointments.c.provider_id == provider_id)
        counts = {status.value: 0 for status in AppointmentStatus}
        for status, count in (await self.db.execute(stmt)).all():
            counts[status] = count
        return counts

    async def count_patients(self, provider_id: UUID | None = None) -> int:
        """Count distinct patients who ever booked."""
        stmt = select(func.count(func.distinct(appointments.c.patient_id)))
        if provider_id is not None:
            stmt = stmt.where(appointments.c.provider_id == provider_id)
        return (await self.db.execute(stmt)).scalar() or 0

    async def provider_earnings(self, provider_id: UUID) -> Decimal:
        """
        Money collected for a provider's kept appointments.

        Paid appointments that were later cancelled are not earnings.
        """
        stmt = select(func.coalesce(func.sum(appointments.c.paid_amount), 0)).where(
            appointments.c.provider_id == provider_id,
            appointments.c.payment_status == PaymentStatus.PAID.value,
            appointments.c.status.in_(
                [AppointmentStatus.CONFIRMED.value, AppointmentStatus.COMPLETED.value]
            ),
        )
        return Decimal((await self.db.execute(stmt)).scalar() or 0)
