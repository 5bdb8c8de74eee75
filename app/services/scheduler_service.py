"""Scheduler: slot listing, reservation and release."""

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import structlog
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    InvalidTransitionException,
    NotFoundException,
    ProviderUnavailableException,
    SlotConflictException,
    ValidationException,
)
from app.core.slot_calendar import (
    SlotGrid,
    clinic_now,
    default_grid,
    format_date_key,
    parse_date_key,
)
from app.models.appointments import appointments
from app.models.providers import providers
from app.schemas.appointments import (
    ActorRole,
    AppointmentResponse,
    AppointmentStatus,
    PaymentStatus,
)
from app.schemas.auth import Principal, Role
from app.schemas.slots import AvailableSlotsResponse, DaySlots
from app.services.appointment_service import AppointmentService
from app.services.notification_service import NotificationService
from app.services.provider_service import ProviderService
from app.services.slot_ledger import SlotLedger

logger = structlog.get_logger(__name__)


def iter_available_slots(
    grid: SlotGrid,
    booked: dict[str, set[str]],
    now: datetime,
    window_days: int,
) -> Iterator[DaySlots]:
    """
    Free slots per day over a rolling window, in day then time order.

    Pure: everything it needs is passed in, so it can be re-run at will.
    A day whose every slot is taken is still yielded, with no times.
    """
    for day in grid.window(now, window_days):
        date_key = format_date_key(day)
        taken = booked.get(date_key, set())
        yield DaySlots(
            date_key=date_key,
            date=day,
            times=[label for label in grid.day_labels(day, now) if label not in taken],
        )


def actor_for(principal: Principal) -> ActorRole:
    """Map a caller role to the actor recorded on a cancellation."""
    if principal.role == Role.ADMIN:
        return ActorRole.ADMIN
    if principal.role in (Role.DOCTOR, Role.LAB):
        return ActorRole.PROVIDER
    return ActorRole.PATIENT


class SchedulerService:
    """Service that turns provider availability into reservations."""

    def __init__(
        self,
        db: AsyncSession,
        provider_service: ProviderService | None = None,
        grid: SlotGrid | None = None,
        clock: Callable[[], datetime] = clinic_now,
    ):
        """
        Initialize scheduler.

        Args:
            db: Database session
            provider_service: Provider directory (cached reads)
            grid: Daily slot grid; defaults to the configured opening hours
            clock: Returns the current clinic-local time
        """
        self.db = db
        self.providers = provider_service or ProviderService()
        self.grid = grid or default_grid()
        self.clock = clock
        self.ledger = SlotLedger(db)
        self.appointments = AppointmentService(db)

    async def list_available_slots(
        self,
        provider_id: UUID,
        window_days: int | None = None,
    ) -> AvailableSlotsResponse:
        """
        List free slots for a provider.

        Raises:
            NotFoundException: If the provider does not exist
            ProviderUnavailableException: If the provider is not bookable
        """
        window_days = window_days or settings.booking_window_days
        provider = await self.providers.require_provider(self.db, provider_id)
        if not provider["available"]:
            raise ProviderUnavailableException()

        now = self.clock()
        date_keys = [format_date_key(day) for day in self.grid.window(now, window_days)]
        booked = await self.ledger.booked_times(provider_id, date_keys)

        return AvailableSlotsResponse(
            provider_id=provider_id,
            window_days=window_days,
            days=list(iter_available_slots(self.grid, booked, now, window_days)),
        )

    async def reserve_slot(
        self,
        provider_id: UUID,
        slot_date: str,
        slot_time: str,
        patient_id: UUID,
    ) -> AppointmentResponse:
        """
        Reserve a slot and open an appointment awaiting payment.

        The appointment insert and the ledger insert share one transaction;
        if the ledger reports the slot as taken the whole transaction is
        rolled back, so a conflict leaves no appointment behind.

        Raises:
            NotFoundException: If the provider does not exist
            ProviderUnavailableException: If the provider is not bookable
            ValidationException: If the slot is not one listing would offer
            SlotConflictException: If someone else holds the slot
        """
        log = logger.bind(
            provider_id=str(provider_id),
            slot_date=slot_date,
            slot_time=slot_time,
            patient_id=str(patient_id),
        )

        # Fresh read, not the cache: fee and availability must be current
        result = await self.db.execute(select(providers).where(providers.c.id == provider_id))
        provider = result.mappings().first()
        if not provider:
            raise NotFoundException("Provider not found")
        if not provider["available"]:
            raise ProviderUnavailableException()

        try:
            day = parse_date_key(slot_date)
        except ValueError as e:
            raise ValidationException(str(e))
        if not self.grid.offers(day, slot_time, self.clock(), settings.booking_window_days):
            raise ValidationException("Requested slot is not offered for booking")

        appointment_id = uuid4()
        now = datetime.now(UTC)

        await self.db.execute(
            insert(appointments).values(
                id=appointment_id,
                patient_id=patient_id,
                provider_id=provider_id,
                provider_kind=provider["kind"],
                provider_name=provider["name"],
                slot_date=slot_date,
                slot_time=slot_time,
                amount=provider["fee"],
                currency=settings.payment_currency,
                status=AppointmentStatus.PENDING_PAYMENT.value,
                payment_status=PaymentStatus.NOT_PAID.value,
                created_at=now,
                updated_at=now,
            )
        )

        added = await self.ledger.add_if_absent(provider_id, slot_date, slot_time, appointment_id)
        if not added:
            await self.db.rollback()
            log.info("slot_conflict")
            raise SlotConflictException()

        await self.db.commit()
        log.info("slot_reserved", appointment_id=str(appointment_id))

        record = await self.appointments.require_record(appointment_id)
        return AppointmentResponse.model_validate(record)

    async def release_slot(
        self,
        appointment_id: UUID,
        cancelled_by: ActorRole = ActorRole.SYSTEM,
        reason: str | None = None,
        payment_values: dict | None = None,
    ) -> AppointmentResponse:
        """
        Cancel an appointment and free its slot.

        Idempotent: releasing an already-cancelled appointment returns it
        unchanged, since cancellations are retried after network failures.

        Raises:
            NotFoundException: If the appointment does not exist
            InvalidTransitionException: If the appointment is completed
        """
        values = {
            "cancelled_by": cancelled_by.value,
            "cancellation_reason": reason,
            **(payment_values or {}),
        }

        try:
            record = await self.appointments.apply_transition(
                appointment_id,
                AppointmentStatus.CANCELLED,
                values,
            )
        except InvalidTransitionException:
            await self.db.rollback()
            current = await self.appointments.require_record(appointment_id)
            if current["status"] == AppointmentStatus.CANCELLED.value:
                logger.info("slot_release_repeated", appointment_id=str(appointment_id))
                return AppointmentResponse.model_validate(current)
            raise

        await self.ledger.release(appointment_id)
        await self.db.commit()

        logger.info(
            "slot_released",
            appointment_id=str(appointment_id),
            provider_id=str(record["provider_id"]),
            slot_date=record["slot_date"],
            slot_time=record["slot_time"],
            cancelled_by=cancelled_by.value,
        )

        await NotificationService.send_appointment_status_notification(record)

        return AppointmentResponse.model_validate(record)

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        principal: Principal,
        reason: str | None = None,
    ) -> AppointmentResponse:
        """
        Cancel on behalf of a patient, provider or administrator.

        Raises:
            NotFoundException: If the appointment does not exist
            ForbiddenException: If the caller does not own the appointment
            InvalidTransitionException: If the appointment is completed
        """
        record = await self.appointments.require_record(appointment_id)
        AppointmentService.check_access(record, principal)
        return await self.release_slot(appointment_id, actor_for(principal), reason)

    async def expire_stale_reservations(self, hold_minutes: int | None = None) -> int:
        """
        Release unpaid reservations older than the hold period.

        The hold runs from the latest checkout when there is one, since the
        gateway payment key stays valid for a hold period after it is issued;
        otherwise from the reservation itself.

        Returns:
            Number of appointments cancelled
        """
        hold_minutes = hold_minutes or settings.reservation_hold_minutes
        cutoff = datetime.now(UTC) - timedelta(minutes=hold_minutes)

        stmt = select(appointments.c.id).where(
            appointments.c.status == AppointmentStatus.PENDING_PAYMENT.value,
            appointments.c.payment_status != PaymentStatus.PAID.value,
            func.coalesce(appointments.c.checkout_started_at, appointments.c.created_at) < cutoff,
        )
        stale_ids = list((await self.db.execute(stmt)).scalars().all())

        expired = 0
        for appointment_id in stale_ids:
            try:
                record = await self.release_slot(
                    appointment_id,
                    ActorRole.SYSTEM,
                    "Reservation expired before payment",
                )
            except InvalidTransitionException:
                # Confirmed or completed since the query ran
                continue
            if record.cancelled_by == ActorRole.SYSTEM.value:
                expired += 1

        logger.info("stale_reservations_expired", expired=expired, hold_minutes=hold_minutes)
        return expired
