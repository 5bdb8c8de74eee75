"""Settlement service: checkout and payment callbacks for appointments."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
)
from app.schemas.appointments import ActorRole, AppointmentStatus, PaymentStatus
from app.schemas.auth import Principal
from app.schemas.payments import (
    CheckoutRequest,
    CheckoutResponse,
    SettlementCallbackResponse,
    SettlementOutcome,
)
from app.services.appointment_service import AppointmentService, to_minor_units
from app.services.notification_service import NotificationService
from app.services.payment_gateway import CheckoutOrder, SettlementGateway, SettlementResult
from app.services.scheduler_service import SchedulerService

logger = structlog.get_logger(__name__)


class SettlementService:
    """Bridges the payment gateway and the appointment lifecycle."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: SettlementGateway,
        scheduler: SchedulerService | None = None,
    ):
        """Initialize service with database session and gateway."""
        self.db = db
        self.gateway = gateway
        self.scheduler = scheduler or SchedulerService(db)
        self.appointments = AppointmentService(db)

    async def start_checkout(
        self,
        appointment_id: UUID,
        principal: Principal,
        billing: CheckoutRequest | None = None,
    ) -> CheckoutResponse:
        """
        Open a hosted checkout for an appointment awaiting payment.

        If the gateway cannot be reached the appointment is left exactly as
        it was and the patient may try again.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the caller is not the booking patient
            InvalidTransitionException: If the appointment is not awaiting payment
            SettlementUnavailableException: If the gateway is unreachable
        """
        record = await self.appointments.require_record(appointment_id)
        if principal.is_provider or principal.is_admin or record["patient_id"] != principal.id:
            raise ForbiddenException("Only the booking patient can pay for this appointment")

        if (
            record["status"] != AppointmentStatus.PENDING_PAYMENT.value
            or record["payment_status"] == PaymentStatus.PAID.value
        ):
            raise InvalidTransitionException("Appointment is not awaiting payment")

        billing = billing or CheckoutRequest()
        session = await self.gateway.initiate_settlement(
            CheckoutOrder(
                appointment_id=appointment_id,
                amount_cents=to_minor_units(record["amount"]),
                currency=record["currency"],
                billing=billing.model_dump(),
                external_order_id=record["external_order_id"],
            )
        )

        updated = await self.appointments.update_payment_fields(
            appointment_id,
            {
                "payment_status": PaymentStatus.PROCESSING.value,
                "payment_method": self.gateway.name,
                "external_order_id": session.external_order_id,
                "checkout_started_at": datetime.now(UTC),
            },
            only_status=AppointmentStatus.PENDING_PAYMENT,
        )
        if not updated:
            await self.db.rollback()
            raise InvalidTransitionException("Appointment is not awaiting payment")
        await self.db.commit()

        logger.info(
            "checkout_started",
            appointment_id=str(appointment_id),
            gateway=self.gateway.name,
            external_order_id=session.external_order_id,
        )

        return CheckoutResponse(
            appointment_id=appointment_id,
            redirect_url=session.redirect_url,
            external_order_id=session.external_order_id,
        )

    async def handle_callback(
        self,
        payload: dict,
        signature: str | None,
    ) -> SettlementCallbackResponse:
        """
        Apply an authenticated gateway callback to its appointment.

        Callbacks may be retried or arrive out of order, so every branch is
        safe to run twice: anything that no longer applies is acknowledged
        with outcome ``ignored``.

        Raises:
            InvalidSignatureException: If the callback is not authentic
            NotFoundException: If it references no known appointment
        """
        result = self.gateway.verify_callback(payload, signature)

        try:
            appointment_id = UUID(result.merchant_reference)
        except ValueError:
            raise NotFoundException("Appointment not found")
        record = await self.appointments.require_record(appointment_id)

        log = logger.bind(
            appointment_id=str(appointment_id),
            transaction_id=result.transaction_id,
            gateway=self.gateway.name,
        )

        if result.pending:
            log.info("settlement_pending")
            outcome = SettlementOutcome.IGNORED
        elif result.refunded:
            outcome = await self._refund(record, result)
        elif result.success:
            outcome = await self._confirm(record, result)
        else:
            outcome = await self._fail(record, result)

        log.info("settlement_callback_handled", outcome=outcome.value)
        return SettlementCallbackResponse(appointment_id=appointment_id, outcome=outcome)

    async def _confirm(self, record: dict, result: SettlementResult) -> SettlementOutcome:
        appointment_id = record["id"]
        if record["status"] == AppointmentStatus.CANCELLED.value:
            return await self._record_late_capture(record, result)
        if record["status"] != AppointmentStatus.PENDING_PAYMENT.value:
            logger.info(
                "settlement_success_ignored",
                appointment_id=str(appointment_id),
                status=record["status"],
            )
            return SettlementOutcome.IGNORED

        expected_cents = to_minor_units(record["amount"])
        if result.amount_cents != expected_cents:
            logger.warning(
                "settlement_amount_mismatch",
                appointment_id=str(appointment_id),
                expected_cents=expected_cents,
                paid_cents=result.amount_cents,
            )
            return SettlementOutcome.IGNORED

        try:
            confirmed = await self.appointments.apply_transition(
                appointment_id,
                AppointmentStatus.CONFIRMED,
                {
                    "payment_status": PaymentStatus.PAID.value,
                    "payment_method": self.gateway.name,
                    "transaction_id": result.transaction_id,
                    "paid_amount": Decimal(result.amount_cents) / 100,
                },
                expected=[AppointmentStatus.PENDING_PAYMENT],
            )
        except InvalidTransitionException:
            # Cancelled or confirmed by a concurrent request
            await self.db.rollback()
            current = await self.appointments.require_record(appointment_id)
            if current["status"] == AppointmentStatus.CANCELLED.value:
                return await self._record_late_capture(current, result)
            return SettlementOutcome.IGNORED
        await self.db.commit()

        await NotificationService.send_appointment_status_notification(confirmed)
        return SettlementOutcome.CONFIRMED

    async def _record_late_capture(
        self, record: dict, result: SettlementResult
    ) -> SettlementOutcome:
        """
        Keep a payment that landed after its appointment was cancelled.

        The slot is gone, so the appointment stays cancelled; the capture is
        stored as ``refund_due`` for an operator to refund.
        """
        appointment_id = record["id"]
        if record["payment_status"] in (
            PaymentStatus.PAID.value,
            PaymentStatus.REFUND_DUE.value,
            PaymentStatus.REFUNDED.value,
        ):
            return SettlementOutcome.IGNORED

        updated = await self.appointments.update_payment_fields(
            appointment_id,
            {
                "payment_status": PaymentStatus.REFUND_DUE.value,
                "payment_method": self.gateway.name,
                "transaction_id": result.transaction_id,
                "paid_amount": Decimal(result.amount_cents) / 100,
            },
            only_status=AppointmentStatus.CANCELLED,
        )
        if not updated:
            await self.db.rollback()
            return SettlementOutcome.IGNORED
        await self.db.commit()

        logger.warning(
            "settlement_refund_required",
            appointment_id=str(appointment_id),
            transaction_id=result.transaction_id,
            paid_cents=result.amount_cents,
            cancelled_by=record["cancelled_by"],
        )
        return SettlementOutcome.REFUND_REQUIRED

    async def _fail(self, record: dict, result: SettlementResult) -> SettlementOutcome:
        if record["status"] != AppointmentStatus.PENDING_PAYMENT.value:
            return SettlementOutcome.IGNORED

        try:
            await self.scheduler.release_slot(
                record["id"],
                ActorRole.PAYMENT,
                "Payment failed",
                payment_values={
                    "payment_status": PaymentStatus.FAILED.value,
                    "transaction_id": result.transaction_id,
                },
            )
        except InvalidTransitionException:
            return SettlementOutcome.IGNORED
        return SettlementOutcome.CANCELLED

    async def _refund(self, record: dict, result: SettlementResult) -> SettlementOutcome:
        appointment_id = record["id"]
        if record["payment_status"] == PaymentStatus.REFUNDED.value:
            return SettlementOutcome.IGNORED

        refund_values = {"payment_status": PaymentStatus.REFUNDED.value}
        if record["status"] in (
            AppointmentStatus.PENDING_PAYMENT.value,
            AppointmentStatus.CONFIRMED.value,
        ):
            try:
                released = await self.scheduler.release_slot(
                    appointment_id,
                    ActorRole.PAYMENT,
                    "Payment refunded",
                    payment_values=refund_values,
                )
            except InvalidTransitionException:
                # Completed concurrently; only the payment state changes
                released = None
            if released is not None and released.payment_status == PaymentStatus.REFUNDED:
                return SettlementOutcome.REFUNDED
            # Otherwise cancelled concurrently without the refund values

        await self.appointments.update_payment_fields(appointment_id, refund_values)
        await self.db.commit()
        logger.info("settlement_refund_recorded", appointment_id=str(appointment_id))
        return SettlementOutcome.REFUNDED
