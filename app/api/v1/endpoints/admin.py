"""Admin-only endpoints for booking oversight."""

from uuid import UUID

from fastapi import APIRouter, Query

from app.config import settings
from app.dependencies import AdminPrincipal, CacheManagerDep, DatabaseSession
from app.schemas.admin import AdminDashboardResponse, ExpireReservationsResponse
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    PaymentStatus,
)
from app.services.appointment_service import AppointmentService
from app.services.provider_service import ProviderService
from app.services.scheduler_service import SchedulerService

router = APIRouter(prefix="/admin", tags=["Admin"])

LATEST_APPOINTMENTS = 5


@router.get(
    "/appointments",
    response_model=AppointmentListResponse,
    summary="List all appointments (admin only)",
)
async def list_all_appointments(
    admin: AdminPrincipal,
    db: DatabaseSession,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    payment_status: PaymentStatus | None = Query(
        None, description="e.g. refund_due for payments captured after cancellation"
    ),
    patient_id: UUID | None = Query(None),
    provider_id: UUID | None = Query(None),
    slot_date: str | None = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
) -> AppointmentListResponse:
    """List every appointment with optional filters, newest first."""
    filters = AppointmentFilters(
        status=status_filter,
        payment_status=payment_status,
        patient_id=patient_id,
        provider_id=provider_id,
        slot_date=slot_date,
        page=page,
        page_size=page_size,
    )
    return await AppointmentService(db).list_appointments(filters)


@router.post(
    "/appointments/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    summary="Cancel any appointment (admin only)",
)
async def cancel_any_appointment(
    appointment_id: UUID,
    admin: AdminPrincipal,
    db: DatabaseSession,
    data: AppointmentCancel | None = None,
) -> AppointmentResponse:
    """Cancel an appointment on the patient's behalf and free its slot."""
    scheduler = SchedulerService(db)
    return await scheduler.cancel_appointment(
        appointment_id,
        admin,
        data.reason if data else None,
    )


@router.post(
    "/appointments/expire-stale",
    response_model=ExpireReservationsResponse,
    summary="Release unpaid reservations past the hold period (admin only)",
)
async def expire_stale_reservations(
    admin: AdminPrincipal,
    db: DatabaseSession,
    hold_minutes: int | None = Query(None, ge=1, description="Override the configured hold"),
) -> ExpireReservationsResponse:
    """Cancel appointments still awaiting payment after the hold period."""
    hold = hold_minutes or settings.reservation_hold_minutes
    expired = await SchedulerService(db).expire_stale_reservations(hold)
    return ExpireReservationsResponse(expired=expired, hold_minutes=hold)


@router.get(
    "/dashboard",
    response_model=AdminDashboardResponse,
    summary="Dashboard counters (admin only)",
)
async def get_dashboard(
    admin: AdminPrincipal,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> AdminDashboardResponse:
    """Provider, appointment and patient counts plus the latest bookings."""
    provider_counts = await ProviderService(cache_manager).count_by_kind(db)

    appointment_service = AppointmentService(db)
    by_status = await appointment_service.status_counts()
    latest = await appointment_service.list_appointments(
        AppointmentFilters(page=1, page_size=LATEST_APPOINTMENTS)
    )

    return AdminDashboardResponse(
        doctors=provider_counts.get("doctor", 0),
        labs=provider_counts.get("lab", 0),
        appointments=sum(by_status.values()),
        patients=await appointment_service.count_patients(),
        appointments_by_status=by_status,
        latest_appointments=latest.items,
    )
