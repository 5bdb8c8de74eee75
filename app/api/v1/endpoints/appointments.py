"""Appointment endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from app.dependencies import CurrentPrincipal, DatabaseSession
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
)
from app.services.appointment_service import AppointmentService
from app.services.scheduler_service import SchedulerService

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Reserve a slot",
)
async def create_appointment(
    data: AppointmentCreate,
    principal: CurrentPrincipal,
    db: DatabaseSession,
) -> AppointmentResponse:
    """
    Reserve a slot for the authenticated patient.

    The appointment starts in ``pending_payment``; the slot is held until
    payment settles, the appointment is cancelled, or the hold expires.

    Returns 409 if the provider is unavailable or the slot was taken.
    """
    if principal.is_provider or principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only patients can book appointments",
        )

    scheduler = SchedulerService(db)
    return await scheduler.reserve_slot(
        data.provider_id,
        data.slot_date,
        data.slot_time,
        principal.id,
    )


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    principal: CurrentPrincipal,
    db: DatabaseSession,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    slot_date: str | None = Query(None, description="Date key, e.g. 5_6_2025"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List the caller's appointments, newest first.

    Patients get their bookings; doctors and labs get the appointments
    booked with them.
    """
    filters = AppointmentFilters(
        status=status_filter,
        slot_date=slot_date,
        page=page,
        page_size=page_size,
    )
    if principal.is_provider:
        filters.provider_id = principal.id
    else:
        filters.patient_id = principal.id

    service = AppointmentService(db)
    return await service.list_appointments(filters)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    principal: CurrentPrincipal,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Get a specific appointment by ID."""
    service = AppointmentService(db)
    return await service.get_appointment(appointment_id, principal)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    principal: CurrentPrincipal,
    db: DatabaseSession,
    data: AppointmentCancel | None = None,
) -> AppointmentResponse:
    """
    Cancel an appointment and free its slot.

    Cancelling twice is harmless; cancelling a completed appointment is a 409.
    """
    scheduler = SchedulerService(db)
    return await scheduler.cancel_appointment(
        appointment_id,
        principal,
        data.reason if data else None,
    )


@router.post(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Mark appointment completed",
)
async def complete_appointment(
    appointment_id: UUID,
    principal: CurrentPrincipal,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Mark a confirmed appointment as completed (its provider or an admin)."""
    service = AppointmentService(db)
    return await service.complete_appointment(appointment_id, principal)
