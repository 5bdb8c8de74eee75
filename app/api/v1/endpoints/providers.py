"""Provider directory endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ForbiddenException
from app.core.redis_client import CacheManager
from app.dependencies import (
    AdminPrincipal,
    DatabaseSession,
    ProviderPrincipal,
    get_cache_manager,
)
from app.schemas.admin import ProviderDashboardResponse
from app.schemas.appointments import AppointmentFilters
from app.schemas.auth import Principal
from app.schemas.providers import (
    ProviderCreate,
    ProviderKind,
    ProviderListResponse,
    ProviderResponse,
    ProviderSelfUpdate,
    ProviderUpdate,
)
from app.schemas.slots import AvailableSlotsResponse
from app.services.appointment_service import AppointmentService
from app.services.provider_service import ProviderService
from app.services.scheduler_service import SchedulerService
from app.services.slot_ledger import SlotLedger

router = APIRouter()

LATEST_APPOINTMENTS = 5


def get_provider_service(
    cache_manager: CacheManager | None = Depends(get_cache_manager),
) -> ProviderService:
    """Get provider service instance."""
    return ProviderService(cache_manager=cache_manager)


@router.post("/", response_model=ProviderResponse, status_code=status.HTTP_201_CREATED)
async def create_provider(
    provider_data: ProviderCreate,
    admin: AdminPrincipal,
    db: DatabaseSession,
    provider_service: ProviderService = Depends(get_provider_service),
):
    """
    Add a doctor or lab to the directory (admin only).

    - **kind**: `doctor` or `lab`
    - **fee**: Price charged per booking
    - **available**: Whether the provider accepts bookings right away
    """
    try:
        provider = await provider_service.create_provider(db, provider_data)
    except IntegrityError as e:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Provider with email '{provider_data.email}' already exists",
        ) from e
    return ProviderResponse.model_validate(provider)


@router.get("/", response_model=ProviderListResponse)
async def list_providers(
    db: DatabaseSession,
    kind: ProviderKind | None = Query(None, description="Filter by provider kind"),
    available: bool | None = Query(None, description="Filter by bookability"),
    speciality: str | None = Query(None, description="Filter by speciality"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    provider_service: ProviderService = Depends(get_provider_service),
):
    """List doctors and labs; public."""
    total, items = await provider_service.list_providers(
        db,
        kind=kind,
        available=available,
        speciality=speciality,
        page=page,
        page_size=page_size,
    )
    return ProviderListResponse(
        total=total,
        page=page,
        page_size=page_size,
        items=[ProviderResponse.model_validate(item) for item in items],
    )


async def _own_profile(
    principal: Principal,
    db: AsyncSession,
    provider_service: ProviderService,
) -> dict:
    """Directory record behind a doctor or lab token."""
    provider = await provider_service.require_provider(db, principal.id)
    kind = ProviderKind(provider["kind"])
    if kind.value != principal.role.value:
        raise ForbiddenException(f"Token role does not match this {kind.value} profile")
    return provider


@router.get("/me", response_model=ProviderResponse)
async def get_my_profile(
    principal: ProviderPrincipal,
    db: DatabaseSession,
    provider_service: ProviderService = Depends(get_provider_service),
):
    """The calling doctor's or lab's own profile with its reserved slots."""
    provider = await _own_profile(principal, db, provider_service)
    slots_booked = await SlotLedger(db).slots_booked(principal.id)
    return ProviderResponse.model_validate({**provider, "slots_booked": slots_booked})


@router.patch("/me", response_model=ProviderResponse)
async def update_my_profile(
    profile_data: ProviderSelfUpdate,
    principal: ProviderPrincipal,
    db: DatabaseSession,
    provider_service: ProviderService = Depends(get_provider_service),
):
    """
    Change fee, address, about text or availability of the own profile.

    - **fee**: Applies to new bookings only
    - **available**: `false` stops new bookings; existing ones are kept
    """
    await _own_profile(principal, db, provider_service)
    provider = await provider_service.update_provider(db, principal.id, profile_data)
    return ProviderResponse.model_validate(provider)


@router.get("/me/dashboard", response_model=ProviderDashboardResponse)
async def get_my_dashboard(
    principal: ProviderPrincipal,
    db: DatabaseSession,
    provider_service: ProviderService = Depends(get_provider_service),
):
    """Earnings, appointment and patient counts plus the latest bookings."""
    await _own_profile(principal, db, provider_service)

    appointment_service = AppointmentService(db)
    by_status = await appointment_service.status_counts(principal.id)
    latest = await appointment_service.list_appointments(
        AppointmentFilters(provider_id=principal.id, page=1, page_size=LATEST_APPOINTMENTS)
    )

    return ProviderDashboardResponse(
        earnings=await appointment_service.provider_earnings(principal.id),
        appointments=sum(by_status.values()),
        patients=await appointment_service.count_patients(principal.id),
        appointments_by_status=by_status,
        latest_appointments=latest.items,
    )


@router.get("/{provider_id}", response_model=ProviderResponse)
async def get_provider(
    provider_id: UUID,
    db: DatabaseSession,
    provider_service: ProviderService = Depends(get_provider_service),
):
    """Get a provider profile together with its reserved slots."""
    provider = await provider_service.require_provider(db, provider_id)
    slots_booked = await SlotLedger(db).slots_booked(provider_id)
    return ProviderResponse.model_validate({**provider, "slots_booked": slots_booked})


@router.put("/{provider_id}", response_model=ProviderResponse)
async def update_provider(
    provider_id: UUID,
    provider_data: ProviderUpdate,
    admin: AdminPrincipal,
    db: DatabaseSession,
    provider_service: ProviderService = Depends(get_provider_service),
):
    """Update provider details (admin only). Fee changes apply to new bookings."""
    provider = await provider_service.update_provider(db, provider_id, provider_data)
    return ProviderResponse.model_validate(provider)


@router.patch("/{provider_id}/availability", response_model=ProviderResponse)
async def change_availability(
    provider_id: UUID,
    admin: AdminPrincipal,
    db: DatabaseSession,
    available: bool | None = Query(None, description="New value; omit to toggle"),
    provider_service: ProviderService = Depends(get_provider_service),
):
    """Open or close a provider for booking (admin only)."""
    provider = await provider_service.set_availability(db, provider_id, available)
    return ProviderResponse.model_validate(provider)


@router.get("/{provider_id}/slots", response_model=AvailableSlotsResponse)
async def list_available_slots(
    provider_id: UUID,
    db: DatabaseSession,
    window_days: int = Query(
        settings.booking_window_days,
        ge=1,
        le=settings.booking_window_days,
        description="Number of days to list, starting today",
    ),
    provider_service: ProviderService = Depends(get_provider_service),
):
    """
    List free 30-minute slots for the coming days.

    Today only offers slots from the next half-hour on; a provider that is
    not accepting bookings answers 409.
    """
    scheduler = SchedulerService(db, provider_service=provider_service)
    return await scheduler.list_available_slots(provider_id, window_days)
