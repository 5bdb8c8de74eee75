"""Health check endpoints."""

from typing import Literal

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from app.config import settings
from app.core.firebase import is_firebase_initialized
from app.core.redis_client import check_redis_connection
from app.database import check_database_connection

router = APIRouter()

ComponentState = Literal["healthy", "unhealthy", "configured", "not_configured"]


class HealthResponse(BaseModel):
    """Liveness plus the booking calendar the instance serves."""

    status: str
    version: str
    environment: str
    clinic_timezone: str
    booking_window_days: int


class DetailedHealthResponse(BaseModel):
    """
    Readiness of each collaborator.

    Only the database makes the service unready: without Redis reads are
    slower, without Paymob or Firebase checkout and push are unavailable but
    booking still works.
    """

    status: str
    version: str
    environment: str
    database: ComponentState
    redis: ComponentState
    payments: ComponentState
    push_notifications: ComponentState


def _paymob_configured() -> bool:
    return all(
        (
            settings.paymob_api_key,
            settings.paymob_integration_id,
            settings.paymob_iframe_id,
            settings.paymob_hmac_secret,
        )
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
        clinic_timezone=settings.clinic_timezone,
        booking_window_days=settings.booking_window_days,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    summary="Detailed health check",
    responses={503: {"model": DetailedHealthResponse}},
)
async def detailed_health_check(response: Response) -> DetailedHealthResponse:
    """
    Check database and Redis connectivity and report gateway configuration.

    Returns 503 when the database is unreachable, "degraded" when only an
    optional collaborator is down.
    """
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection()

    if not db_healthy:
        overall = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif not redis_healthy:
        overall = "degraded"
    else:
        overall = "healthy"

    return DetailedHealthResponse(
        status=overall,
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        redis="healthy" if redis_healthy else "unhealthy",
        payments="configured" if _paymob_configured() else "not_configured",
        push_notifications="configured" if is_firebase_initialized() else "not_configured",
    )


@router.get("/ping", summary="Simple ping")
async def ping() -> dict[str, str]:
    return {"message": "pong"}
