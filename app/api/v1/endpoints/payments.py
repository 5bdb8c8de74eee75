"""Payment settlement endpoints."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Query, status

from app.dependencies import CurrentPrincipal, DatabaseSession, PaymentGateway
from app.schemas.payments import (
    CheckoutRequest,
    CheckoutResponse,
    SettlementCallbackResponse,
)
from app.services.settlement_service import SettlementService

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post(
    "/appointments/{appointment_id}/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_200_OK,
    summary="Start payment for an appointment",
)
async def start_checkout(
    appointment_id: UUID,
    principal: CurrentPrincipal,
    db: DatabaseSession,
    gateway: PaymentGateway,
    billing: CheckoutRequest | None = None,
) -> CheckoutResponse:
    """
    Open a hosted checkout for an appointment awaiting payment.

    Answers 503 if the payment provider cannot be reached; the appointment
    stays reserved and the call can be repeated.
    """
    service = SettlementService(db, gateway)
    return await service.start_checkout(appointment_id, principal, billing)


@router.post(
    "/paymob/callback",
    response_model=SettlementCallbackResponse,
    status_code=status.HTTP_200_OK,
    summary="Paymob transaction callback",
)
async def paymob_callback(
    db: DatabaseSession,
    gateway: PaymentGateway,
    payload: dict[str, Any] = Body(...),
    hmac_signature: str | None = Query(None, alias="hmac"),
) -> SettlementCallbackResponse:
    """
    Receive a transaction callback from Paymob.

    Unauthenticated; the HMAC query parameter is verified against the
    transaction object before anything is read from it.
    """
    service = SettlementService(db, gateway)
    return await service.handle_callback(payload, hmac_signature)
