"""Tests for checkout and Paymob settlement callbacks."""

import json
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy import update

from app.models.appointments import appointments
from app.schemas.payments import SettlementOutcome
from app.services.appointment_service import AppointmentService
from app.services.payment_gateway import SettlementResult
from app.services.scheduler_service import SchedulerService
from app.services.settlement_service import SettlementService

CALLBACK_URL = "/api/v1/payments/paymob/callback"


@pytest.fixture
async def booked(client: AsyncClient, patient_headers: dict, doctor: dict, open_slot: dict) -> dict:
    response = await client.post(
        "/api/v1/appointments/",
        json={"provider_id": str(doctor["id"]), **open_slot},
        headers=patient_headers,
    )
    assert response.status_code == 201
    return response.json()


async def fetch(client: AsyncClient, appointment_id: str, headers: dict) -> dict:
    response = await client.get(f"/api/v1/appointments/{appointment_id}", headers=headers)
    return response.json()


async def slot_is_free(client: AsyncClient, provider_id, slot: dict) -> bool:
    response = await client.get(f"/api/v1/providers/{provider_id}/slots")
    day = next(d for d in response.json()["days"] if d["date_key"] == slot["slot_date"])
    return slot["slot_time"] in day["times"]


async def post_callback(client: AsyncClient, payload: dict, signature: str | None):
    params = {"hmac": signature} if signature is not None else {}
    return await client.post(CALLBACK_URL, json=payload, params=params)


# ============================================================================
# Checkout
# ============================================================================


@pytest.mark.asyncio
async def test_checkout_returns_iframe_url(client, patient_headers, booked, paymob) -> None:
    response = await client.post(
        f"/api/v1/payments/appointments/{booked['id']}/checkout",
        json={"first_name": "Mona", "last_name": "Adel", "email": "mona@example.com"},
        headers=patient_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["redirect_url"] == (
        "https://paymob.test/api/acceptance/iframes/5678?payment_token=pay-token"
    )
    assert data["external_order_id"] == "424242"
    assert paymob.paths() == ["/auth/tokens", "/ecommerce/orders", "/acceptance/payment_keys"]

    order = json.loads(paymob.requests[1].content)
    assert order["merchant_order_id"] == booked["id"]
    assert order["amount_cents"] == 50000
    payment_key = json.loads(paymob.requests[2].content)
    assert payment_key["billing_data"]["first_name"] == "Mona"
    assert payment_key["integration_id"] == 1234

    record = await fetch(client, booked["id"], patient_headers)
    assert record["status"] == "pending_payment"
    assert record["payment_status"] == "processing"
    assert record["payment_method"] == "paymob"
    assert record["external_order_id"] == "424242"


@pytest.mark.asyncio
async def test_repeated_checkout_reuses_gateway_order(
    client, patient_headers, booked, paymob
) -> None:
    url = f"/api/v1/payments/appointments/{booked['id']}/checkout"
    await client.post(url, headers=patient_headers)
    paymob.requests.clear()

    response = await client.post(url, headers=patient_headers)

    assert response.status_code == 200
    assert "/ecommerce/orders" not in paymob.paths()
    assert json.loads(paymob.requests[-1].content)["order_id"] == "424242"


@pytest.mark.asyncio
async def test_only_booking_patient_can_checkout(client, make_headers, booked) -> None:
    response = await client.post(
        f"/api/v1/payments/appointments/{booked['id']}/checkout",
        headers=make_headers(uuid4()),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_gateway_down_is_unavailable_not_failed(
    client, patient_headers, booked, doctor, open_slot, paymob
) -> None:
    """Retries run out: 503, and the appointment keeps its slot."""
    paymob.failure = 503

    response = await client.post(
        f"/api/v1/payments/appointments/{booked['id']}/checkout", headers=patient_headers
    )

    assert response.status_code == 503
    assert response.json()["error"] == "SettlementUnavailableException"
    assert len(paymob.requests) == 3

    record = await fetch(client, booked["id"], patient_headers)
    assert record["status"] == "pending_payment"
    assert record["payment_status"] == "not_paid"
    assert not await slot_is_free(client, doctor["id"], open_slot)


@pytest.mark.asyncio
async def test_gateway_timeout_is_unavailable(client, patient_headers, booked, paymob) -> None:
    paymob.failure = httpx.ReadTimeout

    response = await client.post(
        f"/api/v1/payments/appointments/{booked['id']}/checkout", headers=patient_headers
    )

    assert response.status_code == 503
    assert len(paymob.requests) == 3


@pytest.mark.asyncio
async def test_transient_gateway_error_is_retried(client, patient_headers, booked, paymob) -> None:
    paymob.failure = 502
    paymob.fail_times = 2

    response = await client.post(
        f"/api/v1/payments/appointments/{booked['id']}/checkout", headers=patient_headers
    )

    assert response.status_code == 200
    assert paymob.paths()[:3] == ["/auth/tokens"] * 3


@pytest.mark.asyncio
async def test_gateway_rejection_is_not_retried(client, patient_headers, booked, paymob) -> None:
    paymob.failure = 401

    response = await client.post(
        f"/api/v1/payments/appointments/{booked['id']}/checkout", headers=patient_headers
    )

    assert response.status_code == 503
    assert len(paymob.requests) == 1


# ============================================================================
# Callbacks
# ============================================================================


@pytest.mark.asyncio
async def test_successful_payment_confirms(
    client, patient_headers, booked, signed_callback
) -> None:
    payload, signature = signed_callback(booked["id"])

    response = await post_callback(client, payload, signature)

    assert response.status_code == 200
    assert response.json() == {
        "received": True,
        "appointment_id": booked["id"],
        "outcome": "confirmed",
    }
    record = await fetch(client, booked["id"], patient_headers)
    assert record["status"] == "confirmed"
    assert record["payment_status"] == "paid"
    assert record["paid_amount"] == 500.0
    assert record["transaction_id"] == "987654"
    assert record["confirmed_at"] is not None


@pytest.mark.asyncio
async def test_duplicate_callback_is_ignored(
    client, patient_headers, booked, signed_callback
) -> None:
    payload, signature = signed_callback(booked["id"])
    await post_callback(client, payload, signature)

    again = await post_callback(client, payload, signature)

    assert again.status_code == 200
    assert again.json()["outcome"] == "ignored"
    assert (await fetch(client, booked["id"], patient_headers))["status"] == "confirmed"


@pytest.mark.asyncio
async def test_tampered_callback_rejected(
    client, patient_headers, booked, signed_callback
) -> None:
    payload, signature = signed_callback(booked["id"], amount_cents=50000)
    payload["obj"]["amount_cents"] = 100

    response = await post_callback(client, payload, signature)

    assert response.status_code == 403
    assert response.json()["error"] == "InvalidSignatureException"
    record = await fetch(client, booked["id"], patient_headers)
    assert record["status"] == "pending_payment"
    assert record["payment_status"] == "not_paid"


@pytest.mark.asyncio
async def test_unsigned_callback_rejected(client, booked, signed_callback) -> None:
    payload, _ = signed_callback(booked["id"])
    assert (await post_callback(client, payload, None)).status_code == 403
    assert (await post_callback(client, payload, "deadbeef")).status_code == 403


@pytest.mark.asyncio
async def test_amount_mismatch_does_not_confirm(
    client, patient_headers, booked, signed_callback
) -> None:
    payload, signature = signed_callback(booked["id"], amount_cents=100)

    response = await post_callback(client, payload, signature)

    assert response.status_code == 200
    assert response.json()["outcome"] == "ignored"
    record = await fetch(client, booked["id"], patient_headers)
    assert record["status"] == "pending_payment"
    assert record["payment_status"] != "paid"


@pytest.mark.asyncio
async def test_failed_payment_cancels_and_frees_slot(
    client, patient_headers, booked, doctor, open_slot, signed_callback
) -> None:
    payload, signature = signed_callback(booked["id"], success=False)

    response = await post_callback(client, payload, signature)

    assert response.json()["outcome"] == "cancelled"
    record = await fetch(client, booked["id"], patient_headers)
    assert record["status"] == "cancelled"
    assert record["payment_status"] == "failed"
    assert record["cancelled_by"] == "payment"
    assert await slot_is_free(client, doctor["id"], open_slot)


@pytest.mark.asyncio
async def test_pending_callback_changes_nothing(
    client, patient_headers, booked, signed_callback
) -> None:
    payload, signature = signed_callback(booked["id"], success=False, pending=True)

    response = await post_callback(client, payload, signature)

    assert response.json()["outcome"] == "ignored"
    assert (await fetch(client, booked["id"], patient_headers))["status"] == "pending_payment"


@pytest.mark.asyncio
async def test_late_success_after_cancel_is_kept_for_refund(
    client, patient_headers, booked, signed_callback
) -> None:
    await client.post(f"/api/v1/appointments/{booked['id']}/cancel", headers=patient_headers)
    payload, signature = signed_callback(booked["id"])

    response = await post_callback(client, payload, signature)

    assert response.json()["outcome"] == "refund_required"
    record = await fetch(client, booked["id"], patient_headers)
    assert record["status"] == "cancelled"
    assert record["payment_status"] == "refund_due"
    assert record["transaction_id"] == "987654"
    assert record["paid_amount"] == 500.0

    again = await post_callback(client, payload, signature)
    assert again.json()["outcome"] == "ignored"


@pytest.mark.asyncio
async def test_refund_cancels_confirmed_appointment(
    client, patient_headers, booked, doctor, open_slot, signed_callback
) -> None:
    payload, signature = signed_callback(booked["id"])
    await post_callback(client, payload, signature)

    payload, signature = signed_callback(booked["id"], is_refunded=True, transaction_id=987655)
    response = await post_callback(client, payload, signature)

    assert response.json()["outcome"] == "refunded"
    record = await fetch(client, booked["id"], patient_headers)
    assert record["status"] == "cancelled"
    assert record["payment_status"] == "refunded"
    assert await slot_is_free(client, doctor["id"], open_slot)


@pytest.mark.asyncio
async def test_callback_for_unknown_appointment(client, signed_callback) -> None:
    payload, signature = signed_callback(uuid4())
    assert (await post_callback(client, payload, signature)).status_code == 404

    payload, signature = signed_callback("not-a-uuid")
    assert (await post_callback(client, payload, signature)).status_code == 404


@pytest.mark.asyncio
async def test_checkout_after_confirmation_rejected(
    client, patient_headers, booked, signed_callback
) -> None:
    payload, signature = signed_callback(booked["id"])
    await post_callback(client, payload, signature)

    response = await client.post(
        f"/api/v1/payments/appointments/{booked['id']}/checkout", headers=patient_headers
    )
    assert response.status_code == 409


# ============================================================================
# Stale reservations and late payments
# ============================================================================


async def backdate(db_session, appointment_id: str, **columns: timedelta) -> None:
    """Move timestamp columns of an appointment into the past."""
    now = datetime.now(UTC)
    await db_session.execute(
        update(appointments)
        .where(appointments.c.id == UUID(appointment_id))
        .values(**{column: now - age for column, age in columns.items()})
    )
    await db_session.commit()


@pytest.mark.asyncio
async def test_open_checkout_keeps_reservation_past_hold(
    client, patient_headers, booked, db_session
) -> None:
    """The hold restarts at checkout, matching the payment key lifetime."""
    await client.post(
        f"/api/v1/payments/appointments/{booked['id']}/checkout", headers=patient_headers
    )
    await backdate(db_session, booked["id"], created_at=timedelta(minutes=61))

    assert await SchedulerService(db_session).expire_stale_reservations(60) == 0
    assert (await fetch(client, booked["id"], patient_headers))["status"] == "pending_payment"

    await backdate(db_session, booked["id"], checkout_started_at=timedelta(minutes=61))

    assert await SchedulerService(db_session).expire_stale_reservations(60) == 1
    assert (await fetch(client, booked["id"], patient_headers))["status"] == "cancelled"


@pytest.mark.asyncio
async def test_payment_after_expiry_is_flagged_for_refund(
    client, patient_headers, admin_headers, booked, db_session, signed_callback
) -> None:
    await client.post(
        f"/api/v1/payments/appointments/{booked['id']}/checkout", headers=patient_headers
    )
    await backdate(
        db_session,
        booked["id"],
        created_at=timedelta(minutes=90),
        checkout_started_at=timedelta(minutes=61),
    )
    assert await SchedulerService(db_session).expire_stale_reservations(60) == 1

    payload, signature = signed_callback(booked["id"])
    response = await post_callback(client, payload, signature)

    assert response.status_code == 200
    assert response.json()["outcome"] == "refund_required"
    record = await fetch(client, booked["id"], patient_headers)
    assert record["status"] == "cancelled"
    assert record["cancelled_by"] == "system"
    assert record["payment_status"] == "refund_due"
    assert record["transaction_id"] == "987654"

    owed = await client.get(
        "/api/v1/admin/appointments",
        params={"payment_status": "refund_due"},
        headers=admin_headers,
    )
    assert [item["id"] for item in owed.json()["items"]] == [booked["id"]]

    payload, signature = signed_callback(booked["id"], is_refunded=True, transaction_id=987655)
    refunded = await post_callback(client, payload, signature)

    assert refunded.json()["outcome"] == "refunded"
    assert (await fetch(client, booked["id"], patient_headers))["payment_status"] == "refunded"


@pytest.mark.asyncio
async def test_refund_racing_a_cancellation_still_records_refund(
    client, patient_headers, booked, db_session, payment_gateway
) -> None:
    """A refund read as pending but cancelled before it applies still lands."""
    appointment_id = UUID(booked["id"])
    stale = await AppointmentService(db_session).require_record(appointment_id)
    await client.post(f"/api/v1/appointments/{booked['id']}/cancel", headers=patient_headers)

    outcome = await SettlementService(db_session, payment_gateway)._refund(
        stale,
        SettlementResult(
            merchant_reference=booked["id"],
            success=True,
            pending=False,
            refunded=True,
            amount_cents=50000,
            transaction_id="987655",
        ),
    )

    assert outcome == SettlementOutcome.REFUNDED
    record = await fetch(client, booked["id"], patient_headers)
    assert record["status"] == "cancelled"
    assert record["cancelled_by"] == "patient"
    assert record["payment_status"] == "refunded"
