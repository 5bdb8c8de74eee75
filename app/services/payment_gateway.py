"""Payment gateway adapters.

A gateway knows how to open a hosted checkout for an appointment and how to
authenticate and decode the asynchronous callback the provider sends back.
It never touches the database.
"""

import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import settings
from app.core.exceptions import InvalidSignatureException, SettlementUnavailableException

logger = structlog.get_logger(__name__)

# HTTP status codes that warrant retry with exponential backoff
RETRYABLE_STATUS_CODES = frozenset({500, 502, 503, 504})

# Paymob transaction callback fields, in the order the HMAC is computed over
PAYMOB_HMAC_FIELDS = (
    "amount_cents",
    "created_at",
    "currency",
    "error_occured",
    "has_parent_transaction",
    "id",
    "integration_id",
    "is_3d_secure",
    "is_auth",
    "is_capture",
    "is_refunded",
    "is_standalone_payment",
    "is_voided",
    "order.id",
    "owner",
    "pending",
    "source_data.pan",
    "source_data.sub_type",
    "source_data.type",
    "success",
)


class GatewayRetryableError(Exception):
    """Transient gateway failure (5xx); retried with backoff."""


@dataclass
class CheckoutOrder:
    """What the gateway needs to open a checkout for one appointment."""

    appointment_id: UUID
    amount_cents: int
    currency: str
    billing: dict[str, str] = field(default_factory=dict)
    # Gateway order created by an earlier attempt, reused on retry
    external_order_id: str | None = None


@dataclass
class CheckoutSession:
    """Hosted checkout handed back to the caller."""

    redirect_url: str
    external_order_id: str


@dataclass
class SettlementResult:
    """Authenticated outcome reported by the gateway."""

    merchant_reference: str
    success: bool
    pending: bool
    refunded: bool
    amount_cents: int
    transaction_id: str


class SettlementGateway(ABC):
    """Interface every payment provider adapter implements."""

    name: str

    @abstractmethod
    async def initiate_settlement(self, order: CheckoutOrder) -> CheckoutSession:
        """
        Open a hosted checkout.

        Raises:
            SettlementUnavailableException: If the provider cannot be reached
        """

    @abstractmethod
    def verify_callback(self, payload: dict[str, Any], signature: str | None) -> SettlementResult:
        """
        Authenticate and decode a callback.

        Raises:
            InvalidSignatureException: If the payload is not authentic
        """


def _lookup(obj: dict[str, Any], dotted: str) -> Any:
    value: Any = obj
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return ""
        value = value.get(part, "")
    return value


def _hmac_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def compute_paymob_hmac(obj: dict[str, Any], secret: str) -> str:
    """HMAC-SHA512 (hex) of a Paymob transaction object."""
    message = "".join(_hmac_value(_lookup(obj, name)) for name in PAYMOB_HMAC_FIELDS)
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha512).hexdigest()


class PaymobGateway(SettlementGateway):
    """
    Paymob Accept adapter.

    Checkout takes three calls (auth token, order registration, payment
    key) and ends in an iframe URL. Each call is bounded by a timeout and
    retried on transport errors and 5xx responses; when retries run out the
    outcome is unknown, so the caller gets SettlementUnavailableException
    rather than a payment failure.
    """

    name = "paymob"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        integration_id: int | None = None,
        iframe_id: str | None = None,
        hmac_secret: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float = 0.5,
    ):
        """Initialize adapter; unset arguments come from settings."""
        self.base_url = (base_url or settings.paymob_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.paymob_api_key
        self.integration_id = integration_id or settings.paymob_integration_id
        self.iframe_id = iframe_id or settings.paymob_iframe_id
        self.hmac_secret = hmac_secret if hmac_secret is not None else settings.paymob_hmac_secret
        self.timeout = timeout or settings.payment_timeout_seconds
        self.max_attempts = max_attempts or settings.payment_max_attempts
        self.backoff_seconds = backoff_seconds
        self._client = client

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "payment_gateway_retry",
            gateway=self.name,
            attempt=retry_state.attempt_number,
            error=str(exc),
        )

    async def _post_once(self, client: httpx.AsyncClient, path: str, payload: dict) -> dict:
        response = await client.post(f"{self.base_url}{path}", json=payload)
        if response.status_code in RETRYABLE_STATUS_CODES:
            raise GatewayRetryableError(f"{path} returned {response.status_code}")
        response.raise_for_status()
        return response.json()

    async def _post(self, client: httpx.AsyncClient, path: str, payload: dict) -> dict:
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type((GatewayRetryableError, httpx.TransportError)),
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=self.backoff_seconds, max=10),
                before_sleep=self._log_retry,
                reraise=True,
            ):
                with attempt:
                    return await self._post_once(client, path, payload)
        except (GatewayRetryableError, httpx.TransportError, RetryError) as e:
            logger.error("payment_gateway_unreachable", gateway=self.name, path=path, error=str(e))
            raise SettlementUnavailableException(
                f"Payment provider did not respond after {self.max_attempts} attempts"
            )
        except httpx.HTTPStatusError as e:
            logger.error(
                "payment_gateway_rejected",
                gateway=self.name,
                path=path,
                status_code=e.response.status_code,
                body=e.response.text[:500],
            )
            raise SettlementUnavailableException(
                f"Payment provider rejected the request ({e.response.status_code})"
            )
        raise SettlementUnavailableException()

    async def initiate_settlement(self, order: CheckoutOrder) -> CheckoutSession:
        """Open a Paymob iframe checkout for an appointment."""
        if self._client is not None:
            return await self._initiate(self._client, order)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._initiate(client, order)

    async def _initiate(self, client: httpx.AsyncClient, order: CheckoutOrder) -> CheckoutSession:
        auth = await self._post(client, "/auth/tokens", {"api_key": self.api_key.strip()})
        token = auth["token"]

        external_order_id = order.external_order_id
        if external_order_id is None:
            registered = await self._post(
                client,
                "/ecommerce/orders",
                {
                    "auth_token": token,
                    "delivery_needed": False,
                    "amount_cents": order.amount_cents,
                    "currency": order.currency,
                    "merchant_order_id": str(order.appointment_id),
                    "items": [],
                },
            )
            external_order_id = str(registered["id"])

        payment_key = await self._post(
            client,
            "/acceptance/payment_keys",
            {
                "auth_token": token,
                "amount_cents": order.amount_cents,
                "expiration": settings.reservation_hold_minutes * 60,
                "order_id": external_order_id,
                "billing_data": {
                    "street": "NA",
                    "building": "NA",
                    "floor": "NA",
                    "apartment": "NA",
                    "state": "NA",
                    "postal_code": "NA",
                    **order.billing,
                },
                "currency": order.currency,
                "integration_id": self.integration_id,
            },
        )

        logger.info(
            "checkout_session_created",
            gateway=self.name,
            appointment_id=str(order.appointment_id),
            external_order_id=external_order_id,
        )
        return CheckoutSession(
            redirect_url=(
                f"{self.base_url}/acceptance/iframes/{self.iframe_id}"
                f"?payment_token={payment_key['token']}"
            ),
            external_order_id=external_order_id,
        )

    def verify_callback(self, payload: dict[str, Any], signature: str | None) -> SettlementResult:
        """Check the callback HMAC and decode the transaction object."""
        obj = payload.get("obj")
        if not self.hmac_secret or not signature or not isinstance(obj, dict):
            raise InvalidSignatureException()

        expected = compute_paymob_hmac(obj, self.hmac_secret)
        if not hmac.compare_digest(expected, signature.lower()):
            logger.warning("settlement_signature_mismatch", gateway=self.name)
            raise InvalidSignatureException()

        order = obj.get("order") or {}
        try:
            amount_cents = int(obj.get("amount_cents"))
        except (TypeError, ValueError):
            raise InvalidSignatureException("Callback carries no amount")

        return SettlementResult(
            merchant_reference=str(order.get("merchant_order_id") or ""),
            success=bool(obj.get("success")),
            pending=bool(obj.get("pending")),
            refunded=bool(obj.get("is_refunded")),
            amount_cents=amount_cents,
            transaction_id=str(obj.get("id", "")),
        )

