import hashlib
import hmac
import os
from collections.abc import AsyncGenerator, Callable
from datetime import timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import httpx
import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

# Settings are read once at import time; give the required ones test values
os.environ.setdefault("DATABASE_URL", "sqlite:///./medibook_unused.db")
os.environ.setdefault("REDIS_HOST", "localhost")
os.environ.setdefault("REDIS_PORT", "6379")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("CLINIC_TIMEZONE", "UTC")

from app.core.security import create_access_token  # noqa: E402
from app.core.slot_calendar import clinic_now, format_date_key  # noqa: E402
from app.database import get_db, to_async_url  # noqa: E402
from app.dependencies import get_cache_manager, get_payment_gateway  # noqa: E402
from app.main import app  # noqa: E402
from app.models import metadata  # noqa: E402
from app.schemas.providers import ProviderCreate, ProviderKind  # noqa: E402
from app.services.payment_gateway import PaymobGateway  # noqa: E402
from app.services.provider_service import ProviderService  # noqa: E402

HMAC_SECRET = "test-hmac-secret"
PAYMOB_BASE_URL = "https://paymob.test/api"

# Set TEST_DATABASE_URL to run against Postgres; otherwise every test gets
# its own SQLite file
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture
def database_url(tmp_path) -> str:
    """Async URL of the database used by one test."""
    if TEST_DATABASE_URL:
        return to_async_url(TEST_DATABASE_URL)
    return f"sqlite+aiosqlite:///{tmp_path / 'medibook_test.db'}"


@pytest_asyncio.fixture
async def test_engine(database_url: str):
    """Engine with a freshly created schema."""
    connect_args = {"timeout": 30} if database_url.startswith("sqlite") else {}
    engine = create_async_engine(database_url, poolclass=NullPool, connect_args=connect_args)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


class PaymobStub:
    """
    In-process stand-in for the Paymob API.

    ``failure`` makes every call fail (an HTTP status code or an httpx
    exception class); ``fail_times`` limits that to the first N calls.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.failure: int | type[Exception] | None = None
        self.fail_times: int | None = None

    def paths(self) -> list[str]:
        return [request.url.path.removeprefix("/api") for request in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if self.failure is not None and (
            self.fail_times is None or len(self.requests) <= self.fail_times
        ):
            if isinstance(self.failure, int):
                return httpx.Response(self.failure, json={"detail": "unavailable"})
            raise self.failure("gateway timed out", request=request)

        path = request.url.path
        if path.endswith("/auth/tokens"):
            return httpx.Response(201, json={"token": "auth-token"})
        if path.endswith("/ecommerce/orders"):
            return httpx.Response(201, json={"id": 424242})
        if path.endswith("/acceptance/payment_keys"):
            return httpx.Response(201, json={"token": "pay-token"})
        return httpx.Response(404, json={"detail": "not found"})


@pytest.fixture
def paymob() -> PaymobStub:
    """Programmable Paymob API stub."""
    return PaymobStub()


@pytest_asyncio.fixture
async def payment_gateway(paymob: PaymobStub) -> AsyncGenerator[PaymobGateway, None]:
    """Paymob adapter wired to the stub, retrying without backoff."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(paymob)) as http_client:
        yield PaymobGateway(
            client=http_client,
            base_url=PAYMOB_BASE_URL,
            api_key="test-api-key",
            integration_id=1234,
            iframe_id="5678",
            hmac_secret=HMAC_SECRET,
            timeout=1.0,
            max_attempts=3,
            backoff_seconds=0,
        )


@pytest_asyncio.fixture
async def client(
    session_factory,
    payment_gateway: PaymobGateway,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client; each request gets its own session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_manager] = lambda: None
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_headers() -> Callable[[UUID, str], dict]:
    """Build bearer headers for a caller id and role."""

    def _make(principal_id: UUID, role: str = "patient") -> dict:
        token = create_access_token(principal_id, role, expires_delta=timedelta(minutes=30))
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def patient_id() -> UUID:
    return uuid4()


@pytest.fixture
def patient_headers(make_headers, patient_id: UUID) -> dict:
    return make_headers(patient_id, "patient")


@pytest.fixture
def admin_headers(make_headers) -> dict:
    return make_headers(uuid4(), "admin")


@pytest.fixture
def provider_headers(make_headers, doctor: dict) -> dict:
    return make_headers(doctor["id"], "doctor")


@pytest_asyncio.fixture
async def doctor(db_session: AsyncSession) -> dict:
    """A bookable doctor charging 500.00."""
    return await ProviderService().create_provider(
        db_session,
        ProviderCreate(
            kind=ProviderKind.DOCTOR,
            name="Dr. Salma Nabil",
            email="salma.nabil@example.com",
            speciality="Dermatologist",
            degree="MBBS",
            experience="4 Years",
            fee=Decimal("500.00"),
            address_line1="17 Tahrir St",
            address_line2="Cairo",
        ),
    )


@pytest_asyncio.fixture
async def closed_lab(db_session: AsyncSession) -> dict:
    """A lab that is not accepting bookings."""
    return await ProviderService().create_provider(
        db_session,
        ProviderCreate(
            kind=ProviderKind.LAB,
            name="Nile Diagnostics",
            email="lab@nile-diagnostics.example.com",
            fee=Decimal("250.00"),
            available=False,
        ),
    )


@pytest.fixture
def open_slot() -> dict:
    """Tomorrow's first slot, always inside the booking window."""
    tomorrow = clinic_now().date() + timedelta(days=1)
    return {"slot_date": format_date_key(tomorrow), "slot_time": "10:00"}


def paymob_transaction(
    appointment_id: UUID | str,
    amount_cents: int = 50000,
    success: bool = True,
    pending: bool = False,
    is_refunded: bool = False,
    transaction_id: int = 987654,
) -> dict:
    """Transaction object shaped like a Paymob processed callback."""
    return {
        "id": transaction_id,
        "pending": pending,
        "amount_cents": amount_cents,
        "success": success,
        "is_auth": False,
        "is_capture": False,
        "is_standalone_payment": True,
        "is_voided": False,
        "is_refunded": is_refunded,
        "is_3d_secure": True,
        "integration_id": 1234,
        "has_parent_transaction": False,
        "order": {"id": 424242, "merchant_order_id": str(appointment_id)},
        "created_at": "2030-01-07T14:25:00.000000",
        "currency": "EGP",
        "source_data": {"pan": "2346", "type": "card", "sub_type": "MasterCard"},
        "error_occured": False,
        "owner": 302852,
    }


def sign_transaction(obj: dict, secret: str = HMAC_SECRET) -> str:
    """HMAC-SHA512 the way Paymob signs its callbacks."""

    def value(raw) -> str:
        if isinstance(raw, bool):
            return "true" if raw else "false"
        return str(raw)

    message = "".join(
        [
            value(obj["amount_cents"]),
            value(obj["created_at"]),
            value(obj["currency"]),
            value(obj["error_occured"]),
            value(obj["has_parent_transaction"]),
            value(obj["id"]),
            value(obj["integration_id"]),
            value(obj["is_3d_secure"]),
            value(obj["is_auth"]),
            value(obj["is_capture"]),
            value(obj["is_refunded"]),
            value(obj["is_standalone_payment"]),
            value(obj["is_voided"]),
            value(obj["order"]["id"]),
            value(obj["owner"]),
            value(obj["pending"]),
            value(obj["source_data"]["pan"]),
            value(obj["source_data"]["sub_type"]),
            value(obj["source_data"]["type"]),
            value(obj["success"]),
        ]
    )
    return hmac.new(secret.encode(), message.encode(), hashlib.sha512).hexdigest()


@pytest.fixture
def signed_callback() -> Callable[..., tuple[dict, str]]:
    """Build a ``(payload, hmac)`` pair for the Paymob callback endpoint."""

    def _build(appointment_id: UUID | str, **kwargs) -> tuple[dict, str]:
        obj = paymob_transaction(appointment_id, **kwargs)
        return {"type": "TRANSACTION", "obj": obj}, sign_transaction(obj)

    return _build
