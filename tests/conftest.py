import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

# The application reads these at import time
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+aiosqlite://")
os.environ["DATABASE_URL"] = os.environ["TEST_DATABASE_URL"]
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["DISABLE_SCHEDULER"] = "true"

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

# Load environment variables from .env file
load_dotenv()

from clinic_confirm.core.exceptions import EmailDeliveryError, SmsDeliveryError
from clinic_confirm.core.security import create_access_token
from clinic_confirm.database import get_db
from clinic_confirm.dependencies import enforce_link_rate_limit, get_email_sender, get_sms_sender
from clinic_confirm.main import app
from clinic_confirm.models import appointments, clinics, metadata, users
from clinic_confirm.models.base import utcnow
from clinic_confirm.schemas.messages import DELIVERY_SENT, SendResult
from clinic_confirm.services.notification_service import NotificationService

TEST_DATABASE_URL = os.environ["TEST_DATABASE_URL"]

CLINIC_TZ = "Europe/Bucharest"

# 10:05 in Bucharest (UTC+2 before the March DST switch): confirm-request time
NOW_EXPORT = datetime(2026, 3, 10, 8, 5, tzinfo=UTC)
# 18:01 local: auto-cancel time
NOW_DEADLINE = datetime(2026, 3, 10, 16, 1, tzinfo=UTC)
# Today's 18:00 local deadline
DEADLINE = datetime(2026, 3, 10, 16, 0, tzinfo=UTC)
# 09:30 local on the day after tomorrow
TARGET_START = datetime(2026, 3, 12, 7, 30, tzinfo=UTC)
# 09:30 local tomorrow
TOMORROW_START = datetime(2026, 3, 11, 7, 30, tzinfo=UTC)

BASE_URL = "https://clinic.test"


class FakeSmsSender:
    """Records every SMS; set ``fail`` to make sends raise."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    async def send(self, to: str, body: str) -> SendResult:
        if self.fail:
            raise SmsDeliveryError("provider unavailable", raw={"code": 503})
        self.sent.append((to, body))
        return SendResult(
            delivery_status=DELIVERY_SENT,
            provider_message_id=f"sms-{len(self.sent)}",
            raw={"ok": True},
        )


class FakeEmailSender:
    """Records every email; set ``fail`` to make sends raise."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    async def send(self, to: str, subject: str, body: str) -> SendResult:
        if self.fail:
            raise EmailDeliveryError("smtp unavailable")
        self.sent.append((to, subject, body))
        return SendResult(delivery_status=DELIVERY_SENT, provider_message_id=f"<{len(self.sent)}@test>")


def _engine_options(url: str) -> dict[str, Any]:
    # One shared connection keeps an in-memory SQLite database alive across sessions
    if url.startswith("sqlite"):
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {"poolclass": NullPool}


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh schema per test."""
    engine = create_async_engine(TEST_DATABASE_URL, **_engine_options(TEST_DATABASE_URL))
    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def sms_sender() -> FakeSmsSender:
    return FakeSmsSender()


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def notifications(
    db_session: AsyncSession, sms_sender: FakeSmsSender, email_sender: FakeEmailSender
) -> NotificationService:
    return NotificationService(db_session, sms_sender, email_sender, app_base_url=BASE_URL)


async def insert_clinic(db: AsyncSession, **overrides: Any) -> dict[str, Any]:
    values = {
        "id": uuid4(),
        "name": "Clinica Test",
        "timezone": CLINIC_TZ,
        "export_hour": 10,
        "deadline_hour": 18,
        "created_at": utcnow(),
        "updated_at": utcnow(),
        **overrides,
    }
    result = await db.execute(clinics.insert().values(**values).returning(clinics))
    row = dict(result.mappings().one())
    await db.commit()
    return row


@pytest_asyncio.fixture
async def clinic(db_session: AsyncSession) -> dict[str, Any]:
    """Clinic in Bucharest sending at 10:05 with an 18:00 deadline."""
    return await insert_clinic(db_session)


@pytest_asyncio.fixture
async def manager(db_session: AsyncSession, clinic: dict[str, Any]) -> dict[str, Any]:
    """Active manager of the test clinic."""
    result = await db_session.execute(
        users.insert()
        .values(
            id=uuid4(),
            clinic_id=clinic["id"],
            email="manager@clinic.test",
            full_name="Ana Manager",
            role="manager",
            is_active=True,
            created_at=utcnow(),
        )
        .returning(users)
    )
    row = dict(result.mappings().one())
    await db_session.commit()
    return row


@pytest.fixture
def auth_headers(manager: dict[str, Any]) -> dict[str, str]:
    """Create authentication headers for testing protected endpoints."""
    token = create_access_token(
        data={"sub": str(manager["id"])}, expires_delta=timedelta(minutes=30)
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_appointment(
    db_session: AsyncSession,
) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Insert an appointment row directly; keyword arguments override defaults."""

    async def _make(clinic_id: UUID, **overrides: Any) -> dict[str, Any]:
        values = {
            "id": uuid4(),
            "clinic_id": clinic_id,
            "external_appointment_id": f"EXT-{uuid4().hex[:8]}",
            "start_datetime": TARGET_START,
            "phone": "+40712345678",
            "appointment_type": "Consultatie",
            "patient_name": "Ion Popescu",
            "provider_name": "Dr. Ionescu",
            "source": "csv_upload",
            "status": "pending",
            "created_at": utcnow(),
            "updated_at": utcnow(),
            **overrides,
        }
        result = await db_session.execute(
            appointments.insert().values(**values).returning(appointments)
        )
        row = dict(result.mappings().one())
        await db_session.commit()
        return row

    return _make


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    sms_sender: FakeSmsSender,
    email_sender: FakeEmailSender,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sms_sender] = lambda: sms_sender
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    app.dependency_overrides[enforce_link_rate_limit] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
