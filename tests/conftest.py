"""Shared fixtures: in-memory database, fake payment collaborators, users and listings."""

import json
import os

# Must be set before rentcore.config is imported anywhere
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite://")

from collections.abc import AsyncGenerator
from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

import rentcore.models  # noqa: F401
from rentcore.api.deps import get_now
from rentcore.core.immutability import register_immutability_enforcement
from rentcore.database import Base, create_engine, get_db
from rentcore.gateways.base import CardProcessor, GatewayResult
from rentcore.gateways.card import CardPaymentAdapter
from rentcore.gateways.cash_voucher import CashVoucherAdapter, VoucherIssuer
from rentcore.services.gateway_service import gateway_service
from rentcore.services.notification_service import notification_service
from tests.factories import NOW, WEBHOOK_SIGNATURE, make_listing, make_user, paid_booking

register_immutability_enforcement()


class FakeCardProcessor(CardProcessor):
    """In-memory card processor recording every call."""

    def __init__(self) -> None:
        self.fail_create = False
        self.created: list[str] = []
        self.cancelled: list[str] = []
        self.refunds: list[tuple[str, int]] = []

    async def create_payment(
        self,
        amount: int,
        currency: str,
        reference_id: str,
        description: str,
        metadata: dict | None = None,
        idempotency_key: str | None = None,
    ) -> GatewayResult:
        if self.fail_create:
            return GatewayResult(success=False, error_message="Card network unavailable")
        intent_id = f"pi_{reference_id}"
        self.created.append(intent_id)
        return GatewayResult(
            success=True,
            transaction_id=intent_id,
            raw_response={"client_secret": f"{intent_id}_secret"},
        )

    async def cancel_payment(self, transaction_id: str) -> GatewayResult:
        self.cancelled.append(transaction_id)
        return GatewayResult(success=True, transaction_id=transaction_id)

    async def process_refund(self, transaction_id: str, amount: int, reason: str) -> GatewayResult:
        self.refunds.append((transaction_id, amount))
        return GatewayResult(success=True, transaction_id=f"re_{transaction_id}")

    def verify_webhook(self, payload: bytes, signature: str) -> dict | None:
        if signature != WEBHOOK_SIGNATURE:
            return None
        return json.loads(payload)


# ============ Database ============


@pytest.fixture
async def engine():
    engine = create_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine) -> AsyncGenerator[AsyncSession, None]:
    session_maker = async_sessionmaker(engine, expire_on_commit=False, autoflush=True)
    async with session_maker() as session:
        yield session


# ============ Collaborators ============


@pytest.fixture
def card_processor() -> FakeCardProcessor:
    return FakeCardProcessor()


@pytest.fixture(autouse=True)
def gateways(card_processor):
    gateway_service.register(CardPaymentAdapter(processor=card_processor))
    gateway_service.register(CashVoucherAdapter(issuer=VoucherIssuer(api_url="")))
    yield gateway_service
    gateway_service.reset()


@pytest.fixture(autouse=True)
def notifications(monkeypatch):
    notify = AsyncMock(return_value=True)
    send_email = AsyncMock(return_value=True)
    monkeypatch.setattr(notification_service, "notify", notify)
    monkeypatch.setattr(notification_service, "send_email", send_email)
    return SimpleNamespace(notify=notify, send_email=send_email)


# ============ Users and listings ============


@pytest.fixture
async def guest(db):
    return await make_user(db, "guest")


@pytest.fixture
async def host(db):
    return await make_user(db, "host")


@pytest.fixture
async def admin(db):
    return await make_user(db, "admin")


@pytest.fixture
async def listing(db, host):
    """Request-to-book listing: 5000/night, 500 cleaning, moderate policy."""
    return await make_listing(db, host)


@pytest.fixture
async def instant_listing(db, host):
    return await make_listing(db, host, title="Instant studio", instant_book=True)


@pytest.fixture
async def confirmed(db, guest, instant_listing):
    """Instant-book stay paid by card: confirmed, escrow held for 16740."""
    return await paid_booking(db, guest, instant_listing)


@pytest.fixture
async def confirmed_16240(db, guest, host):
    """One-night confirmed stay whose escrow holds exactly 16240."""
    listing = await make_listing(
        db, host, title="Loft", base_price=15037, cleaning_fee=0, instant_book=True
    )
    booking = await paid_booking(db, guest, listing, end=date(2026, 4, 2))
    assert booking.total_amount == 16240
    return booking


# ============ API ============


@pytest.fixture
async def client(db) -> AsyncGenerator[AsyncClient, None]:
    from rentcore.main import app

    async def override_get_db():
        try:
            yield db
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: NOW
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
