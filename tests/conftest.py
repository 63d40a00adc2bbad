"""Pytest fixtures for testing"""

import pytest
from datetime import date, datetime, timezone
from typing import Generator
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from installment_gateway.api.main import create_app
from installment_gateway.api.dependencies import get_notification_client
from installment_gateway.infrastructure.database.models import Base
from installment_gateway.infrastructure.database.session import get_db
from installment_gateway.infrastructure.database.repositories import AccountRepository, ServiceRepository
from installment_gateway.domain.models import Payment, PaymentType, Split, Tranche
from installment_gateway.services.accounts import AccountService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Fixed clock for deterministic due dates
NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
PURCHASE_DATE = NOW.date()

SERVICE_PRICE_CENTS = 1000


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    """Factory for extra sessions, used to simulate concurrent requests"""
    return TestingSessionLocal


@pytest.fixture
def notifier() -> MagicMock:
    """Notification client that records events instead of posting them"""
    client = MagicMock()
    client.send_event = AsyncMock(return_value=None)
    return client


@pytest.fixture
def client(db: Session, notifier: MagicMock) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_client] = lambda: notifier
    return TestClient(app)


@pytest.fixture
def service_id(db: Session) -> str:
    """A purchasable service priced at 1000"""
    ServiceRepository(db).create_service("svc_website", SERVICE_PRICE_CENTS, name="Website", duration_label="1 month")
    db.commit()
    return "svc_website"


@pytest.fixture
def customer_id(db: Session) -> str:
    """Customer with a 30/70 installment policy, second tranche due after 15 days"""
    AccountRepository(db).create_account("cust_1", is_verified=True)
    db.commit()
    AccountService(db).set_installment_policy(
        "cust_1",
        [Split(30, 0), Split(70, 15)],
        enabled=True,
        now=NOW,
    )
    return "cust_1"


@pytest.fixture
def plain_customer_id(db: Session) -> str:
    """Customer without installments"""
    AccountRepository(db).create_account("cust_plain")
    db.commit()
    return "cust_plain"


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def installment_payment() -> Payment:
    """In-memory 30/70 installment payment of 1000, nothing submitted yet"""
    return Payment(
        account_id="cust_1",
        service_id="svc_website",
        type=PaymentType.INSTALLMENT,
        amount_cents=1000,
        tranches=[
            Tranche(installment_number=1, percentage=30, amount_cents=300, due_date=PURCHASE_DATE),
            Tranche(installment_number=2, percentage=70, amount_cents=700, due_date=date(2025, 3, 16)),
        ],
    )
