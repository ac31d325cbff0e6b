"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timezone
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from lendit_gateway.api.main import create_app
from lendit_gateway.config import Settings
from lendit_gateway.infrastructure.database.models import Base
from lendit_gateway.infrastructure.database.session import get_db
from lendit_gateway.domain import lifecycle
from lendit_gateway.domain.models import LoanAgreement


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

BORROWER = "user_borrower"
LENDER = "user_lender"
START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


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
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app(Settings(razorpay_key_secret="test_secret"), session_factory=TestingSessionLocal)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def pending_agreement() -> LoanAgreement:
    """Unclaimed request: 5000 at 250 bps for 6 months"""
    return lifecycle.create_request(
        agreement_id="agreement-1",
        borrower_id=BORROWER,
        amount="5000",
        purpose="Laptop",
        duration_months=6,
        interest_rate_bps=250,
        now=START,
    )


@pytest.fixture
def signed_agreement(pending_agreement: LoanAgreement) -> LoanAgreement:
    """Claimed and signed by both parties, ready to activate"""
    lifecycle.claim(pending_agreement, LENDER)
    lifecycle.sign(pending_agreement, BORROWER, "borrower-sig")
    lifecycle.sign(pending_agreement, LENDER, "lender-sig")
    return pending_agreement


@pytest.fixture
def active_agreement(signed_agreement: LoanAgreement) -> LoanAgreement:
    lifecycle.activate(signed_agreement, now=START)
    return signed_agreement
