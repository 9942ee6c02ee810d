import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_marketplace.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_marketplace")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_marketplace")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

import datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from marketplace import auth, models
from marketplace.config import settings
from marketplace.database import Base, Database, get_db
from marketplace.limits import ALL_LIMITS
from marketplace.main import app
from marketplace.stripe_service import StripeService, get_stripe_service

# --- Test Database Setup ---
test_database = Database(settings.DATABASE_URL)


@pytest.fixture(scope="function")
def db_session():
    """Provides a session on freshly created tables for each test."""
    Base.metadata.create_all(bind=test_database.engine)
    session = test_database.session()
    yield session
    session.close()
    Base.metadata.drop_all(bind=test_database.engine)


# --- Mocking External Services ---
@pytest.fixture(scope="function", autouse=True)
def mock_background_tasks(mocker):
    """
    Mocks the background tasks and the Redis-backed limiter started in the lifespan.
    """
    mocker.patch("marketplace.main.run_outbox_poller", new_callable=AsyncMock)
    mocker.patch("marketplace.main.run_notification_consumer", new_callable=AsyncMock)
    mocker.patch("marketplace.main.FastAPILimiter.init", new_callable=AsyncMock)


@pytest.fixture
def stripe_service():
    return StripeService(
        secret_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
    )


# --- API Test Client Fixture ---
@pytest.fixture(scope="function")
def client(db_session, stripe_service):
    """Provides a TestClient bound to the test session."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_service] = lambda: stripe_service
    for limit in ALL_LIMITS:
        app.dependency_overrides[limit] = lambda: None

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


# --- Data helpers ---
def make_user(db, email="buyer@example.com", role=models.UserRole.BUYER, password="password123"):
    user = models.User(email=email, hashed_password=auth.hash_password(password), role=role)
    db.add(user)
    db.flush()
    if role == models.UserRole.BUYER:
        db.add(models.BuyerProfile(user_id=user.id, payment_details={}))
        db.add(models.BuyerDashboard(user_id=user.id, total_spent=0, total_bookings=0))
    else:
        db.add(models.VendorProfile(user_id=user.id))
    db.commit()
    db.refresh(user)
    return user


def make_listing(db, vendor_id, price="100.00", location="Lisbon", amenities=("wifi", "pool"),
                 availability=(("2025-01-01T00:00:00", "2025-12-31T00:00:00"),), title="Sea view flat"):
    listing = models.Listing(
        vendor_id=vendor_id,
        title=title,
        description="Two bedrooms by the beach",
        location=location,
        price=Decimal(price),
        availability=[{"startDate": s, "endDate": e} for s, e in availability],
        amenities=list(amenities),
        images=["https://img.example.com/1.jpg"],
    )
    db.add(listing)
    db.commit()
    db.refresh(listing)
    return listing


def make_payment(db, user_id, status=models.PaymentStatus.COMPLETED, amount="250.00"):
    payment = models.Payment(
        user_id=user_id,
        amount=Decimal(amount),
        payment_status=status,
        payment_date=datetime.datetime(2024, 12, 1),
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment


def bearer(user) -> dict:
    return {"Authorization": f"Bearer {auth.create_access_token(user)}"}


@pytest.fixture
def buyer(db_session):
    return make_user(db_session)


@pytest.fixture
def vendor(db_session):
    return make_user(db_session, email="vendor@example.com", role=models.UserRole.VENDOR)


@pytest.fixture
def listing(db_session, vendor):
    return make_listing(db_session, vendor.id)
