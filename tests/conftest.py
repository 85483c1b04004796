"""Shared fixtures: in-memory database, fake providers and signed-in clients"""

import os
from datetime import datetime, timedelta

from cryptography.fernet import Fernet

# Settings are read at import time, so they must be in place before "app" is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["TOKEN_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["SITE_URL"] = "https://practice.test"
os.environ["APP_URL"] = "https://app.practice.test"
os.environ["GOOGLE_CLIENT_ID"] = "google-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "google-client-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("REDIS_URL", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt as jose_jwt  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.database import Base, get_db  # noqa: E402
from app.domain.billing.stripe_service import get_stripe_gateway  # noqa: E402
from app.domain.calendar.google_client import OAuthTokens, get_google_client  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Profile  # noqa: E402

JWT_SECRET = "test-jwt-secret"
WEBHOOK_SECRET = "whsec_test_secret"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_token(user_id: str, email: str = None, expires_in: int = 3600, audience: str = "authenticated"):
    claims = {
        "sub": user_id,
        "aud": audience,
        "exp": datetime.utcnow() + timedelta(seconds=expires_in),
    }
    if email:
        claims["email"] = email
    return jose_jwt.encode(claims, JWT_SECRET, algorithm="HS256")


def auth_headers(user_id: str, email: str = None) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, email)}"}


class FakeGoogle:
    """Stands in for GoogleCalendarOAuthClient; records every call"""

    def __init__(self):
        self.tokens = OAuthTokens(
            access_token="access-1",
            refresh_token="refresh-1",
            expires_at=datetime.utcnow() + timedelta(hours=1),
        )
        self.calendars = [{"id": "cal1", "primary": True}]
        self.exchange_error = None
        self.refresh_error = None
        self.refreshed = OAuthTokens(
            access_token="access-2", expires_at=datetime.utcnow() + timedelta(hours=1)
        )
        self.exchanged_codes = []
        self.refresh_calls = []
        self.revoked = []

    def authorization_url(self, state):
        return f"https://accounts.google.com/o/oauth2/v2/auth?state={state}"

    async def exchange_code(self, code):
        self.exchanged_codes.append(code)
        if self.exchange_error:
            raise self.exchange_error
        return self.tokens

    async def list_calendars(self, access_token):
        return self.calendars

    async def refresh(self, refresh_token):
        self.refresh_calls.append(refresh_token)
        if self.refresh_error:
            raise self.refresh_error
        return self.refreshed

    async def revoke(self, token):
        self.revoked.append(token)
        return True


class FakeStripe:
    """Stands in for StripeGateway"""

    def __init__(self):
        self.checkout_calls = []
        self.portal_calls = []
        self.error = None

    def create_checkout_session(self, **kwargs):
        self.checkout_calls.append(kwargs)
        if self.error:
            raise self.error
        return {"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}

    def create_portal_session(self, **kwargs):
        self.portal_calls.append(kwargs)
        if self.error:
            raise self.error
        return {"id": "bps_test_1", "url": "https://billing.stripe.test/bps_test_1"}


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def google():
    return FakeGoogle()


@pytest.fixture
def stripe_gateway():
    return FakeStripe()


@pytest.fixture
def client(db, google, stripe_gateway):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_google_client] = lambda: google
    app.dependency_overrides[get_stripe_gateway] = lambda: stripe_gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_profile(db):
    def _make(user_id, plan="free", stripe_customer_id=None, email=None):
        profile = Profile(id=user_id, plan=plan, stripe_customer_id=stripe_customer_id, email=email)
        db.add(profile)
        db.commit()
        return profile

    return _make


