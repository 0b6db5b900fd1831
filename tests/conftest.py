"""Test fixtures."""

import os
from datetime import timedelta

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CACHE_ENABLED"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from booking_app.database import Base, get_db  # noqa: E402
from booking_app.domain.integrations.simpro.client import SimproClient  # noqa: E402
from booking_app.main import app  # noqa: E402
from booking_app.models import (  # noqa: E402
    AuthSession,
    Member,
    Organization,
    ProviderAccount,
    User,
    utcnow,
)
from booking_app.security_utils import encrypt_token  # noqa: E402


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def organization(db):
    org = Organization(name="Sparkle Cleaning", slug="sparkle", timezone="UTC")
    db.add(org)
    db.commit()
    return org


@pytest.fixture
def owner(db, organization):
    user = User(name="Olive Owner", email="owner@example.com", email_verified=True)
    db.add(user)
    db.flush()
    db.add(Member(organization_id=organization.id, user_id=user.id, role="owner"))
    db.commit()
    return user


@pytest.fixture
def staff_user(db, organization):
    user = User(name="Sam Staff", email="staff@example.com")
    db.add(user)
    db.flush()
    db.add(Member(organization_id=organization.id, user_id=user.id, role="member"))
    db.commit()
    return user


def _issue_session(db, user, organization) -> str:
    token = f"session-{user.id}"
    db.add(
        AuthSession(
            token=token,
            user_id=user.id,
            expires_at=utcnow() + timedelta(days=1),
            active_organization_id=organization.id,
        )
    )
    db.commit()
    return token


@pytest.fixture
def owner_token(db, owner, organization):
    return _issue_session(db, owner, organization)


@pytest.fixture
def staff_token(db, staff_user, organization):
    return _issue_session(db, staff_user, organization)


@pytest.fixture
def simpro_account(db, owner):
    account = ProviderAccount(
        user_id=owner.id,
        provider_id="simpro",
        account_id="42",
        access_token=encrypt_token("stored-access"),
        refresh_token=encrypt_token("stored-refresh"),
        build_name="sparkle",
        domain="simprosuite.com",
    )
    db.add(account)
    db.commit()
    return account


@pytest_asyncio.fixture
async def client(session_factory):
    """Create test HTTP client."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(owner_token, organization):
    return {"Authorization": f"Bearer {owner_token}", "X-Organization-Id": organization.id}


@pytest.fixture
def staff_headers(staff_token, organization):
    return {"Authorization": f"Bearer {staff_token}", "X-Organization-Id": organization.id}


def make_simpro_client(handler, **kwargs) -> SimproClient:
    """SimproClient backed by an httpx.MockTransport handler, with no real backoff delays"""
    options = {
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "build_name": "sparkle",
        "client_id": "client-id",
        "client_secret": "client-secret",
        "retry_base_delay": 0,
        "retry_max_delay": 0,
    }
    options.update(kwargs)
    return SimproClient(transport=httpx.MockTransport(handler), **options)


class FakeSimpro:
    """Minimal in-memory SimPro API for MockTransport"""

    def __init__(self, employees=None, schedules=None, failing_employee_ids=(), fail_schedules=False):
        self.employees = {e["ID"]: e for e in (employees or [])}
        self.schedules = schedules or []
        self.failing_employee_ids = set(failing_employee_ids)
        self.fail_schedules = fail_schedules
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/v1.0/companies/0/employees/":
            listing = [
                {key: e[key] for key in ("ID", "Name", "Email", "Active") if key in e}
                for e in self.employees.values()
            ]
            return httpx.Response(200, json=listing, headers={"Result-Pages": "1"})

        if path.startswith("/api/v1.0/companies/0/employees/"):
            employee_id = int(path.rstrip("/").rsplit("/", 1)[-1])
            if employee_id in self.failing_employee_ids:
                return httpx.Response(503, json={"errors": ["unavailable"]})
            if employee_id not in self.employees:
                return httpx.Response(404, json={"errors": ["not found"]})
            return httpx.Response(200, json=self.employees[employee_id])

        if path == "/api/v1.0/companies/0":
            return httpx.Response(200, json={"ID": 0, "Name": "Sparkle Cleaning HQ"})

        if path == "/api/v1.0/companies/0/schedules/":
            if self.fail_schedules:
                return httpx.Response(500, json={"errors": ["boom"]})
            return httpx.Response(200, json=self.schedules, headers={"Result-Pages": "1"})

        return httpx.Response(404, json={"errors": [f"unknown path {path}"]})


def simpro_factory(fake: FakeSimpro):
    """Drop-in replacement for get_simpro_client_for_organization"""

    def factory(db, organization_id, **kwargs):
        return make_simpro_client(fake)

    return factory
