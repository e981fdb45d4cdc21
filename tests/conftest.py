"""
Test configuration and fixtures.

Provides:
- A throwaway SQLite database (file backed, foreign keys on), emptied
  after every test
- Organization / user / case factories that write through a correctly
  scoped session and commit, so API calls see the data
- A TestClient and a login helper returning tenant + bearer headers
"""
import os
import shutil
import tempfile
import uuid
from typing import Dict, Generator, Optional

_TEST_DIR = tempfile.mkdtemp(prefix="ethicsdesk-tests-")

# Must be set before anything imports ethicsdesk.config
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "False"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["STORAGE_LOCAL_PATH"] = os.path.join(_TEST_DIR, "uploads")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from ethicsdesk.main import app
from ethicsdesk.database import Base, SessionLocal, engine
from ethicsdesk.core.security import get_password_hash
from ethicsdesk.core.tenancy import organization_scope
from ethicsdesk.models import Case, Organization, User, UserRole
from ethicsdesk.models.case import ReporterType, SourceChannel

DEFAULT_PASSWORD = "correct-horse-battery"


# =============================================================================
# Database
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def _schema() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    engine.dispose()
    shutil.rmtree(_TEST_DIR, ignore_errors=True)


@pytest.fixture(autouse=True)
def _clean_tables() -> Generator[None, None, None]:
    yield
    with engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """
    A session with no tenant context bound.

    Tests bind the context they need (set_organization / bypass_rls).
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Factories
# =============================================================================

def _make_organization(name: str, slug: str, **fields) -> Organization:
    with SessionLocal() as session:
        organization = Organization(name=name, slug=slug, **fields)
        session.add(organization)
        session.commit()
        return organization


def _make_user(
    organization: Organization,
    role: UserRole = UserRole.COMPLIANCE_OFFICER,
    email: Optional[str] = None,
    password: Optional[str] = DEFAULT_PASSWORD,
    first_name: str = "Test",
    last_name: str = "User",
    **fields
) -> User:
    with SessionLocal() as session:
        with organization_scope(session, organization.id):
            user = User(
                organization_id=organization.id,
                email=email or f"user-{uuid.uuid4().hex[:8]}@acme.com",
                password_hash=get_password_hash(password) if password else None,
                first_name=first_name,
                last_name=last_name,
                role=role,
                **fields
            )
            session.add(user)
            session.commit()
        return user


def _make_case(organization: Organization, reference_number: Optional[str] = None, **fields) -> Case:
    """Insert a case row directly, bypassing CaseService."""
    with SessionLocal() as session:
        with organization_scope(session, organization.id):
            values = {
                "organization_id": organization.id,
                "reference_number": reference_number or f"ETH-2026-{uuid.uuid4().int % 100000:05d}",
                "source_channel": SourceChannel.DIRECT_ENTRY,
                "reporter_type": ReporterType.IDENTIFIED,
                "details": "Expense report irregularities",
            }
            values.update(fields)
            case = Case(**values)
            session.add(case)
            session.commit()
        return case


@pytest.fixture
def org_a() -> Organization:
    return _make_organization("Acme Corp", "acme")


@pytest.fixture
def org_b() -> Organization:
    return _make_organization("Globex", "globex")


@pytest.fixture
def officer_a(org_a: Organization) -> User:
    return _make_user(org_a, UserRole.COMPLIANCE_OFFICER, email="officer@acme.com",
                      first_name="Olivia", last_name="Officer")


@pytest.fixture
def officer_b(org_b: Organization) -> User:
    return _make_user(org_b, UserRole.COMPLIANCE_OFFICER, email="officer@globex.com",
                      first_name="Gary", last_name="Globex")


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


def _login(
    client: TestClient,
    organization: Organization,
    email: str,
    password: str = DEFAULT_PASSWORD
) -> Dict[str, str]:
    """Log in and return headers for authenticated, tenant-addressed requests."""
    response = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password, "organization_slug": organization.slug},
    )
    assert response.status_code == 200, response.text
    return {
        "Authorization": f"Bearer {response.json()['access_token']}",
        "X-Organization-Slug": organization.slug,
    }


@pytest.fixture
def officer_a_headers(client: TestClient, org_a: Organization, officer_a: User) -> Dict[str, str]:
    return _login(client, org_a, officer_a.email)


@pytest.fixture
def officer_b_headers(client: TestClient, org_b: Organization, officer_b: User) -> Dict[str, str]:
    return _login(client, org_b, officer_b.email)


@pytest.fixture
def create_organization():
    return _make_organization


@pytest.fixture
def create_user():
    return _make_user


@pytest.fixture
def create_case():
    return _make_case


@pytest.fixture
def login(client: TestClient):
    def _login_as(organization: Organization, email: str, password: str = DEFAULT_PASSWORD) -> Dict[str, str]:
        return _login(client, organization, email, password)
    return _login_as
