"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, tables recreated for each test
- Local storage backend rooted in a per-test temp directory
- JWT token minting for learner/admin clients
- HTTPX AsyncClient with proper headers
"""
import os
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Generator

# Must be set before formflow modules read settings.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENV"] = "test"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from formflow.core.config import settings
from formflow.core.deps import COOKIE_NAME, get_db
from formflow.core.security import create_session_token
from formflow.db.base import Base
from formflow.db.enums import FormRole
from formflow.db.models import Form
from formflow.db.session import SessionLocal, engine
from formflow.main import app
from formflow.services import form_service
from factories import ONBOARDING_SCHEMA


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Fresh schema per test.

    The in-memory engine shares one connection (StaticPool), so app code can
    commit freely; dropping the tables afterwards isolates tests.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def local_storage(tmp_path, monkeypatch):
    """Point the local storage backend at a temp directory."""
    monkeypatch.setattr(settings, "STORAGE_BACKEND", "local")
    monkeypatch.setattr(settings, "LOCAL_STORAGE_PATH", str(tmp_path / "storage"))
    return tmp_path / "storage"


# =============================================================================
# Form Fixtures
# =============================================================================

@pytest.fixture
def make_form(db: Session):
    def _make(schema: dict | None = None, name: str = "Onboarding") -> Form:
        return form_service.create_form(db, name, schema or ONBOARDING_SCHEMA, created_by=None)
    return _make


@pytest.fixture
def form(make_form) -> Form:
    return make_form()


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user_id: uuid.UUID
    role: FormRole
    token: str
    cookie_name: str = COOKIE_NAME


def _auth(role: FormRole) -> TestAuth:
    user_id = uuid.uuid4()
    return TestAuth(user_id=user_id, role=role, token=create_session_token(user_id, role.value))


@pytest.fixture
def learner_auth() -> TestAuth:
    return _auth(FormRole.USER)


@pytest.fixture
def admin_auth() -> TestAuth:
    return _auth(FormRole.ADMIN)


# =============================================================================
# Client Fixtures
# =============================================================================

def _override_db(db: Session):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient."""
    _override_db(db)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _authed(db: Session, auth: TestAuth) -> AsyncGenerator[AsyncClient, None]:
    _override_db(db)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={auth.cookie_name: auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    ) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def learner_client(db: Session, learner_auth: TestAuth) -> AsyncGenerator[AsyncClient, None]:
    async for c in _authed(db, learner_auth):
        yield c


@pytest.fixture(scope="function")
async def admin_client(db: Session, admin_auth: TestAuth) -> AsyncGenerator[AsyncClient, None]:
    async for c in _authed(db, admin_auth):
        yield c
