"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.helpers import (
    get_dropbox_client,
    get_qbo_client_factory,
    get_sleep,
    get_token_vault,
    get_workflow_client,
)
from database import Base, get_db
from main import app
from services.token_vault import TokenVault
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    client_record,
    connection,
    firm,
    other_firm,
    profile,
)
from tests.fixtures.mocks import (
    MockDropboxClient,
    MockQBOClientFactory,
    MockQuickBooksClient,
    MockWorkflowClient,
)

TEST_SECRET = "test-token-encryption-key"


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="vault")
def vault_fixture():
    """Token vault keyed with a fixed test secret."""
    return TokenVault(secret=TEST_SECRET)


@pytest.fixture(name="mock_qbo")
def mock_qbo_fixture():
    """A QuickBooks client stub that succeeds by default."""
    return MockQuickBooksClient()


@pytest.fixture(name="qbo_factory")
def qbo_factory_fixture(mock_qbo):
    """Client factory returning ``mock_qbo`` and recording its arguments."""
    return MockQBOClientFactory(mock_qbo)


@pytest.fixture(name="mock_workflow")
def mock_workflow_fixture():
    return MockWorkflowClient()


@pytest.fixture(name="mock_dropbox")
def mock_dropbox_fixture():
    return MockDropboxClient()


@pytest.fixture(name="intuit_settings")
def intuit_settings_fixture(monkeypatch):
    """Application-wide Intuit credentials and the frontend URL."""
    from config import settings

    monkeypatch.setattr(settings, "INTUIT_CLIENT_ID", "settings-client-id")
    monkeypatch.setattr(settings, "INTUIT_CLIENT_SECRET", "settings-client-secret")
    monkeypatch.setattr(settings, "INTUIT_ENVIRONMENT", "sandbox")
    monkeypatch.setattr(settings, "FRONTEND_URL", "http://frontend.test")
    monkeypatch.setattr(settings, "PUBLIC_BASE_URL", "http://api.test")
    monkeypatch.setattr(settings, "N8N_CALLBACK_SECRET", "")
    monkeypatch.setattr(settings, "INTERNAL_API_SECRET", "")
    monkeypatch.setattr(settings, "N8N_INCLUDE_TOKENS", False)
    return settings


@pytest.fixture(name="client")
def client_fixture(db, vault, qbo_factory, mock_workflow, mock_dropbox, intuit_settings):
    """Create a test client with the test database and stubbed providers."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_vault] = lambda: vault
    app.dependency_overrides[get_qbo_client_factory] = lambda: qbo_factory
    app.dependency_overrides[get_workflow_client] = lambda: mock_workflow
    app.dependency_overrides[get_dropbox_client] = lambda: mock_dropbox
    app.dependency_overrides[get_sleep] = lambda: (lambda seconds: None)
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="auth_headers")
def auth_headers_fixture(profile):
    """Headers identifying ``profile`` as the acting user."""
    return {"X-User-Id": profile.id}
