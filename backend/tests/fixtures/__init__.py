"""Test fixtures and sample data."""
from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from models import Client, Firm, Profile, QBOConnection, ReconciliationRun, utc_now
from services.token_vault import TokenVault


def create_client(
    db: Session,
    firm: Firm,
    name: str = "Acme Corp",
    realm_id: str | None = "9130350000000001",
    connection_status: str = "connected",
    is_active: bool = True,
) -> Client:
    """Create a client for a firm.

    This is a helper function (not a fixture) for tests that need several
    clients with different attributes.
    """
    client = Client(
        firm_id=firm.id,
        client_name=name,
        realm_id=realm_id,
        connection_status=connection_status,
        is_active=is_active,
    )
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


def create_connection(
    db: Session,
    vault: TokenVault,
    client: Client,
    access_token: str = "access-token-1",
    refresh_token: str = "refresh-token-1",
    expires_at: datetime | None = None,
    status: str = "connected",
) -> QBOConnection:
    """Create an encrypted connection row for a client."""
    conn = QBOConnection(
        client_id=client.id,
        realm_id=client.realm_id,
        access_token=vault.encrypt(access_token),
        refresh_token=vault.encrypt(refresh_token),
        token_expires_at=expires_at or utc_now() + timedelta(hours=1),
        refresh_token_updated_at=utc_now(),
        connection_status=status,
        environment="sandbox",
    )
    db.add(conn)
    db.commit()
    db.refresh(conn)
    return conn


def create_run(
    db: Session,
    client: Client,
    status: str = "processing",
    started_at: datetime | None = None,
    run_type: str = "manual",
) -> ReconciliationRun:
    """Create a reconciliation run for a client."""
    run = ReconciliationRun(
        client_id=client.id,
        status=status,
        run_type=run_type,
        started_at=started_at or utc_now(),
    )
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


@pytest.fixture
def firm(db):
    """Create a test firm."""
    firm = Firm(name="Ledger & Co")
    db.add(firm)
    db.commit()
    db.refresh(firm)
    return firm


@pytest.fixture
def other_firm(db):
    """A second firm, for tenant isolation checks."""
    firm = Firm(name="Other Books LLP")
    db.add(firm)
    db.commit()
    db.refresh(firm)
    return firm


@pytest.fixture
def profile(db, firm):
    """Create a user belonging to the test firm."""
    profile = Profile(email="bookkeeper@ledger.test", full_name="Pat Doe", firm_id=firm.id)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def client_record(db, firm):
    """Create a connected client for the test firm."""
    return create_client(db, firm)


@pytest.fixture
def connection(db, vault, client_record):
    """Create a live connection for ``client_record``."""
    return create_connection(db, vault, client_record)
