"""Unit tests for SQLAlchemy models."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from models import (
    Client,
    FirmIntegration,
    NotificationLog,
    OAuthState,
    QBOConnection,
    RateLimitWindow,
    ReconciliationRun,
    utc_now,
)
from tests.fixtures import create_client, create_run


def test_firm_defaults(firm):
    """A new firm has no Dropbox connection."""
    assert firm.name == "Ledger & Co"
    assert firm.dropbox_connected is False
    assert firm.dropbox_access_token is None
    assert firm.created_at is not None


def test_profile_belongs_to_firm(profile, firm):
    assert profile.firm_id == firm.id
    assert profile.firm.name == "Ledger & Co"
    assert [p.id for p in firm.profiles] == [profile.id]


def test_client_creation(client_record, firm):
    assert client_record.firm_id == firm.id
    assert client_record.connection_status == "connected"
    assert client_record.is_active is True
    assert client_record.status_color is None
    assert len(client_record.id) == 36


def test_client_realm_unique_per_firm(db, firm, client_record):
    db.add(Client(firm_id=firm.id, client_name="Duplicate", realm_id=client_record.realm_id))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_same_realm_allowed_in_different_firms(db, client_record, other_firm):
    """Two firms may both manage the same QuickBooks company."""
    other = create_client(db, other_firm, name="Shared", realm_id=client_record.realm_id)
    assert other.realm_id == client_record.realm_id


def test_clients_without_realm_do_not_conflict(db, firm):
    create_client(db, firm, name="Manual A", realm_id=None)
    create_client(db, firm, name="Manual B", realm_id=None)
    assert db.query(Client).filter(Client.realm_id.is_(None)).count() == 2


def test_connection_one_per_client(db, vault, client_record, connection):
    db.add(
        QBOConnection(
            client_id=client_record.id,
            realm_id=client_record.realm_id,
            access_token=vault.encrypt("a"),
            refresh_token=vault.encrypt("r"),
        )
    )
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_connection_relationship(client_record, connection):
    assert client_record.connection.id == connection.id
    assert connection.client.client_name == "Acme Corp"
    assert connection.connection_method == "oauth"


def test_connection_tokens_are_ciphertext(connection):
    assert connection.access_token != "access-token-1"
    assert connection.refresh_token != "refresh-token-1"


def test_run_defaults(db, client_record):
    run = ReconciliationRun(client_id=client_record.id)
    db.add(run)
    db.commit()
    db.refresh(run)

    assert run.status == "pending"
    assert run.run_type == "manual"
    assert run.retry_count == 0
    assert run.started_at is not None
    assert run.completed_at is None


def test_client_runs_relationship(db, client_record):
    run = create_run(db, client_record)
    db.refresh(client_record)
    assert [r.id for r in client_record.runs] == [run.id]
    assert run.client.id == client_record.id


def test_oauth_state_unique(db, profile):
    expires = utc_now() + timedelta(minutes=10)
    db.add(OAuthState(state="same", user_id=profile.id, expires_at=expires))
    db.commit()
    db.add(OAuthState(state="same", user_id=profile.id, expires_at=expires))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_oauth_state_defaults_to_quickbooks(db, profile):
    state = OAuthState(state="s1", user_id=profile.id, expires_at=utc_now())
    db.add(state)
    db.commit()
    assert state.provider == "quickbooks"
    assert state.code_verifier is None


def test_firm_integration_one_per_firm(db, firm):
    db.add(FirmIntegration(firm_id=firm.id, intuit_client_id="a"))
    db.commit()
    db.add(FirmIntegration(firm_id=firm.id, intuit_client_id="b"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_notification_log_entry(db, client_record):
    entry = NotificationLog(
        notification_type="audit",
        event_type="oauth_connected",
        recipient="system",
        subject="OAuth Event: oauth_connected",
        status="delivered",
        client_id=client_record.id,
    )
    db.add(entry)
    db.commit()
    assert entry.created_at is not None


def test_rate_limit_window_keyed_by_company(db):
    now = utc_now()
    db.add(RateLimitWindow(company_id="123", window_start=now, call_count=1, next_slot_at=now))
    db.commit()
    db.expunge_all()
    db.add(RateLimitWindow(company_id="123", window_start=now, call_count=1, next_slot_at=now))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
