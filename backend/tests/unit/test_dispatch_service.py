"""Unit tests for DispatchService."""

from datetime import timedelta

import pytest

from integrations.exceptions import ProviderAPIError, ProviderConnectionError
from models import Client, NotificationLog, ReconciliationRun, utc_now
from services.dispatch_service import DispatchService
from services.exceptions import AlreadyInProgress, ClientNotFound, IntegrationNotConfigured
from services.rate_limiter import RateLimiter
from tests.fixtures import create_client, create_connection, create_run
from tests.fixtures.mocks import MockWorkflowClient


@pytest.fixture
def sleeps():
    return []


def _service(workflow, vault, sleeps, **kwargs) -> DispatchService:
    return DispatchService(
        workflow_client=workflow,
        vault=vault,
        rate_limiter=RateLimiter(max_calls_per_minute=30, min_interval=1.0, sleep=sleeps.append),
        sleep=sleeps.append,
        jitter=lambda: 0.0,
        batch_size=kwargs.pop("batch_size", 2),
        batch_delay=kwargs.pop("batch_delay", 5.0),
        dedup_window=timedelta(minutes=5),
        include_tokens=kwargs.pop("include_tokens", False),
    )


@pytest.fixture
def service(mock_workflow, vault, sleeps, intuit_settings):
    return _service(mock_workflow, vault, sleeps)


class TestTriggerOne:
    def test_dispatches_processing_run(self, db, service, mock_workflow, client_record):
        run = service.trigger_one(db, client_record.id, triggered_by="user-1")

        assert run.status == "processing"
        assert run.run_type == "manual"
        assert run.triggered_by == "user-1"
        payload = mock_workflow.payloads[0]
        assert payload["run_id"] == run.id
        assert payload["client_id"] == client_record.id
        assert payload["realm_id"] == client_record.realm_id
        assert payload["callback_url"] == "http://api.test/api/reviews/callback"
        assert "access_token" not in payload
        assert db.query(NotificationLog).filter_by(event_type="reconciliation_started").count() == 1
        db.refresh(client_record)
        assert client_record.last_review_at is not None

    def test_includes_tokens_when_enabled(self, db, mock_workflow, vault, sleeps, intuit_settings, client_record, connection):
        service = _service(mock_workflow, vault, sleeps, include_tokens=True)
        service.trigger_one(db, client_record.id)
        assert mock_workflow.payloads[0]["access_token"] == "access-token-1"
        assert mock_workflow.payloads[0]["refresh_token"] == "refresh-token-1"

    def test_missing_tokens_fail_run_without_dispatch(self, db, mock_workflow, vault, sleeps, intuit_settings, client_record):
        service = _service(mock_workflow, vault, sleeps, include_tokens=True)
        run = service.trigger_one(db, client_record.id)
        assert run.status == "failed"
        assert "Cannot load tokens" in run.error_message
        assert mock_workflow.payloads == []

    def test_duplicate_inside_window_rejected(self, db, service, mock_workflow, client_record):
        existing = create_run(db, client_record, started_at=utc_now() - timedelta(minutes=2))

        with pytest.raises(AlreadyInProgress) as exc:
            service.trigger_one(db, client_record.id)

        assert exc.value.run_id == existing.id
        assert db.query(ReconciliationRun).count() == 1
        assert mock_workflow.payloads == []

    def test_stale_processing_run_does_not_block(self, db, service, client_record):
        create_run(db, client_record, started_at=utc_now() - timedelta(minutes=6))

        run = service.trigger_one(db, client_record.id)

        assert run.status == "processing"
        assert db.query(ReconciliationRun).count() == 2

    def test_completed_run_does_not_block(self, db, service, client_record):
        create_run(db, client_record, status="completed")
        assert service.trigger_one(db, client_record.id).status == "processing"

    def test_retries_server_errors_then_fails(self, db, vault, sleeps, intuit_settings, client_record):
        workflow = MockWorkflowClient(
            side_effects=[ProviderAPIError("HTTP 500", status_code=500) for _ in range(3)]
        )
        service = _service(workflow, vault, sleeps)

        run = service.trigger_one(db, client_record.id)

        assert run.status == "failed"
        assert "HTTP 500" in run.error_message
        assert run.completed_at is not None
        assert run.retry_count == 2
        assert len(workflow.payloads) == 3
        assert sleeps == [1.0, 2.0]

    def test_recovers_after_transient_error(self, db, vault, sleeps, intuit_settings, client_record):
        workflow = MockWorkflowClient(side_effects=[ProviderConnectionError("reset")])
        service = _service(workflow, vault, sleeps)

        run = service.trigger_one(db, client_record.id)

        assert run.status == "processing"
        assert run.retry_count == 1
        assert len(workflow.payloads) == 2

    def test_timeout_is_not_retried(self, db, vault, sleeps, intuit_settings, client_record):
        workflow = MockWorkflowClient(
            side_effects=[ProviderConnectionError("timed out", retriable=False)]
        )
        service = _service(workflow, vault, sleeps)

        run = service.trigger_one(db, client_record.id)

        assert run.status == "failed"
        assert len(workflow.payloads) == 1

    def test_client_error_is_not_retried(self, db, vault, sleeps, intuit_settings, client_record):
        workflow = MockWorkflowClient(side_effects=[ProviderAPIError("HTTP 404", status_code=404)])
        run = _service(workflow, vault, sleeps).trigger_one(db, client_record.id)
        assert run.status == "failed"
        assert len(workflow.payloads) == 1

    def test_early_callback_result_is_kept(self, db, vault, sleeps, intuit_settings, client_record):
        def complete_run(payload):
            run = db.get(ReconciliationRun, payload["run_id"])
            run.status = "completed"
            run.action_items_count = 0
            db.commit()

        workflow = MockWorkflowClient(
            side_effects=[ProviderConnectionError("timed out", retriable=False)],
            on_dispatch=complete_run,
        )

        run = _service(workflow, vault, sleeps).trigger_one(db, client_record.id)

        assert run.status == "completed"
        assert run.error_message is None

    def test_not_configured(self, db, vault, sleeps, intuit_settings, client_record):
        service = _service(MockWorkflowClient(configured=False), vault, sleeps)
        with pytest.raises(IntegrationNotConfigured):
            service.trigger_one(db, client_record.id)

    def test_unknown_client(self, db, service):
        with pytest.raises(ClientNotFound):
            service.trigger_one(db, "missing")

    def test_client_of_other_firm(self, db, service, other_firm, client_record):
        with pytest.raises(ClientNotFound):
            service.trigger_one(db, client_record.id, firm_id=other_firm.id)

    def test_client_without_company(self, db, service, firm):
        client = create_client(db, firm, realm_id=None, connection_status="pending")
        with pytest.raises(IntegrationNotConfigured):
            service.trigger_one(db, client.id)


class TestTriggerMany:
    def test_windows_and_skips(self, db, service, mock_workflow, firm, sleeps):
        a = create_client(db, firm, name="A", realm_id="1")
        b = create_client(db, firm, name="B", realm_id="2")
        c = create_client(db, firm, name="C", realm_id="3")
        off = create_client(db, firm, name="Off", realm_id="4", connection_status="needs_reconnect")

        result = service.trigger_many(db, [a.id, off.id, b.id, c.id, "missing"])

        assert [r.client_id for r in result.results] == [a.id, off.id, b.id, c.id, "missing"]
        assert result.total == 5
        assert result.success == 3
        assert result.skipped == 2
        assert result.error == 0
        assert len(mock_workflow.payloads) == 3
        # Three eligible clients in windows of two: one pause between windows
        assert sleeps.count(5.0) == 1
        assert {p["run_type"] for p in mock_workflow.payloads} == {"bulk"}

    def test_in_progress_client_is_skipped(self, db, service, firm):
        a = create_client(db, firm, name="A", realm_id="1")
        busy = create_client(db, firm, name="Busy", realm_id="2")
        existing = create_run(db, busy)

        result = service.trigger_many(db, [a.id, busy.id])

        skipped = result.results[1]
        assert skipped.status == "skipped"
        assert skipped.run_id == existing.id

    def test_failures_are_reported_per_client(self, db, vault, sleeps, intuit_settings, firm):
        a = create_client(db, firm, name="A", realm_id="1")
        workflow = MockWorkflowClient(side_effects=[ProviderAPIError("HTTP 400", status_code=400)])
        result = _service(workflow, vault, sleeps).trigger_many(db, [a.id])
        assert result.error == 1
        assert result.results[0].status == "failed"

    def test_scoped_to_firm(self, db, service, other_firm, client_record):
        result = service.trigger_many(db, [client_record.id], firm_id=other_firm.id)
        assert result.skipped == 1


class TestTriggerScheduled:
    def test_dispatches_active_connected_clients(self, db, service, mock_workflow, firm):
        create_client(db, firm, name="Live", realm_id="1")
        create_client(db, firm, name="Gone", realm_id="2", is_active=False)
        create_client(db, firm, name="Pending", realm_id=None, connection_status="pending")

        result = service.trigger_scheduled(db)

        assert result.success == 1
        assert mock_workflow.payloads[0]["client_name"] == "Live"
        assert mock_workflow.payloads[0]["run_type"] == "scheduled"
        assert db.query(Client).count() == 3
