"""Integration tests for review dispatch and workflow callbacks."""

from datetime import timedelta

from api.helpers import get_workflow_client
from integrations.exceptions import ProviderAPIError
from main import app
from models import NotificationLog, ReconciliationRun, utc_now
from tests.fixtures import create_client, create_run
from tests.fixtures.mocks import MockWorkflowClient


class TestTriggerReview:
    def test_accepted(self, client, db, client_record, profile, auth_headers, mock_workflow):
        response = client.post("/api/reviews", json={"client_id": client_record.id}, headers=auth_headers)

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "processing"
        assert data["run_type"] == "manual"
        assert mock_workflow.payloads[0]["run_id"] == data["id"]
        assert db.get(ReconciliationRun, data["id"]).triggered_by == profile.id

    def test_already_in_progress(self, client, db, client_record, auth_headers):
        existing = create_run(db, client_record, started_at=utc_now() - timedelta(minutes=2))

        response = client.post("/api/reviews", json={"client_id": client_record.id}, headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["run_id"] == existing.id

    def test_stale_processing_run_does_not_block(self, client, db, client_record, auth_headers):
        create_run(db, client_record, started_at=utc_now() - timedelta(minutes=6))
        response = client.post("/api/reviews", json={"client_id": client_record.id}, headers=auth_headers)
        assert response.status_code == 202

    def test_engine_rejection_is_502_with_failed_run(self, client, db, client_record, auth_headers):
        app.dependency_overrides[get_workflow_client] = lambda: MockWorkflowClient(
            side_effects=[ProviderAPIError("HTTP 400", provider_name="n8n", status_code=400)]
        )

        response = client.post("/api/reviews", json={"client_id": client_record.id}, headers=auth_headers)

        assert response.status_code == 502
        run = db.get(ReconciliationRun, response.json()["detail"]["run_id"])
        assert run.status == "failed"
        assert run.error_message == "HTTP 400"

    def test_engine_not_configured(self, client, client_record, auth_headers):
        app.dependency_overrides[get_workflow_client] = lambda: MockWorkflowClient(configured=False)
        response = client.post("/api/reviews", json={"client_id": client_record.id}, headers=auth_headers)
        assert response.status_code == 400

    def test_client_without_realm(self, client, db, firm, auth_headers):
        record = create_client(db, firm, name="Unlinked", realm_id=None, connection_status="pending")
        response = client.post("/api/reviews", json={"client_id": record.id}, headers=auth_headers)
        assert response.status_code == 400

    def test_other_firms_client(self, client, db, other_firm, auth_headers):
        foreign = create_client(db, other_firm, name="Foreign")
        response = client.post("/api/reviews", json={"client_id": foreign.id}, headers=auth_headers)
        assert response.status_code == 404


class TestBatch:
    def test_mixed_batch(self, client, db, firm, auth_headers, mock_workflow):
        ready = create_client(db, firm, name="Ready", realm_id="1")
        busy = create_client(db, firm, name="Busy", realm_id="2")
        create_run(db, busy)
        broken = create_client(db, firm, name="Broken", realm_id="3", connection_status="needs_reconnect")

        response = client.post(
            "/api/reviews/batch",
            json={"client_ids": [ready.id, busy.id, broken.id, "missing"]},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert (data["total"], data["success"], data["skipped"], data["error"]) == (4, 1, 3, 0)
        statuses = {r["client_id"]: r["status"] for r in data["results"]}
        assert statuses[ready.id] == "processing"
        assert statuses[busy.id] == "skipped"
        assert len(mock_workflow.payloads) == 1
        assert mock_workflow.payloads[0]["run_type"] == "bulk"

    def test_empty_list_rejected(self, client, auth_headers):
        response = client.post("/api/reviews/batch", json={"client_ids": []}, headers=auth_headers)
        assert response.status_code == 422


class TestScheduled:
    def test_dispatches_connected_clients(self, client, db, firm, mock_workflow):
        create_client(db, firm, name="One", realm_id="1")
        create_client(db, firm, name="Two", realm_id="2")
        create_client(db, firm, name="Off", realm_id="3", is_active=False)

        response = client.post("/api/reviews/scheduled")

        assert response.status_code == 200
        assert response.json()["success"] == 2
        assert {p["run_type"] for p in mock_workflow.payloads} == {"scheduled"}

    def test_requires_internal_secret_when_set(self, client, monkeypatch):
        from config import settings

        monkeypatch.setattr(settings, "INTERNAL_API_SECRET", "cron-secret")
        assert client.post("/api/reviews/scheduled").status_code == 401
        response = client.post("/api/reviews/scheduled", headers={"X-Internal-Secret": "cron-secret"})
        assert response.status_code == 200


class TestListAndGet:
    def test_list_scoped_to_firm(self, client, db, client_record, other_firm, auth_headers):
        mine = create_run(db, client_record, status="completed")
        create_run(db, create_client(db, other_firm, name="Foreign"), status="completed")

        response = client.get("/api/reviews", headers=auth_headers)

        assert [r["id"] for r in response.json()] == [mine.id]

    def test_filter_by_client_ids(self, client, db, firm, auth_headers):
        a = create_client(db, firm, name="A", realm_id="1")
        b = create_client(db, firm, name="B", realm_id="2")
        create_run(db, a, status="completed")
        run_b = create_run(db, b, status="completed")

        response = client.get("/api/reviews", params={"client_ids": b.id}, headers=auth_headers)

        assert response.status_code == 200
        assert [r["id"] for r in response.json()] == [run_b.id]

    def test_invalid_client_ids(self, client, auth_headers):
        response = client.get("/api/reviews", params={"client_ids": "abc"}, headers=auth_headers)
        assert response.status_code == 400

    def test_get_run(self, client, db, client_record, auth_headers):
        run = create_run(db, client_record)
        response = client.get(f"/api/reviews/{run.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "processing"

    def test_get_missing_run(self, client, auth_headers):
        assert client.get("/api/reviews/nope", headers=auth_headers).status_code == 404


class TestCallback:
    def test_completed_with_color(self, client, db, client_record):
        run = create_run(db, client_record)

        response = client.post(
            "/api/reviews/callback",
            json={"runId": run.id, "status": "success", "sheetUrl": "https://sheet", "unreconciledCount": 2},
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "run_id": run.id,
            "status": "completed",
            "status_color": "yellow",
        }
        db.refresh(run)
        assert run.result_url == "https://sheet"
        assert run.completed_at is not None

    def test_failed(self, client, db, client_record):
        run = create_run(db, client_record)
        response = client.post(
            "/api/reviews/callback",
            json={"run_id": run.id, "status": "failed", "error": "QBO rate limited"},
        )
        assert response.json()["status_color"] is None
        db.refresh(run)
        assert run.error_message == "QBO rate limited"

    def test_query_string_variant(self, client, db, client_record):
        run = create_run(db, client_record)
        response = client.get(
            "/api/reviews/callback",
            params={"review_id": run.id, "status": "completed", "action_items_count": "5", "sheet_url": ""},
        )
        assert response.status_code == 200
        assert response.json()["status_color"] == "red"
        db.refresh(run)
        assert run.result_url is None

    def test_repeat_callback_overwrites_and_audits(self, client, db, client_record):
        run = create_run(db, client_record)
        client.post("/api/reviews/callback", json={"run_id": run.id, "status": "completed", "action_items_count": 0})
        response = client.post("/api/reviews/callback", json={"run_id": run.id, "status": "failed"})

        assert response.json()["status"] == "failed"
        assert db.query(NotificationLog).filter_by(event_type="callback_overwrite").count() == 1

    def test_unknown_run(self, client):
        response = client.post("/api/reviews/callback", json={"run_id": "ghost", "status": "completed"})
        assert response.status_code == 404

    def test_malformed_payload(self, client):
        response = client.post("/api/reviews/callback", json={"status": "completed"})
        assert response.status_code == 400

    def test_completed_before_dispatch_conflicts(self, client, db, client_record):
        run = create_run(db, client_record, status="pending")

        response = client.post("/api/reviews/callback", json={"run_id": run.id, "status": "completed"})

        assert response.status_code == 409
        assert response.json()["detail"] == "Illegal run transition: pending -> completed"
        db.refresh(run)
        assert run.status == "pending"
        assert run.completed_at is None

    def test_bad_status(self, client, db, client_record):
        run = create_run(db, client_record)
        response = client.post("/api/reviews/callback", json={"run_id": run.id, "status": "running"})
        assert response.status_code == 400

    def test_secret_enforced(self, client, db, client_record, monkeypatch):
        from config import settings

        monkeypatch.setattr(settings, "N8N_CALLBACK_SECRET", "shh")
        run = create_run(db, client_record)
        body = {"run_id": run.id, "status": "completed"}

        assert client.post("/api/reviews/callback", json=body).status_code == 401
        assert client.post(
            "/api/reviews/callback", json=body, headers={"X-Callback-Secret": "wrong"}
        ).status_code == 401
        assert client.post(
            "/api/reviews/callback", json=body, headers={"X-Callback-Secret": "shh"}
        ).status_code == 200

    def test_query_secret_param(self, client, db, client_record, monkeypatch):
        from config import settings

        monkeypatch.setattr(settings, "N8N_CALLBACK_SECRET", "shh")
        run = create_run(db, client_record)
        response = client.get(
            "/api/reviews/callback", params={"run_id": run.id, "status": "completed", "secret": "shh"}
        )
        assert response.status_code == 200
