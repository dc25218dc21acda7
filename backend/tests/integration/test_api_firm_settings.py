"""Integration tests for firm integration settings."""

from models import FirmIntegration


class TestGetIntegration:
    def test_defaults_when_unset(self, client, firm, auth_headers):
        data = client.get("/api/firm/integrations", headers=auth_headers).json()
        assert data["firm_id"] == firm.id
        assert data["is_configured"] is False
        assert data["uses_default_credentials"] is True
        assert data["intuit_client_secret_masked"] is None


class TestSaveIntegration:
    def test_saves_and_masks_secret(self, client, db, vault, firm, auth_headers):
        response = client.put(
            "/api/firm/integrations",
            json={
                "intuit_client_id": "ABfirmclient",
                "intuit_client_secret": "firm-secret-9876",
                "intuit_environment": "production",
                "intuit_app_name": "Ledger Reviews",
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["is_configured"] is True
        assert data["uses_default_credentials"] is False
        assert data["intuit_client_secret_masked"] == "************9876"
        assert "firm-secret-9876" not in response.text

        stored = db.query(FirmIntegration).filter_by(firm_id=firm.id).one()
        assert stored.intuit_client_secret_encrypted != "firm-secret-9876"
        assert vault.decrypt(stored.intuit_client_secret_encrypted) == "firm-secret-9876"

    def test_omitted_secret_is_kept(self, client, db, vault, firm, auth_headers):
        client.put(
            "/api/firm/integrations",
            json={"intuit_client_id": "first", "intuit_client_secret": "keep-me-1234"},
            headers=auth_headers,
        )
        response = client.put(
            "/api/firm/integrations", json={"intuit_client_id": "second"}, headers=auth_headers
        )

        assert response.json()["intuit_client_id"] == "second"
        assert response.json()["intuit_client_secret_masked"].endswith("1234")

    def test_firm_credentials_used_for_connect(self, client, auth_headers, qbo_factory):
        client.put(
            "/api/firm/integrations",
            json={"intuit_client_id": "firm-app", "intuit_client_secret": "firm-secret"},
            headers=auth_headers,
        )
        client.post("/api/quickbooks/connect", json={}, headers=auth_headers)

        credentials, _ = qbo_factory.calls[-1]
        assert credentials.client_id == "firm-app"
        assert credentials.source == "firm"

    def test_invalid_environment(self, client, auth_headers):
        response = client.put(
            "/api/firm/integrations",
            json={"intuit_client_id": "x", "intuit_environment": "staging"},
            headers=auth_headers,
        )
        assert response.status_code == 422
