"""Tests for settings API endpoints."""

from unittest.mock import MagicMock, patch

from cryptography.fernet import Fernet
from sqlalchemy.orm import Session

from engui.db import repo
from engui.db.schema import UserSetting

S3_SETTINGS = {
    "endpointUrl": "https://s3api-eu-ro-1.runpod.io",
    "accessKeyId": "AKIAEXAMPLE",
    "secretAccessKey": "secret-value-123",
    "bucketName": "vol-123",
    "region": "eu-ro-1",
}


def save(client, settings: dict):
    return client.post("/api/settings", json={"settings": settings})


class TestGetSettings:
    """Test GET /api/settings."""

    def test_defaults_when_nothing_saved(self, client):
        """Empty settings report every service as missing."""
        data = client.get("/api/settings").json()
        assert data["success"] is True
        assert data["status"] == {"runpod": "missing", "s3": "missing"}
        assert data["settings"]["runpod"]["apiKey"] == ""
        assert data["settings"]["runpod"]["endpoints"]["image"] == ""

    def test_secrets_are_masked(self, client):
        """API key and S3 credentials are masked in responses."""
        save(client, {"runpod": {"apiKey": "rp_abcdefgh"}, "s3": S3_SETTINGS})
        settings = client.get("/api/settings").json()["settings"]
        assert settings["runpod"]["apiKey"] == "rp_a*******"
        assert settings["s3"]["secretAccessKey"].startswith("secr")
        assert "value" not in settings["s3"]["secretAccessKey"]
        assert settings["s3"]["bucketName"] == "vol-123"


class TestSaveSettings:
    """Test POST /api/settings."""

    def test_requires_settings(self, client):
        """Missing settings document returns 400."""
        response = client.post("/api/settings", json={})
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Settings data is required"

    def test_rejects_wrong_types(self, client):
        """Non-string API key is rejected."""
        response = save(client, {"runpod": {"apiKey": 123}})
        assert response.status_code == 400

    def test_rejects_non_object_sections(self, client):
        response = save(client, {"runpod": "abc"})
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "RunPod settings must be an object"

    def test_s3_status_configured(self, client):
        """All S3 fields make the service configured."""
        data = save(client, {"s3": S3_SETTINGS}).json()
        assert data["message"] == "Settings saved successfully"
        assert data["status"]["s3"] == "configured"

    def test_masked_value_does_not_overwrite_secret(self, client, engine):
        """Saving the masked document back keeps the real key."""
        save(client, {"runpod": {"apiKey": "rp_abcdefgh"}})
        masked = client.get("/api/settings").json()["settings"]
        save(client, masked)

        with Session(engine) as db_session:
            setting = repo.get_user_setting(db_session, "user-with-settings", "runpod", "apiKey")
        assert setting.config_value == "rp_abcdefgh"

    def test_short_masked_secret_is_kept(self, client, engine):
        """A secret masked entirely as stars is not saved back."""
        save(client, {"runpod": {"apiKey": "abc"}})
        masked = client.get("/api/settings").json()["settings"]
        assert masked["runpod"]["apiKey"] == "***"
        save(client, masked)

        with Session(engine) as db_session:
            setting = repo.get_user_setting(db_session, "user-with-settings", "runpod", "apiKey")
        assert setting.config_value == "abc"

    def test_encrypts_secrets_when_key_configured(self, client, engine, monkeypatch):
        """With ENGUI_SECRET_KEY set, sensitive values are stored encrypted."""
        monkeypatch.setenv("ENGUI_SECRET_KEY", Fernet.generate_key().decode())
        save(client, {"runpod": {"apiKey": "rp_abcdefgh", "endpoints": {"image": "ep-1"}}})

        with Session(engine) as db_session:
            rows = {r.config_key: r for r in db_session.query(UserSetting).all()}
        assert rows["apiKey"].is_encrypted is True
        assert rows["apiKey"].config_value != "rp_abcdefgh"
        assert rows["endpoints.image"].is_encrypted is False

        settings = client.get("/api/settings").json()["settings"]
        assert settings["runpod"]["apiKey"].startswith("rp_a")
        assert settings["runpod"]["endpoints"]["image"] == "ep-1"


class TestClearSettings:
    """Test POST /api/settings/clear."""

    def test_clears_all(self, client):
        """Reports how many values were removed."""
        save(client, {"s3": S3_SETTINGS})
        data = client.post("/api/settings/clear").json()
        assert data["clearedCount"] == 5
        assert data["message"] == "Cleared 5 settings successfully"
        assert client.get("/api/settings").json()["status"]["s3"] == "missing"


class TestConnectionTest:
    """Test POST /api/settings/test."""

    def test_runpod_requires_key_and_endpoint(self, client):
        """Missing credentials return 400."""
        response = client.post("/api/settings/test", json={"service": "runpod", "apiKey": "k"})
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "API key and endpoint ID are required"

    def test_runpod_success(self, client):
        """Reports the probe result."""
        with patch("engui.api.routes.settings.RunPodService") as service_cls:
            service_cls.return_value.test_connection.return_value = {
                "success": True,
                "message": "Endpoint reachable",
                "response_time_ms": 42,
                "status_code": 200,
            }
            data = client.post(
                "/api/settings/test",
                json={"service": "runpod", "apiKey": "k", "endpointId": "ep-1"},
            ).json()

        service_cls.assert_called_once_with("k", "ep-1")
        assert data["success"] is True
        assert data["responseTime"] == 42
        assert data["endpoint"] == "ep-1"

    def test_s3_requires_all_fields(self, client):
        """Every S3 field must be present."""
        response = client.post(
            "/api/settings/test",
            json={"service": "s3", "config": {"endpointUrl": "https://x"}},
        )
        assert response.status_code == 400

    def test_s3_success(self, client):
        """Lists the bucket to check access."""
        with patch("engui.api.routes.settings.S3Service") as service_cls:
            service_cls.from_settings.return_value = MagicMock(list_files=MagicMock(return_value=[]))
            data = client.post(
                "/api/settings/test", json={"service": "s3", "config": S3_SETTINGS}
            ).json()
        assert data["success"] is True
        assert data["statusCode"] == 200

    def test_unknown_service_returns_400(self, client):
        """Only runpod and s3 can be tested."""
        response = client.post("/api/settings/test", json={"service": "ftp"})
        assert response.json()["error"]["message"] == "Invalid service type"
