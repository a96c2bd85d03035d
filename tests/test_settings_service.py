"""Tests for the settings service and secret encryption."""

import pytest
from cryptography.fernet import Fernet

from engui.db import repo
from engui.settings.encryption import SecretCipher, SettingsDecryptionError, is_masked, mask_secret
from engui.settings.service import (
    SettingsService,
    calculate_status,
    default_settings,
    is_s3_configured,
    validate_settings_payload,
)


@pytest.fixture
def cipher() -> SecretCipher:
    return SecretCipher(Fernet.generate_key())


class TestEncryption:
    """Test SecretCipher and masking."""

    def test_round_trip(self, cipher):
        token = cipher.encrypt("rp_secret")
        assert token != "rp_secret"
        assert cipher.decrypt(token) == "rp_secret"

    def test_disabled_without_key(self):
        """Without a key values pass through."""
        plain = SecretCipher(None)
        assert not plain.enabled
        assert plain.encrypt("x") == "x"
        with pytest.raises(SettingsDecryptionError):
            plain.decrypt("x")

    def test_wrong_key(self, cipher):
        token = cipher.encrypt("x")
        with pytest.raises(SettingsDecryptionError):
            SecretCipher(Fernet.generate_key()).decrypt(token)

    @pytest.mark.parametrize(
        "value,masked",
        [("rp_abcdefgh", "rp_a*******"), ("abc", "***"), ("", "")],
    )
    def test_mask_secret(self, value, masked):
        assert mask_secret(value) == masked

    def test_is_masked(self):
        assert is_masked("rp_a****")
        assert not is_masked("rp_abcd")
        assert is_masked("****")
        assert not is_masked("")


class TestStatus:
    """Test calculate_status and payload validation."""

    def test_missing_partial_configured(self):
        settings = default_settings()
        assert calculate_status(settings) == {"runpod": "missing", "s3": "missing"}

        settings["runpod"]["apiKey"] = "k"
        assert calculate_status(settings)["runpod"] == "partial"

        settings["s3"].update(
            endpointUrl="https://x", accessKeyId="a", secretAccessKey="s", bucketName="b", region="r"
        )
        assert calculate_status(settings)["s3"] == "configured"
        assert is_s3_configured(settings)

    @pytest.mark.parametrize(
        "payload,message",
        [
            ([], "Settings must be an object"),
            ({"runpod": "abc"}, "RunPod settings must be an object"),
            ({"s3": ["bucket"]}, "S3 settings must be an object"),
            ({"runpod": {"endpoints": []}}, "RunPod endpoints must be an object"),
            ({"runpod": {"endpoints": {"image": 5}}}, "RunPod endpoint image must be a string"),
            ({"s3": {"useGlobalNetworking": "yes"}}, "S3 useGlobalNetworking must be a boolean"),
            ({"runpod": {"apiKey": "k"}}, None),
        ],
    )
    def test_validate_payload(self, payload, message):
        assert validate_settings_payload(payload) == message


class TestSettingsService:
    """Test SettingsService against the database."""

    def test_save_and_load(self, session):
        service = SettingsService(session, SecretCipher(None))
        written = service.save_settings(
            "user-1",
            {
                "runpod": {"apiKey": "rp_key", "endpoints": {"wan22": "ep-w", "image": ""}, "generateTimeout": 600},
                "s3": {"bucketName": "vol", "useGlobalNetworking": True},
            },
        )
        session.commit()
        assert written == 5

        settings, _ = service.get_settings("user-1")
        assert settings["runpod"]["apiKey"] == "rp_key"
        assert settings["runpod"]["endpoints"]["wan22"] == "ep-w"
        assert settings["runpod"]["generateTimeout"] == 600
        assert settings["s3"]["useGlobalNetworking"] is True

    def test_sensitive_values_encrypted(self, session, cipher):
        service = SettingsService(session, cipher)
        service.save_settings("user-1", {"s3": {"secretAccessKey": "s3cret-value", "bucketName": "vol"}})
        session.commit()

        stored = repo.get_user_setting(session, "user-1", "s3", "secretAccessKey")
        assert stored.is_encrypted
        assert repo.get_user_setting(session, "user-1", "s3", "bucketName").is_encrypted is False
        assert service.get_decrypted_setting("user-1", "s3", "secretAccessKey") == "s3cret-value"

    def test_unreadable_secret_is_skipped(self, session, cipher):
        """Ciphertext from another key is left out instead of failing the load."""
        SettingsService(session, cipher).save_settings("user-1", {"runpod": {"apiKey": "rp_key"}})
        session.commit()

        other = SettingsService(session, SecretCipher(Fernet.generate_key()))
        settings, status = other.get_settings("user-1")
        assert settings["runpod"]["apiKey"] == ""
        assert status["runpod"] == "missing"
        assert other.get_decrypted_setting("user-1", "runpod", "apiKey") is None

    def test_masked_values_not_saved(self, session):
        service = SettingsService(session, SecretCipher(None))
        service.save_settings("user-1", {"runpod": {"apiKey": "rp_realkey"}})
        service.save_settings("user-1", {"runpod": {"apiKey": "rp_r*****"}})
        session.commit()
        assert service.get_decrypted_setting("user-1", "runpod", "apiKey") == "rp_realkey"

    def test_mask_sensitive_data_copies(self):
        settings = default_settings()
        settings["runpod"]["apiKey"] = "rp_abcdefgh"
        masked = SettingsService.mask_sensitive_data(settings)
        assert masked["runpod"]["apiKey"] == "rp_a*******"
        assert settings["runpod"]["apiKey"] == "rp_abcdefgh"

    def test_current_workspace(self, session):
        service = SettingsService(session, SecretCipher(None))
        assert service.get_current_workspace_id("user-1") is None
        service.set_current_workspace_id("user-1", "ws-1")
        service.set_current_workspace_id("user-1", "ws-2")
        session.commit()
        assert service.get_current_workspace_id("user-1") == "ws-2"

    def test_clear(self, session):
        service = SettingsService(session, SecretCipher(None))
        service.save_settings("user-1", {"s3": {"bucketName": "vol", "region": "eu"}})
        session.commit()
        assert service.clear_settings("user-1") == 2
