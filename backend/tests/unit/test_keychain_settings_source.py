"""Tests for settings sources and validators in config.py."""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from config import DISABLE_KEYCHAIN_ENV, KeychainSettingsSource, Settings
from services.credential_manager import CREDENTIAL_KEYS


@pytest.fixture
def clean_env(monkeypatch):
    """Strip anything Settings reads from the runner's environment."""
    for name in {"DATABASE_URL", "LOG_LEVEL", "INTUIT_ENVIRONMENT", DISABLE_KEYCHAIN_ENV, *CREDENTIAL_KEYS}:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def keychain():
    """Patch the keychain with a dict; yields the dict and the mock."""
    stored: dict[str, str] = {}
    with patch("config.get_credential", side_effect=stored.get) as mock_get:
        yield stored, mock_get


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)


class TestKeychainSource:
    def test_fills_secrets(self, clean_env, keychain):
        stored, _ = keychain
        stored.update(
            {
                "INTUIT_CLIENT_ID": "cid",
                "INTUIT_CLIENT_SECRET": "csecret",
                "N8N_WEBHOOK_URL": "https://n8n.example.com/webhook/review",
            }
        )
        s = _settings()
        assert s.INTUIT_CLIENT_ID == "cid"
        assert s.INTUIT_CLIENT_SECRET == "csecret"
        assert s.N8N_WEBHOOK_URL == "https://n8n.example.com/webhook/review"
        assert s.DROPBOX_APP_KEY == ""

    def test_outranks_env_var(self, clean_env, keychain):
        stored, _ = keychain
        stored["N8N_CALLBACK_SECRET"] = "from-keychain"
        clean_env.setenv("N8N_CALLBACK_SECRET", "from-env")
        assert _settings().N8N_CALLBACK_SECRET == "from-keychain"

    def test_explicit_init_value_wins(self, clean_env, keychain):
        stored, _ = keychain
        stored["TOKEN_ENCRYPTION_KEY"] = "keychain-key"
        assert _settings(TOKEN_ENCRYPTION_KEY="init-key").TOKEN_ENCRYPTION_KEY == "init-key"

    def test_env_used_when_keychain_empty(self, clean_env, keychain):
        clean_env.setenv("INTUIT_CLIENT_SECRET", "from-env")
        assert _settings().INTUIT_CLIENT_SECRET == "from-env"

    def test_plain_settings_never_looked_up(self, clean_env, keychain):
        _, mock_get = keychain
        _settings()
        looked_up = {call.args[0] for call in mock_get.call_args_list}
        assert looked_up <= CREDENTIAL_KEYS
        assert "DATABASE_URL" not in looked_up

    @pytest.mark.parametrize("flag", ["1", "true", "YES"])
    def test_disabled_by_env_flag(self, clean_env, keychain, flag):
        stored, mock_get = keychain
        stored["INTUIT_CLIENT_ID"] = "cid"
        clean_env.setenv(DISABLE_KEYCHAIN_ENV, flag)

        assert _settings().INTUIT_CLIENT_ID == ""
        mock_get.assert_not_called()

    def test_ranked_after_init_settings(self):
        sources = Settings.settings_customise_sources(
            Settings,
            init_settings=object(),
            env_settings=object(),
            dotenv_settings=object(),
            file_secret_settings=object(),
        )
        assert isinstance(sources[1], KeychainSettingsSource)


class TestValidators:
    def test_intuit_environment_lowercased(self, clean_env, keychain):
        clean_env.setenv("INTUIT_ENVIRONMENT", "Production")
        assert _settings().INTUIT_ENVIRONMENT == "production"

    def test_unknown_intuit_environment(self, clean_env, keychain):
        clean_env.setenv("INTUIT_ENVIRONMENT", "staging")
        with pytest.raises(ValidationError, match="INTUIT_ENVIRONMENT"):
            _settings()

    def test_defaults(self, clean_env, keychain):
        s = _settings()
        assert s.DATABASE_URL == "sqlite:///./qbreview.db"
        assert s.INTUIT_ENVIRONMENT == "sandbox"
        assert s.DEDUP_WINDOW_MINUTES == 5
