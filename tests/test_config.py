# Tests for config.py
# Created: 2026-10-12

import json

from rankdeck.config import (
    SEARCH_CONSOLE_READONLY,
    Settings,
    get_config_path,
    get_session_secret,
    get_settings,
)


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.google_oauth_scope == SEARCH_CONSOLE_READONLY
        assert settings.redirect_uri == "http://localhost:5173/callback"
        assert settings.integration_screen_url == (
            "http://localhost:5173/integrations/google-search-console"
        )
        assert settings.state_ttl_seconds == 600
        assert settings.opener_state_timeout == 5.0
        assert settings.popup_close_delay == 1.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("RANKDECK_GOOGLE_OAUTH_CLIENT_ID", "from-env")
        monkeypatch.setenv("RANKDECK_APP_ORIGIN", "https://app.rankdeck.io/")
        settings = Settings()
        assert settings.google_oauth_client_id == "from-env"
        assert settings.redirect_uri == "https://app.rankdeck.io/callback"

    def test_load_from_config_file(self):
        get_config_path().write_text(json.dumps({"google_oauth_client_id": "from-file"}))
        assert Settings.load().google_oauth_client_id == "from-file"

    def test_config_file_wins_over_env(self, monkeypatch):
        monkeypatch.setenv("RANKDECK_GOOGLE_OAUTH_CLIENT_ID", "from-env")
        monkeypatch.setenv("RANKDECK_WEB_PORT", "9000")
        get_config_path().write_text(json.dumps({"google_oauth_client_id": "from-file"}))
        settings = Settings.load()
        assert settings.google_oauth_client_id == "from-file"
        assert settings.web_port == 9000

    def test_unreadable_config_falls_back(self):
        get_config_path().write_text("{broken")
        assert Settings.load().google_oauth_client_id is None

    def test_save_never_writes_new_secrets(self):
        Settings(google_oauth_client_id="id", google_oauth_client_secret="sec").save()
        data = json.loads(get_config_path().read_text())
        assert data["google_oauth_client_id"] == "id"
        assert "google_oauth_client_secret" not in data
        assert "session_secret" not in data

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()


class TestSessionSecret:
    def test_configured_secret_wins(self):
        assert get_session_secret(Settings(session_secret="configured")) == "configured"

    def test_generated_once_and_persisted(self):
        first = get_session_secret(Settings())
        second = get_session_secret(Settings())
        assert first == second
        assert len(first) >= 32
