"""Tests for settings and per-tenant credential resolution."""

from callbridge.config import resolve_credentials


class TestResolveCredentials:
    """Tests for resolve_credentials."""

    def test_defaults_without_tenant(self, settings):
        config = resolve_credentials(None, settings)

        assert config.tenant_id is None
        assert config.api_key == "test-openai-key"
        assert config.model == settings.openai_realtime_model
        assert config.url == f"{settings.openai_realtime_url}?model={settings.openai_realtime_model}"

    def test_tenant_overrides_from_environment(self, settings, monkeypatch):
        monkeypatch.setenv("ACME_CORP_OPENAI_API_KEY", "acme-key")
        monkeypatch.setenv("ACME_CORP_OPENAI_REALTIME_MODEL", "acme-model")

        config = resolve_credentials("acme-corp", settings)

        assert config.tenant_id == "acme-corp"
        assert config.api_key == "acme-key"
        assert config.model == "acme-model"

    def test_tenant_without_overrides_falls_back(self, settings, monkeypatch):
        monkeypatch.delenv("GLOBEX_OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("GLOBEX_OPENAI_REALTIME_MODEL", raising=False)

        config = resolve_credentials("globex", settings)

        assert config.api_key == "test-openai-key"
        assert config.model == settings.openai_realtime_model


class TestSettingsDefaults:
    """Tests for call-handling defaults."""

    def test_default_intent_is_a_label(self, settings):
        assert settings.default_intent in settings.intent_labels

    def test_urgency_lexicon(self, settings):
        assert "emergency" in settings.urgency_keywords
        assert "not working" in settings.urgency_keywords
