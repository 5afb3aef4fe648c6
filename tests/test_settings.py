"""Tests for Settings."""

from config.settings import Settings


class TestSettings:
    """Test defaults and environment key loading."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        settings = Settings()

        assert settings.llm_provider == "anthropic"
        assert settings.active_capacity == 10
        assert settings.summary_turn_count == 5
        assert settings.max_summaries == 3
        assert settings.external_sources_enabled is False
        assert settings.get_llm_api_key() is None

    def test_keys_loaded_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-anthropic")
        monkeypatch.setenv("NEWSAPI_API_KEY", "news-key")

        settings = Settings()

        assert settings.openai_api_key == "sk-openai"
        assert settings.anthropic_api_key == "sk-anthropic"
        assert settings.newsapi_api_key == "news-key"

    def test_explicit_key_wins(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "from-env")

        assert Settings(anthropic_api_key="explicit").anthropic_api_key == "explicit"

    def test_provider_key_selection(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        assert Settings(llm_provider="openai", openai_api_key="o").get_llm_api_key() == "o"
        assert Settings(llm_provider="anthropic", anthropic_api_key="a").get_llm_api_key() == "a"
        assert Settings(llm_provider="other", anthropic_api_key="a").get_llm_api_key() is None
