"""
Tests for the configuration module.
"""

import pytest
from pydantic import ValidationError


class TestSettings:
    """Tests for Settings class."""

    def test_defaults(self):
        """Test that defaults are applied without any environment."""
        from config.settings import Settings

        settings = Settings(_env_file=None)

        assert settings.host == "0.0.0.0"
        assert settings.port == 8080
        assert settings.semantic_weight == 0.5
        assert settings.keyword_weight == 0.5
        assert settings.default_limit == 20
        assert settings.max_limit == 100
        assert settings.keyword_normalizer == "minmax"
        assert settings.semantic_cache_ttl_seconds == 10.0
        assert settings.workers == 1

    def test_is_development_property(self):
        """Test is_development property."""
        from config.settings import Settings

        for env in ["development", "dev", "local"]:
            assert Settings(_env_file=None, environment=env).is_development is True

        assert Settings(_env_file=None, environment="production").is_development is False

    def test_is_production_property(self):
        """Test is_production property."""
        from config.settings import Settings

        for env in ["production", "prod"]:
            assert Settings(_env_file=None, environment=env).is_production is True

        assert Settings(_env_file=None, environment="development").is_production is False

    def test_cors_origins_parsing(self):
        """Test that CORS origins can be parsed from comma-separated string."""
        from config.settings import Settings

        settings = Settings(
            _env_file=None,
            cors_origins="http://localhost:3000,http://localhost:5173",
        )

        assert settings.cors_origins == ["http://localhost:3000", "http://localhost:5173"]

    def test_backend_configured_flags(self):
        """Test that backends count as configured only with full credentials."""
        from config.settings import Settings

        settings = Settings(_env_file=None, supabase_url="https://test.supabase.co")
        assert settings.supabase_configured is False

        settings = Settings(
            _env_file=None,
            supabase_url="https://test.supabase.co",
            supabase_service_key="test-key",
            algolia_app_id="APP",
            algolia_search_key="key",
        )
        assert settings.supabase_configured is True
        assert settings.algolia_configured is True

    def test_env_override(self, monkeypatch):
        """Test that environment variables override defaults."""
        from config.settings import Settings

        monkeypatch.setenv("SEMANTIC_WEIGHT", "0.7")
        monkeypatch.setenv("KEYWORD_NORMALIZER", "Saturation")

        settings = Settings(_env_file=None)

        assert settings.semantic_weight == 0.7
        assert settings.keyword_normalizer == "saturation"

    def test_invalid_normalizer_rejected(self):
        """Test that an unknown keyword normalizer fails validation."""
        from config.settings import Settings

        with pytest.raises(ValidationError):
            Settings(_env_file=None, keyword_normalizer="bm25")

    def test_zero_weights_rejected(self):
        """Test that both fusion weights cannot be zero."""
        from config.settings import Settings

        with pytest.raises(ValidationError):
            Settings(_env_file=None, semantic_weight=0, keyword_weight=0)

    def test_timeouts_must_be_positive(self):
        """Test retrieval timeout bounds."""
        from config.settings import Settings

        with pytest.raises(ValidationError):
            Settings(_env_file=None, semantic_timeout_seconds=0)

    def test_settings_for_testing(self):
        """Test get_settings_for_testing function."""
        from config.settings import get_settings_for_testing

        settings = get_settings_for_testing(max_limit=10)

        assert settings.environment == "testing"
        assert settings.debug is True
        assert settings.max_limit == 10
        # Backends are disabled in tests
        assert settings.supabase_configured is False
        assert settings.algolia_configured is False
        assert settings.analytics_persist_enabled is False


class TestConstants:
    """Tests for constants module."""

    def test_keyword_tables_are_lowercase(self):
        """Test that every dictionary term is lowercase."""
        from config.constants import HEALTH_KEYWORDS, KEYWORD_CATEGORIES

        assert tuple(HEALTH_KEYWORDS) == KEYWORD_CATEGORIES
        for table in HEALTH_KEYWORDS.values():
            for canonical, synonyms in table.items():
                assert canonical == canonical.lower()
                assert all(s == s.lower() for s in synonyms)

    def test_seasons_cover_every_month(self):
        """Test that exactly one seasonal rule is active per month."""
        from config.constants import SEASONAL_RULES

        months = [m for rule in SEASONAL_RULES for m in rule.months]
        assert sorted(months) == list(range(1, 13))

    def test_seasonal_multipliers_bounded(self):
        """Test seasonal multipliers stay within 1.0-1.4."""
        from config.constants import SEASONAL_RULES

        for rule in SEASONAL_RULES:
            assert all(1.0 <= m <= 1.4 for m in rule.terms.values())


class TestDatabase:
    """Tests for Supabase client construction."""

    def test_missing_credentials(self):
        """Test that empty credentials raise SupabaseClientError."""
        from config.database import SupabaseClientError, create_supabase_client

        with pytest.raises(SupabaseClientError):
            create_supabase_client("", "")


class TestServerEntryPoint:
    """Tests for the uvicorn entry point."""

    def test_main_serves_one_worker(self, monkeypatch):
        """Test that main() runs one process even when WORKERS asks for more."""
        import uvicorn

        import api.app as app_module
        from config.settings import get_settings_for_testing

        calls = []
        monkeypatch.setattr(uvicorn, "run", lambda *args, **kwargs: calls.append(kwargs))
        monkeypatch.setattr(app_module, "get_settings", lambda: get_settings_for_testing(workers=4, port=9090))

        app_module.main()

        assert len(calls) == 1
        assert calls[0]["workers"] == 1
        assert calls[0]["port"] == 9090
