"""
Centralized settings management using pydantic-settings.

All environment variables and configuration values are defined here.
Use get_settings() to access the singleton settings instance.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Backend environment variables (all optional, the matching subsystem
    reports itself unavailable when they are empty):
        - SUPABASE_URL: Supabase project URL (catalog, vectors, analytics)
        - SUPABASE_SERVICE_KEY: Supabase service role key
        - ALGOLIA_APP_ID / ALGOLIA_SEARCH_KEY: keyword index credentials

    Optional environment variables:
        - HOST: Server host (default: 0.0.0.0)
        - PORT: Server port (default: 8080)
        - ENVIRONMENT: Environment name (development, staging, production)
        - SEMANTIC_WEIGHT / KEYWORD_WEIGHT: default fusion weights
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Minimum log level")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    # ==========================================================================
    # Server Configuration
    # ==========================================================================
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    # Profiles, analytics and caches live in process memory: one worker only
    workers: int = Field(default=1, ge=1, description="Number of uvicorn workers")

    # CORS Configuration
    cors_origins: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ],
        description="Allowed CORS origins"
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # ==========================================================================
    # Supabase Configuration (catalog, vector RPC, analytics tables)
    # ==========================================================================
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_service_key: str = Field(default="", description="Supabase service role key")

    catalog_table: str = Field(default="products", description="Product catalog table")
    vector_match_function: str = Field(
        default="match_products",
        description="pgvector RPC returning (id, similarity, metadata) rows"
    )
    analytics_search_table: str = Field(default="search_events", description="Search event table")
    analytics_click_table: str = Field(default="search_clicks", description="Click event table")
    analytics_purchase_table: str = Field(default="search_purchases", description="Purchase event table")
    analytics_persist_enabled: bool = Field(
        default=True,
        description="Persist tracked events to Supabase (best-effort)"
    )

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    # ==========================================================================
    # Algolia Search Configuration
    # ==========================================================================
    algolia_app_id: str = Field(default="", description="Algolia application ID")
    algolia_search_key: str = Field(default="", description="Algolia search API key")
    algolia_index_name: str = Field(default="products", description="Algolia index name")

    @property
    def algolia_configured(self) -> bool:
        return bool(self.algolia_app_id and self.algolia_search_key)

    # ==========================================================================
    # Retrieval
    # ==========================================================================
    semantic_timeout_seconds: float = Field(default=2.5, gt=0, description="Semantic backend timeout")
    keyword_timeout_seconds: float = Field(default=1.0, gt=0, description="Keyword backend timeout")
    fusion_budget_seconds: float = Field(
        default=0.25, ge=0,
        description="Extra join budget on top of the slowest retriever timeout"
    )
    semantic_top_k: int = Field(default=50, ge=1, description="Candidates requested from the vector backend")
    keyword_top_k: int = Field(default=50, ge=1, description="Candidates requested from the keyword index")
    semantic_min_score: float = Field(default=0.0, ge=0, le=1, description="Default semantic score floor")
    keyword_normalizer: str = Field(
        default="minmax",
        description="Keyword score normalizer: 'minmax' (per batch) or 'saturation' (fixed curve)"
    )
    keyword_saturation_k: float = Field(
        default=10.0, gt=0,
        description="Half-saturation point of the 'saturation' normalizer"
    )
    retriever_workers: int = Field(default=8, ge=1, description="Worker threads per retriever adapter")

    @field_validator("keyword_normalizer")
    @classmethod
    def check_keyword_normalizer(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ("minmax", "saturation"):
            raise ValueError("keyword_normalizer must be 'minmax' or 'saturation'")
        return v

    # ==========================================================================
    # Fusion & Result Limits
    # ==========================================================================
    semantic_weight: float = Field(default=0.5, ge=0, description="Default semantic fusion weight")
    keyword_weight: float = Field(default=0.5, ge=0, description="Default keyword fusion weight")
    default_limit: int = Field(default=20, ge=1, description="Default result count")
    max_limit: int = Field(default=100, ge=1, description="Maximum result count per request")
    max_query_length: int = Field(default=500, ge=1, description="Maximum accepted query length")

    @model_validator(mode="after")
    def check_weights(self) -> "Settings":
        if self.semantic_weight + self.keyword_weight <= 0:
            raise ValueError("semantic_weight and keyword_weight cannot both be zero")
        return self

    # ==========================================================================
    # Query Expansion
    # ==========================================================================
    max_query_variants: int = Field(default=5, ge=0, description="Expansion variants beyond the original")
    max_variant_length: int = Field(default=200, ge=10, description="Maximum length of an expanded variant")

    # ==========================================================================
    # Contextual Boosting
    # ==========================================================================
    boost_min: float = Field(default=0.5, gt=0, description="Lower clamp for every boost")
    boost_max: float = Field(default=2.0, gt=0, description="Upper clamp for every boost")
    personalization_cap: float = Field(default=0.5, ge=0, description="Maximum personalization uplift")
    personalization_scale: float = Field(default=0.05, ge=0, description="Uplift per preference point")
    regional_multiplier: float = Field(default=1.2, gt=0, description="Default regional multiplier")

    # ==========================================================================
    # Behavior Profiles
    # ==========================================================================
    profile_max_count: int = Field(default=10000, ge=1, description="Maximum live profiles (LRU)")
    profile_history_limit: int = Field(default=50, ge=1, description="History entries kept per kind")
    profile_decay: float = Field(default=0.98, gt=0, le=1, description="Preference decay per event")
    profile_search_weight: float = Field(default=1.0, ge=0, description="Preference increment per search")
    profile_click_weight: float = Field(default=2.0, ge=0, description="Preference increment per click")
    profile_purchase_weight: float = Field(default=3.0, ge=0, description="Preference increment per purchase")
    profile_max_age_seconds: int = Field(default=7 * 24 * 3600, ge=1, description="Profile idle TTL")
    profile_sweep_interval_seconds: float = Field(default=300.0, gt=0, description="Eviction sweep interval")

    # ==========================================================================
    # Analytics Tracking
    # ==========================================================================
    analytics_event_log_limit: int = Field(default=10000, ge=2, description="In-memory search event log size")
    tracking_workers: int = Field(default=2, ge=1, description="Tracking dispatcher worker threads")
    tracking_queue_limit: int = Field(default=1000, ge=1, description="Maximum pending tracking tasks")
    tracking_timeout_seconds: float = Field(default=2.0, gt=0, description="Slow tracking task warning threshold")

    # ==========================================================================
    # HTTP Caching
    # ==========================================================================
    semantic_cache_ttl_seconds: float = Field(default=10.0, ge=0, description="GET /semantic response cache TTL")
    semantic_cache_max_entries: int = Field(default=500, ge=1, description="GET /semantic cache size")


@lru_cache
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Uses lru_cache to ensure only one instance is created.
    Settings are loaded from environment variables and .env file.

    Returns:
        Settings: The application settings instance

    Raises:
        ValidationError: If an environment value is invalid
    """
    # Try to find .env file in project root
    env_file = Path(__file__).parent.parent.parent / ".env"
    if env_file.exists():
        os.environ.setdefault("ENV_FILE", str(env_file))

    return Settings(_env_file=env_file if env_file.exists() else None)


def get_settings_for_testing(**overrides) -> Settings:
    """
    Create a settings instance for testing with optional overrides.

    This bypasses the cache to allow different settings in tests.

    Args:
        **overrides: Setting values to override

    Returns:
        Settings: A new settings instance with overrides applied
    """
    # Set defaults for testing
    test_defaults = {
        "supabase_url": "",
        "supabase_service_key": "",
        "algolia_app_id": "",
        "algolia_search_key": "",
        "environment": "testing",
        "debug": True,
        "analytics_persist_enabled": False,
    }
    test_defaults.update(overrides)

    return Settings(_env_file=None, **test_defaults)
