from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "CardBinder"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/cardbinder"

    # Persisted cache tier (synchronous key/value store)
    cache_store_url: str = "sqlite:///.cache/tcg_cache.db"
    cache_key_prefix: str = "tcg_cache_"
    cache_capacity: int = 100
    cache_ttl_seconds: float = 300.0
    cache_sweep_interval_seconds: float = 600.0
    cache_quota_bytes: int = 5_000_000

    catalog_base_url: str = "https://api.tcgdex.net/v2"
    catalog_timeout_seconds: float = 30.0

    default_language: str = "en"
    fallback_language: str = "en"


settings = Settings()


# =============================================================================
# CATALOG LANGUAGES
# =============================================================================

SUPPORTED_LANGUAGES: dict[str, str] = {
    "en": "English",
    "it": "Italiano",
    "fr": "Français",
    "es": "Español",
    "de": "Deutsch",
    "pt": "Português",
    "ja": "日本語",
}
