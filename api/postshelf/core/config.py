from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "postshelf-api"
    environment: str = "dev"
    log_level: str = "INFO"
    database_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PS_DATABASE_URL", "DATABASE_URL"),
    )
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PS_OPENAI_API_KEY", "OPENAI_API_KEY"),
    )
    openai_model: str = "gpt-4o"
    openai_timeout_seconds: float = 60.0
    zenrows_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PS_ZENROWS_API_KEY", "ZENROWS_API_KEY"),
    )
    zenrows_base_url: str = "https://api.zenrows.com/v1/"
    zenrows_wait_for: str = ".feed-shared-update-v2__description, .update-components-text, article"
    zenrows_premium_proxy: bool = True
    zenrows_timeout_seconds: float = 90.0
    auto_categorize: bool = True
    keyword_fallback_enabled: bool = True
    categorizer_max_content_chars: int = 8000
    max_categories_per_post: int = 10
    pipeline_max_concurrency: int = 4
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    otel_enabled: bool = True
    otel_service_name: str = "postshelf-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="PS_", extra="ignore", populate_by_name=True)


@lru_cache
def get_settings() -> Settings:
    return Settings()
