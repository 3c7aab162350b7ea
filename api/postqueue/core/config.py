from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "postqueue-api"
    environment: str = "dev"
    api_key_header: str = "X-API-Key"
    trigger_api_key: str | None = None
    storage_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    database_command_timeout_seconds: float = 15.0
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    source_timeout_seconds: float = 30.0
    source_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    claim_max_attempts: int = 3
    claim_use_db_function: bool = True
    allow_unconditional_claim_fallback: bool = False
    release_claim_on_post_rejection: bool = False
    twitter_api_base_url: str = "https://api.twitter.com"
    twitter_upload_base_url: str = "https://api.x.com"
    twitter_user_access_token: str | None = None
    post_timeout_seconds: float = 30.0
    otel_enabled: bool = True
    otel_service_name: str = "postqueue-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="PQ_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
