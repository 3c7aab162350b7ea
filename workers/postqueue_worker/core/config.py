from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    environment: str = "dev"
    api_base_url: str = "http://localhost:8000"
    api_key: str | None = None
    request_timeout_seconds: float = 60.0
    poll_interval_seconds: float = 5.0
    max_backoff_seconds: float = 300.0
    ingest_targets: str = "newsonair:all,gktoday:all,sarkari-result:all"
    ingest_interval_seconds: float = 900.0
    dispatch_enabled: bool = True
    dispatch_interval_seconds: float = 1800.0
    dispatch_publish: bool = True
    dispatch_hashtags: str | None = None
    otel_enabled: bool = True
    otel_service_name: str = "postqueue-worker"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="PQ_WORKER_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
