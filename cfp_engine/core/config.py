from pydantic_settings import BaseSettings, SettingsConfigDict

# Orchestration wall-clock cap; callers may lower it but never raise it.
MAX_CFP_TIMEOUT_SECONDS = 120.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "cfp_user"
    postgres_password: str = "changeme"
    postgres_db: str = "cfp_engine"

    @property
    def postgres_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis (Celery broker + result backend)
    redis_url: str = "redis://localhost:6379/0"

    # OpenRouter LLM gateway
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_referer: str = "https://github.com/cfp-engine"
    openrouter_title: str = "CFP Engine"
    llm_models: str = "openai/gpt-4-turbo,anthropic/claude-3-opus,google/gemini-2.5-flash"  # comma-separated
    llm_request_timeout: float = 30.0  # seconds, per request
    llm_temperature: float = 0.7
    llm_max_tokens: int = 2000

    @property
    def llm_model_list(self) -> list[str]:
        return [m.strip() for m in self.llm_models.split(",") if m.strip()]

    # Response cache (non-production aid)
    llm_cache_enabled: bool | None = None  # None = enabled outside production
    llm_cache_ttl_seconds: int = 24 * 60 * 60
    llm_cache_path: str = ".cache/llm"

    @property
    def cache_enabled(self) -> bool:
        if self.llm_cache_enabled is None:
            return self.app_env != "production"
        return self.llm_cache_enabled

    # Parallel processor
    processor_batch_size: int = 9  # models x prompt types
    processor_max_concurrency: int = 3
    processor_wave_pause: float = 0.2  # seconds between sub-batch waves

    # CFP orchestration
    cfp_timeout_seconds: float = MAX_CFP_TIMEOUT_SECONDS

    # Scheduler
    scheduler_batch_size: int = 10
    scheduler_missed_after_days: int = 30

    # Firecrawl
    firecrawl_api_key: str = ""
    firecrawl_base_url: str = "https://api.firecrawl.dev"
    firecrawl_timeout: float = 60.0

    # App
    app_env: str = "development"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable


settings = Settings()


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup in non-test environments."""
    errors: list[str] = []

    if settings.app_env == "production":
        if settings.app_debug:
            errors.append("APP_DEBUG must be false in production")
        if settings.cache_enabled:
            errors.append("LLM_CACHE_ENABLED must be false in production")
        if not settings.openrouter_api_key:
            errors.append("OPENROUTER_API_KEY must be set in production")

    if settings.cfp_timeout_seconds <= 0 or settings.cfp_timeout_seconds > MAX_CFP_TIMEOUT_SECONDS:
        errors.append(f"CFP_TIMEOUT_SECONDS must be in (0, {MAX_CFP_TIMEOUT_SECONDS:.0f}]")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
