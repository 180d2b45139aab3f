from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # core
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    API_PREFIX: str = "/api"

    # database & redis
    # Plain strings so sqlite:// URLs (tests, local runs) are accepted as-is
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 5
    REDIS_URL: str = "redis://localhost:6379/0"

    # DataForSEO business data API
    DATAFORSEO_USERNAME: str | None = None
    DATAFORSEO_PASSWORD: str | None = None
    DATAFORSEO_BASE_URL: str = "https://api.dataforseo.com/v3/business_data"
    DATAFORSEO_TIMEOUT_SECONDS: float = 30.0

    # import pipeline
    IMPORT_BATCH_SIZE: int = 100
    IMPORT_MAX_CONCURRENT_JOBS: int = 5
    IMPORT_POLL_INTERVAL_SECONDS: float = 30.0
    IMPORT_MAX_POLLS: int = 60  # 30 minutes at the default interval
    IMPORT_SUBMIT_SETTLE_SECONDS: float = 10.0
    IMPORT_CHUNK_DELAY_SECONDS: float = 0.1
    IMPORT_SWEEP_INTERVAL_SECONDS: float = 60.0

    # data retention (in days)
    JOB_RETENTION_DAYS: int = 30

    # auth / security
    API_AUTH_KEY: str | None = None
    FRONTEND_ORIGIN: str | None = None
    # Explicit debug-only switch for wide-open CORS in non-prod envs
    CORS_ALLOW_ALL_ORIGINS: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
