"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite+pysqlite:///:memory:"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Shared secret for scheduler-triggered endpoints (refresh, maintenance)
    INTERNAL_SECRET: str = ""

    # Ingestion queue
    QUEUE_DEFAULT_MAX_RETRIES: int = 3
    QUEUE_STUCK_TIMEOUT_MINUTES: int = 30
    QUEUE_RETENTION_DAYS: int = 7

    # Content-addressed upload/processing queue
    UPLOAD_MAX_TRIES: int = 5
    UPLOAD_STUCK_TIMEOUT_MINUTES: int = 30
    INDEXING_STUCK_TIMEOUT_MINUTES: int = 30
    INDEXING_MAX_TRIES: int = 2

    # Aggregation index
    REFRESH_INTERVAL_MINUTES: int = 5

    # Bulk operations
    OPERATION_PROGRESS_FLUSH_EVERY: int = 100

    # Worker
    WORKER_POLL_INTERVAL: int = 10
    WORKER_BATCH_SIZE: int = 10
    WORKER_SWEEP_INTERVAL_SECONDS: int = 300

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


settings = Settings()
