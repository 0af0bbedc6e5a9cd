from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "paysettle"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DATABASE_DSN: str = "sqlite:////tmp/paysettle.db"
    REDIS_URL: str = "redis://localhost:6379"

    # Search index (Elasticsearch-compatible REST API)
    SEARCH_ENABLED: bool = False
    SEARCH_URL: str = "http://localhost:9200"
    SEARCH_INDEX_NAME: str = "settlement_search"
    SEARCH_TIMEOUT_SECONDS: float = 10.0

    # Settlement batch
    SETTLEMENT_CHUNK_SIZE: int = 1000

    # Index retry queue
    INDEX_QUEUE_BATCH_SIZE: int = 100
    INDEX_QUEUE_MAX_RETRIES: int = 3
    INDEX_QUEUE_RETENTION_DAYS: int = 30
    INDEX_QUEUE_STALE_PROCESSING_MINUTES: int = 10
    INDEX_BULK_SIZE: int = 100

    # Dynamic scheduler
    SCHEDULE_RELOAD_MINUTES: int = 5
    SCHEDULER_MAX_WORKERS: int = 3
    SCHEDULER_TIMEZONE: str = "UTC"

    # Payment gateway
    PAYMENT_GATEWAY: str = "manual"  # "manual" or "toss"
    TOSS_API_URL: str = "https://api.tosspayments.com"
    TOSS_SECRET_KEY: str = ""
    GATEWAY_TIMEOUT_SECONDS: float = 30.0

    # Prometheus metrics port for the worker; 0 disables it
    METRICS_PORT: int = 0

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"


settings = Settings()
