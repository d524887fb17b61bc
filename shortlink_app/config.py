from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Loading priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values below
    """

    # Environment
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Application
    app_name: str = "Shortlink"
    app_version: str = "1.0.0"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    base_url: str = "http://127.0.0.1:8000"

    # Store
    store_backend: str = "sqlalchemy"  # Options: "sqlalchemy", "memory"
    database_url: str = "sqlite:///./shortlink.db"

    # Redirect cache
    cache_backend: str = "memory"  # Options: "memory", "null"

    # Counter queue settings
    queue_backend: str = "memory"  # Options: "memory", "redis_streams"
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = "click_counters"
    queue_consumer_group: str = "counter_workers"
    queue_consumer_name: str = ""  # Empty means worker-<hostname>; keep it stable across restarts
    queue_claim_idle_ms: int = 60000  # Take over jobs left unacknowledged this long (0 disables)
    queue_batch_size: int = 100  # Number of increments applied per batch
    queue_block_ms: int = 1000  # How long a consume call waits for new jobs

    # Counter worker
    counter_worker_enabled: bool = True  # Run the worker thread inside the web process
    counter_max_attempts: int = 1  # 1 means failed increments are not retried

    # Analytics
    top_referrers_limit: int = 3

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Create settings instance
settings = Settings()
