from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Application
    log_level: str = "INFO"

    # Learning platform backend
    api_base_url: str = "http://localhost:5555/api"
    api_token: str | None = None
    http_timeout: float = 30.0

    # Countdown
    timer_tick_seconds: float = 1.0

    # Timer-triggered submission retries
    auto_submit_backoff_base: float = 1.0
    auto_submit_backoff_max: float = 30.0
    auto_submit_max_retries: int | None = None

    # Local UI service
    service_host: str = "127.0.0.1"
    service_port: int = 8000


# Global settings instance
settings = Settings()
