from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./socialdesk.db"
    # Naive datetimes from clients are read in this zone
    timezone: str = "UTC"

    graph_api_version: str = "v18.0"

    gemini_model: str = "gemini-2.0-flash-exp"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta/models"
    gemini_timeout_seconds: float = 90.0
    gemini_structured_output: bool = True

    cloudinary_folder: str = "facebook-posts"

    scheduler_enabled: bool = True
    scheduler_interval_seconds: int = 60
    cron_secret: str | None = None

    publish_timeout_seconds: float = 30.0
    publish_max_attempts: int = 3
    publish_backoff_seconds: float = 2.0
    connectivity_timeout_seconds: float = 5.0
    download_timeout_seconds: float = 60.0

    default_user_id: str = "default"
    log_level: str = "INFO"


settings = Settings()
