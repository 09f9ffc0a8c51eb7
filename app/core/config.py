"""
Application configuration.
All settings are loaded from environment variables (or .env).
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


QUALITY_TIERS = ("1K", "2K", "4K")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: the bot token has no default - it MUST be set in .env file.
    GEMINI_API_KEY is optional: users can register their own services with /service add.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    data_dir: str = "./data"

    # ===========================================
    # DATABASE
    # ===========================================
    # Empty = SQLite file inside data_dir
    database_url: str = ""

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"

    # ===========================================
    # TELEGRAM BOT
    # ===========================================
    telegram_bot_token: str  # Required, no default
    telegram_api_base: str = "https://api.telegram.org"

    # ===========================================
    # GEMINI (environment fallback service)
    # ===========================================
    gemini_api_key: str = ""
    gemini_base_url: str = ""  # Empty = https://generativelanguage.googleapis.com
    gemini_image_model: str = "gemini-3-pro-image-preview"
    gemini_timeout: float = 120.0
    # SafetySettings for generateContent (JSON array). Empty = all four harm categories OFF.
    gemini_safety_settings: str = ""

    # ===========================================
    # GENERATION
    # ===========================================
    generation_max_attempts: int = 6
    generation_retry_delay_seconds: float = 2.0
    default_quality: str = "2K"
    default_prompt: str = (
        "Translate all text in this manga/comic image into Traditional Chinese. "
        "Keep the original art, panel layout and speech bubble positions unchanged, "
        "replace only the text, and match the original lettering style as closely as possible."
    )
    history_limit: int = 10

    # ===========================================
    # MEDIA GROUPS (albums)
    # ===========================================
    media_group_settle_seconds: float = 0.5
    media_group_sweep_interval_seconds: float = 300.0
    media_group_ttl_seconds: float = 600.0

    # ===========================================
    # FAILED GENERATION QUEUE
    # ===========================================
    failed_generation_retry_interval_minutes: int = 15
    failed_generation_replay_timeout: float = 180.0

    # ===========================================
    # HTTP / LOGGING
    # ===========================================
    http_client_timeout: float = 30.0
    log_level: str = "INFO"
    log_file: str = ""
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5

    @field_validator("default_quality", mode="before")
    @classmethod
    def _normalize_quality(cls, v: object) -> str:
        value = str(v or "").strip().upper()
        return value if value in QUALITY_TIERS else "2K"

    @field_validator("generation_max_attempts")
    @classmethod
    def _attempts_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("generation_max_attempts must be >= 1")
        return v

    @property
    def effective_database_url(self) -> str:
        if self.database_url.strip():
            return self.database_url.strip()
        return f"sqlite:///{self.data_dir.rstrip('/')}/tg-bawer.db"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
