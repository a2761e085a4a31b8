from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional
from dotenv import load_dotenv
import os

# ENVIRONMENT selects the settings class below, so .env must be loaded first
load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )
    # Application
    app_name: str = "Milestone"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    frontend_url: str = Field(default="http://localhost:5173", alias="FRONTEND_URL")

    # Database
    database_url: str = Field(alias="DATABASE_URL")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # Authentication & Security
    secret_key: str = Field(alias="SECRET_KEY")
    refresh_secret_key: Optional[str] = Field(default=None, alias="REFRESH_SECRET_KEY")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default=15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_days: int = Field(default=7, alias="REFRESH_TOKEN_EXPIRE_DAYS")

    # AI & LLM Configuration
    llm_provider: str = Field(default="openai", alias="LLM_PROVIDER")  # openai or ollama

    # OpenAI-compatible configuration (OpenAI, Groq, Together, ...)
    openai_api_key: str = Field(default="not-needed", alias="OPENAI_API_KEY")
    openai_api_base: Optional[str] = Field(default=None, alias="OPENAI_API_BASE")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_temperature: float = Field(default=0.3, alias="OPENAI_TEMPERATURE")
    max_tokens: int = Field(default=1500, alias="MAX_TOKENS")

    # Ollama Configuration
    ollama_base_url: str = Field(default="http://localhost:11434", alias="OLLAMA_BASE_URL")
    ollama_model: str = Field(default="llama3.2", alias="OLLAMA_MODEL")
    llm_timeout_seconds: float = Field(default=30.0, alias="LLM_TIMEOUT_SECONDS")

    # Slack notifications
    slack_bot_token: Optional[str] = Field(default=None, alias="SLACK_BOT_TOKEN")
    slack_manager_channel: Optional[str] = Field(default=None, alias="SLACK_MANAGER_CHANNEL")
    slack_admin_channel: Optional[str] = Field(default=None, alias="SLACK_ADMIN_CHANNEL")

    # Workflow rules (local time is interpreted in `timezone`)
    timezone: str = Field(default="UTC", alias="TIMEZONE")
    late_submission_hour: int = Field(default=19, alias="LATE_SUBMISSION_HOUR")
    late_login_cutoff: str = Field(default="10:00", alias="LATE_LOGIN_CUTOFF")
    pending_review_days: int = Field(default=7, alias="PENDING_REVIEW_DAYS")

    # Workflow & Scheduling
    enable_scheduled_tasks: bool = Field(default=True, alias="ENABLE_SCHEDULED_TASKS")
    scheduler_poll_seconds: float = Field(default=30.0, alias="SCHEDULER_POLL_SECONDS")
    scheduler_misfire_grace_minutes: int = Field(default=60, alias="SCHEDULER_MISFIRE_GRACE_MINUTES")
    daily_reminder_time: str = Field(default="18:00", alias="DAILY_REMINDER_TIME")
    weekly_report_time: str = Field(default="09:00", alias="WEEKLY_REPORT_TIME")
    mark_absent_time: str = Field(default="23:59", alias="MARK_ABSENT_TIME")
    mark_late_time: str = Field(default="10:00", alias="MARK_LATE_TIME")

    # Outbound task queue (AI analysis, notifications)
    task_queue_workers: int = Field(default=2, alias="TASK_QUEUE_WORKERS")
    task_max_attempts: int = Field(default=3, alias="TASK_MAX_ATTEMPTS")
    task_retry_base_delay: float = Field(default=1.0, alias="TASK_RETRY_BASE_DELAY")  # seconds

    # File uploads
    upload_dir: str = Field(default="uploads", alias="UPLOAD_DIR")
    max_file_size: int = Field(default=10 * 1024 * 1024, alias="MAX_FILE_SIZE")  # bytes
    max_files_per_upload: int = Field(default=5, alias="MAX_FILES_PER_UPLOAD")
    allowed_file_types: List[str] = Field(
        default=["pdf", "doc", "docx", "png", "jpg", "jpeg", "zip"],
        alias="ALLOWED_FILE_TYPES"
    )

    # CORS
    allowed_origins: List[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"],
        alias="ALLOWED_ORIGINS"
    )

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")

    # Feature Flags
    enable_ai_suggestions: bool = Field(default=True, alias="ENABLE_AI_SUGGESTIONS")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def jwt_refresh_secret(self) -> str:
        return self.refresh_secret_key or f"{self.secret_key}:refresh"


# Environment-specific configurations
class DevelopmentConfig(Settings):
    debug: bool = True
    database_echo: bool = False
    log_level: str = "DEBUG"


class ProductionConfig(Settings):
    debug: bool = False
    database_echo: bool = False
    log_level: str = "WARNING"


class TestingConfig(Settings):
    database_url: str = "sqlite+aiosqlite:///:memory:"
    secret_key: str = "test-secret-key"
    enable_scheduled_tasks: bool = False
    enable_ai_suggestions: bool = False
    task_retry_base_delay: float = 0.0


def get_settings() -> Settings:
    """Factory function to get settings based on environment"""
    env = os.getenv("ENVIRONMENT", "development").lower()

    if env == "production":
        return ProductionConfig()
    elif env == "testing":
        return TestingConfig()
    else:
        return DevelopmentConfig()


# Global settings instance
settings = get_settings()
