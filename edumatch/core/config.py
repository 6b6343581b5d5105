"""
Configuration module - loads all env vars using pydantic-settings.
This is the SINGLE SOURCE OF TRUTH for all config values.
"""

from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "edumatch_user"
    postgres_password: str = "password"
    postgres_db: str = "edumatch_db"

    # MongoDB (AI validation cache)
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "edumatch_docs"

    # Document validation model (OpenAI-compatible endpoint)
    validation_api_key: str = "ollama"
    validation_base_url: str = "http://localhost:11434/v1"
    validation_model: str = "gemma3:1b"

    # SMTP
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_from: str = "noreply@edumatch.com"

    # SQS queues
    aws_region: str = "us-east-1"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    sqs_notifications_queue_url: str = ""
    sqs_emails_queue_url: str = ""

    # JWT Auth
    jwt_secret_key: str = "change-this-secret"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440

    # App
    app_url: str = "http://localhost:3000"
    environment: str = "development"
    cron_secret: str = ""
    admin_email: str = ""
    support_receiver_email: str = "support@edumatch.com"
    debug: bool = False
    log_level: str = "INFO"

    @property
    def postgres_url(self) -> str:
        """Construct PostgreSQL connection URL"""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def support_receivers(self) -> List[str]:
        """SUPPORT_RECEIVER_EMAIL may hold several addresses separated by ';'."""
        return [e.strip() for e in self.support_receiver_email.split(";") if e.strip()]

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
