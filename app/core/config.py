"""
Application configuration using Pydantic Settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Plant Care Reminders API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = True
    API_PREFIX: str = "/api/v1"

    # MongoDB
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "plant_care"

    # Device calendar used for day arithmetic (IANA name, e.g. "Europe/Berlin")
    DEVICE_TIMEZONE: str = "UTC"

    # Scheduling
    REMINDER_MIN_LEAD_MINUTES: int = 1
    REMINDER_DUE_SOON_DAYS: int = 2
    DEFAULT_NOTIFICATION_BODY: str = "Time to take care of your plant"
    # Claims older than this are treated as abandoned by a crashed worker
    NOTIFICATION_CLAIM_TIMEOUT_MINUTES: int = 10

    # Attention thresholds (health percentage)
    HEALTH_CRITICAL_THRESHOLD: int = 25
    HEALTH_LOW_THRESHOLD: int = 50

    # Requests
    MAX_REQUEST_BODY_BYTES: int = 256_000

    # Batch actions (0 = unbounded fan-out)
    BATCH_MAX_CONCURRENCY: int = 0

    # Live queries fall back to polling when change streams are unavailable
    LIVE_QUERY_POLL_SECONDS: float = 5.0

    # Completed reminders older than this are soft-deleted by the worker
    COMPLETED_REMINDER_RETENTION_DAYS: int = 30

    # AWS SNS (push delivery)
    AWS_REGION: str = "ap-south-1"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""

    # Celery
    CELERY_BROKER_URL: str = "sqs://"
    CELERY_QUEUE_PREFIX: str = "plant-care-"
    CELERY_VISIBILITY_TIMEOUT: int = 3600
    CELERY_POLLING_INTERVAL: float = 1.0
    CELERY_WAIT_TIME_SECONDS: int = 10
    SQS_DEFAULT_QUEUE_URL: str = ""
    CELERY_TASK_TIME_LIMIT: int = 0
    CELERY_TASK_SOFT_TIME_LIMIT: int = 0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"



@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
