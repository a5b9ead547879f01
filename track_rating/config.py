"""Application configuration and environment settings"""
from typing import Literal, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class BatchSettings(BaseModel):
    """Batch ingestion specific settings"""
    chunk_size: int = Field(..., description="Events per chunk transaction")
    chunk_timeout_seconds: float = Field(..., description="Storage timeout for one chunk")
    max_attempts: int = Field(..., description="Whole-submission attempts when nothing succeeds")
    retry_base_delay_seconds: float = Field(..., description="Backoff step between attempts")
    rating_mode: str = Field(..., description="'snapshot' or 'sequential'")

class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    # Database connection. DATABASE_URL wins when set.
    DATABASE_URL: Optional[str] = Field(None, description="Full SQLAlchemy database URL")
    DB_HOST: Optional[str] = Field(None, description="Database host")
    DB_PORT: str = Field("5432", description="Database port")
    DB_NAME: str = Field("track_rating", description="Database name")
    DB_USER: str = Field("track_rating", description="Database user")
    DB_PASSWORD: Optional[str] = Field(None, description="Database password")
    DB_SSL_MODE: str = Field("disable", description="PostgreSQL sslmode")
    SQLITE_PATH: str = Field("track_rating.db", description="Fallback local SQLite file")

    # Batch processing
    BATCH_CHUNK_SIZE: int = Field(10, ge=1, description="Events per chunk transaction")
    CHUNK_TIMEOUT_SECONDS: float = Field(5.0, gt=0, description="Storage timeout per chunk")
    MAX_SUBMISSION_ATTEMPTS: int = Field(3, ge=1, description="Attempts when a submission has zero successes")
    RETRY_BASE_DELAY_SECONDS: float = Field(2.0, ge=0, description="Delay step: 0, 1x, 2x ... before each attempt")
    BATCH_RATING_MODE: Literal["snapshot", "sequential"] = Field(
        "snapshot", description="How repeated events for one track inside a chunk compound"
    )

    # Single-event path
    SINGLE_EVENT_MAX_ATTEMPTS: int = Field(3, ge=1, description="Attempts on write conflict")

    # Reads
    RECOMMENDATION_HISTORY_WINDOW: int = Field(10, ge=1, description="Seed ledger rows inspected")
    RATING_HISTORY_LIMIT: int = Field(50, ge=1, description="Ledger rows returned by rating history")

    # Input/Output directories with defaults
    INPUT_DIR: str = Field("/input", description="Directory containing event submissions")
    OUTPUT_DIR: str = Field("/output", description="Directory for results")
    LOG_LEVEL: str = Field("INFO", description="Root logging level")

    @property
    def batch_settings(self) -> BatchSettings:
        """Get batch settings as a separate model"""
        return BatchSettings(
            chunk_size=self.BATCH_CHUNK_SIZE,
            chunk_timeout_seconds=self.CHUNK_TIMEOUT_SECONDS,
            max_attempts=self.MAX_SUBMISSION_ATTEMPTS,
            retry_base_delay_seconds=self.RETRY_BASE_DELAY_SECONDS,
            rating_mode=self.BATCH_RATING_MODE
        )

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True
    )
