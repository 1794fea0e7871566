import os
from pathlib import Path

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_database_url() -> str:
    """Get database URL, using an absolute path for the local SQLite fallback.

    SQLite is meant for local development and tests. Set DATABASE_URL to a
    PostgreSQL connection string for anything shared between processes.
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        return db_url

    db_path = Path(__file__).parent.parent.parent / "coachforge.db"
    db_url = f"sqlite:///{db_path.resolve()}"
    logger.warning(f"Using SQLite database (local development only): {db_url}")
    return db_url


class Settings(BaseSettings):
    database_url: str = Field(default_factory=get_database_url, validation_alias="DATABASE_URL")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")

    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    llm_provider: str = Field(default="openai", validation_alias="LLM_PROVIDER")
    llm_model: str = Field(default="gpt-4o-mini", validation_alias="LLM_MODEL")

    # Template cache
    template_similar_limit: int = Field(default=5, validation_alias="TEMPLATE_SIMILAR_LIMIT")
    template_duration_tolerance_weeks: int = Field(default=2, validation_alias="TEMPLATE_DURATION_TOLERANCE_WEEKS")
    template_keep_versions: int = Field(default=5, validation_alias="TEMPLATE_KEEP_VERSIONS")

    # Generated instances
    instance_retention_days: int = Field(default=180, validation_alias="INSTANCE_RETENTION_DAYS")
    difficulty_step: float = Field(default=0.1, validation_alias="DIFFICULTY_STEP")
    swap_min_similarity: float = Field(default=0.7, validation_alias="SWAP_MIN_SIMILARITY")

    # Progression analysis
    default_workouts_per_week: int = Field(default=3, validation_alias="DEFAULT_WORKOUTS_PER_WEEK")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("difficulty_step")
    @classmethod
    def validate_difficulty_step(cls, value: float) -> float:
        """Difficulty step must be a fraction strictly between 0 and 1."""
        if not 0 < value < 1:
            raise ValueError(f"DIFFICULTY_STEP must be between 0 and 1, got {value}")
        return value

    @field_validator("template_similar_limit", "template_keep_versions", "default_workouts_per_week")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError(f"Value must be at least 1, got {value}")
        return value

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
