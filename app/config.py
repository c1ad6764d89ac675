"""Application configuration."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Application
    APP_ENV: str = "development"
    SECRET_KEY: str
    API_V1_PREFIX: str = ""
    LOG_LEVEL: str = "INFO"

    # OpenAI
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o"
    OPENAI_MAX_TOKENS: int = 800

    # Rate limiting
    RATE_LIMIT_DEFAULT: str = "120/minute"

    # Response cache
    MEMORY_CACHE_MAX_ENTRIES: int = 100

    # Digital twin simulation
    SIMULATION_CACHE_TTL_SECONDS: int = 60 * 60 * 24
    DEFAULT_MONTE_CARLO_RUNS: int = 100
    MAX_MONTE_CARLO_RUNS: int = 5000

    # CSV import
    CSV_IMPORT_BATCH_SIZE: int = 100
    CSV_IMPORT_ERROR_LOG_LIMIT: int = 100
    CSV_IMPORT_ABORT_ON_BATCH_FAILURE: bool = False

    # CORS - the edge handlers answer any origin
    @property
    def ALLOWED_ORIGINS(self) -> List[str]:
        return ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
