"""
Configuration management using Pydantic Settings.
Loads from environment variables or .env file.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """
    Detection and API configuration loaded from environment variables.

    Usage:
        # .env file
        DUCKDB_PATH=data/processed/transactions.duckdb
        ISOLATION_CONTAMINATION=0.1
        LOG_LEVEL=DEBUG

        # In code
        from expense_anomaly.config import settings
        print(settings.DUCKDB_PATH)
    """
    # Transaction store
    DUCKDB_PATH: str = "data/processed/transactions.duckdb"

    # Insufficient-data policy (applies to every detection path)
    MIN_TRANSACTIONS: int = 5

    # Statistical window detector
    WINDOW_SIZE: int = 10
    WINDOW_STD_MULTIPLIER: float = 2.5

    # Outlier model (Isolation Forest)
    ISOLATION_N_ESTIMATORS: int = 100
    ISOLATION_CONTAMINATION: float = 0.1
    ISOLATION_SCORE_THRESHOLD: float = -0.3
    ISOLATION_MIN_SAMPLES: int = 20
    ISOLATION_RANDOM_STATE: Optional[int] = 42
    ISOLATION_N_JOBS: int = 1

    # Per-user fan-out
    MAX_CATEGORY_WORKERS: int = 8

    # API settings
    API_TITLE: str = "Expense Anomaly Detection API"
    API_VERSION: str = "1.0.0"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unrelated env vars like PYTHONPATH
    )


# Global settings instance
settings = Settings()
