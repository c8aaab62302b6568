"""
Configuration management for the Book Import Service.
Supports both environment variables and database-stored configuration.
"""

import os
import secrets
from typing import Optional
from pydantic import BaseModel, Field
from dotenv import load_dotenv

from book_import.api.gemini import DEFAULT_MODEL
from book_import.api.google_books import GOOGLE_BOOKS_API_URL
from book_import.db.database import DEFAULT_DATABASE_URL

load_dotenv()


def _env_bool(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).lower() == "true"


class ImportConfig(BaseModel):
    """Configuration for the import service."""

    # Google Books settings
    google_books_api_url: str = Field(default=GOOGLE_BOOKS_API_URL, description="Google Books API base URL")
    google_books_api_key: Optional[str] = Field(default=None, description="Google Books API key")

    # Gemini settings
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API key for genre prediction")
    gemini_model: str = Field(default=DEFAULT_MODEL, description="Gemini model name")

    # Import settings
    enable_enrichment: bool = Field(default=True, description="Fill missing metadata from Google Books")
    enable_genre_prediction: bool = Field(default=False, description="Predict genres for manual entries")
    lookup_timeout_seconds: float = Field(default=15, gt=0, description="Timeout for a single metadata lookup")
    lookup_workers: int = Field(default=4, ge=1, description="Concurrent metadata lookups")
    default_shelf_capacity: int = Field(default=100, ge=1, description="Capacity of shelves created on assignment")

    # Application settings
    database_url: str = Field(
        default=DEFAULT_DATABASE_URL,
        description="Database connection URL"
    )
    secret_key: str = Field(
        default_factory=lambda: os.getenv("SECRET_KEY", secrets.token_hex(32)),
        description="Secret key for Flask sessions"
    )
    log_level: str = Field(default="INFO", description="Logging level")


def get_config_from_env() -> ImportConfig:
    """Load configuration from environment variables."""
    return ImportConfig(
        google_books_api_url=os.getenv("GOOGLE_BOOKS_API_URL", GOOGLE_BOOKS_API_URL),
        google_books_api_key=os.getenv("GOOGLE_BOOKS_API_KEY"),
        gemini_api_key=os.getenv("GEMINI_API_KEY"),
        gemini_model=os.getenv("GEMINI_MODEL", DEFAULT_MODEL),
        enable_enrichment=_env_bool("ENABLE_ENRICHMENT"),
        enable_genre_prediction=_env_bool("ENABLE_GENRE_PREDICTION", "false"),
        lookup_timeout_seconds=float(os.getenv("LOOKUP_TIMEOUT_SECONDS", "15")),
        lookup_workers=int(os.getenv("LOOKUP_WORKERS", "4")),
        default_shelf_capacity=int(os.getenv("DEFAULT_SHELF_CAPACITY", "100")),
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        secret_key=os.getenv("SECRET_KEY", secrets.token_hex(32)),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


def _pick(db_value, env_value):
    return env_value if db_value is None else db_value


class ConfigManager:
    """
    Manages configuration with fallback from database to environment variables.
    """

    def __init__(self, db_session=None):
        self.db_session = db_session
        self._env_config = get_config_from_env()

    def load_from_db(self):
        """Load configuration from database if available."""
        if not self.db_session:
            return None

        from book_import.db.models import Config
        return self.db_session.query(Config).first()

    def get_config(self) -> ImportConfig:
        """
        Get configuration, merging database values with environment variables.
        Database values take precedence over environment variables.
        """
        db_config = self.load_from_db()
        env = self._env_config

        if db_config:
            return env.model_copy(update={
                "google_books_api_key": db_config.google_books_api_key or env.google_books_api_key,
                "gemini_api_key": db_config.gemini_api_key or env.gemini_api_key,
                "enable_enrichment": _pick(db_config.enable_enrichment, env.enable_enrichment),
                "enable_genre_prediction": _pick(db_config.enable_genre_prediction, env.enable_genre_prediction),
                "lookup_timeout_seconds": _pick(db_config.lookup_timeout_seconds, env.lookup_timeout_seconds),
                "default_shelf_capacity": _pick(db_config.default_shelf_capacity, env.default_shelf_capacity),
            })

        return env

    def save_config(self, config: ImportConfig) -> None:
        """Save configuration to database."""
        if not self.db_session:
            raise RuntimeError("Database session not available")

        from book_import.db.models import Config

        db_config = self.load_from_db()
        if not db_config:
            db_config = Config()
            self.db_session.add(db_config)

        db_config.google_books_api_key = config.google_books_api_key
        db_config.gemini_api_key = config.gemini_api_key
        db_config.enable_enrichment = config.enable_enrichment
        db_config.enable_genre_prediction = config.enable_genre_prediction
        db_config.lookup_timeout_seconds = int(config.lookup_timeout_seconds)
        db_config.default_shelf_capacity = config.default_shelf_capacity

        self.db_session.commit()

    def is_genre_prediction_available(self) -> bool:
        """Genre prediction needs both the toggle and an API key."""
        config = self.get_config()
        return bool(config.enable_genre_prediction and config.gemini_api_key)
