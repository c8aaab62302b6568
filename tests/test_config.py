import pytest
from pydantic import ValidationError

from book_import.config import ConfigManager, ImportConfig, get_config_from_env
from book_import.db.models import Config


def test_env_config(monkeypatch):
    monkeypatch.setenv("GOOGLE_BOOKS_API_KEY", "gb-key")
    monkeypatch.setenv("ENABLE_ENRICHMENT", "False")
    monkeypatch.setenv("ENABLE_GENRE_PREDICTION", "true")
    monkeypatch.setenv("LOOKUP_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("DEFAULT_SHELF_CAPACITY", "40")

    config = get_config_from_env()

    assert config.google_books_api_key == "gb-key"
    assert config.enable_enrichment is False
    assert config.enable_genre_prediction is True
    assert config.lookup_timeout_seconds == 2.5
    assert config.default_shelf_capacity == 40


def test_invalid_values_are_rejected():
    with pytest.raises(ValidationError):
        ImportConfig(lookup_timeout_seconds=0)

    with pytest.raises(ValidationError):
        ImportConfig(default_shelf_capacity=0)


def test_manager_without_session_uses_env(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "g")
    monkeypatch.setenv("ENABLE_GENRE_PREDICTION", "true")

    manager = ConfigManager()

    assert manager.get_config().gemini_api_key == "g"
    assert manager.is_genre_prediction_available()


def test_save_and_load_round_trip(db, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    with db.get_db_session() as session:
        manager = ConfigManager(db_session=session)
        manager.save_config(ImportConfig(gemini_api_key="db-key", enable_genre_prediction=True, default_shelf_capacity=12))

    with db.get_db_session() as session:
        assert session.query(Config).count() == 1
        config = ConfigManager(db_session=session).get_config()

    assert config.gemini_api_key == "db-key"
    assert config.enable_genre_prediction is True
    assert config.default_shelf_capacity == 12


def test_save_requires_session():
    with pytest.raises(RuntimeError):
        ConfigManager().save_config(ImportConfig())
