import logging

import pytest

from fiscaldb.config import AppSettings, DatabaseSettings, get_settings
from fiscaldb.db.router import RouterState, create_router
from fiscaldb.db.store import SQLiteStore


@pytest.fixture
def clean_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_database_settings_from_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_PATH", "/var/lib/ledger/fiscal.db")
    monkeypatch.setenv("DATABASE_TIMEOUT", "2.5")
    settings = DatabaseSettings()
    assert settings.path == "/var/lib/ledger/fiscal.db"
    assert settings.timeout == 2.5


def test_app_settings_read_nested_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_PATH", "yearly.db")
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    monkeypatch.setenv("LOG_LEVEL", "warning")
    settings = AppSettings()
    assert settings.db.path == "yearly.db"
    assert settings.scheduler.enabled is False
    assert settings.log_level_value == logging.WARNING


def test_timeout_must_be_positive(monkeypatch):
    monkeypatch.setenv("DATABASE_TIMEOUT", "0")
    with pytest.raises(ValueError):
        DatabaseSettings()


def test_test_mode_uses_in_memory_database(monkeypatch, clean_settings_cache):
    monkeypatch.setenv("TEST_MODE", "1")
    settings = get_settings()
    assert settings.db.path == ":memory:"
    assert settings.debug is True
    assert get_settings() is settings


def test_create_router_uses_settings(clean_settings_cache):
    settings = AppSettings(db=DatabaseSettings(path=":memory:", timeout=3.0))
    router = create_router(settings)
    assert router.state is RouterState.UNINITIALIZED
    assert router.timeout == 3.0
    assert isinstance(router._store, SQLiteStore)
    assert router._store.in_memory
