# tests/test_config.py

import pytest

from ladder.config import DEFAULT_DB_PATH, DEFAULT_PORT, Settings, period_name
from ladder.errors import StoreError
from ladder.store import SqliteRecordStore, open_store

ENV_KEYS = (
    "LADDER_STORE", "LADDER_DB_PATH", "LADDER_LOG_LEVEL", "LADDER_HOST", "LADDER_PORT",
    "SUPABASE_URL", "SUPABASE_KEY", "SUPABASE_SERVICE_ROLE_KEY",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestSettings:

    def test_defaults(self, clean_env):
        settings = Settings.from_env()
        assert settings.store == "sqlite"
        assert settings.db_path == DEFAULT_DB_PATH
        assert settings.port == DEFAULT_PORT
        assert settings.supabase_key is None

    def test_overrides(self, clean_env):
        clean_env.setenv("LADDER_STORE", "Supabase")
        clean_env.setenv("LADDER_PORT", "8080")
        clean_env.setenv("LADDER_LOG_LEVEL", "debug")
        clean_env.setenv("SUPABASE_URL", "https://example.supabase.co")
        clean_env.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")

        settings = Settings.from_env()
        assert settings.store == "supabase"
        assert settings.port == 8080
        assert settings.log_level == "DEBUG"
        assert settings.supabase_url == "https://example.supabase.co"
        assert settings.supabase_key == "service-key"

    def test_bad_port(self, clean_env):
        clean_env.setenv("LADDER_PORT", "http")
        with pytest.raises(ValueError):
            Settings.from_env()

    def test_period_name(self):
        assert period_name(3, 2025) == "March 2025"
        assert period_name(12, 2024) == "December 2024"


class TestOpenStore:

    def test_sqlite(self, tmp_path):
        store = open_store(Settings(db_path=str(tmp_path / "x.db")))
        try:
            assert isinstance(store, SqliteRecordStore)
        finally:
            store.close()

    def test_supabase_without_credentials(self):
        with pytest.raises(StoreError):
            open_store(Settings(store="supabase"))

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            open_store(Settings(store="postgres"))
