"""Tests for settings normalization."""

import pytest

from urbassist.config import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("DATABASE_URL", "DATABASE_REQUIRE_SSL", "GEMINI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)


class TestDatabaseUrl:
    def test_default_untouched(self):
        s = _settings()
        assert s.database_url.startswith("postgresql+asyncpg://")
        assert s.database_require_ssl is False

    def test_postgres_scheme(self):
        s = _settings(database_url="postgres://u:p@db.example:5432/urbassist")
        assert s.database_url == "postgresql+asyncpg://u:p@db.example:5432/urbassist"

    def test_postgresql_scheme(self):
        s = _settings(database_url="postgresql://u:p@db.example/urbassist")
        assert s.database_url == "postgresql+asyncpg://u:p@db.example/urbassist"

    def test_sslmode_require(self):
        s = _settings(database_url="postgres://u:p@db.example/urbassist?sslmode=require&connect_timeout=5")
        assert s.database_url == "postgresql+asyncpg://u:p@db.example/urbassist"
        assert s.database_require_ssl is True

    def test_sslmode_disable_dropped(self):
        s = _settings(database_url="postgresql+asyncpg://u:p@db.example/urbassist?sslmode=disable")
        assert s.database_url == "postgresql+asyncpg://u:p@db.example/urbassist"
        assert s.database_require_ssl is False

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgres://u:p@env-host/urbassist")
        assert _settings().database_url == "postgresql+asyncpg://u:p@env-host/urbassist"


def test_gemini_key_stripped():
    assert _settings(gemini_api_key="  abc123\n").gemini_api_key == "abc123"
