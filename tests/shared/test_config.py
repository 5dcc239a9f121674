"""Tests for application settings."""

from __future__ import annotations

from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from labsync.shared.config import override_settings


class TestSettings:
    def test_defaults(self):
        settings = override_settings()

        assert settings.lock_backend == "memory"
        assert settings.max_update_retries == 3
        assert settings.zone == ZoneInfo("UTC")

    def test_normalizes_case(self):
        settings = override_settings(log_level="debug", lock_backend="REDIS")

        assert settings.log_level == "DEBUG"
        assert settings.lock_backend == "redis"

    @pytest.mark.parametrize("field,value", [
        ("environment", "staging"),
        ("log_level", "VERBOSE"),
        ("lock_backend", "zookeeper"),
        ("timezone", "Mars/Olympus_Mons"),
        ("max_update_retries", 0),
    ])
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            override_settings(**{field: value})

    def test_test_database_url_only_in_testing(self):
        settings = override_settings(
            environment="testing",
            database_url="sqlite+aiosqlite:///main.db",
            test_database_url="sqlite+aiosqlite:///test.db",
        )
        production = override_settings(
            environment="production",
            database_url="sqlite+aiosqlite:///main.db",
            test_database_url="sqlite+aiosqlite:///test.db",
        )

        assert settings.effective_database_url == "sqlite+aiosqlite:///test.db"
        assert production.effective_database_url == "sqlite+aiosqlite:///main.db"
