"""Tests for date providers."""

from __future__ import annotations

from datetime import date, datetime, timezone
from unittest.mock import patch
from zoneinfo import ZoneInfo

from labsync.shared.date_provider import (
    MockDateProvider,
    UTCDateProvider,
    ZonedDateProvider,
    get_date_provider,
    reset_date_provider,
    set_date_provider,
)


class TestMockDateProvider:
    def test_defaults(self):
        provider = MockDateProvider()

        assert provider.today() == date(2024, 1, 15)
        assert provider.utcnow() == datetime(2024, 1, 15, tzinfo=timezone.utc)

    def test_advance_days(self):
        provider = MockDateProvider(fixed_date=date(2024, 1, 31))

        provider.advance_days(1)

        assert provider.today() == date(2024, 2, 1)
        assert provider.utcnow().date() == date(2024, 2, 1)

    def test_set_naive_datetime_assumes_utc(self):
        provider = MockDateProvider()

        provider.set_datetime(datetime(2024, 3, 5, 12, 30))

        assert provider.utcnow().tzinfo is timezone.utc
        assert provider.today() == date(2024, 3, 5)


class TestZonedDateProvider:
    def test_today_uses_zone(self):
        zone = ZoneInfo("Pacific/Kiritimati")
        provider = ZonedDateProvider(zone)

        assert provider.today() == datetime.now(zone).date()
        assert provider.utcnow().tzinfo == timezone.utc

    def test_utc_provider(self):
        assert UTCDateProvider().today() == datetime.now(timezone.utc).date()


class TestGlobalProvider:
    def test_set_and_reset(self):
        mock = MockDateProvider()
        try:
            set_date_provider(mock)
            assert get_date_provider() is mock

            reset_date_provider()
            assert isinstance(get_date_provider(), ZonedDateProvider)
        finally:
            reset_date_provider()

    def test_default_uses_configured_zone(self):
        reset_date_provider()
        with patch("labsync.shared.config.settings.timezone", "Europe/Madrid"):
            provider = get_date_provider()
        try:
            assert provider._zone == ZoneInfo("Europe/Madrid")
        finally:
            reset_date_provider()
