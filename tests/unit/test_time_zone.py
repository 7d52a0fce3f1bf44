"""
Tests for the IANA time adapter.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from assurance.adapters.time_zone import (
    FrozenTimeAdapter,
    ZoneTimeAdapter,
    create_time_adapter,
)


class TestZoneTimeAdapter:
    @pytest.fixture
    def adapter(self) -> ZoneTimeAdapter:
        return create_time_adapter()

    def test_now_is_utc(self, adapter: ZoneTimeAdapter) -> None:
        now = adapter.now_utc()

        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)

    def test_to_local_winter(self, adapter: ZoneTimeAdapter) -> None:
        local = adapter.to_local(datetime(2026, 1, 15, 8, 0, tzinfo=UTC), "Europe/Amsterdam")

        assert (local.hour, local.minute) == (9, 0)

    def test_to_local_summer(self, adapter: ZoneTimeAdapter) -> None:
        local = adapter.to_local(datetime(2026, 7, 15, 7, 0, tzinfo=UTC), "Europe/Amsterdam")

        assert (local.hour, local.minute) == (9, 0)

    def test_naive_input_is_utc(self, adapter: ZoneTimeAdapter) -> None:
        local = adapter.to_local(datetime(2026, 1, 15, 8, 0), "Asia/Tokyo")

        assert local.hour == 17

    def test_unknown_zone(self, adapter: ZoneTimeAdapter) -> None:
        with pytest.raises(ValueError):
            adapter.to_local(datetime(2026, 1, 1, tzinfo=UTC), "Atlantis/Capital")


class TestFrozenTimeAdapter:
    def test_returns_frozen_time(self) -> None:
        frozen = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)

        assert FrozenTimeAdapter(frozen).now_utc() == frozen

    def test_advance(self) -> None:
        adapter = FrozenTimeAdapter(datetime(2026, 3, 4, 12, 0, tzinfo=UTC))

        adapter.advance(timedelta(hours=1))

        assert adapter.now_utc() == datetime(2026, 3, 4, 13, 0, tzinfo=UTC)

    def test_set_naive(self) -> None:
        adapter = FrozenTimeAdapter(datetime(2026, 3, 4, 12, 0, tzinfo=UTC))

        adapter.set(datetime(2026, 5, 1, 6, 30))

        assert adapter.now_utc() == datetime(2026, 5, 1, 6, 30, tzinfo=UTC)
