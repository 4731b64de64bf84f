"""Tests for runtime timestamp parsing."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from apex_containers.utils.timestamps import parse_timestamp


class TestParseTimestamp:
    def test_rfc3339_nanoseconds(self) -> None:
        assert parse_timestamp("2024-01-01T12:00:00.123456789Z") == datetime(2024, 1, 1, 12, 0, 0, 123456, tzinfo=UTC)

    def test_listing_style_with_zone_name(self) -> None:
        assert parse_timestamp("2024-01-15 10:30:00 +0000 UTC") == datetime(2024, 1, 15, 10, 30, tzinfo=UTC)

    def test_explicit_offset(self) -> None:
        parsed = parse_timestamp("2024-06-01T08:00:00+02:00")
        assert parsed is not None
        assert parsed.utcoffset() == timedelta(hours=2)
        assert parsed == datetime(2024, 6, 1, 6, 0, tzinfo=timezone.utc)

    def test_missing_offset_is_utc(self) -> None:
        assert parse_timestamp("2024-01-01T00:00:00") == datetime(2024, 1, 1, tzinfo=UTC)

    @pytest.mark.parametrize("value", [None, "", "   ", "<no value>", "0001-01-01T00:00:00Z", "yesterday"])
    def test_empty_or_unparseable(self, value: str | None) -> None:
        assert parse_timestamp(value) is None
