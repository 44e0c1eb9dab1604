"""
Tests for UTC timestamp helpers.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from astraops.core.timestamps import format_duration, to_iso8601, utc_now


class TestUtcNow:
    def test_is_aware_utc(self):
        now = utc_now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)


class TestIso8601:
    def test_millisecond_z_suffix(self):
        dt = datetime(2024, 5, 1, 12, 30, 45, 123456, tzinfo=UTC)
        assert to_iso8601(dt) == "2024-05-01T12:30:45.123Z"

    def test_naive_assumed_utc(self):
        assert to_iso8601(datetime(2024, 5, 1)) == "2024-05-01T00:00:00.000Z"

    def test_other_offset_converted(self):
        dt = datetime(2024, 5, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_iso8601(dt) == "2024-05-01T12:00:00.000Z"


class TestFormatDuration:
    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(0, "0s"), (42.9, "42s"), (60, "1m 0s"), (192, "3m 12s"), (-5, "0s")],
    )
    def test_format(self, seconds, expected):
        assert format_duration(seconds) == expected
