"""Tests for the UTC datetime column type (pettycash_kernel/db/base.py)."""

from datetime import datetime, timedelta, timezone

from pettycash_kernel.db.base import UTCDateTime

UTC_NOON = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
PLUS_TWO = timezone(timedelta(hours=2))


class TestUTCDateTime:
    def test_naive_result_is_utc(self):
        value = UTCDateTime().process_result_value(datetime(2024, 1, 1, 12, 0), None)
        assert value == UTC_NOON
        assert value.tzinfo is timezone.utc

    def test_aware_result_normalised(self):
        value = UTCDateTime().process_result_value(
            datetime(2024, 1, 1, 14, 0, tzinfo=PLUS_TWO), None,
        )
        assert value == UTC_NOON
        assert value.tzinfo is timezone.utc

    def test_bind_converts_to_utc(self):
        bound = UTCDateTime().process_bind_param(
            datetime(2024, 1, 1, 14, 0, tzinfo=PLUS_TWO), None,
        )
        assert bound.tzinfo is timezone.utc
        assert bound.hour == 12

    def test_none_passes_through(self):
        assert UTCDateTime().process_bind_param(None, None) is None
        assert UTCDateTime().process_result_value(None, None) is None
