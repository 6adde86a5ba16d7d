"""
Unit tests for Range header parsing and HTTP dates.
"""

from datetime import datetime, timezone, timedelta

import pytest

from httpware.http.ranges import ByteRange, byte_ranges, parse_range_header
from httpware.http.dates import format_http_date, parse_http_date


class TestParseRangeHeader:

    def test_forms(self):
        assert parse_range_header("bytes=0-499") == [(0, 499)]
        assert parse_range_header("bytes=500-") == [(500, None)]
        assert parse_range_header("bytes=-500") == [(None, 500)]
        assert parse_range_header("bytes=0-0, -1") == [(0, 0), (None, 1)]

    def test_unit_is_case_insensitive(self):
        assert parse_range_header("Bytes=1-2") == [(1, 2)]

    @pytest.mark.parametrize("value", [
        None,
        "",
        "items=0-1",
        "bytes=",
        "bytes=-",
        "bytes=a-b",
        "bytes=1-2,x",
        "bytes=1",
    ])
    def test_invalid(self, value):
        assert parse_range_header(value) is None


class TestByteRanges:

    def test_missing_header(self):
        assert byte_ranges(None, 100) is None

    def test_simple_range(self):
        assert byte_ranges("bytes=0-9", 100) == [ByteRange(0, 9)]

    def test_open_ended(self):
        assert byte_ranges("bytes=90-", 100) == [ByteRange(90, 99)]

    def test_suffix(self):
        assert byte_ranges("bytes=-10", 100) == [ByteRange(90, 99)]

    def test_suffix_larger_than_size(self):
        assert byte_ranges("bytes=-500", 100) == [ByteRange(0, 99)]

    def test_zero_suffix_is_unsatisfiable(self):
        assert byte_ranges("bytes=-0", 100) == []

    def test_end_clamped(self):
        assert byte_ranges("bytes=50-9999", 100) == [ByteRange(50, 99)]

    def test_start_past_end_dropped(self):
        assert byte_ranges("bytes=100-", 100) == []
        assert byte_ranges("bytes=0-1,200-300", 100) == [ByteRange(0, 1)]

    def test_backwards_range_invalidates_header(self):
        assert byte_ranges("bytes=5-1", 100) is None
        assert byte_ranges("bytes=0-1,5-1", 100) is None

    def test_multiple(self):
        assert byte_ranges("bytes=0-0,-1", 100) == [ByteRange(0, 0), ByteRange(99, 99)]

    def test_empty_resource(self):
        assert byte_ranges("bytes=0-", 0) == []

    def test_byte_range_helpers(self):
        byte_range = ByteRange(10, 19)

        assert byte_range.length == 10
        assert byte_range.content_range(100) == "bytes 10-19/100"


class TestHTTPDates:

    def test_format(self):
        dt = datetime(2026, 1, 15, 12, 30, 45, tzinfo=timezone.utc)

        assert format_http_date(dt) == "Thu, 15 Jan 2026 12:30:45 GMT"

    def test_format_naive_is_utc(self):
        assert format_http_date(datetime(2015, 10, 21, 7, 28)) == "Wed, 21 Oct 2015 07:28:00 GMT"

    def test_format_converts_timezone(self):
        cest = timezone(timedelta(hours=2))
        dt = datetime(2015, 10, 21, 9, 28, tzinfo=cest)

        assert format_http_date(dt) == "Wed, 21 Oct 2015 07:28:00 GMT"

    def test_parse_imf_fixdate(self):
        parsed = parse_http_date("Wed, 21 Oct 2015 07:28:00 GMT")

        assert parsed == datetime(2015, 10, 21, 7, 28, tzinfo=timezone.utc)

    def test_round_trip_drops_microseconds(self):
        dt = datetime(2020, 2, 29, 23, 59, 59, 123456, tzinfo=timezone.utc)

        assert parse_http_date(format_http_date(dt)) == dt.replace(microsecond=0)

    @pytest.mark.parametrize("value", [None, "", "yesterday", "Wed, 21 Oct", "not a date at all, really"])
    def test_parse_invalid(self, value):
        assert parse_http_date(value) is None
