"""Unit tests for publication date normalization."""

import pytest
from datetime import datetime, timedelta, timezone

from gator.ingestion.timeparse import LAYOUTS, UnparseableTimestamp, parse_pub_date

UTC = timezone.utc
INSTANT = datetime(2023, 3, 14, 9, 26, 0, tzinfo=UTC)
MINUS_SEVEN = timezone(timedelta(hours=-7))


class TestLayouts:
    """Each supported layout parses back to the instant it was formatted from."""

    @pytest.mark.parametrize("text", [
        INSTANT.strftime("%d %b %y %H:%M GMT"),                               # RFC822
        INSTANT.astimezone(MINUS_SEVEN).strftime("%d %b %y %H:%M %z"),        # RFC822Z
        INSTANT.strftime("%A, %d-%b-%y %H:%M:%S UTC"),                        # RFC850
        INSTANT.strftime("%a, %d %b %Y %H:%M:%S GMT"),                        # RFC1123
        INSTANT.astimezone(MINUS_SEVEN).strftime("%a, %d %b %Y %H:%M:%S %z"), # RFC1123Z
        INSTANT.isoformat(),                                                  # RFC3339
        INSTANT.astimezone(MINUS_SEVEN).isoformat(),                          # RFC3339
        "2023-03-14T09:26:00Z",                                               # RFC3339
    ])
    def test_round_trip(self, text):
        """Formatting an instant under a layout and parsing it yields the instant."""
        assert parse_pub_date(text) == INSTANT

    def test_fractional_seconds(self):
        """RFC 3339 with nanoseconds is truncated to microseconds."""
        parsed = parse_pub_date("2023-03-14T09:26:00.123456789Z")
        assert parsed == INSTANT.replace(microsecond=123456)

    def test_short_fraction(self):
        parsed = parse_pub_date("2023-03-14T11:26:00.5+02:00")
        assert parsed == INSTANT.replace(microsecond=500000)

    def test_result_is_utc(self):
        parsed = parse_pub_date("Mon, 02 Jan 2006 15:04:05 -0700")
        assert parsed.tzinfo == UTC
        assert parsed == datetime(2006, 1, 2, 22, 4, 5, tzinfo=UTC)

    def test_layout_order(self):
        """Layouts are tried in a fixed order."""
        assert [name for name, _ in LAYOUTS] == [
            "RFC822", "RFC822Z", "RFC850", "RFC1123", "RFC1123Z", "RFC3339", "RFC3339Nano",
        ]

    def test_surrounding_whitespace(self):
        assert parse_pub_date("  2023-03-14T09:26:00Z\n") == INSTANT


class TestNamedZones:
    """Zone abbreviations resolve to their RFC 822 offsets."""

    @pytest.mark.parametrize("zone,hours", [
        ("GMT", 0), ("UT", 0), ("UTC", 0),
        ("EST", -5), ("EDT", -4), ("CST", -6), ("CDT", -5),
        ("MST", -7), ("MDT", -6), ("PST", -8), ("PDT", -7),
    ])
    def test_known_zone(self, zone, hours):
        parsed = parse_pub_date(f"Mon, 02 Jan 2006 15:04:05 {zone}")
        expected = datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone(timedelta(hours=hours)))
        assert parsed == expected

    def test_unknown_zone_is_zero_offset(self):
        parsed = parse_pub_date("Mon, 02 Jan 2006 15:04:05 XYZ")
        assert parsed == datetime(2006, 1, 2, 15, 4, 5, tzinfo=UTC)

    def test_single_digit_day(self):
        parsed = parse_pub_date("Tue, 7 Mar 2023 08:00:00 GMT")
        assert parsed == datetime(2023, 3, 7, 8, 0, 0, tzinfo=UTC)


class TestMalformed:
    """Unparseable dates fail with UnparseableTimestamp."""

    @pytest.mark.parametrize("text", [
        "",
        "   ",
        "not a date",
        "yesterday",
        "2006-01-02",
        "2006-01-02 15:04:05",
        "2006-13-45T00:00:00Z",
        "02/01/2006 15:04",
        "Mon, 02 Jan 2006",
        "Mon, 32 Jan 2006 15:04:05 GMT",
        "Mon, 02 Jan 2006 15:04:05 GMT trailing",
    ])
    def test_malformed(self, text):
        with pytest.raises(UnparseableTimestamp) as exc_info:
            parse_pub_date(text)
        assert exc_info.value.value == text

    def test_non_string(self):
        with pytest.raises(UnparseableTimestamp):
            parse_pub_date(None)

    def test_is_value_error(self):
        """Callers catching ValueError also see unparseable dates."""
        with pytest.raises(ValueError):
            parse_pub_date("garbage")
