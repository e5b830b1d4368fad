from datetime import datetime

import pytest
import pytz

from multiclinic.core.exceptions import InvalidRequestError
from multiclinic.core.timezone import (
    format_in_zone, from_canonical, get_zone, is_valid_timezone,
    now_in_zone, to_canonical, to_storage
)


class TestCanonicalConversion:

    def test_karachi_wall_clock_to_utc(self):
        instant = to_canonical("2030-01-07T10:00:00", "Asia/Karachi")
        assert instant == datetime(2030, 1, 7, 5, 0, tzinfo=pytz.utc)

    def test_default_zone_is_karachi(self):
        assert to_canonical("2030-01-07T10:00:00") == to_canonical("2030-01-07T10:00:00", "Asia/Karachi")

    def test_empty_zone_uses_default(self):
        assert get_zone("").zone == "Asia/Karachi"

    def test_explicit_offset_is_kept(self):
        instant = to_canonical("2030-01-07T10:00:00+00:00", "Asia/Karachi")
        assert instant.hour == 10

    def test_trailing_z_is_utc(self):
        assert to_canonical("2030-01-07T10:00:00Z", "America/New_York").hour == 10

    def test_storage_is_naive_utc(self):
        stored = to_storage("2030-01-07T10:00:00", "Asia/Karachi")
        assert stored.tzinfo is None
        assert stored == datetime(2030, 1, 7, 5, 0)

    def test_round_trip_preserves_wall_clock(self):
        stored = to_storage("2030-07-01T09:15:00", "America/New_York")
        assert from_canonical(stored, "America/New_York") == "2030-07-01T09:15:00-04:00"

    def test_render_in_another_zone(self):
        stored = datetime(2030, 1, 7, 5, 0)
        assert from_canonical(stored, "UTC") == "2030-01-07T05:00:00+00:00"
        assert from_canonical(stored) == "2030-01-07T10:00:00+05:00"

    def test_format_in_zone(self):
        stored = datetime(2030, 1, 7, 5, 0)
        assert format_in_zone(stored, "Asia/Karachi", "%Y-%m-%d %H:%M") == "2030-01-07 10:00"


class TestZoneValidation:

    def test_unknown_zone_rejected(self):
        with pytest.raises(InvalidRequestError):
            to_canonical("2030-01-07T10:00:00", "Mars/Olympus_Mons")

    def test_unknown_zone_rejected_on_render(self):
        with pytest.raises(InvalidRequestError):
            from_canonical(datetime(2030, 1, 7, 5, 0), "Not/AZone")

    def test_is_valid_timezone(self):
        assert is_valid_timezone("Europe/London")
        assert not is_valid_timezone("Europe/Atlantis")
        assert not is_valid_timezone(None)

    def test_invalid_datetime_rejected(self):
        with pytest.raises(InvalidRequestError):
            to_canonical("next tuesday", "UTC")

    def test_now_in_zone_carries_offset(self):
        assert now_in_zone("Asia/Karachi").endswith("+05:00")
