import calendar
import datetime

import pytest

from hfdlcore.position import (
    AircraftInfo,
    Position,
    PositionInfo,
    Timestamp,
    date_yesterday,
    fixup_timestamp,
    location_is_valid,
)
from hfdlcore.util import Location

NOW = calendar.timegm((2024, 5, 10, 12, 30, 45, 0, 0, 0))


def test_location_is_valid():
    assert location_is_valid(Location(90.0, 180.0))
    assert location_is_valid(Location(-90.0, -180.0))
    assert not location_is_valid(Location(90.5, 0.0))
    assert not location_is_valid(Location(0.0, -180.5))


def test_date_yesterday():
    assert date_yesterday(datetime.datetime(2024, 3, 1, 5, 0)) == datetime.date(2024, 2, 29)
    assert date_yesterday(datetime.date(2024, 1, 1)) == datetime.date(2023, 12, 31)


def test_fixup_minutes_seconds_same_hour():
    ts = fixup_timestamp(Timestamp(minute=20, second=0), NOW)
    assert (ts.year, ts.month, ts.day, ts.hour) == (2024, 5, 10, 12)
    assert ts.t == calendar.timegm((2024, 5, 10, 12, 20, 0, 0, 0, 0))


def test_fixup_minutes_later_than_now_goes_back_an_hour():
    ts = fixup_timestamp(Timestamp(minute=40, second=0), NOW)
    assert ts.hour == 11
    assert ts.day == 10


def test_fixup_equal_minute_and_second_is_current_hour():
    ts = fixup_timestamp(Timestamp(minute=30, second=45), NOW)
    assert ts.t == NOW


def test_fixup_missing_seconds_set_to_zero():
    ts = fixup_timestamp(Timestamp(minute=10, hour=9), NOW)
    assert ts.second == 0
    assert ts.t == calendar.timegm((2024, 5, 10, 9, 10, 0, 0, 0, 0))


def test_fixup_future_hour_goes_to_yesterday():
    ts = fixup_timestamp(Timestamp(minute=0, second=0, hour=13), NOW)
    assert (ts.year, ts.month, ts.day) == (2024, 5, 9)
    assert ts.t == calendar.timegm((2024, 5, 9, 13, 0, 0, 0, 0, 0))


def test_fixup_hour_wraps_past_midnight():
    now = calendar.timegm((2024, 1, 1, 0, 10, 0, 0, 0, 0))
    ts = fixup_timestamp(Timestamp(minute=30, second=0), now)
    assert ts.hour == 23
    assert (ts.year, ts.month, ts.day) == (2023, 12, 31)
    assert ts.t <= now


def test_fixup_result_complete_and_not_in_future():
    ts = fixup_timestamp(Timestamp(minute=59), NOW)
    assert ts.date_present
    assert None not in (ts.hour, ts.second, ts.t)
    assert ts.t <= NOW


def test_fixup_requires_minutes():
    with pytest.raises(ValueError):
        fixup_timestamp(Timestamp(second=5), NOW)


def test_fixup_does_not_modify_input():
    original = Timestamp(minute=20)
    fixup_timestamp(original, NOW)
    assert original.hour is None and original.t is None


def test_position_info_defaults():
    info = PositionInfo(aircraft=AircraftInfo(flight_id="TEST01"),
                        position=Position(location=Location(1.0, 2.0)))
    assert info.aircraft.icao_address is None
    assert location_is_valid(info.position.location)