"""Aircraft position reports and completion of partial timestamps."""

from __future__ import annotations

import calendar
import dataclasses
import datetime
import time
from dataclasses import dataclass, field

from hfdlcore.util import Location


@dataclass
class AircraftInfo:
    """Aircraft identification; absent fields are None."""

    flight_id: str | None = None
    icao_address: int | None = None


@dataclass
class Timestamp:
    """A possibly partial UTC timestamp; missing fields are None."""

    minute: int | None = None
    second: int | None = None
    hour: int | None = None
    year: int | None = None
    month: int | None = None
    day: int | None = None
    t: int | None = None

    @property
    def date_present(self) -> bool:
        return None not in (self.year, self.month, self.day)


@dataclass
class Position:
    timestamp: Timestamp = field(default_factory=Timestamp)
    location: Location = field(default_factory=Location)


@dataclass
class PositionInfo:
    aircraft: AircraftInfo = field(default_factory=AircraftInfo)
    position: Position = field(default_factory=Position)


def location_is_valid(loc: Location) -> bool:
    """True when latitude and longitude are within their valid ranges."""
    return abs(loc.lat) <= 90.0 and abs(loc.lon) <= 180.0


def date_yesterday(now: datetime.date | datetime.datetime) -> datetime.date:
    """Date of the day before now."""
    if isinstance(now, datetime.datetime):
        now = now.date()
    return now - datetime.timedelta(days=1)


def _timegm(year: int, month: int, day: int, hour: int, minute: int, second: int) -> int:
    return calendar.timegm((year, month, day, hour, minute, second, 0, 0, 0))


def fixup_timestamp(ts: Timestamp, now: float | None = None) -> Timestamp:
    """Fill in missing fields to get the closest matching UTC time not later than now.

    Minutes must be present. Missing seconds become 0; a missing hour is taken
    from now (or the previous hour); a missing date is today, or yesterday
    if the result would lie in the future.
    """
    if ts.minute is None:
        raise ValueError("timestamp minutes are required")
    now_t = int(time.time() if now is None else now)
    now_dt = datetime.datetime.fromtimestamp(now_t, tz=datetime.timezone.utc)

    second = ts.second if ts.second is not None else 0
    hour = ts.hour
    if hour is None:
        if ts.minute < now_dt.minute or (ts.minute == now_dt.minute and second <= now_dt.second):
            hour = now_dt.hour
        else:
            hour = now_dt.hour - 1 if now_dt.hour > 0 else 23
    if ts.date_present:
        year, month, day = ts.year, ts.month, ts.day
    else:
        year, month, day = now_dt.year, now_dt.month, now_dt.day

    t_pos = _timegm(year, month, day, hour, ts.minute, second)
    if t_pos > now_t:
        yesterday = date_yesterday(now_dt)
        year, month, day = yesterday.year, yesterday.month, yesterday.day
        t_pos = _timegm(year, month, day, hour, ts.minute, second)

    return dataclasses.replace(ts, second=second, hour=hour, year=year, month=month,
                               day=day, t=t_pos)