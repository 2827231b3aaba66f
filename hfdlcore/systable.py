"""HFDL system table: loading, validation, and assembly from received System Table PDUs."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from hfdlcore import settings
from hfdlcore.util import GS_MAX_FREQ_CNT, Location, indent_line, parse_coordinate

log = logging.getLogger(__name__)

STATION_ID_MAX = 127
SYSTABLE_VERSION_MAX = 4095

_GS_DATA_MIN_LEN = 8        # from GS ID to master slot offset, excluding frequencies
_FREQ_FIELD_LEN = 3
_SLOT_FIELD_LEN = 1
_INT32_MIN = -(1 << 31)
_INT32_MAX = (1 << 31) - 1

ERR_VERSION_MISSING = "version missing or wrong type (must be an integer)"
ERR_VERSION_OUT_OF_RANGE = "version out of range"
ERR_STATIONS_MISSING = "stations missing or wrong type (must be a list)"
ERR_STATION_WRONG_TYPE = "station setting has wrong type (must be a group)"
ERR_STATION_ID_MISSING = "station id missing or wrong type (must be an integer)"
ERR_STATION_ID_OUT_OF_RANGE = "station id out of range"
ERR_STATION_ID_DUPLICATE = "duplicate station id"
ERR_STATION_NAME_WRONG_TYPE = "name setting has wrong type (must be a string)"
ERR_STATION_COORDINATE_MISSING = "station latitude or longitude missing (need both or neither)"
ERR_STATION_COORDINATE_WRONG_TYPE = \
    "station coordinate has wrong type (must be a floating-point number)"
ERR_FREQUENCIES_MISSING = "frequencies missing or wrong type (must be a list)"
ERR_FREQUENCY_WRONG_TYPE = "frequency setting has wrong type (must be a number)"


class SystableErrorType(enum.Enum):
    NONE = 0
    IO = 1
    FILE_PARSE = 2
    VALIDATE = 3


class SystableError(Exception):
    """A system table could not be read, validated or saved."""

    def __init__(self, message: str, error_type: SystableErrorType = SystableErrorType.VALIDATE,
                 line: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.type = error_type
        self.line = line


@dataclass
class GroundStationData:
    """Parameters of one ground station as decoded from a System Table message."""

    gs_id: int
    utc_sync: bool
    location: Location
    spdu_version: int
    frequencies: list[int] = field(default_factory=list)
    master_frame_slots: list[int] = field(default_factory=list)


@dataclass
class SystableComplete:
    """A decoded, reassembled System Table message."""

    json_key = "systable_complete"

    stations: list[GroundStationData] = field(default_factory=list)
    version: int = 0
    err: bool = False

    def format_text(self, indent: int = 0) -> str:
        if self.err:
            return indent_line(indent, "-- Unparseable System Table message\n")
        parts = [indent_line(indent, "System Table (complete):\n")]
        indent += 1
        parts.append(indent_line(indent, f"Version: {self.version}\n"))
        parts.extend(_gs_format_text(gs, indent) for gs in self.stations)
        return "".join(parts)

    def to_json(self) -> dict:
        result: dict[str, Any] = {"err": self.err}
        if self.err:
            return result
        result["version"] = self.version
        result["ground_stations"] = [_gs_to_json(gs) for gs in self.stations]
        return result


def _gs_format_text(gs: GroundStationData, indent: int) -> str:
    lines = [indent_line(indent, f"GS ID: {gs.gs_id}\n")]
    indent += 1
    lines.append(indent_line(indent, f"UTC sync: {int(gs.utc_sync)}\n"))
    lines.append(indent_line(indent, "Location:\n"))
    lines.append(indent_line(indent + 1, f"Lat: {gs.location.lat:.7f}\n"))
    lines.append(indent_line(indent + 1, f"Lon: {gs.location.lon:.7f}\n"))
    lines.append(indent_line(indent, f"Squitter version: {gs.spdu_version}\n"))
    lines.append(indent_line(indent, "Frequencies & master frame slots:\n"))
    for freq, slot in zip(gs.frequencies, gs.master_frame_slots):
        lines.append(indent_line(indent + 1, f"{freq:8d} (slot {slot:2d})\n"))
    return "".join(lines)


def _gs_to_json(gs: GroundStationData) -> dict:
    return {
        "id": gs.gs_id,
        "utc_sync": gs.utc_sync,
        "location": {"lat": gs.location.lat, "lon": gs.location.lon},
        "spdu_version": gs.spdu_version,
        "freqs": [{"freq": f, "master_frame_slot": s}
                  for f, s in zip(gs.frequencies, gs.master_frame_slots)],
    }


def is_newer(v_old: int, v_new: int) -> bool:
    """Whether v_new is a newer system table version than v_old, allowing for wraparound."""
    if v_old < 0 and v_new >= 0:
        return True
    if v_new < 0 and v_old >= 0:
        return False
    if v_new == v_old:
        return False
    return v_new > v_old or \
        v_new + SYSTABLE_VERSION_MAX - v_old < (SYSTABLE_VERSION_MAX + 1) >> 1


def decode_frequency(buf: bytes) -> int:
    """Decode a 3-octet BCD frequency field (units of 100 Hz) into Hz."""
    if len(buf) < _FREQ_FIELD_LEN:
        raise ValueError("frequency field needs 3 octets")
    result = 0
    multiplier = 100
    for octet in buf[:_FREQ_FIELD_LEN]:
        result += multiplier * (octet & 0xF)
        result += multiplier * 10 * ((octet >> 4) & 0xF)
        multiplier *= 100
    return result


def _decode_gs(buf: bytes) -> tuple[GroundStationData | None, int]:
    gs_id = buf[0] & 0x7F
    utc_sync = (buf[0] & 0x80) != 0
    lat = parse_coordinate(buf[1] | buf[2] << 8 | (buf[3] & 0xF) << 16)
    lon = parse_coordinate(buf[3] >> 4 | buf[4] << 4 | buf[5] << 12)
    spdu_version = buf[6] & 7
    freq_cnt = (buf[6] >> 3) & 0x1F
    consumed = _GS_DATA_MIN_LEN - 1
    if freq_cnt > GS_MAX_FREQ_CNT:
        log.debug("GS %d: too many frequencies (%d)", gs_id, freq_cnt)
        return None, consumed
    gs = GroundStationData(gs_id=gs_id, utc_sync=utc_sync, location=Location(lat, lon),
                           spdu_version=spdu_version)
    field_len = _FREQ_FIELD_LEN + _SLOT_FIELD_LEN
    for f in range(freq_cnt):
        pos = _GS_DATA_MIN_LEN - 1 + f * field_len
        if pos + field_len > len(buf):
            log.debug("End of buffer reached while decoding frequency %d for GS %d", f, gs_id)
            return None, consumed
        gs.frequencies.append(decode_frequency(buf[pos:pos + _FREQ_FIELD_LEN]))
        gs.master_frame_slots.append(buf[pos + _FREQ_FIELD_LEN] & 0xF)
        consumed += field_len
    return gs, consumed


def decode(buf: bytes) -> SystableComplete:
    """Decode a reassembled System Table message; result.err is set on failure."""
    if not buf:
        raise ValueError("empty system table message")
    result = SystableComplete()
    data = bytes(buf)
    while len(data) >= _GS_DATA_MIN_LEN:
        gs, consumed = _decode_gs(data)
        if gs is None:
            result.err = True
            return result
        result.stations.append(gs)
        data = data[consumed:]
    log.debug("Decoding successful, %d octets left", len(data))
    return result


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) \
        and _INT32_MIN <= value <= _INT32_MAX


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_station(station: Any) -> None:
    if not isinstance(station, dict):
        raise SystableError(ERR_STATION_WRONG_TYPE)
    gs_id = station.get("id")
    if not _is_int(gs_id):
        raise SystableError(ERR_STATION_ID_MISSING)
    if not 0 <= gs_id <= STATION_ID_MAX:
        raise SystableError(ERR_STATION_ID_OUT_OF_RANGE)
    if "name" in station and not isinstance(station["name"], str):
        raise SystableError(ERR_STATION_NAME_WRONG_TYPE)
    has_lat, has_lon = "lat" in station, "lon" in station
    if has_lat != has_lon:
        raise SystableError(ERR_STATION_COORDINATE_MISSING)
    if has_lat and not (isinstance(station["lat"], float) and isinstance(station["lon"], float)):
        raise SystableError(ERR_STATION_COORDINATE_WRONG_TYPE)
    frequencies = station.get("frequencies")
    if not isinstance(frequencies, list):
        raise SystableError(ERR_FREQUENCIES_MISSING)
    if not all(_is_number(f) for f in frequencies):
        raise SystableError(ERR_FREQUENCY_WRONG_TYPE)


def validate(cfg: Mapping) -> None:
    """Check a system table configuration; raise SystableError if it is invalid."""
    version = cfg.get("version")
    if not _is_int(version):
        raise SystableError(ERR_VERSION_MISSING)
    if not 0 <= version <= SYSTABLE_VERSION_MAX:
        raise SystableError(ERR_VERSION_OUT_OF_RANGE)
    stations = cfg.get("stations")
    if not isinstance(stations, list):
        raise SystableError(ERR_STATIONS_MISSING)
    for station in stations:
        _validate_station(station)


def _build_station_cache(cfg: Mapping) -> dict[int, dict]:
    stations = cfg.get("stations")
    if stations is None:
        raise SystableError(ERR_STATIONS_MISSING)
    cache: dict[int, dict] = {}
    for station in stations:
        gs_id = station["id"]
        if gs_id in cache:
            raise SystableError(ERR_STATION_ID_DUPLICATE)
        cache[gs_id] = station
    return cache


def generate_config(sc: SystableComplete) -> dict:
    """Build a system table configuration from a decoded System Table message."""
    if sc.err:
        raise ValueError("cannot generate configuration from an unparseable system table")
    return {
        "version": sc.version,
        "stations": [
            {
                "id": gs.gs_id,
                "lat": float(gs.location.lat),
                "lon": float(gs.location.lon),
                "frequencies": [f / 1000.0 for f in gs.frequencies],
            }
            for gs in sc.stations
        ],
    }


def station_locations_match(s1: Mapping, s2: Mapping) -> bool:
    """Whether two station settings point at (almost) the same location."""
    coords = []
    for station in (s1, s2):
        for key in ("lat", "lon"):
            value = station.get(key)
            if not isinstance(value, float):
                return False
            coords.append(value)
    lat1, lon1, lat2, lon2 = coords
    return abs(lat1 - lat2) < 1.0 and abs(lon1 - lon2) < 1.0


def _copy_station_names(cfg: dict, old_stations: Mapping[int, Mapping]) -> None:
    stations = cfg.get("stations")
    if not isinstance(stations, list):
        return
    for station in stations:
        gs_id = station.get("id")
        if not _is_int(gs_id):
            continue
        old = old_stations.get(gs_id)
        if old is None or not station_locations_match(station, old):
            continue
        name = old.get("name")
        if isinstance(name, str):
            station["name"] = name


@dataclass
class _PduSet:
    version: int
    pdus: list[bytes | None]


class Systable:
    """The system table in use, plus the System Table PDUs being collected."""

    def __init__(self, savefile: str | Path | None = None) -> None:
        self.savefile = savefile
        self.last_error: SystableError | None = None
        self._cfg: dict | None = None
        self._stations: dict[int, dict] = {}
        self._available = False
        self._pdu_set: _PduSet | None = None

    def read_from_file(self, path: str | Path) -> None:
        """Load and validate a system table file; raise SystableError on failure."""
        self._available = False
        self._cfg = None
        self._stations = {}
        try:
            cfg = settings.load(path)
            validate(cfg)
            stations = _build_station_cache(cfg)
        except settings.ConfigIOError as exc:
            self.last_error = SystableError(str(exc), SystableErrorType.IO, exc.line)
            raise self.last_error from exc
        except settings.ConfigError as exc:
            self.last_error = SystableError(str(exc), SystableErrorType.FILE_PARSE, exc.line)
            raise self.last_error from exc
        except SystableError as exc:
            self.last_error = exc
            raise
        self._cfg = cfg
        self._stations = stations
        self._available = True
        self.last_error = None

    @property
    def available(self) -> bool:
        return self._available

    @property
    def version(self) -> int:
        """Version of the table in use, or -1 when no table is available."""
        if not self._available or self._cfg is None:
            return -1
        return self._cfg["version"]

    def _station(self, gs_id: int) -> dict | None:
        if not self._available or not 0 <= gs_id < STATION_ID_MAX:
            return None
        return self._stations.get(gs_id)

    def station_name(self, gs_id: int) -> str | None:
        station = self._station(gs_id)
        if station is None:
            return None
        name = station.get("name")
        return name if isinstance(name, str) else None

    def station_frequency(self, gs_id: int, freq_id: int) -> float:
        """Frequency (kHz) at index freq_id of a station, or -1.0 when unknown."""
        station = self._station(gs_id)
        if station is None or freq_id < 0:
            return -1.0
        frequencies = station.get("frequencies")
        if not isinstance(frequencies, list) or freq_id >= len(frequencies):
            return -1.0
        freq = frequencies[freq_id]
        return float(freq) if _is_number(freq) else -1.0

    def store_pdu(self, version: int, idx: int, pdu_set_len: int, buf: bytes) -> None:
        """Store one PDU of a System Table PDU set."""
        if pdu_set_len < 1 or not 0 <= idx < pdu_set_len:
            return
        ps = self._pdu_set
        if ps is not None and (ps.version != version or len(ps.pdus) != pdu_set_len):
            log.debug("PDU set params do not match (version: %d -> %d, set_len: %d -> %d), "
                      "discarding PDU set", ps.version, version, len(ps.pdus), pdu_set_len)
            ps = None
        if ps is None:
            ps = self._pdu_set = _PduSet(version, [None] * pdu_set_len)
        data = bytes(buf)
        if ps.pdus[idx] is not None and ps.pdus[idx] != data:
            log.debug("PDU %d already exists and is different - replacing", idx)
        ps.pdus[idx] = data

    def process_pdu_set(self) -> SystableComplete | None:
        """Decode the PDU set if complete, adopting it when it is newer.

        Returns None when the PDU set is not complete yet.
        """
        ps = self._pdu_set
        if ps is None or not ps.pdus:
            return None
        missing = [i for i, pdu in enumerate(ps.pdus) if pdu is None]
        if missing:
            log.debug("Not ready to decode systable, PDU %d missing", missing[0])
            return None
        result = decode(b"".join(ps.pdus))
        result.version = ps.version
        self._pdu_set = None
        if not result.err and (not self._available or is_newer(self.version, result.version)):
            log.debug("Decoded systable is newer than the current one (%d > %d), updating",
                      result.version, self.version)
            self._install(result)
        return result

    def _install(self, result: SystableComplete) -> None:
        cfg = generate_config(result)
        _copy_station_names(cfg, self._stations)
        if self.savefile is not None:
            try:
                settings.dump(cfg, self.savefile)
                log.info("System table version %d saved to %s", result.version, self.savefile)
            except settings.ConfigError as exc:
                self.last_error = SystableError(str(exc), SystableErrorType.IO, exc.line)
                log.error("Could not save system table to %s: %s", self.savefile, exc)
        try:
            stations = _build_station_cache(cfg)
        except SystableError as exc:
            self.last_error = exc
            log.error("Failed to populate ground station cache: %s", exc)
            log.error("Keeping the old system table")
            return
        self._cfg = cfg
        self._stations = stations
        self._available = True