"""Shared helpers: hex dumps, bit-level field parsing and ground station formatting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

GS_MAX_FREQ_CNT = 20
"""Maximum number of frequencies assigned to a ground station."""

_COORD_BITS = 20
_COORD_MAX = 0x7FFFF


@dataclass
class Location:
    """Geographic position in degrees."""

    lat: float = 0.0
    lon: float = 0.0


class StationDirectory(Protocol):
    """Anything able to answer ground station lookups (e.g. a system table)."""

    def station_name(self, gs_id: int) -> str | None: ...

    def station_frequency(self, gs_id: int, freq_id: int) -> float: ...


def indent_line(indent: int, text: str) -> str:
    """Prefix text with one space per indentation level."""
    if indent < 0:
        raise ValueError("indent must not be negative")
    return " " * indent + text


def _indent_multiline(indent: int, text: str) -> str:
    return "".join(indent_line(indent, line) for line in text.splitlines(keepends=True))


def hexdump(data: bytes | None) -> str:
    """Render data as rows of 16 hex octets followed by their printable characters."""
    if data is None:
        return "<undef>"
    if len(data) == 0:
        return "<none>"
    rows = []
    for start in range(0, len(data), 16):
        chunk = data[start:start + 16]
        hex_part = []
        ascii_part = []
        for pos in range(16):
            if pos < len(chunk):
                octet = chunk[pos]
                hex_part.append(f"{octet:02x} ")
                ascii_part.append(chr(octet) if 32 <= octet <= 126 else ".")
            else:
                hex_part.append("   ")
                ascii_part.append(" ")
            if pos == 7:
                hex_part.append(" ")
                ascii_part.append(" ")
        rows.append("".join(hex_part) + " |" + "".join(ascii_part) + "|\n")
    return "".join(rows)


def hexdump_with_indent(data: bytes | None, indent: int) -> str:
    """Hex dump of data with every line indented."""
    return _indent_multiline(indent, hexdump(data))


def reverse_byte(x: int) -> int:
    """Reverse the bit order of an octet."""
    x &= 0xFF
    return int(f"{x:08b}"[::-1], 2)


def parse_icao_hex(buf: bytes) -> int:
    """Parse a 24-bit ICAO address stored as three bit-reversed octets."""
    if len(buf) < 3:
        raise ValueError("ICAO address needs 3 octets")
    result = 0
    for octet in buf[:3]:
        result = (result << 8) | reverse_byte(octet)
    return result


def parse_coordinate(c: int) -> float:
    """Convert a 20-bit two's complement coordinate field to degrees."""
    raw = c & ((1 << _COORD_BITS) - 1)
    if raw & (1 << (_COORD_BITS - 1)):
        raw -= 1 << _COORD_BITS
    return raw * 180.0 / float(_COORD_MAX)


def _frequency_ids(freqs: int):
    return (i for i in range(GS_MAX_FREQ_CNT) if (freqs >> i) & 1)


def _station_frequency(systable: Any, gs_id: int, freq_id: int) -> float:
    if systable is None:
        return -1.0
    return systable.station_frequency(gs_id, freq_id)


def _station_name(systable: Any, gs_id: int) -> str | None:
    if systable is None:
        return None
    return systable.station_name(gs_id)


def freq_list_format_text(indent: int, label: str, gs_id: int, freqs: int,
                          systable: StationDirectory | None = None) -> str:
    """Format a frequency bitmask as a comma-separated list (kHz or frequency index)."""
    items = []
    for i in _frequency_ids(freqs):
        f = _station_frequency(systable, gs_id, i)
        items.append(f"{f:.1f}" if f > 0.0 else str(i))
    return indent_line(indent, f"{label}: ") + ", ".join(items) + "\n"


def freq_list_format_json(gs_id: int, freqs: int,
                          systable: StationDirectory | None = None) -> list[dict]:
    """Frequency bitmask as a list of {"id", "freq"} objects."""
    result = []
    for i in _frequency_ids(freqs):
        entry: dict[str, Any] = {"id": i}
        f = _station_frequency(systable, gs_id, i)
        if f > 0.0:
            entry["freq"] = f
        result.append(entry)
    return result


def gs_id_format_text(indent: int, label: str, gs_id: int,
                      systable: StationDirectory | None = None) -> str:
    """Ground station ID line, using the station name when it is known."""
    name = _station_name(systable, gs_id)
    return indent_line(indent, f"{label}: ") + (f"{name}\n" if name is not None else f"{gs_id}\n")


def gs_id_format_json(gs_id: int, systable: StationDirectory | None = None) -> dict:
    """Ground station ID as a JSON-ready object."""
    result: dict[str, Any] = {"type": "Ground station", "id": gs_id}
    name = _station_name(systable, gs_id)
    if name is not None:
        result["name"] = name
    return result


def unknown_proto_format_text(data: bytes | None, indent: int) -> str:
    """Text rendering of an undecoded payload; empty for no data."""
    if not data:
        return ""
    return indent_line(indent, f"Data ({len(data)} bytes):\n") + hexdump_with_indent(data, indent + 1)


def unknown_proto_format_json(data: bytes | None) -> dict:
    """JSON rendering of an undecoded payload; empty for no data."""
    if not data:
        return {}
    return {"data": list(data)}