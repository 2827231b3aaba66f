"""HFDL Squitter PDU (SPDU) parsing and formatting."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from hfdlcore.pdu import PduDirection, PduHeaderData, fcs_check
from hfdlcore.util import (
    StationDirectory,
    freq_list_format_json,
    freq_list_format_text,
    gs_id_format_json,
    gs_id_format_text,
    hexdump_with_indent,
    indent_line,
)

log = logging.getLogger(__name__)

SPDU_LEN = 66
GS_STATUS_CNT = 3
_FCS_HDR_LEN = 64

CHANGE_NOTE_DESCR = (
    "None",
    "Channel down",
    "Upcoming frequency change",
    "Ground station down",
)


@dataclass
class GsStatus:
    """Status of a ground station as announced in a squitter."""

    id: int = 0
    utc_sync: bool = False
    freqs_in_use: int = 0

    def format_text(self, indent: int, systable: StationDirectory | None = None) -> str:
        text = gs_id_format_text(indent, "ID", self.id, systable)
        indent += 1
        text += indent_line(indent, f"UTC sync: {int(self.utc_sync)}\n")
        text += freq_list_format_text(indent, "Frequencies in use", self.id,
                                      self.freqs_in_use, systable)
        return text

    def to_json(self, systable: StationDirectory | None = None) -> dict:
        return {
            "gs": gs_id_format_json(self.id, systable),
            "utc_sync": self.utc_sync,
            "freqs": freq_list_format_json(self.id, self.freqs_in_use, systable),
        }


@dataclass
class Spdu:
    """A decoded uplink squitter."""

    json_key = "spdu"

    pdu: bytes
    header: PduHeaderData = field(default_factory=PduHeaderData)
    gs_data: list[GsStatus] = field(default_factory=list)
    frame_index: int = 0
    frame_offset: int = 0
    version: int = 0
    change_note: int = 0
    min_priority: int = 0
    systable_version: int = 0
    rls_in_use: bool = False
    iso8208_supported: bool = False

    @property
    def change_note_text(self) -> str:
        return CHANGE_NOTE_DESCR[self.change_note]

    def format_text(self, indent: int = 0, systable: StationDirectory | None = None,
                    output_raw_frames: bool = False) -> str:
        parts = []
        if output_raw_frames and self.pdu:
            parts.append(hexdump_with_indent(self.pdu, indent + 1))
        if not self.header.crc_ok:
            # Without a valid CRC it is not even known whether this is an SPDU.
            parts.append(indent_line(indent, "-- Unparseable PDU (CRC check failed)\n"))
            return "".join(parts)
        parts.append(indent_line(indent, "Uplink SPDU:\n"))
        indent += 1
        parts.append(gs_id_format_text(indent, "Src GS", self.header.src_id, systable))
        parts.append(indent_line(indent, f"Squitter: ver: {self.version} "
                                         f"rls: {int(self.rls_in_use)} "
                                         f"iso: {int(self.iso8208_supported)}\n"))
        indent += 1
        parts.append(indent_line(indent, f"Change note: {self.change_note_text}\n"))
        parts.append(indent_line(indent, f"TDMA Frame: index: {self.frame_index} "
                                         f"offset: {self.frame_offset}\n"))
        parts.append(indent_line(indent, f"Minimum priority: {self.min_priority}\n"))
        parts.append(indent_line(indent, f"System table version: {self.systable_version}\n"))
        parts.append(indent_line(indent, "Ground station status:\n"))
        parts.extend(gs.format_text(indent, systable) for gs in self.gs_data)
        return "".join(parts)

    def to_json(self, systable: StationDirectory | None = None) -> dict:
        result: dict[str, Any] = {"err": not self.header.crc_ok}
        if not self.header.crc_ok:
            return result
        result.update({
            "src": gs_id_format_json(self.header.src_id, systable),
            "spdu_version": self.version,
            "rls": self.rls_in_use,
            "iso": self.iso8208_supported,
            "change_note": self.change_note_text,
            "frame_index": self.frame_index,
            "frame_offset": self.frame_offset,
            "min_priority": self.min_priority,
            "systable_version": self.systable_version,
            "gs_status": [gs.to_json(systable) for gs in self.gs_data],
        })
        return result


def _count(stats: Any, freq: int, counter: str) -> None:
    if stats is not None:
        stats.increment_per_channel(freq, counter)


def _decode_fields(spdu: Spdu, buf: bytes) -> None:
    spdu.header.direction = PduDirection.UPLINK
    spdu.header.src_id = buf[1] & 0x7F

    spdu.rls_in_use = bool(buf[0] & 0x02)
    spdu.version = (buf[0] >> 2) & 0x03
    spdu.iso8208_supported = bool(buf[0] & 0x20)
    spdu.change_note = (buf[0] & 0xC0) >> 6

    spdu.frame_index = buf[2] | ((buf[3] & 0xF) << 8)
    spdu.frame_offset = buf[3] >> 4

    spdu.min_priority = buf[52] & 0xF
    spdu.systable_version = buf[53] | ((buf[54] & 0xF) << 8)

    spdu.gs_data = [
        GsStatus(
            id=spdu.header.src_id,
            utc_sync=bool(buf[1] & 0x80),
            freqs_in_use=buf[54] >> 4 | buf[55] << 4 | buf[56] << 12,
        ),
        GsStatus(
            id=buf[57] & 0x7F,
            utc_sync=bool(buf[57] & 0x80),
            freqs_in_use=buf[58] | buf[59] << 8 | (buf[60] & 0xF) << 16,
        ),
        GsStatus(
            id=buf[60] >> 4 | (buf[61] & 0x7) << 4,
            utc_sync=bool(buf[61] & 0x8),
            freqs_in_use=buf[61] >> 4 | buf[62] << 4 | buf[63] << 12,
        ),
    ]
    for gs in spdu.gs_data:
        log.debug("gs_data: id %d utc %d freqs_in_use 0x%05x",
                  gs.id, gs.utc_sync, gs.freqs_in_use)


def parse_spdu(pdu: bytes, freq: int = 0, stats: Any = None,
               output_corrupted: bool = False) -> list[Spdu]:
    """Parse a squitter PDU.

    Returns a one-element list, or an empty list when the PDU is corrupted
    and corrupted PDUs are not to be output.
    """
    if not pdu:
        raise ValueError("empty PDU")
    data = bytes(pdu)
    spdu = Spdu(pdu=data, header=PduHeaderData(freq=freq))

    if len(data) < SPDU_LEN:
        _count(stats, freq, "frame.errors.too_short")
        log.debug("Too short: %d < %d", len(data), SPDU_LEN)
    elif fcs_check(data, _FCS_HDR_LEN):
        spdu.header.crc_ok = True
        _count(stats, freq, "frames.good")
        _count(stats, freq, "frame.dir.gnd2air")
        _decode_fields(spdu, data)
    else:
        _count(stats, freq, "frame.errors.bad_fcs")

    if spdu.header.crc_ok or output_corrupted:
        return [spdu]
    return []