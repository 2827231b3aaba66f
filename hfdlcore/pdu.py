"""Common HFDL PDU definitions: metadata, header data and frame check sequence."""

from __future__ import annotations

import dataclasses
import enum
import logging
from dataclasses import dataclass

log = logging.getLogger(__name__)

_CRC_POLY_REFLECTED = 0x8408
_CRC_INIT = 0xFFFF
_CRC_XOROUT = 0xFFFF


class PduDirection(enum.IntEnum):
    UPLINK = 0
    DOWNLINK = 1


@dataclass
class PduMetadata:
    """Reception parameters of a single HFDL PDU."""

    rx_timestamp: float = 0.0
    version: int = 0
    freq: int = 0
    bit_rate: int = 0
    freq_err_hz: float = 0.0
    rssi: float = 0.0
    noise_floor: float = 0.0
    slot: str = "S"             # 'S' - single slot frame, 'D' - double slot frame

    def copy(self) -> "PduMetadata":
        return dataclasses.replace(self)


@dataclass
class PduHeaderData:
    """Fields from an MPDU/SPDU header needed by the layers below it."""

    freq: int = 0
    src_id: int = 0             # GS ID for uplinks, AC ID for downlinks
    dst_id: int = 0             # AC ID for uplinks, GS ID for downlinks
    direction: PduDirection = PduDirection.UPLINK
    crc_ok: bool = False


def _crc16_ccitt(data: bytes, crc: int = _CRC_INIT) -> int:
    for octet in data:
        crc ^= octet
        for _ in range(8):
            crc = (crc >> 1) ^ _CRC_POLY_REFLECTED if crc & 1 else crc >> 1
    return crc & 0xFFFF


def compute_fcs(data: bytes) -> int:
    """Frame check sequence of data (CRC-16-CCITT, HDLC style)."""
    return _crc16_ccitt(data) ^ _CRC_XOROUT


def fcs_check(buf: bytes, hdr_len: int) -> bool:
    """Verify the FCS over the first hdr_len octets of buf.

    The received FCS is expected in the two octets following them, least
    significant octet first.
    """
    if hdr_len < 0 or len(buf) < hdr_len + 2:
        raise ValueError("buffer too short for the FCS")
    fcs_received = buf[hdr_len] | (buf[hdr_len + 1] << 8)
    fcs_computed = compute_fcs(bytes(buf[:hdr_len]))
    log.debug("FCS: computed: 0x%04x check: 0x%04x", fcs_computed, fcs_received)
    if fcs_received != fcs_computed:
        log.debug("FCS check failed")
        return False
    log.debug("FCS check OK")
    return True