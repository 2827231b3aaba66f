"""Output sending formatted messages to a remote host as UDP datagrams."""

from __future__ import annotations

import logging
import socket
from typing import Any, Mapping

from hfdlcore.output_common import TEXT_FORMATS, Output, OutputFormat

log = logging.getLogger(__name__)


class UdpOutput(Output):
    """Fire-and-forget delivery of messages over UDP."""

    name = "udp"
    description = "Output to a remote host via UDP"
    options = (
        ("address", "Destination host name or IP address (required)"),
        ("port", "Destination UDP port (required)"),
    )

    def __init__(self, address: str, port: str) -> None:
        self.address = address
        self.port = port
        self._sock: socket.socket | None = None

    @classmethod
    def configure(cls, kwargs: Mapping[str, str]) -> "UdpOutput":
        """Create an instance from output parameters; raise ValueError if they are invalid."""
        address = kwargs.get("address")
        if address is None:
            raise ValueError("output_udp: IP address not specified")
        port = kwargs.get("port")
        if port is None:
            raise ValueError("output_udp: UDP port not specified")
        return cls(address, port)

    def init(self) -> None:
        try:
            infos = socket.getaddrinfo(self.address, self.port, type=socket.SOCK_DGRAM)
        except socket.gaierror as exc:
            log.error("output_udp: could not resolve %s: %s", self.address, exc)
            raise
        for family, socktype, proto, _, addr in infos:
            try:
                sock = socket.socket(family, socktype, proto)
            except OSError:
                continue
            try:
                sock.connect(addr)
            except OSError:
                sock.close()
                continue
            self._sock = sock
            return
        log.error("output_udp: Could not set up UDP socket to %s:%s: all addresses failed",
                  self.address, self.port)
        raise ConnectionError(
            f"output_udp: could not set up UDP socket to {self.address}:{self.port}")

    def produce(self, fmt: OutputFormat, metadata: Any, msg: bytes | None) -> None:
        if fmt not in TEXT_FORMATS:
            return
        if msg is None:
            raise ValueError("no message to send")
        if self._sock is None:
            raise RuntimeError(f"output_udp({self.address}:{self.port}): socket is not open")
        if len(msg) < 2:
            return
        try:
            self._sock.send(msg)
        except OSError as exc:
            # Delivery is never retried; the error is only reported.
            log.error("output_udp(%s:%s): send error: %s", self.address, self.port, exc)

    def _close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def handle_shutdown(self) -> None:
        log.info("output_udp(%s:%s): shutting down", self.address, self.port)
        self._close()

    def handle_failure(self) -> None:
        log.error("output_udp: can't connect to %s:%s, deactivating output",
                  self.address, self.port)
        self._close()