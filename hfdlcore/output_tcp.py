"""Output sending formatted messages to a remote host over TCP."""

from __future__ import annotations

import logging
import socket
import time
from typing import Any, Callable, Mapping

from hfdlcore.output_common import TEXT_FORMATS, Output, OutputFormat

log = logging.getLogger(__name__)

MIN_RECONNECT_INTERVAL = 10
"""Seconds to wait after a failed connection attempt before trying again."""

SOCKET_SEND_TIMEOUT = 5
"""Timeout of socket operations, in seconds."""


class TcpOutput(Output):
    """Sends messages to a TCP server, reconnecting when the connection is lost."""

    name = "tcp"
    description = "Output to a remote host via TCP"
    options = (
        ("address", "Destination host name or IP address (required)"),
        ("port", "Destination TCP port (required)"),
    )

    def __init__(self, address: str, port: str) -> None:
        self.address = address
        self.port = port
        self.next_reconnect_time = 0.0
        self.clock: Callable[[], float] = time.time
        self._sock: socket.socket | None = None

    @classmethod
    def configure(cls, kwargs: Mapping[str, str]) -> "TcpOutput":
        """Create an instance from output parameters; raise ValueError if they are invalid."""
        address = kwargs.get("address")
        if address is None:
            raise ValueError("output_tcp: address not specified")
        port = kwargs.get("port")
        if port is None:
            raise ValueError("output_tcp: port not specified")
        return cls(address, port)

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def _tag(self) -> str:
        return f"output_tcp({self.address}:{self.port})"

    def _schedule_reconnect(self) -> None:
        self.next_reconnect_time = self.clock() + MIN_RECONNECT_INTERVAL

    def reconnect(self) -> None:
        """Establish the connection; raise OSError when it is not possible (yet)."""
        if self.next_reconnect_time > self.clock():
            raise ConnectionError(f"{self._tag()}: reconnection not due yet")
        log.info("%s: connecting...", self._tag())
        try:
            infos = socket.getaddrinfo(self.address, self.port, type=socket.SOCK_STREAM)
        except socket.gaierror as exc:
            log.error("%s: could not resolve address: %s", self._tag(), exc)
            self._schedule_reconnect()
            raise
        for family, socktype, proto, _, addr in infos:
            try:
                sock = socket.socket(family, socktype, proto)
            except OSError:
                continue
            sock.settimeout(SOCKET_SEND_TIMEOUT)
            try:
                sock.connect(addr)
            except OSError:
                sock.close()
                continue
            log.info("%s: connection established", self._tag())
            self._sock = sock
            self.next_reconnect_time = 0.0
            return
        log.error("%s: could not connect: all addresses failed", self._tag())
        self._schedule_reconnect()
        raise ConnectionError(f"{self._tag()}: could not connect: all addresses failed")

    def init(self) -> None:
        # A failed connection is not fatal: the output stays active and retries later.
        self.next_reconnect_time = 0.0
        try:
            self.reconnect()
        except OSError:
            pass

    def produce(self, fmt: OutputFormat, metadata: Any, msg: bytes | None) -> None:
        if self._sock is None:
            try:
                self.reconnect()
            except OSError:
                # Drop the message: requeueing it could block an ordered shutdown forever.
                return
        if fmt not in TEXT_FORMATS:
            return
        if msg is None:
            raise ValueError("no message to send")
        if len(msg) < 1:
            return
        try:
            self._sock.sendall(msg)
        except OSError as exc:
            log.error("%s: send error: %s", self._tag(), exc)
            self.handle_shutdown()
            self.next_reconnect_time = 0.0
            raise

    def handle_shutdown(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        log.info("%s: connection closed", self._tag())

    def handle_failure(self) -> None:
        log.error("%s: could not connect, deactivating output", self._tag())
        if self._sock is not None:
            self._sock.close()
            self._sock = None