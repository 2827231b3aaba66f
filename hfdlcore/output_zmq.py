"""Output publishing formatted messages on a ZeroMQ PUB socket."""

from __future__ import annotations

import enum
import logging
from typing import Any, Mapping

import zmq

from hfdlcore.output_common import (
    OUTPUT_QUEUE_HWM_DEFAULT,
    TEXT_FORMATS,
    Output,
    OutputFormat,
)

log = logging.getLogger(__name__)

LIBZMQ_VERSION_MIN = (3, 2, 0)
"""Oldest libzmq version the output accepts."""


class ZmqMode(enum.Enum):
    SERVER = "server"
    CLIENT = "client"


class ZmqOutput(Output):
    """Publishes messages on a PUB socket, either bound (server) or connected (client)."""

    name = "zmq"
    description = "Output to a ZeroMQ publisher socket (as a server or a client)"
    options = (
        ("mode", "Socket mode: client or server (required)"),
        ("endpoint", "Socket endpoint: tcp://address:port (required)"),
    )

    def __init__(self, endpoint: str, mode: ZmqMode,
                 hwm: int = OUTPUT_QUEUE_HWM_DEFAULT) -> None:
        self.endpoint = endpoint
        self.mode = mode
        self.hwm = hwm
        self._ctx: zmq.Context | None = None
        self._sock: zmq.Socket | None = None

    @classmethod
    def configure(cls, kwargs: Mapping[str, str]) -> "ZmqOutput":
        """Create an instance from output parameters; raise ValueError if they are invalid.

        The instance uses the default send high water mark; set its ``hwm`` attribute
        before ``init`` to change it.
        """
        version = zmq.zmq_version_info()
        if tuple(version) < LIBZMQ_VERSION_MIN:
            have = ".".join(str(v) for v in version)
            need = ".".join(str(v) for v in LIBZMQ_VERSION_MIN)
            raise RuntimeError(f"output_zmq: error: libzmq library version {have} is too old; "
                               f"at least {need} is required")
        endpoint = kwargs.get("endpoint")
        if endpoint is None:
            raise ValueError("output_zmq: endpoint not specified")
        mode_text = kwargs.get("mode")
        if mode_text is None:
            raise ValueError("output_zmq: mode not specified")
        try:
            mode = ZmqMode(mode_text)
        except ValueError:
            raise ValueError(f"output_zmq: mode '{mode_text}' is invalid; "
                             "must be either 'client' or 'server'") from None
        return cls(endpoint, mode)

    @property
    def _action(self) -> str:
        return "bind" if self.mode is ZmqMode.SERVER else "connect"

    def init(self) -> None:
        self._ctx = zmq.Context()
        self._sock = self._ctx.socket(zmq.PUB)
        try:
            if self.mode is ZmqMode.SERVER:
                self._sock.bind(self.endpoint)
            else:
                self._sock.connect(self.endpoint)
        except zmq.ZMQError as exc:
            log.error("output_zmq(%s): %s failed: %s", self.endpoint, self._action, exc)
            raise
        try:
            self._sock.setsockopt(zmq.SNDHWM, self.hwm)
        except zmq.ZMQError as exc:
            log.error("output_zmq(%s): could not set ZMQ_SNDHWM option for socket: %s",
                      self.endpoint, exc)
            raise

    def produce(self, fmt: OutputFormat, metadata: Any, msg: bytes | None) -> None:
        if fmt not in TEXT_FORMATS:
            return
        if msg is None:
            raise ValueError("no message to send")
        if self._sock is None:
            raise RuntimeError(f"output_zmq({self.endpoint}): socket is not open")
        if len(msg) < 2:
            return
        try:
            self._sock.send(msg)
        except zmq.ZMQError as exc:
            log.error("output_zmq(%s): zmq_send error: %s", self.endpoint, exc)
            raise

    def _close(self) -> None:
        if self._sock is not None:
            self._sock.close(linger=0)
            self._sock = None
        if self._ctx is not None:
            self._ctx.term()
            self._ctx = None

    def handle_shutdown(self) -> None:
        log.info("output_zmq(%s): shutting down", self.endpoint)
        self._close()

    def handle_failure(self) -> None:
        log.error("output_zmq(%s): could not %s, deactivating output",
                  self.endpoint, self._action)
        self._close()