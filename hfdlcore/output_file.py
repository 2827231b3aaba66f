"""Output writing formatted messages to a file or stdout, with optional rotation."""

from __future__ import annotations

import enum
import logging
import sys
import time
from typing import Any, BinaryIO, Callable, Mapping

from hfdlcore.output_common import TEXT_FORMATS, Output, OutputFormat

log = logging.getLogger(__name__)


class RotationMode(enum.Enum):
    NONE = "none"
    HOURLY = "hourly"
    DAILY = "daily"


_SUFFIX_FORMATS = {
    RotationMode.HOURLY: "_%Y%m%d_%H",
    RotationMode.DAILY: "_%Y%m%d",
}


def split_extension(prefix: str) -> tuple[str, str]:
    """Split a path into the part before the file extension and the extension.

    A dot starting the file name or ending the path does not begin an extension.
    """
    slash = prefix.rfind("/")
    basename_start = slash + 1
    dot = prefix.rfind(".")
    if dot < 0 or dot <= basename_start or dot == len(prefix) - 1:
        return prefix, ""
    return prefix[:dot], prefix[dot:]


class FileOutput(Output):
    """Appends messages to a file; the path "-" means standard output."""

    name = "file"
    description = "Output to a file"
    options = (
        ("path", "Path to the output file (required)"),
        ("rotate", "How often to start a new file: Accepted values: daily, hourly"),
    )

    def __init__(self, path: str, rotate: RotationMode = RotationMode.NONE,
                 utc: bool = False) -> None:
        self.path = path
        self.rotate = rotate
        self.utc = utc
        self.clock: Callable[[], float] = time.time
        self._fh: BinaryIO | None = None
        self._owns_fh = False
        self._base = path
        self._ext = ""
        self._current_tm: time.struct_time | None = None

    @classmethod
    def configure(cls, kwargs: Mapping[str, str]) -> "FileOutput":
        """Create an instance from output parameters; raise ValueError if they are invalid.

        The instance uses local time for rotation; set its ``utc`` attribute to change that.
        """
        path = kwargs.get("path")
        if path is None:
            raise ValueError("output_file: path not specified")
        rotate_text = kwargs.get("rotate")
        if rotate_text is None:
            rotate = RotationMode.NONE
        elif rotate_text in ("hourly", "daily"):
            rotate = RotationMode(rotate_text)
        else:
            raise ValueError(f"output_file: invalid rotation mode: {rotate_text}")
        return cls(path, rotate)

    def _now_tm(self) -> time.struct_time:
        t = self.clock()
        return time.gmtime(t) if self.utc else time.localtime(t)

    def _open(self) -> None:
        if self.rotate is RotationMode.NONE:
            filename = self.path
        else:
            self._current_tm = self._now_tm()
            suffix = time.strftime(_SUFFIX_FORMATS[self.rotate], self._current_tm)
            filename = f"{self._base}{suffix}{self._ext}"
        try:
            self._fh = open(filename, "ab")
        except OSError as exc:
            log.error("Could not open output file %s: %s", filename, exc.strerror or exc)
            raise
        self._owns_fh = True

    def init(self) -> None:
        if self.path == "-":
            self._fh = getattr(sys.stdout, "buffer", sys.stdout)
            self._owns_fh = False
            self.rotate = RotationMode.NONE
            return
        if self.rotate is not RotationMode.NONE:
            self._base, self._ext = split_extension(self.path)
        self._open()

    def _rotate_if_needed(self) -> None:
        new_tm = self._now_tm()
        current = self._current_tm
        if current is None or \
                (self.rotate is RotationMode.HOURLY and new_tm.tm_hour != current.tm_hour) or \
                (self.rotate is RotationMode.DAILY and new_tm.tm_mday != current.tm_mday):
            self._close()
            self._open()

    def _close(self) -> None:
        if self._fh is not None:
            if self._owns_fh:
                self._fh.close()
            else:
                self._fh.flush()
            self._fh = None

    def produce(self, fmt: OutputFormat, metadata: Any, msg: bytes | None) -> None:
        if self.rotate is not RotationMode.NONE:
            self._rotate_if_needed()
        if fmt in TEXT_FORMATS:
            if msg is None:
                raise ValueError("no message to write")
            if self._fh is None:
                raise RuntimeError(f"output_file({self.path}): file is not open")
            self._fh.write(msg)
            self._fh.flush()

    def handle_shutdown(self) -> None:
        log.info("output_file(%s): shutting down", self.path)
        self._close()

    def handle_failure(self) -> None:
        log.error("output_file: could not write to '%s', deactivating output", self.path)
        self._close()