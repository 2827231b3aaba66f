"""Formatter and output plumbing: queues feeding output workers running in threads."""

from __future__ import annotations

import abc
import copy
import enum
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable

log = logging.getLogger(__name__)

DEFAULT_OUTPUT = "decoded:text:file:path=-"
"""Default output specification: decoded text output to stdout."""

OUTPUT_QUEUE_HWM_DEFAULT = 1000
OUTPUT_QUEUE_HWM_NONE = 0
"""High water mark value which disables the queue length limit."""

RETRY_DELAY = 2.0
"""Seconds to wait after a failed delivery, giving the output a chance to recover."""


class FormatterInputType(enum.Enum):
    """Kind of data fed into a formatter."""

    UNKNOWN = 0
    DECODED_FRAME = 1
    RAW_FRAME = 2

    @property
    def label(self) -> str | None:
        return _INTYPE_INFO.get(self, (None, None))[0]

    @property
    def description(self) -> str | None:
        return _INTYPE_INFO.get(self, (None, None))[1]

    @classmethod
    def from_string(cls, name: str) -> "FormatterInputType":
        """Input type with the given label, or UNKNOWN."""
        for member, (label, _) in _INTYPE_INFO.items():
            if label == name:
                return member
        return cls.UNKNOWN


_INTYPE_INFO = {
    FormatterInputType.DECODED_FRAME: ("decoded", "Output decoded frames"),
    FormatterInputType.RAW_FRAME: ("raw", "Output undecoded HFDL frames as raw bytes"),
}


class OutputFormat(enum.Enum):
    """Format of the data passed to outputs."""

    UNKNOWN = 0
    TEXT = 1
    BASESTATION = 2
    JSON = 3

    @property
    def label(self) -> str | None:
        return None if self is OutputFormat.UNKNOWN else self.name.lower()

    @classmethod
    def from_string(cls, name: str) -> "OutputFormat":
        """Format with the given label, or UNKNOWN."""
        for member in cls:
            if member is not cls.UNKNOWN and member.label == name:
                return member
        return cls.UNKNOWN


TEXT_FORMATS = frozenset({OutputFormat.TEXT, OutputFormat.BASESTATION, OutputFormat.JSON})


@dataclass
class QueueEntry:
    """A message passed through an output queue."""

    msg: bytes | None = None
    metadata: Any = None
    format: OutputFormat = OutputFormat.UNKNOWN
    shutdown: bool = False


def _copy_entry(entry: QueueEntry) -> QueueEntry:
    return QueueEntry(
        msg=None if entry.msg is None else bytes(entry.msg),
        metadata=None if entry.metadata is None else copy.copy(entry.metadata),
        format=entry.format,
        shutdown=entry.shutdown,
    )


class Output(abc.ABC):
    """Base class of output types.

    init() and produce() raise an exception on failure.  A failed init()
    deactivates the output; a failed produce() causes the message to be retried.
    """

    name: str = ""
    description: str = ""
    options: tuple[tuple[str, str], ...] = ()

    def supports_format(self, fmt: OutputFormat) -> bool:
        return fmt in TEXT_FORMATS

    def init(self) -> None:
        """Prepare the output for use; the default does nothing."""

    @abc.abstractmethod
    def produce(self, fmt: OutputFormat, metadata: Any, msg: bytes | None) -> None:
        """Deliver one formatted message."""

    def handle_shutdown(self) -> None:
        """Release resources on an ordered shutdown; the default does nothing."""

    def handle_failure(self) -> None:
        """Release resources after a failed init(); the default does nothing."""


class OutputInstance:
    """An output together with its input queue and worker state."""

    def __init__(self, output: Output, fmt: OutputFormat,
                 hwm: int = OUTPUT_QUEUE_HWM_DEFAULT) -> None:
        self.output = output
        self.format = fmt
        self.hwm = hwm
        self.active = True
        self.retry_delay = RETRY_DELAY
        self._queue: deque[QueueEntry] = deque()
        self._cond = threading.Condition()
        self._thread: threading.Thread | None = None

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def push(self, entry: QueueEntry) -> bool:
        """Queue a copy of entry; return False when it was dropped."""
        with self._cond:
            overflow = self.hwm != OUTPUT_QUEUE_HWM_NONE and len(self._queue) >= self.hwm
            active = self.active
            if entry.shutdown or (active and not overflow):
                self._queue.append(_copy_entry(entry))
                self._cond.notify()
                log.debug("dispatched %s output %r", self.output.name, self)
                return True
        if overflow:
            log.warning("%s output queue overflow, throttling", self.output.name)
        else:
            log.debug("%s output %r is inactive, skipping", self.output.name, self)
        return False

    def _pop(self) -> QueueEntry:
        with self._cond:
            while not self._queue:
                self._cond.wait()
            return self._queue.popleft()

    def _push_front(self, entry: QueueEntry) -> None:
        with self._cond:
            self._queue.appendleft(entry)
            self._cond.notify()

    def run(self) -> None:
        """Deliver queued messages until a shutdown entry arrives."""
        try:
            self.output.init()
        except Exception as exc:
            log.error("%s output initialization failed: %s", self.output.name, exc)
            self.active = False
            self.output.handle_failure()
            self.drain()
            return
        while True:
            entry = self._pop()
            if entry.shutdown:
                break
            try:
                self.output.produce(entry.format, entry.metadata, entry.msg)
            except Exception as exc:
                log.debug("output %r: delivery failure: %s", self, exc)
                self._push_front(entry)
                time.sleep(self.retry_delay)
            else:
                log.debug("output %r: delivery ok", self)
        self.output.handle_shutdown()
        self.active = False

    def start(self) -> threading.Thread:
        """Run the worker in a daemon thread."""
        self._thread = threading.Thread(target=self.run, name=f"output-{self.output.name}",
                                        daemon=True)
        self._thread.start()
        return self._thread

    def drain(self) -> int:
        """Discard all queued entries; return how many were discarded."""
        with self._cond:
            count = len(self._queue)
            self._queue.clear()
            return count


@dataclass
class FormatterInstance:
    """A formatter and the outputs its formatted messages are sent to."""

    formatter: Any
    intype: FormatterInputType
    outputs: list[OutputInstance] = field(default_factory=list)


def shutdown_outputs(formatters: Iterable[FormatterInstance]) -> None:
    """Send an ordered shutdown request to every output."""
    for fmtr in formatters:
        for output in fmtr.outputs:
            output.push(QueueEntry(shutdown=True))


def any_output_running(formatters: Iterable[FormatterInstance]) -> bool:
    """Whether any output worker is still active."""
    return any(output.active for fmtr in formatters for output in fmtr.outputs)