"""Registry of output types and the output specifier help text."""

from __future__ import annotations

import sys
from typing import TextIO

from hfdlcore.output_common import FormatterInputType, Output, OutputFormat
from hfdlcore.output_file import FileOutput
from hfdlcore.output_tcp import TcpOutput
from hfdlcore.output_udp import UdpOutput
from hfdlcore.output_zmq import ZmqOutput

OUTPUT_CLASSES: tuple[type[Output], ...] = (FileOutput, TcpOutput, UdpOutput, ZmqOutput)

_IND = "  "


def output_class_get(name: str | None) -> type[Output] | None:
    """Output class registered under name, or None."""
    if name is None:
        return None
    return next((cls for cls in OUTPUT_CLASSES if cls.name == name), None)


def _describe(name: str, description: str, level: int) -> str:
    return f"{_IND * level}{name:<20}{description}\n"


def output_usage(stream: TextIO | None = None) -> None:
    """Write the description of the --output specifier syntax."""
    out = sys.stderr if stream is None else stream
    parts = [
        "\n<output_specifier> is a parameter of the --output option. "
        "It has the following syntax:\n\n",
        f"{_IND}<what_to_output>:<output_format>:<output_type>:<output_parameters>\n\n",
        "where:\n",
        f"\n{_IND}<what_to_output> specifies what data should be sent to the output:\n\n",
    ]
    parts.extend(_describe(t.label, t.description, 2)
                 for t in FormatterInputType if t.label is not None)
    parts.append(f"\n{_IND}<output_format> specifies how the output should be formatted:\n\n")
    parts.extend(f"{_IND * 2}{fmt.label}\n" for fmt in OutputFormat if fmt.label is not None)
    parts.append(f"\n{_IND}<output_type> specifies the type of the output:\n\n")
    parts.extend(_describe(cls.name, cls.description, 2) for cls in OUTPUT_CLASSES)
    parts.append(f"\n{_IND}<output_parameters> - specifies detailed output options "
                 "with a syntax of: param1=value1,param2=value2,...\n")
    for cls in OUTPUT_CLASSES:
        parts.append(f"\nParameters for output type '{cls.name}':\n\n")
        parts.extend(_describe(opt, descr, 2) for opt, descr in cls.options)
    parts.append("\n")
    out.write("".join(parts))