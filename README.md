# hfdlcore

Building blocks for decoding HF Data Link (HFDL) traffic and delivering the
results to files, sockets and message queues.

## What it provides

- `hfdlcore.spdu`: `parse_spdu` parses 66-octet squitter frames into
  `Spdu` objects. It checks the frame check sequence first. `Spdu.format_text`
  renders a squitter as text and `Spdu.to_json` renders it as a JSON-ready dict.
  `parse_spdu` can take an optional statistics object. Any object with an
  `increment_per_channel(freq, counter)` method will do, and the parser
  increments counters such as `frames.good` or `frame.errors.bad_fcs` on it.
- `hfdlcore.pdu`: frame metadata (`PduMetadata`, `PduHeaderData`,
  `PduDirection`), the CRC-16 frame check sequence (`compute_fcs`) and its
  test `fcs_check`.
- `hfdlcore.systable`: the ground station system table (`Systable`).
  - `Systable.read_from_file` reads and validates it from a settings file and
    raises `SystableError` on failure.
  - `Systable.store_pdu` and `Systable.process_pdu_set` collect and decode
    System Table PDU sets received over the air. When the decoded version is
    newer, the table is replaced and saved to `savefile` if one was given.
    Station names are kept for stations whose location did not change.
  - `Systable.station_name` and `Systable.station_frequency` look up stations
    by ID.
- `hfdlcore.settings`: reads and writes the system table file format, which
  uses libconfig syntax (`load`, `loads`, `dump`, `dumps`). Errors are raised
  as `ConfigParseError` or `ConfigIOError`.
- `hfdlcore.position`: position report data classes (`PositionInfo`,
  `Timestamp` and others) and `location_is_valid`. `fixup_timestamp`
  completes a partial UTC timestamp to the closest matching time not later
  than now.
- `hfdlcore.util` provides small shared helpers:
  - `hexdump` and `hexdump_with_indent`
  - bit reversal (`reverse_byte`)
  - ICAO address parsing (`parse_icao_hex`)
  - 20-bit coordinate parsing (`parse_coordinate`)
  - ground station and frequency list formatting (`gs_id_format_text`,
    `freq_list_format_text` and their JSON counterparts)
- Outputs:
  - The output types are `FileOutput` (append to a file or stdout with `-`,
    optional hourly or daily rotation), `TcpOutput` (reconnects after
    failures), `UdpOutput` and `ZmqOutput` (PUB socket in server or client
    mode). Each has a `configure` class method that builds it from a mapping
    of output parameters.
  - `hfdlcore.output_common.OutputInstance` drives one output from a worker
    thread. Its queue is limited by a high water mark. A failed delivery is
    retried after a delay, and a queue entry with `shutdown=True` stops the
    worker in order.
  - `shutdown_outputs` sends that shutdown entry to every output, and
    `any_output_running` reports whether any worker is still active.
- `hfdlcore.outputs`: `output_class_get` looks an output class up by name.
  `output_usage` writes the output specifier help, to stderr unless a stream
  is given.

## Installing

    pip install .

For running the tests:

    pip install ".[test]"
    pytest

## Example

```python
from hfdlcore.systable import Systable
from hfdlcore.spdu import parse_spdu

table = Systable(savefile=None)
table.read_from_file("systable.conf")

with open("frame.bin", "rb") as fh:
    frame = fh.read()

for spdu in parse_spdu(frame, 8927000, None, False):
    print(spdu.format_text(0, table, False), end="")
```

An output specifier has the form
`<what_to_output>:<output_format>:<output_type>:<output_parameters>`. For
example, `decoded:text:file:path=-` (`DEFAULT_OUTPUT`) sends decoded text to
standard output.

`output_usage` prints the full list of formats, output types and their
parameters. The package does not parse specifier strings itself.

## What it does not do

This package is a library of decoding and delivery components, not a
complete receiver:

- There is no command-line program.
- There is no radio input or demodulation.
- Only squitters (SPDUs) and System Table messages are decoded. Other frame
  types are not.
- It has no message formatters. `FormatterInstance` holds whatever formatter
  object you supply.
- It has no StatsD client. Statistics go to whatever object you pass to
  `parse_spdu`.