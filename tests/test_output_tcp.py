import socket

import pytest

from hfdlcore.output_common import OutputFormat
from hfdlcore.output_tcp import MIN_RECONNECT_INTERVAL, TcpOutput


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def server():
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.bind(("127.0.0.1", 0))
    srv.listen(1)
    srv.settimeout(5)
    yield srv
    srv.close()


def test_configure_reads_parameters():
    out = TcpOutput.configure({"address": "localhost", "port": "5555"})
    assert (out.address, out.port) == ("localhost", "5555")


def test_configure_missing_address():
    with pytest.raises(ValueError, match="address not specified"):
        TcpOutput.configure({"port": "5555"})


def test_configure_missing_port():
    with pytest.raises(ValueError, match="port not specified"):
        TcpOutput.configure({"address": "localhost"})


def test_supports_text_formats_only():
    out = TcpOutput("localhost", "1")
    assert out.supports_format(OutputFormat.JSON)
    assert not out.supports_format(OutputFormat.UNKNOWN)


def test_produce_delivers_message(server):
    port = server.getsockname()[1]
    out = TcpOutput("127.0.0.1", str(port))
    out.init()
    conn, _ = server.accept()
    try:
        assert out.connected
        out.produce(OutputFormat.TEXT, None, b"hello\n")
        conn.settimeout(5)
        assert conn.recv(100) == b"hello\n"
    finally:
        out.handle_shutdown()
        conn.close()
    assert not out.connected


def test_failed_init_schedules_reconnect():
    out = TcpOutput("127.0.0.1", str(_free_port()))
    out.clock = lambda: 1000.0
    out.init()
    assert not out.connected
    assert out.next_reconnect_time == 1000.0 + MIN_RECONNECT_INTERVAL


def test_reconnect_not_due_raises():
    out = TcpOutput("127.0.0.1", str(_free_port()))
    out.clock = lambda: 1000.0
    out.next_reconnect_time = 2000.0
    with pytest.raises(ConnectionError):
        out.reconnect()


def test_produce_without_connection_drops_message():
    out = TcpOutput("127.0.0.1", str(_free_port()))
    out.clock = lambda: 1000.0
    out.next_reconnect_time = 2000.0
    out.produce(OutputFormat.TEXT, None, b"dropped\n")
    assert not out.connected
    assert out.next_reconnect_time == 2000.0