import pytest

from hfdlcore import settings
from hfdlcore.systable import (
    ERR_STATION_COORDINATE_MISSING,
    ERR_STATION_ID_DUPLICATE,
    ERR_VERSION_MISSING,
    ERR_VERSION_OUT_OF_RANGE,
    SystableComplete,
    Systable,
    SystableError,
    SystableErrorType,
    decode,
    decode_frequency,
    generate_config,
    is_newer,
    station_locations_match,
    validate,
)
from hfdlcore.util import parse_coordinate

LAT_RAW = 0x12345
LON_RAW = 0x23456


def _bcd(hz):
    units = hz // 100
    digits = [(units // 10 ** i) % 10 for i in range(6)]
    return bytes([digits[0] | digits[1] << 4, digits[2] | digits[3] << 4,
                  digits[4] | digits[5] << 4])


def _gs_bytes(gs_id, utc, lat_raw, lon_raw, spdu_ver, freqs_slots, cnt=None):
    cnt = len(freqs_slots) if cnt is None else cnt
    head = bytes([
        (gs_id & 0x7F) | (0x80 if utc else 0),
        lat_raw & 0xFF,
        (lat_raw >> 8) & 0xFF,
        ((lat_raw >> 16) & 0xF) | ((lon_raw & 0xF) << 4),
        (lon_raw >> 4) & 0xFF,
        (lon_raw >> 12) & 0xFF,
        (spdu_ver & 7) | (cnt << 3),
    ])
    body = b"".join(_bcd(f) + bytes([s]) for f, s in freqs_slots)
    return head + body


FREQS = [(8927000, 3), (10081000, 7)]


def _write_table(path, version, lat=None, name="Test Station"):
    lat = parse_coordinate(LAT_RAW) if lat is None else lat
    path.write_text(
        f"version = {version};\n"
        "stations = (\n"
        f"  {{ id = 1; name = \"{name}\"; lat = {lat!r}; lon = {parse_coordinate(LON_RAW)!r};"
        " frequencies = ( 8927.0, 10081 ); }\n"
        ");\n"
    )
    return path


def test_decode_frequency_bcd_worked_example():
    assert decode_frequency(bytes([0x21, 0x43, 0x65])) == 65432100


@pytest.mark.parametrize("hz", [8927000, 10081000, 0, 99999900])
def test_decode_frequency_round_trip(hz):
    assert decode_frequency(_bcd(hz)) == hz


def test_decode_single_station():
    sc = decode(_gs_bytes(5, True, LAT_RAW, LON_RAW, 2, FREQS))
    assert not sc.err
    assert len(sc.stations) == 1
    gs = sc.stations[0]
    assert gs.gs_id == 5
    assert gs.utc_sync is True
    assert gs.spdu_version == 2
    assert gs.frequencies == [8927000, 10081000]
    assert gs.master_frame_slots == [3, 7]
    assert gs.location.lat == parse_coordinate(LAT_RAW)
    assert gs.location.lon == parse_coordinate(LON_RAW)


def test_decode_two_stations_ignores_short_trailer():
    data = (_gs_bytes(1, False, LAT_RAW, LON_RAW, 1, FREQS)
            + _gs_bytes(2, True, LON_RAW, LAT_RAW, 0, FREQS[:1])
            + b"\x00\x00\x00")
    sc = decode(data)
    assert not sc.err
    assert [gs.gs_id for gs in sc.stations] == [1, 2]
    assert sc.stations[1].frequencies == [8927000]


def test_decode_too_many_frequencies():
    assert decode(_gs_bytes(1, False, 0, 0, 1, [], cnt=21) + b"\x00").err is True


def test_decode_truncated_frequencies():
    data = _gs_bytes(1, False, 0, 0, 1, FREQS[:1], cnt=2)
    assert decode(data).err is True


def test_decode_empty_raises():
    with pytest.raises(ValueError):
        decode(b"")


@pytest.mark.parametrize("old,new,expected", [
    (10, 11, True), (11, 10, False), (5, 5, False), (-1, 0, True),
    (0, -1, False), (4095, 0, True), (4000, 10, True), (100, 50, False),
])
def test_is_newer(old, new, expected):
    assert is_newer(old, new) is expected


def test_format_text_and_json():
    sc = decode(_gs_bytes(5, True, LAT_RAW, LON_RAW, 2, FREQS))
    sc.version = 42
    text = sc.format_text(0)
    assert text.startswith("System Table (complete):\n Version: 42\n GS ID: 5\n")
    assert "8927000 (slot  3)" in text
    js = sc.to_json()
    assert js["err"] is False
    assert js["version"] == 42
    assert js["ground_stations"][0]["freqs"][1] == {"freq": 10081000, "master_frame_slot": 7}
    assert js["ground_stations"][0]["location"]["lat"] == parse_coordinate(LAT_RAW)


def test_format_unparseable():
    sc = SystableComplete(err=True)
    assert sc.format_text(1) == " -- Unparseable System Table message\n"
    assert sc.to_json() == {"err": True}


def test_generate_config_round_trips_and_validates():
    sc = decode(_gs_bytes(5, True, LAT_RAW, LON_RAW, 2, FREQS))
    sc.version = 7
    cfg = generate_config(sc)
    validate(cfg)
    assert cfg["stations"][0]["frequencies"] == [8927000 / 1000.0, 10081000 / 1000.0]
    assert settings.loads(settings.dumps(cfg)) == cfg


def test_generate_config_rejects_error():
    with pytest.raises(ValueError):
        generate_config(SystableComplete(err=True))


def test_station_locations_match():
    a = {"lat": 10.0, "lon": 20.0}
    assert station_locations_match(a, {"lat": 10.5, "lon": 19.5})
    assert not station_locations_match(a, {"lat": 11.5, "lon": 20.0})
    assert not station_locations_match(a, {"lat": 10, "lon": 20.0})


def test_validate_errors():
    with pytest.raises(SystableError, match="version missing"):
        validate({"stations": []})
    with pytest.raises(SystableError) as info:
        validate({"version": 5000, "stations": []})
    assert info.value.message == ERR_VERSION_OUT_OF_RANGE
    with pytest.raises(SystableError) as info:
        validate({"version": 1, "stations": [{"id": 1, "lat": 1.0, "frequencies": []}]})
    assert info.value.message == ERR_STATION_COORDINATE_MISSING
    assert info.value.type is SystableErrorType.VALIDATE


def test_read_from_file(tmp_path):
    st = Systable()
    st.read_from_file(_write_table(tmp_path / "st.conf", 12))
    assert st.available
    assert st.version == 12
    assert st.station_name(1) == "Test Station"
    assert st.station_name(2) is None
    assert st.station_frequency(1, 0) == 8927.0
    assert st.station_frequency(1, 1) == 10081.0
    assert st.station_frequency(1, 2) == -1.0
    assert st.station_frequency(1, -1) == -1.0


def test_unavailable_defaults():
    st = Systable()
    assert not st.available
    assert st.version == -1
    assert st.station_frequency(1, 0) == -1.0
    assert st.station_name(1) is None


def test_read_errors(tmp_path):
    st = Systable()
    with pytest.raises(SystableError) as info:
        st.read_from_file(tmp_path / "missing.conf")
    assert info.value.type is SystableErrorType.IO
    bad = tmp_path / "bad.conf"
    bad.write_text("version = ;\n")
    with pytest.raises(SystableError) as info:
        st.read_from_file(bad)
    assert info.value.type is SystableErrorType.FILE_PARSE
    assert info.value.line == 1
    noversion = tmp_path / "nov.conf"
    noversion.write_text("stations = ( );\n")
    with pytest.raises(SystableError) as info:
        st.read_from_file(noversion)
    assert info.value.message == ERR_VERSION_MISSING
    assert not st.available


def test_read_duplicate_ids(tmp_path):
    path = tmp_path / "dup.conf"
    path.write_text("version = 1;\nstations = ( { id = 3; frequencies = ( ); },"
                    " { id = 3; frequencies = ( ); } );\n")
    with pytest.raises(SystableError) as info:
        Systable().read_from_file(path)
    assert info.value.message == ERR_STATION_ID_DUPLICATE


def test_station_id_127_not_looked_up(tmp_path):
    path = tmp_path / "st.conf"
    path.write_text('version = 1;\nstations = ( { id = 127; name = "Edge"; frequencies = ( 1.0 ); } );\n')
    st = Systable()
    st.read_from_file(path)
    assert st.station_name(127) is None


def test_store_and_process_pdu_set(tmp_path):
    save = tmp_path / "saved.conf"
    st = Systable(savefile=save)
    data = _gs_bytes(1, True, LAT_RAW, LON_RAW, 2, FREQS)
    st.store_pdu(5, 0, 2, data[:6])
    assert st.process_pdu_set() is None
    st.store_pdu(5, 1, 2, data[6:])
    result = st.process_pdu_set()
    assert result.version == 5
    assert not result.err
    assert st.available and st.version == 5
    assert st.station_frequency(1, 0) == 8927.0
    assert st.process_pdu_set() is None
    reloaded = Systable()
    reloaded.read_from_file(save)
    assert reloaded.version == 5
    assert reloaded.station_frequency(1, 1) == 10081.0


def test_mismatched_pdu_set_discarded():
    st = Systable()
    data = _gs_bytes(1, True, LAT_RAW, LON_RAW, 2, FREQS)
    st.store_pdu(5, 0, 2, data[:6])
    st.store_pdu(6, 1, 2, data[6:])
    assert st.process_pdu_set() is None
    st.store_pdu(6, 0, 2, data[:6])
    assert st.process_pdu_set().version == 6


def test_store_pdu_ignores_bad_index_and_replaces_different():
    st = Systable()
    st.store_pdu(5, 1, 1, b"\x01")
    assert st.process_pdu_set() is None
    st.store_pdu(5, 0, 1, b"\xff" * 8)
    st.store_pdu(5, 0, 1, _gs_bytes(2, False, 0, 0, 0, FREQS))
    result = st.process_pdu_set()
    assert [gs.gs_id for gs in result.stations] == [2]


def test_newer_version_keeps_matching_name(tmp_path):
    st = Systable()
    st.read_from_file(_write_table(tmp_path / "st.conf", 10))
    st.store_pdu(11, 0, 1, _gs_bytes(1, True, LAT_RAW, LON_RAW, 2, FREQS))
    st.process_pdu_set()
    assert st.version == 11
    assert st.station_name(1) == "Test Station"


def test_newer_version_drops_name_when_moved(tmp_path):
    st = Systable()
    st.read_from_file(_write_table(tmp_path / "st.conf", 10,
                                   lat=parse_coordinate(LAT_RAW) + 5.0))
    st.store_pdu(11, 0, 1, _gs_bytes(1, True, LAT_RAW, LON_RAW, 2, FREQS))
    st.process_pdu_set()
    assert st.version == 11
    assert st.station_name(1) is None


def test_older_version_not_adopted(tmp_path):
    st = Systable()
    st.read_from_file(_write_table(tmp_path / "st.conf", 10))
    st.store_pdu(9, 0, 1, _gs_bytes(4, True, LAT_RAW, LON_RAW, 2, FREQS))
    result = st.process_pdu_set()
    assert result.version == 9
    assert st.version == 10
    assert st.station_name(1) == "Test Station"


def test_duplicate_decoded_ids_keep_old_table(tmp_path):
    st = Systable()
    st.read_from_file(_write_table(tmp_path / "st.conf", 10))
    gs = _gs_bytes(3, True, LAT_RAW, LON_RAW, 2, FREQS)
    st.store_pdu(11, 0, 1, gs + gs)
    st.process_pdu_set()
    assert st.version == 10
    assert st.last_error.message == ERR_STATION_ID_DUPLICATE