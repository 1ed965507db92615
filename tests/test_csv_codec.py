from datetime import datetime

import pytest

from growthsync.csv_codec import encode_csv, export_file_name, format_height, import_csv_bytes, serialize_records
from growthsync.errors import ImportFailed, NoDataFound
from growthsync.merge import reduce_for_export
from growthsync.models import GrowthRecord

NOW = datetime(2025, 6, 1, 12, 0)


def sample_records():
    return [
        GrowthRecord(timestamp=datetime(2024, 3, 15, 10, 5), height=100.5, weight=20.25),
        GrowthRecord(timestamp=datetime(2024, 2, 1, 8, 0, 30), height=99.0, weight=19.5),
        GrowthRecord(timestamp=datetime(2023, 12, 1, 9, 0), height=95.3, weight=None),
        GrowthRecord(timestamp=datetime(2000, 1, 1), height=250.0, weight=150.0),
    ]


def comparable(records):
    return [(r.timestamp, r.height, r.weight) for r in records]


def test_serialized_layout():
    text = serialize_records(sample_records(), "小明")
    lines = text.split("\n")
    assert lines[0] == "儿童姓名：小明"
    assert lines[1] == "日期,身高(cm),体重(kg)"
    assert lines[2] == "2024-03-15 10:05,100.5,20.25"
    assert lines[3] == "2024-02-01 08:00:30,99.0,19.50"
    assert lines[4] == "2023-12-01 09:00,95.3,"
    assert text.endswith("\n")


def test_without_child_name_there_is_no_metadata_line():
    assert serialize_records(sample_records()).startswith("日期,身高(cm),体重(kg)\n")


def test_export_bytes_have_bom():
    assert encode_csv(sample_records(), "小明").startswith(b"\xef\xbb\xbf")


def test_round_trip():
    records = sample_records()
    parsed = import_csv_bytes(encode_csv(records, "小明"), now=NOW)
    assert parsed.child_name == "小明"
    assert comparable(parsed.records) == comparable(reduce_for_export(records))


def test_round_trip_at_domain_bounds():
    records = [
        GrowthRecord(timestamp=datetime(2024, 1, 1, 8), height=0.01, weight=2.0),
        GrowthRecord(timestamp=datetime(2024, 1, 2, 8), height=250.0, weight=150.0),
        GrowthRecord(timestamp=datetime(2024, 1, 3, 8), height=0.04, weight=None),
    ]
    parsed = import_csv_bytes(encode_csv(records, "小明"), now=NOW)
    assert comparable(parsed.records) == comparable(reduce_for_export(records))


@pytest.mark.parametrize(
    "height, text",
    [(100.5, "100.5"), (99.0, "99.0"), (250.0, "250.0"), (0.01, "0.01"), (0.04, "0.04"), (0.05, "0.1")],
)
def test_format_height(height, text):
    assert format_height(height) == text


def test_round_trip_with_extra_bom():
    raw = b"\xef\xbb\xbf" + encode_csv(sample_records())
    parsed = import_csv_bytes(raw, now=NOW)
    assert parsed.child_name is None
    assert len(parsed.records) == 4


def test_same_hour_collapses_on_export():
    records = [
        GrowthRecord(timestamp=datetime(2024, 3, 15, 10, 5), height=100.0),
        GrowthRecord(timestamp=datetime(2024, 3, 15, 10, 55), height=100.2),
    ]
    lines = serialize_records(records).strip().split("\n")
    assert lines[1:] == ["2024-03-15 10:55,100.2,"]


def test_legacy_encoded_tab_file():
    text = "日期\t身高(cm)\t体重(kg)\r\n2025/2/4 10:44\t101.2\t\r\n20250205\t101.3\t16\r\n"
    parsed = import_csv_bytes(text.encode("gb18030"), now=NOW)
    assert parsed.encoding["decode_used"] == "gb18030"
    assert comparable(parsed.records) == [
        (datetime(2025, 2, 4, 10, 44), 101.2, None),
        (datetime(2025, 2, 5), 101.3, 16.0),
    ]


def test_batch_fails_atomically_with_line_numbers():
    raw = (
        "日期,身高(cm),体重(kg)\n"
        "2024-01-01 08:00,100,20\n"
        "2024-13-45,101,20\n"
        "2024-01-03,0,20\n"
    ).encode("utf-8")
    with pytest.raises(ImportFailed) as exc:
        import_csv_bytes(raw, now=NOW)
    report = exc.value.report
    assert report.total_errors == 2
    assert [(e.category, e.line) for e in report.ordered()] == [("date", 3), ("height", 4)]
    assert report.errors["date"][0].value == "2024-13-45"
    assert report.errors["height"][0].value == "0"


def test_header_only_is_no_data():
    with pytest.raises(NoDataFound):
        import_csv_bytes("日期,身高(cm),体重(kg)\n\n".encode("utf-8"), now=NOW)


def test_empty_bytes_is_a_format_error():
    with pytest.raises(ImportFailed) as exc:
        import_csv_bytes(b"", now=NOW)
    assert exc.value.report.errors["format"][0].detail == "empty file"


def test_bom_only_is_a_format_error():
    with pytest.raises(ImportFailed) as exc:
        import_csv_bytes(b"\xef\xbb\xbf", now=NOW)
    assert len(exc.value.report.errors["format"]) == 1


def test_export_file_name():
    assert export_file_name("小明", datetime(2025, 6, 1, 9, 5)) == "小明_生长记录_20250601_0905.csv"
