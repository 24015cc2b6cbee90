"""
Unit tests for the Fastly log reader.

Tests cover:
- Trailing-comma repair
- Objects spanning and sharing lines
- Field mapping, "(null)" placeholders and microsecond durations
- Truncated files
"""

import gzip
import io

import pytest

from log_cruncher.ingestion import (
    FastlyLogReader,
    ParseError,
    RawLogRecord,
    repair_trailing_comma,
)

FASTLY_LINE = (
    '{ "clientIP": "192.0.2.10", "ispID": "64500", "countryCode": "IE", '
    '"requests": "1", "isIPv6": "0", "isH2": "1", "urlPath": "/writing/x/", '
    '"httpReferer": "(null)", "httpUA": "Mozilla/5.0", "cacheState": "HIT", '
    '"respStatus": "200", "respTotalBytes": "5120", "timeElapsed": "12500", '
    '"reqStartTime": "2024-01-07T12:00:00Z", }\n'
)


@pytest.fixture
def reader() -> FastlyLogReader:
    return FastlyLogReader()


class TestRepairTrailingComma:
    def test_removes_comma_before_closing_brace(self):
        assert repair_trailing_comma('{"a": "1", }\n') == '{"a": "1"}\n'

    def test_leaves_valid_json_alone(self):
        assert repair_trailing_comma('{"a": "1"}\n') == '{"a": "1"}\n'

    def test_comma_inside_value_untouched(self):
        line = '{"a": "x, }y"}\n'
        assert repair_trailing_comma(line) == line


class TestIterObjects:
    """Tests for decoding concatenated JSON."""

    def test_one_object_per_line(self, reader):
        lines = io.StringIO('{"a": 1}\n{"a": 2}\n')
        assert list(reader.iter_objects(lines)) == [{"a": 1}, {"a": 2}]

    def test_objects_sharing_a_line(self, reader):
        lines = io.StringIO('{"a": 1}{"a": 2} {"a": 3}\n')
        assert [o["a"] for o in reader.iter_objects(lines)] == [1, 2, 3]

    def test_object_spanning_lines(self, reader):
        lines = io.StringIO('{\n  "a": 1,\n  "b": 2,\n}\n')
        assert list(reader.iter_objects(lines)) == [{"a": 1, "b": 2}]

    def test_blank_lines_skipped(self, reader):
        lines = io.StringIO('\n\n{"a": 1}\n\n')
        assert list(reader.iter_objects(lines)) == [{"a": 1}]

    def test_truncated_file_raises(self, reader):
        lines = io.StringIO('{"a": 1}\n{"a": 2, "b"\n')
        decoded = reader.iter_objects(lines)
        assert next(decoded) == {"a": 1}
        with pytest.raises(ParseError) as exc_info:
            next(decoded)
        assert exc_info.value.line_number == 2

    def test_non_objects_pass_through(self, reader):
        lines = io.StringIO('[1, 2]\n"text"\n')
        assert list(reader.iter_objects(lines)) == [[1, 2], "text"]


class TestMapRecord:
    """Tests for Fastly field mapping."""

    def test_fastly_fields_mapped(self, reader):
        (obj,) = reader.iter_objects(io.StringIO(FASTLY_LINE))
        mapped = reader.map_record(obj)

        assert mapped["client_ip"] == "192.0.2.10"
        assert mapped["asn"] == "64500"
        assert mapped["url_path"] == "/writing/x/"
        assert mapped["status"] == "200"
        assert mapped["response_bytes"] == "5120"
        assert mapped["response_duration"] == pytest.approx(0.0125)
        assert mapped["request_start_time"] == "2024-01-07T12:00:00Z"

    def test_null_placeholder_becomes_none(self, reader):
        mapped = reader.map_record({"httpReferer": "(null)", "httpUA": ""})
        assert mapped["referer"] is None
        assert mapped["user_agent"] is None

    def test_mapped_record_validates(self, reader):
        (obj,) = reader.iter_objects(io.StringIO(FASTLY_LINE))
        record = RawLogRecord.from_dict(reader.map_record(obj))

        assert record.status == 200
        assert record.referer is None
        assert record.http2 is True
        assert record.response_duration == pytest.approx(0.0125)


class TestReadFile:
    def test_gzip_file(self, reader, tmp_path):
        path = tmp_path / "2024-01-07T12:00:00.000-abc.log.gz"
        with gzip.open(path, "wt", encoding="utf-8") as f:
            f.write(FASTLY_LINE * 3)

        records = list(reader.read_file(path))

        assert len(records) == 3
        assert all(r["url_path"] == "/writing/x/" for r in records)

    def test_read_path_over_directory(self, reader, tmp_path):
        (tmp_path / "a.log").write_text(FASTLY_LINE)
        (tmp_path / "b.log").write_text(FASTLY_LINE * 2)
        assert len(list(reader.read_path(tmp_path))) == 3
