"""
Integration tests for ingestion workflows.

Tests:
- Single records stored as dictionary entries plus one fact
- Repeated values sharing dictionary entries
- Malformed records skipped without partial writes
- Whole files and directories, including unreadable ones
"""

import gzip
import json

import pytest

from log_cruncher.ingestion import MalformedRecordError, SourceValidationError
from log_cruncher.storage import DictionaryStore


def write_fastly_log(path, records: list[dict], trailing_comma: bool = True) -> None:
    """Write records the way a Fastly JSON endpoint does."""
    lines = []
    for record in records:
        line = json.dumps(record)
        if trailing_comma:
            line = line[:-1] + ", }"
        lines.append(line + "\n")

    if path.suffix == ".gz":
        with gzip.open(path, "wt", encoding="utf-8") as f:
            f.writelines(lines)
    else:
        path.write_text("".join(lines))


def fastly_record(**overrides) -> dict:
    record = {
        "clientIP": "192.0.2.10",
        "ispID": "64500",
        "ispName": "EXAMPLE-NET",
        "countryCode": "IE",
        "requests": "1",
        "isIPv6": "0",
        "isH2": "1",
        "urlPath": "/writing/hello-world/",
        "httpReferer": "(null)",
        "httpUA": "Mozilla/5.0",
        "cacheState": "HIT",
        "respStatus": "200",
        "respTotalBytes": "5120",
        "timeElapsed": "12500",
        "reqStartTime": "2024-01-07T12:00:00Z",
    }
    record.update(overrides)
    return record


def row_counts(backend) -> dict:
    tables = [
        "client_ips",
        "paths",
        "referers",
        "user_agents",
        "autonomous_systems",
        "requests",
    ]
    return {table: backend.get_table_row_count(table) for table in tables}


class TestIngestRecord:
    """Tests for Ingester.ingest."""

    def test_creates_dictionary_entries_and_fact(
        self, ingester, sqlite_backend, record_factory
    ):
        fact_id = ingester.ingest(record_factory(referer="https://lobste.rs/"))

        assert fact_id == 1
        counts = row_counts(sqlite_backend)
        assert counts == {
            "client_ips": 1,
            "paths": 1,
            "referers": 1,
            "user_agents": 1,
            "autonomous_systems": 1,
            "requests": 1,
        }

    def test_repeated_values_share_entries(
        self, ingester, sqlite_backend, record_factory
    ):
        for _ in range(3):
            ingester.ingest(record_factory())

        counts = row_counts(sqlite_backend)
        assert counts["requests"] == 3
        assert counts["paths"] == 1
        assert counts["user_agents"] == 1

    def test_absent_values_store_null_references(
        self, ingester, sqlite_backend, record_factory
    ):
        ingester.ingest(
            record_factory(referer=None, user_agent="", client_ip=None, asn=None)
        )

        row = sqlite_backend.query("SELECT * FROM requests")[0]
        assert row["referer"] is None
        assert row["user_agent"] is None
        assert row["client_ip"] is None
        assert row["asn"] is None
        assert row_counts(sqlite_backend)["referers"] == 0

    def test_malformed_record_writes_nothing(
        self, ingester, sqlite_backend, record_factory
    ):
        before = row_counts(sqlite_backend)

        with pytest.raises(MalformedRecordError):
            ingester.ingest(record_factory(status="not-a-status"))

        assert row_counts(sqlite_backend) == before

    def test_asn_name_recorded_once(
        self, ingester, sqlite_backend, record_factory
    ):
        ingester.ingest(record_factory(asn_name="FIRST-NAME"))
        ingester.ingest(record_factory(asn_name="SECOND-NAME"))

        rows = sqlite_backend.query("SELECT asn, name FROM asn_names")
        assert rows == [{"asn": 64500, "name": "FIRST-NAME"}]

    def test_failed_fact_rolls_back_new_entries(
        self, ingester, sqlite_backend, record_factory
    ):
        """A record whose fact cannot be stored leaves no dictionary entries."""
        ingester.facts.append = _fail_append

        with pytest.raises(RuntimeError):
            ingester.ingest(record_factory(url_path="/brand-new/"))

        assert DictionaryStore(sqlite_backend).find("path", "/brand-new/") is None


def _fail_append(fact):
    raise RuntimeError("simulated failure after dictionary writes")


class TestIngestMany:
    """Tests for batches with bad records mixed in."""

    def test_malformed_records_are_skipped(self, ingester, record_factory):
        records = [
            record_factory(),
            record_factory(url_path=None),
            "not an object",
            record_factory(response_bytes=-5),
            record_factory(),
        ]

        result = ingester.ingest_many(records, source="batch")

        assert result.ingested == 2
        assert result.failed == 3
        assert len(result.errors) == 3
        assert ingester.facts.count() == 2
        assert "batch record 2" in result.errors[0]

    def test_sample_records(self, ingester_with_data, sample_records):
        ingester, ingested = ingester_with_data
        assert ingested == len(sample_records)
        assert ingester.facts.count() == len(sample_records)
        assert set(ingester.facts.orphan_counts().values()) == {0}


class TestIngestFiles:
    """Tests for file and directory ingestion."""

    def test_ingest_fastly_file(self, ingester, sqlite_backend, tmp_path):
        path = tmp_path / "2024-01-07T12:00:00.000-abc.log"
        write_fastly_log(path, [fastly_record(), fastly_record(urlPath="/about/")])

        result = ingester.ingest_file(path)

        assert result.ingested == 2
        assert result.files_processed == 1
        row = sqlite_backend.query(
            "SELECT response_duration, referer, http2 FROM requests ORDER BY id LIMIT 1"
        )[0]
        assert row["response_duration"] == pytest.approx(0.0125)
        assert row["referer"] is None
        assert row["http2"] == 1

    def test_ingest_directory_with_bad_file(self, ingester, tmp_path):
        write_fastly_log(tmp_path / "a.log", [fastly_record()] * 3)
        write_fastly_log(tmp_path / "b.log.gz", [fastly_record()] * 2)
        (tmp_path / "c.log.gz").write_bytes(b"this is not gzip")

        result = ingester.ingest_path(tmp_path)

        assert result.ingested == 5
        assert result.files_processed == 2
        assert result.files_failed == 1
        assert not result.success
        assert result.duration_seconds is not None

    def test_truncated_file_keeps_earlier_records(self, ingester, tmp_path):
        path = tmp_path / "truncated.log"
        write_fastly_log(path, [fastly_record()] * 2)
        with open(path, "a", encoding="utf-8") as f:
            f.write('{"urlPath": "/cut-off/", "respStatus": ')

        result = ingester.ingest_path(path)

        assert result.files_failed == 1
        assert ingester.facts.count() == 2

    def test_malformed_line_in_file(self, ingester, tmp_path):
        path = tmp_path / "mixed.log"
        write_fastly_log(
            path,
            [fastly_record(), fastly_record(respStatus="(null)"), fastly_record()],
        )

        result = ingester.ingest_path(path)

        assert result.ingested == 2
        assert result.failed == 1
        assert result.files_failed == 0

    def test_missing_path(self, ingester, tmp_path):
        with pytest.raises(SourceValidationError):
            ingester.ingest_path(tmp_path / "nope")
