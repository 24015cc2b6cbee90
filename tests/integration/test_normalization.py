"""
Integration tests for the normalization join and the filter pipeline.

Tests:
- Every fact appears once, in id order, with references resolved
- Null references resolve to None without dropping the row
- The join is restartable and sees new facts
- Legacy timestamp formats and calendar dates in a configured time zone
- Named views over the standard filter chain
- Views release their source when closed or when a stage fails
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from log_cruncher.config import VIEW_NAMES
from log_cruncher.pipeline import (
    AutomatedProbeFilter,
    FilterPipeline,
    NormalizationJoin,
    NormalizedRow,
    RowFilter,
)
from log_cruncher.storage import NotFoundError, StorageError


def insert_legacy_fact(backend, ingester, start_time: str) -> None:
    """Insert a fact whose request_start_time predates the canonical format."""
    path_ref = ingester.dictionaries.get_or_create("path", "/legacy/")
    backend.execute(
        """
        INSERT INTO requests (status, response_bytes, response_duration,
                              request_start_time, url_path)
        VALUES (200, 10, 0.1, :start, :path)
        """,
        {"start": start_time, "path": path_ref},
    )


class RejectEverything(RowFilter):
    name = "reject_everything"

    def __call__(self, row: NormalizedRow) -> bool:
        raise StorageError("row cannot be read")


class TrackedRows:
    """Re-iterable row source that records when an iteration is closed."""

    def __init__(self, rows: list[NormalizedRow]):
        self.rows = rows
        self.closed = 0

    def __iter__(self):
        try:
            yield from self.rows
        finally:
            self.closed += 1


class TestNormalizationJoin:
    """Tests for NormalizationJoin."""

    def test_resolves_every_reference(self, ingester, sqlite_backend, record_factory):
        ingester.ingest(
            record_factory(
                url_path="/writing/x/",
                referer="https://lobste.rs/",
                asn=64500,
                asn_name="EXAMPLE-NET",
            )
        )

        (row,) = NormalizationJoin(sqlite_backend)

        assert isinstance(row, NormalizedRow)
        assert row.url_path == "/writing/x/"
        assert row.referer == "https://lobste.rs/"
        assert row.user_agent.startswith("Mozilla/5.0")
        assert row.client_ip == "192.0.2.1"
        assert row.client_asn == 64500
        assert row.asn_name == "EXAMPLE-NET"
        assert row.http2 is True
        assert row.time.tzinfo is not None

    def test_null_references_keep_the_row(self, ingester, sqlite_backend, record_factory):
        ingester.ingest(record_factory(referer=None, user_agent=None, asn=None))

        rows = list(NormalizationJoin(sqlite_backend))

        assert len(rows) == 1
        assert rows[0].referer is None
        assert rows[0].user_agent is None
        assert rows[0].client_asn is None
        assert rows[0].asn_name is None

    def test_one_row_per_fact_in_id_order(self, ingester_with_data, sqlite_backend):
        _, ingested = ingester_with_data

        ids = [row.id for row in NormalizationJoin(sqlite_backend)]

        assert len(ids) == ingested
        assert ids == sorted(ids)

    def test_restartable_and_current(self, ingester, sqlite_backend, record_factory):
        join = NormalizationJoin(sqlite_backend)
        ingester.ingest(record_factory())

        first = list(join)
        second = list(join.resolve_all())
        ingester.ingest(record_factory(url_path="/later/"))
        third = list(join)

        assert first == second
        assert len(third) == 2
        assert third[-1].url_path == "/later/"

    def test_lazy_iteration(self, ingester, sqlite_backend, record_factory):
        for _ in range(3):
            ingester.ingest(record_factory())

        iterator = iter(NormalizationJoin(sqlite_backend))

        assert next(iterator).id == 1

    def test_date_in_configured_time_zone(self, ingester, sqlite_backend, record_factory):
        ingester.ingest(record_factory(request_start_time="2024-01-09T23:30:00Z"))

        (utc_row,) = NormalizationJoin(sqlite_backend, "UTC")
        (berlin_row,) = NormalizationJoin(sqlite_backend, "Europe/Berlin")

        assert utc_row.date == date(2024, 1, 9)
        assert berlin_row.date == date(2024, 1, 10)
        assert utc_row.time == berlin_row.time

    def test_unknown_time_zone(self, sqlite_backend):
        with pytest.raises(ValueError, match="time zone"):
            NormalizationJoin(sqlite_backend, "Nowhere/Special")

    @pytest.mark.parametrize(
        "stored",
        [
            "2024-01-07 12:00:00",
            "2024-01-07T12:00:00Z",
            "2024-01-07T12:00:00+00:00",
            "2024-01-07T14:00:00+02:00",
        ],
    )
    def test_legacy_timestamps(self, ingester, sqlite_backend, stored):
        insert_legacy_fact(sqlite_backend, ingester, stored)

        (row,) = NormalizationJoin(sqlite_backend)

        assert row.time == datetime(2024, 1, 7, 12, 0, 0, tzinfo=timezone.utc)

    def test_unreadable_timestamp_is_a_storage_error(self, ingester, sqlite_backend):
        insert_legacy_fact(sqlite_backend, ingester, "garbage")

        with pytest.raises(StorageError, match="request_start_time"):
            list(NormalizationJoin(sqlite_backend))

    def test_dangling_reference_is_not_found(
        self, ingester, sqlite_backend, record_factory
    ):
        ingester.ingest(record_factory(user_agent="curl/8.4.0"))
        sqlite_backend.execute("PRAGMA foreign_keys = OFF")
        sqlite_backend.execute("DELETE FROM user_agents")
        sqlite_backend.execute("PRAGMA foreign_keys = ON")

        with pytest.raises(NotFoundError) as exc_info:
            list(NormalizationJoin(sqlite_backend))
        assert exc_info.value.dictionary == "user_agent"


class TestFilterPipeline:
    """Tests for named views."""

    @pytest.fixture
    def pipeline(self, sqlite_backend, settings, now) -> FilterPipeline:
        join = NormalizationJoin(sqlite_backend)
        return FilterPipeline.from_settings(join, settings, now=now)

    def test_standard_stage_names(self, pipeline):
        assert pipeline.stage_names == VIEW_NAMES

    def test_each_view_narrows_the_previous(self, ingester_with_data, pipeline):
        views = [{row.id for row in pipeline.view(name)} for name in VIEW_NAMES]

        for wider, narrower in zip(views, views[1:]):
            assert narrower <= wider
        assert len(views[0]) > len(views[-1]) > 0

    def test_views_exclude_their_traffic(self, ingester_with_data, pipeline, now):
        recent = list(pipeline.view("recent"))

        assert all("blackbox" not in (r.user_agent or "").lower() for r in recent)
        assert all(r.status != 404 for r in recent)
        assert all(r.time >= now - timedelta(days=7) for r in recent)

    def test_articles_view(self, ingester_with_data, pipeline):
        paths = {row.url_path for row in pipeline.view("articles")}
        assert paths == {"/writing/hello-world/", "/writing/sqlite-tricks/"}

    def test_window_boundary(self, ingester, sqlite_backend, settings, record_factory, now):
        ingester.ingest(record_factory(request_start_time=now - timedelta(days=2)))
        ingester.ingest(record_factory(request_start_time=now - timedelta(days=1)))
        join = NormalizationJoin(sqlite_backend)

        boundary = FilterPipeline.from_settings(join, settings, now=now, window_days=2)
        narrower = FilterPipeline.from_settings(join, settings, now=now, window_days=1)

        assert len(list(boundary.view("recent"))) == 2
        assert len(list(narrower.view("recent"))) == 1

    def test_views_are_restartable(self, ingester_with_data, pipeline):
        assert list(pipeline.view("recent")) == list(pipeline.view("recent"))

    def test_unknown_view(self, pipeline):
        with pytest.raises(ValueError, match="Unknown view"):
            pipeline.view("all-the-things")

    def test_duplicate_stage(self, pipeline):
        with pytest.raises(ValueError, match="Duplicate"):
            pipeline.add_stage("recent", AutomatedProbeFilter(["x"]))

    def test_custom_stage(self, ingester_with_data, sqlite_backend):
        pipeline = FilterPipeline(NormalizationJoin(sqlite_backend)).add_stage(
            "no_curl", AutomatedProbeFilter(["curl"])
        )
        rows = list(pipeline.view("no_curl"))
        assert rows
        assert all("curl" not in (r.user_agent or "") for r in rows)

    def test_failing_stage_closes_the_source(self, ingester_with_data, sqlite_backend):
        source = TrackedRows(list(NormalizationJoin(sqlite_backend)))
        pipeline = FilterPipeline(source).add_stage("broken", RejectEverything())

        with pytest.raises(StorageError) as exc_info:
            list(pipeline.view("broken"))

        assert "cannot be read" in str(exc_info.value)
        assert source.closed == 1

    def test_closing_a_view_closes_the_source(self, ingester_with_data, sqlite_backend):
        source = TrackedRows(list(NormalizationJoin(sqlite_backend)))
        rows = FilterPipeline(source).view("resolved")

        next(rows)
        rows.close()

        assert source.closed == 1
