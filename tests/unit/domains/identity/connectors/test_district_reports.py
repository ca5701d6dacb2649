"""Tests for the YAML district report loader."""

from __future__ import annotations

import asyncio

import pytest

from janmasetu.domains.identity.connectors.district_reports import (
    YamlDistrictStatsProvider,
    load_district_report_directory,
    load_district_report_file,
)
from janmasetu.domains.identity.domain_logic.errors import ValidationError

AUGUST = """\
period: "2026-08"
districts:
  MYSURU:
    births: 640
    avg_births: 610
    cohort_size: 9100
"""

SEPTEMBER = """\
period: "2026-09"
districts:
  BLR-URBAN:
    births: 1240
    avgBirths: 600
    parentDuplicates: 14
    out_of_district_births: 130
    cohort_size: 18500
"""


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def reports_dir(tmp_path):
    (tmp_path / "2026-08.yaml").write_text(AUGUST)
    nested = tmp_path / "q3"
    nested.mkdir()
    (nested / "2026-09.yaml").write_text(SEPTEMBER)
    return tmp_path


class TestLoadFile:
    def test_parses_stats_and_cohorts(self, reports_dir):
        report = load_district_report_file(reports_dir / "q3" / "2026-09.yaml")
        assert report.period == "2026-09"
        stats = report.stats["BLR-URBAN"]
        assert stats.avg_births == 600
        assert stats.parent_duplicates == 14
        assert stats.inconsistent_records is None
        assert report.cohort_sizes == {"BLR-URBAN": 18500}

    def test_missing_period_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("districts: {}\n")
        with pytest.raises(ValidationError):
            load_district_report_file(path)

    def test_non_numeric_cohort_size_rejected(self, tmp_path):
        path = tmp_path / "2026-07.yaml"
        path.write_text(AUGUST.replace("2026-08", "2026-07").replace("9100", "lots"))
        with pytest.raises(ValidationError) as excinfo:
            load_district_report_file(path)
        assert excinfo.value.fields == ["cohort_size"]
        assert "MYSURU" in str(excinfo.value)


class TestLoadDirectory:
    def test_keyed_by_period(self, reports_dir):
        assert set(load_district_report_directory(reports_dir)) == {"2026-08", "2026-09"}

    def test_bad_and_underscored_files_skipped(self, reports_dir):
        (reports_dir / "broken.yaml").write_text("period: [unclosed\n")
        (reports_dir / "_draft.yaml").write_text(AUGUST.replace("2026-08", "2026-12"))
        assert set(load_district_report_directory(reports_dir)) == {"2026-08", "2026-09"}

    def test_bad_cohort_size_file_skipped(self, reports_dir):
        (reports_dir / "2026-07.yaml").write_text(
            AUGUST.replace("2026-08", "2026-07").replace("9100", "lots"))
        assert set(load_district_report_directory(reports_dir)) == {"2026-08", "2026-09"}

    def test_missing_directory(self, tmp_path):
        assert load_district_report_directory(tmp_path / "absent") == {}


class TestYamlProvider:
    def test_current_month_is_latest_period(self, reports_dir):
        provider = YamlDistrictStatsProvider(reports_dir)
        assert set(_run(provider.get_district_stats())) == {"BLR-URBAN"}
        assert _run(provider.get_cohort_sizes()) == {"BLR-URBAN": 18500}
        assert provider.data_source == "report_file"

    def test_explicit_period(self, reports_dir):
        provider = YamlDistrictStatsProvider(reports_dir)
        assert set(_run(provider.get_district_stats("2026-08"))) == {"MYSURU"}
        assert _run(provider.get_district_stats("2025-01")) == {}

    def test_bad_cohort_size_does_not_hide_other_periods(self, reports_dir):
        (reports_dir / "2026-10.yaml").write_text(
            AUGUST.replace("2026-08", "2026-10").replace("9100", "lots"))
        provider = YamlDistrictStatsProvider(reports_dir)
        assert _run(provider.get_cohort_sizes()) == {"BLR-URBAN": 18500}
