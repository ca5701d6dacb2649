"""District report loader: reads monthly registration aggregates from YAML.

A report file covers one period::

    period: "2026-09"
    districts:
      BLR-URBAN:
        births: 1240
        avg_births: 910
        parent_duplicates: 4
        out_of_district_births: 130
        inconsistent_records: 12
        cohort_size: 18500

Files are read from a directory (recursively); files starting with an
underscore are skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from janmasetu.domains.identity.domain_logic.errors import ValidationError
from janmasetu.domains.identity.domain_logic.models import DistrictStats

logger = logging.getLogger(__name__)

CURRENT_PERIOD = "current_month"


@dataclass
class DistrictReport:
    period: str
    stats: dict[str, DistrictStats] = field(default_factory=dict)
    cohort_sizes: dict[str, int] = field(default_factory=dict)


def load_district_report_file(path: Path) -> DistrictReport:
    """Parse one YAML report, raising ValidationError on malformed content."""
    with open(path) as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    period = data.get("period")
    districts = data.get("districts")
    if not period or not isinstance(districts, dict):
        raise ValidationError(
            f"District report {path.name} needs 'period' and a 'districts' mapping",
            fields=[n for n, v in (("period", period), ("districts", districts)) if not v],
        )

    report = DistrictReport(period=str(period))
    for code, entry in districts.items():
        if not isinstance(entry, dict):
            raise ValidationError(f"District {code} in {path.name} is not a mapping")
        report.stats[str(code)] = DistrictStats.from_dict(entry)
        cohort = entry.get("cohort_size", entry.get("cohortSize"))
        if cohort is None:
            continue
        try:
            report.cohort_sizes[str(code)] = int(cohort)
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                f"Invalid cohort_size for {code} in {path.name}",
                fields=["cohort_size"],
            ) from exc
    return report


def load_district_report_directory(directory: str | Path) -> dict[str, DistrictReport]:
    """Load every report under ``directory``, keyed by period.

    A malformed file is logged and skipped; the remaining reports still load.
    """
    directory = Path(directory).expanduser()
    if not directory.is_dir():
        logger.warning("District report directory does not exist: %s", directory)
        return {}

    reports: dict[str, DistrictReport] = {}
    for path in sorted(directory.rglob("*.yaml")):
        if path.name.startswith("_"):
            continue
        try:
            report = load_district_report_file(path)
        except (OSError, yaml.YAMLError, ValidationError):
            logger.exception("Failed to load district report from %s", path)
            continue
        if report.period in reports:
            logger.warning("Duplicate report for period %s in %s; later file wins",
                           report.period, path)
        reports[report.period] = report
        logger.info("Loaded district report %s (%d districts)", report.period, len(report.stats))
    return reports


class YamlDistrictStatsProvider:
    """DistrictStatsSource backed by a directory of YAML report files.

    ``current_month`` resolves to the latest period present. Reports are
    re-read on every call so new file drops are picked up without restart.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def _report(self, period: str) -> DistrictReport | None:
        reports = load_district_report_directory(self._directory)
        if not reports:
            return None
        if period == CURRENT_PERIOD:
            return reports[max(reports)]
        return reports.get(period)

    async def get_district_stats(self, period: str = CURRENT_PERIOD) -> dict[str, DistrictStats]:
        report = self._report(period)
        if report is None:
            logger.warning("No district report available for period %s", period)
            return {}
        return dict(report.stats)

    async def get_cohort_sizes(self) -> dict[str, int]:
        report = self._report(CURRENT_PERIOD)
        return dict(report.cohort_sizes) if report is not None else {}

    @property
    def data_source(self) -> str:
        return "report_file"
