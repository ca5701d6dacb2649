"""Fraud pattern detection over district registration aggregates.

Detection is a registry of independent rules sharing one contract:
``evaluate(stats) -> list[FraudIndicator]``. New patterns are added by
registering another rule; existing rules are never edited for it.

Patterns detected by the default rule set:

* improbable birth spikes against the district's running average,
* parent identity references reused across many registrations,
* births registered at facilities outside the child's district,
* records failing consistency checks at ingestion.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol, runtime_checkable

from janmasetu.domains.identity.domain_logic.models import (
    DistrictStats,
    FraudIndicator,
    FraudType,
    Severity,
    round_half_up,
)

logger = logging.getLogger(__name__)

BIRTH_SPIKE_MEDIUM = 0.5
BIRTH_SPIKE_HIGH = 1.0
BIRTH_SPIKE_AFFECTED_SHARE = 0.3

DUPLICATE_PARENT_MEDIUM = 10
DUPLICATE_PARENT_HIGH = 50

LOCATION_SHARE_MEDIUM = 0.25
LOCATION_SHARE_HIGH = 0.5

INCONSISTENCY_SHARE_LOW = 0.02
INCONSISTENCY_SHARE_MEDIUM = 0.05
INCONSISTENCY_SHARE_HIGH = 0.10


@runtime_checkable
class FraudRule(Protocol):
    """A single, independent anomaly check."""

    name: str

    def evaluate(self, stats: DistrictStats) -> list[FraudIndicator]:
        ...


class BirthSpikeRule:
    name = "birth_spike"

    def evaluate(self, stats: DistrictStats) -> list[FraudIndicator]:
        # No baseline: deviation is defined as zero and the rule is skipped
        if stats.avg_births == 0:
            return []
        deviation = (stats.births - stats.avg_births) / stats.avg_births
        if deviation <= BIRTH_SPIKE_MEDIUM:
            return []
        severity = Severity.HIGH if deviation >= BIRTH_SPIKE_HIGH else Severity.MEDIUM
        return [FraudIndicator(
            fraud_type=FraudType.BIRTH_SPIKE,
            severity=severity,
            description=f"Birth registrations {deviation * 100:.0f}% above average",
            affected_records=round_half_up(stats.births * deviation * BIRTH_SPIKE_AFFECTED_SHARE),
        )]


class DuplicateParentRule:
    name = "duplicate_parent"

    def evaluate(self, stats: DistrictStats) -> list[FraudIndicator]:
        count = stats.parent_duplicates
        if count <= DUPLICATE_PARENT_MEDIUM:
            return []
        severity = Severity.HIGH if count > DUPLICATE_PARENT_HIGH else Severity.MEDIUM
        return [FraudIndicator(
            fraud_type=FraudType.DUPLICATE_PARENT,
            severity=severity,
            description=f"{count} parent identity references used multiple times",
            affected_records=count,
        )]


class LocationAnomalyRule:
    name = "location_anomaly"

    def evaluate(self, stats: DistrictStats) -> list[FraudIndicator]:
        if stats.out_of_district_births is None or stats.births == 0:
            return []
        share = stats.out_of_district_births / stats.births
        if share <= LOCATION_SHARE_MEDIUM:
            return []
        severity = Severity.HIGH if share > LOCATION_SHARE_HIGH else Severity.MEDIUM
        return [FraudIndicator(
            fraud_type=FraudType.LOCATION_ANOMALY,
            severity=severity,
            description=f"{share * 100:.0f}% of births registered at out-of-district facilities",
            affected_records=stats.out_of_district_births,
        )]


class DataInconsistencyRule:
    name = "data_inconsistency"

    def evaluate(self, stats: DistrictStats) -> list[FraudIndicator]:
        if stats.inconsistent_records is None or stats.births == 0:
            return []
        share = stats.inconsistent_records / stats.births
        if share <= INCONSISTENCY_SHARE_LOW:
            return []
        if share > INCONSISTENCY_SHARE_HIGH:
            severity = Severity.HIGH
        elif share > INCONSISTENCY_SHARE_MEDIUM:
            severity = Severity.MEDIUM
        else:
            severity = Severity.LOW
        return [FraudIndicator(
            fraud_type=FraudType.DATA_INCONSISTENCY,
            severity=severity,
            description=f"{stats.inconsistent_records} records failed consistency checks "
                        f"({share * 100:.1f}% of births)",
            affected_records=stats.inconsistent_records,
        )]


def default_rules() -> list[FraudRule]:
    return [BirthSpikeRule(), DuplicateParentRule(), LocationAnomalyRule(), DataInconsistencyRule()]


class FraudPatternDetector:
    """Runs every registered rule against a district's aggregates.

    Usage::

        detector = FraudPatternDetector()
        detector.register(MyCustomRule())
        indicators = detector.detect(DistrictStats(births=1000, avg_births=500))
    """

    def __init__(self, rules: list[FraudRule] | None = None) -> None:
        self._rules: dict[str, FraudRule] = {}
        for rule in default_rules() if rules is None else rules:
            self.register(rule)

    def register(self, rule: FraudRule) -> None:
        if rule.name in self._rules:
            raise ValueError(f"Duplicate fraud rule registered: {rule.name!r}")
        self._rules[rule.name] = rule

    @property
    def rule_names(self) -> list[str]:
        return list(self._rules)

    def detect(self, stats: DistrictStats | dict) -> list[FraudIndicator]:
        if not isinstance(stats, DistrictStats):
            stats = DistrictStats.from_dict(stats)
        indicators: list[FraudIndicator] = []
        for rule in self._rules.values():
            indicators.extend(rule.evaluate(stats))
        return indicators

    def scan_districts(
        self,
        stats_by_district: dict[str, DistrictStats],
        *,
        cancel: threading.Event | None = None,
    ) -> dict[str, list[FraudIndicator]]:
        """Evaluate many districts; a set ``cancel`` event stops between districts.

        Districts share no state, so the result for each is independent of
        evaluation order. Districts not reached before cancellation are absent
        from the result.
        """
        results: dict[str, list[FraudIndicator]] = {}
        for district, stats in stats_by_district.items():
            if cancel is not None and cancel.is_set():
                logger.info(
                    "Fraud scan cancelled after %d of %d districts",
                    len(results), len(stats_by_district),
                )
                break
            results[district] = self.detect(stats)
        flagged = sum(1 for v in results.values() if v)
        logger.info("Fraud scan: %d district(s) evaluated, %d flagged", len(results), flagged)
        return results
