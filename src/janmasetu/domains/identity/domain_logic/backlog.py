"""Enrollment backlog forecasting, before the backlog forms.

Inputs are the district's birth cohort size and the calendar month:

* age-5 mandatory biometric updates (~18% of the cohort),
* school admission season (Apr-Jun) pressure,
* post-harvest migration (Nov-Mar) inflow.

Every forecast is a pure function of its arguments.
"""

from __future__ import annotations

import calendar
import logging
import threading

from janmasetu.domains.identity.domain_logic.errors import ValidationError
from janmasetu.domains.identity.domain_logic.models import (
    BacklogFactors,
    BacklogPrediction,
    RiskLevel,
    round_half_up,
)

logger = logging.getLogger(__name__)

AGE5_COHORT_SHARE = 0.18
MIGRATION_COHORT_SHARE = 0.05
PENDING_IMMUNIZATION_SHARE = 0.08
SCHOOL_ADMISSION_SHARE_IN_SEASON = 0.6
SCHOOL_ADMISSION_SHARE_OFF_SEASON = 0.1

SCHOOL_SEASON_MONTHS = frozenset({3, 4, 5})           # Apr, May, Jun (0-based)
MIGRATION_SEASON_MONTHS = frozenset({10, 11, 0, 1, 2})  # Nov-Mar
SCHOOL_MULTIPLIER = 1.8
MIGRATION_MULTIPLIER = 1.3

HIGH_RISK_THRESHOLD = 5000
MEDIUM_RISK_THRESHOLD = 2000

DEPLOY_MOBILE_UNITS = "Deploy additional mobile enrollment units"
EXTEND_HOURS = "Extend enrollment center operating hours"
SCHOOL_CAMPS = "Coordinate with schools for pre-admission enrollment camps"
PRIORITIZE_IMMUNIZATION = "Prioritize pending immunization-linked updates"
ALERT_REGISTRAR = "Alert district registrar for resource allocation"

# (risk level, in school season) -> recommendations, in priority order
RECOMMENDATIONS: dict[tuple[RiskLevel, bool], tuple[str, ...]] = {
    (RiskLevel.HIGH, True): (
        DEPLOY_MOBILE_UNITS, EXTEND_HOURS, SCHOOL_CAMPS, PRIORITIZE_IMMUNIZATION, ALERT_REGISTRAR,
    ),
    (RiskLevel.HIGH, False): (
        DEPLOY_MOBILE_UNITS, EXTEND_HOURS, PRIORITIZE_IMMUNIZATION, ALERT_REGISTRAR,
    ),
    (RiskLevel.MEDIUM, True): (SCHOOL_CAMPS, PRIORITIZE_IMMUNIZATION, ALERT_REGISTRAR),
    (RiskLevel.MEDIUM, False): (PRIORITIZE_IMMUNIZATION, ALERT_REGISTRAR),
    (RiskLevel.LOW, True): (SCHOOL_CAMPS,),
    (RiskLevel.LOW, False): (),
}


def risk_for(total: int) -> RiskLevel:
    if total > HIGH_RISK_THRESHOLD:
        return RiskLevel.HIGH
    if total > MEDIUM_RISK_THRESHOLD:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def month_label(month_index: int, year: int | None = None) -> str:
    name = calendar.month_abbr[month_index + 1]
    return f"{name} {year}" if year is not None else name


class BacklogPredictor:
    """Forecasts monthly enrollment backlog per district.

    Usage::

        predictor = BacklogPredictor()
        prediction = predictor.predict("D1", 10000, 3)   # April
        prediction.predicted_backlog                    # 3740
    """

    def predict(
        self,
        district_code: str,
        cohort_size: int,
        month_index: int,
        *,
        year: int | None = None,
    ) -> BacklogPrediction:
        if not district_code:
            raise ValidationError("district_code is required", fields=["district_code"])
        if cohort_size < 0:
            raise ValidationError("cohort_size must not be negative", fields=["cohort_size"])
        if not 0 <= month_index <= 11:
            raise ValidationError(
                f"month_index must be within 0-11, got {month_index}", fields=["month_index"]
            )

        school_season = month_index in SCHOOL_SEASON_MONTHS
        school_multiplier = SCHOOL_MULTIPLIER if school_season else 1.0
        migration_multiplier = (
            MIGRATION_MULTIPLIER if month_index in MIGRATION_SEASON_MONTHS else 1.0
        )

        age5_updates = round_half_up(cohort_size * AGE5_COHORT_SHARE)
        migration_load = cohort_size * MIGRATION_COHORT_SHARE * migration_multiplier
        total = round_half_up(age5_updates * school_multiplier + migration_load)
        risk = risk_for(total)

        factors = BacklogFactors(
            age5_updates=age5_updates,
            school_admissions=round_half_up(
                age5_updates
                * (SCHOOL_ADMISSION_SHARE_IN_SEASON if school_season else SCHOOL_ADMISSION_SHARE_OFF_SEASON)
            ),
            migration_inflow=round_half_up(migration_load),
            pending_immunization=round_half_up(cohort_size * PENDING_IMMUNIZATION_SHARE),
            school_multiplier=school_multiplier,
            migration_multiplier=migration_multiplier,
        )
        return BacklogPrediction(
            district=district_code,
            month_index=month_index,
            month=month_label(month_index, year),
            predicted_backlog=total,
            risk_level=risk,
            factors=factors,
            recommendations=RECOMMENDATIONS[(risk, school_season)],
        )

    def forecast_year(
        self, district_code: str, cohort_size: int, *, year: int | None = None
    ) -> list[BacklogPrediction]:
        """Twelve monthly forecasts, January to December."""
        return [
            self.predict(district_code, cohort_size, month, year=year) for month in range(12)
        ]

    def forecast_districts(
        self,
        cohort_sizes: dict[str, int],
        month_index: int,
        *,
        year: int | None = None,
        cancel: threading.Event | None = None,
    ) -> dict[str, BacklogPrediction]:
        """Forecast one month across districts; a set ``cancel`` event stops between districts."""
        results: dict[str, BacklogPrediction] = {}
        for district, cohort in cohort_sizes.items():
            if cancel is not None and cancel.is_set():
                logger.info(
                    "Backlog forecast cancelled after %d of %d districts",
                    len(results), len(cohort_sizes),
                )
                break
            results[district] = self.predict(district, cohort, month_index, year=year)
        return results
