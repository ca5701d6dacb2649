"""Tests for enrollment backlog forecasting."""

from __future__ import annotations

import threading

import pytest

from janmasetu.domains.identity.domain_logic.backlog import (
    ALERT_REGISTRAR,
    DEPLOY_MOBILE_UNITS,
    EXTEND_HOURS,
    PRIORITIZE_IMMUNIZATION,
    SCHOOL_CAMPS,
    BacklogPredictor,
    month_label,
    risk_for,
)
from janmasetu.domains.identity.domain_logic.errors import ValidationError
from janmasetu.domains.identity.domain_logic.models import RiskLevel

APRIL = 3
AUGUST = 7
JANUARY = 0


@pytest.fixture
def predictor():
    return BacklogPredictor()


class TestPredict:
    def test_april_school_season(self, predictor):
        prediction = predictor.predict("D1", 10000, APRIL)
        assert prediction.predicted_backlog == 3740
        assert prediction.risk_level is RiskLevel.MEDIUM
        assert prediction.factors.age5_updates == 1800
        assert prediction.factors.school_multiplier == 1.8
        assert prediction.factors.migration_multiplier == 1.0
        assert prediction.factors.school_admissions == 1080
        assert prediction.factors.pending_immunization == 800
        assert prediction.recommendations == (SCHOOL_CAMPS, PRIORITIZE_IMMUNIZATION, ALERT_REGISTRAR)

    def test_deterministic(self, predictor):
        assert predictor.predict("D1", 12345, 5) == predictor.predict("D1", 12345, 5)

    def test_high_risk_in_season(self, predictor):
        prediction = predictor.predict("D2", 20000, APRIL)
        assert prediction.predicted_backlog == 7480
        assert prediction.risk_level is RiskLevel.HIGH
        assert prediction.recommendations[:2] == (DEPLOY_MOBILE_UNITS, EXTEND_HOURS)
        assert SCHOOL_CAMPS in prediction.recommendations

    def test_low_risk_off_season_has_no_recommendations(self, predictor):
        prediction = predictor.predict("D3", 5000, AUGUST)
        assert prediction.predicted_backlog == 1150
        assert prediction.risk_level is RiskLevel.LOW
        assert prediction.recommendations == ()

    def test_migration_season(self, predictor):
        prediction = predictor.predict("D1", 10000, JANUARY)
        assert prediction.factors.migration_multiplier == 1.3
        assert prediction.factors.migration_inflow == 650
        assert prediction.predicted_backlog == 2450

    def test_zero_cohort(self, predictor):
        prediction = predictor.predict("D1", 0, APRIL)
        assert prediction.predicted_backlog == 0
        assert prediction.risk_level is RiskLevel.LOW

    @pytest.mark.parametrize(
        "total,risk",
        [(2000, RiskLevel.LOW), (2001, RiskLevel.MEDIUM), (5000, RiskLevel.MEDIUM), (5001, RiskLevel.HIGH)],
    )
    def test_risk_boundaries(self, total, risk):
        assert risk_for(total) is risk


class TestValidation:
    def test_negative_cohort(self, predictor):
        with pytest.raises(ValidationError):
            predictor.predict("D1", -1, APRIL)

    @pytest.mark.parametrize("month", [-1, 12])
    def test_month_out_of_range(self, predictor, month):
        with pytest.raises(ValidationError) as excinfo:
            predictor.predict("D1", 100, month)
        assert excinfo.value.fields == ["month_index"]

    def test_district_required(self, predictor):
        with pytest.raises(ValidationError):
            predictor.predict("", 100, APRIL)


class TestBatch:
    def test_forecast_year(self, predictor):
        year = predictor.forecast_year("D1", 10000, year=2027)
        assert [p.month_index for p in year] == list(range(12))
        assert year[APRIL].month == "Apr 2027"
        assert max(year, key=lambda p: p.predicted_backlog).month_index in {3, 4, 5}

    def test_forecast_districts(self, predictor):
        results = predictor.forecast_districts({"D1": 10000, "D2": 20000}, APRIL)
        assert results["D1"].predicted_backlog == 3740
        assert results["D2"].risk_level is RiskLevel.HIGH

    def test_forecast_districts_cancelled(self, predictor):
        cancel = threading.Event()
        cancel.set()
        assert predictor.forecast_districts({"D1": 10000}, APRIL, cancel=cancel) == {}


class TestMonthLabel:
    def test_with_and_without_year(self):
        assert month_label(APRIL) == "Apr"
        assert month_label(11, 2026) == "Dec 2026"
