"""Tests for the age-derived lifecycle state machine and schedule arithmetic."""

from __future__ import annotations

import dataclasses
from datetime import date

import pytest

from janmasetu.domains.identity.domain_logic.errors import ValidationError
from janmasetu.domains.identity.domain_logic.lifecycle import (
    add_months,
    age_in_years,
    anchor_target_date,
    anniversary,
    effective_biometric_readiness,
    is_biometric_eligible,
    next_milestone,
    schedule_after,
    schedule_floor,
    snapshot,
    state_for,
)
from janmasetu.domains.identity.domain_logic.models import (
    AnchorType,
    BiometricReadiness,
    IdentityState,
)

BORN = date(2020, 6, 15)


class TestCalendarArithmetic:
    def test_add_months_simple(self):
        assert add_months(date(2026, 1, 15), 9) == date(2026, 10, 15)

    def test_add_months_crosses_year(self):
        assert add_months(date(2026, 5, 10), 18) == date(2027, 11, 10)

    def test_add_months_clamps_to_month_end(self):
        assert add_months(date(2026, 1, 31), 1) == date(2026, 2, 28)
        assert add_months(date(2027, 1, 31), 13) == date(2028, 2, 29)

    def test_anniversary_of_leap_day(self):
        assert anniversary(date(2024, 2, 29), 5) == date(2029, 3, 1)
        assert anniversary(date(2024, 2, 29), 4) == date(2028, 2, 29)

    def test_age_counts_completed_years(self):
        assert age_in_years(BORN, date(2025, 6, 14)) == 4
        assert age_in_years(BORN, date(2025, 6, 15)) == 5

    def test_age_before_birth_rejected(self):
        with pytest.raises(ValidationError):
            age_in_years(BORN, date(2020, 6, 14))


class TestStates:
    @pytest.mark.parametrize("as_of, expected", [
        (date(2020, 6, 15), IdentityState.FOUNDATIONAL),
        (date(2025, 6, 14), IdentityState.FOUNDATIONAL),
        (date(2025, 6, 15), IdentityState.JUVENILE),
        (date(2035, 6, 14), IdentityState.JUVENILE),
        (date(2035, 6, 15), IdentityState.ADOLESCENT),
        (date(2038, 6, 14), IdentityState.ADOLESCENT),
        (date(2038, 6, 15), IdentityState.ADULT),
        (date(2090, 1, 1), IdentityState.ADULT),
    ])
    def test_state_bands(self, as_of, expected):
        assert state_for(BORN, as_of) is expected

    def test_state_only_moves_forward(self):
        order = list(IdentityState)
        previous = 0
        day = BORN
        while day < date(2039, 1, 1):
            index = order.index(state_for(BORN, day))
            assert index >= previous
            previous = index
            day = add_months(day, 1)

    def test_foundational_is_not_biometric_eligible(self):
        assert not is_biometric_eligible(IdentityState.FOUNDATIONAL)
        assert all(is_biometric_eligible(s) for s in IdentityState
                   if s is not IdentityState.FOUNDATIONAL)


class TestSchedule:
    def test_anchor_targets(self):
        born = date(2026, 2, 15)
        assert anchor_target_date(born, AnchorType.BIRTH) == born
        assert anchor_target_date(born, AnchorType.WEEK_6) == date(2026, 3, 29)
        assert anchor_target_date(born, AnchorType.WEEK_14) == date(2026, 5, 24)
        assert anchor_target_date(born, AnchorType.MONTH_9) == date(2026, 11, 15)
        assert anchor_target_date(born, AnchorType.MONTH_18) == date(2027, 8, 15)
        assert anchor_target_date(born, AnchorType.AGE_5) == date(2031, 2, 15)

    def test_schedule_after_uses_birth_date(self):
        born = date(2026, 2, 15)
        assert schedule_after(born, AnchorType.WEEK_6, date(2026, 4, 1)) == date(2026, 5, 24)

    def test_schedule_after_overdue_is_due_now(self):
        born = date(2026, 2, 15)
        assert schedule_after(born, AnchorType.WEEK_6, date(2026, 7, 1)) == date(2026, 7, 1)

    def test_nothing_after_age5(self):
        assert schedule_after(BORN, AnchorType.AGE_5, date(2025, 7, 1)) is None

    def test_schedule_floor(self):
        assert schedule_floor(None, date(2026, 1, 1)) is None
        assert schedule_floor(date(2025, 1, 1), date(2026, 1, 1)) == date(2026, 1, 1)
        assert schedule_floor(date(2027, 1, 1), date(2026, 1, 1)) == date(2027, 1, 1)


class TestMilestones:
    def test_first_milestone_is_age5_update(self):
        milestone = next_milestone(BORN, date(2021, 1, 1))
        assert milestone.name == "first_mandatory_biometric_update"
        assert milestone.due_date == date(2025, 6, 15)
        assert milestone.enters_state is IdentityState.JUVENILE
        assert milestone.biometric_update is True

    def test_adolescent_milestone(self):
        milestone = next_milestone(BORN, date(2036, 1, 1))
        assert milestone.name == "adult_opt_out_window"
        assert milestone.biometric_update is False

    def test_no_milestone_for_adults(self):
        assert next_milestone(BORN, date(2040, 1, 1)) is None


class TestReadinessAndSnapshot:
    def test_effective_readiness_hidden_while_foundational(self, identity):
        partial = dataclasses.replace(identity, captured_readiness=BiometricReadiness.PARTIAL)
        assert effective_biometric_readiness(partial, date(2026, 6, 1)) is BiometricReadiness.NOT_REQUIRED
        assert effective_biometric_readiness(partial, date(2031, 2, 15)) is BiometricReadiness.PARTIAL

    def test_snapshot_view(self, identity):
        view = snapshot(identity, date(2026, 3, 1))
        assert view["temp_ref"] == identity.temp_ref
        assert view["identity_state"] == "FOUNDATIONAL"
        assert view["age_years"] == 0
        assert view["biometric_eligible"] is False
        assert view["biometric_readiness"] == "NOT_REQUIRED"
        assert view["captured_readiness"] == "NOT_REQUIRED"
        assert view["expected_anchor"] == "WEEK_6"
        assert view["next_milestone"]["due_date"] == "2031-02-15"
        assert view["as_of"] == "2026-03-01"

    def test_snapshot_is_json_safe(self, identity):
        import json

        json.dumps(snapshot(identity, date(2030, 1, 1)))
