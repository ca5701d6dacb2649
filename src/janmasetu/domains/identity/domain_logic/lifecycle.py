"""Lifecycle state machine: age bands, biometric gating and schedule dates.

State is a pure function of birth date and an as-of date. Nothing here is
stored, so an identity's state can never drift from its birth date.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Any

from janmasetu.domains.identity.domain_logic.errors import ValidationError
from janmasetu.domains.identity.domain_logic.models import (
    AnchorType,
    BiometricReadiness,
    FoundationalIdentity,
    IdentityState,
    LifecycleMilestone,
)

# Lower age bound (completed years) of each state, checked from oldest down
STATE_BANDS: tuple[tuple[int, IdentityState], ...] = (
    (18, IdentityState.ADULT),
    (15, IdentityState.ADOLESCENT),
    (5, IdentityState.JUVENILE),
    (0, IdentityState.FOUNDATIONAL),
)

# (milestone name, age in years, state entered, triggers a mandatory biometric update)
MILESTONES: tuple[tuple[str, int, IdentityState, bool], ...] = (
    ("first_mandatory_biometric_update", 5, IdentityState.JUVENILE, True),
    ("second_mandatory_biometric_update", 15, IdentityState.ADOLESCENT, True),
    ("adult_opt_out_window", 18, IdentityState.ADULT, False),
)


# ---------------------------------------------------------------------------
# Calendar arithmetic
# ---------------------------------------------------------------------------

def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping to the last day of a shorter month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def anniversary(start: date, years: int) -> date:
    """The ``years``-th anniversary of ``start``; Feb 29 falls on Mar 1 in common years."""
    try:
        return start.replace(year=start.year + years)
    except ValueError:
        return date(start.year + years, 3, 1)


def age_in_years(birth_date: date, as_of: date) -> int:
    """Completed years of age on ``as_of``."""
    if as_of < birth_date:
        raise ValidationError(
            f"as_of {as_of.isoformat()} precedes birth date {birth_date.isoformat()}"
        )
    years = as_of.year - birth_date.year
    if as_of < anniversary(birth_date, years):
        years -= 1
    return years


# Target date of each scheduled anchor, relative to the birth date
def anchor_target_date(birth_date: date, anchor_type: AnchorType) -> date:
    if anchor_type is AnchorType.BIRTH:
        return birth_date
    if anchor_type is AnchorType.WEEK_6:
        return birth_date + timedelta(days=42)
    if anchor_type is AnchorType.WEEK_14:
        return birth_date + timedelta(days=98)
    if anchor_type is AnchorType.MONTH_9:
        return add_months(birth_date, 9)
    if anchor_type is AnchorType.MONTH_18:
        return add_months(birth_date, 18)
    if anchor_type is AnchorType.AGE_5:
        return anniversary(birth_date, 5)
    raise ValueError(f"Unknown anchor type: {anchor_type!r}")  # pragma: no cover


def schedule_after(
    birth_date: date, completed: AnchorType, not_before: date
) -> date | None:
    """Due date of the anchor following ``completed``, or None once AGE_5 is recorded.

    A target already in the past is reported as due on ``not_before``.
    """
    following = completed.next
    if following is None:
        return None
    return max(anchor_target_date(birth_date, following), not_before)


def schedule_floor(due: date | None, not_before: date) -> date | None:
    """Keep an existing due date from falling behind the latest update."""
    if due is None:
        return None
    return max(due, not_before)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

def state_for(birth_date: date, as_of: date) -> IdentityState:
    """Map age on ``as_of`` to its lifecycle state."""
    age = age_in_years(birth_date, as_of)
    for lower_bound, state in STATE_BANDS:
        if age >= lower_bound:
            return state
    raise AssertionError("unreachable: age bands cover [0, inf)")  # pragma: no cover


def is_biometric_eligible(state: IdentityState) -> bool:
    """No biometric capture may be requested while the identity is foundational."""
    return state is not IdentityState.FOUNDATIONAL


def effective_biometric_readiness(
    identity: FoundationalIdentity, as_of: date
) -> BiometricReadiness:
    """Readiness as reported to collaborators: NOT_REQUIRED while foundational."""
    if not is_biometric_eligible(state_for(identity.birth_date, as_of)):
        return BiometricReadiness.NOT_REQUIRED
    return identity.captured_readiness


def next_milestone(birth_date: date, as_of: date) -> LifecycleMilestone | None:
    """Next biometric-relevant birthday after ``as_of``; None once adult."""
    age = age_in_years(birth_date, as_of)
    for name, years, state, biometric in MILESTONES:
        if age < years:
            return LifecycleMilestone(
                name=name,
                due_date=anniversary(birth_date, years),
                enters_state=state,
                biometric_update=biometric,
            )
    return None


def snapshot(identity: FoundationalIdentity, as_of: date) -> dict[str, Any]:
    """JSON-safe view of an identity for display and reporting collaborators."""
    state = state_for(identity.birth_date, as_of)
    milestone = next_milestone(identity.birth_date, as_of)
    view = identity.to_dict()
    view.update({
        "identity_state": state.value,
        "age_years": age_in_years(identity.birth_date, as_of),
        "biometric_eligible": is_biometric_eligible(state),
        "biometric_readiness": effective_biometric_readiness(identity, as_of).value,
        "captured_readiness": identity.captured_readiness.value,
        "expected_anchor": identity.expected_anchor.value if identity.expected_anchor else None,
        "next_milestone": milestone.to_dict() if milestone else None,
        "as_of": as_of.isoformat(),
    })
    return view
