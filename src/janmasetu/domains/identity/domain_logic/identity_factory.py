"""Foundational identity creation from a registered birth.

CRITICAL: identities created here are demographic-only.

* No biometric capture is implied at birth; readiness is always NOT_REQUIRED.
* A parent identity reference is used only for linkage scoring.
* Consent is granular per purpose and revocable later through the ledger.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from janmasetu.core.clock import Clock, SystemClock
from janmasetu.domains.identity.domain_logic.entity_resolution import EntityResolutionScorer
from janmasetu.domains.identity.domain_logic.errors import ValidationError
from janmasetu.domains.identity.domain_logic.identifiers import TempRefGenerator
from janmasetu.domains.identity.domain_logic.lifecycle import anchor_target_date
from janmasetu.domains.identity.domain_logic.models import (
    BIRTH_ANCHOR_CONFIDENCE_BOOST,
    BIRTH_ANCHOR_DEDUP_CONTRIBUTION,
    VALID_GENDERS,
    AnchorType,
    BiometricReadiness,
    BirthEvent,
    ConsentAction,
    ConsentActor,
    ConsentEvent,
    ConsentFlags,
    ConsentPurpose,
    FoundationalIdentity,
    ImmunizationAnchor,
    clamp_score,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "birth_id",
    "birth_date",
    "hospital_code",
    "district_code",
    "state_code",
    "child_name",
    "gender",
    "mother_name",
)

# Initial confidence rule table
CONFIDENCE_BASE = 30.0
CONFIDENCE_INSTITUTIONAL = 20.0
CONFIDENCE_PARENT_LINKAGE = 15.0
CONFIDENCE_BIRTH_WEIGHT = 5.0
CONFIDENCE_FATHER_NAME = 5.0


def validate_birth_event(birth_event: BirthEvent, *, today: date | None = None) -> None:
    """Raise ValidationError naming every missing or malformed required field."""
    missing = [
        name for name in REQUIRED_FIELDS
        if getattr(birth_event, name) in (None, "")
        or (isinstance(getattr(birth_event, name), str) and not getattr(birth_event, name).strip())
    ]
    if missing:
        raise ValidationError(
            f"Birth event missing required fields: {', '.join(missing)}",
            fields=missing,
        )
    if birth_event.gender not in VALID_GENDERS:
        raise ValidationError(
            f"Invalid gender {birth_event.gender!r}; expected one of M, F, O",
            fields=["gender"],
        )
    if today is not None and birth_event.birth_date > today:
        raise ValidationError(
            f"Birth date {birth_event.birth_date.isoformat()} is in the future",
            fields=["birth_date"],
        )
    if birth_event.birth_weight is not None and birth_event.birth_weight <= 0:
        raise ValidationError("birth_weight must be positive", fields=["birth_weight"])


def initial_confidence(birth_event: BirthEvent) -> float:
    confidence = CONFIDENCE_BASE
    if birth_event.hospital_code:
        confidence += CONFIDENCE_INSTITUTIONAL
    if birth_event.parent_identity_ref:
        confidence += CONFIDENCE_PARENT_LINKAGE
    if birth_event.birth_weight:
        confidence += CONFIDENCE_BIRTH_WEIGHT
    if birth_event.father_name:
        confidence += CONFIDENCE_FATHER_NAME
    return clamp_score(confidence)


def build_initial_consent(
    initial_consent: dict[str, Any] | None,
    *,
    granted_at: datetime,
    granted_by: ConsentActor = ConsentActor.PARENT,
) -> ConsentFlags:
    """Turn a partial ``{purpose: bool}`` mapping into consent flags.

    Unspecified purposes default to not granted. Only a parent or guardian
    can give consent for a newborn.
    """
    if granted_by is ConsentActor.SELF:
        raise ValidationError("Consent at birth must be given by a parent or guardian",
                              fields=["granted_by"])
    requested = dict(initial_consent or {})
    unknown = sorted(set(requested) - {p.value for p in ConsentPurpose})
    if unknown:
        raise ValidationError(f"Unknown consent purposes: {', '.join(unknown)}", fields=unknown)

    flags = ConsentFlags(granted_at=granted_at, granted_by=granted_by)
    for purpose in ConsentPurpose:
        if requested.get(purpose.value):
            setattr(flags, purpose.value, True)
            flags.history.append(ConsentEvent(
                purpose=purpose,
                action=ConsentAction.GRANT,
                actor=granted_by,
                at=granted_at,
            ))
    return flags


class FoundationalIdentityFactory:
    """Creates demographic-only identities from birth events.

    Usage::

        factory = FoundationalIdentityFactory(EntityResolutionScorer(), TempRefGenerator())
        identity = factory.create(birth_event, {"identity": True, "health": True})
    """

    def __init__(
        self,
        scorer: EntityResolutionScorer | None = None,
        id_generator: TempRefGenerator | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._scorer = scorer or EntityResolutionScorer()
        self._ids = id_generator or TempRefGenerator()
        self._clock = clock or SystemClock()

    def create(
        self,
        birth_event: BirthEvent,
        initial_consent: dict[str, Any] | None = None,
        *,
        granted_by: ConsentActor = ConsentActor.PARENT,
    ) -> FoundationalIdentity:
        """Build a new identity, or raise ValidationError without creating anything."""
        now = self._clock.now()
        validate_birth_event(birth_event, today=now.date())
        consent = build_initial_consent(initial_consent, granted_at=now, granted_by=granted_by)

        resolution = self._scorer.resolve(birth_event)
        birth_anchor = ImmunizationAnchor(
            event_type=AnchorType.BIRTH,
            event_date=birth_event.birth_date,
            facility_code=birth_event.hospital_code,
            confidence_boost=BIRTH_ANCHOR_CONFIDENCE_BOOST,
            deduplication_contribution=BIRTH_ANCHOR_DEDUP_CONTRIBUTION,
        )
        week6_due = max(anchor_target_date(birth_event.birth_date, AnchorType.WEEK_6), now.date())

        identity = FoundationalIdentity(
            temp_ref=self._ids.next_ref(birth_event.state_code),
            birth_event_id=birth_event.birth_id,
            birth_date=birth_event.birth_date,
            state_code=birth_event.state_code,
            district_code=birth_event.district_code,
            captured_readiness=BiometricReadiness.NOT_REQUIRED,
            confidence_score=initial_confidence(birth_event),
            entity_resolution_score=resolution.score,
            consent=consent,
            anchors=[birth_anchor],
            created_at=now,
            last_updated=now,
            next_update_due=week6_due,
            potential_duplicates=list(resolution.potential_duplicates),
        )
        logger.info(
            "Created foundational identity %s (district=%s, confidence=%.1f, er=%.1f)",
            identity.temp_ref,
            identity.district_code,
            identity.confidence_score,
            identity.entity_resolution_score,
        )
        return identity
