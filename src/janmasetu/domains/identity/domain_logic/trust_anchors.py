"""Trust anchor processing: ordered lifecycle events that strengthen an identity.

Each anchor:

* raises confidence and deduplication scores (capped at 100),
* may advance biometric readiness from photo metadata quality,
* reschedules the next expected anchor from the birth date.

Anchors are accepted only in canonical order. Out-of-order, repeated or
backdated anchors fail closed so the confidence trail stays auditable.
"""

from __future__ import annotations

import dataclasses
import logging

from janmasetu.core.clock import Clock, SystemClock
from janmasetu.domains.identity.domain_logic.errors import SequenceError, ValidationError
from janmasetu.domains.identity.domain_logic.lifecycle import schedule_after
from janmasetu.domains.identity.domain_logic.models import (
    PHOTO_QUALITY_THRESHOLD,
    AnchorType,
    BiometricReadiness,
    FoundationalIdentity,
    ImmunizationAnchor,
    clamp_score,
)

logger = logging.getLogger(__name__)

# Readiness never moves backwards along this order
_READINESS_RANK = {
    BiometricReadiness.NOT_REQUIRED: 0,
    BiometricReadiness.PENDING: 1,
    BiometricReadiness.PARTIAL: 2,
    BiometricReadiness.COMPLETE: 3,
}


def check_sequence(identity: FoundationalIdentity, anchor: ImmunizationAnchor) -> None:
    """Raise SequenceError unless ``anchor`` is the next one in canonical order."""
    recorded = {a.event_type for a in identity.anchors}
    if anchor.event_type in recorded:
        raise SequenceError(
            f"Anchor {anchor.event_type.value} already recorded for {identity.temp_ref}",
            expected=identity.expected_anchor.value if identity.expected_anchor else None,
            received=anchor.event_type.value,
        )

    expected = identity.expected_anchor
    if expected is None or anchor.event_type is not expected:
        raise SequenceError(
            f"Anchor {anchor.event_type.value} out of order for {identity.temp_ref}; "
            f"expected {expected.value if expected else 'none (schedule complete)'}",
            expected=expected.value if expected else None,
            received=anchor.event_type.value,
        )

    last = identity.last_anchor
    if last is not None and anchor.event_date < last.event_date:
        raise SequenceError(
            f"Anchor {anchor.event_type.value} dated {anchor.event_date.isoformat()} precedes "
            f"{last.event_type.value} on {last.event_date.isoformat()}",
            expected=expected.value,
            received=anchor.event_type.value,
        )


def advance_readiness(
    current: BiometricReadiness, anchor: ImmunizationAnchor
) -> BiometricReadiness:
    quality = anchor.photo_quality_score
    if quality is None or quality <= PHOTO_QUALITY_THRESHOLD:
        return current
    proposed = (
        BiometricReadiness.COMPLETE
        if anchor.event_type is AnchorType.AGE_5
        else BiometricReadiness.PARTIAL
    )
    return proposed if _READINESS_RANK[proposed] > _READINESS_RANK[current] else current


class TrustAnchorProcessor:
    """Applies immunization anchors to identities.

    ``apply`` never mutates its input: it returns an updated copy, so a
    rejected anchor leaves the caller's identity exactly as it was.

    Usage::

        processor = TrustAnchorProcessor(clock)
        identity = processor.apply(identity, ImmunizationAnchor.standard(AnchorType.WEEK_6, day_42))
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def apply(
        self, identity: FoundationalIdentity, anchor: ImmunizationAnchor
    ) -> FoundationalIdentity:
        if anchor.event_date < identity.birth_date:
            raise ValidationError(
                f"Anchor {anchor.event_type.value} dated before birth of {identity.temp_ref}",
                fields=["event_date"],
            )
        try:
            check_sequence(identity, anchor)
        except SequenceError:
            logger.warning(
                "Rejected %s anchor for %s (expected %s)",
                anchor.event_type.value,
                identity.temp_ref,
                identity.expected_anchor.value if identity.expected_anchor else "none",
            )
            raise

        now = self._clock.now()
        updated = dataclasses.replace(
            identity,
            anchors=[*identity.anchors, anchor],
            confidence_score=clamp_score(identity.confidence_score + anchor.confidence_boost),
            entity_resolution_score=clamp_score(
                identity.entity_resolution_score + anchor.deduplication_contribution
            ),
            captured_readiness=advance_readiness(identity.captured_readiness, anchor),
            last_updated=now,
            next_update_due=schedule_after(identity.birth_date, anchor.event_type, now.date()),
        )
        logger.info(
            "Applied %s anchor to %s (confidence %.1f -> %.1f, readiness=%s)",
            anchor.event_type.value,
            identity.temp_ref,
            identity.confidence_score,
            updated.confidence_score,
            updated.captured_readiness.value,
        )
        return updated
