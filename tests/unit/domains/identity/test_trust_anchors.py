"""Tests for ordered trust anchor processing."""

from __future__ import annotations

import dataclasses
from datetime import date, datetime, timezone

import pytest

from janmasetu.domains.identity.domain_logic.errors import SequenceError, ValidationError
from janmasetu.domains.identity.domain_logic.lifecycle import anchor_target_date, snapshot
from janmasetu.domains.identity.domain_logic.models import (
    ANCHOR_SEQUENCE,
    AnchorType,
    BiometricReadiness,
    ImmunizationAnchor,
)
from janmasetu.domains.identity.domain_logic.trust_anchors import (
    TrustAnchorProcessor,
    advance_readiness,
)

FACE_HASH = "3f" * 32


@pytest.fixture
def processor(clock):
    return TrustAnchorProcessor(clock)


def _anchor(identity, anchor_type, **kwargs):
    when = kwargs.pop("event_date", anchor_target_date(identity.birth_date, anchor_type))
    return ImmunizationAnchor.standard(anchor_type, when, facility_code="PHC-17", **kwargs)


def _apply_through(processor, clock, identity, last: AnchorType):
    """Apply every scheduled anchor after BIRTH up to and including ``last``."""
    for anchor_type in ANCHOR_SEQUENCE[1:last.position + 1]:
        when = anchor_target_date(identity.birth_date, anchor_type)
        clock.set(datetime.combine(when, datetime.min.time(), tzinfo=timezone.utc))
        identity = processor.apply(identity, _anchor(identity, anchor_type))
    return identity


class TestScores:
    def test_week6_adds_boost(self, processor, identity):
        start = dataclasses.replace(identity, confidence_score=30.0)
        anchor = ImmunizationAnchor(AnchorType.WEEK_6, date(2026, 3, 29), confidence_boost=15.0)
        assert processor.apply(start, anchor).confidence_score == 45.0

    def test_dedup_contribution_added(self, processor, identity):
        anchor = ImmunizationAnchor(AnchorType.WEEK_6, date(2026, 3, 29),
                                    deduplication_contribution=3.0)
        assert processor.apply(identity, anchor).entity_resolution_score == 98.0

    def test_scores_capped_at_100(self, processor, identity):
        anchor = ImmunizationAnchor(AnchorType.WEEK_6, date(2026, 3, 29),
                                    confidence_boost=80.0, deduplication_contribution=80.0)
        updated = processor.apply(identity, anchor)
        assert updated.confidence_score == 100.0
        assert updated.entity_resolution_score == 100.0

    def test_canonical_order_never_decreases_scores(self, processor, clock, identity):
        current = identity
        for anchor_type in ANCHOR_SEQUENCE[1:]:
            when = anchor_target_date(identity.birth_date, anchor_type)
            clock.set(datetime.combine(when, datetime.min.time(), tzinfo=timezone.utc))
            updated = processor.apply(current, _anchor(current, anchor_type))
            assert updated.confidence_score >= current.confidence_score
            assert updated.entity_resolution_score >= current.entity_resolution_score
            assert 0.0 <= updated.confidence_score <= 100.0
            current = updated
        assert current.expected_anchor is None


class TestOrdering:
    def test_out_of_order_rejected_and_scores_unchanged(self, processor, identity):
        before = identity.to_dict()
        with pytest.raises(SequenceError) as excinfo:
            processor.apply(identity, _anchor(identity, AnchorType.MONTH_9))
        assert excinfo.value.expected == "WEEK_6"
        assert excinfo.value.received == "MONTH_9"
        assert identity.to_dict() == before

    def test_repeated_anchor_rejected(self, processor, identity):
        with pytest.raises(SequenceError):
            processor.apply(identity, _anchor(identity, AnchorType.BIRTH))

    def test_backdated_anchor_rejected(self, processor, clock, identity):
        after_week6 = _apply_through(processor, clock, identity, AnchorType.WEEK_6)
        early = _anchor(after_week6, AnchorType.WEEK_14, event_date=date(2026, 3, 20))
        with pytest.raises(SequenceError):
            processor.apply(after_week6, early)

    def test_anchor_before_birth_rejected(self, processor, identity):
        with pytest.raises(ValidationError):
            processor.apply(identity, _anchor(identity, AnchorType.WEEK_6,
                                              event_date=date(2026, 1, 1)))

    def test_nothing_accepted_after_age5(self, processor, clock, identity):
        done = _apply_through(processor, clock, identity, AnchorType.AGE_5)
        with pytest.raises(SequenceError) as excinfo:
            processor.apply(done, _anchor(done, AnchorType.AGE_5))
        assert excinfo.value.received == "AGE_5"

    def test_input_identity_not_mutated(self, processor, identity):
        before = identity.to_dict()
        processor.apply(identity, _anchor(identity, AnchorType.WEEK_6))
        assert identity.to_dict() == before


class TestScheduling:
    def test_next_update_due_follows_birth_date(self, processor, clock, identity):
        updated = _apply_through(processor, clock, identity, AnchorType.WEEK_6)
        assert updated.next_update_due == date(2026, 5, 24)
        assert updated.last_updated == clock.now()

    def test_schedule_complete_after_age5(self, processor, clock, identity):
        assert _apply_through(processor, clock, identity, AnchorType.AGE_5).next_update_due is None

    def test_late_anchor_due_date_not_in_past(self, processor, clock, identity):
        clock.set(datetime(2026, 9, 1, tzinfo=timezone.utc))
        updated = processor.apply(identity, _anchor(identity, AnchorType.WEEK_6))
        assert updated.next_update_due == date(2026, 9, 1)
        assert updated.next_update_due >= updated.last_updated.date()


class TestReadiness:
    def test_good_photo_gives_partial(self, processor, identity):
        updated = processor.apply(identity, _anchor(identity, AnchorType.WEEK_6,
                                                    face_embedding_hash=FACE_HASH,
                                                    photo_quality_score=82))
        assert updated.captured_readiness is BiometricReadiness.PARTIAL

    def test_threshold_photo_does_not_advance(self, processor, identity):
        updated = processor.apply(identity, _anchor(identity, AnchorType.WEEK_6,
                                                    photo_quality_score=70))
        assert updated.captured_readiness is BiometricReadiness.NOT_REQUIRED

    def test_captured_readiness_distinct_from_reported(self, processor, identity):
        updated = processor.apply(identity, _anchor(identity, AnchorType.WEEK_6,
                                                    face_embedding_hash=FACE_HASH,
                                                    photo_quality_score=82))
        assert not hasattr(updated, "biometric_readiness")
        view = snapshot(updated, date(2026, 4, 1))
        assert view["captured_readiness"] == "PARTIAL"
        assert view["biometric_readiness"] == "NOT_REQUIRED"

    def test_age5_good_photo_completes(self):
        anchor = ImmunizationAnchor(AnchorType.AGE_5, date(2031, 2, 15), photo_quality_score=91)
        assert advance_readiness(BiometricReadiness.PARTIAL, anchor) is BiometricReadiness.COMPLETE

    def test_readiness_never_regresses(self):
        anchor = ImmunizationAnchor(AnchorType.MONTH_9, date(2026, 11, 15), photo_quality_score=95)
        assert advance_readiness(BiometricReadiness.COMPLETE, anchor) is BiometricReadiness.COMPLETE


class TestAnchorValidation:
    def test_quality_out_of_range(self):
        with pytest.raises(ValidationError):
            ImmunizationAnchor(AnchorType.WEEK_6, date(2026, 3, 29), photo_quality_score=101)

    def test_raw_biometric_data_rejected(self):
        with pytest.raises(ValidationError):
            ImmunizationAnchor(AnchorType.WEEK_6, date(2026, 3, 29),
                               face_embedding_hash="data:image/png;base64,iVBOR")

    def test_negative_contribution_rejected(self):
        with pytest.raises(ValidationError):
            ImmunizationAnchor(AnchorType.WEEK_6, date(2026, 3, 29), confidence_boost=-1)

    def test_string_event_type_coerced(self):
        anchor = ImmunizationAnchor("WEEK_14", date(2026, 5, 24))
        assert anchor.event_type is AnchorType.WEEK_14
