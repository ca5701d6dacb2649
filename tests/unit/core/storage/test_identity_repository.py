"""Tests for IdentityRepository with in-memory SQLite."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from janmasetu.core.storage.encryption import EncryptionError, FieldEncryptor
from janmasetu.core.storage.repository import IdentityRepository, RepositoryError
from janmasetu.domains.identity.connectors import IdentityStore, SequenceSource
from janmasetu.domains.identity.domain_logic.errors import (
    ConcurrencyConflictError,
    IdentityNotFoundError,
)
from janmasetu.domains.identity.domain_logic.models import AnchorType, ImmunizationAnchor
from janmasetu.domains.identity.domain_logic.trust_anchors import TrustAnchorProcessor


def _week6(identity, clock):
    clock.set(datetime(2026, 3, 29, 8, tzinfo=timezone.utc))
    anchor = ImmunizationAnchor.standard(
        AnchorType.WEEK_6, date(2026, 3, 29),
        facility_code="PHC-17", face_embedding_hash="ab" * 32, photo_quality_score=88,
    )
    return TrustAnchorProcessor(clock).apply(identity, anchor)


class TestProtocols:
    def test_repository_is_store_and_sequence(self, identity_repository):
        assert isinstance(identity_repository, IdentityStore)
        assert isinstance(identity_repository, SequenceSource)


class TestAddGet:
    def test_round_trip(self, identity_repository, identity, birth_event):
        identity_repository.add(identity, birth_event)
        assert identity_repository.get(identity.temp_ref) == identity
        assert identity_repository.get_birth_event(identity.temp_ref) == birth_event

    def test_unknown_reference(self, identity_repository):
        assert identity_repository.get("TEMP-KA-000-000000-0000") is None
        assert identity_repository.get_birth_event("TEMP-KA-000-000000-0000") is None

    def test_demographics_encrypted_at_rest(self, identity_repository, identity_db, identity, birth_event):
        identity_repository.add(identity, birth_event)
        row = identity_db.connection.execute(
            "SELECT birth_event_enc FROM identities WHERE temp_ref = ?", (identity.temp_ref,)
        ).fetchone()
        assert "Lakshmi" not in row[0]
        assert "PARENT-" not in row[0]

    def test_duplicate_birth_event_rejected(
        self, identity_repository, identity_factory, birth_event
    ):
        identity_repository.add(identity_factory.create(birth_event), birth_event)
        with pytest.raises(RepositoryError):
            identity_repository.add(identity_factory.create(birth_event), birth_event)
        assert identity_repository.count() == 1

    def test_wrong_key_cannot_read_demographics(self, identity_db, identity, birth_event, field_encryptor):
        IdentityRepository(identity_db, field_encryptor).add(identity, birth_event)
        other = IdentityRepository(identity_db, FieldEncryptor(FieldEncryptor.generate_key()))
        with pytest.raises(EncryptionError):
            other.get_birth_event(identity.temp_ref)


class TestCommit:
    def test_commit_appends_anchor(self, identity_repository, identity, birth_event, clock):
        identity_repository.add(identity, birth_event)
        updated = _week6(identity, clock)
        identity_repository.commit(updated, identity.last_updated)
        stored = identity_repository.get(identity.temp_ref)
        assert stored == updated
        assert [a.event_type for a in stored.anchors] == [AnchorType.BIRTH, AnchorType.WEEK_6]

    def test_stale_commit_conflicts(self, identity_repository, identity, birth_event, clock):
        identity_repository.add(identity, birth_event)
        updated = _week6(identity, clock)
        with pytest.raises(ConcurrencyConflictError):
            identity_repository.commit(updated, identity.last_updated - timedelta(seconds=5))
        assert identity_repository.get(identity.temp_ref) == identity

    def test_commit_unknown(self, identity_repository, identity):
        with pytest.raises(IdentityNotFoundError):
            identity_repository.commit(identity, identity.last_updated)


class TestQueries:
    def test_iter_birth_events(self, identity_repository, identity_factory, birth_event_factory):
        first = birth_event_factory()
        second = birth_event_factory(birth_id="BR-KA-20260215-00000002", district_code="MYSURU")
        for event in (first, second):
            identity_repository.add(identity_factory.create(event), event)
        assert [e for _, e in identity_repository.iter_birth_events()] == [first, second]
        assert identity_repository.count_by_district() == {"BLR-URBAN": 1, "MYSURU": 1}

    def test_sequences_per_partition(self, identity_repository):
        assert identity_repository.next_value("KA:000") == 1
        assert identity_repository.next_value("KA:000") == 2
        assert identity_repository.next_value("TN:000") == 1
