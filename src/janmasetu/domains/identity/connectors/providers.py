"""Concrete in-process collaborator implementations."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any

from janmasetu.core.storage.repository import RepositoryError
from janmasetu.domains.identity.connectors.mock_data import (
    DEFAULT_DISTRICTS,
    generate_cohort_sizes,
    generate_district_stats,
)
from janmasetu.domains.identity.domain_logic.errors import (
    ConcurrencyConflictError,
    IdentityNotFoundError,
)
from janmasetu.domains.identity.domain_logic.models import (
    BirthEvent,
    DistrictStats,
    DuplicateCandidate,
    FoundationalIdentity,
)


class InMemoryIdentityStore:
    """Dict-backed IdentityStore for tests and single-process deployments.

    Records are held as plain dicts, so callers never share mutable state
    with the store.
    """

    def __init__(self) -> None:
        self._identities: dict[str, dict[str, Any]] = {}
        self._births: dict[str, dict[str, Any]] = {}
        self._birth_refs: dict[str, str] = {}  # birth_event_id -> temp_ref
        self._lock = threading.Lock()

    def add(self, identity: FoundationalIdentity, birth_event: BirthEvent) -> None:
        with self._lock:
            if identity.temp_ref in self._identities:
                raise RepositoryError(f"Identity {identity.temp_ref} already stored")
            owner = self._birth_refs.get(identity.birth_event_id)
            if owner is not None:
                raise RepositoryError(
                    f"Birth event {identity.birth_event_id} already registered as {owner}"
                )
            self._identities[identity.temp_ref] = identity.to_dict()
            self._births[identity.temp_ref] = birth_event.to_dict()
            self._birth_refs[identity.birth_event_id] = identity.temp_ref

    def get(self, temp_ref: str) -> FoundationalIdentity | None:
        with self._lock:
            record = self._identities.get(temp_ref)
        return FoundationalIdentity.from_dict(record) if record is not None else None

    def get_birth_event(self, temp_ref: str) -> BirthEvent | None:
        with self._lock:
            record = self._births.get(temp_ref)
        return BirthEvent.from_dict(record) if record is not None else None

    def commit(self, identity: FoundationalIdentity, expected_last_updated: datetime) -> None:
        with self._lock:
            current = self._identities.get(identity.temp_ref)
            if current is None:
                raise IdentityNotFoundError(identity.temp_ref)
            if current["last_updated"] != expected_last_updated.isoformat():
                raise ConcurrencyConflictError(identity.temp_ref)
            self._identities[identity.temp_ref] = identity.to_dict()

    def count(self) -> int:
        with self._lock:
            return len(self._identities)


def _normalize_name(name: str) -> str:
    return " ".join(name.casefold().split())


class InMemoryDuplicateRegistry:
    """Exact-key duplicate index over phonetic hash, parent linkage and names.

    Similarity per candidate is the strongest of:

    * same phonetic hash: 1.0
    * same parent identity reference and birth date: 0.9
    * a shared name or name variant with the same birth date and district: 0.8
    """

    PHONETIC_MATCH = 1.0
    PARENT_MATCH = 0.9
    NAME_MATCH = 0.8

    def __init__(self) -> None:
        self._by_phonetic: dict[str, set[str]] = {}
        self._by_parent: dict[tuple[str, str], set[str]] = {}
        self._by_name: dict[tuple[str, str, str], set[str]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _name_keys(event: BirthEvent) -> set[tuple[str, str, str]]:
        born = event.birth_date.isoformat() if event.birth_date else ""
        names = {_normalize_name(n) for n in (event.child_name, *event.name_variants) if n}
        return {(name, born, event.district_code) for name in names}

    def register(self, temp_ref: str, birth_event: BirthEvent) -> None:
        with self._lock:
            if birth_event.phonetic_hash:
                self._by_phonetic.setdefault(birth_event.phonetic_hash, set()).add(temp_ref)
            if birth_event.parent_identity_ref and birth_event.birth_date:
                key = (birth_event.parent_identity_ref, birth_event.birth_date.isoformat())
                self._by_parent.setdefault(key, set()).add(temp_ref)
            for key in self._name_keys(birth_event):
                self._by_name.setdefault(key, set()).add(temp_ref)

    def find_candidates(self, birth_event: BirthEvent) -> list[DuplicateCandidate]:
        best: dict[str, tuple[float, str]] = {}

        def offer(refs: set[str], similarity: float, reason: str) -> None:
            for ref in refs:
                if similarity > best.get(ref, (0.0, ""))[0]:
                    best[ref] = (similarity, reason)

        with self._lock:
            if birth_event.phonetic_hash:
                offer(self._by_phonetic.get(birth_event.phonetic_hash, set()),
                      self.PHONETIC_MATCH, "phonetic_hash")
            if birth_event.parent_identity_ref and birth_event.birth_date:
                key = (birth_event.parent_identity_ref, birth_event.birth_date.isoformat())
                offer(self._by_parent.get(key, set()), self.PARENT_MATCH, "parent_and_birth_date")
            for key in self._name_keys(birth_event):
                offer(self._by_name.get(key, set()), self.NAME_MATCH, "name_variant")

        return [
            DuplicateCandidate(temp_ref=ref, similarity=similarity, reason=reason)
            for ref, (similarity, reason) in sorted(best.items())
        ]


class MockDistrictStatsProvider:
    """Uses seeded mock generators. Always available."""

    def __init__(
        self, seed: int | None = None, districts: tuple[str, ...] = DEFAULT_DISTRICTS
    ) -> None:
        self._seed = seed
        self._districts = districts

    async def get_district_stats(self, period: str = "current_month") -> dict[str, DistrictStats]:
        return generate_district_stats(seed=self._seed, districts=self._districts)

    async def get_cohort_sizes(self) -> dict[str, int]:
        return generate_cohort_sizes(seed=self._seed, districts=self._districts)

    @property
    def data_source(self) -> str:
        return "mock"
