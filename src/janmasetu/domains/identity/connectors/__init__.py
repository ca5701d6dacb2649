"""Identity connectors: collaborator interfaces consumed by the engine."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from janmasetu.domains.identity.domain_logic.models import (
    BirthEvent,
    DistrictStats,
    DuplicateCandidate,
    FoundationalIdentity,
)


@runtime_checkable
class IdentityStore(Protocol):
    """Persistence collaborator for identities.

    ``commit`` implements optimistic concurrency: it succeeds only if the
    stored ``last_updated`` still equals ``expected_last_updated`` and raises
    ``ConcurrencyConflictError`` otherwise.
    """

    def add(self, identity: FoundationalIdentity, birth_event: BirthEvent) -> None:
        """Store a newly created identity together with its birth event."""
        ...

    def get(self, temp_ref: str) -> FoundationalIdentity | None:
        """Load an identity by temporary reference."""
        ...

    def get_birth_event(self, temp_ref: str) -> BirthEvent | None:
        """Load the birth event an identity was created from."""
        ...

    def commit(
        self, identity: FoundationalIdentity, expected_last_updated: datetime
    ) -> None:
        """Replace a stored identity if it is unchanged since it was read."""
        ...

    def count(self) -> int:
        ...


@runtime_checkable
class DuplicateRegistry(Protocol):
    """Fuzzy/phonetic duplicate lookup over previously registered births."""

    def find_candidates(self, birth_event: BirthEvent) -> list[DuplicateCandidate]:
        ...

    def register(self, temp_ref: str, birth_event: BirthEvent) -> None:
        """Index a newly created identity so later registrations can match it."""
        ...


@runtime_checkable
class SequenceSource(Protocol):
    """Monotonic counter per partition, used for temporary identity references."""

    def next_value(self, partition: str) -> int:
        ...


@runtime_checkable
class DistrictStatsSource(Protocol):
    """Reporting collaborator supplying district aggregates.

    Tools call these methods without knowing whether figures come from a
    reporting export, a file drop or a mock generator.
    """

    async def get_district_stats(self, period: str = "current_month") -> dict[str, DistrictStats]:
        """Registration aggregates keyed by district code."""
        ...

    async def get_cohort_sizes(self) -> dict[str, int]:
        """Birth cohort size keyed by district code."""
        ...

    @property
    def data_source(self) -> str:
        """Label for the active source: 'report_file' or 'mock'."""
        ...
