"""Identity repository: persistence for the encrypted identity registry.

The repository mediates between domain objects (FoundationalIdentity,
BirthEvent) and the SQLite database, using FieldEncryptor to encrypt and
decrypt birth-event demographics. It implements both the ``IdentityStore``
and ``SequenceSource`` collaborator interfaces.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, Iterator

from janmasetu.core.storage.database import IdentityDatabase
from janmasetu.core.storage.encryption import FieldEncryptor
from janmasetu.domains.identity.domain_logic.errors import (
    ConcurrencyConflictError,
    IdentityNotFoundError,
)
from janmasetu.domains.identity.domain_logic.models import (
    BirthEvent,
    FoundationalIdentity,
)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


class IdentityRepository:
    """SQLite-backed IdentityStore with encrypted demographics.

    Usage::

        db = IdentityDatabase(":memory:")
        db.initialize()
        repo = IdentityRepository(db, FieldEncryptor(key="..."))

        repo.add(identity, birth_event)
        repo.commit(updated, expected_last_updated=identity.last_updated)
    """

    def __init__(self, database: IdentityDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    def add(self, identity: FoundationalIdentity, birth_event: BirthEvent) -> None:
        """Persist a new identity, its birth event and its initial anchors."""
        conn = self._db.connection
        try:
            conn.execute(
                """INSERT INTO identities (
                    temp_ref, birth_event_id, birth_event_enc,
                    birth_date, state_code, district_code, captured_readiness,
                    confidence_score, entity_resolution_score, next_update_due,
                    consent_json, potential_duplicates_json, created_at, last_updated
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    identity.temp_ref,
                    identity.birth_event_id,
                    self._enc.encrypt(birth_event.to_dict()),
                    identity.birth_date.isoformat(),
                    identity.state_code,
                    identity.district_code,
                    identity.captured_readiness.value,
                    identity.confidence_score,
                    identity.entity_resolution_score,
                    _iso(identity.next_update_due),
                    json.dumps(identity.consent.to_dict(), separators=(",", ":")),
                    json.dumps(identity.potential_duplicates, separators=(",", ":")),
                    identity.created_at.isoformat(),
                    identity.last_updated.isoformat(),
                ),
            )
            self._insert_anchors(identity, start=0)
            conn.commit()
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            raise RepositoryError(
                f"Identity {identity.temp_ref} or birth event {identity.birth_event_id} already stored"
            ) from exc
        logger.info("Stored identity %s (district=%s)", identity.temp_ref, identity.district_code)

    def get(self, temp_ref: str) -> FoundationalIdentity | None:
        conn = self._db.connection
        row = conn.execute("SELECT * FROM identities WHERE temp_ref = ?", (temp_ref,)).fetchone()
        if row is None:
            return None
        anchor_rows = conn.execute(
            "SELECT * FROM trust_anchors WHERE temp_ref = ? ORDER BY position", (temp_ref,)
        ).fetchall()
        return self._row_to_identity(row, anchor_rows)

    def get_birth_event(self, temp_ref: str) -> BirthEvent | None:
        row = self._db.connection.execute(
            "SELECT birth_event_enc FROM identities WHERE temp_ref = ?", (temp_ref,)
        ).fetchone()
        if row is None:
            return None
        return BirthEvent.from_dict(self._enc.decrypt(row["birth_event_enc"]))

    def iter_birth_events(self) -> Iterator[tuple[str, BirthEvent]]:
        """Yield ``(temp_ref, birth_event)`` for every stored identity, oldest first."""
        rows = self._db.connection.execute(
            "SELECT temp_ref, birth_event_enc FROM identities ORDER BY created_at, temp_ref"
        ).fetchall()
        for row in rows:
            yield row["temp_ref"], BirthEvent.from_dict(self._enc.decrypt(row["birth_event_enc"]))

    def commit(self, identity: FoundationalIdentity, expected_last_updated: datetime) -> None:
        """Replace a stored identity only if ``last_updated`` is unchanged since it was read.

        Raises:
            ConcurrencyConflictError: The row was updated by someone else.
            IdentityNotFoundError: No row exists for ``identity.temp_ref``.
        """
        conn = self._db.connection
        try:
            cursor = conn.execute(
                """UPDATE identities SET
                    captured_readiness = ?, confidence_score = ?,
                    entity_resolution_score = ?, next_update_due = ?,
                    consent_json = ?, potential_duplicates_json = ?, last_updated = ?
                   WHERE temp_ref = ? AND last_updated = ?""",
                (
                    identity.captured_readiness.value,
                    identity.confidence_score,
                    identity.entity_resolution_score,
                    _iso(identity.next_update_due),
                    json.dumps(identity.consent.to_dict(), separators=(",", ":")),
                    json.dumps(identity.potential_duplicates, separators=(",", ":")),
                    identity.last_updated.isoformat(),
                    identity.temp_ref,
                    expected_last_updated.isoformat(),
                ),
            )
            if cursor.rowcount == 0:
                conn.rollback()
                if self._exists(identity.temp_ref):
                    raise ConcurrencyConflictError(identity.temp_ref)
                raise IdentityNotFoundError(identity.temp_ref)

            stored = conn.execute(
                "SELECT COUNT(*) FROM trust_anchors WHERE temp_ref = ?", (identity.temp_ref,)
            ).fetchone()[0]
            self._insert_anchors(identity, start=stored)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise RepositoryError(f"Failed to commit identity {identity.temp_ref}: {exc}") from exc

    def count(self) -> int:
        return self._db.connection.execute("SELECT COUNT(*) FROM identities").fetchone()[0]

    def count_by_district(self) -> dict[str, int]:
        rows = self._db.connection.execute(
            "SELECT district_code, COUNT(*) AS n FROM identities GROUP BY district_code"
        ).fetchall()
        return {row["district_code"]: row["n"] for row in rows}

    # ------------------------------------------------------------------
    # Sequences
    # ------------------------------------------------------------------

    def next_value(self, partition: str) -> int:
        """Next value of a persistent per-partition counter, starting at 1."""
        conn = self._db.connection
        try:
            conn.execute(
                """INSERT INTO id_sequences (partition, value) VALUES (?, 1)
                   ON CONFLICT(partition) DO UPDATE SET value = value + 1""",
                (partition,),
            )
            value = conn.execute(
                "SELECT value FROM id_sequences WHERE partition = ?", (partition,)
            ).fetchone()[0]
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise RepositoryError(f"Failed to advance sequence {partition}: {exc}") from exc
        return value

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _exists(self, temp_ref: str) -> bool:
        row = self._db.connection.execute(
            "SELECT 1 FROM identities WHERE temp_ref = ?", (temp_ref,)
        ).fetchone()
        return row is not None

    def _insert_anchors(self, identity: FoundationalIdentity, *, start: int) -> None:
        # Anchors are append-only: only those past the stored count are new
        for position, anchor in enumerate(identity.anchors[start:], start=start):
            self._db.connection.execute(
                """INSERT INTO trust_anchors (
                    temp_ref, position, event_type, event_date, facility_code,
                    face_embedding_hash, photo_quality_score,
                    confidence_boost, deduplication_contribution
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    identity.temp_ref,
                    position,
                    anchor.event_type.value,
                    anchor.event_date.isoformat(),
                    anchor.facility_code,
                    anchor.face_embedding_hash,
                    anchor.photo_quality_score,
                    anchor.confidence_boost,
                    anchor.deduplication_contribution,
                ),
            )

    @staticmethod
    def _row_to_identity(
        row: sqlite3.Row, anchor_rows: list[sqlite3.Row]
    ) -> FoundationalIdentity:
        data: dict[str, Any] = {
            "temp_ref": row["temp_ref"],
            "birth_event_id": row["birth_event_id"],
            "birth_date": row["birth_date"],
            "state_code": row["state_code"],
            "district_code": row["district_code"],
            "captured_readiness": row["captured_readiness"],
            "confidence_score": row["confidence_score"],
            "entity_resolution_score": row["entity_resolution_score"],
            "consent": json.loads(row["consent_json"]),
            "anchors": [dict(a) for a in anchor_rows],
            "created_at": row["created_at"],
            "last_updated": row["last_updated"],
            "next_update_due": row["next_update_due"],
            "potential_duplicates": json.loads(row["potential_duplicates_json"] or "[]"),
        }
        return FoundationalIdentity.from_dict(data)


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None
