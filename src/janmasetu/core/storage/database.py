"""SQLite database management for the identity registry.

Handles connection lifecycle, schema creation, and migrations.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- One row per foundational identity
CREATE TABLE IF NOT EXISTS identities (
    temp_ref                TEXT PRIMARY KEY,
    birth_event_id          TEXT NOT NULL UNIQUE,

    -- Encrypted JSON blob (birth-event demographics)
    birth_event_enc         TEXT NOT NULL,

    -- Unencrypted registry fields (for indexed queries)
    birth_date              TEXT NOT NULL,
    state_code              TEXT NOT NULL,
    district_code           TEXT NOT NULL,
    captured_readiness      TEXT NOT NULL,
    confidence_score        REAL NOT NULL,
    entity_resolution_score REAL NOT NULL,
    next_update_due         TEXT,

    consent_json            TEXT NOT NULL,
    potential_duplicates_json TEXT,
    created_at              TEXT NOT NULL,
    last_updated            TEXT NOT NULL
);

-- Ordered trust anchors; position follows the canonical anchor order
CREATE TABLE IF NOT EXISTS trust_anchors (
    temp_ref                   TEXT NOT NULL REFERENCES identities(temp_ref),
    position                   INTEGER NOT NULL,
    event_type                 TEXT NOT NULL,
    event_date                 TEXT NOT NULL,
    facility_code              TEXT,
    face_embedding_hash        TEXT,
    photo_quality_score        REAL,
    confidence_boost           REAL NOT NULL,
    deduplication_contribution REAL NOT NULL,
    PRIMARY KEY (temp_ref, event_type)
);

-- Monotonic counters for temporary references, per state and shard
CREATE TABLE IF NOT EXISTS id_sequences (
    partition TEXT PRIMARY KEY,
    value     INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Indexes for common query patterns
CREATE INDEX IF NOT EXISTS idx_identities_district ON identities(district_code);
CREATE INDEX IF NOT EXISTS idx_identities_due      ON identities(next_update_due);
CREATE INDEX IF NOT EXISTS idx_anchors_ref         ON trust_anchors(temp_ref, position);
"""

# ---------------------------------------------------------------------------
# V2: Audit log table (identity mutations, rejections, tool calls)
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id            TEXT PRIMARY KEY,
    timestamp     TEXT NOT NULL DEFAULT (datetime('now')),
    action        TEXT NOT NULL,
    tool_name     TEXT,
    subject_ref   TEXT,
    input_hash    TEXT,
    duration_ms   REAL,
    status        TEXT NOT NULL DEFAULT 'success',
    error_type    TEXT,
    metadata_json TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_subject   ON audit_log(subject_ref);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class IdentityDatabase:
    """SQLite database manager for the identity registry.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing.

    Usage::

        db = IdentityDatabase(":memory:")
        db.initialize()
        conn = db.connection
        # ... use connection ...
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Create the database connection and ensure schema exists.

        For file-based databases, creates parent directories if needed.
        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file))
        else:
            self._conn = sqlite3.connect(":memory:")

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._ensure_schema()
        logger.info("Identity database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist and apply migrations."""
        conn = self.connection

        # V1: core tables (CREATE IF NOT EXISTS is idempotent)
        conn.executescript(_SCHEMA_V1)

        current_version = self.get_schema_version()

        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log table")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        """Return the current schema version."""
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Identity database closed")

    def __enter__(self) -> IdentityDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
