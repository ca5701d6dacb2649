"""Shared test fixtures for JanmaSetu tests."""

from __future__ import annotations

import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DISTRICT_REPORTS_PATH", "")
    monkeypatch.setenv("ID_SHARD", "0")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from janmasetu.core.clock import FixedClock  # noqa: E402
from janmasetu.domains.identity.domain_logic.identity_factory import (  # noqa: E402
    FoundationalIdentityFactory,
)
from janmasetu.domains.identity.domain_logic.models import (  # noqa: E402
    BirthEvent,
    FoundationalIdentity,
)

# Two weeks after the default birth date below
NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
BIRTH_DATE = date(2026, 2, 15)


def make_birth_event(**overrides: Any) -> BirthEvent:
    """A complete institutional birth record; override any field."""
    fields: dict[str, Any] = {
        "birth_id": "BR-KA-20260215-00000001",
        "birth_date": BIRTH_DATE,
        "hospital_code": "HOSP-BLR-URBAN-001",
        "district_code": "BLR-URBAN",
        "state_code": "KA",
        "child_name": "Diya Rao",
        "gender": "F",
        "birth_weight": 3.1,
        "parent_identity_ref": "PARENT-0000000001",
        "mother_name": "Lakshmi Rao",
        "father_name": "Ravi Rao",
    }
    fields.update(overrides)
    return BirthEvent(**fields)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def birth_event() -> BirthEvent:
    return make_birth_event()


@pytest.fixture
def birth_event_factory() -> Callable[..., BirthEvent]:
    return make_birth_event


@pytest.fixture
def identity_factory(clock: FixedClock) -> FoundationalIdentityFactory:
    return FoundationalIdentityFactory(clock=clock)


@pytest.fixture
def identity(
    identity_factory: FoundationalIdentityFactory, birth_event: BirthEvent
) -> FoundationalIdentity:
    """A freshly created identity with identity and health consent."""
    return identity_factory.create(birth_event, {"identity": True, "health": True})


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def identity_db():
    """Create an in-memory IdentityDatabase for testing."""
    from janmasetu.core.storage.database import IdentityDatabase

    db = IdentityDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from janmasetu.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(FieldEncryptor.generate_key())


@pytest.fixture
def identity_repository(identity_db, field_encryptor):
    """Create an IdentityRepository backed by in-memory SQLite."""
    from janmasetu.core.storage.repository import IdentityRepository

    return IdentityRepository(identity_db, field_encryptor)


@pytest.fixture
def audit_logger(identity_db, clock):
    """Create an AuditLogger backed by in-memory SQLite."""
    from janmasetu.core.audit.logger import AuditLogger

    return AuditLogger(identity_db, clock)
