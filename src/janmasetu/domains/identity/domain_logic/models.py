"""Identity lifecycle records and domain constants."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from janmasetu.domains.identity.domain_logic.errors import ValidationError


# ---------------------------------------------------------------------------
# Closed enumerations
# ---------------------------------------------------------------------------

class IdentityState(str, Enum):
    """Lifecycle state, always derived from age."""

    FOUNDATIONAL = "FOUNDATIONAL"  # 0-5: demographic only
    JUVENILE = "JUVENILE"          # 5-15: first mandatory biometric update
    ADOLESCENT = "ADOLESCENT"      # 15-18: second biometric update
    ADULT = "ADULT"                # 18+: opt-out available


class BiometricReadiness(str, Enum):
    NOT_REQUIRED = "NOT_REQUIRED"
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    COMPLETE = "COMPLETE"


class AnchorType(str, Enum):
    """Trust anchor events, declared in canonical order."""

    BIRTH = "BIRTH"
    WEEK_6 = "WEEK_6"
    WEEK_14 = "WEEK_14"
    MONTH_9 = "MONTH_9"
    MONTH_18 = "MONTH_18"
    AGE_5 = "AGE_5"

    @property
    def position(self) -> int:
        return ANCHOR_SEQUENCE.index(self)

    @property
    def next(self) -> AnchorType | None:
        """The anchor expected after this one, or None at the end of the schedule."""
        idx = self.position
        return ANCHOR_SEQUENCE[idx + 1] if idx + 1 < len(ANCHOR_SEQUENCE) else None


class ConsentActor(str, Enum):
    PARENT = "PARENT"
    GUARDIAN = "GUARDIAN"
    SELF = "SELF"  # only at or after 18


class ConsentPurpose(str, Enum):
    IDENTITY = "identity"
    HEALTH = "health"
    EDUCATION = "education"
    WELFARE = "welfare"


class ConsentAction(str, Enum):
    GRANT = "grant"
    REVOKE = "revoke"


class FraudType(str, Enum):
    BIRTH_SPIKE = "BIRTH_SPIKE"
    DUPLICATE_PARENT = "DUPLICATE_PARENT"
    LOCATION_ANOMALY = "LOCATION_ANOMALY"
    DATA_INCONSISTENCY = "DATA_INCONSISTENCY"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

ANCHOR_SEQUENCE: tuple[AnchorType, ...] = tuple(AnchorType)

SCORE_MIN = 0.0
SCORE_MAX = 100.0

# Mandatory BIRTH anchor contributions appended at identity creation
BIRTH_ANCHOR_CONFIDENCE_BOOST = 25.0
BIRTH_ANCHOR_DEDUP_CONTRIBUTION = 10.0

# Photo quality strictly above this advances biometric readiness
PHOTO_QUALITY_THRESHOLD = 70.0

# Standard (confidence_boost, deduplication_contribution) per anchor, used when
# the health-system feed does not state its own contribution.
STANDARD_ANCHOR_CONTRIBUTIONS: dict[AnchorType, tuple[float, float]] = {
    AnchorType.BIRTH: (BIRTH_ANCHOR_CONFIDENCE_BOOST, BIRTH_ANCHOR_DEDUP_CONTRIBUTION),
    AnchorType.WEEK_6: (15.0, 5.0),
    AnchorType.WEEK_14: (10.0, 5.0),
    AnchorType.MONTH_9: (10.0, 5.0),
    AnchorType.MONTH_18: (10.0, 5.0),
    AnchorType.AGE_5: (15.0, 10.0),
}

VALID_GENDERS = frozenset({"M", "F", "O"})

_HASH_PATTERN = re.compile(r"^[0-9a-fA-F]{32,128}$")


def clamp_score(value: float) -> float:
    """Clamp a score into [SCORE_MIN, SCORE_MAX]."""
    return max(SCORE_MIN, min(SCORE_MAX, float(value)))


def round_half_up(value: float) -> int:
    """Round .5 upwards for non-negative counts (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def _parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value!r}") from exc


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise ValidationError(f"Invalid timestamp: {value!r}") from exc


# ---------------------------------------------------------------------------
# Birth registration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BirthEvent:
    """A registered birth as received from civil registration. Never mutated.

    All fields default to empty so incomplete feeds can still be represented;
    the identity factory rejects events missing required fields.
    """

    birth_id: str = ""
    birth_date: date | None = None
    hospital_code: str = ""
    district_code: str = ""
    state_code: str = ""

    # Demographics only, no biometrics at birth
    child_name: str = ""
    gender: str = ""
    birth_weight: float | None = None  # kg

    # Parent linkage is a linking anchor, never the child's identity
    parent_identity_ref: str | None = None
    mother_name: str = ""
    father_name: str | None = None

    # Deduplication aids
    name_variants: tuple[str, ...] = ()
    phonetic_hash: str | None = None

    @property
    def is_institutional(self) -> bool:
        return bool(self.hospital_code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "birth_id": self.birth_id,
            "birth_date": self.birth_date.isoformat() if self.birth_date else None,
            "hospital_code": self.hospital_code,
            "district_code": self.district_code,
            "state_code": self.state_code,
            "child_name": self.child_name,
            "gender": self.gender,
            "birth_weight": self.birth_weight,
            "parent_identity_ref": self.parent_identity_ref,
            "mother_name": self.mother_name,
            "father_name": self.father_name,
            "name_variants": list(self.name_variants),
            "phonetic_hash": self.phonetic_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BirthEvent:
        weight = data.get("birth_weight")
        return cls(
            birth_id=data.get("birth_id") or "",
            birth_date=_parse_date(data.get("birth_date")),
            hospital_code=data.get("hospital_code") or "",
            district_code=data.get("district_code") or "",
            state_code=data.get("state_code") or "",
            child_name=data.get("child_name") or "",
            gender=data.get("gender") or "",
            birth_weight=float(weight) if weight not in (None, "") else None,
            parent_identity_ref=data.get("parent_identity_ref") or None,
            mother_name=data.get("mother_name") or "",
            father_name=data.get("father_name") or None,
            name_variants=tuple(data.get("name_variants") or ()),
            phonetic_hash=data.get("phonetic_hash") or None,
        )


@dataclass(frozen=True)
class DuplicateCandidate:
    """A possible prior registration returned by a duplicate registry."""

    temp_ref: str
    similarity: float  # 0-1
    reason: str = ""


# ---------------------------------------------------------------------------
# Consent
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConsentEvent:
    """One entry in the append-only consent history."""

    purpose: ConsentPurpose
    action: ConsentAction
    actor: ConsentActor
    at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "purpose": self.purpose.value,
            "action": self.action.value,
            "actor": self.actor.value,
            "at": self.at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsentEvent:
        return cls(
            purpose=ConsentPurpose(data["purpose"]),
            action=ConsentAction(data["action"]),
            actor=ConsentActor(data["actor"]),
            at=_parse_datetime(data["at"]),
        )


@dataclass
class ConsentFlags:
    """Independent, revocable consent per purpose."""

    granted_at: datetime
    granted_by: ConsentActor
    identity: bool = False
    health: bool = False
    education: bool = False
    welfare: bool = False
    revoked_at: datetime | None = None
    history: list[ConsentEvent] = field(default_factory=list)

    def is_granted(self, purpose: ConsentPurpose) -> bool:
        return bool(getattr(self, purpose.value))

    def active_purposes(self) -> list[ConsentPurpose]:
        return [p for p in ConsentPurpose if self.is_granted(p)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "health": self.health,
            "education": self.education,
            "welfare": self.welfare,
            "granted_at": self.granted_at.isoformat(),
            "granted_by": self.granted_by.value,
            "revoked_at": self.revoked_at.isoformat() if self.revoked_at else None,
            "history": [e.to_dict() for e in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsentFlags:
        return cls(
            granted_at=_parse_datetime(data["granted_at"]),
            granted_by=ConsentActor(data["granted_by"]),
            identity=bool(data.get("identity", False)),
            health=bool(data.get("health", False)),
            education=bool(data.get("education", False)),
            welfare=bool(data.get("welfare", False)),
            revoked_at=_parse_datetime(data.get("revoked_at")),
            history=[ConsentEvent.from_dict(e) for e in data.get("history", [])],
        )


# ---------------------------------------------------------------------------
# Trust anchors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImmunizationAnchor:
    """A verifiable lifecycle event that strengthens an identity.

    Only a hash of the face embedding is ever carried, never a raw image.
    """

    event_type: AnchorType
    event_date: date
    facility_code: str = ""
    face_embedding_hash: str | None = None
    photo_quality_score: float | None = None  # 0-100
    confidence_boost: float = 0.0
    deduplication_contribution: float = 0.0

    def __post_init__(self) -> None:
        if not isinstance(self.event_type, AnchorType):
            object.__setattr__(self, "event_type", AnchorType(self.event_type))
        if self.photo_quality_score is not None and not (
            0 <= self.photo_quality_score <= 100
        ):
            raise ValidationError(
                f"photo_quality_score must be within 0-100, got {self.photo_quality_score}",
                fields=["photo_quality_score"],
            )
        if self.confidence_boost < 0 or self.deduplication_contribution < 0:
            raise ValidationError(
                "Anchor contributions must not be negative",
                fields=["confidence_boost", "deduplication_contribution"],
            )
        if self.face_embedding_hash is not None and not _HASH_PATTERN.match(
            self.face_embedding_hash
        ):
            raise ValidationError(
                "face_embedding_hash must be a hex digest, not raw biometric data",
                fields=["face_embedding_hash"],
            )

    @classmethod
    def standard(
        cls,
        event_type: AnchorType,
        event_date: date,
        *,
        facility_code: str = "",
        face_embedding_hash: str | None = None,
        photo_quality_score: float | None = None,
    ) -> ImmunizationAnchor:
        """Build an anchor carrying the standard contribution for its type."""
        event_type = AnchorType(event_type)
        boost, dedup = STANDARD_ANCHOR_CONTRIBUTIONS[event_type]
        return cls(
            event_type=event_type,
            event_date=event_date,
            facility_code=facility_code,
            face_embedding_hash=face_embedding_hash,
            photo_quality_score=photo_quality_score,
            confidence_boost=boost,
            deduplication_contribution=dedup,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "event_date": self.event_date.isoformat(),
            "facility_code": self.facility_code,
            "face_embedding_hash": self.face_embedding_hash,
            "photo_quality_score": self.photo_quality_score,
            "confidence_boost": self.confidence_boost,
            "deduplication_contribution": self.deduplication_contribution,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImmunizationAnchor:
        quality = data.get("photo_quality_score")
        return cls(
            event_type=AnchorType(data["event_type"]),
            event_date=_parse_date(data["event_date"]),
            facility_code=data.get("facility_code") or "",
            face_embedding_hash=data.get("face_embedding_hash") or None,
            photo_quality_score=float(quality) if quality is not None else None,
            confidence_boost=float(data.get("confidence_boost", 0.0)),
            deduplication_contribution=float(data.get("deduplication_contribution", 0.0)),
        )


# ---------------------------------------------------------------------------
# Foundational identity
# ---------------------------------------------------------------------------

@dataclass
class FoundationalIdentity:
    """The identity aggregate created at birth and strengthened by anchors.

    ``temp_ref`` is a tracking reference only; it is never issued as a final
    identity number. Lifecycle state is not stored: derive it with
    ``lifecycle.state_for(identity.birth_date, as_of)``.
    """

    temp_ref: str
    birth_event_id: str
    birth_date: date
    state_code: str
    district_code: str
    # As captured from anchors; collaborators read lifecycle.effective_biometric_readiness
    captured_readiness: BiometricReadiness
    confidence_score: float
    entity_resolution_score: float
    consent: ConsentFlags
    anchors: list[ImmunizationAnchor]
    created_at: datetime
    last_updated: datetime
    next_update_due: date | None = None
    potential_duplicates: list[str] = field(default_factory=list)

    @property
    def last_anchor(self) -> ImmunizationAnchor | None:
        return self.anchors[-1] if self.anchors else None

    @property
    def expected_anchor(self) -> AnchorType | None:
        """The next anchor type the canonical order will accept."""
        last = self.last_anchor
        return last.event_type.next if last else AnchorType.BIRTH

    def to_dict(self) -> dict[str, Any]:
        return {
            "temp_ref": self.temp_ref,
            "birth_event_id": self.birth_event_id,
            "birth_date": self.birth_date.isoformat(),
            "state_code": self.state_code,
            "district_code": self.district_code,
            "captured_readiness": self.captured_readiness.value,
            "confidence_score": self.confidence_score,
            "entity_resolution_score": self.entity_resolution_score,
            "consent": self.consent.to_dict(),
            "anchors": [a.to_dict() for a in self.anchors],
            "created_at": self.created_at.isoformat(),
            "last_updated": self.last_updated.isoformat(),
            "next_update_due": self.next_update_due.isoformat() if self.next_update_due else None,
            "potential_duplicates": list(self.potential_duplicates),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FoundationalIdentity:
        return cls(
            temp_ref=data["temp_ref"],
            birth_event_id=data["birth_event_id"],
            birth_date=_parse_date(data["birth_date"]),
            state_code=data.get("state_code", ""),
            district_code=data.get("district_code", ""),
            captured_readiness=BiometricReadiness(data["captured_readiness"]),
            confidence_score=float(data["confidence_score"]),
            entity_resolution_score=float(data["entity_resolution_score"]),
            consent=ConsentFlags.from_dict(data["consent"]),
            anchors=[ImmunizationAnchor.from_dict(a) for a in data.get("anchors", [])],
            created_at=_parse_datetime(data["created_at"]),
            last_updated=_parse_datetime(data["last_updated"]),
            next_update_due=_parse_date(data.get("next_update_due")),
            potential_duplicates=list(data.get("potential_duplicates", [])),
        )


# ---------------------------------------------------------------------------
# District aggregates and their results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DistrictStats:
    """Aggregate registration statistics for one district and period."""

    births: int
    avg_births: float
    parent_duplicates: int = 0
    out_of_district_births: int | None = None
    inconsistent_records: int | None = None

    def __post_init__(self) -> None:
        negative = [
            name
            for name in ("births", "avg_births", "parent_duplicates",
                         "out_of_district_births", "inconsistent_records")
            if getattr(self, name) is not None and getattr(self, name) < 0
        ]
        if negative:
            raise ValidationError(
                f"District statistics must not be negative: {', '.join(negative)}",
                fields=negative,
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DistrictStats:
        """Accept snake_case or the reporting feed's camelCase keys."""

        def pick(snake: str, camel: str, default: Any = None) -> Any:
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        try:
            births = pick("births", "births")
            avg = pick("avg_births", "avgBirths")
            if births is None or avg is None:
                raise ValidationError(
                    "District statistics require births and avg_births",
                    fields=[n for n, v in (("births", births), ("avg_births", avg)) if v is None],
                )
            ood = pick("out_of_district_births", "outOfDistrictBirths")
            inconsistent = pick("inconsistent_records", "inconsistentRecords")
            return cls(
                births=int(births),
                avg_births=float(avg),
                parent_duplicates=int(pick("parent_duplicates", "parentDuplicates", 0) or 0),
                out_of_district_births=int(ood) if ood is not None else None,
                inconsistent_records=int(inconsistent) if inconsistent is not None else None,
            )
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Malformed district statistics: {exc}") from exc


@dataclass(frozen=True)
class FraudIndicator:
    fraud_type: FraudType
    severity: Severity
    description: str
    affected_records: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.fraud_type.value,
            "severity": self.severity.value,
            "description": self.description,
            "affected_records": self.affected_records,
        }


@dataclass(frozen=True)
class BacklogFactors:
    """Contributions behind a backlog forecast."""

    age5_updates: int
    school_admissions: int
    migration_inflow: int
    pending_immunization: int
    school_multiplier: float
    migration_multiplier: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "age5_updates": self.age5_updates,
            "school_admissions": self.school_admissions,
            "migration_inflow": self.migration_inflow,
            "pending_immunization": self.pending_immunization,
            "school_multiplier": self.school_multiplier,
            "migration_multiplier": self.migration_multiplier,
        }


@dataclass(frozen=True)
class BacklogPrediction:
    district: str
    month_index: int
    month: str
    predicted_backlog: int
    risk_level: RiskLevel
    factors: BacklogFactors
    recommendations: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "district": self.district,
            "month_index": self.month_index,
            "month": self.month,
            "predicted_backlog": self.predicted_backlog,
            "risk_level": self.risk_level.value,
            "factors": self.factors.to_dict(),
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class LifecycleMilestone:
    """The next biometric-relevant birthday for an identity."""

    name: str
    due_date: date
    enters_state: IdentityState
    biometric_update: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "due_date": self.due_date.isoformat(),
            "enters_state": self.enters_state.value,
            "biometric_update": self.biometric_update,
        }
