"""MCP tools for the identity lifecycle: registration, anchors, consent, lookup.

Tools never raise engine errors to the client. Each failure is returned as
``{"status": "error", "error_type": ..., "message": ...}`` and audited.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from janmasetu.core.storage.repository import RepositoryError
from janmasetu.domains.identity.domain_logic.consent import consent_summary
from janmasetu.domains.identity.domain_logic.errors import IdentityEngineError, ValidationError
from janmasetu.domains.identity.domain_logic.models import (
    AnchorType,
    BirthEvent,
    ConsentAction,
    ConsentActor,
    ConsentPurpose,
    ImmunizationAnchor,
)
from janmasetu.domains.identity.tools.responses import (
    audit_tool_call,
    error_response,
    parse_enum,
    parse_iso_date,
)

if TYPE_CHECKING:
    from janmasetu.core.audit.logger import AuditLogger
    from janmasetu.core.clock import Clock
    from janmasetu.domains.identity.domain_logic.lifecycle_service import (
        IdentityLifecycleService,
    )

logger = logging.getLogger(__name__)

OPT_OUT = "opt_out"


def register_identity_tools(
    mcp: FastMCP,
    service: IdentityLifecycleService,
    clock: Clock,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register identity lifecycle tools on the MCP server."""

    @mcp.tool
    async def register_birth(
        ctx: Context,
        birth_id: str,
        birth_date: str,
        hospital_code: str,
        district_code: str,
        state_code: str,
        child_name: str,
        gender: str,
        mother_name: str,
        birth_weight: float | None = None,
        parent_identity_ref: str | None = None,
        father_name: str | None = None,
        name_variants: list[str] | None = None,
        phonetic_hash: str | None = None,
        consent: dict[str, bool] | None = None,
        consent_given_by: str = "PARENT",
    ) -> str:
        """Create a demographic-only foundational identity from a registered birth.

        No biometrics are captured at birth. Consent is granted per purpose
        (identity, health, education, welfare); unspecified purposes are not
        granted.

        Args:
            birth_id: Civil registration birth record ID.
            birth_date: Date of birth (YYYY-MM-DD).
            hospital_code: Facility code of an institutional birth.
            district_code: District of registration.
            state_code: State of registration (e.g. 'KA').
            child_name: Registered name of the child.
            gender: 'M', 'F' or 'O'.
            mother_name: Mother's name.
            birth_weight: Birth weight in kg.
            parent_identity_ref: Parent identity reference, used for linkage only.
            father_name: Father's name.
            name_variants: Alternate spellings for duplicate matching.
            phonetic_hash: Phonetic hash of the child's name.
            consent: Mapping of purpose to True for each granted purpose.
            consent_given_by: 'PARENT' or 'GUARDIAN'.
        """
        start_time = time.monotonic()
        tool_input = {"birth_id": birth_id, "district_code": district_code}
        try:
            event = BirthEvent(
                birth_id=birth_id,
                birth_date=parse_iso_date(birth_date, "birth_date"),
                hospital_code=hospital_code,
                district_code=district_code,
                state_code=state_code,
                child_name=child_name,
                gender=gender,
                birth_weight=birth_weight,
                parent_identity_ref=parent_identity_ref,
                mother_name=mother_name,
                father_name=father_name,
                name_variants=tuple(name_variants or ()),
                phonetic_hash=phonetic_hash,
            )
            actor = parse_enum(ConsentActor, consent_given_by, "consent_given_by")
            identity = service.register_birth(event, consent, granted_by=actor)
        except (IdentityEngineError, RepositoryError) as exc:
            audit_tool_call(audit_logger, "register_birth", tool_input, start_time, error=exc)
            return error_response(exc)

        audit_tool_call(audit_logger, "register_birth", tool_input, start_time,
                        subject_ref=identity.temp_ref)
        return json.dumps({
            "status": "created",
            "identity": service.snapshot(identity.temp_ref),
        }, indent=2)

    @mcp.tool
    async def record_immunization_anchor(
        ctx: Context,
        temp_ref: str,
        event_type: str,
        event_date: str,
        facility_code: str = "",
        face_embedding_hash: str | None = None,
        photo_quality_score: float | None = None,
        confidence_boost: float | None = None,
        deduplication_contribution: float | None = None,
    ) -> str:
        """Apply the next trust anchor (immunization visit) to an identity.

        Anchors must arrive in order: BIRTH, WEEK_6, WEEK_14, MONTH_9,
        MONTH_18, AGE_5. An out-of-order or repeated anchor is rejected and
        the identity is left unchanged. When no contributions are given, the
        standard contribution for the anchor type is applied.

        Args:
            temp_ref: Temporary identity reference.
            event_type: Anchor type, e.g. 'WEEK_6'.
            event_date: Date of the visit (YYYY-MM-DD).
            facility_code: Health facility code.
            face_embedding_hash: Hex digest of the face embedding (never a raw image).
            photo_quality_score: Photo quality 0-100; above 70 advances biometric readiness.
            confidence_boost: Override for the confidence contribution.
            deduplication_contribution: Override for the deduplication contribution.
        """
        start_time = time.monotonic()
        tool_input = {"temp_ref": temp_ref, "event_type": event_type, "event_date": event_date}
        try:
            anchor_type = parse_enum(AnchorType, event_type, "event_type")
            when = parse_iso_date(event_date, "event_date")
            if confidence_boost is None and deduplication_contribution is None:
                anchor = ImmunizationAnchor.standard(
                    anchor_type,
                    when,
                    facility_code=facility_code,
                    face_embedding_hash=face_embedding_hash,
                    photo_quality_score=photo_quality_score,
                )
            else:
                anchor = ImmunizationAnchor(
                    event_type=anchor_type,
                    event_date=when,
                    facility_code=facility_code,
                    face_embedding_hash=face_embedding_hash,
                    photo_quality_score=photo_quality_score,
                    confidence_boost=confidence_boost or 0.0,
                    deduplication_contribution=deduplication_contribution or 0.0,
                )
            service.apply_anchor(temp_ref, anchor)
        except (IdentityEngineError, RepositoryError) as exc:
            audit_tool_call(audit_logger, "record_immunization_anchor", tool_input, start_time,
                            subject_ref=temp_ref, error=exc)
            return error_response(exc)

        audit_tool_call(audit_logger, "record_immunization_anchor", tool_input, start_time,
                        subject_ref=temp_ref)
        return json.dumps({
            "status": "applied",
            "identity": service.snapshot(temp_ref),
        }, indent=2)

    @mcp.tool
    async def get_identity(
        ctx: Context,
        temp_ref: str,
        as_of: str = "",
    ) -> str:
        """Show an identity with its lifecycle state, readiness and next milestone.

        Args:
            temp_ref: Temporary identity reference.
            as_of: Evaluate lifecycle state on this date (YYYY-MM-DD). Defaults to today.
        """
        start_time = time.monotonic()
        tool_input = {"temp_ref": temp_ref, "as_of": as_of}
        try:
            when = parse_iso_date(as_of, "as_of") if as_of else clock.today()
            view = service.snapshot(temp_ref, when)
        except (IdentityEngineError, RepositoryError) as exc:
            audit_tool_call(audit_logger, "get_identity", tool_input, start_time,
                            subject_ref=temp_ref, error=exc)
            return error_response(exc)

        audit_tool_call(audit_logger, "get_identity", tool_input, start_time, subject_ref=temp_ref)
        return json.dumps({"status": "ok", "identity": view}, indent=2)

    @mcp.tool
    async def update_consent(
        ctx: Context,
        temp_ref: str,
        action: str,
        purpose: str = "",
        actor: str = "PARENT",
    ) -> str:
        """Grant or revoke one consent purpose, or opt out as an adult.

        Before age 18 only a PARENT or GUARDIAN may act; from 18 only SELF.
        Opt-out revokes every purpose and keeps the record.

        Args:
            temp_ref: Temporary identity reference.
            action: 'grant', 'revoke' or 'opt_out'.
            purpose: 'identity', 'health', 'education' or 'welfare' (not used for opt_out).
            actor: 'PARENT', 'GUARDIAN' or 'SELF'.
        """
        start_time = time.monotonic()
        tool_input = {"temp_ref": temp_ref, "action": action, "purpose": purpose, "actor": actor}
        try:
            if action == OPT_OUT:
                identity = service.opt_out(temp_ref)
            else:
                consent_action = parse_enum(ConsentAction, action, "action")
                if not purpose:
                    raise ValidationError("purpose is required to grant or revoke",
                                          fields=["purpose"])
                consent_purpose = parse_enum(ConsentPurpose, purpose, "purpose")
                consent_actor = parse_enum(ConsentActor, actor, "actor")
                if consent_action is ConsentAction.GRANT:
                    identity = service.grant_consent(temp_ref, consent_purpose, consent_actor)
                else:
                    identity = service.revoke_consent(temp_ref, consent_purpose, consent_actor)
        except (IdentityEngineError, RepositoryError) as exc:
            audit_tool_call(audit_logger, "update_consent", tool_input, start_time,
                            subject_ref=temp_ref, error=exc)
            return error_response(exc)

        audit_tool_call(audit_logger, "update_consent", tool_input, start_time,
                        subject_ref=temp_ref)
        return json.dumps({
            "status": "updated",
            "temp_ref": temp_ref,
            "consent": consent_summary(identity.consent),
            "last_updated": identity.last_updated.isoformat(),
        }, indent=2)
