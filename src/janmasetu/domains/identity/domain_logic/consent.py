"""Consent ledger: per-purpose, independently grantable and revocable consent.

Revocation flips a purpose off and stamps the revocation time; the history
of every grant and revocation is kept. Who may act depends on age: a parent
or guardian before 18, only the subject themself from 18 onwards. Adult
opt-out is modelled as revoking every purpose, never as deletion.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import date

from janmasetu.core.clock import Clock, SystemClock
from janmasetu.domains.identity.domain_logic.errors import ConsentError
from janmasetu.domains.identity.domain_logic.lifecycle import age_in_years, schedule_floor
from janmasetu.domains.identity.domain_logic.models import (
    ConsentAction,
    ConsentActor,
    ConsentEvent,
    ConsentFlags,
    ConsentPurpose,
    FoundationalIdentity,
)

logger = logging.getLogger(__name__)

AGE_OF_MAJORITY = 18

_MINOR_ACTORS = frozenset({ConsentActor.PARENT, ConsentActor.GUARDIAN})
_ADULT_ACTORS = frozenset({ConsentActor.SELF})


def permitted_actors(identity: FoundationalIdentity, as_of: date) -> frozenset[ConsentActor]:
    if age_in_years(identity.birth_date, as_of) >= AGE_OF_MAJORITY:
        return _ADULT_ACTORS
    return _MINOR_ACTORS


class ConsentLedger:
    """Grants and revokes consent purposes on an identity.

    Like the anchor processor, each action returns an updated copy and
    leaves the input identity untouched.

    Usage::

        ledger = ConsentLedger(clock)
        identity = ledger.grant(identity, ConsentPurpose.EDUCATION, ConsentActor.PARENT)
        identity = ledger.revoke(identity, ConsentPurpose.HEALTH, ConsentActor.GUARDIAN)
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def grant(
        self,
        identity: FoundationalIdentity,
        purpose: ConsentPurpose,
        actor: ConsentActor = ConsentActor.PARENT,
    ) -> FoundationalIdentity:
        return self._record(identity, ConsentPurpose(purpose), ConsentActor(actor), ConsentAction.GRANT)

    def revoke(
        self,
        identity: FoundationalIdentity,
        purpose: ConsentPurpose,
        actor: ConsentActor = ConsentActor.PARENT,
    ) -> FoundationalIdentity:
        return self._record(identity, ConsentPurpose(purpose), ConsentActor(actor), ConsentAction.REVOKE)

    def opt_out(self, identity: FoundationalIdentity) -> FoundationalIdentity:
        """Adult opt-out: the subject revokes every purpose. The record itself persists."""
        now = self._clock.now()
        if age_in_years(identity.birth_date, now.date()) < AGE_OF_MAJORITY:
            raise ConsentError(f"Opt-out is only available from age {AGE_OF_MAJORITY}")
        updated = identity
        for purpose in ConsentPurpose:
            if updated.consent.is_granted(purpose):
                updated = self.revoke(updated, purpose, ConsentActor.SELF)
        if updated is identity:
            logger.info("Opt-out for %s: no active purposes to revoke", identity.temp_ref)
        return updated

    def _record(
        self,
        identity: FoundationalIdentity,
        purpose: ConsentPurpose,
        actor: ConsentActor,
        action: ConsentAction,
    ) -> FoundationalIdentity:
        now = self._clock.now()
        allowed = permitted_actors(identity, now.date())
        if actor not in allowed:
            raise ConsentError(
                f"{actor.value} may not {action.value} consent for {identity.temp_ref}; "
                f"permitted: {', '.join(sorted(a.value for a in allowed))}"
            )

        consent = dataclasses.replace(identity.consent, history=list(identity.consent.history))
        granting = action is ConsentAction.GRANT
        setattr(consent, purpose.value, granting)
        if granting:
            consent.granted_at = now
            consent.granted_by = actor
        else:
            consent.revoked_at = now
        consent.history.append(ConsentEvent(purpose=purpose, action=action, actor=actor, at=now))

        logger.info(
            "Consent %s for %s: %s by %s", action.value, identity.temp_ref, purpose.value, actor.value
        )
        return dataclasses.replace(
            identity,
            consent=consent,
            last_updated=now,
            next_update_due=schedule_floor(identity.next_update_due, now.date()),
        )


def consent_summary(consent: ConsentFlags) -> dict[str, str]:
    """Current status per purpose: 'granted', 'revoked' or 'pending' (never asked)."""
    touched = {e.purpose for e in consent.history}
    summary = {}
    for purpose in ConsentPurpose:
        if consent.is_granted(purpose):
            summary[purpose.value] = "granted"
        elif purpose in touched:
            summary[purpose.value] = "revoked"
        else:
            summary[purpose.value] = "pending"
    return summary
