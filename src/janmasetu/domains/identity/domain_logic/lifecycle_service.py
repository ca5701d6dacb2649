"""Identity lifecycle orchestration over a store collaborator.

The domain components are pure; this service is where they meet storage.
Every mutation follows the same optimistic-concurrency discipline:

1. read the identity and remember its ``last_updated``,
2. compute the updated copy,
3. commit only if the stored ``last_updated`` is unchanged,
4. on ``ConcurrencyConflictError`` re-read and retry, up to ``max_retries``.

Engine errors raised by step 2 are audited and propagated unchanged; the
stored identity is never touched in that case.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any, Callable

from janmasetu.core.clock import Clock, SystemClock
from janmasetu.domains.identity.domain_logic.consent import ConsentLedger
from janmasetu.domains.identity.domain_logic.errors import (
    ConcurrencyConflictError,
    IdentityEngineError,
    IdentityNotFoundError,
)
from janmasetu.domains.identity.domain_logic.identity_factory import FoundationalIdentityFactory
from janmasetu.domains.identity.domain_logic.lifecycle import snapshot
from janmasetu.domains.identity.domain_logic.models import (
    BirthEvent,
    ConsentActor,
    ConsentPurpose,
    FoundationalIdentity,
    ImmunizationAnchor,
)
from janmasetu.domains.identity.domain_logic.trust_anchors import TrustAnchorProcessor

if TYPE_CHECKING:
    from janmasetu.core.audit.logger import AuditLogger
    from janmasetu.domains.identity.connectors import DuplicateRegistry, IdentityStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3

# Smallest step that keeps ``last_updated`` strictly increasing per commit
_TICK = timedelta(microseconds=1)


class IdentityLifecycleService:
    """Creates, strengthens and re-consents stored identities.

    Usage::

        service = IdentityLifecycleService(store, clock=clock, audit_logger=audit)
        identity = service.register_birth(birth_event, {"identity": True})
        identity = service.apply_anchor(identity.temp_ref, anchor)
    """

    def __init__(
        self,
        store: IdentityStore,
        *,
        factory: FoundationalIdentityFactory | None = None,
        processor: TrustAnchorProcessor | None = None,
        ledger: ConsentLedger | None = None,
        duplicate_registry: DuplicateRegistry | None = None,
        clock: Clock | None = None,
        audit_logger: AuditLogger | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self._clock = clock or SystemClock()
        self._store = store
        self._factory = factory or FoundationalIdentityFactory(clock=self._clock)
        self._processor = processor or TrustAnchorProcessor(self._clock)
        self._ledger = ledger or ConsentLedger(self._clock)
        self._registry = duplicate_registry
        self._audit = audit_logger
        self._max_retries = max_retries

    # ------------------------------------------------------------------
    # Creation and reads
    # ------------------------------------------------------------------

    def register_birth(
        self,
        birth_event: BirthEvent,
        initial_consent: dict[str, Any] | None = None,
        *,
        granted_by: ConsentActor = ConsentActor.PARENT,
    ) -> FoundationalIdentity:
        try:
            identity = self._factory.create(birth_event, initial_consent, granted_by=granted_by)
        except IdentityEngineError as exc:
            self._record("identity_created", None, status="failure", error=exc,
                         metadata={"birth_id": birth_event.birth_id})
            raise

        self._store.add(identity, birth_event)
        if self._registry is not None:
            self._registry.register(identity.temp_ref, birth_event)
        self._record("identity_created", identity.temp_ref, metadata={
            "confidence_score": identity.confidence_score,
            "entity_resolution_score": identity.entity_resolution_score,
            "potential_duplicates": len(identity.potential_duplicates),
        })
        return identity

    def get_identity(self, temp_ref: str) -> FoundationalIdentity:
        identity = self._store.get(temp_ref)
        if identity is None:
            raise IdentityNotFoundError(temp_ref)
        return identity

    def snapshot(self, temp_ref: str, as_of: date | None = None) -> dict[str, Any]:
        return snapshot(self.get_identity(temp_ref), as_of or self._clock.today())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def apply_anchor(self, temp_ref: str, anchor: ImmunizationAnchor) -> FoundationalIdentity:
        return self._mutate(
            temp_ref,
            lambda identity: self._processor.apply(identity, anchor),
            action="anchor_applied",
            failure_action="anchor_rejected",
            metadata={"event_type": anchor.event_type.value},
        )

    def grant_consent(
        self,
        temp_ref: str,
        purpose: ConsentPurpose,
        actor: ConsentActor = ConsentActor.PARENT,
    ) -> FoundationalIdentity:
        purpose, actor = ConsentPurpose(purpose), ConsentActor(actor)
        return self._mutate(
            temp_ref,
            lambda identity: self._ledger.grant(identity, purpose, actor),
            action="consent_granted",
            metadata={"purpose": purpose.value, "actor": actor.value},
        )

    def revoke_consent(
        self,
        temp_ref: str,
        purpose: ConsentPurpose,
        actor: ConsentActor = ConsentActor.PARENT,
    ) -> FoundationalIdentity:
        purpose, actor = ConsentPurpose(purpose), ConsentActor(actor)
        return self._mutate(
            temp_ref,
            lambda identity: self._ledger.revoke(identity, purpose, actor),
            action="consent_revoked",
            metadata={"purpose": purpose.value, "actor": actor.value},
        )

    def opt_out(self, temp_ref: str) -> FoundationalIdentity:
        return self._mutate(temp_ref, self._ledger.opt_out, action="consent_opt_out")

    def _mutate(
        self,
        temp_ref: str,
        operation: Callable[[FoundationalIdentity], FoundationalIdentity],
        *,
        action: str,
        failure_action: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> FoundationalIdentity:
        attempt = 0
        while True:
            identity = self.get_identity(temp_ref)
            expected = identity.last_updated
            try:
                updated = operation(identity)
            except IdentityEngineError as exc:
                self._record(failure_action or action, temp_ref, status="failure",
                             error=exc, metadata=metadata)
                raise

            if updated is identity:
                # Nothing changed (e.g. opt-out with no active purposes)
                return identity
            if updated.last_updated <= expected:
                updated = dataclasses.replace(updated, last_updated=expected + _TICK)

            try:
                self._store.commit(updated, expected)
            except ConcurrencyConflictError as exc:
                if attempt >= self._max_retries:
                    logger.warning(
                        "Giving up on %s for %s after %d retries", action, temp_ref, attempt
                    )
                    self._record(action, temp_ref, status="failure", error=exc, metadata=metadata)
                    raise
                attempt += 1
                logger.info("Concurrent update of %s; retry %d of %d",
                            temp_ref, attempt, self._max_retries)
                continue

            self._record(action, temp_ref, metadata={**(metadata or {}), "retries": attempt})
            return updated

    def _record(
        self,
        action: str,
        subject_ref: str | None,
        *,
        status: str = "success",
        error: Exception | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        if self._audit is None:
            return
        self._audit.log_identity_event(
            action,
            subject_ref=subject_ref,
            status=status,
            error_type=type(error).__name__ if error is not None else None,
            metadata=metadata,
        )
