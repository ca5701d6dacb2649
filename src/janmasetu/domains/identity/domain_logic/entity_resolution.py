"""Deterministic entity-resolution scoring for birth records.

The score rates how well a birth record's attributes identify a unique
person. It is an additive rule table with no randomness; fuzzy or phonetic
matching belongs to an injected duplicate registry, whose candidates are
folded into the same bounded score.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from janmasetu.domains.identity.domain_logic.models import (
    BirthEvent,
    DuplicateCandidate,
    clamp_score,
)

if TYPE_CHECKING:
    from janmasetu.domains.identity.connectors import DuplicateRegistry

logger = logging.getLogger(__name__)

BASE_SCORE = 50.0
INSTITUTIONAL_BONUS = 15.0
PARENT_LINKAGE_BONUS = 20.0   # linkage only, never the child's own identity
COMPLETE_NAMES_BONUS = 10.0

# Score lost for a registry candidate of similarity 1.0
DUPLICATE_PENALTY = 40.0
# Candidates at or above this similarity are flagged on the identity
DUPLICATE_FLAG_THRESHOLD = 0.85


@dataclass(frozen=True)
class ResolutionResult:
    score: float
    potential_duplicates: list[str] = field(default_factory=list)


class EntityResolutionScorer:
    """Rates duplicate risk of a birth record on a 0-100 scale (higher = more unique).

    Usage::

        scorer = EntityResolutionScorer()
        scorer.score(birth_event)             # 95.0 for a fully linked hospital birth

        scorer = EntityResolutionScorer(registry)
        result = scorer.resolve(birth_event)  # score lowered by close candidates
    """

    def __init__(self, duplicate_registry: DuplicateRegistry | None = None) -> None:
        self._registry = duplicate_registry

    @staticmethod
    def rule_score(birth_event: BirthEvent) -> float:
        score = BASE_SCORE
        if birth_event.hospital_code:
            score += INSTITUTIONAL_BONUS
        if birth_event.parent_identity_ref:
            score += PARENT_LINKAGE_BONUS
        if birth_event.mother_name and birth_event.child_name:
            score += COMPLETE_NAMES_BONUS
        return clamp_score(score)

    def score(self, birth_event: BirthEvent) -> float:
        return self.resolve(birth_event).score

    def resolve(self, birth_event: BirthEvent) -> ResolutionResult:
        """Combine the rule table with any registry candidates into one bounded score."""
        base = self.rule_score(birth_event)
        if self._registry is None:
            return ResolutionResult(score=base)

        candidates: list[DuplicateCandidate] = self._registry.find_candidates(birth_event)
        if not candidates:
            return ResolutionResult(score=base)

        strongest = max(clamp_similarity(c.similarity) for c in candidates)
        flagged = sorted(
            {c.temp_ref for c in candidates if clamp_similarity(c.similarity) >= DUPLICATE_FLAG_THRESHOLD}
        )
        if flagged:
            logger.info(
                "Birth %s has %d potential duplicate(s)", birth_event.birth_id, len(flagged)
            )
        return ResolutionResult(
            score=clamp_score(base - DUPLICATE_PENALTY * strongest),
            potential_duplicates=flagged,
        )


def clamp_similarity(value: float) -> float:
    return max(0.0, min(1.0, float(value)))
