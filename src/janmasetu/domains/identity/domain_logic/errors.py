"""Typed failures returned by the identity lifecycle engine.

Every failure is local and recoverable: the engine raises one of these to
its caller and never leaves a partially mutated identity behind.
"""

from __future__ import annotations


class IdentityEngineError(Exception):
    """Base class for all identity engine failures."""


class ValidationError(IdentityEngineError):
    """Raised when input records are missing required fields or are malformed."""

    def __init__(self, message: str, *, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = list(fields or [])


class SequenceError(IdentityEngineError):
    """Raised when a trust anchor arrives out of canonical order or is repeated."""

    def __init__(
        self,
        message: str,
        *,
        expected: str | None = None,
        received: str | None = None,
    ) -> None:
        super().__init__(message)
        self.expected = expected
        self.received = received


class ConsentError(IdentityEngineError):
    """Raised when a consent action is not permitted for the acting party."""


class ConcurrencyConflictError(IdentityEngineError):
    """Raised when an identity changed between read and commit."""

    def __init__(self, temp_ref: str) -> None:
        super().__init__(f"Identity {temp_ref} was modified concurrently")
        self.temp_ref = temp_ref


class IdentityNotFoundError(IdentityEngineError):
    """Raised when a temporary identity reference is unknown to the store."""

    def __init__(self, temp_ref: str) -> None:
        super().__init__(f"No identity found for reference {temp_ref}")
        self.temp_ref = temp_ref
