"""Shared helpers for identity MCP tools: input parsing, error payloads, auditing."""

from __future__ import annotations

import json
import time
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from janmasetu.domains.identity.domain_logic.errors import (
    SequenceError,
    ValidationError,
)

if TYPE_CHECKING:
    from janmasetu.core.audit.logger import AuditLogger

E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: type[E], value: Any, field: str) -> E:
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(str(m.value) for m in enum_cls)
        raise ValidationError(
            f"Invalid {field} {value!r}; expected one of {allowed}", fields=[field]
        ) from exc


def parse_iso_date(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"Invalid {field} {value!r}; expected YYYY-MM-DD", fields=[field]
        ) from exc


def error_response(exc: Exception) -> str:
    """Failure as the JSON payload tools return instead of raising."""
    payload: dict[str, Any] = {
        "status": "error",
        "error_type": type(exc).__name__,
        "message": str(exc),
    }
    if isinstance(exc, ValidationError) and exc.fields:
        payload["fields"] = exc.fields
    if isinstance(exc, SequenceError):
        payload["expected"] = exc.expected
        payload["received"] = exc.received
    return json.dumps(payload)


def audit_tool_call(
    audit_logger: AuditLogger | None,
    tool_name: str,
    tool_input: Any,
    start_time: float,
    *,
    subject_ref: str | None = None,
    error: Exception | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    if audit_logger is None:
        return
    audit_logger.log_tool_call(
        tool_name=tool_name,
        tool_input=tool_input,
        subject_ref=subject_ref,
        duration_ms=(time.monotonic() - start_time) * 1000,
        status="failure" if error is not None else "success",
        error_type=type(error).__name__ if error is not None else None,
        metadata=metadata,
    )
