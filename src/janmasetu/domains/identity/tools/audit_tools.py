"""MCP tools for viewing the audit trail.

The audit log names identities by temporary reference only and hashes tool
inputs, so reviewing it never exposes demographics.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from janmasetu.core.audit.logger import AuditLogger
    from janmasetu.core.clock import Clock

logger = logging.getLogger(__name__)


def register_audit_tools(
    mcp: FastMCP,
    audit_logger: AuditLogger,
    clock: Clock,
) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(
        ctx: Context,
        days: int = 30,
        temp_ref: str = "",
    ) -> str:
        """View recent identity mutations, rejections and tool calls.

        Args:
            days: Number of days to look back (default: 30).
            temp_ref: Only show events for this temporary identity reference.
        """
        since = (clock.now() - timedelta(days=days)).isoformat()

        total_events = audit_logger.count_events(since=since)
        failure_count = audit_logger.count_failures(since=since)
        recent_events = audit_logger.get_events(since=since, subject_ref=temp_ref or None, limit=20)

        display_events = []
        for event in recent_events:
            display_events.append({
                "timestamp": event.get("timestamp"),
                "action": event.get("action"),
                "tool_name": event.get("tool_name"),
                "subject_ref": event.get("subject_ref"),
                "status": event.get("status"),
                "error_type": event.get("error_type"),
                "duration_ms": event.get("duration_ms"),
            })

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": total_events,
            "failures": failure_count,
            "recent_events": display_events,
            "note": (
                "This audit trail contains no demographic data. "
                "Identities appear by temporary reference only."
            ),
        }, indent=2)
