"""MCP tools for district-level fraud detection and enrollment backlog forecasts.

Figures come either from the caller or from the configured district
statistics source (YAML report drop or mock generator).
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from janmasetu.domains.identity.domain_logic.errors import IdentityEngineError
from janmasetu.domains.identity.domain_logic.models import DistrictStats, RiskLevel
from janmasetu.domains.identity.tools.responses import audit_tool_call, error_response

if TYPE_CHECKING:
    from janmasetu.core.audit.logger import AuditLogger
    from janmasetu.core.clock import Clock
    from janmasetu.domains.identity.connectors import DistrictStatsSource
    from janmasetu.domains.identity.domain_logic.backlog import BacklogPredictor
    from janmasetu.domains.identity.domain_logic.fraud_detection import FraudPatternDetector

logger = logging.getLogger(__name__)


def register_district_tools(
    mcp: FastMCP,
    detector: FraudPatternDetector,
    predictor: BacklogPredictor,
    district_source: DistrictStatsSource,
    clock: Clock,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register fraud detection and backlog forecasting tools on the MCP server."""

    @mcp.tool
    async def detect_fraud_patterns(
        ctx: Context,
        births: int,
        avg_births: float,
        parent_duplicates: int = 0,
        out_of_district_births: int | None = None,
        inconsistent_records: int | None = None,
        district: str = "",
    ) -> str:
        """Check one district's registration aggregates for fraud patterns.

        Flags birth spikes against the running average, parent identity
        references reused across registrations, out-of-district facility
        births and records failing consistency checks.

        Args:
            births: Births registered this period.
            avg_births: Average births per period for the district.
            parent_duplicates: Parent identity references used more than once.
            out_of_district_births: Births registered at facilities outside the district.
            inconsistent_records: Records that failed consistency checks.
            district: Optional district code, echoed back.
        """
        start_time = time.monotonic()
        tool_input = {"district": district, "births": births, "avg_births": avg_births}
        try:
            stats = DistrictStats(
                births=births,
                avg_births=avg_births,
                parent_duplicates=parent_duplicates,
                out_of_district_births=out_of_district_births,
                inconsistent_records=inconsistent_records,
            )
            indicators = detector.detect(stats)
        except IdentityEngineError as exc:
            audit_tool_call(audit_logger, "detect_fraud_patterns", tool_input, start_time, error=exc)
            return error_response(exc)

        audit_tool_call(audit_logger, "detect_fraud_patterns", tool_input, start_time,
                        metadata={"indicators": len(indicators)})
        return json.dumps({
            "status": "ok",
            "district": district or None,
            "indicators": [i.to_dict() for i in indicators],
        }, indent=2)

    @mcp.tool
    async def predict_backlog(
        ctx: Context,
        district: str,
        cohort_size: int,
        month_index: int | None = None,
        year: int | None = None,
        full_year: bool = False,
    ) -> str:
        """Forecast the enrollment backlog for a district before it forms.

        Args:
            district: District code.
            cohort_size: Annual birth cohort size of the district.
            month_index: Month to forecast, 0 = January. Defaults to the current month.
            year: Optional year, used only to label the month.
            full_year: Return all twelve months instead of one.
        """
        start_time = time.monotonic()
        tool_input = {"district": district, "cohort_size": cohort_size,
                      "month_index": month_index, "full_year": full_year}
        try:
            if full_year:
                forecasts = predictor.forecast_year(district, cohort_size, year=year)
            else:
                month = month_index if month_index is not None else clock.today().month - 1
                forecasts = [predictor.predict(district, cohort_size, month, year=year)]
        except IdentityEngineError as exc:
            audit_tool_call(audit_logger, "predict_backlog", tool_input, start_time, error=exc)
            return error_response(exc)

        audit_tool_call(audit_logger, "predict_backlog", tool_input, start_time)
        return json.dumps({
            "status": "ok",
            "predictions": [p.to_dict() for p in forecasts],
        }, indent=2)

    @mcp.tool
    async def scan_district_reports(
        ctx: Context,
        period: str = "current_month",
        month_index: int | None = None,
    ) -> str:
        """Run fraud detection and backlog forecasting across all reported districts.

        Args:
            period: Report period to scan (e.g. '2026-09'), or 'current_month' for the latest.
            month_index: Month to forecast, 0 = January. Defaults to the current month.
        """
        start_time = time.monotonic()
        tool_input = {"period": period, "month_index": month_index}
        try:
            stats = await district_source.get_district_stats(period)
            cohorts = await district_source.get_cohort_sizes()
            month = month_index if month_index is not None else clock.today().month - 1
            fraud = detector.scan_districts(stats)
            forecasts = predictor.forecast_districts(cohorts, month)
        except IdentityEngineError as exc:
            audit_tool_call(audit_logger, "scan_district_reports", tool_input, start_time, error=exc)
            return error_response(exc)

        flagged = sorted(d for d, indicators in fraud.items() if indicators)
        high_risk = sorted(d for d, p in forecasts.items() if p.risk_level is RiskLevel.HIGH)
        audit_tool_call(audit_logger, "scan_district_reports", tool_input, start_time,
                        metadata={"districts": len(stats), "flagged": len(flagged)})
        return json.dumps({
            "status": "ok",
            "period": period,
            "data_source": district_source.data_source,
            "districts_scanned": len(stats),
            "flagged_districts": flagged,
            "high_backlog_risk": high_risk,
            "fraud": {d: [i.to_dict() for i in indicators] for d, indicators in fraud.items()},
            "backlog": {d: p.to_dict() for d, p in forecasts.items()},
        }, indent=2)
