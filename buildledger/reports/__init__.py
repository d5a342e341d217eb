"""Dashboard and report aggregates."""

from buildledger.reports.dashboard import (
    DashboardService,
    DashboardSummary,
    MonthlyTotal,
    ProjectCostRow,
    Report,
)

__all__ = [
    "DashboardService",
    "DashboardSummary",
    "MonthlyTotal",
    "ProjectCostRow",
    "Report",
]
