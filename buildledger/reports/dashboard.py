"""
Dashboard & Reports

Portfolio-level aggregates computed from the project list (with its
invoice-derived costs) and from project invoices.
"""

from collections import defaultdict
from decimal import Decimal

from pydantic import BaseModel

from buildledger.models.project import Project, ProjectStatus
from buildledger.services.storage import InvoiceStorageInterface, ProjectStorageInterface


TOP_PROJECTS_SUMMARY = 5
TOP_PROJECTS_REPORT = 10


class DashboardSummary(BaseModel):
    total_budget: Decimal
    total_spent: Decimal
    active_count: int
    average_utilization: float
    top_projects: list[Project]


class ProjectCostRow(BaseModel):
    """Planned vs. actual for one project."""

    project_id: str
    name: str
    planned_budget: Decimal
    total_costs: Decimal


class MonthlyTotal(BaseModel):
    month: str  # YYYY-MM
    total: Decimal


class Report(BaseModel):
    top_projects: list[ProjectCostRow]
    monthly_totals: list[MonthlyTotal]


def _by_cost(projects: list[Project]) -> list[Project]:
    return sorted(projects, key=lambda p: p.total_costs, reverse=True)


class DashboardService:
    """Builds the dashboard summary and the cost report."""

    def __init__(
        self,
        projects: ProjectStorageInterface,
        invoices: InvoiceStorageInterface,
    ):
        self._projects = projects
        self._invoices = invoices

    async def summary(self) -> DashboardSummary:
        """
        Totals across all projects.

        average_utilization is the mean of the per-project budget usage
        percentages (projects without a budget count as 0).
        """
        projects = await self._projects.list_projects()

        average = 0.0
        if projects:
            average = sum(p.budget_usage_percent for p in projects) / len(projects)

        return DashboardSummary(
            total_budget=sum((p.planned_budget for p in projects), Decimal("0")),
            total_spent=sum((p.total_costs for p in projects), Decimal("0")),
            active_count=sum(1 for p in projects if p.status == ProjectStatus.ACTIVE),
            average_utilization=average,
            top_projects=_by_cost(projects)[:TOP_PROJECTS_SUMMARY],
        )

    async def report(self) -> Report:
        projects = [p for p in await self._projects.list_projects() if p.total_costs > 0]
        top = [
            ProjectCostRow(
                project_id=str(p.id),
                name=p.name,
                planned_budget=p.planned_budget,
                total_costs=p.total_costs,
            )
            for p in _by_cost(projects)[:TOP_PROJECTS_REPORT]
        ]

        months: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for inv in await self._invoices.list_invoices(include_unassigned=False):
            months[inv.date_issue.strftime("%Y-%m")] += inv.total_amount

        return Report(
            top_projects=top,
            monthly_totals=[
                MonthlyTotal(month=month, total=total)
                for month, total in sorted(months.items())
            ],
        )
