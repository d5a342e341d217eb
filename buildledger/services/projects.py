"""
Project Service

Listing with the filters of the projects overview (hide empty, status,
year, search), activity ordering and "load more" paging, plus admin-only
project maintenance. The planned budget is deliberately not editable
here; it only changes through the budget authority.
"""

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from buildledger.audit import AuditLogger
from buildledger.auth.session import Session
from buildledger.budget.authority import parse_budget_value
from buildledger.config import get_settings
from buildledger.exceptions import ValidationError
from buildledger.models.project import Project, ProjectStatus
from buildledger.services.storage import NotFoundError, ProjectStorageInterface


logger = structlog.get_logger(__name__)


class ProjectQuery(BaseModel):
    """Filters and paging for the project list."""

    hide_empty: bool = True
    status: Optional[ProjectStatus] = None
    year: Optional[int] = None
    search: Optional[str] = None
    page: int = Field(default=1, ge=1)
    # None means the service default (PROJECTS_PAGE_SIZE)
    page_size: Optional[int] = Field(default=None, ge=1, le=500)


class ProjectPage(BaseModel):
    """
    Projects visible after `page` rounds of "load more".

    items holds the first page * page_size matches, total all matches.
    """

    items: list[Project]
    total: int
    has_more: bool


def activity_order(project: Project):
    """Highest spend first, then most invoices, then by name."""
    return (-project.total_costs, -project.invoice_count, project.name.casefold())


class ProjectService:
    """Read and maintain projects."""

    def __init__(
        self,
        storage: ProjectStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        page_size: Optional[int] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._page_size = page_size or get_settings().app.projects_page_size

    async def list_projects(self, query: Optional[ProjectQuery] = None) -> ProjectPage:
        query = query or ProjectQuery()
        projects = await self._storage.list_projects()

        if query.hide_empty:
            projects = [p for p in projects if not p.is_empty]
        if query.status is not None:
            projects = [p for p in projects if p.status == query.status]
        if query.year is not None:
            projects = [p for p in projects if p.project_year == query.year]
        if query.search and query.search.strip():
            term = query.search.strip().casefold()
            projects = [
                p for p in projects
                if term in p.name.casefold() or term in p.code.casefold()
            ]

        projects.sort(key=activity_order)
        page_size = query.page_size or self._page_size
        visible = projects[:query.page * page_size]
        return ProjectPage(
            items=visible,
            total=len(projects),
            has_more=len(visible) < len(projects),
        )

    async def available_years(self) -> list[int]:
        """Distinct project years, newest first."""
        projects = await self._storage.list_projects()
        years = {p.project_year for p in projects if p.project_year}
        return sorted(years, reverse=True)

    async def hidden_count(self) -> int:
        """Number of projects the hide-empty filter removes."""
        projects = await self._storage.list_projects()
        return sum(1 for p in projects if p.is_empty)

    async def get_project(self, project_id: UUID) -> Project:
        project = await self._storage.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        return project

    async def create_project(
        self,
        session: Session,
        name: str,
        code: str,
        planned_budget: Any = Decimal("0"),
        status: ProjectStatus = ProjectStatus.ACTIVE,
        notes: Optional[str] = None,
        project_year: Optional[int] = None,
    ) -> Project:
        """
        Create a project (admins only).

        Raises:
            AuthorizationError: Not an active admin
            ValidationError: Blank name/code or invalid budget
            PersistenceError: Duplicate code or store failure
        """
        session.require_admin()

        name = (name or "").strip()
        code = (code or "").strip()
        if not name:
            raise ValidationError("Project name is required", field="name")
        if not code:
            raise ValidationError("Project code is required", field="code")

        project = Project(
            name=name,
            code=code,
            planned_budget=parse_budget_value(planned_budget),
            status=status,
            notes=(notes or "").strip() or None,
            project_year=project_year,
        )
        created = await self._storage.create_project(project)

        await self._audit_logger.log_project_created(
            project_id=created.id,
            code=created.code,
            planned_budget=created.planned_budget,
            actor_id=session.user_id,
        )
        return created

    async def update_project(
        self,
        session: Session,
        project_id: UUID,
        status: Optional[ProjectStatus] = None,
        notes: Optional[str] = None,
    ) -> Project:
        """Change status and/or notes (admins only). Omitted fields are kept."""
        session.require_admin()

        changes: dict[str, Any] = {}
        if status is not None:
            changes["status"] = ProjectStatus(status).value
        if notes is not None:
            changes["notes"] = notes.strip() or None

        if not changes:
            return await self.get_project(project_id)

        updated = await self._storage.update_project(project_id, changes)
        await self._audit_logger.log_project_updated(project_id, changes, session.user_id)
        return updated
