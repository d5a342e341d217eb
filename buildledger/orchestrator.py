"""
Main Orchestrator for BuildLedger

This module ties together all the components and defines the
end-to-end flows for:
1. Project detail (load → show history → change budget → refresh)
2. Assistant (question → portfolio context → answer)

DESIGN DECISION: The orchestrator enforces the boundaries:
- The budget only changes through the budget authority
- The history shown after a save is re-read from the ledger, never patched locally
- Every step is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict

from buildledger.agents import ASSISTANT_APOLOGY, AssistantAgent, ProjectAnalysisAgent
from buildledger.audit import AuditLogger, create_correlation_id
from buildledger.auth import AuthProviderInterface, AuthService, InMemoryAuthProvider, Session
from buildledger.budget import BudgetLedgerService, BudgetValueAuthority, HistoryTimeline
from buildledger.config import get_settings
from buildledger.exceptions import AIServiceError
from buildledger.models.budget import BudgetChangeOutcome, BudgetHistoryEntry
from buildledger.models.project import Invoice, Project
from buildledger.reports import DashboardService
from buildledger.services.invoices import InvoiceService
from buildledger.services.projects import ProjectQuery, ProjectService
from buildledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetLedgerStorage,
    GoogleSheetsClient,
    GoogleSheetsInvoiceStorage,
    GoogleSheetsProjectStorage,
    GoogleSheetsUserStorage,
    InMemoryAuditStorage,
    InMemoryBudgetLedgerStorage,
    InMemoryDatabase,
    InMemoryInvoiceStorage,
    InMemoryProjectStorage,
    InMemoryUserStorage,
)
from buildledger.services.users import UserAdminService


logger = structlog.get_logger(__name__)


class ProjectDetail(BaseModel):
    """Everything the project detail screen shows."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    project: Project
    invoices: list[Invoice]
    history: list[BudgetHistoryEntry]
    timeline: HistoryTimeline


class ProjectDetailFlow:
    """
    Orchestrates the project detail screen.

    Flow:
    1. Load → project, its invoices, budget history (newest first)
    2. Save budget → authority validates and writes (project + ledger)
    3. Refresh → project and history re-read after a successful change
    4. Analyze → optional AI commentary on the loaded figures
    """

    def __init__(
        self,
        projects: ProjectService,
        invoices: InvoiceService,
        ledger: BudgetLedgerService,
        authority: BudgetValueAuthority,
        analysis_agent: Optional[ProjectAnalysisAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
        preview_count: Optional[int] = None,
        currency: Optional[str] = None,
    ):
        app_settings = get_settings().app
        self._projects = projects
        self._invoices = invoices
        self._ledger = ledger
        self._authority = authority
        self._analysis_agent = analysis_agent
        self._audit_logger = audit_logger or AuditLogger()
        self._preview_count = preview_count or app_settings.history_preview_count
        self._currency = currency or app_settings.currency_code

    def _timeline(self, history: list[BudgetHistoryEntry]) -> HistoryTimeline:
        return HistoryTimeline(history, preview_count=self._preview_count, currency=self._currency)

    async def load(self, project_id: UUID) -> ProjectDetail:
        """
        Load the project detail.

        Raises:
            NotFoundError: Unknown project
            PersistenceError: Store failure (history included)
        """
        project = await self._projects.get_project(project_id)
        invoices = await self._invoices.list_invoices(project_id=project_id)
        history = await self._ledger.get_history(project_id)
        return ProjectDetail(
            project=project,
            invoices=invoices,
            history=history,
            timeline=self._timeline(history),
        )

    async def save_budget(
        self,
        session: Session,
        detail: ProjectDetail,
        new_value: Any,
        reason: Optional[str],
    ) -> tuple[BudgetChangeOutcome, ProjectDetail]:
        """
        Submit a budget change for the loaded project.

        On a real change the detail is reloaded, so the new entry shows
        at the top of the history. A no-op returns the detail unchanged.
        Errors from the authority propagate to the caller unchanged.
        """
        correlation_id = create_correlation_id()
        outcome = await self._authority.propose_budget_change(
            detail.project,
            session,
            new_value,
            reason,
            correlation_id=correlation_id,
        )
        if not outcome.changed:
            return outcome, detail

        logger.info(
            "budget_saved",
            project_id=str(detail.project.id),
            correlation_id=str(correlation_id),
        )
        return outcome, await self.load(detail.project.id)

    async def analyze(self, detail: ProjectDetail) -> str:
        """
        AI analysis of the loaded project.

        Raises:
            AIServiceError: Agent unavailable or the model call failed
        """
        try:
            agent = self._analysis_agent or ProjectAnalysisAgent()
        except Exception as e:
            await self._audit_logger.log_external_service_error(
                service="gemini",
                error_message=str(e),
            )
            raise AIServiceError("AI analysis is not configured") from e
        self._analysis_agent = agent

        try:
            text = await agent.analyze_project(detail.project, detail.invoices, detail.history)
        except AIServiceError as e:
            await self._audit_logger.log_external_service_error(
                service="gemini",
                error_message=str(e),
            )
            raise

        await self._audit_logger.log_ai_analysis(detail.project.id, len(text))
        return text


class AssistantFlow:
    """
    Orchestrates the assistant chat.

    The assistant only sees the project overview (budget usage per
    project). It never reads storage itself.
    """

    def __init__(
        self,
        projects: ProjectService,
        agent: Optional[AssistantAgent] = None,
    ):
        self._projects = projects
        self._agent = agent

    async def ask(self, message: str) -> str:
        page = await self._projects.list_projects(ProjectQuery(hide_empty=False, page_size=500))

        if self._agent is None:
            try:
                self._agent = AssistantAgent()
            except Exception as e:
                logger.warning("assistant_not_configured", error=str(e))
                return ASSISTANT_APOLOGY

        return await self._agent.chat(message, page.items)


class AppComponents:
    """Wired services and flows for one storage backend."""

    def __init__(
        self,
        auth: AuthService,
        projects: ProjectService,
        invoices: InvoiceService,
        users: UserAdminService,
        ledger: BudgetLedgerService,
        authority: BudgetValueAuthority,
        dashboard: DashboardService,
        project_detail: ProjectDetailFlow,
        assistant: AssistantFlow,
        audit_logger: AuditLogger,
        database: Optional[InMemoryDatabase] = None,
        sheets_client: Optional[GoogleSheetsClient] = None,
    ):
        self.auth = auth
        self.projects = projects
        self.invoices = invoices
        self.users = users
        self.ledger = ledger
        self.authority = authority
        self.dashboard = dashboard
        self.project_detail = project_detail
        self.assistant = assistant
        self.audit_logger = audit_logger
        self.database = database
        self.sheets_client = sheets_client


def create_app_components(
    storage_backend: Optional[str] = None,
    auth_provider: Optional[AuthProviderInterface] = None,
    database: Optional[InMemoryDatabase] = None,
    analysis_agent: Optional[ProjectAnalysisAgent] = None,
    assistant_agent: Optional[AssistantAgent] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        storage_backend: "memory" or "google_sheets"; defaults to the
                        configured backend.
        auth_provider: Credential store; in-memory if not given.
        database: Shared state for the memory backend (tests seed it).
        analysis_agent, assistant_agent: Injected agents; created on
                        first use otherwise.
    """
    app_settings = get_settings().app
    storage_backend = storage_backend or app_settings.storage_backend
    sheets_client = None

    if storage_backend == "google_sheets":
        sheets_client = GoogleSheetsClient()
        project_storage = GoogleSheetsProjectStorage(sheets_client)
        ledger_storage = GoogleSheetsBudgetLedgerStorage(sheets_client)
        user_storage = GoogleSheetsUserStorage(sheets_client)
        invoice_storage = GoogleSheetsInvoiceStorage(sheets_client)
        audit_storage = GoogleSheetsAuditStorage(sheets_client)
    elif storage_backend == "memory":
        database = database or InMemoryDatabase()
        project_storage = InMemoryProjectStorage(database)
        ledger_storage = InMemoryBudgetLedgerStorage(database)
        user_storage = InMemoryUserStorage(database)
        invoice_storage = InMemoryInvoiceStorage(database)
        audit_storage = InMemoryAuditStorage(database)
    else:
        raise ValueError(f"Unknown storage backend: {storage_backend}")

    audit_logger = AuditLogger(audit_storage)
    auth_provider = auth_provider or InMemoryAuthProvider()

    projects = ProjectService(
        project_storage, audit_logger, page_size=app_settings.projects_page_size
    )
    invoices = InvoiceService(invoice_storage)
    ledger = BudgetLedgerService(
        ledger_storage,
        user_storage,
        projects=project_storage,
        unknown_actor_name=app_settings.unknown_actor_name,
    )
    authority = BudgetValueAuthority(
        project_storage, ledger_storage, audit_logger, users=user_storage
    )

    return AppComponents(
        auth=AuthService(auth_provider, user_storage, audit_logger),
        projects=projects,
        invoices=invoices,
        users=UserAdminService(auth_provider, user_storage, audit_logger),
        ledger=ledger,
        authority=authority,
        dashboard=DashboardService(project_storage, invoice_storage),
        project_detail=ProjectDetailFlow(
            projects,
            invoices,
            ledger,
            authority,
            analysis_agent=analysis_agent,
            audit_logger=audit_logger,
            preview_count=app_settings.history_preview_count,
            currency=app_settings.currency_code,
        ),
        assistant=AssistantFlow(projects, agent=assistant_agent),
        audit_logger=audit_logger,
        database=database,
        sheets_client=sheets_client,
    )
