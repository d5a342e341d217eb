"""
In-Memory Storage Implementation

Keeps raw records in dict "tables", the same shape a hosted store would
return, and narrows them through the models on every read. Used for tests
and for local development without a spreadsheet.

Guarded budget updates and ledger appends are serialised with one
asyncio.Lock, which gives this backend real compare-and-set semantics.
An append is also chain-checked: its old_value must equal the newest
entry's new_value for the same project.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError as SchemaError

from buildledger.models.audit import AuditEvent
from buildledger.models.budget import BudgetChangeEntry
from buildledger.models.project import Invoice, Project
from buildledger.models.records import utc_now
from buildledger.models.user import UserProfile
from buildledger.services.storage.interface import (
    MUTABLE_PROJECT_FIELDS,
    AuditStorageInterface,
    BudgetLedgerStorageInterface,
    InvoiceStorageInterface,
    NotFoundError,
    PersistenceError,
    ProjectStorageInterface,
    StaleBudgetError,
    UserStorageInterface,
)


logger = structlog.get_logger(__name__)


class InMemoryDatabase:
    """
    Shared state for the in-memory backends.

    Args:
        clock: Source of server timestamps (injectable for tests)
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock
        self.lock = asyncio.Lock()
        self.projects: dict[str, dict[str, Any]] = {}
        self.budget_changes: list[dict[str, Any]] = []
        self.user_profiles: dict[str, dict[str, Any]] = {}
        self.invoices: dict[str, dict[str, Any]] = {}
        self.audit_events: list[AuditEvent] = []
        self._sequence = 0

    def next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence


def _narrow(model, record: dict[str, Any]):
    """Validate a stored record, surfacing schema problems as PersistenceError."""
    try:
        return model.from_record(record)
    except SchemaError as e:
        raise PersistenceError(f"Malformed {model.__name__} record: {e}")


class InMemoryInvoiceStorage(InvoiceStorageInterface):
    """In-memory invoice storage."""

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def list_invoices(
        self,
        project_id: Optional[UUID] = None,
        include_unassigned: bool = True,
    ) -> list[Invoice]:
        invoices = [_narrow(Invoice, r) for r in self._db.invoices.values()]
        if project_id is not None:
            invoices = [inv for inv in invoices if inv.project_id == project_id]
        if not include_unassigned:
            invoices = [inv for inv in invoices if inv.project_id is not None]
        invoices.sort(key=lambda inv: inv.date_issue, reverse=True)
        return invoices

    async def save_invoice(self, invoice: Invoice) -> Invoice:
        self._db.invoices[str(invoice.id)] = invoice.to_record()
        return invoice


class InMemoryProjectStorage(ProjectStorageInterface):
    """In-memory project storage. Aggregates are joined from invoices on read."""

    def __init__(self, db: InMemoryDatabase):
        self._db = db
        self._invoices = InMemoryInvoiceStorage(db)

    async def _with_totals(self, project: Project) -> Project:
        invoices = await self._invoices.list_invoices(project_id=project.id)
        return project.with_invoice_totals(invoices)

    async def get_project(self, project_id: UUID) -> Optional[Project]:
        record = self._db.projects.get(str(project_id))
        if record is None:
            return None
        return await self._with_totals(_narrow(Project, record))

    async def list_projects(self) -> list[Project]:
        invoices = await self._invoices.list_invoices()
        return [
            _narrow(Project, record).with_invoice_totals(invoices)
            for record in self._db.projects.values()
        ]

    async def create_project(self, project: Project) -> Project:
        code = project.code.lower()
        if any(r["code"].lower() == code for r in self._db.projects.values()):
            raise PersistenceError(f"Project code already exists: {project.code}")
        self._db.projects[str(project.id)] = project.to_record()
        return await self._with_totals(project)

    async def update_project(self, project_id: UUID, changes: dict[str, Any]) -> Project:
        illegal = set(changes) - MUTABLE_PROJECT_FIELDS
        if illegal:
            raise PersistenceError(f"Fields cannot be updated here: {sorted(illegal)}")
        record = self._db.projects.get(str(project_id))
        if record is None:
            raise NotFoundError(f"Project not found: {project_id}")

        updated = _narrow(Project, {**record, **changes})
        self._db.projects[str(project_id)] = updated.to_record()
        return await self._with_totals(updated)

    async def update_planned_budget(
        self,
        project_id: UUID,
        expected_value: Decimal,
        new_value: Decimal,
    ) -> Project:
        async with self._db.lock:
            record = self._db.projects.get(str(project_id))
            if record is None:
                raise NotFoundError(f"Project not found: {project_id}")

            current = Decimal(str(record["planned_budget"]))
            if current != expected_value:
                raise StaleBudgetError(
                    f"Budget of project {project_id} changed concurrently "
                    f"(expected {expected_value}, found {current})",
                    expected=expected_value,
                    actual=current,
                )
            record["planned_budget"] = str(new_value)

        return await self.get_project(project_id)


class InMemoryBudgetLedgerStorage(BudgetLedgerStorageInterface):
    """In-memory append-only ledger."""

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    def _latest(self, project_id: UUID) -> Optional[BudgetChangeEntry]:
        entries = [
            _narrow(BudgetChangeEntry, record)
            for record in self._db.budget_changes
            if record["project_id"] == str(project_id)
        ]
        return max(entries, key=lambda e: (e.created_at, e.sequence), default=None)

    async def append_entry(self, entry: BudgetChangeEntry) -> BudgetChangeEntry:
        async with self._db.lock:
            latest = self._latest(entry.project_id)
            if latest is not None and latest.new_value != entry.old_value:
                raise StaleBudgetError(
                    f"Ledger of project {entry.project_id} moved on "
                    f"(entry starts at {entry.old_value}, latest is {latest.new_value})",
                    expected=entry.old_value,
                    actual=latest.new_value,
                )

            created_at = self._db.clock()
            # Server timestamps never go backwards within a project
            if latest is not None and latest.created_at > created_at:
                created_at = latest.created_at

            stored = entry.model_copy(update={
                "created_at": created_at,
                "sequence": self._db.next_sequence(),
            })
            self._db.budget_changes.append(stored.to_record())

        logger.debug(
            "ledger_entry_appended",
            project_id=str(stored.project_id),
            sequence=stored.sequence,
        )
        return stored

    async def list_entries(self, project_id: UUID) -> list[BudgetChangeEntry]:
        entries = [
            _narrow(BudgetChangeEntry, record)
            for record in self._db.budget_changes
            if record["project_id"] == str(project_id)
        ]
        entries.sort(key=lambda e: (e.created_at, e.sequence), reverse=True)
        return entries


class InMemoryUserStorage(UserStorageInterface):
    """In-memory user profile storage."""

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def get_user(self, user_id: UUID) -> Optional[UserProfile]:
        record = self._db.user_profiles.get(str(user_id))
        return _narrow(UserProfile, record) if record else None

    async def get_user_by_email(self, email: str) -> Optional[UserProfile]:
        email = email.strip().lower()
        for record in self._db.user_profiles.values():
            if record["email"] == email:
                return _narrow(UserProfile, record)
        return None

    async def get_users_by_ids(self, user_ids: Iterable[UUID]) -> dict[UUID, UserProfile]:
        found = {}
        for user_id in set(user_ids):
            profile = await self.get_user(user_id)
            if profile:
                found[user_id] = profile
        return found

    async def list_users(self) -> list[UserProfile]:
        users = [_narrow(UserProfile, r) for r in self._db.user_profiles.values()]
        users.sort(key=lambda u: u.created_at, reverse=True)
        return users

    async def save_user(self, profile: UserProfile) -> UserProfile:
        if await self.get_user_by_email(profile.email):
            raise PersistenceError(f"User already exists: {profile.email}")
        self._db.user_profiles[str(profile.id)] = profile.to_record()
        return profile

    async def update_user(self, user_id: UUID, changes: dict[str, Any]) -> UserProfile:
        record = self._db.user_profiles.get(str(user_id))
        if record is None:
            raise NotFoundError(f"User not found: {user_id}")
        updated = _narrow(UserProfile, {**record, **changes})
        self._db.user_profiles[str(user_id)] = updated.to_record()
        return updated


class InMemoryAuditStorage(AuditStorageInterface):
    """In-memory audit log."""

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def append_event(self, event: AuditEvent) -> bool:
        self._db.audit_events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._db.audit_events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events
