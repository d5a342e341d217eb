"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a hosted database later
2. Use in-memory storage for testing and local development
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the dashboard needs.

Every implementation narrows raw rows through the models' `from_record`
before returning them, and wraps library failures in PersistenceError.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Iterable, Optional
from uuid import UUID

from buildledger.exceptions import (
    NotFoundError,
    PersistenceError,
    StaleBudgetError,
    StoreConnectionError,
)
from buildledger.models.audit import AuditEvent
from buildledger.models.budget import BudgetChangeEntry
from buildledger.models.project import Invoice, Project
from buildledger.models.user import UserProfile


# Project fields that may be changed outside the budget authority
MUTABLE_PROJECT_FIELDS = frozenset({"name", "status", "notes", "project_year"})


class ProjectStorageInterface(ABC):
    """
    Abstract interface for project storage.

    Projects are returned with their invoice aggregates filled in.
    """

    @abstractmethod
    async def get_project(self, project_id: UUID) -> Optional[Project]:
        """
        Retrieve a project by ID.

        Returns:
            The project if found, None otherwise

        Raises:
            PersistenceError: If the read fails
        """
        pass

    @abstractmethod
    async def list_projects(self) -> list[Project]:
        """List all projects (unordered)."""
        pass

    @abstractmethod
    async def create_project(self, project: Project) -> Project:
        """
        Insert a new project.

        Raises:
            PersistenceError: If a project with the same code exists or the write fails
        """
        pass

    @abstractmethod
    async def update_project(self, project_id: UUID, changes: dict[str, Any]) -> Project:
        """
        Update non-budget fields of a project.

        Only keys in MUTABLE_PROJECT_FIELDS are accepted.

        Raises:
            NotFoundError: If the project doesn't exist
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def update_planned_budget(
        self,
        project_id: UUID,
        expected_value: Decimal,
        new_value: Decimal,
    ) -> Project:
        """
        Guarded budget update (compare-and-set).

        Args:
            project_id: Project to update
            expected_value: Budget the caller based its change on
            new_value: Budget to store

        Returns:
            The updated project

        Raises:
            StaleBudgetError: If the stored budget != expected_value
            NotFoundError: If the project doesn't exist
            PersistenceError: If the write fails
        """
        pass


class BudgetLedgerStorageInterface(ABC):
    """
    Abstract interface for the budget ledger.

    The ledger is append-only - there is deliberately no update or delete.
    """

    @abstractmethod
    async def append_entry(self, entry: BudgetChangeEntry) -> BudgetChangeEntry:
        """
        Append one ledger entry.

        The store assigns created_at (non-decreasing per project) and
        sequence (strictly increasing insertion counter).

        Returns:
            The entry as stored

        Raises:
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def list_entries(self, project_id: UUID) -> list[BudgetChangeEntry]:
        """
        All entries for a project, newest first.

        Ordered by created_at descending, ties broken by sequence descending.

        Raises:
            PersistenceError: If the read fails
        """
        pass


class UserStorageInterface(ABC):
    """Abstract interface for user profile storage."""

    @abstractmethod
    async def get_user(self, user_id: UUID) -> Optional[UserProfile]:
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[UserProfile]:
        pass

    @abstractmethod
    async def get_users_by_ids(self, user_ids: Iterable[UUID]) -> dict[UUID, UserProfile]:
        """
        Batch lookup used to join actor names onto ledger entries.

        Unknown IDs are simply absent from the result.
        """
        pass

    @abstractmethod
    async def list_users(self) -> list[UserProfile]:
        """All profiles, newest first (by created_at)."""
        pass

    @abstractmethod
    async def save_user(self, profile: UserProfile) -> UserProfile:
        """Insert a new profile."""
        pass

    @abstractmethod
    async def update_user(self, user_id: UUID, changes: dict[str, Any]) -> UserProfile:
        """
        Update profile fields.

        Raises:
            NotFoundError: If the profile doesn't exist
        """
        pass


class InvoiceStorageInterface(ABC):
    """Abstract interface for invoice storage."""

    @abstractmethod
    async def list_invoices(
        self,
        project_id: Optional[UUID] = None,
        include_unassigned: bool = True,
    ) -> list[Invoice]:
        """
        List invoices, newest issue date first.

        Args:
            project_id: Only invoices of this project
            include_unassigned: Include invoices without a project
        """
        pass

    @abstractmethod
    async def save_invoice(self, invoice: Invoice) -> Invoice:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Events for one entity in chronological order."""
        pass


__all__ = [
    "MUTABLE_PROJECT_FIELDS",
    "AuditStorageInterface",
    "BudgetLedgerStorageInterface",
    "InvoiceStorageInterface",
    "ProjectStorageInterface",
    "UserStorageInterface",
    "NotFoundError",
    "PersistenceError",
    "StaleBudgetError",
    "StoreConnectionError",
]
