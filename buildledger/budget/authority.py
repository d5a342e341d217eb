"""
Budget Value Authority

The only code path allowed to change a project's planned budget.

A change is two writes: a guarded update of the project's budget, then
one append to the budget ledger. The guard carries the value the caller
based its change on, so two admins editing the same project cannot
silently overwrite each other. If the ledger append fails, the budget
update is reverted with a second guarded write; if that also fails, the
error is flagged as inconsistent and a critical audit event is logged.

Writes for one project are serialised in-process, and the stores
chain-check each ledger append against the newest entry.

Nothing here is retried. The caller decides whether to resubmit.
"""

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID

import structlog

from buildledger.audit import AuditLogger, create_correlation_id
from buildledger.auth.session import Session
from buildledger.exceptions import (
    AuthorizationError,
    PersistenceError,
    StaleBudgetError,
    ValidationError,
)
from buildledger.models.budget import BudgetChangeEntry, BudgetChangeOutcome
from buildledger.models.project import Project
from buildledger.services.storage import (
    BudgetLedgerStorageInterface,
    ProjectStorageInterface,
    UserStorageInterface,
)


logger = structlog.get_logger(__name__)

MAX_REASON_LENGTH = 1000


def parse_budget_value(value: Any) -> Decimal:
    """
    Convert a submitted budget to a finite, non-negative Decimal.

    Raises:
        ValidationError: Not a number, not finite, or negative
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("Budget must be a number", field="new_value")

    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Budget must be a number, got {value!r}", field="new_value")

    if not amount.is_finite():
        raise ValidationError("Budget must be a finite number", field="new_value")
    if amount < 0:
        raise ValidationError("Budget cannot be negative", field="new_value")
    return amount


class BudgetValueAuthority:
    """
    Validates and records changes to a project's planned budget.

    Writes for one project are serialised: the budget update and its
    ledger append run under a per-project lock, so a second admin's
    change can only start once the first one's entry is in the ledger.
    """

    def __init__(
        self,
        projects: ProjectStorageInterface,
        ledger: BudgetLedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        users: Optional[UserStorageInterface] = None,
    ):
        self._projects = projects
        self._ledger = ledger
        self._audit_logger = audit_logger or AuditLogger()
        self._users = users
        self._project_locks: dict[UUID, asyncio.Lock] = {}

    def _lock_for(self, project_id: UUID) -> asyncio.Lock:
        return self._project_locks.setdefault(project_id, asyncio.Lock())

    async def propose_budget_change(
        self,
        project: Project,
        session: Session,
        new_value: Any,
        reason: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> BudgetChangeOutcome:
        """
        Change `project`'s planned budget to `new_value`.

        `project` is the snapshot the caller is looking at; its
        planned_budget is both the ledger's old_value and the expected
        value of the guarded update.

        Check order:
        1. Active admin session, else AuthorizationError
        2. new_value is a finite number >= 0, else ValidationError
        3. new_value equal to the current budget: no-op, nothing written
        4. Non-blank reason, else ValidationError

        These run without touching any store; their outcomes go to the
        local log only. When a user store is configured the actor's
        profile is then re-read, so a demoted or deactivated admin is
        refused even if their session still says otherwise.

        Returns:
            BudgetChangeOutcome (changed=False for the no-op case)

        Raises:
            AuthorizationError, ValidationError: Checked before any write
            StaleBudgetError: Budget changed since the snapshot was taken
            PersistenceError: Store failure; `inconsistent` is set when the
                budget could not be restored after a failed ledger append
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            session.require_admin()
        except AuthorizationError as e:
            await self._reject(project, session, "unauthorized", str(e), correlation_id, persist=False)
            raise

        try:
            value = parse_budget_value(new_value)
        except ValidationError as e:
            await self._reject(project, session, "invalid_value", str(e), correlation_id, persist=False)
            raise

        old_value = project.planned_budget
        if value == old_value:
            await self._audit_logger.log_budget_change_noop(
                project_id=project.id,
                actor_id=session.user_id,
                value=value,
                correlation_id=correlation_id,
                persist=False,
            )
            return BudgetChangeOutcome(changed=False, project=project)

        trimmed = (reason or "").strip()
        if not trimmed:
            await self._reject(
                project, session, "missing_reason", "Reason is empty", correlation_id, persist=False
            )
            raise ValidationError("A reason is required to change the budget", field="reason")
        if len(trimmed) > MAX_REASON_LENGTH:
            await self._reject(
                project, session, "reason_too_long", "Reason is too long", correlation_id, persist=False
            )
            raise ValidationError(
                f"Reason must be at most {MAX_REASON_LENGTH} characters",
                field="reason",
            )

        entry = BudgetChangeEntry(
            project_id=project.id,
            changed_by=session.user_id,
            old_value=old_value,
            new_value=value,
            reason=trimmed,
        )

        async with self._lock_for(project.id):
            await self._confirm_actor(project, session, correlation_id)
            return await self._write(project, session, entry, correlation_id)

    async def _confirm_actor(self, project: Project, session: Session, correlation_id: UUID) -> None:
        """Re-read the actor's profile; raises AuthorizationError if it no longer qualifies."""
        if self._users is None:
            return

        profile = await self._users.get_user(session.user_id)
        if profile is None or not profile.is_active or not profile.is_admin:
            message = "Only active administrators can change project budgets"
            await self._reject(project, session, "unauthorized", message, correlation_id)
            raise AuthorizationError(message)

    async def _write(
        self,
        project: Project,
        session: Session,
        entry: BudgetChangeEntry,
        correlation_id: UUID,
    ) -> BudgetChangeOutcome:
        old_value, value = entry.old_value, entry.new_value

        # Write 1: guarded budget update
        try:
            updated = await self._projects.update_planned_budget(
                project.id,
                expected_value=old_value,
                new_value=value,
            )
        except StaleBudgetError as e:
            await self._reject(project, session, "stale_budget", str(e), correlation_id)
            raise
        except PersistenceError as e:
            await self._reject(project, session, "store_error", str(e), correlation_id)
            raise

        # Write 2: ledger append, compensated on failure (including a
        # chain-check rejection by the store)
        try:
            stored = await self._ledger.append_entry(entry)
        except PersistenceError as e:
            await self._compensate(project.id, old_value, value, e, correlation_id)
            raise PersistenceError(
                f"Budget change could not be recorded and was reverted: {e}"
            ) from e

        await self._audit_logger.log_budget_changed(
            project_id=project.id,
            project_code=project.code,
            entry_id=stored.id,
            actor_id=session.user_id,
            old_value=old_value,
            new_value=value,
            correlation_id=correlation_id,
        )
        return BudgetChangeOutcome(changed=True, project=updated, entry=stored)

    async def _compensate(
        self,
        project_id: UUID,
        old_value: Decimal,
        new_value: Decimal,
        error: PersistenceError,
        correlation_id: UUID,
    ) -> None:
        """Restore the budget after a failed append. Raises if it cannot."""
        try:
            await self._projects.update_planned_budget(
                project_id,
                expected_value=new_value,
                new_value=old_value,
            )
        except PersistenceError as revert_error:
            await self._audit_logger.log_ledger_inconsistent(
                project_id=project_id,
                details={
                    "budget_value": str(new_value),
                    "ledger_value": str(old_value),
                    "append_error": str(error),
                },
                error_message=str(revert_error),
                correlation_id=correlation_id,
            )
            raise PersistenceError(
                f"Budget of project {project_id} was changed but the ledger entry "
                f"could not be recorded, and the change could not be reverted: {revert_error}",
                inconsistent=True,
            ) from revert_error

        await self._audit_logger.log_budget_write_compensated(
            project_id=project_id,
            restored_value=old_value,
            error_message=str(error),
            correlation_id=correlation_id,
        )

    async def _reject(
        self,
        project: Project,
        session: Session,
        error_code: str,
        message: str,
        correlation_id: UUID,
        persist: bool = True,
    ) -> None:
        await self._audit_logger.log_budget_change_rejected(
            project_id=project.id,
            actor_id=session.user_id,
            error_code=error_code,
            message=message,
            correlation_id=correlation_id,
            persist=persist,
        )
