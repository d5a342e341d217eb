"""
Budget Ledger Service

Read side of the ledger: the project's budget history, newest first,
joined with the display name of whoever made each change.
"""

from typing import Iterable, Optional
from uuid import UUID

import structlog

from buildledger.exceptions import PersistenceError
from buildledger.models.budget import (
    BudgetChangeEntry,
    BudgetHistoryEntry,
    ChainBreak,
    ChainReport,
)
from buildledger.models.user import UNKNOWN_ACTOR
from buildledger.services.storage import (
    BudgetLedgerStorageInterface,
    ProjectStorageInterface,
    UserStorageInterface,
)


logger = structlog.get_logger(__name__)


def history_order(entry: BudgetChangeEntry):
    """Sort key: timestamp, then insertion sequence for identical timestamps."""
    return (entry.created_at, entry.sequence)


class BudgetLedgerService:
    """Ordered, actor-annotated access to a project's budget ledger."""

    def __init__(
        self,
        ledger: BudgetLedgerStorageInterface,
        users: UserStorageInterface,
        projects: Optional[ProjectStorageInterface] = None,
        unknown_actor_name: str = UNKNOWN_ACTOR,
    ):
        self._ledger = ledger
        self._users = users
        self._projects = projects
        self._unknown_actor_name = unknown_actor_name

    async def get_history(self, project_id: UUID) -> list[BudgetHistoryEntry]:
        """
        Return every budget change of a project, newest first.

        The actor name falls back to the unknown-actor label when the
        profile is missing, has no name, or cannot be loaded. A failed
        actor lookup is logged and does not fail the history read.

        Raises:
            PersistenceError: The ledger itself could not be read
        """
        entries = sorted(
            await self._ledger.list_entries(project_id),
            key=history_order,
            reverse=True,
        )
        if not entries:
            return []

        names = await self._actor_names(e.changed_by for e in entries)
        return [
            BudgetHistoryEntry(
                **entry.model_dump(),
                actor_name=names.get(entry.changed_by) or self._unknown_actor_name,
            )
            for entry in entries
        ]

    async def latest_change(self, project_id: UUID) -> Optional[BudgetHistoryEntry]:
        history = await self.get_history(project_id)
        return history[0] if history else None

    async def verify_chain(
        self,
        project_id: UUID,
        original_budget=None,
    ) -> ChainReport:
        """
        Walk the ledger oldest first and check every link.

        Entry k's old_value must equal entry k-1's new_value. When
        `original_budget` is given, the first entry's old_value must
        equal it. If project storage is configured, the report also
        carries the project's current budget for comparison with the
        newest entry.
        """
        entries = sorted(await self._ledger.list_entries(project_id), key=history_order)

        breaks = []
        expected = original_budget
        for position, entry in enumerate(entries):
            if expected is not None and entry.old_value != expected:
                breaks.append(ChainBreak(
                    entry_id=entry.id,
                    position=position,
                    expected_old_value=expected,
                    actual_old_value=entry.old_value,
                ))
            expected = entry.new_value

        current_budget = None
        if self._projects is not None:
            project = await self._projects.get_project(project_id)
            if project is not None:
                current_budget = project.planned_budget

        report = ChainReport(
            project_id=project_id,
            entry_count=len(entries),
            breaks=breaks,
            latest_value=entries[-1].new_value if entries else None,
            current_budget=current_budget,
        )
        if not report.is_consistent:
            logger.warning(
                "ledger_chain_broken",
                project_id=str(project_id),
                breaks=len(breaks),
                budget_matches_ledger=report.budget_matches_ledger,
            )
        return report

    async def _actor_names(self, actor_ids: Iterable[UUID]) -> dict[UUID, Optional[str]]:
        try:
            profiles = await self._users.get_users_by_ids(set(actor_ids))
        except PersistenceError as e:
            logger.warning("actor_lookup_failed", error=str(e))
            return {}
        return {user_id: profile.full_name for user_id, profile in profiles.items()}
