"""
Budget Ledger Models

DESIGN DECISION: The budget ledger is append-only. A BudgetChangeEntry is
created exactly once, together with the project's budget update, and is
never modified or deleted afterwards.

change_amount is derived from old_value/new_value. It is stored (so the
ledger row is self-describing) but a supplied value that disagrees with
the snapshots is rejected.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from buildledger.models.project import Project
from buildledger.models.records import RecordModel, utc_now


class BudgetChangeEntry(RecordModel):
    """One immutable ledger row: a single budget modification."""

    RECORD_FIELDS = (
        "id",
        "project_id",
        "changed_by",
        "old_value",
        "new_value",
        "change_amount",
        "reason",
        "created_at",
        "sequence",
    )

    id: UUID = Field(default_factory=uuid4)
    project_id: UUID
    changed_by: UUID
    old_value: Annotated[Decimal, Field(ge=0)]
    new_value: Annotated[Decimal, Field(ge=0)]
    change_amount: Optional[Decimal] = None
    reason: Optional[str] = Field(default=None, max_length=1000)

    # Assigned by the store on append
    created_at: datetime = Field(default_factory=utc_now)
    sequence: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def derive_change_amount(self) -> 'BudgetChangeEntry':
        """Fill in change_amount, or reject one that contradicts the snapshots."""
        expected = self.new_value - self.old_value
        if self.change_amount is None:
            self.change_amount = expected
        elif self.change_amount != expected:
            raise ValueError(
                f"change_amount {self.change_amount} does not match "
                f"new_value - old_value ({expected})"
            )
        return self

    @property
    def is_increase(self) -> bool:
        return self.change_amount > 0


class BudgetHistoryEntry(BudgetChangeEntry):
    """A ledger entry joined with the actor's display name."""

    actor_name: str


class BudgetChangeOutcome(BaseModel):
    """
    Result of proposing a budget change.

    changed is False for the no-op case (new value equals the current
    budget); entry is None then and project is the untouched snapshot.
    """

    changed: bool
    project: Project
    entry: Optional[BudgetChangeEntry] = None


class ChainBreak(BaseModel):
    """One place where the old_value -> new_value walk is broken."""

    entry_id: UUID
    position: int
    expected_old_value: Decimal
    actual_old_value: Decimal


class ChainReport(BaseModel):
    """Result of walking a project's ledger chronologically."""

    project_id: UUID
    entry_count: int
    breaks: list[ChainBreak] = Field(default_factory=list)
    latest_value: Optional[Decimal] = None
    current_budget: Optional[Decimal] = None

    @property
    def budget_matches_ledger(self) -> bool:
        """Project budget equals the newest entry's new_value (or there are no entries)."""
        if self.latest_value is None or self.current_budget is None:
            return True
        return self.latest_value == self.current_budget

    @property
    def is_consistent(self) -> bool:
        return not self.breaks and self.budget_matches_ledger
