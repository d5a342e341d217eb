"""
Project and Invoice Models

A project carries the current approved budget. Cost figures are not
stored on the project; they are derived from the project's invoices
every time the project is read (the "dashboard view" of a project).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Iterable, Optional
from uuid import UUID, uuid4

from pydantic import Field

from buildledger.models.records import RecordModel, utc_now


Money = Annotated[Decimal, Field(ge=0)]


# =============================================================================
# ENUMS
# =============================================================================

class ProjectStatus(str, Enum):
    """Lifecycle status of a construction project."""
    ACTIVE = "active"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"


class PaymentStatus(str, Enum):
    """Payment status for an invoice."""
    PAID = "paid"
    PENDING = "pending"
    OVERDUE = "overdue"


# =============================================================================
# INVOICE
# =============================================================================

class Invoice(RecordModel):
    """A supplier invoice, optionally assigned to a project."""

    RECORD_FIELDS = (
        "id",
        "invoice_number",
        "project_id",
        "project_name",
        "supplier_name",
        "total_amount",
        "date_issue",
        "payment_status",
    )

    id: UUID = Field(default_factory=uuid4)
    invoice_number: str = Field(..., min_length=1, max_length=100)
    project_id: Optional[UUID] = None
    project_name: Optional[str] = None
    supplier_name: str = Field(..., min_length=1, max_length=200)
    total_amount: Money
    date_issue: date
    payment_status: PaymentStatus = PaymentStatus.PENDING


# =============================================================================
# PROJECT
# =============================================================================

class Project(RecordModel):
    """
    A construction project under budget tracking.

    INVARIANT: planned_budget equals the new_value of the most recent
    budget change for this project, or its creation value if there are
    none. It is only ever changed by the budget authority.
    """

    RECORD_FIELDS = (
        "id",
        "name",
        "code",
        "status",
        "planned_budget",
        "project_year",
        "notes",
        "created_at",
    )

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    code: str = Field(..., min_length=1, max_length=50)
    status: ProjectStatus = ProjectStatus.ACTIVE
    planned_budget: Money = Decimal("0")
    project_year: Optional[int] = Field(default=None, ge=1900, le=2200)
    notes: Optional[str] = Field(default=None, max_length=2000)
    created_at: datetime = Field(default_factory=utc_now)

    # Derived from invoices at read time, never persisted
    total_costs: Money = Decimal("0")
    invoice_count: int = Field(default=0, ge=0)
    paid_invoice_count: int = Field(default=0, ge=0)
    pending_invoice_count: int = Field(default=0, ge=0)
    overdue_invoice_count: int = Field(default=0, ge=0)
    first_invoice_date: Optional[date] = None
    last_invoice_date: Optional[date] = None

    @property
    def budget_usage_percent(self) -> float:
        """Share of the budget already spent, in percent (0 without a budget)."""
        if self.planned_budget == 0:
            return 0.0
        return float(self.total_costs / self.planned_budget * 100)

    @property
    def remaining_budget(self) -> Decimal:
        """Budget left after recorded costs (negative when overspent)."""
        return self.planned_budget - self.total_costs

    @property
    def is_empty(self) -> bool:
        """No invoices and no budget - hidden from listings by default."""
        return self.invoice_count == 0 and self.planned_budget == 0

    def with_invoice_totals(self, invoices: Iterable[Invoice]) -> "Project":
        """Return a copy with cost aggregates computed from its invoices."""
        own = [inv for inv in invoices if inv.project_id == self.id]
        dates = [inv.date_issue for inv in own]
        return self.model_copy(update={
            "total_costs": sum((inv.total_amount for inv in own), Decimal("0")),
            "invoice_count": len(own),
            "paid_invoice_count": sum(1 for inv in own if inv.payment_status == PaymentStatus.PAID),
            "pending_invoice_count": sum(1 for inv in own if inv.payment_status == PaymentStatus.PENDING),
            "overdue_invoice_count": sum(1 for inv in own if inv.payment_status == PaymentStatus.OVERDUE),
            "first_invoice_date": min(dates) if dates else None,
            "last_invoice_date": max(dates) if dates else None,
        })
