"""Invoice listing and payment statistics."""

from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from pydantic import BaseModel

from buildledger.models.project import Invoice, PaymentStatus
from buildledger.services.storage import InvoiceStorageInterface


class InvoiceStats(BaseModel):
    """Counts and amounts per payment status."""

    total_count: int = 0
    total_amount: Decimal = Decimal("0")
    paid_count: int = 0
    paid_amount: Decimal = Decimal("0")
    pending_count: int = 0
    pending_amount: Decimal = Decimal("0")
    overdue_count: int = 0
    overdue_amount: Decimal = Decimal("0")


class InvoiceService:
    """Read access to supplier invoices."""

    def __init__(self, storage: InvoiceStorageInterface):
        self._storage = storage

    async def list_invoices(
        self,
        include_unassigned: bool = False,
        project_id: Optional[UUID] = None,
        search: Optional[str] = None,
    ) -> list[Invoice]:
        """
        Invoices, newest issue date first.

        Unassigned invoices (no project) are left out unless asked for.
        `search` matches invoice number, project name or supplier name,
        case-insensitively.
        """
        invoices = await self._storage.list_invoices(
            project_id=project_id,
            include_unassigned=include_unassigned,
        )

        if search and search.strip():
            term = search.strip().casefold()
            invoices = [
                inv for inv in invoices
                if term in inv.invoice_number.casefold()
                or term in (inv.project_name or "").casefold()
                or term in inv.supplier_name.casefold()
            ]

        return sorted(invoices, key=lambda inv: inv.date_issue, reverse=True)

    @staticmethod
    def stats(invoices: Iterable[Invoice]) -> InvoiceStats:
        stats = InvoiceStats()
        for inv in invoices:
            stats.total_count += 1
            stats.total_amount += inv.total_amount
            if inv.payment_status == PaymentStatus.PAID:
                stats.paid_count += 1
                stats.paid_amount += inv.total_amount
            elif inv.payment_status == PaymentStatus.PENDING:
                stats.pending_count += 1
                stats.pending_amount += inv.total_amount
            elif inv.payment_status == PaymentStatus.OVERDUE:
                stats.overdue_count += 1
                stats.overdue_amount += inv.total_amount
        return stats
