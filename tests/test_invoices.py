"""Tests for invoice listing and statistics."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from buildledger.models import PaymentStatus
from buildledger.services.invoices import InvoiceService


@pytest.fixture
def service(invoice_storage):
    return InvoiceService(invoice_storage)


@pytest.fixture
def invoices(project, add_project, add_invoice):
    other = add_project("Bridge", "BR-1", "10")
    return [
        add_invoice(project, "1000", date(2025, 1, 10), PaymentStatus.PAID, "FV-001", "Beton Praha"),
        add_invoice(project, "2500", date(2025, 3, 5), PaymentStatus.PENDING, "FV-002", "Stavmat"),
        add_invoice(other, "400", date(2025, 2, 1), PaymentStatus.OVERDUE, "FV-003", "Ocel CZ"),
        add_invoice(None, "99", date(2025, 4, 1), PaymentStatus.PENDING, "FV-004", "Unknown s.r.o."),
    ]


class TestListInvoices:
    """Tests for InvoiceService.list_invoices."""

    def test_newest_first_without_unassigned(self, service, invoices):
        result = asyncio.run(service.list_invoices())
        assert [i.invoice_number for i in result] == ["FV-002", "FV-003", "FV-001"]

    def test_include_unassigned(self, service, invoices):
        result = asyncio.run(service.list_invoices(include_unassigned=True))
        assert result[0].invoice_number == "FV-004"
        assert len(result) == 4

    def test_by_project(self, service, invoices, project):
        result = asyncio.run(service.list_invoices(project_id=project.id))
        assert {i.invoice_number for i in result} == {"FV-001", "FV-002"}

    @pytest.mark.parametrize("term, expected", [
        ("fv-003", ["FV-003"]),
        ("beton", ["FV-001"]),
        ("bridge", ["FV-003"]),
        ("residential", ["FV-002", "FV-001"]),
    ])
    def test_search(self, service, invoices, term, expected):
        result = asyncio.run(service.list_invoices(search=term))
        assert [i.invoice_number for i in result] == expected


class TestInvoiceStats:
    """Tests for payment statistics."""

    def test_stats(self, invoices):
        stats = InvoiceService.stats(invoices)

        assert stats.total_count == 4
        assert stats.total_amount == Decimal("3999")
        assert stats.paid_count == 1
        assert stats.paid_amount == Decimal("1000")
        assert stats.pending_count == 2
        assert stats.pending_amount == Decimal("2599")
        assert stats.overdue_count == 1
        assert stats.overdue_amount == Decimal("400")

    def test_empty_stats(self):
        stats = InvoiceService.stats([])
        assert stats.total_count == 0
        assert stats.total_amount == Decimal("0")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
