"""
Shared fixtures.

Everything runs against the in-memory backend with a controllable
clock. No network access, no real credentials.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from buildledger.audit import AuditLogger
from buildledger.auth import Session
from buildledger.budget import BudgetLedgerService, BudgetValueAuthority
from buildledger.config import get_settings
from buildledger.models import (
    Invoice,
    PaymentStatus,
    Project,
    UserProfile,
    UserRole,
)
from buildledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryBudgetLedgerStorage,
    InMemoryDatabase,
    InMemoryInvoiceStorage,
    InMemoryProjectStorage,
    InMemoryUserStorage,
)


class SteppingClock:
    """Returns `start`, then advances by `step` on every call."""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.now = start or datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep tests independent of any local .env or exported variables."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "STORAGE_BACKEND",
        "HISTORY_PREVIEW_COUNT",
        "UNKNOWN_ACTOR_NAME",
        "PROJECTS_PAGE_SIZE",
        "CURRENCY_CODE",
        "GEMINI_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def db(clock):
    return InMemoryDatabase(clock=clock)


@pytest.fixture
def project_storage(db):
    return InMemoryProjectStorage(db)


@pytest.fixture
def ledger_storage(db):
    return InMemoryBudgetLedgerStorage(db)


@pytest.fixture
def user_storage(db):
    return InMemoryUserStorage(db)


@pytest.fixture
def invoice_storage(db):
    return InMemoryInvoiceStorage(db)


@pytest.fixture
def audit_logger(db):
    return AuditLogger(InMemoryAuditStorage(db))


@pytest.fixture
def add_user(db):
    """Write a profile straight into the store."""

    def _add(full_name="Jana Novakova", role=UserRole.USER, is_active=True, email=None):
        profile = UserProfile(
            email=email or f"{(full_name or 'anon').split()[0].lower()}@example.com",
            full_name=full_name,
            role=role,
            is_active=is_active,
        )
        db.user_profiles[str(profile.id)] = profile.to_record()
        return profile

    return _add


@pytest.fixture
def admin(add_user):
    return add_user("Petr Svoboda", role=UserRole.ADMIN, email="petr@example.com")


@pytest.fixture
def regular_user(add_user):
    return add_user("Eva Dvorakova", role=UserRole.USER, email="eva@example.com")


@pytest.fixture
def admin_session(admin):
    return Session(user_id=admin.id, profile=admin, access_token="admin-token")


@pytest.fixture
def user_session(regular_user):
    return Session(user_id=regular_user.id, profile=regular_user, access_token="user-token")


@pytest.fixture
def add_project(db):
    def _add(name="Residential Block A", code="RB-A", planned_budget="1000000", **fields):
        project = Project(name=name, code=code, planned_budget=Decimal(planned_budget), **fields)
        db.projects[str(project.id)] = project.to_record()
        return project

    return _add


@pytest.fixture
def project(add_project):
    return add_project(project_year=2024)


@pytest.fixture
def add_invoice(db):
    def _add(project=None, amount="1000", issued=date(2025, 1, 15),
             status=PaymentStatus.PENDING, number=None, supplier="Stavmat s.r.o."):
        invoice = Invoice(
            invoice_number=number or f"INV-{len(db.invoices) + 1:04d}",
            project_id=project.id if project else None,
            project_name=project.name if project else None,
            supplier_name=supplier,
            total_amount=Decimal(amount),
            date_issue=issued,
            payment_status=status,
        )
        db.invoices[str(invoice.id)] = invoice.to_record()
        return invoice

    return _add


@pytest.fixture
def authority(project_storage, ledger_storage, audit_logger, user_storage):
    return BudgetValueAuthority(project_storage, ledger_storage, audit_logger, users=user_storage)


@pytest.fixture
def ledger_service(ledger_storage, user_storage, project_storage):
    return BudgetLedgerService(ledger_storage, user_storage, projects=project_storage)


@pytest.fixture
def event_types(db):
    """Audit event types recorded so far, in order."""
    return lambda: [e.event_type.value for e in db.audit_events]
