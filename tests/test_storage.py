"""
Tests for the storage backends.

The Google Sheets backend runs against an in-process fake worksheet,
so no credentials or network are needed.
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from buildledger.models import (
    AuditEventBuilder,
    BudgetChangeEntry,
    Invoice,
    Project,
    UserProfile,
)
from buildledger.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetLedgerStorage,
    GoogleSheetsProjectStorage,
    GoogleSheetsUserStorage,
    InMemoryAuditStorage,
    NotFoundError,
    PersistenceError,
    StaleBudgetError,
)


class FakeWorksheet:
    def __init__(self, columns):
        self.rows = [list(columns)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def row_values(self, row):
        return list(self.rows[row - 1]) if len(self.rows) >= row else []

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update_cell(self, row, col, value):
        self.rows[row - 1][col - 1] = str(value)


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient: one FakeWorksheet per title."""

    def __init__(self):
        self.settings = SimpleNamespace(
            projects_sheet_name="Projects",
            budget_changes_sheet_name="BudgetChanges",
            user_profiles_sheet_name="UserProfiles",
            invoices_sheet_name="Invoices",
            audit_sheet_name="AuditLog",
        )
        self.sheets = {}

    def get_sheet(self, title, columns, rows=1000):
        if title not in self.sheets:
            self.sheets[title] = FakeWorksheet(columns)
        return self.sheets[title]


class TestInMemoryProjectStorage:
    """Tests for the in-memory project store."""

    def test_create_and_read(self, project_storage, add_invoice):
        project = asyncio.run(project_storage.create_project(
            Project(name="Bridge", code="BR-1", planned_budget=Decimal("500"))
        ))
        add_invoice(project, "125")

        loaded = asyncio.run(project_storage.get_project(project.id))

        assert loaded.name == "Bridge"
        assert loaded.total_costs == Decimal("125")
        assert loaded.invoice_count == 1

    def test_missing_project(self, project_storage):
        assert asyncio.run(project_storage.get_project(uuid4())) is None

    def test_guarded_update(self, project_storage, project):
        updated = asyncio.run(project_storage.update_planned_budget(
            project.id, Decimal("1000000"), Decimal("5")
        ))
        assert updated.planned_budget == Decimal("5")

        with pytest.raises(StaleBudgetError):
            asyncio.run(project_storage.update_planned_budget(
                project.id, Decimal("1000000"), Decimal("6")
            ))

    def test_guarded_update_unknown_project(self, project_storage):
        with pytest.raises(NotFoundError):
            asyncio.run(project_storage.update_planned_budget(uuid4(), Decimal("0"), Decimal("1")))

    def test_malformed_record(self, project_storage, db, project):
        db.projects[str(project.id)]["planned_budget"] = "not money"
        with pytest.raises(PersistenceError):
            asyncio.run(project_storage.get_project(project.id))


class TestInMemoryLedgerStorage:
    """Tests for the in-memory ledger."""

    def _entry(self, project, admin, old="1000000", new="1100000"):
        return BudgetChangeEntry(
            project_id=project.id,
            changed_by=admin.id,
            old_value=Decimal(old),
            new_value=Decimal(new),
        )

    def test_append_assigns_sequence_and_timestamp(self, ledger_storage, project, admin, clock):
        first = asyncio.run(ledger_storage.append_entry(self._entry(project, admin)))
        second = asyncio.run(ledger_storage.append_entry(
            self._entry(project, admin, "1100000", "1200000")
        ))

        assert second.sequence > first.sequence
        assert second.created_at > first.created_at

    def test_timestamps_never_go_backwards(self, ledger_storage, project, admin, clock):
        first = asyncio.run(ledger_storage.append_entry(self._entry(project, admin)))
        clock.now = first.created_at - timedelta(hours=1)

        second = asyncio.run(ledger_storage.append_entry(
            self._entry(project, admin, "1100000", "1200000")
        ))

        assert second.created_at == first.created_at
        entries = asyncio.run(ledger_storage.list_entries(project.id))
        assert [e.id for e in entries] == [second.id, first.id]


class TestInMemoryUserStorage:
    """Tests for the in-memory profile store."""

    def test_lookup_by_email_and_ids(self, user_storage, admin, regular_user):
        assert asyncio.run(user_storage.get_user_by_email(" PETR@example.com ")).id == admin.id

        found = asyncio.run(user_storage.get_users_by_ids([admin.id, uuid4()]))

        assert list(found) == [admin.id]

    def test_duplicate_email(self, user_storage, admin):
        with pytest.raises(PersistenceError):
            asyncio.run(user_storage.save_user(UserProfile(email=admin.email)))

    def test_update_unknown_user(self, user_storage):
        with pytest.raises(NotFoundError):
            asyncio.run(user_storage.update_user(uuid4(), {"full_name": "X"}))


class TestInMemoryAuditStorage:
    """Tests for the in-memory audit log."""

    def test_interface_surface(self):
        assert AuditStorageInterface.__abstractmethods__ == {
            "append_event",
            "get_events_by_entity",
        }

    def test_events_by_entity(self, db):
        storage = InMemoryAuditStorage(db)
        project_id = uuid4()

        async def write():
            await storage.append_event(AuditEventBuilder.budget_write_compensated(
                project_id, Decimal("10"), "boom"
            ))
            await storage.append_event(AuditEventBuilder.signed_out(uuid4()))

        asyncio.run(write())
        events = asyncio.run(storage.get_events_by_entity("project", project_id))

        assert [e.event_type.value for e in events] == ["budget_write_compensated"]


class TestGoogleSheetsStorage:
    """Tests for the Google Sheets backend against a fake worksheet."""

    def test_project_round_trip_with_invoice_totals(self):
        client = FakeSheetsClient()
        storage = GoogleSheetsProjectStorage(client)
        project = asyncio.run(storage.create_project(
            Project(name="Bridge", code="BR-1", planned_budget=Decimal("500"), project_year=2025)
        ))
        client.get_sheet("Invoices", list(Invoice.RECORD_FIELDS)).append_row(Invoice(
            invoice_number="FV-1",
            project_id=project.id,
            supplier_name="Ocel CZ",
            total_amount=Decimal("120.50"),
            date_issue=date(2025, 5, 1),
        ).to_row())

        loaded = asyncio.run(storage.get_project(project.id))

        assert loaded.planned_budget == Decimal("500")
        assert loaded.project_year == 2025
        assert loaded.total_costs == Decimal("120.50")

    def test_guarded_update_writes_one_cell(self):
        client = FakeSheetsClient()
        storage = GoogleSheetsProjectStorage(client)
        project = asyncio.run(storage.create_project(
            Project(name="Bridge", code="BR-1", planned_budget=Decimal("500"))
        ))

        updated = asyncio.run(storage.update_planned_budget(project.id, Decimal("500"), Decimal("750")))

        assert updated.planned_budget == Decimal("750")
        with pytest.raises(StaleBudgetError):
            asyncio.run(storage.update_planned_budget(project.id, Decimal("500"), Decimal("1")))

    def test_rows_follow_the_header_order(self):
        """Columns reordered or added by hand in the spreadsheet still map by name."""
        client = FakeSheetsClient()
        client.sheets["Projects"] = FakeWorksheet(
            list(reversed(Project.RECORD_FIELDS)) + ["site_manager"]
        )
        storage = GoogleSheetsProjectStorage(client)

        project = asyncio.run(storage.create_project(
            Project(name="Bridge", code="BR-1", planned_budget=Decimal("500"))
        ))
        asyncio.run(storage.update_planned_budget(project.id, Decimal("500"), Decimal("750")))

        sheet = client.sheets["Projects"]
        row = dict(zip(sheet.rows[0], sheet.rows[1]))
        assert row["name"] == "Bridge"
        assert row["code"] == "BR-1"
        assert row["planned_budget"] == "750"
        assert row["site_manager"] == ""
        loaded = asyncio.run(storage.get_project(project.id))
        assert loaded.name == "Bridge"
        assert loaded.planned_budget == Decimal("750")

    def test_ledger_append_is_chain_checked(self):
        ledger = GoogleSheetsBudgetLedgerStorage(FakeSheetsClient())
        project_id, actor = uuid4(), uuid4()

        def entry(old, new):
            return BudgetChangeEntry(
                project_id=project_id,
                changed_by=actor,
                old_value=Decimal(old),
                new_value=Decimal(new),
            )

        asyncio.run(ledger.append_entry(entry("0", "10")))
        with pytest.raises(StaleBudgetError):
            asyncio.run(ledger.append_entry(entry("0", "20")))

        assert len(asyncio.run(ledger.list_entries(project_id))) == 1

    def test_duplicate_code(self):
        storage = GoogleSheetsProjectStorage(FakeSheetsClient())
        asyncio.run(storage.create_project(Project(name="A", code="X-1")))
        with pytest.raises(PersistenceError):
            asyncio.run(storage.create_project(Project(name="B", code="x-1")))

    def test_ledger_sequence_and_order(self):
        client = FakeSheetsClient()
        ledger = GoogleSheetsBudgetLedgerStorage(client)
        project_id, actor = uuid4(), uuid4()

        async def write():
            stored = []
            for old, new in [("0", "10"), ("10", "20"), ("20", "5")]:
                stored.append(await ledger.append_entry(BudgetChangeEntry(
                    project_id=project_id,
                    changed_by=actor,
                    old_value=Decimal(old),
                    new_value=Decimal(new),
                    reason="r",
                )))
            return stored

        stored = asyncio.run(write())
        entries = asyncio.run(ledger.list_entries(project_id))

        assert [s.sequence for s in stored] == [1, 2, 3]
        assert [e.new_value for e in entries] == [Decimal("5"), Decimal("20"), Decimal("10")]
        assert entries[0].change_amount == Decimal("-15")

    def test_corrupt_ledger_row_is_an_error(self):
        client = FakeSheetsClient()
        ledger = GoogleSheetsBudgetLedgerStorage(client)
        sheet = client.get_sheet("BudgetChanges", list(BudgetChangeEntry.RECORD_FIELDS))
        sheet.append_row([str(uuid4()), str(uuid4()), str(uuid4()), "abc", "1", "", "", "", "1"])

        with pytest.raises(PersistenceError):
            asyncio.run(ledger.list_entries(uuid4()))

    def test_malformed_profile_rows_are_skipped(self):
        client = FakeSheetsClient()
        users = GoogleSheetsUserStorage(client)
        good = asyncio.run(users.save_user(UserProfile(email="a@example.com", full_name="A B")))
        sheet = client.get_sheet("UserProfiles", list(UserProfile.RECORD_FIELDS))
        sheet.append_row([str(uuid4()), "not-an-email"])

        assert [u.id for u in asyncio.run(users.list_users())] == [good.id]

    def test_profile_update(self):
        users = GoogleSheetsUserStorage(FakeSheetsClient())
        profile = asyncio.run(users.save_user(UserProfile(email="a@example.com")))

        updated = asyncio.run(users.update_user(profile.id, {"full_name": "Anna Bila"}))

        assert updated.full_name == "Anna Bila"
        assert asyncio.run(users.get_user(profile.id)).full_name == "Anna Bila"

    def test_audit_round_trip(self):
        storage = GoogleSheetsAuditStorage(FakeSheetsClient())
        project_id = uuid4()
        event = AuditEventBuilder.budget_write_compensated(project_id, Decimal("10"), "boom")

        assert asyncio.run(storage.append_event(event)) is True
        events = asyncio.run(storage.get_events_by_entity("project", project_id))

        assert len(events) == 1
        assert events[0].event_type == event.event_type
        assert events[0].details == {"restored_value": "10"}

    def test_audit_write_failure_is_swallowed(self):
        class BrokenClient(FakeSheetsClient):
            def get_sheet(self, title, columns, rows=1000):
                raise RuntimeError("quota")

        storage = GoogleSheetsAuditStorage(BrokenClient())
        event = AuditEventBuilder.signed_out(uuid4())
        assert asyncio.run(storage.append_event(event)) is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
