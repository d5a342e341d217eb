"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. Office staff can view projects and the budget ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (fine for one company's projects)
- No transactions: the guarded budget update and the chain check on
  ledger appends are read-compare-writes, so two processes racing within
  the same second can still both pass them. Within one process the budget
  authority serialises writes per project; across processes this backend
  is best effort.
- Limited query capabilities (we filter in Python)

Only connection establishment is retried. Reads and writes fail straight
through as PersistenceError so the caller decides whether to resubmit.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError as SchemaError
from tenacity import retry, stop_after_attempt, wait_exponential

from buildledger.config import get_settings
from buildledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from buildledger.models.budget import BudgetChangeEntry
from buildledger.models.project import Invoice, Project
from buildledger.models.records import RecordModel, utc_now
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
    StoreConnectionError,
    UserStorageInterface,
)


logger = structlog.get_logger(__name__)


# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @property
    def settings(self):
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StoreConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StoreConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StoreConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class _RecordSheet:
    """
    Maps one worksheet to one record model.

    Row 1 holds the column names; each further row is one record. Cells
    are matched to fields by that header, so columns may be reordered or
    added by hand in the spreadsheet.
    """

    def __init__(self, client: GoogleSheetsClient, title: str, model: type[RecordModel]):
        self._client = client
        self._title = title
        self._model = model
        self._columns = list(model.RECORD_FIELDS)
        self._header: Optional[list[str]] = None

    @property
    def sheet(self) -> gspread.Worksheet:
        return self._client.get_sheet(self._title, self._columns)

    def _set_header(self, names: list[str]) -> list[str]:
        names = [name.strip() for name in names]
        self._header = names if any(names) else list(self._columns)
        return self._header

    def header(self, sheet: gspread.Worksheet) -> list[str]:
        """Column names from row 1, read once per instance."""
        if self._header is None:
            self._set_header(sheet.row_values(1))
        return self._header

    def to_model(self, row: list[str], header: Optional[list[str]] = None):
        record = dict(zip(header or self._columns, row))
        try:
            return self._model.from_record(record)
        except SchemaError as e:
            raise PersistenceError(f"Malformed row in {self._title}: {e}")

    def read_all(self, strict: bool = False) -> list[tuple[int, Any]]:
        """
        All records with their 1-based sheet row numbers.

        Malformed rows are skipped and logged unless strict is set.
        """
        try:
            values = self.sheet.get_all_values()
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to read {self._title}: {e}")

        header = self._set_header(values[0] if values else [])
        records = []
        for idx, row in enumerate(values[1:], start=2):  # row 1 is header
            if not any(row):
                continue
            try:
                records.append((idx, self.to_model(row, header)))
            except PersistenceError as e:
                if strict:
                    raise
                logger.warning("malformed_row_skipped", sheet=self._title, row=idx, error=str(e))
        return records

    def find(self, record_id: UUID) -> Optional[tuple[int, Any]]:
        for idx, model in self.read_all():
            if model.id == record_id:
                return idx, model
        return None

    def append(self, model: RecordModel) -> None:
        try:
            sheet = self.sheet
            sheet.append_row(model.to_row(self.header(sheet)), value_input_option="RAW")
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to append to {self._title}: {e}")

    def overwrite(self, row_number: int, model: RecordModel) -> None:
        try:
            sheet = self.sheet
            for col_idx, value in enumerate(model.to_row(self.header(sheet)), start=1):
                sheet.update_cell(row_number, col_idx, value)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to update {self._title}: {e}")

    def update_column(self, row_number: int, column: str, value: str) -> None:
        try:
            sheet = self.sheet
            header = self.header(sheet)
            if column not in header:
                raise PersistenceError(f"Column {column} missing from {self._title}")
            sheet.update_cell(row_number, header.index(column) + 1, value)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to update {self._title}: {e}")


class GoogleSheetsInvoiceStorage(InvoiceStorageInterface):
    """Invoices, one per row."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._sheet = _RecordSheet(self._client, self._client.settings.invoices_sheet_name, Invoice)

    async def list_invoices(
        self,
        project_id: Optional[UUID] = None,
        include_unassigned: bool = True,
    ) -> list[Invoice]:
        invoices = [inv for _, inv in self._sheet.read_all()]
        if project_id is not None:
            invoices = [inv for inv in invoices if inv.project_id == project_id]
        if not include_unassigned:
            invoices = [inv for inv in invoices if inv.project_id is not None]
        invoices.sort(key=lambda inv: inv.date_issue, reverse=True)
        return invoices

    async def save_invoice(self, invoice: Invoice) -> Invoice:
        self._sheet.append(invoice)
        return invoice


class GoogleSheetsProjectStorage(ProjectStorageInterface):
    """
    Projects, one per row.

    Cost aggregates are computed from the invoices sheet on every read.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._sheet = _RecordSheet(self._client, self._client.settings.projects_sheet_name, Project)
        self._invoices = GoogleSheetsInvoiceStorage(self._client)

    async def get_project(self, project_id: UUID) -> Optional[Project]:
        found = self._sheet.find(project_id)
        if found is None:
            return None
        invoices = await self._invoices.list_invoices(project_id=project_id)
        return found[1].with_invoice_totals(invoices)

    async def list_projects(self) -> list[Project]:
        invoices = await self._invoices.list_invoices()
        return [p.with_invoice_totals(invoices) for _, p in self._sheet.read_all()]

    async def create_project(self, project: Project) -> Project:
        code = project.code.lower()
        if any(p.code.lower() == code for _, p in self._sheet.read_all()):
            raise PersistenceError(f"Project code already exists: {project.code}")
        self._sheet.append(project)
        return project

    async def update_project(self, project_id: UUID, changes: dict[str, Any]) -> Project:
        illegal = set(changes) - MUTABLE_PROJECT_FIELDS
        if illegal:
            raise PersistenceError(f"Fields cannot be updated here: {sorted(illegal)}")
        found = self._sheet.find(project_id)
        if found is None:
            raise NotFoundError(f"Project not found: {project_id}")

        row_number, project = found
        try:
            updated = Project.from_record({**project.to_record(), **changes})
        except SchemaError as e:
            raise PersistenceError(f"Invalid project update: {e}")
        self._sheet.overwrite(row_number, updated)
        return await self.get_project(project_id)

    async def update_planned_budget(
        self,
        project_id: UUID,
        expected_value: Decimal,
        new_value: Decimal,
    ) -> Project:
        found = self._sheet.find(project_id)
        if found is None:
            raise NotFoundError(f"Project not found: {project_id}")

        row_number, project = found
        if project.planned_budget != expected_value:
            raise StaleBudgetError(
                f"Budget of project {project_id} changed concurrently "
                f"(expected {expected_value}, found {project.planned_budget})",
                expected=expected_value,
                actual=project.planned_budget,
            )
        self._sheet.update_column(row_number, "planned_budget", str(new_value))
        return await self.get_project(project_id)


class GoogleSheetsBudgetLedgerStorage(BudgetLedgerStorageInterface):
    """
    The budget ledger sheet.

    Rows are only ever appended. The sheet row number doubles as the
    insertion sequence.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._sheet = _RecordSheet(
            self._client,
            self._client.settings.budget_changes_sheet_name,
            BudgetChangeEntry,
        )

    async def append_entry(self, entry: BudgetChangeEntry) -> BudgetChangeEntry:
        # Ledger reads are strict: a corrupt row must not be silently dropped
        existing = self._sheet.read_all(strict=True)
        latest = max(
            (e for _, e in existing if e.project_id == entry.project_id),
            key=lambda e: (e.created_at, e.sequence),
            default=None,
        )
        if latest is not None and latest.new_value != entry.old_value:
            raise StaleBudgetError(
                f"Ledger of project {entry.project_id} moved on "
                f"(entry starts at {entry.old_value}, latest is {latest.new_value})",
                expected=entry.old_value,
                actual=latest.new_value,
            )

        created_at = utc_now()
        if latest is not None and latest.created_at > created_at:
            created_at = latest.created_at

        last_sequence = max((e.sequence for _, e in existing), default=0)
        stored = entry.model_copy(update={
            "created_at": created_at,
            "sequence": last_sequence + 1,
        })
        self._sheet.append(stored)
        return stored

    async def list_entries(self, project_id: UUID) -> list[BudgetChangeEntry]:
        entries = [
            e for _, e in self._sheet.read_all(strict=True)
            if e.project_id == project_id
        ]
        entries.sort(key=lambda e: (e.created_at, e.sequence), reverse=True)
        return entries


class GoogleSheetsUserStorage(UserStorageInterface):
    """User profiles, one per row."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._sheet = _RecordSheet(
            self._client,
            self._client.settings.user_profiles_sheet_name,
            UserProfile,
        )

    async def get_user(self, user_id: UUID) -> Optional[UserProfile]:
        found = self._sheet.find(user_id)
        return found[1] if found else None

    async def get_user_by_email(self, email: str) -> Optional[UserProfile]:
        email = email.strip().lower()
        for _, profile in self._sheet.read_all():
            if profile.email == email:
                return profile
        return None

    async def get_users_by_ids(self, user_ids: Iterable[UUID]) -> dict[UUID, UserProfile]:
        wanted = set(user_ids)
        return {
            profile.id: profile
            for _, profile in self._sheet.read_all()
            if profile.id in wanted
        }

    async def list_users(self) -> list[UserProfile]:
        users = [profile for _, profile in self._sheet.read_all()]
        users.sort(key=lambda u: u.created_at, reverse=True)
        return users

    async def save_user(self, profile: UserProfile) -> UserProfile:
        if await self.get_user_by_email(profile.email):
            raise PersistenceError(f"User already exists: {profile.email}")
        self._sheet.append(profile)
        return profile

    async def update_user(self, user_id: UUID, changes: dict[str, Any]) -> UserProfile:
        found = self._sheet.find(user_id)
        if found is None:
            raise NotFoundError(f"User not found: {user_id}")
        row_number, profile = found
        try:
            updated = UserProfile.from_record({**profile.to_record(), **changes})
        except SchemaError as e:
            raise PersistenceError(f"Invalid profile update: {e}")
        self._sheet.overwrite(row_number, updated)
        return updated


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _get_sheet(self) -> gspread.Worksheet:
        return self._client.get_sheet(
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._get_sheet().get_all_values()[1:]
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, SchemaError) as e:
                logger.warning("malformed_audit_row_skipped", error=str(e))
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._get_sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning("audit_event_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events
