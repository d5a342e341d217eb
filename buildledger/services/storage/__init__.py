"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the hosted backend; the in-memory backend serves tests and
local development. Both are interchangeable behind the interfaces.
"""

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
from buildledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryBudgetLedgerStorage,
    InMemoryDatabase,
    InMemoryInvoiceStorage,
    InMemoryProjectStorage,
    InMemoryUserStorage,
)
from buildledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetLedgerStorage,
    GoogleSheetsClient,
    GoogleSheetsInvoiceStorage,
    GoogleSheetsProjectStorage,
    GoogleSheetsUserStorage,
)

__all__ = [
    # Interfaces
    "MUTABLE_PROJECT_FIELDS",
    "AuditStorageInterface",
    "BudgetLedgerStorageInterface",
    "InvoiceStorageInterface",
    "ProjectStorageInterface",
    "UserStorageInterface",
    # Exceptions
    "NotFoundError",
    "PersistenceError",
    "StaleBudgetError",
    "StoreConnectionError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryBudgetLedgerStorage",
    "InMemoryDatabase",
    "InMemoryInvoiceStorage",
    "InMemoryProjectStorage",
    "InMemoryUserStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBudgetLedgerStorage",
    "GoogleSheetsClient",
    "GoogleSheetsInvoiceStorage",
    "GoogleSheetsProjectStorage",
    "GoogleSheetsUserStorage",
]
