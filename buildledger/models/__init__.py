"""
Data Models Package

This package contains all Pydantic models used in BuildLedger.
All data crossing the storage edge must conform to these schemas.
"""

from buildledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from buildledger.models.budget import (
    BudgetChangeEntry,
    BudgetChangeOutcome,
    BudgetHistoryEntry,
    ChainBreak,
    ChainReport,
)
from buildledger.models.project import (
    Invoice,
    PaymentStatus,
    Project,
    ProjectStatus,
)
from buildledger.models.records import RecordModel, utc_now
from buildledger.models.user import (
    UNKNOWN_ACTOR,
    CreateUserData,
    UpdateUserData,
    UserProfile,
    UserRole,
)

__all__ = [
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Budget ledger models
    "BudgetChangeEntry",
    "BudgetChangeOutcome",
    "BudgetHistoryEntry",
    "ChainBreak",
    "ChainReport",
    # Project models
    "Invoice",
    "PaymentStatus",
    "Project",
    "ProjectStatus",
    # Records
    "RecordModel",
    "utc_now",
    # User models
    "UNKNOWN_ACTOR",
    "CreateUserData",
    "UpdateUserData",
    "UserProfile",
    "UserRole",
]
