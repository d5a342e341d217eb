"""
Audit Models for BuildLedger

Every significant action in the system is logged for audit purposes.
This is separate from the budget ledger: the ledger is business data
with invariants, the audit log is an operational trail (including
rejected attempts and failures) for debugging and accountability.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from buildledger.models.records import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Budget ledger
    BUDGET_CHANGED = "budget_changed"
    BUDGET_CHANGE_NOOP = "budget_change_noop"
    BUDGET_CHANGE_REJECTED = "budget_change_rejected"
    BUDGET_WRITE_COMPENSATED = "budget_write_compensated"
    LEDGER_INCONSISTENT = "ledger_inconsistent"

    # Projects
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"

    # Users and sessions
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_ACTIVATION_CHANGED = "user_activation_changed"
    SIGNED_IN = "signed_in"
    SIGN_IN_REJECTED = "sign_in_rejected"
    SIGNED_OUT = "signed_out"

    # AI
    AI_ANALYSIS_GENERATED = "ai_analysis_generated"

    # System events
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utc_now)

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'project', 'user')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one budget save)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    # Who did it
    actor_id: Optional[UUID] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def _money(value: Decimal) -> str:
    return format(value, ",")


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.budget_changed(entry, project_code, correlation_id)
    """

    @staticmethod
    def budget_changed(
        project_id: UUID,
        project_code: str,
        entry_id: UUID,
        actor_id: UUID,
        old_value: Decimal,
        new_value: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CHANGED,
            entity_type="project",
            entity_id=project_id,
            correlation_id=correlation_id,
            actor_id=actor_id,
            description=f"Budget of {project_code} changed: {_money(old_value)} -> {_money(new_value)}",
            details={
                "entry_id": str(entry_id),
                "old_value": str(old_value),
                "new_value": str(new_value),
                "change_amount": str(new_value - old_value),
            },
            is_user_action=True,
        )

    @staticmethod
    def budget_change_noop(
        project_id: UUID,
        actor_id: UUID,
        value: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CHANGE_NOOP,
            severity=AuditSeverity.DEBUG,
            entity_type="project",
            entity_id=project_id,
            correlation_id=correlation_id,
            actor_id=actor_id,
            description="Budget change skipped: value unchanged",
            details={"value": str(value)},
            is_user_action=True,
        )

    @staticmethod
    def budget_change_rejected(
        project_id: UUID,
        actor_id: Optional[UUID],
        error_code: str,
        message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CHANGE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="project",
            entity_id=project_id,
            correlation_id=correlation_id,
            actor_id=actor_id,
            description=f"Budget change rejected ({error_code})",
            error_code=error_code,
            error_message=message,
            is_user_action=True,
        )

    @staticmethod
    def budget_write_compensated(
        project_id: UUID,
        restored_value: Decimal,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_WRITE_COMPENSATED,
            severity=AuditSeverity.ERROR,
            entity_type="project",
            entity_id=project_id,
            correlation_id=correlation_id,
            description="Ledger append failed; project budget restored",
            details={"restored_value": str(restored_value)},
            error_message=error_message,
        )

    @staticmethod
    def ledger_inconsistent(
        project_id: UUID,
        details: dict,
        error_message: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_INCONSISTENT,
            severity=AuditSeverity.CRITICAL,
            entity_type="project",
            entity_id=project_id,
            correlation_id=correlation_id,
            description="Project budget and budget ledger disagree",
            details=details,
            error_message=error_message,
        )

    @staticmethod
    def project_created(
        project_id: UUID,
        code: str,
        planned_budget: Decimal,
        actor_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROJECT_CREATED,
            entity_type="project",
            entity_id=project_id,
            actor_id=actor_id,
            description=f"Project created: {code}",
            details={"planned_budget": str(planned_budget)},
            is_user_action=True,
        )

    @staticmethod
    def project_updated(
        project_id: UUID,
        changes: dict,
        actor_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROJECT_UPDATED,
            entity_type="project",
            entity_id=project_id,
            actor_id=actor_id,
            description=f"Project updated: {', '.join(sorted(changes))}",
            details=changes,
            is_user_action=True,
        )

    @staticmethod
    def user_created(user_id: UUID, email: str, role: str, actor_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_CREATED,
            entity_type="user",
            entity_id=user_id,
            actor_id=actor_id,
            description=f"User created: {email}",
            details={"role": role},
            is_user_action=True,
        )

    @staticmethod
    def user_updated(user_id: UUID, changes: dict, actor_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_UPDATED,
            entity_type="user",
            entity_id=user_id,
            actor_id=actor_id,
            description=f"User updated: {', '.join(sorted(changes))}",
            details=changes,
            is_user_action=True,
        )

    @staticmethod
    def user_activation_changed(user_id: UUID, is_active: bool, actor_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_ACTIVATION_CHANGED,
            entity_type="user",
            entity_id=user_id,
            actor_id=actor_id,
            description="User activated" if is_active else "User deactivated",
            details={"is_active": is_active},
            is_user_action=True,
        )

    @staticmethod
    def signed_in(user_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNED_IN,
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            description="User signed in",
            is_user_action=True,
        )

    @staticmethod
    def sign_in_rejected(email: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGN_IN_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            description="Sign-in rejected",
            details={"email": email},
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def signed_out(user_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNED_OUT,
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            description="User signed out",
            is_user_action=True,
        )

    @staticmethod
    def ai_analysis_generated(project_id: UUID, length: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_ANALYSIS_GENERATED,
            entity_type="project",
            entity_id=project_id,
            description="AI project analysis generated",
            details={"characters": length},
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
