"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability (including rejected and failed attempts)
2. Debugging capability
3. Compliance readiness

The audit logger:
- Is async to match the storage layer
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from buildledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from buildledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("buildledger.audit")

    async def log(self, event: AuditEvent, persist: bool = True) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available and persist
        is set; checks that fail before any store call pass persist=False
        so the error reaches the caller without a storage round trip.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage and persist:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_budget_changed(
        self,
        project_id: UUID,
        project_code: str,
        entry_id: UUID,
        actor_id: UUID,
        old_value: Decimal,
        new_value: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a recorded budget change."""
        await self.log(AuditEventBuilder.budget_changed(
            project_id=project_id,
            project_code=project_code,
            entry_id=entry_id,
            actor_id=actor_id,
            old_value=old_value,
            new_value=new_value,
            correlation_id=correlation_id,
        ))

    async def log_budget_change_noop(
        self,
        project_id: UUID,
        actor_id: UUID,
        value: Decimal,
        correlation_id: Optional[UUID] = None,
        persist: bool = True,
    ) -> None:
        await self.log(AuditEventBuilder.budget_change_noop(
            project_id=project_id,
            actor_id=actor_id,
            value=value,
            correlation_id=correlation_id,
        ), persist=persist)

    async def log_budget_change_rejected(
        self,
        project_id: UUID,
        actor_id: Optional[UUID],
        error_code: str,
        message: str,
        correlation_id: Optional[UUID] = None,
        persist: bool = True,
    ) -> None:
        """Log a budget change refused by validation, authorization or the store."""
        await self.log(AuditEventBuilder.budget_change_rejected(
            project_id=project_id,
            actor_id=actor_id,
            error_code=error_code,
            message=message,
            correlation_id=correlation_id,
        ), persist=persist)

    async def log_budget_write_compensated(
        self,
        project_id: UUID,
        restored_value: Decimal,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_write_compensated(
            project_id=project_id,
            restored_value=restored_value,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_ledger_inconsistent(
        self,
        project_id: UUID,
        details: dict,
        error_message: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.ledger_inconsistent(
            project_id=project_id,
            details=details,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_project_created(
        self,
        project_id: UUID,
        code: str,
        planned_budget: Decimal,
        actor_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.project_created(
            project_id=project_id,
            code=code,
            planned_budget=planned_budget,
            actor_id=actor_id,
        ))

    async def log_project_updated(self, project_id: UUID, changes: dict, actor_id: UUID) -> None:
        await self.log(AuditEventBuilder.project_updated(project_id, changes, actor_id))

    async def log_user_created(self, user_id: UUID, email: str, role: str, actor_id: UUID) -> None:
        await self.log(AuditEventBuilder.user_created(user_id, email, role, actor_id))

    async def log_user_updated(self, user_id: UUID, changes: dict, actor_id: UUID) -> None:
        await self.log(AuditEventBuilder.user_updated(user_id, changes, actor_id))

    async def log_user_activation_changed(
        self,
        user_id: UUID,
        is_active: bool,
        actor_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.user_activation_changed(user_id, is_active, actor_id))

    async def log_signed_in(self, user_id: UUID) -> None:
        await self.log(AuditEventBuilder.signed_in(user_id))

    async def log_sign_in_rejected(self, email: str, reason: str) -> None:
        await self.log(AuditEventBuilder.sign_in_rejected(email, reason))

    async def log_signed_out(self, user_id: UUID) -> None:
        await self.log(AuditEventBuilder.signed_out(user_id))

    async def log_ai_analysis(self, project_id: UUID, length: int) -> None:
        await self.log(AuditEventBuilder.ai_analysis_generated(project_id, length))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a budget save).
    Pass it through all subsequent operations.
    """
    return uuid4()
