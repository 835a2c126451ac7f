"""
Audit Logger

DESIGN DECISION: Every backup, restore and scheduling decision is logged.
Automatic backups fail silently as far as the user is concerned, so
this log is the only place those failures show up.

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from aivest_backup.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from aivest_backup.services.storage import AuditStorageInterface


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
    2. An audit storage backend, when one is configured
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
        self._logger = structlog.get_logger("aivest_backup.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

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

        if self._storage:
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

    async def log_backup_started(
        self,
        user_id: str,
        correlation_id: UUID,
        is_user_action: bool = False,
    ) -> None:
        await self.log(AuditEventBuilder.backup_started(
            user_id=user_id,
            correlation_id=correlation_id,
            is_user_action=is_user_action,
        ))

    async def log_backup_completed(
        self,
        user_id: str,
        record_count: int,
        integrity_digest: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.backup_completed(
            user_id=user_id,
            record_count=record_count,
            integrity_digest=integrity_digest,
            correlation_id=correlation_id,
        ))

    async def log_backup_failed(
        self,
        user_id: str,
        stage: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.backup_failed(
            user_id=user_id,
            stage=stage,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_collection_degraded(
        self,
        failed_collections: list[str],
        cause: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.collection_degraded(
            failed_collections=failed_collections,
            cause=cause,
            correlation_id=correlation_id,
        ))

    async def log_backup_cleared(self, user_id: str, deleted: bool) -> None:
        await self.log(AuditEventBuilder.backup_cleared(user_id=user_id, deleted=deleted))

    async def log_restore_completed(
        self,
        user_id: str,
        restored_categories: list[str],
        savings_target_restored: bool,
        integrity_verified: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.restore_completed(
            user_id=user_id,
            restored_categories=restored_categories,
            savings_target_restored=savings_target_restored,
            integrity_verified=integrity_verified,
            correlation_id=correlation_id,
        ))

    async def log_restore_failed(
        self,
        user_id: str,
        reason: str,
        error_message: Optional[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.restore_failed(
            user_id=user_id,
            reason=reason,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_no_backup_found(self, user_id: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.no_backup_found(
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_integrity_mismatch(
        self,
        user_id: str,
        stored_digest: str,
        computed_digest: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.integrity_mismatch(
            user_id=user_id,
            stored_digest=stored_digest,
            computed_digest=computed_digest,
            correlation_id=correlation_id,
        ))

    async def log_auto_backup_triggered(self, user_id: str, success: bool) -> None:
        await self.log(AuditEventBuilder.auto_backup_triggered(user_id=user_id, success=success))

    async def log_auto_backup_cancelled(self, user_id: Optional[str]) -> None:
        await self.log(AuditEventBuilder.auto_backup_cancelled(user_id=user_id))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

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

    Use this at the start of a backup or restore and pass it through
    every event that operation emits.
    """
    return uuid4()
