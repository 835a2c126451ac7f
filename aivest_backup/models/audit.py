"""
Audit Models for AIVest Backup

Every backup, restore and scheduling decision is recorded as an
AuditEvent. This provides:
1. Diagnostics for failures that are never surfaced to the user
2. A history of when data left and came back to the device
3. Evidence of integrity mismatches, which are deliberately non-fatal

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from aivest_backup.models.records import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Backup
    BACKUP_STARTED = "backup_started"
    BACKUP_COMPLETED = "backup_completed"
    BACKUP_FAILED = "backup_failed"
    COLLECTION_DEGRADED = "collection_degraded"
    BACKUP_CLEARED = "backup_cleared"

    # Restore
    RESTORE_STARTED = "restore_started"
    RESTORE_COMPLETED = "restore_completed"
    RESTORE_FAILED = "restore_failed"
    NO_BACKUP_FOUND = "no_backup_found"
    INTEGRITY_MISMATCH = "integrity_mismatch"

    # Scheduling
    AUTO_BACKUP_TRIGGERED = "auto_backup_triggered"
    AUTO_BACKUP_CANCELLED = "auto_backup_cancelled"

    # System events
    SYSTEM_ERROR = "system_error"
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

    entity_id is the user id for backup events; users are identified
    by the auth provider's opaque string, not a UUID.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'backup', 'scheduler')"
    )
    entity_id: Optional[str] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one restore)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row for the audit worksheet.

        Columns: [event_id, timestamp, event_type, severity, entity_type,
        entity_id, correlation_id, description, details_json,
        error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.backup_completed(user_id, 12, digest, cid)
        event = AuditEventBuilder.integrity_mismatch(user_id, a, b, cid)
    """

    @staticmethod
    def backup_started(
        user_id: str,
        correlation_id: UUID,
        is_user_action: bool = False,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_STARTED,
            entity_type="backup",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="Backup started",
            is_user_action=is_user_action,
        )

    @staticmethod
    def backup_completed(
        user_id: str,
        record_count: int,
        integrity_digest: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_COMPLETED,
            entity_type="backup",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Backup uploaded with {record_count} ledger entries",
            details={
                "record_count": record_count,
                "integrity_digest": integrity_digest,
            },
        )

    @staticmethod
    def backup_failed(
        user_id: str,
        stage: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="backup",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Backup failed during {stage}",
            error_message=error_message,
            details={"stage": stage},
        )

    @staticmethod
    def collection_degraded(
        failed_collections: list[str],
        cause: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COLLECTION_DEGRADED,
            severity=AuditSeverity.WARNING,
            entity_type="snapshot",
            correlation_id=correlation_id,
            description="Local data collection degraded, backing up partial data",
            error_message=cause,
            details={"failed_collections": failed_collections},
        )

    @staticmethod
    def backup_cleared(
        user_id: str,
        deleted: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_CLEARED,
            entity_type="backup",
            entity_id=user_id,
            description=(
                "Remote backup deleted" if deleted
                else "Backup clear requested, deletion disabled"
            ),
            details={"deleted": deleted},
            is_user_action=True,
        )

    @staticmethod
    def restore_completed(
        user_id: str,
        restored_categories: list[str],
        savings_target_restored: bool,
        integrity_verified: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESTORE_COMPLETED,
            entity_type="backup",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Restored {len(restored_categories)} category limits",
            details={
                "restored_categories": restored_categories,
                "savings_target_restored": savings_target_restored,
                "integrity_verified": integrity_verified,
            },
            is_user_action=True,
        )

    @staticmethod
    def restore_failed(
        user_id: str,
        reason: str,
        error_message: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESTORE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="backup",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Restore failed: {reason}",
            error_message=error_message,
            details={"reason": reason},
        )

    @staticmethod
    def no_backup_found(
        user_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NO_BACKUP_FOUND,
            entity_type="backup",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="No backup found for user",
        )

    @staticmethod
    def integrity_mismatch(
        user_id: str,
        stored_digest: str,
        computed_digest: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INTEGRITY_MISMATCH,
            severity=AuditSeverity.WARNING,
            entity_type="backup",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="Integrity digest mismatch, restoring anyway",
            details={
                "stored_digest": stored_digest,
                "computed_digest": computed_digest,
            },
        )

    @staticmethod
    def auto_backup_triggered(
        user_id: str,
        success: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTO_BACKUP_TRIGGERED,
            severity=AuditSeverity.INFO if success else AuditSeverity.WARNING,
            entity_type="scheduler",
            entity_id=user_id,
            description=f"Auto-backup ran ({'ok' if success else 'failed'})",
            details={"success": success},
        )

    @staticmethod
    def auto_backup_cancelled(
        user_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTO_BACKUP_CANCELLED,
            severity=AuditSeverity.DEBUG,
            entity_type="scheduler",
            entity_id=user_id,
            description="Pending auto-backup cancelled",
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
