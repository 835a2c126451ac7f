"""
Data Models Package

This package contains all Pydantic models used by the backup subsystem.
All data flowing between the local store, the engine and the remote
store must conform to these schemas.
"""

from aivest_backup.models.records import (
    Budget,
    EmergencyFund,
    Expense,
    ExpenseCategory,
    GoalCategory,
    GoalPriority,
    SavingsGoal,
    utc_now,
)
from aivest_backup.models.backup import (
    CURRENT_SCHEMA_VERSION,
    BackupEnvelope,
    BackupInfo,
    BackupSnapshot,
    CollectionResult,
    CollectionStatus,
    DeviceInfo,
    RestoreReport,
    RestoreStatus,
    SnapshotMetadata,
    generate_device_id,
)
from aivest_backup.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "Budget",
    "EmergencyFund",
    "Expense",
    "ExpenseCategory",
    "GoalCategory",
    "GoalPriority",
    "SavingsGoal",
    "utc_now",
    # Backup models
    "CURRENT_SCHEMA_VERSION",
    "BackupEnvelope",
    "BackupInfo",
    "BackupSnapshot",
    "CollectionResult",
    "CollectionStatus",
    "DeviceInfo",
    "RestoreReport",
    "RestoreStatus",
    "SnapshotMetadata",
    "generate_device_id",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
