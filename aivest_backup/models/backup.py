"""
Backup Models

A BackupSnapshot is the point-in-time collection of the four record
types. A BackupEnvelope wraps one snapshot with its integrity digest,
schema version and device information; it is the document stored
remotely, one per user.

Both are immutable once created. A new envelope is built for every
backup and fully replaces the previous remote document.
"""

import secrets
import string
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import ConfigDict, Field, model_validator

from aivest_backup.models.records import (
    Budget,
    EmergencyFund,
    Expense,
    RecordModel,
    SavingsGoal,
    utc_now,
)


CURRENT_SCHEMA_VERSION = "1.0"

_DEVICE_ID_ALPHABET = string.ascii_lowercase + string.digits


class FrozenRecordModel(RecordModel):
    model_config = ConfigDict(frozen=True)


# =============================================================================
# SNAPSHOT
# =============================================================================

class SnapshotMetadata(FrozenRecordModel):
    """Summary of a snapshot at creation time."""

    record_count: int = Field(
        ...,
        ge=0,
        description="Number of ledger entries in the snapshot"
    )
    snapshot_time: datetime = Field(
        default_factory=utc_now
    )
    schema_version: str = CURRENT_SCHEMA_VERSION


class BackupSnapshot(FrozenRecordModel):
    """
    Everything a backup carries.

    INVARIANT: metadata.record_count == len(ledger_entries)
    """

    ledger_entries: list[Expense] = Field(default_factory=list)
    category_limits: dict[str, Budget] = Field(default_factory=dict)
    savings_target: EmergencyFund = Field(default_factory=EmergencyFund)
    savings_goals: list[SavingsGoal] = Field(default_factory=list)
    metadata: SnapshotMetadata

    @model_validator(mode='after')
    def validate_record_count(self) -> 'BackupSnapshot':
        if self.metadata.record_count != len(self.ledger_entries):
            raise ValueError(
                "Record count does not match the number of ledger entries"
            )
        return self

    @classmethod
    def build(
        cls,
        ledger_entries: list[Expense],
        category_limits: dict[str, Budget],
        savings_target: EmergencyFund,
        savings_goals: list[SavingsGoal],
        schema_version: str = CURRENT_SCHEMA_VERSION,
        snapshot_time: Optional[datetime] = None,
    ) -> 'BackupSnapshot':
        """Assemble a snapshot, deriving the metadata from the data."""
        return cls(
            ledger_entries=ledger_entries,
            category_limits=category_limits,
            savings_target=savings_target,
            savings_goals=savings_goals,
            metadata=SnapshotMetadata(
                record_count=len(ledger_entries),
                snapshot_time=snapshot_time or utc_now(),
                schema_version=schema_version,
            ),
        )

    @classmethod
    def empty(cls, schema_version: str = CURRENT_SCHEMA_VERSION) -> 'BackupSnapshot':
        """The well-formed snapshot used when collection fails."""
        return cls.build([], {}, EmergencyFund(), [], schema_version=schema_version)


# =============================================================================
# ENVELOPE
# =============================================================================

def generate_device_id() -> str:
    """Random device identifier, e.g. 'device_k3j9x0a1b2c3d'."""
    suffix = "".join(secrets.choice(_DEVICE_ID_ALPHABET) for _ in range(13))
    return f"device_{suffix}"


class DeviceInfo(FrozenRecordModel):
    """Informational only; never used for conflict resolution."""

    platform: str
    app_version: str
    device_id: str = Field(default_factory=generate_device_id)


class BackupEnvelope(FrozenRecordModel):
    """The unit stored in the remote backup collection."""

    user_id: str = Field(..., min_length=1)
    payload: BackupSnapshot
    integrity_digest: str
    schema_version: str = CURRENT_SCHEMA_VERSION
    last_updated: datetime = Field(default_factory=utc_now)
    device_info: DeviceInfo

    def to_document(self, payload_document: Optional[dict] = None) -> dict:
        """
        Wire form of the envelope.

        Pass payload_document to reuse the exact dict the digest was
        computed over, so the stored payload and digest always agree.
        """
        document = self.model_dump(mode="json", by_alias=True)
        if payload_document is not None:
            document["payload"] = payload_document
        return document


class BackupInfo(FrozenRecordModel):
    """Summary of a remote backup, as shown on the profile screen."""

    last_updated: Optional[datetime] = None
    schema_version: Optional[str] = None
    device_info: Optional[DeviceInfo] = None
    has_data: bool = False
    record_count: int = Field(default=0, ge=0)
    ledger_entry_count: int = Field(default=0, ge=0)
    savings_goal_count: int = Field(default=0, ge=0)
    category_limit_count: int = Field(default=0, ge=0)


# =============================================================================
# INTERNAL RESULTS
# =============================================================================

class CollectionStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"


class CollectionResult(FrozenRecordModel):
    """
    Outcome of collecting local data.

    The public collect() flattens this to a snapshot; a DEGRADED result
    still carries a well-formed (possibly partial or empty) snapshot.
    """

    status: CollectionStatus
    snapshot: BackupSnapshot
    cause: Optional[str] = None
    failed_collections: list[str] = Field(default_factory=list)

    @property
    def is_degraded(self) -> bool:
        return self.status == CollectionStatus.DEGRADED


class RestoreStatus(str, Enum):
    RESTORED = "restored"
    NO_BACKUP = "no_backup"
    MALFORMED = "malformed"
    TRANSPORT_FAILED = "transport_failed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class RestoreReport(FrozenRecordModel):
    """What a restore actually did."""

    status: RestoreStatus
    integrity_verified: bool = False
    restored_categories: list[str] = Field(default_factory=list)
    savings_target_restored: bool = False
    skipped_records: list[str] = Field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == RestoreStatus.RESTORED
