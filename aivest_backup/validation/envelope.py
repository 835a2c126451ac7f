"""
Envelope Validation

Documents coming back from the remote store are untrusted: they may
have been written by an older app version, edited by hand, or damaged
in transit. Validation happens in two stages:

STAGE 1 - ENVELOPE SHAPE:
- The document is an object
- payload is present and is an object
- schemaVersion is one this code understands
Failing stage 1 means "no usable backup" (MalformedEnvelopeError).

STAGE 2 - RESTORABLE RECORDS:
- Each category limit is parsed on its own; bad entries are skipped
- The savings target is parsed; a bad one is skipped
Stage 2 never fails the restore, it only reports what it skipped.

Header fields other than payload (digest, lastUpdated, deviceInfo) are
informational. Missing or damaged ones produce warnings, not errors.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from aivest_backup.models.backup import CURRENT_SCHEMA_VERSION, BackupInfo, DeviceInfo
from aivest_backup.models.records import Budget, EmergencyFund


_TIMESTAMP = TypeAdapter(datetime)


class MalformedEnvelopeError(Exception):
    """Fetched document cannot be treated as a backup."""

    def __init__(self, message: str, issues: Optional[list["EnvelopeIssue"]] = None):
        super().__init__(message)
        self.issues = issues or []


class EnvelopeIssue(BaseModel):
    """A single problem found in a fetched document."""

    field: str
    issue_type: str = Field(
        ...,
        description="e.g. 'missing', 'wrong_type', 'invalid_record', 'unsupported_version'"
    )
    message: str
    severity: str = Field(
        ...,
        pattern="^(error|warning)$"
    )


class ParsedEnvelope(BaseModel):
    """A fetched envelope with its restorable parts already parsed."""

    payload: dict[str, Any]
    user_id: Optional[str] = None
    integrity_digest: Optional[str] = None
    schema_version: Optional[str] = None
    last_updated: Optional[datetime] = None
    device_info: Optional[DeviceInfo] = None

    category_limits: dict[str, Budget] = Field(default_factory=dict)
    savings_target: Optional[EmergencyFund] = None

    issues: list[EnvelopeIssue] = Field(default_factory=list)

    @property
    def skipped_records(self) -> list[str]:
        return [i.field for i in self.issues if i.issue_type == "invalid_record"]

    @property
    def warning_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == "warning")


def _major(version: str) -> Optional[int]:
    try:
        return int(str(version).split(".")[0])
    except ValueError:
        return None


class EnvelopeValidator:
    """
    Validates documents fetched from the remote backup store.

    Stage 1 raises, stage 2 reports.
    """

    def __init__(self, supported_schema_version: str = CURRENT_SCHEMA_VERSION):
        self._supported_major = _major(supported_schema_version)

    # -------------------------------------------------------------------------
    # Stage 1
    # -------------------------------------------------------------------------

    def _validate_shape(self, document: Any) -> tuple[dict, list[EnvelopeIssue]]:
        if not isinstance(document, dict):
            raise MalformedEnvelopeError(
                f"Backup document is a {type(document).__name__}, expected an object"
            )

        payload = document.get("payload")
        if payload is None:
            raise MalformedEnvelopeError(
                "Backup document has no payload",
                [EnvelopeIssue(
                    field="payload",
                    issue_type="missing",
                    message="payload is required",
                    severity="error",
                )],
            )
        if not isinstance(payload, dict):
            raise MalformedEnvelopeError(
                "Backup payload is not an object",
                [EnvelopeIssue(
                    field="payload",
                    issue_type="wrong_type",
                    message=f"payload is a {type(payload).__name__}",
                    severity="error",
                )],
            )

        issues = []
        schema_version = document.get("schemaVersion")
        if schema_version is None:
            issues.append(EnvelopeIssue(
                field="schemaVersion",
                issue_type="missing",
                message="No schema version, assuming current",
                severity="warning",
            ))
        else:
            major = _major(schema_version)
            if major is None or (
                self._supported_major is not None and major > self._supported_major
            ):
                raise MalformedEnvelopeError(
                    f"Unsupported backup schema version: {schema_version}",
                    [EnvelopeIssue(
                        field="schemaVersion",
                        issue_type="unsupported_version",
                        message=f"Cannot read schema version {schema_version}",
                        severity="error",
                    )],
                )

        if not isinstance(document.get("integrityDigest"), str):
            issues.append(EnvelopeIssue(
                field="integrityDigest",
                issue_type="missing",
                message="No integrity digest, data cannot be verified",
                severity="warning",
            ))

        return payload, issues

    # -------------------------------------------------------------------------
    # Stage 2
    # -------------------------------------------------------------------------

    @staticmethod
    def _parse_category_limits(payload: dict) -> tuple[dict[str, Budget], list[EnvelopeIssue]]:
        raw = payload.get("categoryLimits")
        if raw is None:
            return {}, []
        if not isinstance(raw, dict):
            return {}, [EnvelopeIssue(
                field="categoryLimits",
                issue_type="wrong_type",
                message="categoryLimits is not an object, skipping",
                severity="warning",
            )]

        limits, issues = {}, []
        for category, item in raw.items():
            try:
                limits[category] = Budget.model_validate(item)
            except ValidationError as e:
                issues.append(EnvelopeIssue(
                    field=f"categoryLimits.{category}",
                    issue_type="invalid_record",
                    message=f"Skipping category limit: {e.error_count()} errors",
                    severity="warning",
                ))
        return limits, issues

    @staticmethod
    def _parse_savings_target(payload: dict) -> tuple[Optional[EmergencyFund], list[EnvelopeIssue]]:
        raw = payload.get("savingsTarget")
        if raw is None:
            return None, []
        try:
            return EmergencyFund.model_validate(raw), []
        except ValidationError as e:
            return None, [EnvelopeIssue(
                field="savingsTarget",
                issue_type="invalid_record",
                message=f"Skipping savings target: {e.error_count()} errors",
                severity="warning",
            )]

    @staticmethod
    def _parse_header(document: dict) -> tuple[dict, list[EnvelopeIssue]]:
        header, issues = {}, []

        last_updated = document.get("lastUpdated")
        if last_updated is not None:
            try:
                header["last_updated"] = _TIMESTAMP.validate_python(last_updated)
            except ValidationError:
                issues.append(EnvelopeIssue(
                    field="lastUpdated",
                    issue_type="wrong_type",
                    message="lastUpdated is not an ISO-8601 timestamp",
                    severity="warning",
                ))

        device_info = document.get("deviceInfo")
        if device_info is not None:
            try:
                header["device_info"] = DeviceInfo.model_validate(device_info)
            except ValidationError:
                issues.append(EnvelopeIssue(
                    field="deviceInfo",
                    issue_type="wrong_type",
                    message="deviceInfo is incomplete",
                    severity="warning",
                ))

        return header, issues

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def validate(self, document: Any) -> ParsedEnvelope:
        """
        Run both stages.

        Raises:
            MalformedEnvelopeError: If the document is not a usable backup
        """
        payload, issues = self._validate_shape(document)
        header, header_issues = self._parse_header(document)
        limits, limit_issues = self._parse_category_limits(payload)
        target, target_issues = self._parse_savings_target(payload)

        schema_version = document.get("schemaVersion")
        digest = document.get("integrityDigest")
        user_id = document.get("userId")
        return ParsedEnvelope(
            payload=payload,
            user_id=user_id if isinstance(user_id, str) else None,
            integrity_digest=digest if isinstance(digest, str) else None,
            schema_version=str(schema_version) if schema_version is not None else None,
            category_limits=limits,
            savings_target=target,
            issues=issues + header_issues + limit_issues + target_issues,
            **header,
        )

    def summarize(self, document: Any) -> BackupInfo:
        """
        Build a BackupInfo from a document without parsing any records.

        Raises:
            MalformedEnvelopeError: If the document is not an object
        """
        if not isinstance(document, dict):
            raise MalformedEnvelopeError("Backup document is not an object")

        header, _ = self._parse_header(document)
        payload = document.get("payload")
        has_data = isinstance(payload, dict)
        payload = payload if has_data else {}

        def count(key: str) -> int:
            value = payload.get(key)
            return len(value) if isinstance(value, (list, dict)) else 0

        ledger_count = count("ledgerEntries")
        metadata = payload.get("metadata")
        record_count = ledger_count
        if isinstance(metadata, dict) and isinstance(metadata.get("recordCount"), int):
            record_count = max(metadata["recordCount"], 0)

        schema_version = document.get("schemaVersion")
        return BackupInfo(
            schema_version=schema_version if isinstance(schema_version, str) else None,
            has_data=has_data,
            record_count=record_count,
            ledger_entry_count=ledger_count,
            savings_goal_count=count("savingsGoals"),
            category_limit_count=count("categoryLimits"),
            **header,
        )
