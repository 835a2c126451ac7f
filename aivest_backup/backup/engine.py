"""
Backup/Restore Engine

Orchestrates packaging, digesting, upload, download, digest
verification and the restore merge.

DESIGN DECISION: Every public method is a boundary. Internal failures
become False (or None for get_backup_info) and are logged; nothing is
raised to the caller. Backups are a convenience layered over the
authoritative local store and must never be why the app crashes.

Error taxonomy:
- Collection degraded -> logged, backup proceeds with partial data
- Transport failed    -> operation returns False
- Integrity mismatch  -> logged as a warning, restore proceeds
- No backup found     -> restore/has_backup return False, not an error
- Malformed envelope  -> treated like a transport failure

RESTORE-MERGE POLICY:
- Category limits and the savings target are overwritten from the
  backup. They are keyed/singleton records, so repeating a restore is
  harmless.
- Ledger entries and savings goals are NEVER written by restore.
  Re-adding them would duplicate records on every restore.

Writes are last-write-wins at the document level. There is no revision
token, so two devices backing up the same user overwrite each other.
"""

import asyncio
import weakref
from typing import Optional
from uuid import UUID

import structlog

from aivest_backup.audit import AuditLogger, create_correlation_id
from aivest_backup.backup.digest import IntegrityDigest, canonical_json
from aivest_backup.backup.packager import BackupPackager
from aivest_backup.config import BackupSettings, get_settings
from aivest_backup.models.backup import (
    BackupEnvelope,
    BackupInfo,
    DeviceInfo,
    RestoreReport,
    RestoreStatus,
)
from aivest_backup.services.storage import (
    LocalDataAccessor,
    RemoteBackupStoreInterface,
)
from aivest_backup.validation import (
    EnvelopeValidator,
    MalformedEnvelopeError,
    ParsedEnvelope,
)


logger = structlog.get_logger("aivest_backup.engine")


class BackupService:
    """
    Public entry point of the backup subsystem.

    user_identity_key is accepted by backup/restore so that callers
    don't change when payload encryption is added; payloads are stored
    in plaintext today and the key is not used.
    """

    def __init__(
        self,
        accessor: LocalDataAccessor,
        remote_store: RemoteBackupStoreInterface,
        packager: Optional[BackupPackager] = None,
        digest: Optional[IntegrityDigest] = None,
        validator: Optional[EnvelopeValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[BackupSettings] = None,
    ):
        self._settings = settings or get_settings().backup
        self._accessor = accessor
        self._remote = remote_store
        self._packager = packager or BackupPackager(accessor, self._settings.schema_version)
        self._digest = digest or IntegrityDigest()
        self._validator = validator or EnvelopeValidator(self._settings.schema_version)
        self._audit_logger = audit_logger or AuditLogger()
        self._collection = self._settings.collection_name
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @property
    def settings(self) -> BackupSettings:
        return self._settings

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        # One backup or restore at a time per user through this service.
        # Entries drop out once no holder or waiter references the lock.
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    # =========================================================================
    # BACKUP
    # =========================================================================

    async def backup(self, user_id: str, user_identity_key: str) -> bool:
        """
        Package local data and overwrite the user's remote backup.

        Returns:
            True if the envelope was stored, False on any failure
        """
        return await self._run_backup(user_id, is_user_action=False)

    async def trigger_manual_backup(self, user_id: str, user_identity_key: str) -> bool:
        """The "Backup Now" action. Same as backup(), audited as a user action."""
        logger.info("manual_backup_triggered", user_id=user_id)
        return await self._run_backup(user_id, is_user_action=True)

    async def _run_backup(self, user_id: str, is_user_action: bool) -> bool:
        correlation_id = create_correlation_id()
        stage = "collect"

        async with self._lock_for(user_id):
            try:
                await self._audit_logger.log_backup_started(
                    user_id=user_id,
                    correlation_id=correlation_id,
                    is_user_action=is_user_action,
                )

                collected = await self._packager.collect_with_status()
                if collected.is_degraded:
                    await self._audit_logger.log_collection_degraded(
                        failed_collections=collected.failed_collections,
                        cause=collected.cause,
                        correlation_id=correlation_id,
                    )
                snapshot = collected.snapshot

                stage = "serialize"
                payload_document = snapshot.to_storage_dict()
                serialized = canonical_json(payload_document)

                stage = "digest"
                integrity_digest = self._digest.digest(serialized)

                stage = "envelope"
                envelope = BackupEnvelope(
                    user_id=user_id,
                    payload=snapshot,
                    integrity_digest=integrity_digest,
                    schema_version=self._settings.schema_version,
                    device_info=DeviceInfo(
                        platform=self._settings.device_platform,
                        app_version=self._settings.app_version,
                    ),
                )

                stage = "upload"
                await self._remote.upsert_document(
                    self._collection,
                    user_id,
                    envelope.to_document(payload_document),
                )
            except Exception as e:
                logger.error(
                    "backup_failed",
                    operation="backup",
                    user_id=user_id,
                    stage=stage,
                    error=str(e),
                )
                await self._audit_logger.log_backup_failed(
                    user_id=user_id,
                    stage=stage,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                if stage == "upload":
                    await self._audit_logger.log_external_service_error(
                        service=type(self._remote).__name__,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                return False

        logger.info(
            "backup_completed",
            user_id=user_id,
            record_count=snapshot.metadata.record_count,
            degraded=collected.is_degraded,
        )
        await self._audit_logger.log_backup_completed(
            user_id=user_id,
            record_count=snapshot.metadata.record_count,
            integrity_digest=integrity_digest,
            correlation_id=correlation_id,
        )
        return True

    # =========================================================================
    # RESTORE
    # =========================================================================

    async def restore(self, user_id: str, user_identity_key: str) -> bool:
        """
        Fetch the user's backup and merge overwrite-safe records locally.

        Returns:
            True once the fetch and digest check completed (even on a
            digest mismatch). False if there is no backup, the fetch
            failed or the document is malformed.
        """
        report = await self.restore_with_report(user_id, user_identity_key)
        return report.succeeded

    async def restore_with_report(self, user_id: str, user_identity_key: str) -> RestoreReport:
        """restore(), returning what happened instead of a boolean."""
        correlation_id = create_correlation_id()
        async with self._lock_for(user_id):
            try:
                return await self._restore(user_id, correlation_id)
            except Exception as e:
                logger.error(
                    "restore_failed",
                    operation="restore",
                    user_id=user_id,
                    error=str(e),
                )
                await self._audit_logger.log_restore_failed(
                    user_id=user_id,
                    reason="unexpected error",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                return RestoreReport(status=RestoreStatus.FAILED, error_message=str(e))

    async def _restore(self, user_id: str, correlation_id: UUID) -> RestoreReport:
        try:
            document = await self._remote.get_document(self._collection, user_id)
        except Exception as e:
            logger.error(
                "restore_fetch_failed",
                operation="restore",
                user_id=user_id,
                error=str(e),
            )
            await self._audit_logger.log_restore_failed(
                user_id=user_id,
                reason="fetch failed",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_external_service_error(
                service=type(self._remote).__name__,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return RestoreReport(status=RestoreStatus.TRANSPORT_FAILED, error_message=str(e))

        if document is None:
            logger.info("no_backup_found", operation="restore", user_id=user_id)
            await self._audit_logger.log_no_backup_found(
                user_id=user_id,
                correlation_id=correlation_id,
            )
            return RestoreReport(status=RestoreStatus.NO_BACKUP)

        try:
            parsed = self._validator.validate(document)
        except MalformedEnvelopeError as e:
            logger.error(
                "restore_malformed_envelope",
                operation="restore",
                user_id=user_id,
                error=str(e),
                issues=[issue.model_dump() for issue in e.issues],
            )
            await self._audit_logger.log_restore_failed(
                user_id=user_id,
                reason="malformed envelope",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return RestoreReport(status=RestoreStatus.MALFORMED, error_message=str(e))

        logger.info(
            "backup_found",
            user_id=user_id,
            last_updated=parsed.last_updated.isoformat() if parsed.last_updated else None,
            warnings=parsed.warning_count,
        )

        integrity_verified = await self._verify_integrity(user_id, parsed, correlation_id)
        report = await self._apply_merge(parsed, integrity_verified)

        logger.info(
            "restore_completed",
            user_id=user_id,
            restored_categories=report.restored_categories,
            savings_target_restored=report.savings_target_restored,
            skipped_records=report.skipped_records,
        )
        await self._audit_logger.log_restore_completed(
            user_id=user_id,
            restored_categories=report.restored_categories,
            savings_target_restored=report.savings_target_restored,
            integrity_verified=integrity_verified,
            correlation_id=correlation_id,
        )
        return report

    async def _verify_integrity(
        self,
        user_id: str,
        parsed: ParsedEnvelope,
        correlation_id: UUID,
    ) -> bool:
        """Recompute the payload digest. Mismatches are logged, never fatal."""
        try:
            computed = self._digest.digest(canonical_json(parsed.payload))
        except Exception as e:
            logger.warning("integrity_check_skipped", user_id=user_id, error=str(e))
            return False

        stored = parsed.integrity_digest or ""
        if computed == stored:
            logger.info("integrity_check_passed", user_id=user_id)
            return True

        logger.warning(
            "integrity_mismatch",
            user_id=user_id,
            stored_digest=stored,
            computed_digest=computed,
            stored_is_fallback=self._digest.is_fallback(stored) if stored else False,
        )
        await self._audit_logger.log_integrity_mismatch(
            user_id=user_id,
            stored_digest=stored,
            computed_digest=computed,
            correlation_id=correlation_id,
        )
        return False

    async def _apply_merge(self, parsed: ParsedEnvelope, integrity_verified: bool) -> RestoreReport:
        restored_categories = []
        skipped = list(parsed.skipped_records)

        for category, budget in parsed.category_limits.items():
            if await self._accessor.set_category_limit(category, budget):
                restored_categories.append(category)
            else:
                skipped.append(f"categoryLimits.{category}")

        savings_target_restored = False
        if parsed.savings_target is not None:
            savings_target_restored = await self._accessor.update_savings_target(
                parsed.savings_target
            )
            if not savings_target_restored:
                skipped.append("savingsTarget")

        # ledgerEntries and savingsGoals are left alone on purpose

        return RestoreReport(
            status=RestoreStatus.RESTORED,
            integrity_verified=integrity_verified,
            restored_categories=restored_categories,
            savings_target_restored=savings_target_restored,
            skipped_records=skipped,
        )

    async def restore_report_with_timeout(
        self,
        user_id: str,
        user_identity_key: str,
        timeout: Optional[float] = None,
    ) -> RestoreReport:
        """
        restore_with_report() bounded by a timeout.

        Nothing is written locally until the backup has been fetched
        and validated, so a timeout during the fetch leaves local data
        untouched.
        """
        timeout = self._settings.restore_timeout_seconds if timeout is None else timeout
        try:
            return await asyncio.wait_for(
                self.restore_with_report(user_id, user_identity_key),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "restore_timed_out",
                operation="restore",
                user_id=user_id,
                timeout_seconds=timeout,
            )
            await self._audit_logger.log_restore_failed(
                user_id=user_id,
                reason="timeout",
                error_message=f"Restore took longer than {timeout}s",
                correlation_id=create_correlation_id(),
            )
            return RestoreReport(
                status=RestoreStatus.TIMED_OUT,
                error_message=f"Restore took longer than {timeout}s",
            )

    async def restore_with_timeout(
        self,
        user_id: str,
        user_identity_key: str,
        timeout: Optional[float] = None,
    ) -> bool:
        """Profile-screen restore: False on timeout, like any other failure."""
        report = await self.restore_report_with_timeout(user_id, user_identity_key, timeout)
        return report.succeeded

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def has_backup(self, user_id: str) -> bool:
        """Existence check. False on any error."""
        try:
            return await self._remote.document_exists(self._collection, user_id)
        except Exception as e:
            logger.error(
                "has_backup_failed",
                operation="has_backup",
                user_id=user_id,
                error=str(e),
            )
            return False

    async def get_backup_info(self, user_id: str) -> Optional[BackupInfo]:
        """
        Summary of the user's backup (timestamps, device, record counts).

        Records are counted, not parsed. Returns None if there is no
        backup or on any error.
        """
        try:
            document = await self._remote.get_document(self._collection, user_id)
            if document is None:
                return None
            return self._validator.summarize(document)
        except Exception as e:
            logger.error(
                "get_backup_info_failed",
                operation="get_backup_info",
                user_id=user_id,
                error=str(e),
            )
            return None

    # =========================================================================
    # DELETION
    # =========================================================================

    async def clear_backup(self, user_id: str) -> bool:
        """
        Remove the user's remote backup.

        Deletion is disabled unless BACKUP_ALLOW_BACKUP_DELETION is set;
        when disabled the request is logged and reported as handled.
        """
        try:
            if not self._settings.allow_backup_deletion:
                logger.info("backup_clear_disabled", user_id=user_id)
                await self._audit_logger.log_backup_cleared(user_id=user_id, deleted=False)
                return True

            deleted = await self._remote.delete_document(self._collection, user_id)
            logger.info("backup_cleared", user_id=user_id, deleted=deleted)
            await self._audit_logger.log_backup_cleared(user_id=user_id, deleted=deleted)
            return True
        except Exception as e:
            logger.error(
                "clear_backup_failed",
                operation="clear_backup",
                user_id=user_id,
                error=str(e),
            )
            return False
