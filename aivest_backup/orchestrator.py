"""
Backup Session Orchestrator

Ties the backup components to one signed-in user.

DESIGN DECISION: Nothing here is global. Whatever owns the user session
(login flow, profile screen) creates a BackupSession on sign-in and
closes it on sign-out; closing cancels any pending automatic backup
and waits for one that is already uploading.

Typical wiring:

    service, scheduler = create_backup_components()
    session = BackupSession(user.uid, user.email, service, scheduler)
    session.start()
    ...
    await session.notify_data_changed()   # after every local mutation
    ...
    await session.close()                 # on logout
"""

from pathlib import Path
from typing import Optional

import structlog

from aivest_backup.audit import AuditLogger
from aivest_backup.backup import AutoBackupScheduler, BackupService
from aivest_backup.config import get_settings
from aivest_backup.models.backup import BackupInfo
from aivest_backup.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryRemoteStore,
    JsonFileLocalStore,
    LocalDataAccessor,
    RemoteBackupStoreInterface,
)


logger = structlog.get_logger("aivest_backup.orchestrator")


class BackupSession:
    """Backup operations bound to one user."""

    def __init__(
        self,
        user_id: str,
        user_identity_key: str,
        service: BackupService,
        scheduler: AutoBackupScheduler,
    ):
        self._user_id = user_id
        self._user_identity_key = user_identity_key
        self._service = service
        self._scheduler = scheduler
        self._closed = False

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def scheduler(self) -> AutoBackupScheduler:
        return self._scheduler

    def start(self) -> None:
        if self._closed:
            raise RuntimeError("Backup session is closed")
        self._scheduler.start()
        logger.info("backup_session_started", user_id=self._user_id)

    async def notify_data_changed(self) -> None:
        """Call after any local mutation; coalesced into one upload."""
        await self._scheduler.notify_data_changed(self._user_id, self._user_identity_key)

    async def backup_now(self) -> bool:
        """Manual "Backup Now". Drops the pending automatic backup it supersedes."""
        await self._scheduler.cancel()
        return await self._service.trigger_manual_backup(
            self._user_id, self._user_identity_key
        )

    async def restore(self, timeout: Optional[float] = None) -> bool:
        """Restore with the profile-screen timeout (30s by default)."""
        return await self._service.restore_with_timeout(
            self._user_id, self._user_identity_key, timeout
        )

    async def has_backup(self) -> bool:
        return await self._service.has_backup(self._user_id)

    async def backup_info(self) -> Optional[BackupInfo]:
        return await self._service.get_backup_info(self._user_id)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._scheduler.dispose()
        logger.info("backup_session_closed", user_id=self._user_id)

    async def __aenter__(self) -> "BackupSession":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def create_backup_components(
    use_sheets: bool = True,
    accessor: Optional[LocalDataAccessor] = None,
    local_data_path: Optional[str | Path] = None,
) -> tuple[BackupService, AutoBackupScheduler]:
    """
    Factory function to create the backup service and its scheduler.

    Args:
        use_sheets: Whether to use Google Sheets as the remote store.
                   Falls back to an in-memory store if Sheets isn't
                   configured (backups then only live for the process).
        accessor: Local data accessor; defaults to a JSON file store.
        local_data_path: Overrides LOCAL_STORE_DATA_PATH for the default
                   accessor.

    Returns:
        (backup_service, scheduler)
    """
    settings = get_settings()

    if accessor is None:
        accessor = JsonFileLocalStore(local_data_path or settings.local_store.data_path)

    remote_store: RemoteBackupStoreInterface
    audit_logger: AuditLogger
    if use_sheets:
        try:
            sheets_client = GoogleSheetsClient()
            remote_store = GoogleSheetsRemoteStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("remote_store_not_configured", error=str(e))
            remote_store = InMemoryRemoteStore()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        remote_store = InMemoryRemoteStore()
        audit_logger = AuditLogger()

    service = BackupService(
        accessor=accessor,
        remote_store=remote_store,
        audit_logger=audit_logger,
        settings=settings.backup,
    )
    scheduler = AutoBackupScheduler(service)
    return service, scheduler
