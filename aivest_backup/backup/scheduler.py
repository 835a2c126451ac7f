"""
Auto-Backup Scheduler

Turns bursts of "data changed" notifications into a single backup,
run once the data has been quiet for a while (5 minutes by default).

States:
    IDLE                      nothing scheduled
    PENDING_BACKUP(deadline)  a backup will run at deadline

Every notification while PENDING pushes the deadline out again
(trailing-edge debounce). When the deadline passes the scheduler goes
back to IDLE and the backup runs in the background (see
is_backup_in_flight). Failed backups are not retried; the next
notification or a manual backup covers them.

The scheduler is an owned object with an explicit lifecycle:
start() -> notify_data_changed()* -> cancel() / dispose().
Notifications outside that window are ignored.
"""

import asyncio
from enum import Enum
from typing import Optional

import structlog

from aivest_backup.audit import AuditLogger
from aivest_backup.backup.engine import BackupService


logger = structlog.get_logger("aivest_backup.scheduler")


class SchedulerState(str, Enum):
    IDLE = "idle"
    PENDING_BACKUP = "pending_backup"


class AutoBackupScheduler:
    """Debounced trigger for BackupService.backup()."""

    def __init__(
        self,
        service: BackupService,
        quiet_period: Optional[float] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._service = service
        self._quiet_period = (
            quiet_period if quiet_period is not None
            else service.settings.quiet_period_seconds
        )
        self._audit_logger = audit_logger or service.audit_logger

        self._state = SchedulerState.IDLE
        self._deadline: Optional[float] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending_user_id: Optional[str] = None
        self._inflight: set[asyncio.Task] = set()

        self._started = False
        self._disposed = False

        self.backup_count = 0
        self.last_result: Optional[bool] = None

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def deadline(self) -> Optional[float]:
        """Event-loop time at which the pending backup runs, if any."""
        return self._deadline

    @property
    def quiet_period(self) -> float:
        return self._quiet_period

    @property
    def is_running(self) -> bool:
        return self._started and not self._disposed

    @property
    def is_backup_in_flight(self) -> bool:
        return bool(self._inflight)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        if self._disposed:
            raise RuntimeError("Scheduler has been disposed")
        self._started = True
        logger.debug("scheduler_started", quiet_period_seconds=self._quiet_period)

    async def notify_data_changed(self, user_id: str, user_identity_key: str) -> None:
        """
        Record that local data changed.

        Schedules a backup at now + quiet period, replacing any pending
        one. Does no I/O. Must be called from within the running event loop.
        """
        if not self.is_running:
            logger.debug("change_ignored_scheduler_not_running", user_id=user_id)
            return

        loop = asyncio.get_running_loop()
        rescheduled = self._clear_timer()
        if rescheduled and self._pending_user_id != user_id:
            logger.warning(
                "pending_backup_replaced_for_other_user",
                previous_user_id=self._pending_user_id,
                user_id=user_id,
            )

        self._deadline = loop.time() + self._quiet_period
        self._pending_user_id = user_id
        self._timer = loop.call_at(
            self._deadline, self._fire, user_id, user_identity_key
        )
        self._state = SchedulerState.PENDING_BACKUP

        # Logged only: audit storage is written when the backup fires
        logger.debug(
            "auto_backup_scheduled",
            user_id=user_id,
            quiet_period_seconds=self._quiet_period,
            rescheduled=rescheduled,
        )

    async def cancel(self) -> None:
        """Drop any pending backup. A backup already running is not interrupted."""
        user_id = self._pending_user_id
        if self._clear_timer():
            logger.info("auto_backup_cancelled", user_id=user_id)
            await self._audit_logger.log_auto_backup_cancelled(user_id=user_id)
        self._to_idle()

    async def dispose(self) -> None:
        """Cancel, wait for an in-flight backup, and refuse further work."""
        await self.cancel()
        self._disposed = True
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.debug("scheduler_disposed")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _clear_timer(self) -> bool:
        """Cancel the pending timer. Returns True if one was pending."""
        if self._timer is None:
            return False
        self._timer.cancel()
        self._timer = None
        return True

    def _to_idle(self) -> None:
        self._state = SchedulerState.IDLE
        self._deadline = None
        self._pending_user_id = None

    def _fire(self, user_id: str, user_identity_key: str) -> None:
        self._timer = None
        # The deadline has passed; the running backup is tracked in _inflight
        self._to_idle()
        task = asyncio.get_running_loop().create_task(
            self._run_backup(user_id, user_identity_key)
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _run_backup(self, user_id: str, user_identity_key: str) -> None:
        logger.info("auto_backup_triggered", user_id=user_id)
        try:
            success = await self._service.backup(user_id, user_identity_key)
        except Exception as e:
            # backup() shouldn't raise; a broken service must not kill the loop
            logger.error("auto_backup_crashed", user_id=user_id, error=str(e))
            await self._audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"user_id": user_id, "operation": "auto_backup"},
            )
            success = False

        self.backup_count += 1
        self.last_result = success
        await self._audit_logger.log_auto_backup_triggered(user_id=user_id, success=success)
