"""
Backup & Restore Package

IntegrityDigest -> BackupPackager -> BackupService <- AutoBackupScheduler
"""

from aivest_backup.backup.digest import IntegrityDigest, canonical_json
from aivest_backup.backup.packager import BackupPackager
from aivest_backup.backup.engine import BackupService
from aivest_backup.backup.scheduler import AutoBackupScheduler, SchedulerState

__all__ = [
    "AutoBackupScheduler",
    "BackupPackager",
    "BackupService",
    "IntegrityDigest",
    "SchedulerState",
    "canonical_json",
]
