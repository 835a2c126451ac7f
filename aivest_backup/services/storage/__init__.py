"""
Storage Services Package

Abstract interfaces for the local record collections, the remote
backup store and the audit log, plus concrete implementations:
key-value local stores, an in-memory remote store and Google Sheets.
"""

from aivest_backup.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LocalDataAccessor,
    RemoteBackupStoreInterface,
    StorageError,
)
from aivest_backup.services.storage.local import (
    InMemoryLocalStore,
    JsonFileLocalStore,
    KeyValueLocalStore,
    StorageKeys,
)
from aivest_backup.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRemoteStore,
)
from aivest_backup.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LocalDataAccessor",
    "RemoteBackupStoreInterface",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # Local stores
    "InMemoryLocalStore",
    "JsonFileLocalStore",
    "KeyValueLocalStore",
    "StorageKeys",
    # In-memory remote store
    "InMemoryAuditStorage",
    "InMemoryRemoteStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
]
