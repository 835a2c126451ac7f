"""Services package."""

from aivest_backup.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryAuditStorage,
    InMemoryLocalStore,
    InMemoryRemoteStore,
    JsonFileLocalStore,
    KeyValueLocalStore,
    LocalDataAccessor,
    RemoteBackupStoreInterface,
    StorageError,
    StorageKeys,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryAuditStorage",
    "InMemoryLocalStore",
    "InMemoryRemoteStore",
    "JsonFileLocalStore",
    "KeyValueLocalStore",
    "LocalDataAccessor",
    "RemoteBackupStoreInterface",
    "StorageError",
    "StorageKeys",
]
