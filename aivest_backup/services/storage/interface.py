"""
Abstract Storage Interfaces

DESIGN DECISION: The backup subsystem only talks to storage through
these interfaces. This allows us to:
1. Swap the remote store (Google Sheets today, a document DB later)
2. Use in-memory storage for testing
3. Keep the backup engine decoupled from where data actually lives

Two very different contracts live here:
- LocalDataAccessor never raises. Reads resolve to empty defaults and
  writes report success as a boolean. The rest of the app relies on it.
- RemoteBackupStoreInterface may raise StorageError subclasses. The
  backup engine converts those to booleans at its own boundary.
"""

from abc import ABC, abstractmethod
from typing import Optional

from aivest_backup.models.audit import AuditEvent
from aivest_backup.models.records import (
    Budget,
    EmergencyFund,
    Expense,
    SavingsGoal,
)


class LocalDataAccessor(ABC):
    """
    Interface over the four local record collections.

    The screens mutate data through this directly; the backup engine
    reads everything for a backup and writes only overwrite-safe
    collections during a restore.
    """

    # Ledger entries

    @abstractmethod
    async def get_all_ledger_entries(self) -> list[Expense]:
        """All ledger entries in insertion order, [] on failure."""
        pass

    @abstractmethod
    async def add_ledger_entry(self, entry: Expense) -> bool:
        pass

    @abstractmethod
    async def update_ledger_entry(self, entry: Expense) -> bool:
        """Replace the entry with the same id. False if it doesn't exist."""
        pass

    @abstractmethod
    async def delete_ledger_entry(self, entry_id: str) -> bool:
        pass

    # Category limits

    @abstractmethod
    async def get_all_category_limits(self) -> dict[str, Budget]:
        """Mapping of category name to limit, {} on failure."""
        pass

    @abstractmethod
    async def set_category_limit(self, category: str, budget: Budget) -> bool:
        """Create or overwrite the limit for a category."""
        pass

    @abstractmethod
    async def delete_category_limit(self, category: str) -> bool:
        pass

    # Savings target

    @abstractmethod
    async def get_savings_target(self) -> EmergencyFund:
        """The savings target, or an unset EmergencyFund on failure."""
        pass

    @abstractmethod
    async def update_savings_target(self, fund: EmergencyFund) -> bool:
        """Overwrite target and current amounts."""
        pass

    # Savings goals

    @abstractmethod
    async def get_all_savings_goals(self) -> list[SavingsGoal]:
        pass

    @abstractmethod
    async def add_savings_goal(self, goal: SavingsGoal) -> bool:
        pass

    @abstractmethod
    async def update_savings_goal(self, goal: SavingsGoal) -> bool:
        pass

    @abstractmethod
    async def delete_savings_goal(self, goal_id: str) -> bool:
        pass


class RemoteBackupStoreInterface(ABC):
    """
    Opaque key-value document store.

    One document per key inside a named collection. Documents are
    JSON-safe dicts. No transactions across documents are assumed.
    """

    @abstractmethod
    async def upsert_document(self, collection: str, key: str, value: dict) -> bool:
        """
        Create or fully replace the document stored under key.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_document(self, collection: str, key: str) -> Optional[dict]:
        """
        Fetch a document.

        Returns:
            The document, or None if nothing is stored under key

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def document_exists(self, collection: str, key: str) -> bool:
        pass

    @abstractmethod
    async def delete_document(self, collection: str, key: str) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was deleted, False if there was none
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
