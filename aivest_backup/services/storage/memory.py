"""
In-Memory Storage

Used in tests and as the fallback remote store when Google Sheets is
not configured. Documents are stored as JSON strings so that callers
never share mutable state with the store, the same way a real remote
store would behave.
"""

import json
from collections import defaultdict
from typing import Optional

from aivest_backup.models.audit import AuditEvent
from aivest_backup.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    RemoteBackupStoreInterface,
)


class InMemoryRemoteStore(RemoteBackupStoreInterface):
    """
    Dict-of-dicts document store.

    Set `offline = True` to make every call raise ConnectionError,
    simulating a network outage.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, str]] = defaultdict(dict)
        self.offline = False
        self.write_count = 0

    def _check_online(self) -> None:
        if self.offline:
            raise ConnectionError("Remote store unreachable")

    async def upsert_document(self, collection: str, key: str, value: dict) -> bool:
        self._check_online()
        self._collections[collection][key] = json.dumps(value)
        self.write_count += 1
        return True

    async def get_document(self, collection: str, key: str) -> Optional[dict]:
        self._check_online()
        raw = self._collections[collection].get(key)
        return json.loads(raw) if raw is not None else None

    async def document_exists(self, collection: str, key: str) -> bool:
        self._check_online()
        return key in self._collections[collection]

    async def delete_document(self, collection: str, key: str) -> bool:
        self._check_online()
        return self._collections[collection].pop(key, None) is not None

    def put_raw(self, collection: str, key: str, value: dict) -> None:
        """Store a document directly, bypassing the async API (for tests)."""
        self._collections[collection][key] = json.dumps(value)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self.events))[:limit]
