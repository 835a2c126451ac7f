"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets serves as the remote backup store because:
1. No database or server to operate for a personal app
2. The user can see that a backup exists (one row per user)
3. Built-in durability (Google's infrastructure)

Each remote collection is a worksheet. Each document is one row:

    key | updated_at | document_json

TRADEOFFS:
- A cell holds at most 50,000 characters, so very large backups are
  rejected with a StorageError rather than silently truncated
- No transactions; an upsert is a find-then-write, last write wins
- Reads scan the worksheet (fine for one row per user)
"""

import asyncio
import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from aivest_backup.config import get_settings
from aivest_backup.models.audit import AuditEvent, AuditEventType, AuditSeverity
from aivest_backup.models.records import utc_now
from aivest_backup.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    RemoteBackupStoreInterface,
    StorageError,
)


DOCUMENT_COLUMNS = [
    "key",
    "updated_at",
    "document_json",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

MAX_CELL_CHARS = 50000


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        if title not in self._worksheets:
            spreadsheet = self.get_spreadsheet()
            try:
                sheet = spreadsheet.worksheet(title)
            except gspread.WorksheetNotFound:
                sheet = spreadsheet.add_worksheet(
                    title=title,
                    rows=rows,
                    cols=len(columns),
                )
                sheet.append_row(columns)
            self._worksheets[title] = sheet
        return self._worksheets[title]

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsRemoteStore(RemoteBackupStoreInterface):
    """
    Google Sheets implementation of the remote backup store.

    gspread is synchronous, so every call runs in a worker thread.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self, collection: str) -> gspread.Worksheet:
        return self._client.get_worksheet(collection, DOCUMENT_COLUMNS)

    @staticmethod
    def _find_row(sheet: gspread.Worksheet, key: str) -> tuple[Optional[int], Optional[list]]:
        """Return (1-based row index, row) for key, skipping the header."""
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == key:
                return idx, row
        return None, None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _upsert_sync(self, collection: str, key: str, document_json: str) -> bool:
        row = [key, utc_now().isoformat(), document_json]

        sheet = self._sheet(collection)
        idx, _ = self._find_row(sheet, key)
        if idx is None:
            sheet.append_row(row, value_input_option="RAW")
        else:
            sheet.update(
                range_name=f"A{idx}:C{idx}",
                values=[row],
                value_input_option="RAW",
            )
        return True

    async def upsert_document(self, collection: str, key: str, value: dict) -> bool:
        document_json = json.dumps(value, ensure_ascii=False)
        if len(document_json) > MAX_CELL_CHARS:
            raise StorageError(
                f"Document for {key} is {len(document_json)} characters, "
                f"over the {MAX_CELL_CHARS} character cell limit"
            )
        try:
            return await asyncio.to_thread(self._upsert_sync, collection, key, document_json)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to upsert document {collection}/{key}: {e}")

    def _get_sync(self, collection: str, key: str) -> Optional[dict]:
        _, row = self._find_row(self._sheet(collection), key)
        if row is None or len(row) < 3 or not row[2]:
            return None
        return json.loads(row[2])

    async def get_document(self, collection: str, key: str) -> Optional[dict]:
        try:
            return await asyncio.to_thread(self._get_sync, collection, key)
        except StorageError:
            raise
        except json.JSONDecodeError as e:
            raise StorageError(f"Stored document {collection}/{key} is not valid JSON: {e}")
        except Exception as e:
            raise StorageError(f"Failed to get document {collection}/{key}: {e}")

    async def document_exists(self, collection: str, key: str) -> bool:
        def exists() -> bool:
            idx, _ = self._find_row(self._sheet(collection), key)
            return idx is not None

        try:
            return await asyncio.to_thread(exists)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to check document {collection}/{key}: {e}")

    async def delete_document(self, collection: str, key: str) -> bool:
        def delete() -> bool:
            sheet = self._sheet(collection)
            idx, _ = self._find_row(sheet, key)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True

        try:
            return await asyncio.to_thread(delete)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete document {collection}/{key}: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_sync(self, event: AuditEvent) -> None:
        sheet = self._client.get_audit_sheet()
        sheet.append_row(event.to_sheets_row(), value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            await asyncio.to_thread(self._append_sync, event)
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            all_rows = await asyncio.to_thread(
                lambda: self._client.get_audit_sheet().get_all_values()
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows[1:]:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except (ValueError, json.JSONDecodeError):
                    continue  # Skip malformed rows

        # Newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
