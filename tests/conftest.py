"""
Shared fixtures.

Everything runs against in-memory stores; no network, no Google Sheets.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from aivest_backup.audit import AuditLogger
from aivest_backup.backup import BackupService
from aivest_backup.config import BackupSettings
from aivest_backup.models import EmergencyFund
from aivest_backup.services.storage import (
    InMemoryAuditStorage,
    InMemoryLocalStore,
    InMemoryRemoteStore,
)

from helpers import food_expense, food_limit


@pytest.fixture
def backup_settings() -> BackupSettings:
    return BackupSettings(quiet_period_seconds=0.05, restore_timeout_seconds=1.0)


@pytest.fixture
def local_store() -> InMemoryLocalStore:
    return InMemoryLocalStore()


@pytest.fixture
def seeded_store() -> InMemoryLocalStore:
    """One ₹500 Food & Dining expense, a ₹5000 Food & Dining limit, no goals."""
    return InMemoryLocalStore({
        "aivest_expenses": [food_expense().to_storage_dict()],
        "aivest_budgets": {"Food & Dining": food_limit().to_storage_dict()},
        "aivest_emergency_fund": EmergencyFund(
            target=Decimal("60000"),
            current=Decimal("12000"),
            updated_at=datetime(2024, 11, 1, tzinfo=timezone.utc),
        ).to_storage_dict(),
    })


@pytest.fixture
def remote_store() -> InMemoryRemoteStore:
    return InMemoryRemoteStore()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def make_service(remote_store, audit_logger, backup_settings):
    """Build a BackupService over a given local store and the shared remote store."""
    def make(accessor, settings: BackupSettings = None) -> BackupService:
        return BackupService(
            accessor=accessor,
            remote_store=remote_store,
            audit_logger=audit_logger,
            settings=settings or backup_settings,
        )
    return make
