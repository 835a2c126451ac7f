"""
Tests for BackupService (backup, restore, has_backup, get_backup_info).

Flows run end to end against in-memory local and remote stores.
"""

import asyncio
from decimal import Decimal

import pytest

from aivest_backup.backup import BackupService, IntegrityDigest, canonical_json
from aivest_backup.config import BackupSettings
from aivest_backup.models import AuditEventType, RestoreStatus
from aivest_backup.services.storage import InMemoryLocalStore, InMemoryRemoteStore

from helpers import USER_EMAIL, USER_ID, food_expense, rainy_day_goal


COLLECTION = "user_backups"


class SlowRemoteStore(InMemoryRemoteStore):
    async def get_document(self, collection, key):
        await asyncio.sleep(1.0)
        return await super().get_document(collection, key)


class FlakyGoalsStore(InMemoryLocalStore):
    async def get_all_savings_goals(self):
        raise RuntimeError("storage quota exceeded")


def event_types(audit_storage) -> list[AuditEventType]:
    return [e.event_type for e in audit_storage.events]


class TestBackup:
    """Tests for BackupService.backup."""

    def test_backup_stores_envelope(self, seeded_store, remote_store, make_service):
        service = make_service(seeded_store)
        assert asyncio.run(service.backup(USER_ID, USER_EMAIL)) is True

        document = remote_store._collections[COLLECTION][USER_ID]
        assert '"userId": "firebase-uid-123"' in document

    def test_stored_digest_matches_stored_payload(self, seeded_store, remote_store, make_service):
        service = make_service(seeded_store)

        async def run():
            await service.backup(USER_ID, USER_EMAIL)
            return await remote_store.get_document(COLLECTION, USER_ID)

        document = asyncio.run(run())
        expected = IntegrityDigest().digest(canonical_json(document["payload"]))
        assert document["integrityDigest"] == expected
        assert document["schemaVersion"] == "1.0"
        assert document["payload"]["metadata"]["recordCount"] == 1

    def test_backup_overwrites_previous(self, seeded_store, remote_store, make_service):
        """Each backup fully replaces the remote document."""
        service = make_service(seeded_store)

        async def run():
            await service.backup(USER_ID, USER_EMAIL)
            await seeded_store.add_ledger_entry(food_expense("1700000000099", "120"))
            await service.backup(USER_ID, USER_EMAIL)
            return await remote_store.get_document(COLLECTION, USER_ID)

        document = asyncio.run(run())
        assert remote_store.write_count == 2
        assert document["payload"]["metadata"]["recordCount"] == 2

    def test_backup_returns_false_when_offline(self, seeded_store, remote_store, make_service, audit_storage):
        remote_store.offline = True
        service = make_service(seeded_store)
        assert asyncio.run(service.backup(USER_ID, USER_EMAIL)) is False
        assert AuditEventType.BACKUP_FAILED in event_types(audit_storage)
        failed = [e for e in audit_storage.events if e.event_type == AuditEventType.BACKUP_FAILED][0]
        assert failed.details["stage"] == "upload"
        assert AuditEventType.EXTERNAL_SERVICE_ERROR in event_types(audit_storage)

    def test_backup_rejects_empty_user_id(self, seeded_store, make_service):
        service = make_service(seeded_store)
        assert asyncio.run(service.backup("", USER_EMAIL)) is False

    def test_degraded_collection_still_backs_up(self, remote_store, make_service, audit_storage):
        store = FlakyGoalsStore({"aivest_expenses": [food_expense().to_storage_dict()]})
        service = make_service(store)
        assert asyncio.run(service.backup(USER_ID, USER_EMAIL)) is True
        assert AuditEventType.COLLECTION_DEGRADED in event_types(audit_storage)
        assert AuditEventType.BACKUP_COMPLETED in event_types(audit_storage)

    def test_manual_backup_is_user_action(self, seeded_store, make_service, audit_storage):
        service = make_service(seeded_store)
        assert asyncio.run(service.trigger_manual_backup(USER_ID, USER_EMAIL)) is True
        started = audit_storage.events[0]
        assert started.event_type == AuditEventType.BACKUP_STARTED
        assert started.is_user_action is True


class TestPerUserLocks:
    """Backups and restores for one user are serialized; locks don't pile up."""

    def test_locks_are_released_after_use(self, seeded_store, make_service):
        service = make_service(seeded_store)
        users = [f"uid-{n}" for n in range(20)]

        async def run():
            await asyncio.gather(*(service.backup(u, USER_EMAIL) for u in users))
            await asyncio.gather(*(service.restore(u, USER_EMAIL) for u in users))
            # Same user twice at once: both succeed, one after the other
            results = await asyncio.gather(
                service.backup(USER_ID, USER_EMAIL),
                service.backup(USER_ID, USER_EMAIL),
            )
            return results, len(service._locks)

        results, lock_count = asyncio.run(run())
        assert results == [True, True]
        assert lock_count == 0


class TestRestore:
    """Tests for BackupService.restore and the restore-merge policy."""

    def test_round_trip_scenario(self, seeded_store, make_service):
        """
        One ₹500 expense and a ₹5000 Food & Dining limit, backed up then
        restored onto a fresh device.
        """
        fresh_store = InMemoryLocalStore()

        async def run():
            assert await make_service(seeded_store).backup(USER_ID, USER_EMAIL) is True
            restorer = make_service(fresh_store)
            assert await restorer.restore(USER_ID, USER_EMAIL) is True
            info = await restorer.get_backup_info(USER_ID)
            return (
                await fresh_store.get_all_category_limits(),
                await fresh_store.get_all_ledger_entries(),
                await fresh_store.get_savings_target(),
                info,
            )

        limits, entries, target, info = asyncio.run(run())
        assert limits["Food & Dining"].amount == Decimal("5000")
        assert entries == []  # expenses are never restored
        assert target.target == Decimal("60000")
        assert target.current == Decimal("12000")
        assert info.record_count == 1

    def test_restore_without_backup(self, local_store, make_service, audit_storage):
        service = make_service(local_store)

        async def run():
            return (
                await service.restore_with_report("never-backed-up", USER_EMAIL),
                await service.restore("never-backed-up", USER_EMAIL),
                await service.has_backup("never-backed-up"),
                await service.get_backup_info("never-backed-up"),
            )

        report, restored, exists, info = asyncio.run(run())
        assert report.status == RestoreStatus.NO_BACKUP
        assert restored is False
        assert exists is False
        assert info is None
        assert AuditEventType.NO_BACKUP_FOUND in event_types(audit_storage)

    def test_restore_is_idempotent(self, seeded_store, make_service):
        """Restoring twice changes nothing and duplicates nothing."""
        service = make_service(seeded_store)

        async def run():
            await seeded_store.add_savings_goal(rainy_day_goal())
            await service.backup(USER_ID, USER_EMAIL)
            await service.restore(USER_ID, USER_EMAIL)
            first = (
                await seeded_store.get_all_category_limits(),
                (await seeded_store.get_savings_target()).target,
            )
            await service.restore(USER_ID, USER_EMAIL)
            second = (
                await seeded_store.get_all_category_limits(),
                (await seeded_store.get_savings_target()).target,
            )
            return (
                first,
                second,
                await seeded_store.get_all_ledger_entries(),
                await seeded_store.get_all_savings_goals(),
            )

        first, second, entries, goals = asyncio.run(run())
        assert first == second
        assert len(entries) == 1
        assert len(goals) == 1

    def test_restore_overwrites_local_limits(self, seeded_store, make_service):
        service = make_service(seeded_store)

        async def run():
            await service.backup(USER_ID, USER_EMAIL)
            limits = await seeded_store.get_all_category_limits()
            await seeded_store.set_category_limit(
                "Food & Dining",
                limits["Food & Dining"].model_copy(update={"amount": Decimal("1")}),
            )
            await service.restore(USER_ID, USER_EMAIL)
            return await seeded_store.get_all_category_limits()

        limits = asyncio.run(run())
        assert limits["Food & Dining"].amount == Decimal("5000")

    def test_integrity_mismatch_still_restores(self, seeded_store, remote_store, make_service, audit_storage):
        """A tampered payload is restored anyway, with a logged warning."""
        service = make_service(seeded_store)
        fresh_store = InMemoryLocalStore()

        async def run():
            await service.backup(USER_ID, USER_EMAIL)
            document = await remote_store.get_document(COLLECTION, USER_ID)
            document["payload"]["categoryLimits"]["Food & Dining"]["amount"] = "7000"
            remote_store.put_raw(COLLECTION, USER_ID, document)
            report = await make_service(fresh_store).restore_with_report(USER_ID, USER_EMAIL)
            return report, await fresh_store.get_all_category_limits()

        report, limits = asyncio.run(run())
        assert report.succeeded
        assert report.integrity_verified is False
        assert limits["Food & Dining"].amount == Decimal("7000")
        assert AuditEventType.INTEGRITY_MISMATCH in event_types(audit_storage)

    def test_verified_restore_reports_integrity(self, seeded_store, make_service):
        service = make_service(seeded_store)

        async def run():
            await service.backup(USER_ID, USER_EMAIL)
            return await service.restore_with_report(USER_ID, USER_EMAIL)

        report = asyncio.run(run())
        assert report.integrity_verified is True
        assert report.restored_categories == ["Food & Dining"]
        assert report.savings_target_restored is True

    def test_missing_payload_is_malformed(self, local_store, remote_store, make_service):
        remote_store.put_raw(COLLECTION, USER_ID, {
            "userId": USER_ID,
            "integrityDigest": "abc",
            "schemaVersion": "1.0",
        })
        service = make_service(local_store)
        report = asyncio.run(service.restore_with_report(USER_ID, USER_EMAIL))
        assert report.status == RestoreStatus.MALFORMED
        assert asyncio.run(service.restore(USER_ID, USER_EMAIL)) is False

    def test_string_payload_is_malformed(self, local_store, remote_store, make_service):
        remote_store.put_raw(COLLECTION, USER_ID, {"userId": USER_ID, "payload": "eyJlbmNvZGVkIjp0cnVlfQ=="})
        service = make_service(local_store)
        assert asyncio.run(service.restore(USER_ID, USER_EMAIL)) is False

    def test_newer_schema_version_is_malformed(self, seeded_store, remote_store, make_service):
        service = make_service(seeded_store)

        async def run():
            await service.backup(USER_ID, USER_EMAIL)
            document = await remote_store.get_document(COLLECTION, USER_ID)
            document["schemaVersion"] = "2.0"
            remote_store.put_raw(COLLECTION, USER_ID, document)
            return await service.restore_with_report(USER_ID, USER_EMAIL)

        assert asyncio.run(run()).status == RestoreStatus.MALFORMED

    def test_invalid_limit_entries_are_skipped(self, local_store, remote_store, make_service):
        """Bad entries are skipped individually; good ones are restored."""
        remote_store.put_raw(COLLECTION, USER_ID, {
            "userId": USER_ID,
            "schemaVersion": "1.0",
            "integrityDigest": "stale",
            "payload": {
                "categoryLimits": {
                    "Food & Dining": {"amount": "lots"},
                    "Travel": {"amount": 2500, "updatedAt": "2024-10-01T00:00:00Z"},
                },
                "savingsTarget": {"target": -5, "current": 0},
            },
        })
        service = make_service(local_store)

        async def run():
            report = await service.restore_with_report(USER_ID, USER_EMAIL)
            return report, await local_store.get_all_category_limits()

        report, limits = asyncio.run(run())
        assert report.succeeded
        assert set(limits) == {"Travel"}
        assert "categoryLimits.Food & Dining" in report.skipped_records
        assert "savingsTarget" in report.skipped_records
        assert report.savings_target_restored is False

    def test_restore_transport_failure(self, local_store, remote_store, make_service):
        remote_store.offline = True
        service = make_service(local_store)
        report = asyncio.run(service.restore_with_report(USER_ID, USER_EMAIL))
        assert report.status == RestoreStatus.TRANSPORT_FAILED
        assert "unreachable" in report.error_message

    def test_restore_timeout_leaves_local_data_untouched(self, seeded_store, audit_logger, backup_settings):
        remote = SlowRemoteStore()
        service = BackupService(seeded_store, remote, audit_logger=audit_logger, settings=backup_settings)

        async def run():
            await service.backup(USER_ID, USER_EMAIL)
            await seeded_store.delete_category_limit("Food & Dining")
            report = await service.restore_report_with_timeout(USER_ID, USER_EMAIL, timeout=0.05)
            return report, await seeded_store.get_all_category_limits()

        report, limits = asyncio.run(run())
        assert report.status == RestoreStatus.TIMED_OUT
        assert limits == {}


class TestQueries:
    """Tests for has_backup, get_backup_info and clear_backup."""

    def test_has_backup_after_backup(self, seeded_store, make_service):
        service = make_service(seeded_store)

        async def run():
            before = await service.has_backup(USER_ID)
            await service.backup(USER_ID, USER_EMAIL)
            return before, await service.has_backup(USER_ID)

        assert asyncio.run(run()) == (False, True)

    def test_queries_never_raise_when_offline(self, local_store, remote_store, make_service):
        remote_store.offline = True
        service = make_service(local_store)
        assert asyncio.run(service.has_backup(USER_ID)) is False
        assert asyncio.run(service.get_backup_info(USER_ID)) is None

    def test_backup_info_counts(self, seeded_store, make_service):
        service = make_service(seeded_store)

        async def run():
            await seeded_store.add_savings_goal(rainy_day_goal())
            await service.backup(USER_ID, USER_EMAIL)
            return await service.get_backup_info(USER_ID)

        info = asyncio.run(run())
        assert info.has_data is True
        assert info.record_count == 1
        assert info.ledger_entry_count == 1
        assert info.savings_goal_count == 1
        assert info.category_limit_count == 1
        assert info.schema_version == "1.0"
        assert info.device_info.platform == "python"
        assert info.last_updated is not None

    def test_clear_backup_disabled_by_default(self, seeded_store, make_service):
        service = make_service(seeded_store)

        async def run():
            await service.backup(USER_ID, USER_EMAIL)
            cleared = await service.clear_backup(USER_ID)
            return cleared, await service.has_backup(USER_ID)

        assert asyncio.run(run()) == (True, True)

    def test_clear_backup_when_enabled(self, seeded_store, make_service):
        service = make_service(seeded_store, BackupSettings(allow_backup_deletion=True))

        async def run():
            await service.backup(USER_ID, USER_EMAIL)
            cleared = await service.clear_backup(USER_ID)
            return cleared, await service.has_backup(USER_ID)

        assert asyncio.run(run()) == (True, False)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
