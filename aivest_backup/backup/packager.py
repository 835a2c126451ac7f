"""
Backup Packager

Reads the four record collections through the LocalDataAccessor and
assembles a versioned BackupSnapshot.

DESIGN DECISION: A degraded backup beats no backup. If one collection
fails to load, the snapshot carries an empty default for it; if the
whole step fails, the snapshot is empty. Either way the failure is
logged and collect() still returns a well-formed snapshot, so callers
must not assume a successful collect() means a complete snapshot.

The four reads are not a transaction. Screens writing concurrently can
yield a snapshot that is consistent per collection but not across them.
"""

import asyncio
from typing import Any

import structlog

from aivest_backup.models.backup import (
    CURRENT_SCHEMA_VERSION,
    BackupSnapshot,
    CollectionResult,
    CollectionStatus,
)
from aivest_backup.models.records import EmergencyFund
from aivest_backup.services.storage import LocalDataAccessor


logger = structlog.get_logger("aivest_backup.packager")


COLLECTION_NAMES = (
    "ledger_entries",
    "category_limits",
    "savings_target",
    "savings_goals",
)


def _empty_default(name: str) -> Any:
    if name == "category_limits":
        return {}
    if name == "savings_target":
        return EmergencyFund()
    return []


class BackupPackager:
    """Builds snapshots of local data."""

    def __init__(
        self,
        accessor: LocalDataAccessor,
        schema_version: str = CURRENT_SCHEMA_VERSION,
    ):
        self._accessor = accessor
        self._schema_version = schema_version

    async def collect(self) -> BackupSnapshot:
        """Snapshot of all local data. Never raises."""
        return (await self.collect_with_status()).snapshot

    async def collect_with_status(self) -> CollectionResult:
        """
        Snapshot plus whether it is complete.

        Returns a DEGRADED result naming the collections that could not
        be read; those collections are empty in the snapshot.
        """
        try:
            results = await asyncio.gather(
                self._accessor.get_all_ledger_entries(),
                self._accessor.get_all_category_limits(),
                self._accessor.get_savings_target(),
                self._accessor.get_all_savings_goals(),
                return_exceptions=True,
            )

            values: dict[str, Any] = {}
            failed: list[str] = []
            causes: list[str] = []
            for name, result in zip(COLLECTION_NAMES, results):
                if isinstance(result, BaseException):
                    if not isinstance(result, Exception):
                        raise result
                    failed.append(name)
                    causes.append(f"{name}: {result}")
                    values[name] = _empty_default(name)
                elif result is None:
                    values[name] = _empty_default(name)
                else:
                    values[name] = result

            snapshot = BackupSnapshot.build(
                ledger_entries=list(values["ledger_entries"]),
                category_limits=dict(values["category_limits"]),
                savings_target=values["savings_target"],
                savings_goals=list(values["savings_goals"]),
                schema_version=self._schema_version,
            )
        except Exception as e:
            logger.error("collection_failed", error=str(e), exc_info=True)
            return CollectionResult(
                status=CollectionStatus.DEGRADED,
                snapshot=BackupSnapshot.empty(self._schema_version),
                cause=str(e),
                failed_collections=list(COLLECTION_NAMES),
            )

        if failed:
            cause = "; ".join(causes)
            logger.warning(
                "collection_degraded",
                failed_collections=failed,
                error=cause,
            )
            return CollectionResult(
                status=CollectionStatus.DEGRADED,
                snapshot=snapshot,
                cause=cause,
                failed_collections=failed,
            )

        logger.info(
            "collection_completed",
            ledger_entries=len(snapshot.ledger_entries),
            category_limits=len(snapshot.category_limits),
            savings_goals=len(snapshot.savings_goals),
        )
        return CollectionResult(status=CollectionStatus.OK, snapshot=snapshot)

    @property
    def schema_version(self) -> str:
        return self._schema_version
