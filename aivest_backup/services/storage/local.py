"""
Local Key-Value Stores

The app keeps each record collection under one key of a key-value
store, serialized as JSON with camelCase field names:

    aivest_expenses        -> [Expense, ...]
    aivest_budgets         -> {category: Budget, ...}
    aivest_emergency_fund  -> EmergencyFund
    aivest_savings_goals   -> [SavingsGoal, ...]

KeyValueLocalStore implements the LocalDataAccessor contract on top of
two primitives (read a key, write a key). Subclasses only provide the
backend: a dict in memory, or a single JSON file on disk.

None of the public methods raise. A failed read resolves to the
collection's empty default, a failed write returns False.
"""

import asyncio
import json
from abc import abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from aivest_backup.models.records import (
    Budget,
    EmergencyFund,
    Expense,
    SavingsGoal,
    utc_now,
)
from aivest_backup.services.storage.interface import LocalDataAccessor


ModelT = TypeVar("ModelT", bound=BaseModel)

logger = structlog.get_logger("aivest_backup.local_store")


class StorageKeys(str, Enum):
    EXPENSES = "aivest_expenses"
    BUDGETS = "aivest_budgets"
    EMERGENCY_FUND = "aivest_emergency_fund"
    SAVINGS_GOALS = "aivest_savings_goals"


class KeyValueLocalStore(LocalDataAccessor):
    """LocalDataAccessor over a raw key-value backend."""

    def __init__(self):
        # Read-modify-write cycles on one key must not interleave
        self._lock = asyncio.Lock()

    @abstractmethod
    async def _read_raw(self, key: str) -> Optional[Any]:
        """Return the JSON value stored under key, or None."""
        pass

    @abstractmethod
    async def _write_raw(self, key: str, value: Any) -> None:
        """Store a JSON value under key. May raise."""
        pass

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _get_data(self, key: StorageKeys, default: Any) -> Any:
        try:
            value = await self._read_raw(key.value)
        except Exception as e:
            logger.error("local_read_failed", key=key.value, error=str(e))
            return default
        return default if value is None else value

    async def _store_data(self, key: StorageKeys, value: Any) -> bool:
        try:
            await self._write_raw(key.value, value)
            return True
        except Exception as e:
            logger.error("local_write_failed", key=key.value, error=str(e))
            return False

    @staticmethod
    def _parse_list(raw: Any, model: type[ModelT], key: StorageKeys) -> list[ModelT]:
        if not isinstance(raw, list):
            logger.warning("local_value_wrong_shape", key=key.value, expected="list")
            return []
        records = []
        for item in raw:
            try:
                records.append(model.model_validate(item))
            except ValidationError as e:
                logger.warning("local_record_skipped", key=key.value, error=str(e))
        return records

    async def _load_list(self, key: StorageKeys, model: type[ModelT]) -> list[ModelT]:
        raw = await self._get_data(key, [])
        return self._parse_list(raw, model, key)

    async def _save_list(self, key: StorageKeys, records: list[BaseModel]) -> bool:
        return await self._store_data(
            key, [r.model_dump(mode="json", by_alias=True) for r in records]
        )

    async def _mutate_list(
        self,
        key: StorageKeys,
        model: type[ModelT],
        mutate: Callable[[list[ModelT]], Optional[list[ModelT]]],
    ) -> bool:
        """Load, apply mutate and save. mutate returns None to abort."""
        async with self._lock:
            records = await self._load_list(key, model)
            updated = mutate(records)
            if updated is None:
                return False
            return await self._save_list(key, updated)

    # -------------------------------------------------------------------------
    # Ledger entries
    # -------------------------------------------------------------------------

    async def get_all_ledger_entries(self) -> list[Expense]:
        return await self._load_list(StorageKeys.EXPENSES, Expense)

    async def add_ledger_entry(self, entry: Expense) -> bool:
        def add(entries: list[Expense]) -> Optional[list[Expense]]:
            if any(e.id == entry.id for e in entries):
                logger.warning("duplicate_ledger_entry", entry_id=entry.id)
                return None
            return [*entries, entry]

        return await self._mutate_list(StorageKeys.EXPENSES, Expense, add)

    async def update_ledger_entry(self, entry: Expense) -> bool:
        return await self._mutate_list(
            StorageKeys.EXPENSES, Expense, _replace_by_id(entry)
        )

    async def delete_ledger_entry(self, entry_id: str) -> bool:
        return await self._mutate_list(
            StorageKeys.EXPENSES, Expense, _remove_by_id(entry_id)
        )

    # -------------------------------------------------------------------------
    # Category limits
    # -------------------------------------------------------------------------

    async def _load_limits(self) -> dict[str, Budget]:
        raw = await self._get_data(StorageKeys.BUDGETS, {})
        if not isinstance(raw, dict):
            logger.warning("local_value_wrong_shape", key=StorageKeys.BUDGETS.value, expected="dict")
            return {}
        limits = {}
        for category, item in raw.items():
            try:
                limits[category] = Budget.model_validate(item)
            except ValidationError as e:
                logger.warning("local_record_skipped", key=StorageKeys.BUDGETS.value, error=str(e))
        return limits

    async def _save_limits(self, limits: dict[str, Budget]) -> bool:
        return await self._store_data(
            StorageKeys.BUDGETS,
            {c: b.model_dump(mode="json", by_alias=True) for c, b in limits.items()},
        )

    async def get_all_category_limits(self) -> dict[str, Budget]:
        return await self._load_limits()

    async def set_category_limit(self, category: str, budget: Budget) -> bool:
        async with self._lock:
            limits = await self._load_limits()
            limits[category] = budget
            return await self._save_limits(limits)

    async def delete_category_limit(self, category: str) -> bool:
        async with self._lock:
            limits = await self._load_limits()
            if limits.pop(category, None) is None:
                return False
            return await self._save_limits(limits)

    # -------------------------------------------------------------------------
    # Savings target
    # -------------------------------------------------------------------------

    async def get_savings_target(self) -> EmergencyFund:
        raw = await self._get_data(StorageKeys.EMERGENCY_FUND, None)
        if raw is None:
            return EmergencyFund()
        try:
            return EmergencyFund.model_validate(raw)
        except ValidationError as e:
            logger.warning("local_record_skipped", key=StorageKeys.EMERGENCY_FUND.value, error=str(e))
            return EmergencyFund()

    async def update_savings_target(self, fund: EmergencyFund) -> bool:
        updated = fund.model_copy(update={"updated_at": utc_now()})
        async with self._lock:
            return await self._store_data(
                StorageKeys.EMERGENCY_FUND,
                updated.model_dump(mode="json", by_alias=True),
            )

    # -------------------------------------------------------------------------
    # Savings goals
    # -------------------------------------------------------------------------

    async def get_all_savings_goals(self) -> list[SavingsGoal]:
        return await self._load_list(StorageKeys.SAVINGS_GOALS, SavingsGoal)

    async def add_savings_goal(self, goal: SavingsGoal) -> bool:
        def add(goals: list[SavingsGoal]) -> Optional[list[SavingsGoal]]:
            if any(g.id == goal.id for g in goals):
                logger.warning("duplicate_savings_goal", goal_id=goal.id)
                return None
            return [*goals, goal]

        return await self._mutate_list(StorageKeys.SAVINGS_GOALS, SavingsGoal, add)

    async def update_savings_goal(self, goal: SavingsGoal) -> bool:
        return await self._mutate_list(
            StorageKeys.SAVINGS_GOALS, SavingsGoal, _replace_by_id(goal)
        )

    async def delete_savings_goal(self, goal_id: str) -> bool:
        return await self._mutate_list(
            StorageKeys.SAVINGS_GOALS, SavingsGoal, _remove_by_id(goal_id)
        )


def _replace_by_id(record):
    def replace(records: list) -> Optional[list]:
        for idx, existing in enumerate(records):
            if existing.id == record.id:
                return [*records[:idx], record, *records[idx + 1:]]
        return None
    return replace


def _remove_by_id(record_id: str):
    def remove(records: list) -> Optional[list]:
        remaining = [r for r in records if r.id != record_id]
        if len(remaining) == len(records):
            return None
        return remaining
    return remove


class InMemoryLocalStore(KeyValueLocalStore):
    """Dict-backed store. Values are round-tripped through JSON like a real backend."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        super().__init__()
        self._data: dict[str, str] = {
            key: json.dumps(value) for key, value in (initial or {}).items()
        }

    async def _read_raw(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def _write_raw(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def raw_keys(self) -> list[str]:
        return list(self._data)


class JsonFileLocalStore(KeyValueLocalStore):
    """
    All keys in a single JSON file.

    The file is rewritten through a temporary file and an atomic
    rename, so a crash mid-write leaves the previous contents intact.
    """

    def __init__(self, path: str | Path):
        super().__init__()
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load_file(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        with self._path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Local store file is not a JSON object: {self._path}")
        return data

    def _dump_file(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        tmp_path.replace(self._path)

    async def _read_raw(self, key: str) -> Optional[Any]:
        data = await asyncio.to_thread(self._load_file)
        return data.get(key)

    async def _write_raw(self, key: str, value: Any) -> None:
        def write() -> None:
            data = self._load_file()
            data[key] = value
            self._dump_file(data)

        await asyncio.to_thread(write)
