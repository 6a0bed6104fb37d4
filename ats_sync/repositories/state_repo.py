"""
Durable sync state - string key/value store plus typed accessors.
"""
import asyncpg
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ats_sync.config import (
    PROP_JOBSEQ_PREFIX,
    PROP_LINK_DIRTY_PREFIX,
    PROP_LINK_SCHEDULED,
    PROP_QUEUE_JOBIDS,
    PROP_QUEUE_SCHEDULED,
    PROP_RECURSION_GUARD,
    PROP_SETTINGS_HASH,
)

logger = logging.getLogger(__name__)


class StateStore(ABC):
    """Process-wide durable key/value store with string values."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def list_prefix(self, prefix: str) -> Dict[str, str]:
        ...


class InMemoryStateStore(StateStore):
    def __init__(self):
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_prefix(self, prefix: str) -> Dict[str, str]:
        return {k: v for k, v in self._data.items() if k.startswith(prefix)}


class PostgresStateStore(StateStore):
    """State persisted in ats.sync_state."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get(self, key: str) -> Optional[str]:
        return await self.pool.fetchval(
            "SELECT value FROM ats.sync_state WHERE key = $1",
            key
        )

    async def set(self, key: str, value: str) -> None:
        await self.pool.execute(
            """
            INSERT INTO ats.sync_state (key, value, updated_at) VALUES ($1, $2, NOW())
            ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = NOW()
            """,
            key, value
        )

    async def delete(self, key: str) -> None:
        await self.pool.execute("DELETE FROM ats.sync_state WHERE key = $1", key)

    async def list_prefix(self, prefix: str) -> Dict[str, str]:
        rows = await self.pool.fetch(
            "SELECT key, value FROM ats.sync_state WHERE starts_with(key, $1)",
            prefix
        )
        return {r["key"]: r["value"] for r in rows}


class SyncStateRepository:
    """Typed access to the durable sync state.

    Store failures are logged and treated as missing values so a flaky
    store degrades the queue instead of breaking edit handling.
    """

    def __init__(self, store: StateStore):
        self.store = store

    async def _get(self, key: str) -> Optional[str]:
        try:
            return await self.store.get(key)
        except Exception as e:
            logger.warning(f"Failed to get state | key={key} error={e}")
            return None

    async def _set(self, key: str, value: str) -> None:
        try:
            await self.store.set(key, value)
        except Exception as e:
            logger.warning(f"Failed to set state | key={key} error={e}")

    async def _delete(self, key: str) -> None:
        try:
            await self.store.delete(key)
        except Exception as e:
            logger.warning(f"Failed to delete state | key={key} error={e}")

    # ---------- Recursion guard ----------

    async def is_recursion_guard_set(self) -> bool:
        return await self._get(PROP_RECURSION_GUARD) is not None

    async def set_recursion_guard(self) -> None:
        await self._set(PROP_RECURSION_GUARD, "1")

    async def clear_recursion_guard(self) -> None:
        await self._delete(PROP_RECURSION_GUARD)

    # ---------- Job ID sequence ----------

    async def get_job_sequence(self, year: int) -> Optional[int]:
        value = await self._get(f"{PROP_JOBSEQ_PREFIX}{year}")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Corrupt job sequence, treating as uninitialized | year={year} value={value}")
            return None

    async def set_job_sequence(self, year: int, value: int) -> None:
        await self._set(f"{PROP_JOBSEQ_PREFIX}{year}", str(value))

    # ---------- Reconcile queue ----------

    async def get_queue_payload(self) -> Optional[str]:
        return await self._get(PROP_QUEUE_JOBIDS)

    async def set_queue_payload(self, payload: str) -> None:
        await self._set(PROP_QUEUE_JOBIDS, payload)

    async def clear_queue_payload(self) -> None:
        await self._delete(PROP_QUEUE_JOBIDS)

    async def get_scheduled_trigger_id(self) -> Optional[str]:
        return await self._get(PROP_QUEUE_SCHEDULED)

    async def set_scheduled_trigger_id(self, trigger_id: str) -> None:
        await self._set(PROP_QUEUE_SCHEDULED, trigger_id)

    async def clear_scheduled_trigger_id(self) -> None:
        await self._delete(PROP_QUEUE_SCHEDULED)

    # ---------- Settings hash ----------

    async def get_settings_hash(self) -> Optional[str]:
        return await self._get(PROP_SETTINGS_HASH)

    async def set_settings_hash(self, value: str) -> None:
        await self._set(PROP_SETTINGS_HASH, value)

    # ---------- Link hygiene ----------

    @staticmethod
    def link_dirty_prefix(sheet: str, header: str) -> str:
        return f"{PROP_LINK_DIRTY_PREFIX}{sheet}:{header}:"

    async def mark_link_dirty(self, sheet: str, header: str, row: int, stamp: str) -> None:
        await self._set(f"{self.link_dirty_prefix(sheet, header)}{row}", stamp)

    async def consume_link_dirty_rows(self, sheet: str, header: str) -> List[int]:
        """Row numbers marked dirty for (sheet, header); the markers are removed."""
        prefix = self.link_dirty_prefix(sheet, header)
        try:
            markers = await self.store.list_prefix(prefix)
        except Exception as e:
            logger.warning(f"Failed to list link markers | prefix={prefix} error={e}")
            return []
        rows = []
        for key in markers:
            suffix = key[len(prefix):]
            if suffix.isdigit():
                rows.append(int(suffix))
            await self._delete(key)
        return sorted(rows)

    async def count_link_dirty(self) -> int:
        try:
            return len(await self.store.list_prefix(PROP_LINK_DIRTY_PREFIX))
        except Exception as e:
            logger.warning(f"Failed to list link markers | error={e}")
            return 0

    async def get_link_scheduled_at(self) -> Optional[float]:
        value = await self._get(PROP_LINK_SCHEDULED)
        try:
            return float(value) if value is not None else None
        except ValueError:
            return None

    async def set_link_scheduled_at(self, timestamp: float) -> None:
        await self._set(PROP_LINK_SCHEDULED, repr(timestamp))

    async def clear_link_scheduled_at(self) -> None:
        await self._delete(PROP_LINK_SCHEDULED)
