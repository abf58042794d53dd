"""
Key/Value-Backed Stores

The billing app keeps everything in a flat key/value store: one key per
collection, a config record, per-principal sync stamps, and the audit log.
These classes give each of those a typed face over any
KeyValueStoreInterface.
"""

from typing import Any, Optional
from uuid import UUID

from ledgersafe.models.audit import AuditEvent
from ledgersafe.models.state import BackupConfig
from ledgersafe.services.storage.interface import (
    AuditStorageInterface,
    Collection,
    DataStoreInterface,
    KeyValueStoreInterface,
)


# Collections whose storage key differs from their wire name
_STORAGE_NAMES = {
    Collection.ITEM_RATE_HISTORY: "item_rate_history",
    Collection.BUSINESS_ANALYTICS: "business_analytics",
}


class KeyValueDataStore(DataStoreInterface):
    """The business dataset, stored as one key per collection."""

    def __init__(self, kv: KeyValueStoreInterface, prefix: str = "ledgersafe_"):
        self._kv = kv
        self._prefix = prefix

    def key_for(self, collection: Collection) -> str:
        return f"{self._prefix}{_STORAGE_NAMES.get(collection, collection.value)}"

    async def get(self, collection: Collection) -> Any:
        value = await self._kv.get(self.key_for(collection))
        if value is None:
            return collection.empty_value
        return value

    async def set(self, collection: Collection, records: Any) -> None:
        await self._kv.set(self.key_for(collection), records)


class LocalStateStore:
    """
    Backup config and last-synced timestamps.

    Last-synced values are epoch milliseconds, the unit the remote
    document's lastUpdate uses.
    """

    CONFIG_KEY = "backup_config_v1"
    LAST_SYNC_KEY = "last_sync_time"

    def __init__(self, kv: KeyValueStoreInterface, prefix: str = "ledgersafe_"):
        self._kv = kv
        self._prefix = prefix

    async def get_backup_config(self) -> BackupConfig:
        raw = await self._kv.get(self._prefix + self.CONFIG_KEY)
        if not isinstance(raw, dict):
            return BackupConfig()
        return BackupConfig.model_validate(raw)

    async def save_backup_config(self, config: BackupConfig) -> None:
        await self._kv.set(self._prefix + self.CONFIG_KEY, config.to_wire())

    async def get_last_synced(self, principal_id: str) -> Optional[int]:
        value = await self._kv.get(f"{self._prefix}{self.LAST_SYNC_KEY}:{principal_id}")
        return int(value) if value is not None else None

    async def set_last_synced(self, principal_id: str, timestamp_ms: int) -> None:
        await self._kv.set(f"{self._prefix}{self.LAST_SYNC_KEY}:{principal_id}", int(timestamp_ms))

    async def clear_last_synced(self, principal_id: str) -> None:
        await self._kv.remove(f"{self._prefix}{self.LAST_SYNC_KEY}:{principal_id}")


class KeyValueAuditStorage(AuditStorageInterface):
    """
    Audit log kept as a single append-only list under one key.

    Old entries beyond max_events are dropped from the front so the log
    cannot grow without bound on a small device.
    """

    def __init__(
        self,
        kv: KeyValueStoreInterface,
        key: str = "ledgersafe_audit_log",
        max_events: int = 1000,
    ):
        self._kv = kv
        self._key = key
        self._max_events = max_events

    async def _load(self) -> list[AuditEvent]:
        raw = await self._kv.get(self._key) or []
        return [AuditEvent.model_validate(entry) for entry in raw]

    async def append_event(self, event: AuditEvent) -> bool:
        raw = await self._kv.get(self._key) or []
        raw.append(event.model_dump(mode="json"))
        await self._kv.set(self._key, raw[-self._max_events:])
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in await self._load() if e.correlation_id == correlation_id]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = await self._load()
        return list(reversed(events))[:limit]
