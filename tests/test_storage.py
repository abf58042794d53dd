"""Tests for the key/value stores and their typed wrappers."""

import pytest

from ledgersafe.models import BackupConfig, BackupFrequency, BackupMode
from ledgersafe.services.storage import (
    Collection,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueDataStore,
    LocalStateStore,
    StorageError,
)


class TestJsonFileKeyValueStore:
    """One JSON file per key."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, tmp_path):
        store = JsonFileKeyValueStore(tmp_path)
        await store.set("ledgersafe_customers", [{"id": "c1", "name": "Asha Traders"}])

        assert await store.get("ledgersafe_customers") == [{"id": "c1", "name": "Asha Traders"}]

    @pytest.mark.asyncio
    async def test_missing_key(self, tmp_path):
        assert await JsonFileKeyValueStore(tmp_path).get("nothing") is None

    @pytest.mark.asyncio
    async def test_awkward_keys(self, tmp_path):
        store = JsonFileKeyValueStore(tmp_path)
        await store.set("last_sync_time:google:asha@example.com", 1)
        await store.set("a/b", 2)

        assert await store.get("a/b") == 2
        assert await store.keys("last_sync_time:") == ["last_sync_time:google:asha@example.com"]

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, tmp_path):
        store = JsonFileKeyValueStore(tmp_path)
        await store.set("key", {"value": 1})
        await store.set("key", {"value": 2})

        assert [p.name for p in tmp_path.iterdir()] == ["key.json"]
        assert await store.get("key") == {"value": 2}

    @pytest.mark.asyncio
    async def test_remove(self, tmp_path):
        store = JsonFileKeyValueStore(tmp_path)
        await store.set("key", 1)

        assert await store.remove("key")
        assert not await store.remove("key")
        assert await store.keys() == []

    @pytest.mark.asyncio
    async def test_corrupt_file(self, tmp_path):
        (tmp_path / "key.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(StorageError):
            await JsonFileKeyValueStore(tmp_path).get("key")

    @pytest.mark.asyncio
    async def test_unwritable_directory(self, tmp_path):
        blocker = tmp_path / "blocked"
        blocker.write_text("not a directory")

        with pytest.raises(StorageError):
            await JsonFileKeyValueStore(blocker).set("key", 1)


class TestKeyValueDataStore:
    """Collections over a key/value store."""

    @pytest.mark.asyncio
    async def test_storage_keys(self):
        kv = InMemoryKeyValueStore()
        store = KeyValueDataStore(kv, prefix="shop_")

        await store.set(Collection.ITEM_RATE_HISTORY, [{"id": "h1"}])

        assert await kv.get("shop_item_rate_history") == [{"id": "h1"}]
        assert store.key_for(Collection.CUSTOMERS) == "shop_customers"

    @pytest.mark.asyncio
    async def test_unwritten_collections(self):
        store = KeyValueDataStore(InMemoryKeyValueStore())

        assert await store.get(Collection.BILLS) == []
        assert await store.get(Collection.BUSINESS_ANALYTICS) == {}


class TestLocalStateStore:
    """Backup config and per-principal sync stamps."""

    @pytest.mark.asyncio
    async def test_default_config(self):
        config = await LocalStateStore(InMemoryKeyValueStore()).get_backup_config()

        assert config.mode == BackupMode.AUTOMATIC
        assert config.frequency == BackupFrequency.WEEKLY
        assert config.last_run_at is None

    @pytest.mark.asyncio
    async def test_config_round_trip(self):
        kv = InMemoryKeyValueStore()
        state = LocalStateStore(kv)
        await state.save_backup_config(BackupConfig(frequency=BackupFrequency.DAILY))

        assert (await state.get_backup_config()).frequency == BackupFrequency.DAILY
        assert await kv.get("ledgersafe_backup_config_v1") == {"mode": "automatic", "frequency": "daily"}

    @pytest.mark.asyncio
    async def test_last_synced_per_principal(self):
        state = LocalStateStore(InMemoryKeyValueStore())
        await state.set_last_synced("local:asha@example.com", 1_700_000_000_000)

        assert await state.get_last_synced("local:asha@example.com") == 1_700_000_000_000
        assert await state.get_last_synced("local:ravi@example.com") is None

        await state.clear_last_synced("local:asha@example.com")
        assert await state.get_last_synced("local:asha@example.com") is None
