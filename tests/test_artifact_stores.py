"""Tests for the browser and device persistence strategies."""

import json

import pytest

from ledgersafe.services.storage import (
    ArtifactNotFoundError,
    BrowserArtifactStore,
    DeviceArtifactStore,
    InMemoryKeyValueStore,
    SettingsPlatformProbe,
    ShareCancelledError,
    StaticPlatformProbe,
    StorageUnavailableError,
    create_artifact_store,
)
from ledgersafe.services.storage.browser import describe_artifact


def artifact(created_at: str) -> bytes:
    return json.dumps({
        "schemaVersion": "2.0.0",
        "createdAt": created_at,
        "body": {},
        "metadata": {"counts": {"customers": 1}},
    }).encode("utf-8")


class BrokenKeyValueStore(InMemoryKeyValueStore):
    async def set(self, key, value):
        raise OSError("quota exceeded")


class TestDescribeArtifact:
    """Listing metadata is read without failing on bad files."""

    def test_reads_timestamp_and_summary(self):
        timestamp, summary = describe_artifact(artifact("2024-06-01T12:00:00+00:00"))
        assert timestamp.isoformat() == "2024-06-01T12:00:00+00:00"
        assert summary["counts"] == {"customers": 1}

    def test_out_of_range_timestamp_lists_at_epoch(self):
        data = json.dumps({"createdAt": 1e20, "body": {}}).encode("utf-8")
        timestamp, _ = describe_artifact(data)
        assert timestamp.year == 1970

    @pytest.mark.asyncio
    async def test_bad_timestamp_does_not_break_listing(self):
        store = BrowserArtifactStore(InMemoryKeyValueStore())
        await store.store(json.dumps({"createdAt": 1e20, "body": {}}).encode("utf-8"), "odd.json")
        await store.store(artifact("2024-06-01T12:00:00+00:00"), "good.json")

        handles = [info.handle for info in await store.list_available()]

        assert handles == ["good.json", "odd.json"]

    def test_garbage_lists_at_epoch(self):
        timestamp, summary = describe_artifact(b"\x00garbage")
        assert timestamp.year == 1970
        assert summary == {}


class TestBrowserArtifactStore:
    """Tests for the key/value + download strategy."""

    @pytest.mark.asyncio
    async def test_store_and_retrieve(self):
        store = BrowserArtifactStore(InMemoryKeyValueStore())
        data = artifact("2024-06-01T12:00:00+00:00")

        stored = await store.store(data, "backup.json")

        assert stored.handle == "backup.json"
        assert await store.retrieve(stored.handle) == data

    @pytest.mark.asyncio
    async def test_name_collision_gets_suffix(self):
        store = BrowserArtifactStore(InMemoryKeyValueStore())
        first = await store.store(artifact("2024-06-01T12:00:00+00:00"), "backup.json")
        second = await store.store(artifact("2024-06-01T12:00:01+00:00"), "backup.json")
        assert first.handle != second.handle
        assert len(await store.list_available()) == 2

    @pytest.mark.asyncio
    async def test_list_newest_first(self):
        store = BrowserArtifactStore(InMemoryKeyValueStore())
        await store.store(artifact("2024-06-01T12:00:00+00:00"), "a.json")
        await store.store(artifact("2024-06-03T12:00:00+00:00"), "c.json")
        await store.store(artifact("2024-06-02T12:00:00+00:00"), "b.json")

        handles = [info.handle for info in await store.list_available()]

        assert handles == ["c.json", "b.json", "a.json"]

    @pytest.mark.asyncio
    async def test_download_handed_off(self):
        downloads = []

        async def download(data, file_name):
            downloads.append(file_name)

        store = BrowserArtifactStore(InMemoryKeyValueStore(), download=download)
        stored = await store.store(artifact("2024-06-01T12:00:00+00:00"), "backup.json")

        assert stored.handed_off
        assert downloads == ["backup.json"]
        assert stored.caveats == []

    @pytest.mark.asyncio
    async def test_cancelled_download_is_not_a_failure(self):
        async def download(data, file_name):
            raise ShareCancelledError("dismissed")

        store = BrowserArtifactStore(InMemoryKeyValueStore(), download=download)
        stored = await store.store(artifact("2024-06-01T12:00:00+00:00"), "backup.json")

        assert not stored.handed_off
        assert len(await store.list_available()) == 1

    @pytest.mark.asyncio
    async def test_kv_failure_with_download_is_a_caveat(self):
        async def download(data, file_name):
            return None

        store = BrowserArtifactStore(BrokenKeyValueStore(), download=download)
        stored = await store.store(artifact("2024-06-01T12:00:00+00:00"), "backup.json")

        assert stored.handed_off
        assert len(stored.caveats) == 1

    @pytest.mark.asyncio
    async def test_nothing_written_is_unavailable(self):
        async def download(data, file_name):
            raise OSError("blocked")

        store = BrowserArtifactStore(BrokenKeyValueStore(), download=download)

        with pytest.raises(StorageUnavailableError):
            await store.store(artifact("2024-06-01T12:00:00+00:00"), "backup.json")

    @pytest.mark.asyncio
    async def test_retrieve_missing(self):
        store = BrowserArtifactStore(InMemoryKeyValueStore())
        with pytest.raises(ArtifactNotFoundError):
            await store.retrieve("nope.json")

    @pytest.mark.asyncio
    async def test_retire_oldest(self):
        store = BrowserArtifactStore(InMemoryKeyValueStore())
        for day in range(1, 8):
            await store.store(artifact(f"2024-06-0{day}T12:00:00+00:00"), f"backup-{day}.json")

        retired = await store.retire_oldest(keep_count=5)

        assert retired == 2
        handles = [info.handle for info in await store.list_available()]
        assert handles == [f"backup-{day}.json" for day in (7, 6, 5, 4, 3)]


class TestDeviceArtifactStore:
    """Tests for the private + shared directory strategy."""

    @pytest.mark.asyncio
    async def test_writes_private_and_shared_copies(self, tmp_path):
        store = DeviceArtifactStore(tmp_path / "private", tmp_path / "shared")
        data = artifact("2024-06-01T12:00:00+00:00")

        stored = await store.store(data, "backup.json")

        assert (tmp_path / "private" / "backup.json").read_bytes() == data
        assert (tmp_path / "shared" / "backup.json").read_bytes() == data
        assert stored.caveats == []
        assert await store.retrieve(stored.handle) == data

    @pytest.mark.asyncio
    async def test_shared_failure_is_a_caveat(self, tmp_path):
        blocker = tmp_path / "shared"
        blocker.write_text("not a directory")
        store = DeviceArtifactStore(tmp_path / "private", blocker)

        stored = await store.store(artifact("2024-06-01T12:00:00+00:00"), "backup.json")

        assert stored.shared_copy is None
        assert len(stored.caveats) == 1
        assert "only be restored from within the app" in stored.caveats[0]
        assert len(await store.list_available()) == 1

    @pytest.mark.asyncio
    async def test_both_locations_failing(self, tmp_path):
        blocker = tmp_path / "blocked"
        blocker.write_text("not a directory")
        store = DeviceArtifactStore(blocker / "private", blocker / "shared")

        with pytest.raises(StorageUnavailableError):
            await store.store(artifact("2024-06-01T12:00:00+00:00"), "backup.json")

    @pytest.mark.asyncio
    async def test_cancelled_share(self, tmp_path):
        async def share(path, title):
            raise ShareCancelledError("dismissed")

        store = DeviceArtifactStore(tmp_path / "private", tmp_path / "shared", share=share)
        stored = await store.store(artifact("2024-06-01T12:00:00+00:00"), "backup.json")

        assert not stored.handed_off
        assert stored.caveats == []

    @pytest.mark.asyncio
    async def test_completed_share(self, tmp_path):
        shared = []

        async def share(path, title):
            shared.append(path)

        store = DeviceArtifactStore(tmp_path / "private", tmp_path / "shared", share=share)
        stored = await store.store(artifact("2024-06-01T12:00:00+00:00"), "backup.json")

        assert stored.handed_off
        assert shared == [tmp_path / "shared" / "backup.json"]

    @pytest.mark.asyncio
    async def test_retire_keeps_shared_copies(self, tmp_path):
        store = DeviceArtifactStore(tmp_path / "private", tmp_path / "shared")
        for day in range(1, 8):
            await store.store(artifact(f"2024-06-0{day}T12:00:00+00:00"), f"backup-{day}.json")

        await store.retire_oldest(keep_count=5)

        assert len(await store.list_available()) == 5
        assert not (tmp_path / "private" / "backup-1.json").exists()
        assert (tmp_path / "shared" / "backup-1.json").exists()

    @pytest.mark.asyncio
    async def test_retrieve_missing(self, tmp_path):
        store = DeviceArtifactStore(tmp_path / "private", tmp_path / "shared")
        with pytest.raises(ArtifactNotFoundError):
            await store.retrieve("nope.json")


class TestPlatformSelection:
    """The strategy is picked once from the platform probe."""

    def test_native_like_gets_device_store(self, backup_settings):
        store = create_artifact_store(
            StaticPlatformProbe(True), InMemoryKeyValueStore(), settings=backup_settings
        )
        assert isinstance(store, DeviceArtifactStore)

    def test_browser_gets_key_value_store(self, backup_settings):
        store = create_artifact_store(
            StaticPlatformProbe(False), InMemoryKeyValueStore(), settings=backup_settings
        )
        assert isinstance(store, BrowserArtifactStore)

    def test_forced_platform(self):
        assert SettingsPlatformProbe("device").is_native_like()
        assert not SettingsPlatformProbe("browser").is_native_like()
