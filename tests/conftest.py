"""
Shared fixtures.

No real cloud or platform calls in tests: in-memory key/value stores,
a fake remote document store, and settings with zero retry delays.
"""

import asyncio
import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from ledgersafe.config import BackupSettings, SyncSettings
from ledgersafe.restore import RestoreApplier, RestoreValidator
from ledgersafe.services.cloud import LocalIdentityProvider, RemoteDocumentStoreInterface
from ledgersafe.services.storage import (
    InMemoryKeyValueStore,
    KeyValueDataStore,
    LocalStateStore,
)
from ledgersafe.snapshot import SnapshotBuilder


PREFIX = "ledgersafe_"

SAMPLE_DATA: dict[str, Any] = {
    "customers": [
        {"id": "c1", "name": "Asha Traders", "phone": "9845012345", "createdAt": "2024-01-02T09:00:00Z"},
        {"id": "c2", "name": "Ravi Stores", "createdAt": "2024-01-03T09:00:00Z"},
    ],
    "bills": [
        {
            "id": "b1",
            "customerId": "c1",
            "customerName": "Asha Traders",
            "date": "2024-01-05",
            "items": [{"itemName": "Rice", "quantity": 2, "rate": 50}],
            "grandTotal": 100.0,
            "createdAt": "2024-01-05T10:00:00Z",
        },
        {
            "id": "b2",
            "customerId": "c2",
            "customerName": "Ravi Stores",
            "date": "2024-02-10",
            "items": [],
            "grandTotal": 250.5,
            "createdAt": "2024-02-10T11:30:00Z",
        },
    ],
    "payments": [
        {
            "id": "p1",
            "customerId": "c1",
            "amount": 60.0,
            "date": "2024-01-20",
            "paymentMethod": "cash",
        },
    ],
    "items": [
        {"id": "i1", "name": "Rice", "type": "fixed", "rate": 50.0},
    ],
    "item_rate_history": [],
    "business_analytics": {"monthlyTarget": 10000},
}

OTHER_DATA: dict[str, Any] = {
    "customers": [{"id": "c9", "name": "Meena Textiles"}],
    "bills": [{"id": "b9", "customerId": "c9", "date": "2024-03-01", "grandTotal": 999.0}],
    "payments": [],
    "items": [],
    "item_rate_history": [],
    "business_analytics": {},
}


def seeded(data: dict[str, Any], prefix: str = PREFIX) -> dict[str, Any]:
    """Key/value contents for a dataset under a key prefix."""
    return {prefix + name: copy.deepcopy(value) for name, value in data.items()}


class TickingClock:
    """A clock that moves forward by step on every call."""

    def __init__(
        self,
        start: Optional[datetime] = None,
        step: timedelta = timedelta(seconds=1),
    ):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


class FakeRemote(RemoteDocumentStoreInterface):
    """
    Remote document store with call counts and scripted failures.

    Set gate to an unset asyncio.Event to hold reads until it is set.
    """

    def __init__(self):
        self.documents: dict[str, dict] = {}
        self.calls: list[str] = []
        self.read_errors: list[Exception] = []
        self.write_errors: list[Exception] = []
        self.gate: Optional[asyncio.Event] = None

    @property
    def reads(self) -> int:
        return self.calls.count("read")

    @property
    def writes(self) -> int:
        return self.calls.count("write")

    async def read(self, principal_key: str) -> Optional[dict]:
        self.calls.append("read")
        if self.gate is not None:
            await self.gate.wait()
        if self.read_errors:
            raise self.read_errors.pop(0)
        return copy.deepcopy(self.documents.get(principal_key))

    async def write(self, principal_key: str, document: dict) -> None:
        self.calls.append("write")
        if self.write_errors:
            raise self.write_errors.pop(0)
        self.documents[principal_key] = copy.deepcopy(document)


@pytest.fixture
def sync_settings() -> SyncSettings:
    return SyncSettings(
        max_attempts=3,
        retry_base_delay_seconds=0.0,
        retry_max_delay_seconds=0.0,
        remote_timeout_seconds=0.5,
        sign_in_timeout_seconds=0.5,
        interval_seconds=3600.0,
    )


@pytest.fixture
def backup_settings(tmp_path) -> BackupSettings:
    return BackupSettings(
        retention_count=5,
        private_dir=tmp_path / "private",
        shared_dir=tmp_path / "shared",
        kdf_iterations=10_000,
    )


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(seeded(SAMPLE_DATA))


@pytest.fixture
def empty_kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def data_store(kv) -> KeyValueDataStore:
    return KeyValueDataStore(kv, prefix=PREFIX)


@pytest.fixture
def state_store(kv) -> LocalStateStore:
    return LocalStateStore(kv, prefix=PREFIX)


@pytest.fixture
def builder(data_store, clock) -> SnapshotBuilder:
    return SnapshotBuilder(data_store, clock=clock)


@pytest.fixture
def validator() -> RestoreValidator:
    return RestoreValidator()


@pytest.fixture
def applier(data_store) -> RestoreApplier:
    return RestoreApplier(data_store)


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def identity(kv) -> LocalIdentityProvider:
    return LocalIdentityProvider(kv, prefix=PREFIX)


async def build_snapshot(data: dict[str, Any]):
    """Snapshot of a dataset held in its own throwaway store."""
    store = KeyValueDataStore(InMemoryKeyValueStore(seeded(data)), prefix=PREFIX)
    return await SnapshotBuilder(store).build()
