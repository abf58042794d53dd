"""
Storage Services Package

Provides abstract interfaces and concrete implementations for the
dataset, local state, audit log and backup artifacts.
The artifact store is a browser or a device strategy, picked once at startup.
"""

from ledgersafe.services.storage.interface import (
    ArtifactInfo,
    ArtifactNotFoundError,
    ArtifactStoreInterface,
    AuditStorageInterface,
    Collection,
    DataStoreInterface,
    KeyValueStoreInterface,
    ShareCancelledError,
    StorageError,
    StorageUnavailableError,
    StoredArtifact,
)
from ledgersafe.services.storage.memory import InMemoryKeyValueStore
from ledgersafe.services.storage.files import JsonFileKeyValueStore
from ledgersafe.services.storage.keyvalue import (
    KeyValueAuditStorage,
    KeyValueDataStore,
    LocalStateStore,
)
from ledgersafe.services.storage.browser import BrowserArtifactStore, DownloadTrigger
from ledgersafe.services.storage.device import DeviceArtifactStore, ShareAction
from ledgersafe.services.storage.platform import (
    PlatformProbe,
    SettingsPlatformProbe,
    StaticPlatformProbe,
    create_artifact_store,
)

__all__ = [
    # Interfaces
    "ArtifactStoreInterface",
    "AuditStorageInterface",
    "DataStoreInterface",
    "KeyValueStoreInterface",
    "Collection",
    "ArtifactInfo",
    "StoredArtifact",
    # Exceptions
    "ArtifactNotFoundError",
    "ShareCancelledError",
    "StorageError",
    "StorageUnavailableError",
    # Key/value implementations
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueAuditStorage",
    "KeyValueDataStore",
    "LocalStateStore",
    # Artifact strategies
    "BrowserArtifactStore",
    "DeviceArtifactStore",
    "DownloadTrigger",
    "ShareAction",
    "PlatformProbe",
    "SettingsPlatformProbe",
    "StaticPlatformProbe",
    "create_artifact_store",
]
