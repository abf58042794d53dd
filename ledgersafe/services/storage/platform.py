"""
Persistence Strategy Selection

The browser and device strategies are chosen exactly once, when the app's
components are wired together. Nothing downstream checks the platform.
"""

import sys
from typing import Optional, Protocol

from ledgersafe.config import BackupSettings, get_settings
from ledgersafe.services.storage.browser import BrowserArtifactStore, DownloadTrigger
from ledgersafe.services.storage.device import DeviceArtifactStore, ShareAction
from ledgersafe.services.storage.interface import (
    ArtifactStoreInterface,
    KeyValueStoreInterface,
)


class PlatformProbe(Protocol):
    """Reports whether the app runs with native filesystem access."""

    def is_native_like(self) -> bool:
        ...


class StaticPlatformProbe:
    """A probe with a fixed answer (tests, or a host that already knows)."""

    def __init__(self, native: bool):
        self._native = native

    def is_native_like(self) -> bool:
        return self._native


class SettingsPlatformProbe:
    """
    Probe driven by AppSettings.platform.

    'browser' and 'device' force a strategy. 'auto' treats Android and iOS
    interpreters as native-like.
    """

    def __init__(self, platform: Optional[str] = None):
        self._platform = platform or get_settings().app.platform

    def is_native_like(self) -> bool:
        if self._platform == "device":
            return True
        if self._platform == "browser":
            return False
        return sys.platform in ("android", "ios")


def create_artifact_store(
    probe: PlatformProbe,
    kv: KeyValueStoreInterface,
    download: Optional[DownloadTrigger] = None,
    share: Optional[ShareAction] = None,
    settings: Optional[BackupSettings] = None,
) -> ArtifactStoreInterface:
    """
    Build the artifact store for the current platform.

    Args:
        probe: Platform capability probe, consulted once
        kv: Key/value store for the browser strategy
        download: Download trigger for the browser strategy
        share: Share action for the device strategy
        settings: Backup settings (directories, key prefix)
    """
    settings = settings or get_settings().backup
    if probe.is_native_like():
        return DeviceArtifactStore(
            private_dir=settings.private_dir,
            shared_dir=settings.shared_dir,
            share=share,
        )
    return BrowserArtifactStore(
        kv=kv,
        key_prefix=settings.key_prefix,
        download=download,
    )
