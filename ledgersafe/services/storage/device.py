"""
Device Filesystem Persistence Strategy

Each backup is written twice: into an app-private directory (the copy that
list_available and retrieve use) and into a user-visible shared folder.
Then a platform share action lets the user move the file to the cloud
storage of their choice.

DESIGN DECISION: Degrade, don't fail.
- Shared write fails  -> success with a caveat ("restorable only in-app")
- Private write fails -> success with a caveat, if the shared copy exists
- Both fail           -> StorageUnavailableError
- Share cancelled     -> success, handed_off=False

Writing the file and handing it to the user are separate outcomes.
"""

import asyncio
from pathlib import Path
from typing import Optional, Protocol

import structlog

from ledgersafe.services.storage.browser import describe_artifact
from ledgersafe.services.storage.files import atomic_write_bytes
from ledgersafe.services.storage.interface import (
    ArtifactInfo,
    ArtifactNotFoundError,
    ArtifactStoreInterface,
    ShareCancelledError,
    StorageUnavailableError,
    StoredArtifact,
)


logger = structlog.get_logger(__name__)


class ShareAction(Protocol):
    """Opens the platform share sheet for a file."""

    async def __call__(self, path: Path, title: str) -> None:
        ...


class DeviceArtifactStore(ArtifactStoreInterface):
    """Artifacts as JSON files in a private and a shared directory."""

    def __init__(
        self,
        private_dir: Path,
        shared_dir: Optional[Path] = None,
        share: Optional[ShareAction] = None,
    ):
        self._private_dir = Path(private_dir)
        self._shared_dir = Path(shared_dir) if shared_dir is not None else None
        self._share = share

    def _unique_name(self, name: str) -> str:
        candidate = name
        counter = 1
        while (self._private_dir / candidate).exists():
            stem, dot, ext = name.rpartition(".")
            candidate = f"{stem}_{counter}.{ext}" if dot else f"{name}_{counter}"
            counter += 1
        return candidate

    async def store(self, artifact: bytes, suggested_name: str) -> StoredArtifact:
        name = self._unique_name(Path(suggested_name).name)
        caveats: list[str] = []

        private_path: Optional[Path] = self._private_dir / name
        try:
            await asyncio.to_thread(atomic_write_bytes, private_path, artifact)
        except OSError as e:
            logger.warning("device_private_write_failed", path=str(private_path), error=str(e))
            private_path = None

        shared_path: Optional[Path] = None
        if self._shared_dir is not None:
            shared_path = self._shared_dir / name
            try:
                await asyncio.to_thread(atomic_write_bytes, shared_path, artifact)
            except OSError as e:
                logger.warning("device_shared_write_failed", path=str(shared_path), error=str(e))
                shared_path = None
                caveats.append(
                    "Backup saved, but it could not be copied to the shared folder. "
                    "It can only be restored from within the app."
                )

        if private_path is None and shared_path is None:
            raise StorageUnavailableError(f"Could not write {name} to any location")
        if private_path is None:
            caveats.append(
                "Backup saved to the shared folder only; it will not appear in the in-app restore list."
            )

        handed_off = False
        if self._share is not None:
            try:
                await self._share(shared_path or private_path, "Share Backup File")
                handed_off = True
            except ShareCancelledError:
                logger.info("device_share_cancelled", name=name)
            except Exception as e:
                logger.warning("device_share_failed", name=name, error=str(e))
                caveats.append("The share sheet could not be opened; the backup is still saved.")

        return StoredArtifact(
            handle=name,
            caveats=caveats,
            shared_copy=str(shared_path) if shared_path else None,
            handed_off=handed_off,
        )

    async def list_available(self) -> list[ArtifactInfo]:
        def _scan() -> list[ArtifactInfo]:
            if not self._private_dir.is_dir():
                return []
            infos = []
            for path in self._private_dir.iterdir():
                if not path.is_file() or path.suffix != ".json" or path.name.startswith("."):
                    continue
                data = path.read_bytes()
                timestamp, summary = describe_artifact(data)
                infos.append(ArtifactInfo(
                    handle=path.name,
                    timestamp=timestamp,
                    size_bytes=len(data),
                    summary=summary,
                ))
            return infos

        infos = await asyncio.to_thread(_scan)
        infos.sort(key=lambda info: (info.timestamp, info.handle), reverse=True)
        return infos

    def _locate(self, handle: str) -> Optional[Path]:
        name = Path(handle).name
        for directory in (self._private_dir, self._shared_dir):
            if directory is not None and (directory / name).is_file():
                return directory / name
        return None

    async def retrieve(self, handle: str) -> bytes:
        path = self._locate(handle)
        if path is None:
            raise ArtifactNotFoundError(f"No backup named {handle}")
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, handle: str) -> bool:
        # Only the private copy is retired; the shared copy belongs to the user.
        path = self._private_dir / Path(handle).name
        try:
            await asyncio.to_thread(path.unlink)
            return True
        except FileNotFoundError:
            return False
