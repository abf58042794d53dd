"""
Browser Persistence Strategy

DESIGN DECISION: Two copies, two purposes.
The namespaced key/value entry is the restorable record: list_available
and retrieve only ever look there. The file download is a point-in-time
export the user keeps outside the app. The two are not kept in sync, and
the backup only fails if neither copy could be made.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import structlog

from ledgersafe.models.records import parse_timestamp
from ledgersafe.services.storage.interface import (
    ArtifactInfo,
    ArtifactNotFoundError,
    ArtifactStoreInterface,
    KeyValueStoreInterface,
    ShareCancelledError,
    StorageUnavailableError,
    StoredArtifact,
)


logger = structlog.get_logger(__name__)

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class DownloadTrigger(Protocol):
    """Hands bytes to the user as a downloaded file."""

    async def __call__(self, data: bytes, file_name: str) -> None:
        ...


def describe_artifact(data: bytes) -> tuple[datetime, dict[str, Any]]:
    """
    Read the creation time and preview summary out of artifact bytes.

    Never raises: unreadable artifacts list with the epoch as timestamp and
    an empty summary, so a damaged file still shows up (and can be retired).
    """
    try:
        document = json.loads(data.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return _EPOCH, {}
    if not isinstance(document, dict):
        return _EPOCH, {}

    created = document.get("createdAt") or document.get("timestamp")
    timestamp = parse_timestamp(created) if isinstance(created, (str, int, float)) else None

    metadata = document.get("metadata") if isinstance(document.get("metadata"), dict) else {}
    summary = {
        "schemaVersion": document.get("schemaVersion") or document.get("version"),
        "encrypted": "encryption" in document,
        "counts": metadata.get("counts", {}),
        "totalAmount": metadata.get("totalAmount", {}),
    }
    return timestamp or _EPOCH, summary


class BrowserArtifactStore(ArtifactStoreInterface):
    """
    Artifacts kept under a key prefix in a key/value store, plus a download.

    Handles are the file names; the key is prefix + file name.
    """

    def __init__(
        self,
        kv: KeyValueStoreInterface,
        key_prefix: str = "ledgersafe_artifact_",
        download: Optional[DownloadTrigger] = None,
    ):
        self._kv = kv
        self._prefix = key_prefix
        self._download = download

    async def _unique_name(self, name: str) -> str:
        existing = set(await self._kv.keys(self._prefix))
        candidate = name
        counter = 1
        while self._prefix + candidate in existing:
            stem, dot, ext = name.rpartition(".")
            candidate = f"{stem}_{counter}.{ext}" if dot else f"{name}_{counter}"
            counter += 1
        return candidate

    async def store(self, artifact: bytes, suggested_name: str) -> StoredArtifact:
        name = await self._unique_name(suggested_name)
        caveats: list[str] = []

        stored = False
        try:
            await self._kv.set(self._prefix + name, artifact.decode("utf-8"))
            stored = True
        except Exception as e:
            logger.warning("browser_store_write_failed", name=name, error=str(e))
            caveats.append("The backup could not be kept in the app; only the downloaded file exists.")

        downloaded = False
        if self._download is not None:
            try:
                await self._download(artifact, name)
                downloaded = True
            except ShareCancelledError:
                caveats.append("The download was cancelled; the backup is still kept in the app.")
            except Exception as e:
                logger.warning("browser_download_failed", name=name, error=str(e))
                caveats.append("The backup file could not be downloaded; it is still kept in the app.")

        if not stored and not downloaded:
            raise StorageUnavailableError(
                f"Neither the app storage nor a download could hold {name}"
            )

        return StoredArtifact(
            handle=name,
            caveats=caveats,
            shared_copy=name if downloaded else None,
            handed_off=downloaded,
        )

    async def list_available(self) -> list[ArtifactInfo]:
        infos = []
        for key in await self._kv.keys(self._prefix):
            raw = await self._kv.get(key)
            if raw is None:
                continue
            data = raw.encode("utf-8") if isinstance(raw, str) else json.dumps(raw).encode("utf-8")
            timestamp, summary = describe_artifact(data)
            infos.append(ArtifactInfo(
                handle=key[len(self._prefix):],
                timestamp=timestamp,
                size_bytes=len(data),
                summary=summary,
            ))
        infos.sort(key=lambda info: (info.timestamp, info.handle), reverse=True)
        return infos

    async def retrieve(self, handle: str) -> bytes:
        raw = await self._kv.get(self._prefix + handle)
        if raw is None:
            raise ArtifactNotFoundError(f"No backup named {handle}")
        if isinstance(raw, str):
            return raw.encode("utf-8")
        return json.dumps(raw, ensure_ascii=False).encode("utf-8")

    async def delete(self, handle: str) -> bool:
        return await self._kv.remove(self._prefix + handle)
