"""
File-Backed Key/Value Store

One JSON file per key under a data directory. Writes go to a temporary
file first and are moved into place, so a crash mid-write never leaves a
half-written value behind.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote, unquote

from ledgersafe.services.storage.interface import (
    KeyValueStoreInterface,
    StorageError,
)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write data to path via a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class JsonFileKeyValueStore(KeyValueStoreInterface):
    """
    Key/value store persisted as JSON files.

    Keys are percent-encoded into file names, so any string is a valid key.
    Blocking file I/O runs in a worker thread.
    """

    def __init__(self, directory: Path):
        self._directory = Path(directory)

    def _path_for(self, key: str) -> Path:
        return self._directory / (quote(key, safe="") + ".json")

    async def get(self, key: str) -> Optional[Any]:
        path = self._path_for(key)

        def _read() -> Optional[Any]:
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except FileNotFoundError:
                return None

        try:
            return await asyncio.to_thread(_read)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read key {key!r}: {e}") from e

    async def set(self, key: str, value: Any) -> None:
        data = json.dumps(value, ensure_ascii=False).encode("utf-8")
        try:
            await asyncio.to_thread(atomic_write_bytes, self._path_for(key), data)
        except OSError as e:
            raise StorageError(f"Failed to write key {key!r}: {e}") from e

    async def remove(self, key: str) -> bool:
        path = self._path_for(key)

        def _remove() -> bool:
            try:
                path.unlink()
                return True
            except FileNotFoundError:
                return False

        return await asyncio.to_thread(_remove)

    async def keys(self, prefix: str = "") -> list[str]:
        def _list() -> list[str]:
            if not self._directory.is_dir():
                return []
            return sorted(
                unquote(entry.name[: -len(".json")])
                for entry in self._directory.iterdir()
                if entry.is_file() and entry.name.endswith(".json")
            )

        return [key for key in await asyncio.to_thread(_list) if key.startswith(prefix)]
