"""
Abstract Storage Interfaces

DESIGN DECISION: We define abstract interfaces for every storage seam.
This allows us to:
1. Pick the browser or device persistence strategy once, at startup
2. Use in-memory storage for testing
3. Keep backup/restore logic decoupled from where bytes actually live

Three layers:
- KeyValueStoreInterface: the raw string-keyed store the app persists to
- DataStoreInterface: the authoritative business dataset, one entry per collection
- ArtifactStoreInterface: where backup artifacts are stored, listed and retrieved
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from ledgersafe.models.audit import AuditEvent
from ledgersafe.models.results import ErrorKind


logger = structlog.get_logger(__name__)


class Collection(str, Enum):
    """The collections that make up the business dataset."""
    CUSTOMERS = "customers"
    BILLS = "bills"
    PAYMENTS = "payments"
    ITEMS = "items"
    ITEM_RATE_HISTORY = "itemRateHistory"
    BUSINESS_ANALYTICS = "businessAnalytics"

    @property
    def empty_value(self) -> Any:
        """What a never-written collection reads as."""
        return {} if self is Collection.BUSINESS_ANALYTICS else []


# =============================================================================
# KEY/VALUE AND DATASET
# =============================================================================

class KeyValueStoreInterface(ABC):
    """
    Abstract string-keyed store of JSON-compatible values.

    This is the shape of browser local storage and of the app's
    on-device preferences store.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """
        Read a value.

        Returns:
            The stored value, or None if the key is absent
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """
        Write a value, replacing any previous one.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def remove(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if the key existed
        """
        pass

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """List keys starting with prefix."""
        pass


class DataStoreInterface(ABC):
    """
    The authoritative on-device business dataset.

    Only the restore applier (and the normal CRUD paths) write to it.
    """

    @abstractmethod
    async def get(self, collection: Collection) -> Any:
        """
        Read a whole collection.

        Returns:
            A list of record dicts, or a dict for BUSINESS_ANALYTICS.
            Never None: a missing collection reads as empty.
        """
        pass

    @abstractmethod
    async def set(self, collection: Collection, records: Any) -> None:
        """
        Replace a whole collection.

        Raises:
            StorageError: If the write fails
        """
        pass


# =============================================================================
# ARTIFACTS
# =============================================================================

class StoredArtifact(BaseModel):
    """Where an artifact ended up, and anything the user should know about it."""

    handle: str = Field(..., description="Opaque location handle for retrieve()")
    caveats: list[str] = Field(
        default_factory=list,
        description="Partial failures that did not stop the backup"
    )
    shared_copy: Optional[str] = Field(
        default=None,
        description="User-visible copy (download name or shared path), if any"
    )
    handed_off: bool = Field(
        default=False,
        description="Did the user take the artifact (download/share completed)?"
    )


class ArtifactInfo(BaseModel):
    """One entry of list_available()."""

    handle: str
    timestamp: datetime
    size_bytes: int = 0
    summary: dict[str, Any] = Field(
        default_factory=dict,
        description="Preview-only metadata read from the artifact"
    )


class ArtifactStoreInterface(ABC):
    """
    Platform-specific strategy for durably storing backup artifacts.

    The browser and device strategies share this exact contract.
    """

    @abstractmethod
    async def store(self, artifact: bytes, suggested_name: str) -> StoredArtifact:
        """
        Store an artifact.

        Args:
            artifact: Serialized artifact bytes
            suggested_name: File name to use where the platform shows one

        Returns:
            StoredArtifact with the handle and any caveats

        Raises:
            StorageUnavailableError: If no location could be written
        """
        pass

    @abstractmethod
    async def list_available(self) -> list[ArtifactInfo]:
        """
        List restorable artifacts.

        Returns:
            Artifacts sorted newest first
        """
        pass

    @abstractmethod
    async def retrieve(self, handle: str) -> bytes:
        """
        Read an artifact back.

        Raises:
            ArtifactNotFoundError: If the handle does not exist
        """
        pass

    @abstractmethod
    async def delete(self, handle: str) -> bool:
        """Delete one artifact. Returns True if it existed."""
        pass

    async def retire_oldest(self, keep_count: int = 5) -> int:
        """
        Enforce the retention cap by deleting the oldest artifacts.

        Best-effort: a failed delete is logged, never raised.

        Returns:
            How many artifacts were deleted
        """
        available = await self.list_available()
        retired = 0
        for info in available[keep_count:]:
            try:
                if await self.delete(info.handle):
                    retired += 1
            except Exception as e:
                logger.warning(
                    "artifact_retire_failed",
                    handle=info.handle,
                    error=str(e),
                )
        return retired


# =============================================================================
# AUDIT
# =============================================================================

class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one restore flow).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


# =============================================================================
# EXCEPTIONS
# =============================================================================

class StorageError(Exception):
    """Base exception for storage operations."""
    kind: ErrorKind = ErrorKind.STORAGE_UNAVAILABLE


class StorageUnavailableError(StorageError):
    """Neither the private nor the shared location could be written."""
    kind = ErrorKind.STORAGE_UNAVAILABLE


class ArtifactNotFoundError(StorageError):
    """No artifact exists for the given handle."""
    kind = ErrorKind.NOT_FOUND


class ShareCancelledError(StorageError):
    """The user dismissed the share sheet or download prompt."""
    pass
