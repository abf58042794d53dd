"""
Audit Models for LedgerSafe

Every backup, restore and sync is recorded so the user can see when their
data was last saved, where it came from, and what went wrong.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Backup
    BACKUP_CREATED = "backup_created"
    BACKUP_FAILED = "backup_failed"
    BACKUPS_RETIRED = "backups_retired"

    # Restore
    RESTORE_REJECTED = "restore_rejected"
    RESTORE_APPLIED = "restore_applied"
    RESTORE_FAILED = "restore_failed"

    # Sync
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"

    # Catalog
    ITEM_RATE_CHANGED = "item_rate_changed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what is this about? (an artifact handle, a principal, an item)
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'backup', 'principal', 'item')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one restore flow)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.backup_created(handle, fingerprint, counts)
        event = AuditEventBuilder.restore_applied(summary, correlation_id)
    """

    @staticmethod
    def backup_created(
        handle: Optional[str],
        fingerprint: Optional[str],
        counts: dict[str, int],
        caveats: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_CREATED,
            severity=AuditSeverity.WARNING if caveats else AuditSeverity.INFO,
            entity_type="backup",
            entity_id=handle,
            correlation_id=correlation_id,
            description=f"Backup created: {handle}",
            details={
                "fingerprint": fingerprint,
                "counts": counts,
                "caveats": caveats,
            },
            is_user_action=True,
        )

    @staticmethod
    def backup_failed(
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="backup",
            correlation_id=correlation_id,
            description="Backup could not be stored",
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def backups_retired(
        retired_count: int,
        keep_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUPS_RETIRED,
            entity_type="backup",
            correlation_id=correlation_id,
            description=f"Retired {retired_count} old backup(s), keeping {keep_count}",
            details={
                "retired_count": retired_count,
                "keep_count": keep_count,
            },
        )

    @staticmethod
    def restore_rejected(
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESTORE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="backup",
            correlation_id=correlation_id,
            description=f"Restore rejected: {error_code}",
            error_code=error_code,
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def restore_applied(
        summary: dict[str, int],
        fingerprint: Optional[str],
        warnings: int,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESTORE_APPLIED,
            entity_type="dataset",
            correlation_id=correlation_id,
            description=f"Dataset restored from {source}",
            details={
                "summary": summary,
                "fingerprint": fingerprint,
                "warnings": warnings,
                "source": source,
            },
            is_user_action=source != "cloud",
        )

    @staticmethod
    def restore_failed(
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESTORE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="dataset",
            correlation_id=correlation_id,
            description="Restore failed, previous data kept",
            error_message=error_message,
        )

    @staticmethod
    def signed_in(principal_id: str, provider: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNED_IN,
            entity_type="principal",
            entity_id=principal_id,
            description=f"Signed in with {provider}",
            details={"provider": provider},
            is_user_action=True,
        )

    @staticmethod
    def signed_out(principal_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNED_OUT,
            entity_type="principal",
            entity_id=principal_id,
            description="Signed out, periodic sync stopped",
            is_user_action=True,
        )

    @staticmethod
    def sync_completed(
        principal_id: str,
        pulled: bool,
        pushed: bool,
        last_synced: Optional[int],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_COMPLETED,
            entity_type="principal",
            entity_id=principal_id,
            description="Sync completed" + (" (remote changes applied)" if pulled else ""),
            details={
                "pulled": pulled,
                "pushed": pushed,
                "last_synced": last_synced,
            },
        )

    @staticmethod
    def sync_failed(
        principal_id: str,
        error_code: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="principal",
            entity_id=principal_id,
            description=f"Sync failed: {error_code}",
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def item_rate_changed(
        item_id: str,
        old_rate: Optional[float],
        new_rate: Optional[float],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ITEM_RATE_CHANGED,
            entity_type="item",
            entity_id=item_id,
            description=f"Item rate changed from {old_rate} to {new_rate}",
            details={
                "old_rate": old_rate,
                "new_rate": new_rate,
            },
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
