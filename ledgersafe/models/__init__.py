"""
Data Models Package

This package contains all Pydantic models used by LedgerSafe.
Everything that goes into or comes out of a backup conforms to these schemas.
"""

from ledgersafe.models.records import (
    Bill,
    BillLineItem,
    Customer,
    DiscountType,
    ItemMaster,
    ItemRateHistory,
    ItemType,
    Payment,
    WireModel,
    latest_by_created_at,
    parse_timestamp,
)
from ledgersafe.models.snapshot import (
    CURRENT_SCHEMA_VERSION,
    ChecksumAlgorithm,
    DateRange,
    Snapshot,
    SnapshotBody,
    SnapshotCounts,
    SnapshotMetadata,
    TotalAmount,
)
from ledgersafe.models.results import (
    ADVISORY_KINDS,
    BackupResult,
    ErrorKind,
    RestoreIssue,
    RestoreResult,
    RestoreValidation,
    SyncResult,
    user_message,
)
from ledgersafe.models.state import (
    BackupConfig,
    BackupFrequency,
    BackupMode,
)
from ledgersafe.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Records
    "Bill",
    "BillLineItem",
    "Customer",
    "DiscountType",
    "ItemMaster",
    "ItemRateHistory",
    "ItemType",
    "Payment",
    "WireModel",
    "latest_by_created_at",
    "parse_timestamp",
    # Snapshot
    "CURRENT_SCHEMA_VERSION",
    "ChecksumAlgorithm",
    "DateRange",
    "Snapshot",
    "SnapshotBody",
    "SnapshotCounts",
    "SnapshotMetadata",
    "TotalAmount",
    # Results
    "ADVISORY_KINDS",
    "BackupResult",
    "ErrorKind",
    "RestoreIssue",
    "RestoreResult",
    "RestoreValidation",
    "SyncResult",
    "user_message",
    # Local state
    "BackupConfig",
    "BackupFrequency",
    "BackupMode",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
