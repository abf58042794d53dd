"""
Snapshot Models for LedgerSafe

A Snapshot is a complete, self-describing, fingerprinted copy of the
business dataset. It is derived from the on-device data and is disposable:
it has no identity beyond its fingerprint.

DESIGN DECISION: One artifact format, discriminated by schemaVersion.
Older layouts written by earlier versions of the billing app are
normalized into this shape on read (see ledgersafe.snapshot.migrations)
instead of being handled by parallel code paths.

The summary fields in metadata (counts, totalAmount, dateRange) are for
human-facing previews only. They are not part of the fingerprint input and
are never trusted during validation.
"""

import json
from typing import Any, Optional

from pydantic import Field

from ledgersafe.models.records import (
    Bill,
    Customer,
    ItemMaster,
    ItemRateHistory,
    Payment,
    WireModel,
)


CURRENT_SCHEMA_VERSION = "2.0.0"


class ChecksumAlgorithm:
    """Names used in metadata.checksumAlgorithm."""
    SHA256 = "sha256"
    # 32-bit rolling hash written by the original billing app
    ROLLING32 = "rolling32"


class SnapshotCounts(WireModel):
    customers: int = 0
    bills: int = 0
    payments: int = 0
    items: int = 0
    item_rate_history: int = 0


class TotalAmount(WireModel):
    billed: float = 0.0
    paid: float = 0.0
    outstanding: float = 0.0


class DateRange(WireModel):
    """First/last business dates as YYYY-MM-DD, empty strings when unknown."""
    first_bill: str = ""
    last_bill: str = ""
    first_payment: str = ""
    last_payment: str = ""


class SnapshotMetadata(WireModel):
    checksum: Optional[str] = Field(
        default=None,
        description="Fingerprint of the serialized body; absent on legacy artifacts"
    )
    checksum_algorithm: Optional[str] = None
    counts: SnapshotCounts = Field(default_factory=SnapshotCounts)
    total_amount: TotalAmount = Field(default_factory=TotalAmount)
    date_range: DateRange = Field(default_factory=DateRange)


class SnapshotBody(WireModel):
    """
    The payload of a snapshot.

    Collection order is preserved exactly as read from the store so that
    the fingerprint of a rebuilt body is stable.
    """

    customers: list[Customer] = Field(default_factory=list)
    bills: list[Bill] = Field(default_factory=list)
    payments: list[Payment] = Field(default_factory=list)
    items: list[ItemMaster] = Field(default_factory=list)
    item_rate_history: list[ItemRateHistory] = Field(default_factory=list)
    business_analytics: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (
            self.customers
            or self.bills
            or self.payments
            or self.items
            or self.item_rate_history
        )


class Snapshot(WireModel):
    """A fingerprinted copy of the whole dataset."""

    schema_version: str = Field(default=CURRENT_SCHEMA_VERSION)
    created_at: str = Field(..., description="ISO-8601 creation timestamp")
    body: SnapshotBody = Field(default_factory=SnapshotBody)
    metadata: SnapshotMetadata = Field(default_factory=SnapshotMetadata)

    @property
    def fingerprint(self) -> Optional[str]:
        return self.metadata.checksum

    def to_artifact(self) -> dict[str, Any]:
        """Wire dict in the artifact layout (schemaVersion, createdAt, body, metadata)."""
        return {
            "schemaVersion": self.schema_version,
            "createdAt": self.created_at,
            "body": self.body.to_wire(),
            "metadata": self.metadata.to_wire(),
        }

    def serialize(self) -> bytes:
        """Artifact bytes as written to a backup file (UTF-8 JSON)."""
        return json.dumps(
            self.to_artifact(),
            ensure_ascii=False,
            indent=2,
        ).encode("utf-8")

    def summary(self) -> dict[str, Any]:
        """Preview-only summary (never used for validation)."""
        return {
            "schemaVersion": self.schema_version,
            "createdAt": self.created_at,
            "counts": self.metadata.counts.to_wire(),
            "totalAmount": self.metadata.total_amount.to_wire(),
            "dateRange": self.metadata.date_range.to_wire(),
        }
