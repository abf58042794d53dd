"""
Result Models for LedgerSafe

Every operation that can fail in a way the user should hear about returns
one of these instead of raising.

DESIGN DECISION: Failures are typed, not stringly-typed.
Each failure carries an ErrorKind. The UI picks a short message from the
kind (user_message) and never shows a stack trace.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ledgersafe.models.snapshot import Snapshot


class ErrorKind(str, Enum):
    """
    Failure taxonomy.

    ORPHANED_REFERENCE, DUPLICATE_ID, CHECKSUM_UNVERIFIED and EMPTY_DATASET
    are advisory: they may accompany a successful result.
    """
    # Artifact problems
    MALFORMED_FORMAT = "malformed_format"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    CHECKSUM_UNVERIFIED = "checksum_unverified"
    VERSION_INCOMPATIBLE = "version_incompatible"
    PASSWORD_REQUIRED = "password_required"
    DECRYPTION_FAILED = "decryption_failed"

    # Structural findings (advisory)
    ORPHANED_REFERENCE = "orphaned_reference"
    DUPLICATE_ID = "duplicate_id"

    # Storage
    STORAGE_UNAVAILABLE = "storage_unavailable"
    NOT_FOUND = "not_found"
    EMPTY_DATASET = "empty_dataset"

    # Cloud
    AUTH_REQUIRED = "auth_required"
    AUTH_REVOKED = "auth_revoked"
    TRANSIENT_NETWORK = "transient_network"
    TIMEOUT = "timeout"


ADVISORY_KINDS = frozenset({
    ErrorKind.ORPHANED_REFERENCE,
    ErrorKind.DUPLICATE_ID,
    ErrorKind.CHECKSUM_UNVERIFIED,
    ErrorKind.EMPTY_DATASET,
})


_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.MALFORMED_FORMAT: "The selected backup file is not in a valid JSON format.",
    ErrorKind.CHECKSUM_MISMATCH: "Backup checksum validation failed. The file may be corrupt or altered.",
    ErrorKind.CHECKSUM_UNVERIFIED: "This backup has no checksum, so its integrity cannot be verified.",
    ErrorKind.VERSION_INCOMPATIBLE: "This backup was made by a newer or unknown version of the app and cannot be restored.",
    ErrorKind.PASSWORD_REQUIRED: "This backup is password protected. Enter the password to restore it.",
    ErrorKind.DECRYPTION_FAILED: "The password is wrong or the backup file is damaged.",
    ErrorKind.ORPHANED_REFERENCE: "Some bills or payments refer to customers that are not in the backup.",
    ErrorKind.DUPLICATE_ID: "Some bills appear more than once in the backup.",
    ErrorKind.STORAGE_UNAVAILABLE: "The backup could not be saved. Check storage permissions and free space.",
    ErrorKind.NOT_FOUND: "The selected backup file is empty or could not be read.",
    ErrorKind.EMPTY_DATASET: "There is nothing to back up yet.",
    ErrorKind.AUTH_REQUIRED: "Please sign in to sync your data.",
    ErrorKind.AUTH_REVOKED: "Your sign-in has expired. Please sign in again.",
    ErrorKind.TRANSIENT_NETWORK: "Could not reach the cloud. Check your connection and try again.",
    ErrorKind.TIMEOUT: "The cloud took too long to respond. Please try again.",
}


def user_message(kind: ErrorKind) -> str:
    """Short, user-facing message for a failure kind."""
    return _USER_MESSAGES[kind]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RestoreIssue(BaseModel):
    """A single problem found while validating an artifact."""

    kind: ErrorKind
    message: str
    severity: str = Field(
        default="error",
        pattern="^(error|warning)$",
    )
    record_type: Optional[str] = Field(
        default=None,
        description="'bill' or 'payment' for structural findings"
    )
    record_id: Optional[str] = None


class RestoreValidation(BaseModel):
    """
    Outcome of validating an artifact.

    ok is True only when there is no hard error. Advisory issues
    (orphans, duplicates, missing checksum) may accompany an ok result
    and should be shown to the user before they commit the restore.
    """

    ok: bool
    snapshot: Optional[Snapshot] = None
    error: Optional[RestoreIssue] = None
    issues: list[RestoreIssue] = Field(default_factory=list)

    @property
    def reason(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    @property
    def message(self) -> str:
        return self.error.message if self.error else ""

    @property
    def warning_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "warning")

    def issues_of(self, kind: ErrorKind) -> list[RestoreIssue]:
        return [issue for issue in self.issues if issue.kind == kind]

    @classmethod
    def failed(cls, kind: ErrorKind, message: Optional[str] = None) -> "RestoreValidation":
        return cls(
            ok=False,
            error=RestoreIssue(kind=kind, message=message or user_message(kind)),
        )


class RestoreResult(BaseModel):
    """Outcome of applying a snapshot to the local dataset."""

    success: bool
    summary: dict[str, int] = Field(
        default_factory=dict,
        description="Records written per collection"
    )
    reason: Optional[ErrorKind] = None
    message: str = ""
    issues: list[RestoreIssue] = Field(default_factory=list)
    restored_at: datetime = Field(default_factory=_utcnow)


class BackupResult(BaseModel):
    """
    Outcome of creating a backup.

    A backup can succeed with caveats: the shared copy could not be written,
    the share sheet was dismissed, or there was nothing to back up.
    """

    success: bool
    handle: Optional[str] = None
    fingerprint: Optional[str] = None
    encrypted: bool = False
    handed_off: bool = False
    caveats: list[str] = Field(default_factory=list)
    advisories: list[ErrorKind] = Field(default_factory=list)
    summary: dict[str, Any] = Field(default_factory=dict)
    reason: Optional[ErrorKind] = None
    message: str = ""


class SyncResult(BaseModel):
    """Outcome of one reconciliation cycle."""

    success: bool
    skipped: bool = Field(
        default=False,
        description="True when a cycle was already in flight"
    )
    pulled: bool = False
    pushed: bool = False
    remote_last_update: Optional[int] = None
    last_synced: Optional[int] = None
    reason: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def failed(cls, kind: ErrorKind, **kwargs: Any) -> "SyncResult":
        return cls(success=False, reason=kind, message=user_message(kind), **kwargs)
