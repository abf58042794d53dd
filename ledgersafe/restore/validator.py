"""
Restore Validation Pipeline

DESIGN DECISION: Validation never mutates and never raises.
Every defect becomes a typed result the caller can show the user.

Steps, in order. Each hard failure short-circuits:

1. DECODE   - strip a leading byte-order mark and surrounding whitespace;
              an empty file is MALFORMED_FORMAT
2. PARSE    - JSON object, else MALFORMED_FORMAT
3. DECRYPT  - password-protected envelopes need the right password
              (PASSWORD_REQUIRED / DECRYPTION_FAILED)
4. VERSION  - identify layout and version (VERSION_INCOMPATIBLE)
5. CHECKSUM - recompute the fingerprint over the body exactly as parsed
              and compare with the declared one (CHECKSUM_MISMATCH).
              A legacy artifact without a checksum proceeds with a
              CHECKSUM_UNVERIFIED warning instead
6. SCHEMA   - body parses into typed records, else MALFORMED_FORMAT
7. STRUCTURE (optional) - every bill and payment references a customer
              in the backup (ORPHANED_REFERENCE), bill ids are unique
              (DUPLICATE_ID). Both are advisory: they are collected in
              full and do not block the restore.

IMPORTANT: Validation NEVER silently fixes issues.
Orphans are reported here, not dropped.
"""

import json
from collections import Counter
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError

from ledgersafe.models.results import (
    ErrorKind,
    RestoreIssue,
    RestoreValidation,
    user_message,
)
from ledgersafe.models.snapshot import ChecksumAlgorithm, Snapshot, SnapshotBody
from ledgersafe.snapshot.builder import compute_metadata
from ledgersafe.snapshot.crypto import (
    ArtifactDecryptionError,
    decrypt_artifact,
    is_encrypted,
)
from ledgersafe.snapshot.fingerprint import (
    UnsupportedChecksumError,
    compute_fingerprint,
)
from ledgersafe.snapshot.migrations import ArtifactFormatError, normalize_artifact


logger = structlog.get_logger(__name__)

BYTE_ORDER_MARK = "\ufeff"

EMPTY_FILE_MESSAGE = "The selected backup file is empty or could not be read."


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Invalid JSON number: {name}")


class RestoreValidator:
    """
    Validates backup artifacts before anything is restored.

    Usage:
        result = RestoreValidator().validate(artifact_bytes)
        if result.ok:
            show_preview(result.snapshot.summary(), result.issues)
    """

    def _fail(
        self,
        kind: ErrorKind,
        detail: Optional[str] = None,
        message: Optional[str] = None,
    ) -> RestoreValidation:
        logger.info("restore_validation_failed", reason=kind.value, detail=detail)
        return RestoreValidation.failed(kind, message)

    def validate(
        self,
        artifact: Union[bytes, bytearray, str],
        password: Optional[str] = None,
        structural: bool = True,
    ) -> RestoreValidation:
        """
        Validate raw artifact bytes or text.

        Args:
            artifact: File contents
            password: Password for encrypted artifacts
            structural: Run the orphan/duplicate pass (preview/import flow)

        Returns:
            RestoreValidation; ok is False only for hard errors
        """
        if isinstance(artifact, (bytes, bytearray)):
            try:
                text = bytes(artifact).decode("utf-8")
            except UnicodeDecodeError as e:
                return self._fail(ErrorKind.MALFORMED_FORMAT, str(e))
        else:
            text = artifact

        text = text.lstrip(BYTE_ORDER_MARK).strip()
        if not text:
            return self._fail(ErrorKind.MALFORMED_FORMAT, "empty", EMPTY_FILE_MESSAGE)

        try:
            document = json.loads(text, parse_constant=_reject_constant)
        except ValueError as e:
            return self._fail(ErrorKind.MALFORMED_FORMAT, str(e))

        if not isinstance(document, dict):
            return self._fail(ErrorKind.MALFORMED_FORMAT, "top level is not an object")

        return self.validate_document(document, password=password, structural=structural)

    def validate_document(
        self,
        document: dict[str, Any],
        password: Optional[str] = None,
        structural: bool = True,
    ) -> RestoreValidation:
        """
        Validate an already-parsed artifact (e.g. a remote document).

        Same steps as validate(), from decryption onwards.
        """
        if is_encrypted(document):
            if not password:
                return self._fail(ErrorKind.PASSWORD_REQUIRED)
            try:
                plaintext = decrypt_artifact(document, password)
            except ArtifactDecryptionError as e:
                return self._fail(ErrorKind.DECRYPTION_FAILED, str(e))
            # An envelope never wraps another envelope
            result = self.validate(plaintext, password=None, structural=structural)
            if result.reason == ErrorKind.PASSWORD_REQUIRED:
                return self._fail(ErrorKind.MALFORMED_FORMAT, "nested encryption")
            return result

        try:
            normalized = normalize_artifact(document)
        except ArtifactFormatError as e:
            return self._fail(e.kind, str(e))
        except ValidationError as e:
            return self._fail(ErrorKind.MALFORMED_FORMAT, str(e))

        issues: list[RestoreIssue] = []

        if normalized.checksum is not None:
            try:
                actual = compute_fingerprint(normalized.body, normalized.checksum_algorithm)
            except UnsupportedChecksumError as e:
                return self._fail(ErrorKind.VERSION_INCOMPATIBLE, str(e))
            except ValueError as e:
                return self._fail(ErrorKind.MALFORMED_FORMAT, str(e))
            if actual != normalized.checksum:
                return self._fail(
                    ErrorKind.CHECKSUM_MISMATCH,
                    f"declared {normalized.checksum}, computed {actual}",
                )
        else:
            issues.append(RestoreIssue(
                kind=ErrorKind.CHECKSUM_UNVERIFIED,
                message=user_message(ErrorKind.CHECKSUM_UNVERIFIED),
                severity="warning",
            ))

        try:
            body = SnapshotBody.model_validate(normalized.body)
        except ValidationError as e:
            return self._fail(
                ErrorKind.MALFORMED_FORMAT,
                f"{e.error_count()} invalid field(s)",
                "The backup file is missing required information and cannot be restored.",
            )

        # Summary fields in the file are never trusted; recompute them.
        metadata = compute_metadata(body)
        if normalized.checksum is not None:
            metadata.checksum = normalized.checksum
            metadata.checksum_algorithm = normalized.checksum_algorithm
        else:
            metadata.checksum = compute_fingerprint(normalized.body, ChecksumAlgorithm.SHA256)
            metadata.checksum_algorithm = ChecksumAlgorithm.SHA256

        snapshot = Snapshot(
            schema_version=normalized.schema_version,
            created_at=normalized.created_at,
            body=body,
            metadata=metadata,
        )

        if structural:
            issues.extend(self.structural_issues(body))

        return RestoreValidation(ok=True, snapshot=snapshot, issues=issues)

    def structural_issues(self, body: SnapshotBody) -> list[RestoreIssue]:
        """
        Find orphaned references and duplicate bill ids.

        Returns the complete list rather than stopping at the first finding,
        so the user sees everything before deciding.
        """
        issues: list[RestoreIssue] = []
        customer_ids = {customer.id for customer in body.customers}

        for record_type, records in (("bill", body.bills), ("payment", body.payments)):
            for record in records:
                if record.customer_id in customer_ids:
                    continue
                if record.customer_id:
                    message = (
                        f"{record_type.capitalize()} {record.id} refers to customer "
                        f"{record.customer_id}, which is not in the backup"
                    )
                else:
                    message = f"{record_type.capitalize()} {record.id} has no customer"
                issues.append(RestoreIssue(
                    kind=ErrorKind.ORPHANED_REFERENCE,
                    message=message,
                    severity="warning",
                    record_type=record_type,
                    record_id=record.id,
                ))

        counts = Counter(bill.id for bill in body.bills)
        for bill_id, count in counts.items():
            if count > 1:
                issues.append(RestoreIssue(
                    kind=ErrorKind.DUPLICATE_ID,
                    message=f"Bill {bill_id} appears {count} times",
                    severity="warning",
                    record_type="bill",
                    record_id=bill_id,
                ))

        return issues
