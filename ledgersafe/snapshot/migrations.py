"""
Artifact Format Migrations

Normalizes every artifact layout this library can read into one shape:
(schemaVersion, createdAt, raw body, declared checksum).

Layouts, told apart by their keys:
- current:       {schemaVersion, createdAt, body, metadata}
- enhanced 2.x:  {version, timestamp, data, metadata.checksum} (rolling hash)
- simple 1.0:    {version, createdAt, data} (no checksum)
- comprehensive: {version, timestamp, customers, bills, ...} (no checksum;
                 bills and payments may repeat, latest createdAt wins)

DESIGN DECISION: The declared checksum is checked against the body exactly
as it appears in the file. Any cleanup (deduplication, defaults) happens
after the checksum, never before.
"""

import re
from typing import Any, Optional

from pydantic import BaseModel, Field

from ledgersafe.models.records import latest_by_created_at
from ledgersafe.models.results import ErrorKind
from ledgersafe.models.snapshot import CURRENT_SCHEMA_VERSION, ChecksumAlgorithm


SUPPORTED_MAJOR_VERSIONS = frozenset({1, 2})

_SEMVER = re.compile(r"^\s*v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:[-+].*)?\s*$")

_BODY_KEYS = (
    "customers",
    "bills",
    "payments",
    "items",
    "itemRateHistory",
    "businessAnalytics",
)


class ArtifactFormatError(Exception):
    """The artifact cannot be normalized. Carries the ErrorKind to report."""

    def __init__(self, kind: ErrorKind, message: str):
        self.kind = kind
        super().__init__(message)


class NormalizedArtifact(BaseModel):
    """Any supported layout, reduced to what validation needs."""

    layout: str
    schema_version: str
    created_at: str
    body: dict[str, Any]
    checksum: Optional[str] = None
    checksum_algorithm: str = ChecksumAlgorithm.SHA256
    metadata: dict[str, Any] = Field(default_factory=dict)


def parse_version(version: Any) -> tuple[int, int, int]:
    """
    Parse a semantic version ("2.0.0", "1.1", "1").

    Raises:
        ArtifactFormatError: VERSION_INCOMPATIBLE if unparseable
    """
    match = _SEMVER.match(str(version)) if isinstance(version, (str, int, float)) else None
    if match is None:
        raise ArtifactFormatError(
            ErrorKind.VERSION_INCOMPATIBLE,
            f"Unrecognized backup version: {version!r}",
        )
    major, minor, patch = (int(part) if part else 0 for part in match.groups())
    return major, minor, patch


def check_version(version: Any) -> str:
    """Refuse versions whose major number we do not know how to read."""
    major, _, _ = parse_version(version)
    if major not in SUPPORTED_MAJOR_VERSIONS:
        raise ArtifactFormatError(
            ErrorKind.VERSION_INCOMPATIBLE,
            f"Backup version {version} is not supported "
            f"(this app reads up to {CURRENT_SCHEMA_VERSION})",
        )
    return str(version)


def _created_at(document: dict[str, Any]) -> str:
    for key in ("createdAt", "timestamp", "updatedAt"):
        value = document.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def _metadata(document: dict[str, Any]) -> dict[str, Any]:
    metadata = document.get("metadata")
    return metadata if isinstance(metadata, dict) else {}


def _require_dict(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ArtifactFormatError(ErrorKind.MALFORMED_FORMAT, f"Backup {what} is not an object")
    return value


def _optional_string(metadata: dict[str, Any], key: str) -> Optional[str]:
    value = metadata.get(key)
    if value is not None and not isinstance(value, str):
        raise ArtifactFormatError(ErrorKind.MALFORMED_FORMAT, f"Backup metadata.{key} is not a string")
    return value


def normalize_artifact(document: dict[str, Any]) -> NormalizedArtifact:
    """
    Identify the layout and version of a parsed artifact.

    Raises:
        ArtifactFormatError: MALFORMED_FORMAT for unknown layouts,
            VERSION_INCOMPATIBLE for unsupported versions
    """
    metadata = _metadata(document)

    if "body" in document:
        version = document.get("schemaVersion", document.get("version"))
        return NormalizedArtifact(
            layout="current",
            schema_version=check_version(version),
            created_at=_created_at(document),
            body=_require_dict(document["body"], "body"),
            checksum=_optional_string(metadata, "checksum"),
            checksum_algorithm=_optional_string(metadata, "checksumAlgorithm") or ChecksumAlgorithm.SHA256,
            metadata=metadata,
        )

    if "data" in document:
        version = document.get("version", document.get("schemaVersion", "1.0"))
        checksum = _optional_string(metadata, "checksum")
        return NormalizedArtifact(
            layout="enhanced" if checksum else "simple",
            schema_version=check_version(version),
            created_at=_created_at(document),
            body=_require_dict(document["data"], "data"),
            checksum=checksum,
            checksum_algorithm=_optional_string(metadata, "checksumAlgorithm") or ChecksumAlgorithm.ROLLING32,
            metadata=metadata,
        )

    if any(key in document for key in ("customers", "bills", "payments")):
        version = document.get("version", document.get("schemaVersion", "1.0"))
        body = {key: document[key] for key in _BODY_KEYS if key in document}
        for key in ("bills", "payments"):
            if isinstance(body.get(key), list):
                body[key] = latest_by_created_at(
                    entry for entry in body[key] if isinstance(entry, dict)
                )
        return NormalizedArtifact(
            layout="comprehensive",
            schema_version=check_version(version),
            created_at=_created_at(document),
            body=body,
            metadata=metadata,
        )

    raise ArtifactFormatError(
        ErrorKind.MALFORMED_FORMAT,
        "The file does not look like a backup created by this app",
    )
