"""
Snapshot Package

Building, fingerprinting, migrating and encrypting backup artifacts.
"""

from ledgersafe.snapshot.fingerprint import (
    UnsupportedChecksumError,
    canonical_json,
    compute_fingerprint,
    legacy_fingerprint,
    legacy_rolling_hash,
    sha256_fingerprint,
)
from ledgersafe.snapshot.builder import SnapshotBuilder, compute_metadata
from ledgersafe.snapshot.migrations import (
    ArtifactFormatError,
    NormalizedArtifact,
    check_version,
    normalize_artifact,
    parse_version,
)
from ledgersafe.snapshot.crypto import (
    ArtifactDecryptionError,
    decrypt_artifact,
    encrypt_artifact,
    is_encrypted,
)

__all__ = [
    # Fingerprinting
    "UnsupportedChecksumError",
    "canonical_json",
    "compute_fingerprint",
    "legacy_fingerprint",
    "legacy_rolling_hash",
    "sha256_fingerprint",
    # Building
    "SnapshotBuilder",
    "compute_metadata",
    # Migrations
    "ArtifactFormatError",
    "NormalizedArtifact",
    "check_version",
    "normalize_artifact",
    "parse_version",
    # Encryption
    "ArtifactDecryptionError",
    "decrypt_artifact",
    "encrypt_artifact",
    "is_encrypted",
]
