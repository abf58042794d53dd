"""
Snapshot Fingerprinting

A fingerprint is a digest of the serialized snapshot body. It is the
primary defense against partial writes, manual edits and transmission
corruption of a backup file.

DESIGN DECISION: Hash a canonical serialization, not the file bytes.
The body is serialized with keys sorted at every level, no insignificant
whitespace and UTF-8 text, so the digest does not depend on dict
enumeration order, pretty-printing or the platform that wrote the file.
List order is preserved: reordering records is a change.

Backups written by the original billing app carry a 32-bit rolling hash
over their own (insertion-ordered) serialization. That algorithm is kept
here only so those files can still be verified on import.
"""

import hashlib
import json
from typing import Any

from ledgersafe.models.snapshot import ChecksumAlgorithm


class UnsupportedChecksumError(ValueError):
    """The artifact names a checksum algorithm we do not implement."""

    def __init__(self, algorithm: str):
        self.algorithm = algorithm
        super().__init__(f"Unsupported checksum algorithm: {algorithm}")


def canonical_json(obj: Any) -> str:
    """
    Serialize an object to canonical JSON.

    Raises ValueError for NaN or infinite floats, which have no JSON form.
    """
    return json.dumps(
        obj,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def sha256_fingerprint(body: Any) -> str:
    """SHA-256 hex digest of the canonical serialization of body."""
    return hashlib.sha256(canonical_json(body).encode("utf-8")).hexdigest()


def legacy_rolling_hash(text: str) -> str:
    """
    32-bit rolling hash used by the original billing app.

    Runs hash = hash * 31 + unit over the UTF-16 code units of text with
    signed 32-bit wraparound, and renders the result as signed lower-case
    hex (e.g. "-1f3a").
    """
    h = 0
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return format(h, "x") if h >= 0 else "-" + format(-h, "x")


def legacy_fingerprint(body: Any) -> str:
    """Rolling hash over the compact, insertion-ordered serialization of body."""
    text = json.dumps(body, ensure_ascii=False, separators=(",", ":"))
    return legacy_rolling_hash(text)


def compute_fingerprint(body: Any, algorithm: str = ChecksumAlgorithm.SHA256) -> str:
    """
    Fingerprint a body with the named algorithm.

    Args:
        body: Wire-form body (plain dicts and lists)
        algorithm: ChecksumAlgorithm.SHA256 or ChecksumAlgorithm.ROLLING32

    Raises:
        UnsupportedChecksumError: For any other algorithm name
    """
    if algorithm == ChecksumAlgorithm.SHA256:
        return sha256_fingerprint(body)
    if algorithm == ChecksumAlgorithm.ROLLING32:
        return legacy_fingerprint(body)
    raise UnsupportedChecksumError(algorithm)
