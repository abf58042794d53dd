"""
Password-Protected Artifacts

An encrypted artifact is an envelope around an ordinary artifact:

    {
      "schemaVersion": "2.0.0",
      "createdAt": "...",
      "encryption": {"algorithm": "AES-256-GCM", "kdf": "PBKDF2-SHA256",
                     "iterations": 100000, "salt": "<b64>", "nonce": "<b64>"},
      "payload": "<b64 ciphertext>"
    }

The key is derived from the password with PBKDF2-HMAC-SHA256 over a
random 16-byte salt. AES-GCM authenticates the ciphertext, so a wrong
password and a tampered payload are indistinguishable and both fail.
The plaintext keeps its own fingerprint, which is still verified after
decryption.
"""

import base64
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ledgersafe.models.results import ErrorKind


ALGORITHM = "AES-256-GCM"
KDF = "PBKDF2-SHA256"
SALT_BYTES = 16
NONCE_BYTES = 12
KEY_BYTES = 32


class ArtifactDecryptionError(Exception):
    """Wrong password, or the encrypted payload was altered."""
    kind = ErrorKind.DECRYPTION_FAILED


def is_encrypted(document: Any) -> bool:
    return (
        isinstance(document, dict)
        and isinstance(document.get("encryption"), dict)
        and "payload" in document
    )


def _derive_key(password: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_BYTES,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt_artifact(
    plaintext: bytes,
    password: str,
    iterations: int = 100_000,
    schema_version: str = "",
    created_at: str = "",
) -> dict[str, Any]:
    """
    Seal artifact bytes under a password.

    schema_version and created_at are copied to the envelope in clear so
    the artifact can be listed without the password.
    """
    if not password:
        raise ValueError("A password is required to encrypt a backup")
    salt = os.urandom(SALT_BYTES)
    nonce = os.urandom(NONCE_BYTES)
    key = _derive_key(password, salt, iterations)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
    return {
        "schemaVersion": schema_version,
        "createdAt": created_at,
        "encryption": {
            "algorithm": ALGORITHM,
            "kdf": KDF,
            "iterations": iterations,
            "salt": base64.b64encode(salt).decode("ascii"),
            "nonce": base64.b64encode(nonce).decode("ascii"),
        },
        "payload": base64.b64encode(ciphertext).decode("ascii"),
    }


def decrypt_artifact(envelope: dict[str, Any], password: str) -> bytes:
    """
    Open an encrypted envelope.

    Raises:
        ArtifactDecryptionError: Wrong password, altered payload, or an
            envelope this library cannot read
    """
    params = envelope.get("encryption") or {}
    if params.get("algorithm") != ALGORITHM or params.get("kdf") != KDF:
        raise ArtifactDecryptionError(
            f"Unsupported encryption: {params.get('algorithm')} / {params.get('kdf')}"
        )
    try:
        salt = base64.b64decode(params["salt"], validate=True)
        nonce = base64.b64decode(params["nonce"], validate=True)
        ciphertext = base64.b64decode(envelope["payload"], validate=True)
        iterations = int(params["iterations"])
    except (KeyError, TypeError, ValueError) as e:
        raise ArtifactDecryptionError(f"Encrypted backup is damaged: {e}") from e

    key = _derive_key(password, salt, iterations)
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except (InvalidTag, ValueError) as e:
        raise ArtifactDecryptionError("Wrong password or damaged backup") from e
