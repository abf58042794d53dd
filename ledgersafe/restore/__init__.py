"""Restore package: validate an artifact, then apply it."""

from ledgersafe.restore.validator import RestoreValidator
from ledgersafe.restore.applier import (
    ChangeListener,
    ChangeNotifier,
    RestoreApplier,
    snapshot_collections,
)

__all__ = [
    "ChangeListener",
    "ChangeNotifier",
    "RestoreApplier",
    "RestoreValidator",
    "snapshot_collections",
]
