"""
LedgerSafe - Backup, Restore and Sync Core

Keeps a small-business billing dataset (customers, bills, payments,
item master data) safe across devices.

DESIGN PRINCIPLES:
1. The on-device dataset is the single source of truth
2. A backup is a disposable, fingerprinted snapshot of that dataset
3. Nothing is restored without validation
4. Restore is a full overwrite, never a merge
5. Storage and cloud backends are swappable
"""

__version__ = "1.0.0"
__author__ = "LedgerSafe Team"
