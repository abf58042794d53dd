"""
Sync Package

Cloud reconciliation, its session lifecycle, and the owned schedule
handles that drive periodic syncs and automatic backups.
"""

from ledgersafe.sync.reconciler import (
    CloudReconciler,
    ReconcilerState,
    RemoteDocumentError,
)
from ledgersafe.sync.scheduler import (
    AutoBackupScheduler,
    ScheduleHandle,
    next_month_boundary,
    schedule_interval,
    schedule_monthly,
)
from ledgersafe.sync.session import SyncSession

__all__ = [
    # Reconciliation
    "CloudReconciler",
    "ReconcilerState",
    "RemoteDocumentError",
    # Scheduling
    "AutoBackupScheduler",
    "ScheduleHandle",
    "next_month_boundary",
    "schedule_interval",
    "schedule_monthly",
    # Lifecycle
    "SyncSession",
]
