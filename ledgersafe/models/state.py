"""
Local State Models

Small records the app keeps next to the dataset: the backup configuration
and the last time each principal was synced.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import Field

from ledgersafe.models.records import WireModel, parse_timestamp


class BackupMode(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class BackupFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def interval(self) -> timedelta:
        # Monthly is a fixed 30 days here; calendar boundaries are handled
        # by schedule_monthly.
        return {
            BackupFrequency.DAILY: timedelta(days=1),
            BackupFrequency.WEEKLY: timedelta(days=7),
            BackupFrequency.MONTHLY: timedelta(days=30),
        }[self]


class BackupConfig(WireModel):
    """
    How and when automatic backups run.

    Stored as {"mode", "frequency", "lastRunAt"}.
    """

    mode: BackupMode = BackupMode.AUTOMATIC
    frequency: BackupFrequency = BackupFrequency.WEEKLY
    last_run_at: Optional[str] = Field(
        default=None,
        description="ISO-8601 time of the last successful backup"
    )

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """True when automatic backups are on and a full interval has passed."""
        if self.mode != BackupMode.AUTOMATIC:
            return False
        last = parse_timestamp(self.last_run_at)
        if last is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now - last >= self.frequency.interval
