"""
Schedule Handles

DESIGN DECISION: Every timer is an owned, cancellable handle.
Whoever starts a periodic job holds the ScheduleHandle and is responsible
for cancelling it. There are no module-level timers, so signing out can
reliably stop everything that was started on sign-in.

A callback that raises is logged and the schedule keeps running; one bad
cycle must not silently stop future backups or syncs.
"""

import asyncio
import inspect
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import structlog

from ledgersafe.audit.logger import AuditLogger
from ledgersafe.config import BackupSettings, get_settings
from ledgersafe.services.storage.keyvalue import LocalStateStore


logger = structlog.get_logger(__name__)

Callback = Callable[[], Awaitable[Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleHandle:
    """
    A background loop that runs a callback after each computed delay.

    The delay is recomputed before every wait, so calendar schedules
    (e.g. "first of next month") stay aligned.
    """

    def __init__(
        self,
        callback: Callback,
        next_delay: Callable[[], float],
        name: str = "schedule",
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._callback = callback
        self._next_delay = next_delay
        self._name = name
        self._audit_logger = audit_logger
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.runs = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "ScheduleHandle":
        """Launch the loop if not already running. Needs a running event loop."""
        if self._task is not None:
            return self
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name=self._name)
        return self

    async def cancel(self) -> None:
        """Stop the loop and wait for it to finish."""
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            delay = max(0.0, float(self._next_delay()))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                return
            except asyncio.TimeoutError:
                pass
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("scheduled_callback_failed", schedule=self._name, error=str(e))
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        error_type="scheduled_callback_failed",
                        error_message=str(e),
                        details={"schedule": self._name},
                    )
            finally:
                self.runs += 1


def schedule_interval(
    callback: Callback,
    interval_seconds: float,
    name: str = "interval",
    audit_logger: Optional[AuditLogger] = None,
) -> ScheduleHandle:
    """Run callback every interval_seconds. Returns the started handle."""
    return ScheduleHandle(
        callback, lambda: interval_seconds, name=name, audit_logger=audit_logger
    ).start()


def next_month_boundary(now: datetime) -> datetime:
    """Midnight on the first day of the month after now (same timezone)."""
    if now.month == 12:
        return now.replace(year=now.year + 1, month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return now.replace(month=now.month + 1, day=1, hour=0, minute=0, second=0, microsecond=0)


def schedule_monthly(
    callback: Callback,
    clock: Optional[Callable[[], datetime]] = None,
    name: str = "monthly",
    audit_logger: Optional[AuditLogger] = None,
) -> ScheduleHandle:
    """Run callback at the start of every month. Returns the started handle."""
    clock = clock or _utcnow

    def delay() -> float:
        now = clock()
        return (next_month_boundary(now) - now).total_seconds()

    return ScheduleHandle(callback, delay, name=name, audit_logger=audit_logger).start()


class AutoBackupScheduler:
    """
    Runs a backup whenever the configured frequency has elapsed.

    Checks on a fixed cadence (hourly by default) instead of sleeping for a
    whole day or month, so a changed configuration takes effect promptly
    and a device that was asleep catches up soon after waking.
    """

    def __init__(
        self,
        run_backup: Callback,
        state: LocalStateStore,
        settings: Optional[BackupSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._run_backup = run_backup
        self._state = state
        self._settings = settings or get_settings().backup
        self._clock = clock or _utcnow
        self._audit_logger = audit_logger
        self._handle: Optional[ScheduleHandle] = None

    async def run_if_due(self) -> bool:
        """Run a backup if one is due. Returns True if a backup ran."""
        config = await self._state.get_backup_config()
        if not config.is_due(self._clock()):
            return False
        logger.info("auto_backup_due", frequency=config.frequency.value)
        await self._run_backup()
        return True

    def start(self) -> ScheduleHandle:
        if self._handle is None or not self._handle.active:
            self._handle = schedule_interval(
                self.run_if_due,
                self._settings.auto_backup_check_interval_seconds,
                name="auto-backup",
                audit_logger=self._audit_logger,
            )
        return self._handle

    async def stop(self) -> None:
        if self._handle is not None:
            await self._handle.cancel()
            self._handle = None
