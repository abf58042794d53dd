"""
Sync Session

Owns the lifecycle of cloud reconciliation for whoever is signed in.

Sign-in:  create a CloudReconciler for the principal, run a first cycle,
          start the periodic sync handle (and the monthly backup handle,
          if one was given).
Sign-out: cancel every handle, stop the reconciler, drop it.

DESIGN DECISION: Teardown is not optional.
A periodic sync left running for a signed-out principal would push one
user's data under another's session. Every handle started here is held
here and cancelled here.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

from ledgersafe.audit.logger import AuditLogger
from ledgersafe.config import SyncSettings, get_settings
from ledgersafe.models.results import ErrorKind, SyncResult
from ledgersafe.restore.applier import RestoreApplier
from ledgersafe.restore.validator import RestoreValidator
from ledgersafe.services.cloud.interface import (
    IdentityProviderInterface,
    Principal,
    RemoteDocumentStoreInterface,
    SignInTimeoutError,
)
from ledgersafe.services.storage.keyvalue import LocalStateStore
from ledgersafe.snapshot.builder import SnapshotBuilder
from ledgersafe.sync.reconciler import CloudReconciler
from ledgersafe.sync.scheduler import ScheduleHandle, schedule_interval, schedule_monthly


logger = structlog.get_logger(__name__)


class SyncSession:
    """
    Starts and stops reconciliation as the identity provider reports
    sign-in and sign-out.

    Usage:
        session = SyncSession(identity, remote, builder, validator, applier, state)
        await session.resume()           # pick up an earlier sign-in
        await session.sign_in("me@example.com")
        result = await session.first_cycle
        ...
        await session.sign_out()
    """

    def __init__(
        self,
        identity: IdentityProviderInterface,
        remote: RemoteDocumentStoreInterface,
        builder: SnapshotBuilder,
        validator: RestoreValidator,
        applier: RestoreApplier,
        state_store: LocalStateStore,
        settings: Optional[SyncSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        monthly_backup: Optional[Callable[[], Awaitable[Any]]] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._identity = identity
        self._remote = remote
        self._builder = builder
        self._validator = validator
        self._applier = applier
        self._state_store = state_store
        self._settings = settings or get_settings().sync
        self._audit_logger = audit_logger
        self._monthly_backup = monthly_backup
        self._clock = clock

        self._reconciler: Optional[CloudReconciler] = None
        self._handles: list[ScheduleHandle] = []
        self._first_cycle: Optional[asyncio.Task] = None
        self._unsubscribe = identity.subscribe(self._on_identity_changed)

    @property
    def reconciler(self) -> Optional[CloudReconciler]:
        return self._reconciler

    @property
    def handles(self) -> list[ScheduleHandle]:
        return list(self._handles)

    @property
    def first_cycle(self) -> Optional[asyncio.Task]:
        """The reconciliation started on sign-in, awaitable for its SyncResult."""
        return self._first_cycle

    async def resume(self) -> None:
        """Start syncing if a principal is already signed in."""
        principal = self._identity.current_principal()
        if principal is not None and self._reconciler is None:
            await self._start(principal)

    async def sign_in(self, hint: Optional[str] = None) -> Principal:
        """
        Sign in through the identity provider, bounded by a timeout.

        Raises:
            SignInTimeoutError: Sign-in did not finish in time
            AuthRequiredError: Sign-in was cancelled or refused
        """
        try:
            return await asyncio.wait_for(
                self._identity.sign_in(hint),
                timeout=self._settings.sign_in_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning("sign_in_timed_out", timeout=self._settings.sign_in_timeout_seconds)
            raise SignInTimeoutError(
                f"Sign-in did not complete within {self._settings.sign_in_timeout_seconds}s"
            ) from e

    async def sign_out(self) -> None:
        await self._identity.sign_out()
        # Providers that do not notify on sign-out still get torn down
        await self._stop()

    async def sync_now(self) -> SyncResult:
        """Trigger a cycle immediately. A no-op if one is already running."""
        if self._reconciler is None:
            return SyncResult.failed(ErrorKind.AUTH_REQUIRED)
        return await self._reconciler.reconcile()

    async def close(self) -> None:
        """Stop everything and stop listening to the identity provider."""
        self._unsubscribe()
        await self._stop()

    async def _on_identity_changed(self, principal: Optional[Principal]) -> None:
        if principal is None:
            await self._stop()
            return
        if self._reconciler is not None and self._reconciler.principal.key == principal.key:
            return
        await self._stop()
        await self._start(principal)

    async def _start(self, principal: Principal) -> None:
        reconciler = CloudReconciler(
            principal=principal,
            identity=self._identity,
            remote=self._remote,
            builder=self._builder,
            validator=self._validator,
            applier=self._applier,
            state_store=self._state_store,
            settings=self._settings,
            clock=self._clock,
            audit_logger=self._audit_logger,
        )
        self._reconciler = reconciler

        self._first_cycle = asyncio.create_task(reconciler.reconcile())
        self._handles.append(
            schedule_interval(
                reconciler.reconcile,
                self._settings.interval_seconds,
                name=f"sync:{principal.key}",
                audit_logger=self._audit_logger,
            )
        )
        if self._monthly_backup is not None:
            self._handles.append(
                schedule_monthly(
                    self._monthly_backup,
                    name=f"monthly-backup:{principal.key}",
                    audit_logger=self._audit_logger,
                )
            )

        logger.info("sync_session_started", principal=principal.key)
        if self._audit_logger:
            await self._audit_logger.log_signed_in(principal.key, principal.provider)

    async def _stop(self) -> None:
        reconciler = self._reconciler
        if reconciler is None:
            return
        self._reconciler = None

        for handle in self._handles:
            await handle.cancel()
        self._handles = []

        if self._first_cycle is not None and not self._first_cycle.done():
            self._first_cycle.cancel()
            try:
                await self._first_cycle
            except asyncio.CancelledError:
                pass
        reconciler.close()

        logger.info("sync_session_stopped", principal=reconciler.principal.key)
        if self._audit_logger:
            await self._audit_logger.log_signed_out(reconciler.principal.key)
