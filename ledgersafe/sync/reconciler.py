"""
Cloud Reconciler

Keeps the local dataset and one remote document per principal in step.

State machine (one per signed-in principal):

    IDLE --reconcile()--> SYNCING --(done / failed)--> IDLE
      \                                                  /
       `------------------ close() ---------> STOPPED <-'

A reconciliation cycle is pull, then push:
- pull: read the remote document. Apply it (through the restore
  validator and applier, never directly) only if its lastUpdate is
  strictly newer than the locally recorded last-synced time. Equal or
  older means nothing to pull.
- push: build a fresh snapshot, stamp it with the current time, write it,
  and record that time as last synced.

DESIGN DECISION: Whole-snapshot last-write-wins.
There is no field-level merge. If two devices edit while offline, the
later push wins and the other device's edits are lost on its next pull.

DESIGN DECISION: No lock, a state check.
Everything runs on one event loop. A reconcile() that arrives while the
state is SYNCING returns immediately as skipped, so periodic triggers can
never overlap for the same principal.

close() during a running cycle aborts it before its next local apply or
remote write, so a signed-out principal's data is never pushed or pulled.

Remote calls carry a timeout and are retried with exponential backoff on
transient failures (tenacity). Revoked credentials abort immediately.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledgersafe.audit.logger import AuditLogger
from ledgersafe.config import SyncSettings, get_settings
from ledgersafe.models.results import ErrorKind, SyncResult, user_message
from ledgersafe.restore.applier import RestoreApplier
from ledgersafe.restore.validator import RestoreValidator
from ledgersafe.services.cloud.interface import (
    AuthRequiredError,
    CloudError,
    IdentityProviderInterface,
    Principal,
    RemoteDocumentStoreInterface,
    RemoteTimeoutError,
    TransientNetworkError,
)
from ledgersafe.services.storage.keyvalue import LocalStateStore
from ledgersafe.snapshot.builder import SnapshotBuilder


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ReconcilerState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    STOPPED = "stopped"


class RemoteDocumentError(CloudError):
    """The remote document failed validation or could not be applied."""

    def __init__(self, kind: ErrorKind, message: str):
        self.kind = kind
        super().__init__(message)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class CloudReconciler:
    """Pull-then-push reconciliation for one principal."""

    def __init__(
        self,
        principal: Principal,
        identity: IdentityProviderInterface,
        remote: RemoteDocumentStoreInterface,
        builder: SnapshotBuilder,
        validator: RestoreValidator,
        applier: RestoreApplier,
        state_store: LocalStateStore,
        settings: Optional[SyncSettings] = None,
        clock: Optional[Callable[[], int]] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._principal = principal
        self._identity = identity
        self._remote = remote
        self._builder = builder
        self._validator = validator
        self._applier = applier
        self._state_store = state_store
        self._settings = settings or get_settings().sync
        self._clock = clock or _epoch_ms
        self._audit_logger = audit_logger
        self._state = ReconcilerState.IDLE

    @property
    def principal(self) -> Principal:
        return self._principal

    @property
    def state(self) -> ReconcilerState:
        return self._state

    def close(self) -> None:
        """Tear down. Any later reconcile() reports AUTH_REQUIRED."""
        self._state = ReconcilerState.STOPPED

    async def reconcile(self) -> SyncResult:
        """
        Run one pull-then-push cycle.

        Returns:
            SyncResult. skipped=True if a cycle was already running.
        """
        if self._state is ReconcilerState.STOPPED:
            return SyncResult.failed(ErrorKind.AUTH_REQUIRED)
        if self._state is ReconcilerState.SYNCING:
            logger.debug("reconcile_skipped", principal=self._principal.key)
            return SyncResult(success=True, skipped=True)

        current = self._identity.current_principal()
        if current is None or current.key != self._principal.key:
            return SyncResult.failed(ErrorKind.AUTH_REQUIRED)

        self._state = ReconcilerState.SYNCING
        try:
            pulled, remote_last = await self._pull()
            last_synced = await self._push(remote_last)
            result = SyncResult(
                success=True,
                pulled=pulled,
                pushed=True,
                remote_last_update=remote_last,
                last_synced=last_synced,
            )
        except CloudError as e:
            logger.warning(
                "reconcile_failed",
                principal=self._principal.key,
                reason=e.kind.value,
                error=str(e),
            )
            message = str(e) if isinstance(e, RemoteDocumentError) else user_message(e.kind)
            result = SyncResult(success=False, reason=e.kind, message=message)
        finally:
            if self._state is ReconcilerState.SYNCING:
                self._state = ReconcilerState.IDLE

        await self._audit(result)
        return result

    async def _pull(self) -> tuple[bool, Optional[int]]:
        key = self._principal.key
        document = await self._call_remote("read", lambda: self._remote.read(key))
        if document is None:
            return False, None
        if not isinstance(document, dict):
            raise RemoteDocumentError(
                ErrorKind.MALFORMED_FORMAT,
                "The cloud copy is not a valid backup document.",
            )

        remote_last = _as_epoch_ms(document.get("lastUpdate"))
        local_last = await self._state_store.get_last_synced(key) or 0
        if remote_last is None or remote_last <= local_last:
            return False, remote_last

        validation = self._validator.validate_document(document, structural=False)
        if not validation.ok:
            raise RemoteDocumentError(
                validation.reason or ErrorKind.MALFORMED_FORMAT,
                validation.message,
            )

        self._ensure_open()
        applied = await self._applier.apply(validation.snapshot)
        if not applied.success:
            raise RemoteDocumentError(
                applied.reason or ErrorKind.STORAGE_UNAVAILABLE,
                applied.message,
            )

        await self._state_store.set_last_synced(key, remote_last)
        logger.info("remote_changes_pulled", principal=key, last_update=remote_last)
        return True, remote_last

    async def _push(self, remote_last: Optional[int]) -> int:
        key = self._principal.key
        snapshot = await self._builder.build()

        # Never stamp a push older than what the remote already holds,
        # or other devices would skip it.
        stamp = self._clock()
        if remote_last is not None and stamp <= remote_last:
            stamp = remote_last + 1

        document = {**snapshot.to_artifact(), "lastUpdate": stamp}
        self._ensure_open()
        await self._call_remote("write", lambda: self._remote.write(key, document))
        await self._state_store.set_last_synced(key, stamp)
        return stamp

    def _ensure_open(self) -> None:
        """Abort the cycle if close() was called while it was running."""
        if self._state is ReconcilerState.STOPPED:
            raise AuthRequiredError("Signed out during sync")

    async def _call_remote(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run a remote call with a timeout and bounded retry."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_attempts),
            wait=wait_exponential(
                multiplier=self._settings.retry_base_delay_seconds,
                max=self._settings.retry_max_delay_seconds,
            ),
            retry=retry_if_exception_type(TransientNetworkError),
            before_sleep=self._log_retry(operation),
            reraise=True,
        ):
            with attempt:
                try:
                    result = await asyncio.wait_for(
                        call(),
                        timeout=self._settings.remote_timeout_seconds,
                    )
                except asyncio.TimeoutError as e:
                    raise RemoteTimeoutError(
                        f"Remote {operation} timed out after "
                        f"{self._settings.remote_timeout_seconds}s"
                    ) from e
        return result

    def _log_retry(self, operation: str) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "remote_call_retry",
                operation=operation,
                attempt=retry_state.attempt_number,
                error=str(error),
            )

        return before_sleep

    async def _audit(self, result: SyncResult) -> None:
        if not self._audit_logger or result.skipped:
            return
        if result.success:
            await self._audit_logger.log_sync_completed(
                principal_id=self._principal.key,
                pulled=result.pulled,
                pushed=result.pushed,
                last_synced=result.last_synced,
            )
        else:
            await self._audit_logger.log_sync_failed(
                principal_id=self._principal.key,
                error_code=result.reason.value if result.reason else "unknown",
                error_message=result.message,
            )


def _as_epoch_ms(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, str)):
        try:
            return int(value)
        except (OverflowError, ValueError):
            return None
    return None
