"""
Restore Applier

Replaces the on-device dataset with a validated snapshot.

DESIGN DECISION: Restore is a full overwrite, never a merge.
A snapshot is a complete, consistent state. Merging part of it into the
current data would reintroduce exactly the dangling references the
validator checks for.

DESIGN DECISION: All-or-none via staging.
The current value of every collection is read before anything is written.
If any write fails, every collection is put back to its staged value and
the restore reports STORAGE_UNAVAILABLE. A cancelled restore is rolled
back the same way before the cancellation propagates. Observers are notified only after
a complete success, and an observer failure never undoes a restore.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from ledgersafe.models.results import ErrorKind, RestoreResult, user_message
from ledgersafe.models.snapshot import Snapshot
from ledgersafe.services.storage.interface import Collection, DataStoreInterface


logger = structlog.get_logger(__name__)

ChangeListener = Callable[[Snapshot], Union[None, Awaitable[None]]]


class ChangeNotifier:
    """Observers told when the dataset has been replaced."""

    def __init__(self):
        self._listeners: list[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def notify(self, snapshot: Snapshot) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("change_listener_failed", error=str(e))


def snapshot_collections(snapshot: Snapshot) -> dict[Collection, Any]:
    """Wire-form value of every collection, in write order."""
    body = snapshot.body
    return {
        Collection.CUSTOMERS: [c.to_wire() for c in body.customers],
        Collection.BILLS: [b.to_wire() for b in body.bills],
        Collection.PAYMENTS: [p.to_wire() for p in body.payments],
        Collection.ITEMS: [i.to_wire() for i in body.items],
        Collection.ITEM_RATE_HISTORY: [h.to_wire() for h in body.item_rate_history],
        Collection.BUSINESS_ANALYTICS: dict(body.business_analytics),
    }


class RestoreApplier:
    """The single gateway through which a snapshot replaces local data."""

    def __init__(
        self,
        data_store: DataStoreInterface,
        notifier: Optional[ChangeNotifier] = None,
    ):
        self._store = data_store
        self._notifier = notifier or ChangeNotifier()

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    async def apply(self, snapshot: Snapshot) -> RestoreResult:
        """
        Overwrite every collection with the snapshot's contents.

        Args:
            snapshot: A snapshot that passed RestoreValidator

        Returns:
            RestoreResult with per-collection record counts on success.
            On failure the dataset is left as it was before the call.
        """
        targets = snapshot_collections(snapshot)

        try:
            staged = {collection: await self._store.get(collection) for collection in targets}
        except Exception as e:
            logger.error("restore_staging_failed", error=str(e))
            return RestoreResult(
                success=False,
                reason=ErrorKind.STORAGE_UNAVAILABLE,
                message=user_message(ErrorKind.STORAGE_UNAVAILABLE),
            )

        written: list[Collection] = []
        try:
            for collection, value in targets.items():
                await self._store.set(collection, value)
                written.append(collection)
        except asyncio.CancelledError:
            # Cancelled mid-write (e.g. sign-out during a pull): put everything back
            logger.warning("restore_cancelled", collection=collection.value)
            await asyncio.shield(self._rollback(staged, written + [collection]))
            raise
        except Exception as e:
            logger.error(
                "restore_write_failed",
                collection=collection.value,
                error=str(e),
            )
            await self._rollback(staged, written + [collection])
            return RestoreResult(
                success=False,
                reason=ErrorKind.STORAGE_UNAVAILABLE,
                message="Restore failed. Your existing data was not changed.",
            )

        summary = {
            collection.value: len(value)
            for collection, value in targets.items()
            if collection is not Collection.BUSINESS_ANALYTICS
        }
        logger.info("restore_applied", fingerprint=snapshot.fingerprint, **summary)

        await self._notifier.notify(snapshot)

        return RestoreResult(
            success=True,
            summary=summary,
            message="Data restored successfully.",
        )

    async def _rollback(self, staged: dict[Collection, Any], touched: list[Collection]) -> None:
        for collection in touched:
            try:
                await self._store.set(collection, staged[collection])
            except Exception as e:
                logger.critical(
                    "restore_rollback_failed",
                    collection=collection.value,
                    error=str(e),
                )
