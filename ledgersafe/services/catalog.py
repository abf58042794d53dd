"""
Item Catalog

Item master CRUD with an append-only rate history.

Whenever an item's rate changes, an ItemRateHistory entry recording the
old and new rate is appended. History entries are never edited or
removed here; they travel with every backup so past bills can be
explained.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

from pydantic import ValidationError

from ledgersafe.audit.logger import AuditLogger
from ledgersafe.models.records import ItemMaster, ItemRateHistory, parse_timestamp
from ledgersafe.services.storage.interface import Collection, DataStoreInterface


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


class ItemNotFoundError(LookupError):
    """No item with the given id exists."""
    pass


class ItemCatalog:
    """Reads and writes the items collection through the data store."""

    def __init__(
        self,
        data_store: DataStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = data_store
        self._audit_logger = audit_logger
        self._clock = clock or _utcnow

    async def list_items(self) -> list[ItemMaster]:
        raw = await self._store.get(Collection.ITEMS)
        return [ItemMaster.model_validate(entry) for entry in raw]

    async def add_item(
        self,
        name: str,
        rate: Optional[float] = None,
        item_type: str = "fixed",
    ) -> ItemMaster:
        now = _iso(self._clock())
        item = ItemMaster(
            id=str(uuid4()),
            name=name,
            type=item_type,
            rate=rate,
            created_at=now,
            updated_at=now,
        )
        raw = await self._store.get(Collection.ITEMS)
        await self._store.set(Collection.ITEMS, [*raw, item.to_wire()])
        return item

    async def update_item(self, item_id: str, **changes: Any) -> ItemMaster:
        """
        Apply changes to an item.

        Args:
            item_id: Item to update
            **changes: Field values by attribute name (name, type, rate)

        Returns:
            The updated item

        Raises:
            ItemNotFoundError: No such item
            ValidationError: The changes produce an invalid item
        """
        raw = await self._store.get(Collection.ITEMS)
        for index, entry in enumerate(raw):
            if entry.get("id") == item_id:
                break
        else:
            raise ItemNotFoundError(item_id)

        current = ItemMaster.model_validate(entry)
        changes.pop("id", None)
        moment = self._clock()
        updated = ItemMaster.model_validate({
            **current.model_dump(),
            **changes,
            "updated_at": _iso(moment),
        })

        items = list(raw)
        items[index] = updated.to_wire()
        await self._store.set(Collection.ITEMS, items)

        if "rate" in changes and updated.rate != current.rate:
            await self._record_rate_change(item_id, current.rate, updated.rate, moment)

        return updated

    async def rate_history_for(self, item_id: str) -> list[ItemRateHistory]:
        """Rate changes for one item, newest first."""
        raw = await self._store.get(Collection.ITEM_RATE_HISTORY)
        history = []
        for entry in raw:
            if entry.get("itemId") != item_id:
                continue
            try:
                history.append(ItemRateHistory.model_validate(entry))
            except ValidationError:
                continue
        history.sort(
            key=lambda h: parse_timestamp(h.changed_at) or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        return history

    async def _record_rate_change(
        self,
        item_id: str,
        old_rate: Optional[float],
        new_rate: Optional[float],
        moment: datetime,
    ) -> None:
        entry = ItemRateHistory(
            id=str(uuid4()),
            item_id=item_id,
            old_rate=old_rate,
            new_rate=new_rate,
            changed_at=_iso(moment),
        )
        raw = await self._store.get(Collection.ITEM_RATE_HISTORY)
        await self._store.set(Collection.ITEM_RATE_HISTORY, [*raw, entry.to_wire()])

        if self._audit_logger:
            await self._audit_logger.log_item_rate_changed(item_id, old_rate, new_rate)
