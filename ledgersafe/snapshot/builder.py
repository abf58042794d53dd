"""
Snapshot Builder

Reads the authoritative dataset and assembles a fingerprinted Snapshot.

DESIGN DECISION: Backups never fail because of bad references.
Bills and payments pointing at a customer that no longer exists are dropped
from the snapshot with a logged warning. Partial referential corruption must
not stop the user from saving everything else. (The restore validator takes
the opposite stance on import: it reports orphans, it never drops them.)

An empty store is a valid dataset: its snapshot has zero counts, empty
date strings, and still round-trips.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional, TypeVar

import structlog
from pydantic import ValidationError

from ledgersafe.models.records import (
    Bill,
    Customer,
    ItemMaster,
    ItemRateHistory,
    Payment,
    WireModel,
    parse_timestamp,
)
from ledgersafe.models.snapshot import (
    CURRENT_SCHEMA_VERSION,
    ChecksumAlgorithm,
    DateRange,
    Snapshot,
    SnapshotBody,
    SnapshotCounts,
    SnapshotMetadata,
    TotalAmount,
)
from ledgersafe.services.storage.interface import Collection, DataStoreInterface
from ledgersafe.snapshot.fingerprint import compute_fingerprint


logger = structlog.get_logger(__name__)

Model = TypeVar("Model", bound=WireModel)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_records(
    model: type[Model],
    raw: Any,
    collection: Collection,
) -> list[Model]:
    """Validate stored records, skipping (and logging) any that do not parse."""
    if not isinstance(raw, list):
        logger.warning("collection_not_a_list", collection=collection.value)
        return []
    records = []
    skipped = 0
    for entry in raw:
        try:
            records.append(model.model_validate(entry))
        except ValidationError:
            skipped += 1
    if skipped:
        logger.warning(
            "unreadable_records_skipped",
            collection=collection.value,
            skipped=skipped,
        )
    return records


def _date_bounds(values: Iterable[Optional[str]]) -> tuple[str, str]:
    """First and last business date as YYYY-MM-DD, or empty strings."""
    parsed = [p for p in (parse_timestamp(v) for v in values) if p is not None]
    if not parsed:
        return "", ""
    return min(parsed).date().isoformat(), max(parsed).date().isoformat()


def compute_metadata(body: SnapshotBody) -> SnapshotMetadata:
    """Preview-only summary: counts, totals and date range."""
    billed = sum(bill.grand_total for bill in body.bills)
    paid = sum(payment.amount for payment in body.payments)
    first_bill, last_bill = _date_bounds(bill.date for bill in body.bills)
    first_payment, last_payment = _date_bounds(p.date for p in body.payments)

    return SnapshotMetadata(
        counts=SnapshotCounts(
            customers=len(body.customers),
            bills=len(body.bills),
            payments=len(body.payments),
            items=len(body.items),
            item_rate_history=len(body.item_rate_history),
        ),
        total_amount=TotalAmount(
            billed=round(billed, 2),
            paid=round(paid, 2),
            outstanding=round(billed - paid, 2),
        ),
        date_range=DateRange(
            first_bill=first_bill,
            last_bill=last_bill,
            first_payment=first_payment,
            last_payment=last_payment,
        ),
    )


class SnapshotBuilder:
    """
    Builds snapshots from a DataStoreInterface.

    createdAt is kept strictly increasing across builds from one builder,
    even if the clock stalls or steps back.
    """

    def __init__(
        self,
        data_store: DataStoreInterface,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = data_store
        self._clock = clock or _utcnow
        self._last_created: Optional[datetime] = None

    def _next_created_at(self) -> datetime:
        now = self._clock()
        if self._last_created is not None and now <= self._last_created:
            now = self._last_created + timedelta(microseconds=1)
        self._last_created = now
        return now

    async def read_body(self) -> SnapshotBody:
        """Read every collection and drop orphaned bills and payments."""
        customers = _parse_records(
            Customer, await self._store.get(Collection.CUSTOMERS), Collection.CUSTOMERS
        )
        bills = _parse_records(
            Bill, await self._store.get(Collection.BILLS), Collection.BILLS
        )
        payments = _parse_records(
            Payment, await self._store.get(Collection.PAYMENTS), Collection.PAYMENTS
        )
        items = _parse_records(
            ItemMaster, await self._store.get(Collection.ITEMS), Collection.ITEMS
        )
        history = _parse_records(
            ItemRateHistory,
            await self._store.get(Collection.ITEM_RATE_HISTORY),
            Collection.ITEM_RATE_HISTORY,
        )
        analytics = await self._store.get(Collection.BUSINESS_ANALYTICS)
        if not isinstance(analytics, dict):
            analytics = {}

        customer_ids = {customer.id for customer in customers}
        valid_bills = [b for b in bills if b.customer_id in customer_ids]
        valid_payments = [p for p in payments if p.customer_id in customer_ids]

        dropped_bills = len(bills) - len(valid_bills)
        dropped_payments = len(payments) - len(valid_payments)
        if dropped_bills or dropped_payments:
            logger.warning(
                "orphaned_records_dropped",
                bills=dropped_bills,
                payments=dropped_payments,
            )

        return SnapshotBody(
            customers=customers,
            bills=valid_bills,
            payments=valid_payments,
            items=items,
            item_rate_history=history,
            business_analytics=analytics,
        )

    async def build(self) -> Snapshot:
        """
        Build a snapshot of the current dataset.

        Returns:
            Snapshot whose metadata.checksum is the SHA-256 fingerprint of
            the serialized body
        """
        body = await self.read_body()
        metadata = compute_metadata(body)
        metadata.checksum = compute_fingerprint(body.to_wire(), ChecksumAlgorithm.SHA256)
        metadata.checksum_algorithm = ChecksumAlgorithm.SHA256

        snapshot = Snapshot(
            schema_version=CURRENT_SCHEMA_VERSION,
            created_at=self._next_created_at().isoformat(),
            body=body,
            metadata=metadata,
        )
        logger.info(
            "snapshot_built",
            fingerprint=snapshot.fingerprint,
            customers=metadata.counts.customers,
            bills=metadata.counts.bills,
            payments=metadata.counts.payments,
        )
        return snapshot
