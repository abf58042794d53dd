"""Tests for the snapshot builder."""

from datetime import datetime, timezone

import pytest

from ledgersafe.models import parse_timestamp
from ledgersafe.services.storage import Collection, InMemoryKeyValueStore, KeyValueDataStore
from ledgersafe.snapshot import SnapshotBuilder, sha256_fingerprint

from tests.conftest import PREFIX, SAMPLE_DATA, seeded


class TestSnapshotBuilder:
    """Tests for SnapshotBuilder.build()."""

    @pytest.mark.asyncio
    async def test_counts(self, builder):
        snapshot = await builder.build()
        counts = snapshot.metadata.counts
        assert counts.customers == 2
        assert counts.bills == 2
        assert counts.payments == 1
        assert counts.items == 1
        assert counts.item_rate_history == 0

    @pytest.mark.asyncio
    async def test_totals(self, builder):
        totals = (await builder.build()).metadata.total_amount
        assert totals.billed == 350.5
        assert totals.paid == 60.0
        assert totals.outstanding == 290.5

    @pytest.mark.asyncio
    async def test_date_range(self, builder):
        date_range = (await builder.build()).metadata.date_range
        assert date_range.first_bill == "2024-01-05"
        assert date_range.last_bill == "2024-02-10"
        assert date_range.first_payment == "2024-01-20"
        assert date_range.last_payment == "2024-01-20"

    @pytest.mark.asyncio
    async def test_fingerprint_covers_serialized_body(self, builder):
        snapshot = await builder.build()
        assert snapshot.fingerprint == sha256_fingerprint(snapshot.body.to_wire())
        assert snapshot.metadata.checksum_algorithm == "sha256"

    @pytest.mark.asyncio
    async def test_same_data_same_fingerprint(self, builder):
        first = await builder.build()
        second = await builder.build()
        assert first.fingerprint == second.fingerprint

    @pytest.mark.asyncio
    async def test_orphans_are_dropped_without_error(self, kv, data_store, builder):
        bills = await data_store.get(Collection.BILLS)
        bills.append({"id": "b-ghost", "customerId": "ghost", "grandTotal": 40.0})
        await data_store.set(Collection.BILLS, bills)
        payments = await data_store.get(Collection.PAYMENTS)
        payments.append({"id": "p-ghost", "amount": 5.0})
        await data_store.set(Collection.PAYMENTS, payments)

        snapshot = await builder.build()

        assert [b.id for b in snapshot.body.bills] == ["b1", "b2"]
        assert [p.id for p in snapshot.body.payments] == ["p1"]
        assert snapshot.metadata.total_amount.billed == 350.5

    @pytest.mark.asyncio
    async def test_unreadable_records_are_skipped(self, data_store, builder):
        customers = await data_store.get(Collection.CUSTOMERS)
        customers.append({"name": "no id"})
        await data_store.set(Collection.CUSTOMERS, customers)

        snapshot = await builder.build()
        assert snapshot.metadata.counts.customers == 2

    @pytest.mark.asyncio
    async def test_unknown_fields_are_kept(self, data_store, builder):
        customers = await data_store.get(Collection.CUSTOMERS)
        customers[0]["gstNumber"] = "29ABCDE1234F1Z5"
        await data_store.set(Collection.CUSTOMERS, customers)

        snapshot = await builder.build()
        assert snapshot.body.to_wire()["customers"][0]["gstNumber"] == "29ABCDE1234F1Z5"

    @pytest.mark.asyncio
    async def test_analytics_travel_with_the_snapshot(self, builder):
        snapshot = await builder.build()
        assert snapshot.body.business_analytics == {"monthlyTarget": 10000}

    @pytest.mark.asyncio
    async def test_created_at_strictly_increases(self, data_store):
        frozen = datetime(2024, 6, 1, tzinfo=timezone.utc)
        builder = SnapshotBuilder(data_store, clock=lambda: frozen)

        first = await builder.build()
        second = await builder.build()

        assert parse_timestamp(second.created_at) > parse_timestamp(first.created_at)


class TestEmptyDataset:
    """An empty store is a valid dataset."""

    @pytest.mark.asyncio
    async def test_empty_store(self, empty_kv):
        builder = SnapshotBuilder(KeyValueDataStore(empty_kv, prefix=PREFIX))
        snapshot = await builder.build()

        assert snapshot.body.is_empty
        counts = snapshot.metadata.counts
        assert (counts.customers, counts.bills, counts.payments, counts.items) == (0, 0, 0, 0)
        date_range = snapshot.metadata.date_range
        assert date_range.first_bill == ""
        assert date_range.last_bill == ""
        assert date_range.first_payment == ""
        assert date_range.last_payment == ""
        assert snapshot.fingerprint

    @pytest.mark.asyncio
    async def test_empty_store_round_trips(self, empty_kv, validator):
        builder = SnapshotBuilder(KeyValueDataStore(empty_kv, prefix=PREFIX))
        snapshot = await builder.build()

        validation = validator.validate(snapshot.serialize())

        assert validation.ok
        assert validation.snapshot.body == snapshot.body
        assert validation.issues == []


class TestRoundTrip:
    """Tests for build then validate."""

    @pytest.mark.asyncio
    async def test_build_validate_round_trip(self, builder, validator):
        snapshot = await builder.build()

        validation = validator.validate(snapshot.serialize())

        assert validation.ok
        assert validation.snapshot.body == snapshot.body
        assert validation.snapshot.fingerprint == snapshot.fingerprint
        assert validation.snapshot.created_at == snapshot.created_at
        assert validation.issues == []

    @pytest.mark.asyncio
    async def test_round_trip_from_separate_store(self, validator):
        kv = InMemoryKeyValueStore(seeded(SAMPLE_DATA))
        snapshot = await SnapshotBuilder(KeyValueDataStore(kv, prefix=PREFIX)).build()
        validation = validator.validate(snapshot.serialize().decode("utf-8"))
        assert validation.ok
        assert validation.snapshot.metadata.counts == snapshot.metadata.counts
