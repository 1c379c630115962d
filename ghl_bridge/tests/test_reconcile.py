"""Tests for daily reconciliation."""

from __future__ import annotations

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from ghl_bridge.api.client import ApiResponse
from ghl_bridge.clock import as_utc, utcnow
from ghl_bridge.errors import MappingError
from ghl_bridge.models import Contact, Location, SyncLogEntry, SyncStatus
from ghl_bridge.sync.reconcile import ReconciliationService, is_significant, upstream_total

LOCATION_ID = "loc_main"


def _totals(fake_ghl, contacts: int, opportunities: int) -> None:
    fake_ghl.contacts.list.return_value = ApiResponse(
        data={"contacts": [], "meta": {"total": contacts}}, status=200
    )
    fake_ghl.opportunities.search.return_value = ApiResponse(
        data={"opportunities": [], "meta": {"total": opportunities}}, status=200
    )


def test_is_significant_uses_larger_count():
    assert not is_significant(90, 100, 0.1)
    assert is_significant(89, 100, 0.1)
    assert is_significant(100, 89, 0.1)
    assert not is_significant(0, 0, 0.1)


def test_upstream_total_reads_meta_then_top_level():
    assert upstream_total(ApiResponse(data={"meta": {"total": 7}}, status=200)) == 7
    assert upstream_total(ApiResponse(data={"total": 3}, status=200)) == 3
    assert upstream_total(ApiResponse(data={}, status=200)) == 0


class TestReconciliation:
    @pytest.mark.asyncio
    async def test_matching_counts_reconciled(self, db, location, client_factory, fake_ghl):
        for i in range(10):
            db.add(Contact(id=f"c{i}", location_id=LOCATION_ID))
        await db.commit()
        _totals(fake_ghl, contacts=10, opportunities=0)

        summary = await ReconciliationService(db, client_factory).run()

        assert summary.locations_processed == 1
        assert summary.contacts_reconciled == 10
        assert summary.discrepancies_found == 0
        assert summary.errors == []
        assert (await db.execute(select(SyncStatus))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_discrepancy_makes_entity_due(self, db, location, client_factory, fake_ghl):
        tenant_id = location.tenant_id
        db.add(Contact(id="c1", location_id=LOCATION_ID))
        db.add(Contact(id="c2", location_id=LOCATION_ID, is_deleted=True))
        await db.commit()
        _totals(fake_ghl, contacts=50, opportunities=0)

        summary = await ReconciliationService(db, client_factory).run()

        assert summary.discrepancies_found == 49
        assert summary.contacts_reconciled == 0
        row = (await db.execute(
            select(SyncStatus).where(SyncStatus.tenant_id == tenant_id, SyncStatus.entity_type == "contacts")
        )).scalar_one()
        assert row.error_message == "Discrepancy: local=1, ghl=50"
        assert as_utc(row.next_sync_at) <= utcnow()

    @pytest.mark.asyncio
    async def test_purges_old_soft_deletes_and_prunes_log(self, db, location, client_factory, fake_ghl):
        old = utcnow() - timedelta(days=120)
        db.add_all([
            Contact(id="gone", location_id=LOCATION_ID, is_deleted=True, date_updated=old),
            Contact(id="recent", location_id=LOCATION_ID, is_deleted=True, date_updated=utcnow()),
            Contact(id="live", location_id=LOCATION_ID, date_updated=old),
            SyncLogEntry(location_id=LOCATION_ID, entity_type="contacts", entity_id="x", action="sync",
                         source="poll", created_at=utcnow() - timedelta(days=45)),
            SyncLogEntry(location_id=LOCATION_ID, entity_type="contacts", entity_id="y", action="sync",
                         source="poll", created_at=utcnow()),
        ])
        await db.commit()
        _totals(fake_ghl, contacts=1, opportunities=0)

        summary = await ReconciliationService(db, client_factory).run()

        assert summary.contacts_purged == 1
        assert summary.logs_pruned == 1
        db.expunge_all()
        assert await db.get(Contact, "gone") is None
        assert await db.get(Contact, "recent") is not None
        assert await db.get(Contact, "live") is not None

    @pytest.mark.asyncio
    async def test_location_failure_is_collected(self, db, location, client_factory, fake_ghl):
        fake_ghl.contacts.list.return_value = ApiResponse(error="Unauthorized", status=401)

        summary = await ReconciliationService(db, client_factory).run()

        assert summary.locations_processed == 0
        assert summary.errors == [f"Location {LOCATION_ID}: Unauthorized"]
        entry = (await db.execute(
            select(SyncLogEntry).where(SyncLogEntry.entity_type == "reconciliation")
        )).scalar_one()
        assert entry.location_id is None
        assert entry.source == "cron"
        assert entry.payload["errors"] == summary.errors

    @pytest.mark.asyncio
    async def test_inactive_locations_skipped(self, db, location, client_factory, fake_ghl):
        location.is_active = False
        await db.commit()

        summary = await ReconciliationService(db, client_factory).run()

        assert summary.locations_processed == 0
        assert fake_ghl.opened == []


def test_non_numeric_total_is_a_mapping_error():
    with pytest.raises(MappingError):
        upstream_total(ApiResponse(data={"meta": {"total": "lots"}}, status=200))


class TestFailureIsolation:
    @pytest_asyncio.fixture
    async def second_location(self, db, location):
        loc = Location(id="loc_second", tenant_id=location.tenant_id, name="Second Office")
        db.add(loc)
        await db.commit()
        return loc

    @pytest.mark.asyncio
    async def test_bad_upstream_total_skips_only_that_location(
        self, db, location, second_location, client_factory, fake_ghl
    ):
        _totals(fake_ghl, contacts=0, opportunities=0)
        fake_ghl.opportunities.search.side_effect = [
            ApiResponse(data={"opportunities": [], "meta": {"total": "lots"}}, status=200),
            ApiResponse(data={"opportunities": [], "meta": {"total": 0}}, status=200),
        ]

        summary = await ReconciliationService(db, client_factory).run()

        assert summary.locations_processed == 1
        assert summary.errors == [f"Location {LOCATION_ID}: Upstream total is not a number: 'lots'"]
        assert [opened[1] for opened in fake_ghl.opened] == [LOCATION_ID, "loc_second"]
        entry = (await db.execute(
            select(SyncLogEntry).where(SyncLogEntry.entity_type == "reconciliation")
        )).scalar_one()
        assert entry.payload["errors"] == summary.errors

    @pytest.mark.asyncio
    async def test_database_error_skips_only_that_location(
        self, db, location, second_location, client_factory, fake_ghl, monkeypatch: pytest.MonkeyPatch
    ):
        _totals(fake_ghl, contacts=0, opportunities=0)
        service = ReconciliationService(db, client_factory)
        purge = service.purge_deleted_contacts

        async def flaky_purge(location_id):
            if location_id == LOCATION_ID:
                raise OperationalError("DELETE FROM ghl_contact", {}, Exception("database is locked"))
            return await purge(location_id)

        monkeypatch.setattr(service, "purge_deleted_contacts", flaky_purge)

        summary = await service.run()

        assert summary.locations_processed == 1
        (error,) = summary.errors
        assert error.startswith(f"Location {LOCATION_ID}:")
        assert "database is locked" in error
        entry = (await db.execute(
            select(SyncLogEntry).where(SyncLogEntry.entity_type == "reconciliation")
        )).scalar_one()
        assert entry.payload["locationsProcessed"] == 1
