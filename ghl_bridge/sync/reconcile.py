"""Daily reconciliation between local and upstream record counts.

Large count drift marks the entity type due for an immediate re-poll.
Also purges long-soft-deleted contacts and old audit log rows.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..api.client import ApiResponse
from ..clock import utcnow
from ..config import settings
from ..entities import EntityType
from ..errors import BridgeError, MappingError
from ..models import Contact, Location, Opportunity, SyncLogEntry, SyncStatus
from ..store import write_sync_log
from .incremental import ClientFactory, token_client_factory

log = logging.getLogger(__name__)


@dataclass
class ReconcileSummary:
    locations_processed: int = 0
    contacts_reconciled: int = 0
    opportunities_reconciled: int = 0
    discrepancies_found: int = 0
    contacts_purged: int = 0
    logs_pruned: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "locationsProcessed": self.locations_processed,
            "contactsReconciled": self.contacts_reconciled,
            "opportunitiesReconciled": self.opportunities_reconciled,
            "discrepanciesFound": self.discrepancies_found,
            "contactsPurged": self.contacts_purged,
            "logsPruned": self.logs_pruned,
            "errors": list(self.errors),
            "duration": self.duration_ms,
        }


def upstream_total(response: ApiResponse) -> int:
    data = response.unwrap() or {}
    meta = data.get("meta") or {}
    total = meta.get("total", data.get("total", 0))
    try:
        return int(total or 0)
    except (TypeError, ValueError) as exc:
        raise MappingError(f"Upstream total is not a number: {total!r}") from exc


def is_significant(local: int, remote: int, ratio: float) -> bool:
    return abs(remote - local) > max(remote, local) * ratio


class ReconciliationService:
    def __init__(self, db: AsyncSession, client_factory: ClientFactory | None = None):
        self.db = db
        self.client_factory = client_factory or token_client_factory(db)
        self.ratio = settings.reconcile_discrepancy_ratio

    async def _mark_for_resync(
        self, tenant_id: uuid.UUID, location_id: str, entity_type: EntityType, local: int, remote: int
    ) -> None:
        stmt = select(SyncStatus).where(
            SyncStatus.tenant_id == tenant_id,
            SyncStatus.location_id == location_id,
            SyncStatus.entity_type == entity_type.value,
        )
        row = (await self.db.execute(stmt)).scalar_one_or_none()
        if row is None:
            row = SyncStatus(tenant_id=tenant_id, location_id=location_id, entity_type=entity_type.value, status="idle")
            self.db.add(row)
        row.next_sync_at = utcnow()
        row.error_message = f"Discrepancy: local={local}, ghl={remote}"

    async def _reconcile_entity(
        self,
        tenant_id: uuid.UUID,
        location_id: str,
        entity_type: EntityType,
        local: int,
        response: ApiResponse,
    ) -> tuple[int, int]:
        """Returns ``(reconciled, discrepancy)``."""
        remote = upstream_total(response)
        if is_significant(local, remote, self.ratio):
            log.info("%s discrepancy for %s: local=%d, ghl=%d", entity_type.value, location_id, local, remote)
            await self._mark_for_resync(tenant_id, location_id, entity_type, local, remote)
            return 0, abs(remote - local)
        return local, 0

    async def reconcile_location(self, tenant_id: uuid.UUID, location_id: str, summary: ReconcileSummary) -> None:
        local_contacts = await self.db.scalar(
            select(func.count()).select_from(Contact).where(
                Contact.location_id == location_id, Contact.is_deleted.is_(False)
            )
        )
        local_opps = await self.db.scalar(
            select(func.count()).select_from(Opportunity).where(Opportunity.location_id == location_id)
        )

        async with self.client_factory(tenant_id, location_id) as client:
            contacts_page = await client.contacts.list(limit=1, location_id=location_id)
            opps_page = await client.opportunities.search(limit=1, location_id=location_id)

        contacts_reconciled, contacts_gap = await self._reconcile_entity(
            tenant_id, location_id, EntityType.CONTACTS, local_contacts or 0, contacts_page
        )
        opps_reconciled, opps_gap = await self._reconcile_entity(
            tenant_id, location_id, EntityType.OPPORTUNITIES, local_opps or 0, opps_page
        )
        purged = await self.purge_deleted_contacts(location_id)
        pruned = await self.prune_sync_log(location_id)
        await self.db.commit()

        # Counted only once the location has committed
        summary.contacts_reconciled += contacts_reconciled
        summary.opportunities_reconciled += opps_reconciled
        summary.discrepancies_found += contacts_gap + opps_gap
        summary.contacts_purged += purged
        summary.logs_pruned += pruned

    async def purge_deleted_contacts(self, location_id: str) -> int:
        cutoff = utcnow() - timedelta(days=settings.soft_delete_retention_days)
        result = await self.db.execute(
            delete(Contact).where(
                Contact.location_id == location_id,
                Contact.is_deleted.is_(True),
                Contact.date_updated < cutoff,
            )
        )
        return result.rowcount or 0

    async def prune_sync_log(self, location_id: str) -> int:
        cutoff = utcnow() - timedelta(days=settings.sync_log_retention_days)
        result = await self.db.execute(
            delete(SyncLogEntry).where(SyncLogEntry.location_id == location_id, SyncLogEntry.created_at < cutoff)
        )
        return result.rowcount or 0

    async def run(self, time_budget: float | None = None) -> ReconcileSummary:
        budget = time_budget if time_budget is not None else settings.reconcile_time_budget_seconds
        started = time.monotonic()
        summary = ReconcileSummary()

        rows = (await self.db.execute(
            select(Location.id, Location.tenant_id).where(Location.is_active.is_(True)).order_by(Location.id)
        )).all()

        for location_id, tenant_id in rows:
            if time.monotonic() - started >= budget:
                log.info("Reconciliation time budget spent; stopping early")
                break
            try:
                await self.reconcile_location(tenant_id, location_id, summary)
                summary.locations_processed += 1
            except (BridgeError, SQLAlchemyError) as exc:
                await self.db.rollback()
                message = exc.message if isinstance(exc, BridgeError) else str(exc)
                summary.errors.append(f"Location {location_id}: {message}")
                log.warning("Reconciliation failed for location %s: %s", location_id, message)

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        await write_sync_log(
            self.db,
            location_id=None,
            entity_type="reconciliation",
            entity_id="daily",
            action="sync",
            source="cron",
            payload=summary.to_dict(),
        )
        await self.db.commit()
        return summary
