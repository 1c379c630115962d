"""Incremental sync scheduler.

Each scheduled invocation picks up due ``SyncStatus`` rows and re-polls the
upstream listing for that entity type. There is no server-side delta: every
poll walks the full result set, so correctness is eventual.

Status edges: ``idle -> syncing``, ``syncing -> idle`` on success and
``syncing -> error`` on failure. ``error -> syncing`` is the retry edge: an
errored row stays due and is picked up by the next pass. A row left in
``syncing`` by a killed invocation holds its ``updated_at`` as a lease;
once that is older than ``sync_lease_seconds`` the row is moved to
``error`` and retried in full.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..api.client import GHLApiClient
from ..clock import as_utc, utcnow
from ..config import settings
from ..entities import SCHEDULED_ENTITY_TYPES, EntityType, interval_for, parse_entity_type
from ..errors import BridgeError, ConflictError, ErrorKind
from ..models import SyncStatus
from ..oauth.token_store import TokenStore
from ..store import write_sync_log
from .fetchers import SyncBatchResult, SyncContext, run_fetcher

log = logging.getLogger(__name__)

ClientFactory = Callable[[uuid.UUID, str], AbstractAsyncContextManager[GHLApiClient]]

IDLE = "idle"
SYNCING = "syncing"
ERROR = "error"

RUNNABLE_STATES = (IDLE, ERROR)

ABANDONED_MESSAGE = "Abandoned: sync lease expired"


def sync_lease_expired(row: SyncStatus, now: datetime, lease: timedelta | None = None) -> bool:
    """True when a ``syncing`` row has not been touched within the lease."""
    lease = lease if lease is not None else timedelta(seconds=settings.sync_lease_seconds)
    updated = as_utc(row.updated_at)
    return updated is None or updated <= now - lease


def token_client_factory(db: AsyncSession) -> ClientFactory:
    """Build API clients authenticated from the stored OAuth credentials."""
    store = TokenStore(db)

    def factory(tenant_id: uuid.UUID, location_id: str) -> GHLApiClient:
        return GHLApiClient(store, tenant_id, location_id)

    return factory


@dataclass
class SyncTask:
    tenant_id: uuid.UUID
    location_id: str
    entity_type: str
    last_sync_at: datetime | None
    next_sync_at: datetime | None


@dataclass
class PollSummary:
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[SyncBatchResult] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": [r.to_dict() for r in self.results],
            "duration": self.duration_ms,
        }


class IncrementalSyncService:
    def __init__(
        self,
        db: AsyncSession,
        client_factory: ClientFactory | None = None,
        *,
        lease_seconds: int | None = None,
    ):
        self.db = db
        self.client_factory = client_factory or token_client_factory(db)
        self.lease = timedelta(seconds=lease_seconds or settings.sync_lease_seconds)

    async def release_stale(
        self,
        *,
        tenant_id: uuid.UUID | None = None,
        location_id: str | None = None,
    ) -> int:
        """Move ``syncing`` rows with an expired lease to ``error``; returns how many."""
        stmt = select(SyncStatus).where(SyncStatus.status == SYNCING)
        if tenant_id is not None:
            stmt = stmt.where(SyncStatus.tenant_id == tenant_id)
        if location_id is not None:
            stmt = stmt.where(SyncStatus.location_id == location_id)

        now = utcnow()
        released = 0
        for row in (await self.db.execute(stmt)).scalars().all():
            if not sync_lease_expired(row, now, self.lease):
                continue
            log.warning(
                "Releasing stale %s sync for location %s (last touched %s)",
                row.entity_type, row.location_id, row.updated_at,
            )
            row.status = ERROR
            row.error_message = ABANDONED_MESSAGE
            released += 1
        if released:
            await self.db.commit()
        return released

    async def get_pending_tasks(
        self,
        limit: int = 10,
        *,
        tenant_id: uuid.UUID | None = None,
        location_id: str | None = None,
    ) -> list[SyncTask]:
        """Due rows ordered by due time, oldest first.

        Stale ``syncing`` rows are released first so they count as due.
        """
        await self.release_stale(tenant_id=tenant_id, location_id=location_id)
        now = utcnow()
        stmt = select(SyncStatus).where(
            SyncStatus.status.in_(RUNNABLE_STATES),
            or_(SyncStatus.next_sync_at.is_(None), SyncStatus.next_sync_at <= now),
        )
        if tenant_id is not None:
            stmt = stmt.where(SyncStatus.tenant_id == tenant_id)
        if location_id is not None:
            stmt = stmt.where(SyncStatus.location_id == location_id)
        stmt = stmt.order_by(SyncStatus.next_sync_at.asc()).limit(limit)
        rows = (await self.db.execute(stmt)).scalars().all()
        return [
            SyncTask(r.tenant_id, r.location_id, r.entity_type, r.last_sync_at, r.next_sync_at)
            for r in rows
        ]

    async def get_status(self, tenant_id: uuid.UUID, location_id: str, entity_type: str) -> SyncStatus | None:
        stmt = select(SyncStatus).where(
            SyncStatus.tenant_id == tenant_id,
            SyncStatus.location_id == location_id,
            SyncStatus.entity_type == entity_type,
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _begin(self, tenant_id: uuid.UUID, location_id: str, entity_type: EntityType) -> uuid.UUID:
        """Move the status row to ``syncing`` and commit; returns its id."""
        row = await self.get_status(tenant_id, location_id, entity_type.value)
        if row is None:
            row = SyncStatus(
                tenant_id=tenant_id,
                location_id=location_id,
                entity_type=entity_type.value,
                status=IDLE,
                next_sync_at=utcnow(),
            )
            self.db.add(row)
        elif row.status == SYNCING:
            if not sync_lease_expired(row, utcnow(), self.lease):
                raise ConflictError(
                    f"{entity_type.value} sync already running for location {location_id}",
                    details={"entityType": entity_type.value, "locationId": location_id},
                )
            log.warning("Taking over stale %s sync for location %s", entity_type.value, location_id)
        row.status = SYNCING
        row.updated_at = utcnow()
        row.error_message = None
        await self.db.commit()
        return row.id

    async def _fail(self, status_id: uuid.UUID, message: str) -> None:
        await self.db.rollback()
        await self.db.execute(
            update(SyncStatus)
            .where(SyncStatus.id == status_id)
            .values(status=ERROR, error_message=message[:2000], updated_at=utcnow())
        )
        await self.db.commit()

    async def sync_entity(
        self,
        tenant_id: uuid.UUID,
        location_id: str,
        entity_type: EntityType | str,
        since: datetime | None = None,
        *,
        full_sync: bool = False,
    ) -> SyncBatchResult:
        """Poll one entity type for one location.

        ``since`` is accepted but not forwarded; the upstream listing has no
        usable delta filter. Failures leave ``next_sync_at`` untouched so the
        task stays due.
        """
        entity_type = parse_entity_type(entity_type)
        status_id = await self._begin(tenant_id, location_id, entity_type)
        started = time.monotonic()
        if since is not None:
            log.debug("Ignoring since=%s for %s/%s", since.isoformat(), location_id, entity_type.value)

        try:
            async with self.client_factory(tenant_id, location_id) as client:
                ctx = SyncContext(
                    db=self.db,
                    client=client,
                    tenant_id=tenant_id,
                    location_id=location_id,
                    full_sync=full_sync,
                )
                result = await run_fetcher(ctx, entity_type)

            now = utcnow()
            row = await self.db.get(SyncStatus, status_id)
            row.status = IDLE
            row.last_sync_at = now
            row.next_sync_at = now + interval_for(entity_type)
            row.records_synced = result.records_synced
            row.error_message = None
            await write_sync_log(
                self.db,
                location_id=location_id,
                entity_type=entity_type.value,
                entity_id=location_id,
                action="sync",
                source="poll",
                payload=result.to_dict(),
            )
            await self.db.commit()
        except Exception as exc:
            if isinstance(exc, BridgeError):
                kind, message = exc.kind, exc.message
            elif isinstance(exc, SQLAlchemyError):
                kind, message = ErrorKind.STORE, str(exc)
            else:
                kind, message = None, str(exc) or exc.__class__.__name__
            log.exception(
                "Sync failed for tenant %s location %s entity %s", tenant_id, location_id, entity_type.value
            )
            await self._fail(status_id, message)
            await write_sync_log(
                self.db,
                location_id=location_id,
                entity_type=entity_type.value,
                entity_id=location_id,
                action="sync",
                source="poll",
                payload={"success": False, "error": message, "kind": kind.value if kind else None},
            )
            await self.db.commit()
            return SyncBatchResult(
                entity_type=entity_type.value,
                location_id=location_id,
                success=False,
                error=message,
                error_kind=kind,
                duration_ms=int((time.monotonic() - started) * 1000),
            )

        result.duration_ms = int((time.monotonic() - started) * 1000)
        log.info(
            "Synced %d %s for location %s (%d failed)",
            result.records_synced, entity_type.value, location_id, result.records_failed,
        )
        return result

    async def _run(self, tenant_id, location_id, entity_type, since=None, full_sync=False) -> SyncBatchResult:
        try:
            return await self.sync_entity(tenant_id, location_id, entity_type, since, full_sync=full_sync)
        except ConflictError as exc:
            log.info("Skipping %s for %s: %s", entity_type, location_id, exc.message)
            return SyncBatchResult(
                entity_type=str(getattr(entity_type, "value", entity_type)),
                location_id=location_id,
                success=False,
                error=exc.message,
                error_kind=exc.kind,
            )

    async def run_due_tasks(
        self,
        limit: int | None = None,
        time_budget: float | None = None,
        *,
        tenant_id: uuid.UUID | None = None,
        location_id: str | None = None,
    ) -> PollSummary:
        """Process due tasks until ``limit`` is reached or the budget runs out."""
        limit = limit or settings.cron_max_tasks
        budget = time_budget if time_budget is not None else settings.cron_time_budget_seconds
        started = time.monotonic()
        summary = PollSummary()

        tasks = await self.get_pending_tasks(limit, tenant_id=tenant_id, location_id=location_id)
        for task in tasks:
            if time.monotonic() - started >= budget:
                log.info("Sync time budget of %.0fs spent; %d task(s) left", budget, len(tasks) - len(summary.results))
                break
            result = await self._run(
                task.tenant_id, task.location_id, task.entity_type, since=task.last_sync_at
            )
            summary.results.append(result)
            if result.success:
                summary.processed += 1
            elif result.error_kind == ErrorKind.CONFLICT:
                summary.skipped += 1
            else:
                summary.failed += 1

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        return summary

    async def sync_location(
        self,
        tenant_id: uuid.UUID,
        location_id: str,
        entity_types: Iterable[EntityType | str] | None = None,
        full_sync: bool = False,
    ) -> list[SyncBatchResult]:
        """Manual trigger: sync the given types (default all scheduled types) now."""
        types = [parse_entity_type(t) for t in entity_types] if entity_types else list(SCHEDULED_ENTITY_TYPES)
        return [
            await self._run(tenant_id, location_id, entity_type, full_sync=full_sync)
            for entity_type in types
        ]
