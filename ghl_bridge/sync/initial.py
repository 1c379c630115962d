"""Initial (full) sync orchestrator for a newly connected location.

Steps run in a fixed order with fixed weights. A failed step is recorded
and the run moves on. Progress is published after every step to an
optional callback and to a persisted ``InitialSyncRun`` row whose
``heartbeat_at`` doubles as a lease: a run whose heartbeat is older than
``initial_sync_lease_seconds`` is treated as abandoned.
"""

from __future__ import annotations

import inspect
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import as_utc, utcnow
from ..config import settings
from ..entities import SCHEDULED_ENTITY_TYPES, EntityType, interval_for
from ..errors import BridgeError, ConflictError
from ..models import InitialSyncRun, SyncStatus
from ..store import write_sync_log
from .fetchers import SyncContext, run_fetcher
from .incremental import SYNCING, ClientFactory, sync_lease_expired, token_client_factory

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncStep:
    name: str
    label: str
    weight: int
    entity_type: EntityType


SYNC_STEPS: tuple[SyncStep, ...] = (
    SyncStep("location", "Location Details", 5, EntityType.LOCATIONS),
    SyncStep("pipelines", "Pipelines & Stages", 5, EntityType.PIPELINES),
    SyncStep("calendars", "Calendars", 5, EntityType.CALENDARS),
    SyncStep("users", "Users", 5, EntityType.USERS),
    SyncStep("contacts", "Contacts", 40, EntityType.CONTACTS),
    SyncStep("opportunities", "Opportunities", 25, EntityType.OPPORTUNITIES),
    SyncStep("appointments", "Appointments", 10, EntityType.APPOINTMENTS),
    SyncStep("invoices", "Invoices", 5, EntityType.INVOICES),
)


@dataclass
class StepProgress:
    name: str
    status: str = "pending"  # pending | in_progress | completed | failed
    records_synced: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "recordsSynced": self.records_synced,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepProgress":
        return cls(
            name=data["name"],
            status=data.get("status", "pending"),
            records_synced=data.get("recordsSynced", 0),
            error=data.get("error"),
        )


@dataclass
class InitialSyncProgress:
    tenant_id: uuid.UUID
    location_id: str
    status: str = "in_progress"  # in_progress | completed | partial | failed | abandoned
    current_step: str | None = None
    percent_complete: int = 0
    steps: list[StepProgress] = field(default_factory=lambda: [StepProgress(s.name) for s in SYNC_STEPS])
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    error: str | None = None

    def step(self, name: str) -> StepProgress:
        return next(s for s in self.steps if s.name == name)

    def recompute_percent(self) -> None:
        weights = {s.name: s.weight for s in SYNC_STEPS}
        self.percent_complete = sum(weights.get(s.name, 0) for s in self.steps if s.status == "completed")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenantId": str(self.tenant_id),
            "locationId": self.location_id,
            "status": self.status,
            "currentStep": self.current_step,
            "percentComplete": self.percent_complete,
            "steps": [s.to_dict() for s in self.steps],
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }


ProgressCallback = Callable[[InitialSyncProgress], Any]


@dataclass(frozen=True)
class ClaimedSync:
    progress: InitialSyncProgress
    run_id: uuid.UUID


class SyncRunRegistry:
    """In-process registry of initial syncs currently running.

    ``claim`` does no I/O, so two coroutines in the same event loop cannot
    both pass it for the same key.
    """

    def __init__(self) -> None:
        self._runs: dict[tuple[str, str], InitialSyncProgress] = {}

    @staticmethod
    def _key(tenant_id: uuid.UUID | str, location_id: str) -> tuple[str, str]:
        return str(tenant_id), location_id

    def claim(self, progress: InitialSyncProgress) -> None:
        key = self._key(progress.tenant_id, progress.location_id)
        if key in self._runs:
            raise ConflictError(
                f"Initial sync already running for location {progress.location_id}",
                details={"locationId": progress.location_id},
            )
        self._runs[key] = progress

    def release(self, tenant_id: uuid.UUID | str, location_id: str) -> None:
        self._runs.pop(self._key(tenant_id, location_id), None)

    def get(self, tenant_id: uuid.UUID | str, location_id: str) -> InitialSyncProgress | None:
        return self._runs.get(self._key(tenant_id, location_id))

    def is_running(self, tenant_id: uuid.UUID | str, location_id: str) -> bool:
        return self._key(tenant_id, location_id) in self._runs


default_registry = SyncRunRegistry()


class InitialSyncService:
    def __init__(
        self,
        db: AsyncSession,
        client_factory: ClientFactory | None = None,
        registry: SyncRunRegistry | None = None,
        *,
        lease_seconds: int | None = None,
    ):
        self.db = db
        self.client_factory = client_factory or token_client_factory(db)
        self.registry = registry if registry is not None else default_registry
        self.lease = timedelta(seconds=lease_seconds or settings.initial_sync_lease_seconds)

    def _lease_alive(self, run: InitialSyncRun, now: datetime) -> bool:
        return as_utc(run.heartbeat_at) > now - self.lease

    async def _latest_run(self, tenant_id: uuid.UUID, location_id: str) -> InitialSyncRun | None:
        stmt = (
            select(InitialSyncRun)
            .where(InitialSyncRun.tenant_id == tenant_id, InitialSyncRun.location_id == location_id)
            .order_by(InitialSyncRun.started_at.desc())
            .limit(1)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _check_persisted_lease(self, tenant_id: uuid.UUID, location_id: str) -> None:
        """Reject if another process holds a live lease; close out abandoned runs."""
        now = utcnow()
        stmt = select(InitialSyncRun).where(
            InitialSyncRun.tenant_id == tenant_id,
            InitialSyncRun.location_id == location_id,
            InitialSyncRun.status == "in_progress",
        )
        for run in (await self.db.execute(stmt)).scalars().all():
            if self._lease_alive(run, now):
                raise ConflictError(
                    f"Initial sync already running for location {location_id}",
                    details={"locationId": location_id, "heartbeatAt": as_utc(run.heartbeat_at).isoformat()},
                )
            log.warning("Marking abandoned initial sync %s for location %s as failed", run.id, location_id)
            run.status = "failed"
            run.error = "Abandoned: heartbeat lease expired"
            run.completed_at = now

    async def _publish(
        self,
        run_id: uuid.UUID,
        progress: InitialSyncProgress,
        on_progress: ProgressCallback | None,
    ) -> None:
        await self.db.execute(
            update(InitialSyncRun)
            .where(InitialSyncRun.id == run_id)
            .values(
                status=progress.status,
                current_step=progress.current_step,
                percent_complete=progress.percent_complete,
                steps=[s.to_dict() for s in progress.steps],
                heartbeat_at=utcnow(),
                completed_at=progress.completed_at,
                error=progress.error,
            )
        )
        await self.db.commit()
        if on_progress is not None:
            outcome = on_progress(progress)
            if inspect.isawaitable(outcome):
                await outcome

    async def claim(self, tenant_id: uuid.UUID, location_id: str) -> ClaimedSync:
        """Take the in-process slot and the persisted lease for a location.

        Raises ConflictError if a run is in flight. The caller must hand the
        claim to :meth:`execute`, which releases it.
        """
        progress = InitialSyncProgress(tenant_id=tenant_id, location_id=location_id)
        self.registry.claim(progress)
        try:
            await self._check_persisted_lease(tenant_id, location_id)
            run = InitialSyncRun(
                tenant_id=tenant_id,
                location_id=location_id,
                status="in_progress",
                current_step=SYNC_STEPS[0].name,
                steps=[s.to_dict() for s in progress.steps],
                started_at=progress.started_at,
                heartbeat_at=utcnow(),
            )
            self.db.add(run)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            self.registry.release(tenant_id, location_id)
            raise
        log.info("Initial sync claimed for tenant %s location %s", tenant_id, location_id)
        return ClaimedSync(progress=progress, run_id=run.id)

    async def start(
        self,
        tenant_id: uuid.UUID,
        location_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> InitialSyncProgress:
        """Run every step for the location; raises ConflictError if one is in flight."""
        claimed = await self.claim(tenant_id, location_id)
        return await self.execute(claimed, on_progress)

    async def execute(
        self,
        claimed: ClaimedSync,
        on_progress: ProgressCallback | None = None,
    ) -> InitialSyncProgress:
        """Run the steps of a claimed sync and release the claim."""
        progress, run_id = claimed.progress, claimed.run_id
        tenant_id, location_id = progress.tenant_id, progress.location_id
        try:
            try:
                await self._run_steps(run_id, progress, on_progress)
                await self._seed_sync_status(tenant_id, location_id)
                failed = [s.name for s in progress.steps if s.status == "failed"]
                if len(failed) == len(progress.steps):
                    progress.status = "failed"
                else:
                    # A finished run reads 100%; failed steps show in their own status
                    progress.status = "partial" if failed else "completed"
                    progress.percent_complete = 100
                if failed:
                    progress.error = f"Failed steps: {', '.join(failed)}"
            except Exception as exc:
                await self.db.rollback()
                log.exception("Initial sync aborted for location %s", location_id)
                progress.status = "failed"
                progress.error = exc.message if isinstance(exc, BridgeError) else str(exc)

            progress.completed_at = utcnow()
            await self._publish(run_id, progress, None)
            await write_sync_log(
                self.db,
                location_id=location_id,
                entity_type="initial_sync",
                entity_id=location_id,
                action="sync",
                source="initial_sync",
                payload=progress.to_dict(),
            )
            await self.db.commit()
            log.info(
                "Initial sync for location %s finished: %s (%d%%)",
                location_id, progress.status, progress.percent_complete,
            )
            return progress
        finally:
            self.registry.release(tenant_id, location_id)

    async def _run_steps(
        self,
        run_id: uuid.UUID,
        progress: InitialSyncProgress,
        on_progress: ProgressCallback | None,
    ) -> None:
        async with self.client_factory(progress.tenant_id, progress.location_id) as client:
            ctx = SyncContext(
                db=self.db,
                client=client,
                tenant_id=progress.tenant_id,
                location_id=progress.location_id,
                full_sync=True,
            )
            for step in SYNC_STEPS:
                step_progress = progress.step(step.name)
                progress.current_step = step.name
                step_progress.status = "in_progress"
                try:
                    result = await run_fetcher(ctx, step.entity_type)
                    await self.db.commit()
                except Exception as exc:
                    await self.db.rollback()
                    message = exc.message if isinstance(exc, BridgeError) else str(exc)
                    log.warning("Initial sync step %s failed for %s: %s", step.name, progress.location_id, message)
                    step_progress.status = "failed"
                    step_progress.error = message
                else:
                    step_progress.status = "completed"
                    step_progress.records_synced = result.records_synced
                progress.recompute_percent()
                await self._publish(run_id, progress, on_progress)

    async def _seed_sync_status(self, tenant_id: uuid.UUID, location_id: str) -> None:
        """One SyncStatus row per scheduled entity type, due after its interval."""
        now = utcnow()
        for entity_type in SCHEDULED_ENTITY_TYPES:
            stmt = select(SyncStatus).where(
                SyncStatus.tenant_id == tenant_id,
                SyncStatus.location_id == location_id,
                SyncStatus.entity_type == entity_type.value,
            )
            row = (await self.db.execute(stmt)).scalar_one_or_none()
            if row is None:
                row = SyncStatus(tenant_id=tenant_id, location_id=location_id, entity_type=entity_type.value)
                self.db.add(row)
            elif row.status == SYNCING and not sync_lease_expired(row, now):
                continue
            row.status = "idle"
            row.last_sync_at = now
            row.next_sync_at = now + interval_for(entity_type)
            row.records_synced = 0
            row.error_message = None
        await self.db.commit()

    async def get_progress(self, tenant_id: uuid.UUID, location_id: str) -> InitialSyncProgress | None:
        """Live progress from this process, else the last persisted run."""
        live = self.registry.get(tenant_id, location_id)
        if live is not None:
            return live
        run = await self._latest_run(tenant_id, location_id)
        if run is None:
            return None
        status = run.status
        if status == "in_progress" and not self._lease_alive(run, utcnow()):
            status = "abandoned"
        return InitialSyncProgress(
            tenant_id=run.tenant_id,
            location_id=run.location_id,
            status=status,
            current_step=run.current_step,
            percent_complete=run.percent_complete,
            steps=[StepProgress.from_dict(s) for s in run.steps or []],
            started_at=as_utc(run.started_at),
            completed_at=as_utc(run.completed_at),
            error=run.error,
        )


async def run_initial_sync(
    claimed: ClaimedSync,
    session_factory: Callable[[], AsyncSession] | None = None,
) -> InitialSyncProgress:
    """Background entry point: runs a claimed sync on its own session."""
    if session_factory is None:
        from ..database import async_session_factory as session_factory
    async with session_factory() as db:
        return await InitialSyncService(db).execute(claimed)
