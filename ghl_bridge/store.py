"""Row-level persistence helpers shared by the webhook and sync paths.

All writes are upserts keyed by the upstream primary id, so repeated or
concurrent delivery of the same update converges to the same row.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import NotFoundError, StoreError
from .models.base import Base
from .models.sync import SyncLogEntry

log = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


async def find_by_id(db: AsyncSession, model: type[ModelT], row_id: Any) -> ModelT | None:
    try:
        return await db.get(model, row_id)
    except SQLAlchemyError as exc:
        raise StoreError(f"Failed to load {model.__tablename__} {row_id}: {exc}") from exc


async def require(db: AsyncSession, model: type[ModelT], row_id: Any) -> ModelT:
    row = await find_by_id(db, model, row_id)
    if row is None:
        raise NotFoundError(
            f"{model.__tablename__} {row_id} not found",
            details={"entity_id": str(row_id)},
        )
    return row


async def upsert_row(db: AsyncSession, model: type[ModelT], values: dict[str, Any]) -> tuple[ModelT, bool]:
    """Insert or update the row identified by ``values["id"]``.

    ``extra`` is merged into the stored side-channel instead of replacing it.
    Returns ``(row, created)``.
    """
    row_id = values["id"]
    try:
        row = await db.get(model, row_id)
        created = row is None
        if row is None:
            row = model(**values)
            db.add(row)
        else:
            for key, value in values.items():
                if key == "id":
                    continue
                if key == "extra":
                    value = {**(row.extra or {}), **(value or {})}
                setattr(row, key, value)
        await db.flush()
    except SQLAlchemyError as exc:
        raise StoreError(f"Failed to upsert {model.__tablename__} {row_id}: {exc}") from exc
    return row, created


async def update_row(db: AsyncSession, model: type[ModelT], row_id: Any, values: dict[str, Any]) -> ModelT:
    """Apply ``values`` to an existing row; raise NotFoundError if it is absent."""
    row = await require(db, model, row_id)
    try:
        for key, value in values.items():
            setattr(row, key, value)
        await db.flush()
    except SQLAlchemyError as exc:
        raise StoreError(f"Failed to update {model.__tablename__} {row_id}: {exc}") from exc
    return row


async def delete_row(db: AsyncSession, model: type[ModelT], row_id: Any) -> bool:
    """Hard-delete a row. Returns False when nothing matched."""
    try:
        result = await db.execute(delete(model).where(model.id == row_id))
    except SQLAlchemyError as exc:
        raise StoreError(f"Failed to delete {model.__tablename__} {row_id}: {exc}") from exc
    return bool(result.rowcount)


async def write_sync_log(
    db: AsyncSession,
    *,
    location_id: str | None,
    entity_type: str,
    entity_id: str,
    action: str,
    source: str,
    payload: dict[str, Any] | None = None,
) -> SyncLogEntry:
    entry = SyncLogEntry(
        location_id=location_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        payload=payload or {},
        source=source,
    )
    db.add(entry)
    return entry
