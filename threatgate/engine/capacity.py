"""Capacity counters: atomic per-bucket rate limits.

One row per (entity_class, entity_id, operation, bucket). The bucket key is
derived from the operation window, so rollover simply starts a new row.

Increment is two statements: ensure the row exists (INSERT ... ON CONFLICT DO
NOTHING), then one conditional UPDATE ``count = count + 1 WHERE count <
ceiling``. The database applies the predicate and the increment together, so
N concurrent callers can never push the count past the ceiling.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from threatgate.models import CapacityCounter

logger = logging.getLogger(__name__)

_BUCKET_FORMATS: dict[str, str] = {
    "hour": "%Y-%m-%dT%H",
    "day": "%Y-%m-%d",
}

_KEY_COLUMNS = ("entity_class", "entity_id", "operation", "bucket")


@dataclass(frozen=True)
class CapacityKey:
    entity_class: str
    entity_id: str
    operation: str
    bucket: str


def bucket_for(window: str, now: datetime) -> str:
    """Bucket key for a window: 'hour' -> 2026-03-01T14, 'day' -> 2026-03-01 (UTC)."""
    try:
        fmt = _BUCKET_FORMATS[window]
    except KeyError:
        raise ValueError(f"Unknown capacity window: {window!r}") from None
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(UTC).strftime(fmt)


def _key_filter(key: CapacityKey):
    return (
        CapacityCounter.entity_class == key.entity_class,
        CapacityCounter.entity_id == key.entity_id,
        CapacityCounter.operation == key.operation,
        CapacityCounter.bucket == key.bucket,
    )


async def _ensure_row(db: AsyncSession, key: CapacityKey, ceiling: int, now: datetime) -> None:
    values = {
        "entity_class": key.entity_class,
        "entity_id": key.entity_id,
        "operation": key.operation,
        "bucket": key.bucket,
        "count": 0,
        "ceiling_applied": ceiling,
        "created_at": now,
    }
    dialect = (await db.connection()).dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        try:
            async with db.begin_nested():
                db.add(CapacityCounter(**values))
        except IntegrityError:
            pass  # row already exists
        return
    stmt = insert(CapacityCounter).values(**values).on_conflict_do_nothing(
        index_elements=list(_KEY_COLUMNS)
    )
    await db.execute(stmt)


async def try_increment(
    db: AsyncSession,
    key: CapacityKey,
    ceiling: int,
    now: datetime | None = None,
) -> tuple[bool, int]:
    """Atomically increment the bucket if it is below ceiling.

    Does not commit; the caller commits together with any audit row.

    Returns:
        (allowed, count) where count is the bucket value after the attempt.
    """
    if ceiling < 1:
        raise ValueError("ceiling must be >= 1")
    now = now or datetime.now(UTC)
    await _ensure_row(db, key, ceiling, now)
    result = await db.execute(
        update(CapacityCounter)
        .where(*_key_filter(key), CapacityCounter.count < ceiling)
        .values(
            count=CapacityCounter.count + 1,
            ceiling_applied=ceiling,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    allowed = result.rowcount == 1
    count = await db.scalar(select(CapacityCounter.count).where(*_key_filter(key)))
    return allowed, int(count or 0)


async def current_count(db: AsyncSession, key: CapacityKey) -> int:
    """Bucket value without incrementing (0 if the bucket has no row yet)."""
    count = await db.scalar(select(CapacityCounter.count).where(*_key_filter(key)))
    return int(count or 0)


async def purge_expired_buckets(
    db: AsyncSession, retention_days: int, now: datetime | None = None
) -> int:
    """Delete counter rows created before now - retention_days. Returns rows deleted."""
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(days=retention_days)
    result = await db.execute(
        delete(CapacityCounter)
        .where(CapacityCounter.created_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    deleted = result.rowcount or 0
    if deleted:
        logger.info("Purged %d capacity buckets older than %s", deleted, cutoff.isoformat())
    return deleted
