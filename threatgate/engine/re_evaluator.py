"""Scheduled re-evaluation batch for one profile.

Loads the profile once (configuration errors are fatal), enumerates the
entity roster, and evaluates every due entity in its own session with a
bounded fan-out. One entity failing leaves its previous ThreatState in force
and does not stop the batch. Entities not started before the wall-clock
budget runs out are deferred; completed entities carry a future
next_evaluation_at, so the next tick picks up only the remainder.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from threatgate.collectors import COLLECTORS
from threatgate.config import get_settings
from threatgate.engine.capacity import purge_expired_buckets
from threatgate.engine.evaluator import evaluate_entity
from threatgate.models import EventRecord, JobRun, ThreatState, TrackedEntity
from threatgate.profiles import Profile, ProfileValidationError, load_profile

logger = logging.getLogger(__name__)

JOB_TYPE = "re_evaluate"

_PROCESSED = "processed"
_FAILED = "failed"
_DEFERRED = "deferred"


async def list_entities(db: AsyncSession, profile: Profile, now: datetime) -> list[str]:
    """Active roster entities plus any entity with events in the lookback window."""
    since = now - profile.lookback
    streams = sorted({COLLECTORS[name].stream for name in profile.collectors})
    roster = await db.scalars(
        select(TrackedEntity.entity_id).where(
            TrackedEntity.entity_class == profile.entity_class,
            TrackedEntity.is_active.is_(True),
        )
    )
    active = await db.scalars(
        select(EventRecord.entity_id)
        .where(
            EventRecord.stream.in_(streams),
            EventRecord.occurred_at >= since,
            EventRecord.occurred_at <= now,
        )
        .distinct()
    )
    return sorted(set(roster.all()) | set(active.all()))


async def select_due(
    db: AsyncSession,
    profile: Profile,
    entity_ids: list[str],
    now: datetime,
    force: bool = False,
) -> list[str]:
    """Entities whose next_evaluation_at has passed (or that have no state), stalest first."""
    rows = await db.execute(
        select(ThreatState.entity_id, ThreatState.next_evaluation_at).where(
            ThreatState.entity_class == profile.entity_class
        )
    )
    next_at = {entity_id: due_at for entity_id, due_at in rows.all()}
    if force:
        due = list(entity_ids)
    else:
        due = [e for e in entity_ids if e not in next_at or next_at[e] <= now]
    # Never-evaluated entities first, then oldest due time, then id for a stable order.
    return sorted(due, key=lambda e: (e in next_at, next_at.get(e) or now, e))


async def run_re_evaluation(
    session_factory: async_sessionmaker[AsyncSession],
    profile_name: str,
    now: datetime | None = None,
    force: bool = False,
    *,
    profiles_dir: str | Path | None = None,
    concurrency: int | None = None,
    budget_seconds: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> dict:
    """Re-evaluate every due entity for a profile.

    Raises:
        ProfileValidationError, FileNotFoundError: the profile cannot be used.
            No JobRun is written; the scheduler should alert and retry.

    Returns:
        dict with status, job_run_id, profile, entity_class, processed,
        failed, deferred, skipped, error
    """
    settings = get_settings()
    try:
        profile = load_profile(profile_name, profiles_dir)
    except (ProfileValidationError, FileNotFoundError) as exc:
        logger.critical("Refusing to re-evaluate %s: %s", profile_name, exc)
        raise

    now = now or datetime.now(UTC)
    limit = concurrency if concurrency is not None else settings.re_eval_concurrency
    budget = budget_seconds if budget_seconds is not None else settings.re_eval_budget_seconds
    deadline = clock() + budget

    async with session_factory() as db:
        job = JobRun(
            job_type=JOB_TYPE,
            entity_class=profile.entity_class,
            status="running",
            profile_checksum=profile.config_checksum,
        )
        db.add(job)
        await db.commit()
        await db.refresh(job)
        job_id = job.id

        try:
            entity_ids = await list_entities(db, profile, now)
            due = await select_due(db, profile, entity_ids, now, force)
            await db.commit()
        except Exception as exc:
            logger.exception("Entity enumeration failed for profile %s", profile_name)
            await db.rollback()
            job.finished_at = datetime.now(UTC)
            job.status = "failed"
            job.error_message = str(exc)
            await db.commit()
            return {
                "status": "failed",
                "job_run_id": job_id,
                "profile": profile_name,
                "entity_class": profile.entity_class,
                "processed": 0,
                "failed": 0,
                "deferred": 0,
                "skipped": 0,
                "error": str(exc),
            }

        skipped = len(entity_ids) - len(due)
        logger.info(
            "Starting re-evaluation: profile=%s entities=%d due=%d concurrency=%d budget=%.0fs",
            profile_name,
            len(entity_ids),
            len(due),
            limit,
            budget,
        )

        semaphore = asyncio.Semaphore(max(limit, 1))
        errors: list[str] = []

        async def evaluate_one(entity_id: str) -> str:
            async with semaphore:
                if clock() >= deadline:
                    return _DEFERRED
                try:
                    async with session_factory() as entity_db:
                        await evaluate_entity(entity_db, profile, entity_id, now)
                    return _PROCESSED
                except Exception as exc:
                    logger.exception(
                        "Evaluation failed: class=%s entity=%s", profile.entity_class, entity_id
                    )
                    errors.append(f"{entity_id}: {exc}")
                    return _FAILED

        outcomes = await asyncio.gather(*(evaluate_one(e) for e in due))
        processed = outcomes.count(_PROCESSED)
        failed = outcomes.count(_FAILED)
        deferred = outcomes.count(_DEFERRED)

        await purge_expired_buckets(db, settings.capacity_retention_days, now)

        status = "partial" if deferred else "completed"
        job.finished_at = datetime.now(UTC)
        job.status = status
        job.entities_processed = processed
        job.entities_failed = failed
        job.entities_deferred = deferred
        job.error_message = "; ".join(errors[:10]) if errors else None
        await db.commit()

        logger.info(
            "Re-evaluation %s: profile=%s processed=%d failed=%d deferred=%d skipped=%d",
            status,
            profile_name,
            processed,
            failed,
            deferred,
            skipped,
        )
        return {
            "status": status,
            "job_run_id": job_id,
            "profile": profile_name,
            "entity_class": profile.entity_class,
            "processed": processed,
            "failed": failed,
            "deferred": deferred,
            "skipped": skipped,
            "error": "; ".join(errors) if errors else None,
        }
