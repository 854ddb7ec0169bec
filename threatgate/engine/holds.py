"""Entity roster and manual holds.

A hold pauses every gated operation for an entity until an operator
releases it. Holds are set by operators (internal API, scripts) or by the
evaluator when a profile enables auto_hold_on_worst. An automatic hold never
replaces one an operator already placed.

A launch phase stages a rollout: per-operation ceiling overrides replace the
profile ceilings for one entity, and phase "pause" stops every operation.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from threatgate.engine.scoring_constants import LAUNCH_PHASES
from threatgate.models import AuditRecord, TrackedEntity
from threatgate.profiles import Profile

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

AUDIT_HOLD_SET = "hold_set"
AUDIT_HOLD_RELEASED = "hold_released"
AUDIT_AUTO_HOLD_SKIPPED = "auto_hold_skipped"
AUDIT_PHASE_SET = "phase_set"


async def ensure_tracked(db: AsyncSession, entity_class: str, entity_id: str) -> TrackedEntity:
    """Return the roster row for an entity, creating it (active) if missing. Does not commit."""
    tracked = await db.scalar(
        select(TrackedEntity).where(
            TrackedEntity.entity_class == entity_class,
            TrackedEntity.entity_id == entity_id,
        )
    )
    if tracked is None:
        tracked = TrackedEntity(entity_class=entity_class, entity_id=entity_id, is_active=True)
        db.add(tracked)
        await db.flush()
    return tracked


async def set_hold(
    db: AsyncSession,
    entity_class: str,
    entity_id: str,
    reason: str,
    actor: str = "operator",
    now: datetime | None = None,
) -> TrackedEntity:
    """Put an entity on hold. Does not commit."""
    if not reason or not reason.strip():
        raise ValueError("A hold must carry a reason")
    tracked = await ensure_tracked(db, entity_class, entity_id)
    tracked.hold_reason = reason
    tracked.held_by = actor
    tracked.held_at = now or datetime.now(UTC)
    db.add(
        AuditRecord(
            entity_class=entity_class,
            entity_id=entity_id,
            action=AUDIT_HOLD_SET,
            reason=reason,
            actor=actor,
        )
    )
    logger.warning("Hold set: class=%s entity=%s by=%s reason=%s", entity_class, entity_id, actor, reason)
    return tracked


async def auto_hold(
    db: AsyncSession,
    entity_class: str,
    entity_id: str,
    reason: str,
    now: datetime | None = None,
) -> TrackedEntity:
    """Hold on behalf of the system unless a hold is already in place. Does not commit.

    An existing hold keeps its reason and owner; the skipped auto-hold is
    recorded in the audit trail instead.
    """
    tracked = await ensure_tracked(db, entity_class, entity_id)
    if not tracked.hold_reason:
        return await set_hold(db, entity_class, entity_id, reason, actor=SYSTEM_ACTOR, now=now)
    db.add(
        AuditRecord(
            entity_class=entity_class,
            entity_id=entity_id,
            action=AUDIT_AUTO_HOLD_SKIPPED,
            reason=f"{reason}; already held by {tracked.held_by}",
            actor=SYSTEM_ACTOR,
        )
    )
    logger.info(
        "Auto-hold skipped, already held: class=%s entity=%s held_by=%s",
        entity_class,
        entity_id,
        tracked.held_by,
    )
    return tracked


async def release_hold(
    db: AsyncSession, entity_class: str, entity_id: str, actor: str = "operator"
) -> TrackedEntity | None:
    """Clear a hold. Returns None when the entity is not on the roster. Does not commit."""
    tracked = await db.scalar(
        select(TrackedEntity).where(
            TrackedEntity.entity_class == entity_class,
            TrackedEntity.entity_id == entity_id,
        )
    )
    if tracked is None:
        return None
    if tracked.hold_reason:
        db.add(
            AuditRecord(
                entity_class=entity_class,
                entity_id=entity_id,
                action=AUDIT_HOLD_RELEASED,
                reason=f"Released hold: {tracked.hold_reason}",
                actor=actor,
            )
        )
        logger.info("Hold released: class=%s entity=%s by=%s", entity_class, entity_id, actor)
    tracked.hold_reason = None
    tracked.held_by = None
    tracked.held_at = None
    return tracked


async def set_launch_phase(
    db: AsyncSession,
    profile: Profile,
    entity_id: str,
    phase: str | None,
    ceilings: dict[str, int] | None = None,
    actor: str = "operator",
    now: datetime | None = None,
) -> TrackedEntity:
    """Set (or clear, with phase None and no ceilings) an entity's launch phase. Does not commit.

    Raises:
        ValueError: unknown phase, an operation the profile does not gate, or
            a ceiling below 1.
    """
    if phase is not None and phase not in LAUNCH_PHASES:
        raise ValueError(f"Unknown launch phase: {phase!r} (expected one of {', '.join(LAUNCH_PHASES)})")
    ceilings = dict(ceilings or {})
    for operation, ceiling in ceilings.items():
        profile.operation(operation)
        if isinstance(ceiling, bool) or not isinstance(ceiling, int) or ceiling < 1:
            raise ValueError(f"Ceiling for {operation} must be a positive integer (got {ceiling!r})")

    tracked = await ensure_tracked(db, profile.entity_class, entity_id)
    tracked.phase = phase
    tracked.ceilings = ceilings or None
    tracked.phase_set_by = actor
    tracked.phase_set_at = now or datetime.now(UTC)
    overrides = ", ".join(f"{op}={value}" for op, value in sorted(ceilings.items())) or "none"
    db.add(
        AuditRecord(
            entity_class=profile.entity_class,
            entity_id=entity_id,
            action=AUDIT_PHASE_SET,
            reason=f"Launch phase {phase or 'cleared'}; ceiling overrides: {overrides}",
            actor=actor,
        )
    )
    logger.info(
        "Launch phase set: class=%s entity=%s phase=%s overrides=%s by=%s",
        profile.entity_class,
        entity_id,
        phase,
        overrides,
        actor,
    )
    return tracked
