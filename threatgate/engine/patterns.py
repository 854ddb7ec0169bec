"""Attack pattern tracking.

A pattern is the sorted set of signal kinds seen together in one evaluation
(see ``attack_pattern_signature``). While consecutive evaluations produce the
same signature the open pattern is extended; a different signature closes it
and opens a new one, and an evaluation with no signals closes it.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from threatgate.models import AttackPattern

logger = logging.getLogger(__name__)


async def open_patterns(db: AsyncSession, entity_class: str, entity_id: str) -> list[AttackPattern]:
    result = await db.scalars(
        select(AttackPattern)
        .where(
            AttackPattern.entity_class == entity_class,
            AttackPattern.entity_id == entity_id,
            AttackPattern.ended_at.is_(None),
        )
        .order_by(AttackPattern.started_at, AttackPattern.id)
    )
    return list(result)


async def track_attack_pattern(
    db: AsyncSession,
    entity_class: str,
    entity_id: str,
    signature: str | None,
    intensity: int,
    now: datetime,
) -> AttackPattern | None:
    """Open, extend or close the entity's attack pattern. Does not commit.

    Returns the open pattern after this evaluation, or None when the entity
    has no active signature.
    """
    current: AttackPattern | None = None
    for pattern in await open_patterns(db, entity_class, entity_id):
        if signature is not None and pattern.signature == signature and current is None:
            current = pattern
            continue
        pattern.ended_at = now
        logger.info(
            "Attack pattern closed: class=%s entity=%s signature=%s",
            entity_class,
            entity_id,
            pattern.signature,
        )

    if signature is None:
        return None

    if current is not None:
        current.intensity = max(current.intensity, intensity)
        current.last_seen_at = now
        return current

    current = AttackPattern(
        entity_class=entity_class,
        entity_id=entity_id,
        signature=signature,
        started_at=now,
        intensity=intensity,
        last_seen_at=now,
    )
    db.add(current)
    logger.warning(
        "Attack pattern opened: class=%s entity=%s signature=%s intensity=%d",
        entity_class,
        entity_id,
        signature,
        intensity,
    )
    return current
