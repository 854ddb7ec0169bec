"""Gate/action dispatcher: allow, throttle or deny an operation for one entity.

Hot path: reads the stored ThreatState and TrackedEntity hold, never scores.
Order of checks:
  1. unknown operation            -> ValueError (caller bug)
  2. manual hold                  -> deny
  3. launch phase "pause"         -> deny
  4. state in profile deny_states -> deny, citing the dominant signal kind
  5. state in profile throttle    -> ceiling (entity override first) reduced
                                     by the throttle factor
  6. capacity bucket at ceiling   -> deny, citing the rate limit
Every denial writes an AuditRecord. Store read failures follow the
operation's failure_mode. Incidents are written by the evaluator, not here.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from threatgate.engine.capacity import CapacityKey, bucket_for, try_increment
from threatgate.engine.scorer import dominant_signal
from threatgate.engine.scoring_constants import MIN_THROTTLED_CEILING, PHASE_PAUSED
from threatgate.engine.signals import signals_from_json
from threatgate.models import AuditRecord, ThreatState, TrackedEntity
from threatgate.profiles import OperationPolicy, Profile

logger = logging.getLogger(__name__)

AUDIT_GATE_DENIED = "gate_denied"


@dataclass
class GateDecision:
    """Verdict for one check. A denial always carries a non-empty reason."""

    allowed: bool
    reason: str
    operation: str
    reason_code: str = "allowed"
    state: str | None = None
    throttle_factor: float | None = None
    ceiling: int | None = None
    count: int | None = None

    def __post_init__(self) -> None:
        if not self.allowed and not (self.reason or "").strip():
            raise ValueError("A denied GateDecision must carry a reason")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def effective_ceiling(ceiling: int, throttle_factor: float | None) -> int:
    """floor(ceiling * factor), never below MIN_THROTTLED_CEILING."""
    if throttle_factor is None:
        return ceiling
    return max(MIN_THROTTLED_CEILING, math.floor(ceiling * throttle_factor))


async def _read_state(
    db: AsyncSession, profile: Profile, entity_id: str
) -> tuple[ThreatState | None, TrackedEntity | None]:
    threat = await db.scalar(
        select(ThreatState).where(
            ThreatState.entity_class == profile.entity_class,
            ThreatState.entity_id == entity_id,
        )
    )
    tracked = await db.scalar(
        select(TrackedEntity).where(
            TrackedEntity.entity_class == profile.entity_class,
            TrackedEntity.entity_id == entity_id,
        )
    )
    return threat, tracked


def base_ceiling(policy: OperationPolicy, tracked: TrackedEntity | None) -> int:
    """Entity ceiling override for the operation when set, else the profile ceiling."""
    if tracked is not None and tracked.ceilings:
        override = tracked.ceilings.get(policy.name)
        if override is not None:
            return int(override)
    return policy.ceiling


def _dominant_kind(profile: Profile, threat: ThreatState) -> str | None:
    explain = threat.explain or {}
    if explain.get("dominant_kind"):
        return explain["dominant_kind"]
    sig = dominant_signal(signals_from_json(threat.signals), profile.weights)
    return sig.kind if sig else None


async def _deny(
    db: AsyncSession,
    profile: Profile,
    entity_id: str,
    decision: GateDecision,
    score: float | None,
) -> GateDecision:
    db.add(
        AuditRecord(
            entity_class=profile.entity_class,
            entity_id=entity_id,
            action=AUDIT_GATE_DENIED,
            operation=decision.operation,
            reason=decision.reason,
            state=decision.state,
            score=score,
        )
    )
    await db.commit()
    logger.warning(
        "Gate denied: class=%s entity=%s op=%s code=%s reason=%s",
        profile.entity_class,
        entity_id,
        decision.operation,
        decision.reason_code,
        decision.reason,
    )
    return decision


async def _on_store_failure(
    db: AsyncSession,
    profile: Profile,
    entity_id: str,
    policy: OperationPolicy,
    exc: Exception,
) -> GateDecision:
    await db.rollback()
    if not policy.fails_closed:
        logger.warning(
            "Gate store read failed, failing open: class=%s entity=%s op=%s error=%s",
            profile.entity_class,
            entity_id,
            policy.name,
            exc,
        )
        return GateDecision(
            allowed=True,
            reason="State store unavailable; operation fails open",
            operation=policy.name,
            reason_code="fail_open",
        )
    decision = GateDecision(
        allowed=False,
        reason="State store unavailable; operation fails closed",
        operation=policy.name,
        reason_code="fail_closed",
    )
    try:
        return await _deny(db, profile, entity_id, decision, None)
    except SQLAlchemyError:
        logger.exception(
            "Audit write failed for fail-closed denial: class=%s entity=%s op=%s",
            profile.entity_class,
            entity_id,
            policy.name,
        )
        return decision


async def check(
    db: AsyncSession,
    profile: Profile,
    entity_id: str,
    operation: str,
    now: datetime | None = None,
) -> GateDecision:
    """Decide whether ``operation`` may proceed for ``entity_id`` right now.

    Raises:
        ValueError: the profile does not gate ``operation``.
    """
    policy = profile.operation(operation)
    now = now or datetime.now(UTC)

    try:
        threat, tracked = await _read_state(db, profile, entity_id)
    except SQLAlchemyError as exc:
        return await _on_store_failure(db, profile, entity_id, policy, exc)

    # No ThreatState yet: a new entity, which is the no-risk state by definition.
    state = threat.state if threat is not None else profile.classifier.best_state
    score = threat.score if threat is not None else None

    if tracked is not None and tracked.hold_reason:
        return await _deny(
            db,
            profile,
            entity_id,
            GateDecision(
                allowed=False,
                reason=f"Manual hold: {tracked.hold_reason}",
                operation=operation,
                reason_code="manual_hold",
                state=state,
            ),
            score,
        )

    if tracked is not None and tracked.phase == PHASE_PAUSED:
        return await _deny(
            db,
            profile,
            entity_id,
            GateDecision(
                allowed=False,
                reason=f"Launch phase paused for {profile.entity_class} {entity_id}",
                operation=operation,
                reason_code="phase_paused",
                state=state,
            ),
            score,
        )

    if threat is not None and state in profile.deny_states:
        dominant = _dominant_kind(profile, threat) or "unknown"
        return await _deny(
            db,
            profile,
            entity_id,
            GateDecision(
                allowed=False,
                reason=f"{profile.entity_class} is {state} (score {threat.score:.2f}); dominant signal: {dominant}",
                operation=operation,
                reason_code="threat_state",
                state=state,
            ),
            score,
        )

    factor = profile.throttle.get(state)
    ceiling = effective_ceiling(base_ceiling(policy, tracked), factor)
    key = CapacityKey(
        entity_class=profile.entity_class,
        entity_id=entity_id,
        operation=operation,
        bucket=bucket_for(policy.window, now),
    )
    try:
        allowed, count = await try_increment(db, key, ceiling, now)
    except SQLAlchemyError as exc:
        return await _on_store_failure(db, profile, entity_id, policy, exc)

    if not allowed:
        return await _deny(
            db,
            profile,
            entity_id,
            GateDecision(
                allowed=False,
                reason=f"Rate limit reached: {count}/{ceiling} {operation} per {policy.window} ({key.bucket})",
                operation=operation,
                reason_code="rate_limited",
                state=state,
                throttle_factor=factor,
                ceiling=ceiling,
                count=count,
            ),
            score,
        )

    await db.commit()
    if factor is not None:
        reason = f"Allowed with throttled ceiling {ceiling} ({state})"
        code = "throttled"
    else:
        reason = "Allowed"
        code = "allowed"
    return GateDecision(
        allowed=True,
        reason=reason,
        operation=operation,
        reason_code=code,
        state=state,
        throttle_factor=factor,
        ceiling=ceiling,
        count=count,
    )
