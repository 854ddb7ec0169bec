"""Single-entity evaluation: collectors -> score -> state -> persisted ThreatState.

Writes an Incident exactly once per transition into the profile's worst
state and tracks the entity's attack pattern on every run. Re-running with
unchanged events yields the same score, state and signals (only timestamps
move).
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from threatgate.collectors import COLLECTORS, Window
from threatgate.engine.classifier import classify, is_escalation_to_worst, trip_wire_tripped
from threatgate.engine.holds import auto_hold
from threatgate.engine.patterns import track_attack_pattern
from threatgate.engine.scorer import build_explain_payload, score
from threatgate.engine.signals import Signal
from threatgate.models import Incident, ThreatState
from threatgate.profiles import Profile

logger = logging.getLogger(__name__)


async def collect_signals(
    db: AsyncSession, profile: Profile, entity_id: str, now: datetime
) -> list[Signal]:
    """Run the profile's collectors in declaration order over the lookback window."""
    window = Window.lookback(now, profile.lookback)
    signals: list[Signal] = []
    for name, params in profile.collectors.items():
        signal = await COLLECTORS[name].collect(db, entity_id, window, params)
        if signal is not None:
            signals.append(signal)
    return signals


async def evaluate_entity(
    db: AsyncSession,
    profile: Profile,
    entity_id: str,
    now: datetime | None = None,
) -> ThreatState:
    """Evaluate one entity and upsert its ThreatState. Commits.

    Collector and database errors propagate; the caller decides whether one
    failure aborts anything else.
    """
    now = now or datetime.now(UTC)
    policy = profile.classifier

    signals = await collect_signals(db, profile, entity_id, now)
    value = score(signals, profile.weights, profile.max_score)
    tripped = trip_wire_tripped(policy, signals)
    state = classify(value, signals, policy)
    explain = build_explain_payload(signals, value, state, tripped, profile.weights)

    threat = await db.scalar(
        select(ThreatState).where(
            ThreatState.entity_class == profile.entity_class,
            ThreatState.entity_id == entity_id,
        )
    )
    prior_state = threat.state if threat is not None else None
    if threat is None:
        threat = ThreatState(entity_class=profile.entity_class, entity_id=entity_id)
        db.add(threat)
    if prior_state != state:
        threat.previous_state = prior_state
    threat.score = value
    threat.state = state
    threat.signals = [s.to_dict() for s in signals]
    threat.explain = explain
    threat.profile_checksum = profile.config_checksum
    threat.last_evaluated_at = now
    threat.next_evaluation_at = now + profile.evaluation_interval

    await track_attack_pattern(
        db,
        profile.entity_class,
        entity_id,
        explain["pattern_signature"],
        intensity=len(signals),
        now=now,
    )

    if is_escalation_to_worst(policy, prior_state, state):
        db.add(
            Incident(
                entity_class=profile.entity_class,
                entity_id=entity_id,
                previous_state=prior_state,
                new_state=state,
                score=value,
                dominant_kind=explain["dominant_kind"],
                payload={
                    "signals": threat.signals,
                    "pattern_signature": explain["pattern_signature"],
                    "trip_wire_applied": tripped,
                },
                created_at=now,
            )
        )
        logger.warning(
            "Incident: class=%s entity=%s %s -> %s score=%.2f dominant=%s",
            profile.entity_class,
            entity_id,
            prior_state,
            state,
            value,
            explain["dominant_kind"],
        )
        if profile.auto_hold_on_worst:
            await auto_hold(
                db,
                profile.entity_class,
                entity_id,
                reason=f"Auto-hold: escalated to {state} (score {value:.2f})",
                now=now,
            )

    await db.commit()
    logger.info(
        "Evaluated class=%s entity=%s score=%.2f state=%s signals=%d",
        profile.entity_class,
        entity_id,
        value,
        state,
        len(signals),
    )
    return threat
