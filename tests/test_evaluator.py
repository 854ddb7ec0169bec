"""Tests for single-entity evaluation: persistence, incidents, idempotence, auto-hold."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from tests.factories import make_event
from tests.test_constants import NOW
from threatgate.engine.evaluator import collect_signals, evaluate_entity
from threatgate.engine.holds import set_hold
from threatgate.models import AttackPattern, AuditRecord, Incident, ThreatState, TrackedEntity
from threatgate.profiles import load_profile


def _brigade(entity_id: str, start, n: int = 15):
    return [
        make_event(
            "report",
            entity_id,
            start - timedelta(minutes=i),
            {"text": "This store sells counterfeit goods", "category": "fraud", "account_age_days": 2},
        )
        for i in range(n)
    ]


async def _incidents(db, entity_id: str) -> list[Incident]:
    return list((await db.scalars(select(Incident).where(Incident.entity_id == entity_id))).all())


async def _patterns(db, entity_id: str) -> list[AttackPattern]:
    stmt = select(AttackPattern).where(AttackPattern.entity_id == entity_id).order_by(AttackPattern.id)
    return list((await db.scalars(stmt)).all())


@pytest.mark.asyncio
class TestEvaluateEntity:
    async def test_no_events_is_safe(self, db, profile) -> None:
        threat = await evaluate_entity(db, profile, "store-1", NOW)
        assert threat.state == "SAFE"
        assert threat.score == 0.0
        assert threat.signals == []
        assert threat.previous_state is None
        assert threat.next_evaluation_at == NOW + timedelta(minutes=15)
        assert threat.profile_checksum == profile.config_checksum
        assert await _incidents(db, "store-1") == []

    async def test_escalation_writes_one_incident(self, db, profile) -> None:
        db.add_all(_brigade("store-1", NOW))
        await db.commit()

        threat = await evaluate_entity(db, profile, "store-1", NOW)
        assert threat.state == "CRITICAL"
        assert threat.explain["dominant_kind"] == "fake_reports"
        incidents = await _incidents(db, "store-1")
        assert len(incidents) == 1
        incident = incidents[0]
        assert incident.previous_state is None
        assert incident.new_state == "CRITICAL"
        assert incident.dominant_kind == "fake_reports"
        assert incident.payload["trip_wire_applied"] is True

        # Still CRITICAL on later runs: no new incident.
        for minutes in (15, 30):
            await evaluate_entity(db, profile, "store-1", NOW + timedelta(minutes=minutes))
        assert len(await _incidents(db, "store-1")) == 1

    async def test_re_escalation_after_recovery(self, db, profile) -> None:
        db.add_all(_brigade("store-1", NOW))
        await db.commit()
        await evaluate_entity(db, profile, "store-1", NOW)

        # Brigade ages out of the 24h lookback.
        recovered = await evaluate_entity(db, profile, "store-1", NOW + timedelta(days=2))
        assert recovered.state == "SAFE"
        assert recovered.previous_state == "CRITICAL"

        later = NOW + timedelta(days=3)
        db.add_all(_brigade("store-1", later))
        await db.commit()
        await evaluate_entity(db, profile, "store-1", later)
        assert len(await _incidents(db, "store-1")) == 2

    async def test_idempotent(self, db, profile) -> None:
        db.add_all(_brigade("store-1", NOW))
        await db.commit()

        first = await evaluate_entity(db, profile, "store-1", NOW)
        snapshot = (first.score, first.state, first.previous_state, list(first.signals))
        second = await evaluate_entity(db, profile, "store-1", NOW)

        assert (second.score, second.state, second.previous_state, second.signals) == snapshot
        rows = await db.scalar(select(func.count()).select_from(ThreatState))
        assert rows == 1

    async def test_collect_signals_uses_lookback(self, db, profile) -> None:
        db.add_all(_brigade("store-1", NOW - timedelta(hours=30)))
        await db.commit()
        assert await collect_signals(db, profile, "store-1", NOW) == []

    async def test_country_escalation_auto_holds(self, db) -> None:
        country = load_profile("country_rollout")
        db.add_all(
            make_event("safety_ticket", "BR", NOW - timedelta(minutes=i), {"category": "harassment"})
            for i in range(60)
        )
        await db.commit()

        threat = await evaluate_entity(db, country, "BR", NOW)

        assert threat.state == "CRITICAL"
        tracked = await db.scalar(select(TrackedEntity).where(TrackedEntity.entity_id == "BR"))
        assert tracked is not None
        assert tracked.held_by == "system"
        assert tracked.hold_reason.startswith("Auto-hold: escalated to CRITICAL")
        audits = (await db.scalars(select(AuditRecord.action).where(AuditRecord.entity_id == "BR"))).all()
        assert audits == ["hold_set"]

    async def test_auto_hold_keeps_operator_hold(self, db) -> None:
        country = load_profile("country_rollout")
        await set_hold(db, "country", "BR", "legal review pending", actor="alice", now=NOW)
        await db.commit()
        db.add_all(
            make_event("safety_ticket", "BR", NOW - timedelta(minutes=i), {"category": "harassment"})
            for i in range(60)
        )
        await db.commit()

        threat = await evaluate_entity(db, country, "BR", NOW)

        assert threat.state == "CRITICAL"
        tracked = await db.scalar(select(TrackedEntity).where(TrackedEntity.entity_id == "BR"))
        assert tracked.held_by == "alice"
        assert tracked.hold_reason == "legal review pending"
        stmt = select(AuditRecord).where(AuditRecord.entity_id == "BR").order_by(AuditRecord.id)
        audits = (await db.scalars(stmt)).all()
        assert [a.action for a in audits] == ["hold_set", "auto_hold_skipped"]
        assert audits[-1].actor == "system"
        assert "already held by alice" in audits[-1].reason

    async def test_store_profile_does_not_auto_hold(self, db, profile) -> None:
        db.add_all(_brigade("store-1", NOW))
        await db.commit()
        await evaluate_entity(db, profile, "store-1", NOW)
        assert await db.scalar(select(TrackedEntity)) is None


@pytest.mark.asyncio
class TestAttackPatterns:
    async def test_no_signals_opens_nothing(self, db, profile) -> None:
        await evaluate_entity(db, profile, "store-1", NOW)
        assert await _patterns(db, "store-1") == []

    async def test_signature_opens_pattern(self, db, profile) -> None:
        db.add_all(_brigade("store-1", NOW))
        await db.commit()

        threat = await evaluate_entity(db, profile, "store-1", NOW)

        [pattern] = await _patterns(db, "store-1")
        assert pattern.signature == threat.explain["pattern_signature"]
        assert pattern.started_at == NOW
        assert pattern.ended_at is None
        assert pattern.intensity == len(threat.signals)

    async def test_same_signature_extends_open_pattern(self, db, profile) -> None:
        db.add_all(_brigade("store-1", NOW))
        await db.commit()

        for minutes in (0, 15, 30):
            await evaluate_entity(db, profile, "store-1", NOW + timedelta(minutes=minutes))

        [pattern] = await _patterns(db, "store-1")
        assert pattern.started_at == NOW
        assert pattern.last_seen_at == NOW + timedelta(minutes=30)
        assert pattern.ended_at is None

    async def test_pattern_closes_when_signals_clear(self, db, profile) -> None:
        db.add_all(_brigade("store-1", NOW))
        await db.commit()
        await evaluate_entity(db, profile, "store-1", NOW)

        later = NOW + timedelta(days=2)
        await evaluate_entity(db, profile, "store-1", later)

        [pattern] = await _patterns(db, "store-1")
        assert pattern.ended_at == later

    async def test_returning_signature_opens_new_pattern(self, db, profile) -> None:
        db.add_all(_brigade("store-1", NOW))
        await db.commit()
        await evaluate_entity(db, profile, "store-1", NOW)
        await evaluate_entity(db, profile, "store-1", NOW + timedelta(days=2))

        later = NOW + timedelta(days=3)
        db.add_all(_brigade("store-1", later))
        await db.commit()
        await evaluate_entity(db, profile, "store-1", later)

        first, second = await _patterns(db, "store-1")
        assert first.ended_at == NOW + timedelta(days=2)
        assert second.started_at == later
        assert second.ended_at is None
