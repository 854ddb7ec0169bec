"""Gate check, threat-state, incident and attack-pattern read endpoints (token-authenticated)."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from threatgate.api.deps import require_internal_token, resolve_profile
from threatgate.db.session import get_db
from threatgate.engine.gate import check
from threatgate.models import AttackPattern, Incident, ThreatState
from threatgate.schemas.gate import (
    AttackPatternResponse,
    GateCheckRequest,
    GateDecisionResponse,
    IncidentResponse,
    ThreatStateResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_internal_token)])


@router.post("/gate/check", response_model=GateDecisionResponse)
async def gate_check(
    body: GateCheckRequest,
    db: AsyncSession = Depends(get_db),
):
    """Is this operation allowed for this entity right now?"""
    profile = resolve_profile(body.profile)
    try:
        decision = await check(db, profile, body.entity_id, body.operation)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None
    return GateDecisionResponse.model_validate(decision)


@router.get("/threat_state/{profile}/{entity_id}", response_model=ThreatStateResponse)
async def get_threat_state(
    profile: str,
    entity_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Stored ThreatState; 404 if the entity has never been evaluated."""
    loaded = resolve_profile(profile)
    threat = await db.scalar(
        select(ThreatState).where(
            ThreatState.entity_class == loaded.entity_class,
            ThreatState.entity_id == entity_id,
        )
    )
    if threat is None:
        raise HTTPException(status_code=404, detail="No threat state for entity")
    return ThreatStateResponse.model_validate(threat)


@router.get("/incidents/{profile}/{entity_id}", response_model=list[IncidentResponse])
async def list_incidents(
    profile: str,
    entity_id: str,
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Most recent incidents for an entity, newest first."""
    loaded = resolve_profile(profile)
    result = await db.scalars(
        select(Incident)
        .where(Incident.entity_class == loaded.entity_class, Incident.entity_id == entity_id)
        .order_by(Incident.created_at.desc(), Incident.id.desc())
        .limit(limit)
    )
    return [IncidentResponse.model_validate(incident) for incident in result]


@router.get("/attack_patterns/{profile}/{entity_id}", response_model=list[AttackPatternResponse])
async def list_attack_patterns(
    profile: str,
    entity_id: str,
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Most recent attack patterns for an entity (open and closed), newest first."""
    loaded = resolve_profile(profile)
    result = await db.scalars(
        select(AttackPattern)
        .where(
            AttackPattern.entity_class == loaded.entity_class,
            AttackPattern.entity_id == entity_id,
        )
        .order_by(AttackPattern.started_at.desc(), AttackPattern.id.desc())
        .limit(limit)
    )
    return [AttackPatternResponse.model_validate(pattern) for pattern in result]
