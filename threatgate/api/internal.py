"""Internal job endpoints for cron/scripts.

Secured with a static token (X-Internal-Token header). Meant for the
scheduler and operators, not end users.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from threatgate.api.deps import require_internal_token, resolve_profile
from threatgate.db.session import get_db, get_session_factory
from threatgate.engine.evaluator import evaluate_entity
from threatgate.engine.holds import release_hold, set_hold, set_launch_phase
from threatgate.engine.re_evaluator import run_re_evaluation
from threatgate.profiles import ProfileValidationError
from threatgate.schemas.gate import (
    HoldRequest,
    HoldResponse,
    PhaseRequest,
    PhaseResponse,
    ThreatStateResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", include_in_schema=False)


@router.post("/re_evaluate")
async def re_evaluate(
    profile: str = Query(..., min_length=1, max_length=64),
    force: bool = Query(False),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    _token: None = Depends(require_internal_token),
):
    """Run the scheduled re-evaluation batch for one profile.

    Returns the JobRun summary. Invalid profile config is a 500 so the
    scheduler alerts instead of silently succeeding.
    """
    try:
        return await run_re_evaluation(session_factory, profile, force=force)
    except ProfileValidationError as exc:
        raise HTTPException(status_code=500, detail=f"Profile {profile} is invalid: {exc}") from None
    except (FileNotFoundError, ValueError):
        raise HTTPException(status_code=404, detail=f"Unknown profile: {profile}") from None


@router.post("/evaluate/{profile}/{entity_id}", response_model=ThreatStateResponse)
async def evaluate(
    profile: str,
    entity_id: str,
    db: AsyncSession = Depends(get_db),
    _token: None = Depends(require_internal_token),
):
    """Evaluate one entity now and return its new ThreatState."""
    loaded = resolve_profile(profile)
    threat = await evaluate_entity(db, loaded, entity_id)
    return ThreatStateResponse.model_validate(threat)


@router.post("/hold/{profile}/{entity_id}", response_model=HoldResponse)
async def hold(
    profile: str,
    entity_id: str,
    body: HoldRequest,
    db: AsyncSession = Depends(get_db),
    _token: None = Depends(require_internal_token),
):
    """Put an entity on manual hold; every gated operation is denied until released."""
    loaded = resolve_profile(profile)
    try:
        tracked = await set_hold(db, loaded.entity_class, entity_id, body.reason, actor=body.actor)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None
    await db.commit()
    return HoldResponse.model_validate(tracked)


@router.delete("/hold/{profile}/{entity_id}", response_model=HoldResponse)
async def release(
    profile: str,
    entity_id: str,
    actor: str = Query("operator", min_length=1, max_length=128),
    db: AsyncSession = Depends(get_db),
    _token: None = Depends(require_internal_token),
):
    """Release a manual hold."""
    loaded = resolve_profile(profile)
    tracked = await release_hold(db, loaded.entity_class, entity_id, actor=actor)
    if tracked is None:
        raise HTTPException(status_code=404, detail="Entity not tracked")
    await db.commit()
    return HoldResponse.model_validate(tracked)


@router.post("/phase/{profile}/{entity_id}", response_model=PhaseResponse)
async def phase(
    profile: str,
    entity_id: str,
    body: PhaseRequest,
    db: AsyncSession = Depends(get_db),
    _token: None = Depends(require_internal_token),
):
    """Set an entity's launch phase and per-operation ceiling overrides.

    Posting no phase and no ceilings clears both.
    """
    loaded = resolve_profile(profile)
    try:
        tracked = await set_launch_phase(
            db, loaded, entity_id, body.phase, ceilings=body.ceilings, actor=body.actor
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None
    await db.commit()
    return PhaseResponse.model_validate(tracked)
