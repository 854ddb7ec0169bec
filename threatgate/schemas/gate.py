"""Gate and threat-state schemas for request/response validation."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from threatgate.engine.scoring_constants import LAUNCH_PHASES


class GateCheckRequest(BaseModel):
    """Schema for a gate check."""

    profile: str = Field(..., min_length=1, max_length=64)
    entity_id: str = Field(..., min_length=1, max_length=128)
    operation: str = Field(..., min_length=1, max_length=64)


class GateDecisionResponse(BaseModel):
    """Allow/deny/throttle verdict. Denials always carry a reason."""

    allowed: bool
    reason: str
    reason_code: str
    operation: str
    state: str | None = None
    throttle_factor: float | None = None
    ceiling: int | None = None
    count: int | None = None

    model_config = ConfigDict(from_attributes=True)


class SignalResponse(BaseModel):
    kind: str
    severity: str
    confidence: float
    evidence: list[str]
    detected_at: datetime
    description: str = ""


class ThreatStateResponse(BaseModel):
    """Stored classification for one entity."""

    entity_class: str
    entity_id: str
    score: float
    state: str
    previous_state: str | None
    signals: list[SignalResponse]
    explain: dict[str, Any] | None
    last_evaluated_at: datetime
    next_evaluation_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HoldRequest(BaseModel):
    """Schema for putting an entity on manual hold."""

    reason: str = Field(..., min_length=1, max_length=500)
    actor: str = Field("operator", min_length=1, max_length=128)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason must not be blank")
        return v


class HoldResponse(BaseModel):
    entity_class: str
    entity_id: str
    hold_reason: str | None
    held_by: str | None
    held_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class PhaseRequest(BaseModel):
    """Launch phase and per-operation ceiling overrides for one entity."""

    phase: str | None = Field(None, max_length=16)
    ceilings: dict[str, int] = Field(default_factory=dict)
    actor: str = Field("operator", min_length=1, max_length=128)

    @field_validator("phase")
    @classmethod
    def phase_known(cls, v: str | None) -> str | None:
        if v is not None and v not in LAUNCH_PHASES:
            raise ValueError(f"phase must be one of {', '.join(LAUNCH_PHASES)}")
        return v


class PhaseResponse(BaseModel):
    entity_class: str
    entity_id: str
    phase: str | None
    ceilings: dict[str, int] | None
    phase_set_by: str | None
    phase_set_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class IncidentResponse(BaseModel):
    """One escalation into the worst state."""

    id: int
    entity_class: str
    entity_id: str
    previous_state: str | None
    new_state: str
    score: float
    dominant_kind: str | None
    payload: dict[str, Any] | None
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AttackPatternResponse(BaseModel):
    """A run of evaluations sharing one signal-kind signature."""

    id: int
    entity_class: str
    entity_id: str
    signature: str
    started_at: datetime
    ended_at: datetime | None
    intensity: int
    last_seen_at: datetime

    model_config = ConfigDict(from_attributes=True)
