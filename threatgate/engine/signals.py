"""Signal value object and severity scale.

A Signal is one detected indicator produced by a collector. Signals are
created fresh on each evaluation and never mutated; the next evaluation's
signal set supersedes them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any


class Severity(IntEnum):
    """Ordered severity tiers. Integer value gives the ordering only, not the weight."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def parse(cls, value: str | Severity) -> Severity:
        """Parse 'HIGH' / 'high' / Severity.HIGH. Raises ValueError on unknown names."""
        if isinstance(value, Severity):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown severity: {value!r}") from None


def _clamp_confidence(value: float) -> float:
    value = float(value)
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class Signal:
    """Single detected indicator with severity, confidence and evidence record ids."""

    kind: str
    severity: Severity
    confidence: float
    detected_at: datetime
    evidence: tuple[str, ...] = field(default_factory=tuple)
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "severity", Severity.parse(self.severity))
        object.__setattr__(self, "confidence", _clamp_confidence(self.confidence))
        object.__setattr__(self, "evidence", tuple(str(e) for e in self.evidence))

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form stored in ThreatState.signals."""
        return {
            "kind": self.kind,
            "severity": self.severity.name,
            "confidence": self.confidence,
            "evidence": list(self.evidence),
            "detected_at": self.detected_at.isoformat(),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Signal:
        """Inverse of to_dict; used when gating or re-deriving a stored score."""
        return cls(
            kind=str(data["kind"]),
            severity=Severity.parse(data["severity"]),
            confidence=float(data.get("confidence", 0.0)),
            evidence=tuple(data.get("evidence") or ()),
            detected_at=datetime.fromisoformat(data["detected_at"]),
            description=data.get("description") or "",
        )


def signals_from_json(raw: list[dict[str, Any]] | None) -> list[Signal]:
    """Deserialize ThreatState.signals, preserving order."""
    return [Signal.from_dict(item) for item in (raw or [])]
