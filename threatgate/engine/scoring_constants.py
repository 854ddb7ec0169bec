"""Scoring constants shared by the scorer and profile validation.

Profiles must supply their own severity weights; these values are the
reference table used by tests and by `threatgate.engine.scorer.score` when
called without a profile.
"""

from __future__ import annotations

from threatgate.engine.signals import Severity

# ── Severity weights (suggested table) ───────────────────────────────────

SEVERITY_WEIGHTS: dict[Severity, float] = {
    Severity.LOW: 10.0,
    Severity.MEDIUM: 25.0,
    Severity.HIGH: 50.0,
    Severity.CRITICAL: 100.0,
}

# ── Score bounds ─────────────────────────────────────────────────────────

SCORE_MIN: float = 0.0
SCORE_MAX: float = 100.0

# Scores are rounded so persisted values compare equal across runs.
SCORE_DECIMALS: int = 2

# ── Gate ─────────────────────────────────────────────────────────────────

# Throttled ceilings never drop below this many operations per bucket.
MIN_THROTTLED_CEILING: int = 1

CAPACITY_WINDOWS: frozenset[str] = frozenset({"hour", "day"})
FAILURE_MODES: frozenset[str] = frozenset({"open", "closed"})

# Rollout phases an entity can be placed in; "pause" denies every operation.
LAUNCH_PHASES: tuple[str, ...] = ("alpha", "soft", "public", "pause")
PHASE_PAUSED: str = "pause"

# Evidence ids kept per signal (newest first).
MAX_EVIDENCE_IDS: int = 100


def weights_from_profile(raw: dict[str, float | int]) -> dict[Severity, float]:
    """Build a Severity-keyed weight table from profile YAML ({'LOW': 10, ...})."""
    return {Severity.parse(name): float(value) for name, value in raw.items()}
