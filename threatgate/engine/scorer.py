"""Threat/risk scorer: reduce a signal set to one bounded score.

score = clamp(sum(weight[severity] * confidence), 0, max_score)

Pure and deterministic: no clock, no randomness, no I/O. Uses math.fsum so
the result does not depend on signal order and adding a signal can never
lower the score.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any

from threatgate.engine.scoring_constants import (
    SCORE_DECIMALS,
    SCORE_MAX,
    SCORE_MIN,
    SEVERITY_WEIGHTS,
)
from threatgate.engine.signals import Severity, Signal


def signal_contribution(
    signal: Signal, weights: Mapping[Severity, float] | None = None
) -> float:
    """Return weight[severity] * confidence for one signal."""
    table = weights if weights is not None else SEVERITY_WEIGHTS
    return table[signal.severity] * signal.confidence


def score(
    signals: Sequence[Signal],
    weights: Mapping[Severity, float] | None = None,
    max_score: float = SCORE_MAX,
) -> float:
    """Compute the bounded score for a signal set.

    Zero signals → 0.0. Result is rounded to SCORE_DECIMALS places and
    always lies in [0, max_score].
    """
    if not signals:
        return SCORE_MIN
    raw = math.fsum(signal_contribution(s, weights) for s in signals)
    bounded = max(SCORE_MIN, min(raw, max_score))
    return round(bounded, SCORE_DECIMALS)


def dominant_signal(
    signals: Sequence[Signal],
    weights: Mapping[Severity, float] | None = None,
    prefer_severity: bool = False,
) -> Signal | None:
    """Return the signal with the largest contribution.

    Ties go to the higher severity, then to the earlier signal. With
    prefer_severity the highest severity wins first (used when the trip-wire
    decided the state).
    """
    best: Signal | None = None
    best_key: tuple[float, float] | None = None
    for sig in signals:
        points = signal_contribution(sig, weights)
        key = (int(sig.severity), points) if prefer_severity else (points, int(sig.severity))
        if best_key is None or key > best_key:
            best, best_key = sig, key
    return best


def attack_pattern_signature(signals: Sequence[Signal]) -> str | None:
    """Sorted, underscore-joined signal kinds (e.g. 'fake_installs_review_bomb')."""
    if not signals:
        return None
    return "_".join(sorted({s.kind for s in signals}))


def build_explain_payload(
    signals: Sequence[Signal],
    final_score: float,
    state: str,
    trip_wire_applied: bool,
    weights: Mapping[Severity, float] | None = None,
) -> dict[str, Any]:
    """Explain JSON stored with the ThreatState (per-signal contributions, dominant kind)."""
    table = weights if weights is not None else SEVERITY_WEIGHTS
    dominant = dominant_signal(signals, table, prefer_severity=trip_wire_applied)
    return {
        "weights": {sev.name: w for sev, w in sorted(table.items())},
        "score": final_score,
        "state": state,
        "contributions": [
            {
                "kind": s.kind,
                "severity": s.severity.name,
                "confidence": s.confidence,
                "points": round(signal_contribution(s, table), SCORE_DECIMALS),
            }
            for s in signals
        ],
        "dominant_kind": dominant.kind if dominant else None,
        "trip_wire_applied": trip_wire_applied,
        "pattern_signature": attack_pattern_signature(signals),
    }
