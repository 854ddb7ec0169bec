"""State classifier: map score + signals onto an ordered state set.

States are listed best → worst. Threshold bands are checked worst-first; a
band matches when the score reaches ``min_score`` or, if the band sets it,
the signal count reaches ``min_signals``. Any signal at or above the
trip-wire severity forces the worst state.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from threatgate.engine.signals import Severity, Signal


@dataclass(frozen=True)
class ThresholdBand:
    """Lower bound for one state."""

    state: str
    min_score: float
    min_signals: int | None = None

    def matches(self, score_value: float, signal_count: int) -> bool:
        if score_value >= self.min_score:
            return True
        return self.min_signals is not None and signal_count >= self.min_signals


@dataclass(frozen=True)
class ClassifierPolicy:
    """Ordered states, worst-first bands, and the trip-wire severity."""

    states: tuple[str, ...]
    bands: tuple[ThresholdBand, ...]
    trip_wire: Severity | None = Severity.CRITICAL

    @property
    def best_state(self) -> str:
        return self.states[0]

    @property
    def worst_state(self) -> str:
        return self.states[-1]


def state_rank(policy: ClassifierPolicy, state: str | None) -> int:
    """Index of state in best → worst order; unknown or None ranks as best."""
    if state is None or state not in policy.states:
        return 0
    return policy.states.index(state)


def trip_wire_tripped(policy: ClassifierPolicy, signals: Sequence[Signal]) -> bool:
    """Return True when any signal reaches the trip-wire severity."""
    if policy.trip_wire is None:
        return False
    return any(s.severity >= policy.trip_wire for s in signals)


def classify(score_value: float, signals: Sequence[Signal], policy: ClassifierPolicy) -> str:
    """Return the state for this score and signal set."""
    if trip_wire_tripped(policy, signals):
        return policy.worst_state
    count = len(signals)
    for band in policy.bands:
        if band.matches(score_value, count):
            return band.state
    return policy.best_state


def is_escalation_to_worst(
    policy: ClassifierPolicy, previous_state: str | None, new_state: str
) -> bool:
    """True when new_state is the worst state and previous_state was not."""
    return new_state == policy.worst_state and previous_state != policy.worst_state
