"""Profile schema validation.

Validates a raw profile mapping (parsed YAML) before the engine uses it.
Raises ProfileValidationError on any missing or invalid threshold: security
thresholds are never filled in with defaults.
"""

from __future__ import annotations

import logging
import numbers
from typing import Any

from threatgate.engine.scoring_constants import CAPACITY_WINDOWS, FAILURE_MODES, SCORE_MAX
from threatgate.engine.signals import Severity

logger = logging.getLogger(__name__)

REQUIRED_TOP_LEVEL_KEYS: tuple[str, ...] = (
    "entity_class",
    "version",
    "lookback_hours",
    "evaluation_interval_minutes",
    "scoring",
    "classification",
    "gate",
    "collectors",
)


class ProfileValidationError(Exception):
    """Raised when profile config is missing or invalid."""

    pass


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _require_positive(value: Any, where: str) -> None:
    if not _is_number(value) or value <= 0:
        raise ProfileValidationError(f"{where} must be a positive number (got {value!r})")


def _validate_scoring(scoring: Any) -> None:
    if not isinstance(scoring, dict):
        raise ProfileValidationError("scoring must be a mapping")
    _require_positive(scoring.get("max_score"), "scoring.max_score")
    if scoring["max_score"] > SCORE_MAX:
        raise ProfileValidationError(
            f"scoring.max_score must not exceed {SCORE_MAX:g} (got {scoring['max_score']!r})"
        )
    weights = scoring.get("severity_weights")
    if not isinstance(weights, dict):
        raise ProfileValidationError("scoring.severity_weights must be a mapping")
    seen: set[Severity] = set()
    for name, value in weights.items():
        try:
            sev = Severity.parse(name)
        except ValueError as exc:
            raise ProfileValidationError(f"scoring.severity_weights: {exc}") from None
        if not _is_number(value) or value < 0:
            raise ProfileValidationError(
                f"scoring.severity_weights.{name} must be a non-negative number"
            )
        seen.add(sev)
    missing = [s.name for s in Severity if s not in seen]
    if missing:
        raise ProfileValidationError(
            f"scoring.severity_weights missing tiers: {', '.join(missing)}"
        )


def _validate_classification(classification: Any) -> list[str]:
    if not isinstance(classification, dict):
        raise ProfileValidationError("classification must be a mapping")
    states = classification.get("states")
    if not isinstance(states, list) or len(states) < 2:
        raise ProfileValidationError("classification.states must list at least two states")
    if len(set(states)) != len(states):
        raise ProfileValidationError("classification.states must be unique")
    if "trip_wire_severity" not in classification:
        raise ProfileValidationError("classification.trip_wire_severity is required (may be null)")
    trip = classification.get("trip_wire_severity")
    if trip is not None:
        try:
            Severity.parse(trip)
        except ValueError as exc:
            raise ProfileValidationError(f"classification.trip_wire_severity: {exc}") from None

    bands = classification.get("bands")
    if not isinstance(bands, list) or not bands:
        raise ProfileValidationError("classification.bands must be a non-empty list")
    prev_rank: int | None = None
    prev_score: float | None = None
    for i, band in enumerate(bands):
        where = f"classification.bands[{i}]"
        if not isinstance(band, dict):
            raise ProfileValidationError(f"{where} must be a mapping")
        state = band.get("state")
        if state not in states:
            raise ProfileValidationError(f"{where}.state {state!r} is not a declared state")
        rank = states.index(state)
        if rank == 0:
            raise ProfileValidationError(
                f"{where}.state {state!r} is the no-risk state; it needs no band"
            )
        min_score = band.get("min_score")
        if not _is_number(min_score) or min_score < 0:
            raise ProfileValidationError(f"{where}.min_score must be a non-negative number")
        min_signals = band.get("min_signals")
        if min_signals is not None and (
            not isinstance(min_signals, int) or isinstance(min_signals, bool) or min_signals < 1
        ):
            raise ProfileValidationError(f"{where}.min_signals must be a positive integer")
        # Bands are worst-first: strictly better state, no higher score floor.
        if prev_rank is not None and rank >= prev_rank:
            raise ProfileValidationError(
                "classification.bands must be ordered worst state first"
            )
        if prev_score is not None and min_score > prev_score:
            raise ProfileValidationError(
                "classification.bands min_score must not increase for milder states"
            )
        prev_rank, prev_score = rank, min_score
    return states


def _validate_gate(gate: Any, states: list[str]) -> None:
    if not isinstance(gate, dict):
        raise ProfileValidationError("gate must be a mapping")
    deny_states = gate.get("deny_states")
    if not isinstance(deny_states, list) or not deny_states:
        raise ProfileValidationError("gate.deny_states must be a non-empty list")
    for s in deny_states:
        if s not in states:
            raise ProfileValidationError(f"gate.deny_states: unknown state {s!r}")
    if states[-1] not in deny_states:
        raise ProfileValidationError("gate.deny_states must include the worst state")

    throttle = gate.get("throttle") or {}
    if not isinstance(throttle, dict):
        raise ProfileValidationError("gate.throttle must be a mapping of state -> factor")
    for s, factor in throttle.items():
        if s not in states:
            raise ProfileValidationError(f"gate.throttle: unknown state {s!r}")
        if s in deny_states:
            raise ProfileValidationError(f"gate.throttle: {s!r} is already a deny state")
        if not _is_number(factor) or not 0 < factor <= 1:
            raise ProfileValidationError(f"gate.throttle.{s} must be in (0, 1]")

    auto_hold = gate.get("auto_hold_on_worst", False)
    if not isinstance(auto_hold, bool):
        raise ProfileValidationError("gate.auto_hold_on_worst must be true or false")

    operations = gate.get("operations")
    if not isinstance(operations, dict) or not operations:
        raise ProfileValidationError("gate.operations must be a non-empty mapping")
    for op, spec in operations.items():
        where = f"gate.operations.{op}"
        if not isinstance(spec, dict):
            raise ProfileValidationError(f"{where} must be a mapping")
        ceiling = spec.get("ceiling")
        if not isinstance(ceiling, int) or isinstance(ceiling, bool) or ceiling < 1:
            raise ProfileValidationError(f"{where}.ceiling must be a positive integer")
        if spec.get("window") not in CAPACITY_WINDOWS:
            raise ProfileValidationError(
                f"{where}.window must be one of {sorted(CAPACITY_WINDOWS)}"
            )
        if spec.get("failure_mode") not in FAILURE_MODES:
            raise ProfileValidationError(
                f"{where}.failure_mode must be one of {sorted(FAILURE_MODES)}"
            )


def _validate_collectors(collectors: Any) -> None:
    from threatgate.collectors import COLLECTORS

    if not isinstance(collectors, dict) or not collectors:
        raise ProfileValidationError("collectors must be a non-empty mapping")
    for name, params in collectors.items():
        spec = COLLECTORS.get(name)
        if spec is None:
            raise ProfileValidationError(f"collectors: unknown collector {name!r}")
        if not isinstance(params, dict):
            raise ProfileValidationError(f"collectors.{name} must be a mapping of params")
        missing = sorted(spec.required_params - set(params))
        if missing:
            raise ProfileValidationError(
                f"collectors.{name} missing params: {', '.join(missing)}"
            )
        for key in spec.required_params:
            value = params[key]
            if isinstance(value, dict):
                continue  # severity_by_count, checked below
            if key.endswith("severity"):
                try:
                    Severity.parse(value)
                except ValueError as exc:
                    raise ProfileValidationError(f"collectors.{name}.{key}: {exc}") from None
                continue
            if not _is_number(value) or value < 0:
                raise ProfileValidationError(
                    f"collectors.{name}.{key} must be a non-negative number"
                )
        table = params.get("severity_by_count")
        if table is not None:
            if not isinstance(table, dict) or not table:
                raise ProfileValidationError(
                    f"collectors.{name}.severity_by_count must be a non-empty mapping"
                )
            for count, sev in table.items():
                if not isinstance(count, int) or count < 1:
                    raise ProfileValidationError(
                        f"collectors.{name}.severity_by_count keys must be positive integers"
                    )
                try:
                    Severity.parse(sev)
                except ValueError as exc:
                    raise ProfileValidationError(
                        f"collectors.{name}.severity_by_count: {exc}"
                    ) from None


def validate_profile_schema(raw: dict[str, Any]) -> None:
    """Validate a raw profile mapping.

    Raises:
        ProfileValidationError: on the first missing key or invalid value.
    """
    if not isinstance(raw, dict):
        raise ProfileValidationError("profile must be a mapping")
    missing = [k for k in REQUIRED_TOP_LEVEL_KEYS if k not in raw]
    if missing:
        raise ProfileValidationError(f"profile missing keys: {', '.join(missing)}")
    if not isinstance(raw["entity_class"], str) or not raw["entity_class"].strip():
        raise ProfileValidationError("entity_class must be a non-empty string")
    _require_positive(raw["lookback_hours"], "lookback_hours")
    _require_positive(raw["evaluation_interval_minutes"], "evaluation_interval_minutes")
    _validate_scoring(raw["scoring"])
    states = _validate_classification(raw["classification"])
    _validate_gate(raw["gate"], states)
    _validate_collectors(raw["collectors"])
