"""Profile loader: load entity-class engine config from profiles/<name>.yaml."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from threatgate.config import get_settings
from threatgate.engine.classifier import ClassifierPolicy, ThresholdBand
from threatgate.engine.scoring_constants import weights_from_profile
from threatgate.engine.signals import Severity
from threatgate.profiles.schemas import ProfileValidationError, validate_profile_schema

logger = logging.getLogger(__name__)

# Profile names: alphanumeric, underscore, hyphen only. Prevents path traversal.
_PROFILE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


def _validate_profile_name(name: str) -> None:
    """Raise ValueError if name contains path separators or other unsafe chars."""
    if not name or not isinstance(name, str):
        raise ValueError("profile name must be a non-empty string")
    if "\0" in name or ".." in name or "/" in name or "\\" in name:
        raise ValueError(f"profile name must not contain path components (got {name!r})")
    if not _PROFILE_NAME_PATTERN.match(name):
        raise ValueError(f"profile name must match [a-zA-Z0-9_-]+ (got {name!r})")


def compute_profile_checksum(raw: dict[str, Any]) -> str:
    """SHA-256 of the normalized profile mapping, for config drift detection."""
    canonical = json.dumps(raw, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class OperationPolicy:
    """Capacity ceiling, bucket window and read-failure policy for one gated operation."""

    name: str
    ceiling: int
    window: str
    failure_mode: str

    @property
    def fails_closed(self) -> bool:
        return self.failure_mode == "closed"


@dataclass(frozen=True)
class Profile:
    """Loaded, validated profile. Passed explicitly to every engine call."""

    name: str
    entity_class: str
    version: str
    lookback: timedelta
    evaluation_interval: timedelta
    weights: dict[Severity, float]
    max_score: float
    classifier: ClassifierPolicy
    deny_states: frozenset[str]
    throttle: dict[str, float]
    operations: dict[str, OperationPolicy]
    collectors: dict[str, dict[str, Any]]
    config_checksum: str
    auto_hold_on_worst: bool = False
    description: str = ""
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def operation(self, name: str) -> OperationPolicy:
        """Return the policy for an operation; ValueError if the profile does not gate it."""
        try:
            return self.operations[name]
        except KeyError:
            raise ValueError(
                f"Unknown operation {name!r} for profile {self.name!r}"
            ) from None


def _profiles_root(profiles_dir: str | Path | None) -> Path:
    if profiles_dir is not None:
        return Path(profiles_dir)
    return Path(get_settings().profiles_dir)


def build_profile(name: str, raw: dict[str, Any]) -> Profile:
    """Validate a raw mapping and build the immutable Profile."""
    validate_profile_schema(raw)
    classification = raw["classification"]
    trip = classification.get("trip_wire_severity")
    policy = ClassifierPolicy(
        states=tuple(classification["states"]),
        bands=tuple(
            ThresholdBand(
                state=b["state"],
                min_score=float(b["min_score"]),
                min_signals=b.get("min_signals"),
            )
            for b in classification["bands"]
        ),
        trip_wire=Severity.parse(trip) if trip is not None else None,
    )
    gate = raw["gate"]
    operations = {
        op: OperationPolicy(
            name=op,
            ceiling=int(spec["ceiling"]),
            window=spec["window"],
            failure_mode=spec["failure_mode"],
        )
        for op, spec in gate["operations"].items()
    }
    return Profile(
        name=name,
        entity_class=raw["entity_class"],
        version=str(raw["version"]),
        lookback=timedelta(hours=float(raw["lookback_hours"])),
        evaluation_interval=timedelta(minutes=float(raw["evaluation_interval_minutes"])),
        weights=weights_from_profile(raw["scoring"]["severity_weights"]),
        max_score=float(raw["scoring"]["max_score"]),
        classifier=policy,
        deny_states=frozenset(gate["deny_states"]),
        throttle={s: float(f) for s, f in (gate.get("throttle") or {}).items()},
        operations=operations,
        collectors={n: dict(p) for n, p in raw["collectors"].items()},
        config_checksum=compute_profile_checksum(raw),
        auto_hold_on_worst=bool(gate.get("auto_hold_on_worst", False)),
        description=str(raw.get("description") or ""),
        raw=raw,
    )


def load_profile(name: str, profiles_dir: str | Path | None = None) -> Profile:
    """Load and validate profiles/<name>.yaml.

    Called at the start of each batch run; the returned Profile is not
    reloaded mid-run.

    Raises:
        FileNotFoundError: profile file does not exist.
        ValueError: unsafe profile name.
        ProfileValidationError: missing or invalid thresholds.
    """
    _validate_profile_name(name)
    path = _profiles_root(profiles_dir) / f"{name}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Profile not found: {path}")
    with path.open() as f:
        raw = yaml.safe_load(f) or {}
    try:
        return build_profile(name, raw)
    except ProfileValidationError as e:
        logger.warning("Profile %s validation failed: %s", name, e)
        raise


@lru_cache(maxsize=32)
def get_profile(name: str) -> Profile:
    """Cached load for the gate hot path (settings.profiles_dir)."""
    return load_profile(name)


def list_profiles(profiles_dir: str | Path | None = None) -> list[str]:
    """Names of all profiles/*.yaml files, sorted."""
    root = _profiles_root(profiles_dir)
    if not root.is_dir():
        return []
    return sorted(p.stem for p in root.glob("*.yaml"))
