"""Tests for profile loading and schema validation."""

from __future__ import annotations

from datetime import timedelta

import pytest
import yaml

from tests.factories import make_profile, profile_dict
from threatgate.engine.signals import Severity
from threatgate.profiles import (
    ProfileValidationError,
    build_profile,
    get_profile,
    list_profiles,
    load_profile,
    validate_profile_schema,
)
from threatgate.profiles.loader import compute_profile_checksum

SHIPPED = ("country_rollout", "store_threat", "user_risk")


class TestShippedProfiles:
    def test_list_profiles(self) -> None:
        assert set(SHIPPED) <= set(list_profiles())

    @pytest.mark.parametrize("name", SHIPPED)
    def test_loads(self, name: str) -> None:
        profile = load_profile(name)
        assert profile.name == name
        assert profile.classifier.worst_state in profile.deny_states
        assert len(profile.config_checksum) == 64

    def test_store_threat(self) -> None:
        profile = load_profile("store_threat")
        assert profile.entity_class == "store"
        assert profile.classifier.states == ("SAFE", "WARNING", "CRITICAL")
        assert profile.throttle == {"WARNING": 0.5}
        assert profile.lookback == timedelta(hours=24)
        assert profile.operation("payout").fails_closed is True
        assert profile.operation("review_reply").fails_closed is False
        assert list(profile.collectors) == ["review_bomb", "fake_installs", "refund_abuse", "fake_reports"]

    def test_country_rollout(self) -> None:
        profile = load_profile("country_rollout")
        assert profile.classifier.states == ("LOW", "MEDIUM", "HIGH", "CRITICAL")
        assert profile.auto_hold_on_worst is True
        assert profile.operation("user_registration").window == "day"

    def test_user_risk(self) -> None:
        profile = load_profile("user_risk")
        assert profile.entity_class == "user"
        assert profile.weights[Severity.HIGH] == 50.0

    def test_get_profile_is_cached(self) -> None:
        assert get_profile("store_threat") is get_profile("store_threat")


class TestLoadProfile:
    @pytest.mark.parametrize("name", ["../etc/passwd", "a/b", "", "store threat", "x\\y"])
    def test_rejects_unsafe_names(self, name: str) -> None:
        with pytest.raises(ValueError):
            load_profile(name)

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_profile("absent", tmp_path)

    def test_loads_from_directory(self, tmp_path) -> None:
        (tmp_path / "custom.yaml").write_text(yaml.safe_dump(profile_dict()))
        profile = load_profile("custom", tmp_path)
        assert profile.name == "custom"
        assert list_profiles(tmp_path) == ["custom"]

    def test_unknown_operation(self) -> None:
        with pytest.raises(ValueError, match="Unknown operation 'refund'"):
            make_profile().operation("refund")

    def test_checksum_tracks_content(self) -> None:
        base = profile_dict()
        changed = profile_dict(lookback_hours=12)
        assert compute_profile_checksum(base) == compute_profile_checksum(profile_dict())
        assert compute_profile_checksum(base) != compute_profile_checksum(changed)


def _broken(mutate) -> dict:
    raw = profile_dict()
    mutate(raw)
    return raw


INVALID = {
    "missing key": lambda r: r.pop("gate"),
    "zero lookback": lambda r: r.update(lookback_hours=0),
    "max score over 100": lambda r: r["scoring"].update(max_score=150),
    "missing weight tier": lambda r: r["scoring"]["severity_weights"].pop("HIGH"),
    "negative weight": lambda r: r["scoring"]["severity_weights"].update(LOW=-1),
    "one state": lambda r: r["classification"].update(states=["SAFE"]),
    "no trip wire key": lambda r: r["classification"].pop("trip_wire_severity"),
    "band for best state": lambda r: r["classification"]["bands"].append({"state": "SAFE", "min_score": 0}),
    "bands out of order": lambda r: r["classification"]["bands"].reverse(),
    "deny without worst": lambda r: r["gate"].update(deny_states=["WARNING"]),
    "throttle over one": lambda r: r["gate"]["throttle"].update(WARNING=1.5),
    "throttle deny state": lambda r: r["gate"]["throttle"].update(CRITICAL=0.5),
    "auto hold not bool": lambda r: r["gate"].update(auto_hold_on_worst="yes"),
    "zero ceiling": lambda r: r["gate"]["operations"]["payout"].update(ceiling=0),
    "bad window": lambda r: r["gate"]["operations"]["payout"].update(window="week"),
    "bad failure mode": lambda r: r["gate"]["operations"]["payout"].update(failure_mode="maybe"),
    "unknown collector": lambda r: r["collectors"].update(telepathy={}),
    "missing collector param": lambda r: r["collectors"]["fake_reports"].pop("max_reports"),
    "negative collector param": lambda r: r["collectors"]["fake_reports"].update(min_sample=-1),
    "bad severity table": lambda r: r["collectors"]["fake_reports"].update(severity_by_count={3: "SEVERE"}),
}


class TestValidation:
    def test_base_profile_is_valid(self) -> None:
        validate_profile_schema(profile_dict())

    def test_null_trip_wire_allowed(self) -> None:
        raw = profile_dict()
        raw["classification"]["trip_wire_severity"] = None
        assert build_profile("t", raw).classifier.trip_wire is None

    @pytest.mark.parametrize("case", sorted(INVALID))
    def test_invalid(self, case: str) -> None:
        with pytest.raises(ProfileValidationError):
            validate_profile_schema(_broken(INVALID[case]))

    def test_invalid_file_raises(self, tmp_path) -> None:
        raw = _broken(INVALID["missing weight tier"])
        (tmp_path / "bad.yaml").write_text(yaml.safe_dump(raw))
        with pytest.raises(ProfileValidationError, match="missing tiers: HIGH"):
            load_profile("bad", tmp_path)
