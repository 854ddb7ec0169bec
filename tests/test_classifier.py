"""Tests for the state classifier: bands, trip-wire, zero baseline."""

from __future__ import annotations

import random

import pytest

from tests.factories import make_signal
from threatgate.engine.classifier import (
    ClassifierPolicy,
    ThresholdBand,
    classify,
    is_escalation_to_worst,
    state_rank,
)
from threatgate.engine.scorer import score
from threatgate.engine.signals import Severity

STORE_POLICY = ClassifierPolicy(
    states=("SAFE", "WARNING", "CRITICAL"),
    bands=(
        ThresholdBand("CRITICAL", 70),
        ThresholdBand("WARNING", 40, min_signals=2),
    ),
)

COUNTRY_POLICY = ClassifierPolicy(
    states=("LOW", "MEDIUM", "HIGH", "CRITICAL"),
    bands=(
        ThresholdBand("CRITICAL", 70),
        ThresholdBand("HIGH", 50),
        ThresholdBand("MEDIUM", 25, min_signals=2),
    ),
)


class TestClassify:
    def test_zero_baseline_is_first_state(self) -> None:
        assert classify(0, [], STORE_POLICY) == "SAFE"
        assert classify(0, [], COUNTRY_POLICY) == "LOW"

    @pytest.mark.parametrize(
        "value,expected",
        [(0, "SAFE"), (39.99, "SAFE"), (40, "WARNING"), (69.99, "WARNING"), (70, "CRITICAL")],
    )
    def test_score_bands(self, value: float, expected: str) -> None:
        sig = [make_signal("a", "LOW", 0.1)]
        assert classify(value, sig, STORE_POLICY) == expected

    def test_two_signals_reach_warning(self) -> None:
        signals = [make_signal("a", "LOW", 0.1), make_signal("b", "LOW", 0.1)]
        assert classify(score(signals), signals, STORE_POLICY) == "WARNING"

    def test_country_tiers(self) -> None:
        sig = [make_signal("a", "HIGH", 1.0)]
        assert classify(50, sig, COUNTRY_POLICY) == "HIGH"
        assert classify(30, sig, COUNTRY_POLICY) == "MEDIUM"
        assert classify(10, sig, COUNTRY_POLICY) == "LOW"

    def test_high_point_eight_is_warning(self) -> None:
        signals = [make_signal("review_bomb", "HIGH", 0.8)]
        assert classify(score(signals), signals, STORE_POLICY) == "WARNING"


class TestTripWire:
    def test_single_low_confidence_critical_forces_worst(self) -> None:
        signals = [make_signal("fake_installs", "CRITICAL", 0.3)]
        assert score(signals) == 30.0
        assert classify(score(signals), signals, STORE_POLICY) == "CRITICAL"

    @pytest.mark.parametrize("seed", range(15))
    def test_any_critical_signal_forces_worst(self, seed: int) -> None:
        rng = random.Random(seed)
        signals = [
            make_signal(f"k{i}", rng.choice(["LOW", "MEDIUM", "HIGH"]), rng.random())
            for i in range(rng.randint(0, 4))
        ]
        signals.insert(rng.randint(0, len(signals)), make_signal("crit", "CRITICAL", rng.random() * 0.05))
        for policy in (STORE_POLICY, COUNTRY_POLICY):
            assert classify(score(signals), signals, policy) == policy.worst_state

    def test_zero_confidence_critical_still_trips(self) -> None:
        signals = [make_signal("crit", "CRITICAL", 0.0)]
        assert classify(0, signals, STORE_POLICY) == "CRITICAL"

    def test_trip_wire_configurable(self) -> None:
        policy = ClassifierPolicy(
            states=STORE_POLICY.states, bands=STORE_POLICY.bands, trip_wire=Severity.HIGH
        )
        signals = [make_signal("a", "HIGH", 0.1)]
        assert classify(score(signals), signals, policy) == "CRITICAL"

    def test_trip_wire_disabled(self) -> None:
        policy = ClassifierPolicy(states=STORE_POLICY.states, bands=STORE_POLICY.bands, trip_wire=None)
        signals = [make_signal("a", "CRITICAL", 0.3)]
        assert classify(score(signals), signals, policy) == "SAFE"


class TestTransitions:
    def test_state_rank(self) -> None:
        assert state_rank(STORE_POLICY, "SAFE") == 0
        assert state_rank(STORE_POLICY, "CRITICAL") == 2
        assert state_rank(STORE_POLICY, None) == 0

    @pytest.mark.parametrize(
        "previous,new,expected",
        [
            (None, "CRITICAL", True),
            ("SAFE", "CRITICAL", True),
            ("WARNING", "CRITICAL", True),
            ("CRITICAL", "CRITICAL", False),
            ("SAFE", "WARNING", False),
            ("CRITICAL", "SAFE", False),
        ],
    )
    def test_escalation_to_worst(self, previous, new, expected) -> None:
        assert is_escalation_to_worst(STORE_POLICY, previous, new) is expected
