"""Tests for the Signal value object and Severity scale."""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from tests.test_constants import NOW
from threatgate.engine.signals import Severity, Signal, signals_from_json


class TestSeverity:
    def test_ordering(self) -> None:
        assert Severity.LOW < Severity.MEDIUM < Severity.HIGH < Severity.CRITICAL

    @pytest.mark.parametrize("raw", ["HIGH", "high", " High ", Severity.HIGH])
    def test_parse_accepts_names(self, raw) -> None:
        assert Severity.parse(raw) is Severity.HIGH

    def test_parse_unknown_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown severity"):
            Severity.parse("SEVERE")


class TestSignal:
    def test_confidence_clamped(self) -> None:
        assert Signal("x", Severity.LOW, 1.7, NOW).confidence == 1.0
        assert Signal("x", Severity.LOW, -0.2, NOW).confidence == 0.0

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_confidence_reads_as_zero(self, value: float) -> None:
        assert Signal("x", Severity.LOW, value, NOW).confidence == 0.0

    def test_severity_name_normalized(self) -> None:
        sig = Signal("x", "critical", 0.5, NOW)
        assert sig.severity is Severity.CRITICAL

    def test_evidence_is_tuple_of_str(self) -> None:
        sig = Signal("x", Severity.LOW, 0.5, NOW, evidence=[1, "b"])
        assert sig.evidence == ("1", "b")

    def test_frozen(self) -> None:
        sig = Signal("x", Severity.LOW, 0.5, NOW)
        with pytest.raises(FrozenInstanceError):
            sig.confidence = 0.9  # type: ignore[misc]

    def test_dict_round_trip(self) -> None:
        sig = Signal(
            "review_bomb",
            Severity.HIGH,
            0.6,
            NOW,
            evidence=("r1", "r2"),
            description="Review bombing: 3 of 6 indicators",
        )
        data = sig.to_dict()
        assert data["severity"] == "HIGH"
        assert data["detected_at"] == NOW.isoformat()
        assert Signal.from_dict(data) == sig

    def test_signals_from_json_handles_none(self) -> None:
        assert signals_from_json(None) == []
