"""Tests for country rollout collectors."""

from __future__ import annotations

from datetime import timedelta

import pytest

from tests.factories import make_event
from tests.test_constants import NOW
from threatgate.collectors import Window
from threatgate.collectors.rollout import (
    detect_creator_ring,
    detect_device_farming,
    detect_low_verification,
    detect_payment_burst,
    detect_safety_incidents,
    detect_support_volume,
)
from threatgate.engine.signals import Severity

WINDOW = Window.lookback(NOW, timedelta(hours=24))


def _events(stream: str, n: int, **payload):
    return [make_event(stream, "BR", NOW - timedelta(minutes=i), dict(payload)) for i in range(n)]


class TestDeviceFarming:
    PARAMS = {"max_accounts_per_device": 3, "severity": "HIGH"}

    def test_shared_device(self) -> None:
        records = [
            make_event("registration", "BR", NOW - timedelta(minutes=i), {"device_id": "dev-1"}, actor_id=f"u{i}")
            for i in range(5)
        ]
        records.append(make_event("registration", "BR", NOW, {"device_id": "dev-2"}, actor_id="u9"))
        sig = detect_device_farming(records, WINDOW, self.PARAMS)
        assert sig is not None
        assert sig.severity is Severity.HIGH
        assert sig.confidence == pytest.approx(0.5 + 0.5 * 2 / 3)
        assert len(sig.evidence) == 5

    def test_same_account_repeated(self) -> None:
        records = [
            make_event("registration", "BR", NOW - timedelta(minutes=i), {"device_id": "dev-1"}, actor_id="u1")
            for i in range(10)
        ]
        assert detect_device_farming(records, WINDOW, self.PARAMS) is None


class TestCounts:
    def test_creator_ring(self) -> None:
        records = _events("registration", 60, is_creator=True)
        sig = detect_creator_ring(records, WINDOW, {"max_creator_registrations": 50, "severity": "HIGH"})
        assert sig is not None
        assert sig.kind == "creator_ring"

    def test_payment_burst_at_threshold(self) -> None:
        records = _events("payment", 10)
        assert detect_payment_burst(records, WINDOW, {"max_payments": 10, "severity": "MEDIUM"}) is None


class TestBanded:
    TABLE = {11: "MEDIUM", 21: "HIGH", 51: "CRITICAL"}

    @pytest.mark.parametrize("count,expected", [(5, None), (11, Severity.MEDIUM), (25, Severity.HIGH), (60, Severity.CRITICAL)])
    def test_safety_incidents(self, count: int, expected) -> None:
        sig = detect_safety_incidents(_events("safety_ticket", count), WINDOW, {"severity_by_count": self.TABLE})
        assert (sig.severity if sig else None) is expected

    def test_support_volume(self) -> None:
        sig = detect_support_volume(
            _events("support_ticket", 120), WINDOW, {"severity_by_count": {51: "LOW", 101: "MEDIUM"}}
        )
        assert sig is not None
        assert sig.severity is Severity.MEDIUM


class TestLowVerification:
    PARAMS = {
        "min_sample": 20,
        "warn_ratio": 0.5,
        "severe_ratio": 0.3,
        "warn_severity": "MEDIUM",
        "severe_severity": "HIGH",
    }

    def _registrations(self, total: int, verified: int):
        return [
            make_event("registration", "BR", NOW - timedelta(minutes=i), {"verified": i < verified})
            for i in range(total)
        ]

    def test_severe(self) -> None:
        sig = detect_low_verification(self._registrations(20, 4), WINDOW, self.PARAMS)
        assert sig is not None
        assert sig.severity is Severity.HIGH
        assert len(sig.evidence) == 16

    def test_warn(self) -> None:
        sig = detect_low_verification(self._registrations(20, 8), WINDOW, self.PARAMS)
        assert sig is not None
        assert sig.severity is Severity.MEDIUM

    def test_healthy(self) -> None:
        assert detect_low_verification(self._registrations(20, 15), WINDOW, self.PARAMS) is None

    def test_small_sample(self) -> None:
        assert detect_low_verification(self._registrations(15, 0), WINDOW, self.PARAMS) is None
