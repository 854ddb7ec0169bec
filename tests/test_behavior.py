"""Tests for user behaviour collectors."""

from __future__ import annotations

from datetime import timedelta

import pytest

from tests.factories import make_event
from tests.test_constants import NOW
from threatgate.collectors import Window
from threatgate.collectors.behavior import (
    detect_duplicate_messages,
    detect_hostile_language,
    detect_mass_outreach,
    detect_message_burst,
    is_hostile,
)
from threatgate.engine.signals import Severity

WINDOW = Window.lookback(NOW, timedelta(hours=1))


def _messages(n: int, spacing: timedelta, **payload):
    return [
        make_event("message", "user-1", NOW - spacing * i, dict(payload), actor_id="user-1")
        for i in range(n)
    ]


class TestMessageBurst:
    PARAMS = {"max_messages": 10, "window_minutes": 2, "severity": "MEDIUM"}

    def test_burst(self) -> None:
        records = _messages(12, timedelta(seconds=10), text="hi")
        sig = detect_message_burst(records, WINDOW, self.PARAMS)
        assert sig is not None
        assert sig.severity is Severity.MEDIUM
        assert sig.confidence == pytest.approx(0.6)

    def test_steady_pace(self) -> None:
        records = _messages(30, timedelta(minutes=2), text="hi")
        assert detect_message_burst(records, WINDOW, self.PARAMS) is None


class TestDuplicateMessages:
    PARAMS = {"min_sample": 5, "duplicate_prefix_chars": 50, "duplicate_ratio": 0.7, "severity": "MEDIUM"}

    def test_copy_paste(self) -> None:
        records = _messages(10, timedelta(minutes=1), text="Check out my profile for a surprise")
        sig = detect_duplicate_messages(records, WINDOW, self.PARAMS)
        assert sig is not None
        assert sig.kind == "duplicate_messages"

    def test_varied(self) -> None:
        records = [
            make_event("message", "user-1", NOW - timedelta(minutes=i), {"text": f"message {i}"})
            for i in range(10)
        ]
        assert detect_duplicate_messages(records, WINDOW, self.PARAMS) is None

    def test_blank_texts_do_not_count(self) -> None:
        records = _messages(10, timedelta(minutes=1), text="")
        assert detect_duplicate_messages(records, WINDOW, self.PARAMS) is None


class TestMassOutreach:
    PARAMS = {"max_unique_recipients": 50, "max_reply_ratio": 0.1, "severity": "HIGH"}

    def test_spray(self) -> None:
        records = [
            make_event("message", "user-1", NOW - timedelta(seconds=i), {"recipient_id": f"r{i}", "replied": False})
            for i in range(60)
        ]
        sig = detect_mass_outreach(records, WINDOW, self.PARAMS)
        assert sig is not None
        assert sig.severity is Severity.HIGH
        assert sig.confidence == pytest.approx(0.6)

    def test_recipients_reply(self) -> None:
        records = [
            make_event("message", "user-1", NOW - timedelta(seconds=i), {"recipient_id": f"r{i}", "replied": True})
            for i in range(60)
        ]
        assert detect_mass_outreach(records, WINDOW, self.PARAMS) is None


class TestHostileLanguage:
    PARAMS = {"min_hostile_messages": 5, "hostile_ratio": 0.5, "severity": "HIGH"}

    def test_is_hostile(self) -> None:
        assert is_hostile("You are STUPID")
        assert not is_hostile("see you tomorrow")

    def test_hostile_user(self) -> None:
        records = _messages(8, timedelta(minutes=1), text="you are stupid")
        records += _messages(2, timedelta(minutes=1), text="hello")
        sig = detect_hostile_language(records, WINDOW, self.PARAMS)
        assert sig is not None
        assert len(sig.evidence) == 8

    def test_few_hostile_messages(self) -> None:
        records = _messages(4, timedelta(minutes=1), text="you are stupid")
        assert detect_hostile_language(records, WINDOW, self.PARAMS) is None
