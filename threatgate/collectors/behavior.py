"""User behaviour collectors: message bursts, duplicate messages, mass outreach, hostility.

Read the ``message`` stream keyed by the sending user. Each detector emits at
most one signal at the profile-configured severity; confidence grows with how
far the metric overshoots its threshold.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import Any

from threatgate.collectors.base import (
    Window,
    duplicate_ratio,
    evidence_ids,
    excess_confidence,
    flag,
    peak_in_window,
    register,
    safe_ratio,
    text,
)
from threatgate.engine.signals import Severity, Signal
from threatgate.models import EventRecord

HOSTILE_TERMS: tuple[str, ...] = (
    "hate",
    "awful",
    "terrible",
    "disgusting",
    "gross",
    "ugly",
    "stupid",
    "dumb",
    "idiot",
    "loser",
    "trash",
    "garbage",
    "stop",
    "quit",
    "leave",
    "boring",
    "sucks",
    "bad",
    "worst",
)


def is_hostile(message: str) -> bool:
    lowered = message.lower()
    return any(term in lowered for term in HOSTILE_TERMS)


@register(
    "message_burst",
    stream="message",
    required_params=("max_messages", "window_minutes", "severity"),
)
def detect_message_burst(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    """More than max_messages sent inside any window_minutes slice."""
    threshold = int(params["max_messages"])
    peak = peak_in_window(
        (r.occurred_at for r in records), timedelta(minutes=float(params["window_minutes"]))
    )
    if peak <= threshold:
        return None
    return Signal(
        kind="message_burst",
        severity=Severity.parse(params["severity"]),
        confidence=excess_confidence(peak, threshold),
        detected_at=window.until,
        evidence=evidence_ids(records),
        description=f"{peak} messages within {params['window_minutes']} minutes",
    )


@register(
    "duplicate_messages",
    stream="message",
    required_params=("min_sample", "duplicate_prefix_chars", "duplicate_ratio", "severity"),
)
def detect_duplicate_messages(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    texts = [text(r, "text") for r in records]
    if sum(1 for t in texts if t.strip()) < int(params["min_sample"]):
        return None
    ratio = duplicate_ratio(texts, int(params["duplicate_prefix_chars"]))
    threshold = float(params["duplicate_ratio"])
    if ratio is None or ratio <= threshold:
        return None
    return Signal(
        kind="duplicate_messages",
        severity=Severity.parse(params["severity"]),
        confidence=excess_confidence(ratio, threshold),
        detected_at=window.until,
        evidence=evidence_ids(records),
        description=f"{ratio:.0%} of messages repeat earlier content",
    )


@register(
    "mass_outreach",
    stream="message",
    required_params=("max_unique_recipients", "max_reply_ratio", "severity"),
)
def detect_mass_outreach(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    """Many distinct recipients, few of whom reply."""
    recipients = {text(r, "recipient_id") for r in records if text(r, "recipient_id")}
    threshold = int(params["max_unique_recipients"])
    if len(recipients) <= threshold:
        return None
    reply_ratio = safe_ratio(sum(1 for r in records if flag(r, "replied")), len(records))
    if reply_ratio is None or reply_ratio >= float(params["max_reply_ratio"]):
        return None
    return Signal(
        kind="mass_outreach",
        severity=Severity.parse(params["severity"]),
        confidence=excess_confidence(len(recipients), threshold),
        detected_at=window.until,
        evidence=evidence_ids(records),
        description=f"{len(recipients)} recipients, {reply_ratio:.0%} replied",
    )


@register(
    "hostile_language",
    stream="message",
    required_params=("min_hostile_messages", "hostile_ratio", "severity"),
)
def detect_hostile_language(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    hostile = [r for r in records if is_hostile(text(r, "text"))]
    if len(hostile) <= int(params["min_hostile_messages"]):
        return None
    ratio = safe_ratio(len(hostile), len(records))
    threshold = float(params["hostile_ratio"])
    if ratio is None or ratio <= threshold:
        return None
    return Signal(
        kind="hostile_language",
        severity=Severity.parse(params["severity"]),
        confidence=excess_confidence(ratio, threshold),
        detected_at=window.until,
        evidence=evidence_ids(hostile),
        description=f"{len(hostile)} hostile messages ({ratio:.0%})",
    )
