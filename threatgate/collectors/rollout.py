"""Country rollout collectors.

Registration, payment, safety and support streams keyed by country code.
Feed the country_rollout profile that gates registrations, payments and
creator onboarding during a launch phase.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping, Sequence
from typing import Any

from threatgate.collectors.base import (
    Window,
    evidence_ids,
    excess_confidence,
    flag,
    register,
    safe_ratio,
    severity_for_pattern_count,
    shortfall_confidence,
    text,
)
from threatgate.engine.signals import Severity, Signal
from threatgate.models import EventRecord


def _count_signal(
    kind: str,
    records: Sequence[EventRecord],
    window: Window,
    threshold: int,
    severity: str,
    label: str,
) -> Signal | None:
    if len(records) <= threshold:
        return None
    return Signal(
        kind=kind,
        severity=Severity.parse(severity),
        confidence=excess_confidence(len(records), threshold),
        detected_at=window.until,
        evidence=evidence_ids(records),
        description=f"{len(records)} {label} (threshold {threshold})",
    )


def _banded_signal(
    kind: str,
    records: Sequence[EventRecord],
    window: Window,
    table: Mapping[int, str],
    label: str,
) -> Signal | None:
    severity = severity_for_pattern_count(len(records), table)
    if severity is None:
        return None
    lowest = min(int(k) for k in table)
    return Signal(
        kind=kind,
        severity=severity,
        confidence=excess_confidence(len(records), lowest),
        detected_at=window.until,
        evidence=evidence_ids(records),
        description=f"{len(records)} {label}",
    )


@register(
    "device_farming",
    stream="registration",
    required_params=("max_accounts_per_device", "severity"),
)
def detect_device_farming(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    """Several accounts registered from one device."""
    accounts: dict[str, set[str]] = defaultdict(set)
    rows: dict[str, list[EventRecord]] = defaultdict(list)
    for r in records:
        device = text(r, "device_id")
        if not device:
            continue
        accounts[device].add(r.actor_id or r.id)
        rows[device].append(r)
    threshold = int(params["max_accounts_per_device"])
    farmed = [d for d, users in accounts.items() if len(users) > threshold]
    if not farmed:
        return None
    worst = max(len(accounts[d]) for d in farmed)
    return Signal(
        kind="device_farming",
        severity=Severity.parse(params["severity"]),
        confidence=excess_confidence(worst, threshold),
        detected_at=window.until,
        evidence=evidence_ids(r for d in sorted(farmed) for r in rows[d]),
        description=f"{len(farmed)} devices over {threshold} accounts (max {worst})",
    )


@register(
    "creator_ring",
    stream="registration",
    required_params=("max_creator_registrations", "severity"),
)
def detect_creator_ring(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    creators = [r for r in records if flag(r, "is_creator")]
    return _count_signal(
        "creator_ring",
        creators,
        window,
        int(params["max_creator_registrations"]),
        params["severity"],
        "creator registrations",
    )


@register("payment_burst", stream="payment", required_params=("max_payments", "severity"))
def detect_payment_burst(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    return _count_signal(
        "payment_burst", records, window, int(params["max_payments"]), params["severity"], "payments"
    )


@register("safety_incidents", stream="safety_ticket", required_params=("severity_by_count",))
def detect_safety_incidents(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    return _banded_signal(
        "safety_incidents", records, window, params["severity_by_count"], "safety tickets"
    )


@register("support_volume", stream="support_ticket", required_params=("severity_by_count",))
def detect_support_volume(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    return _banded_signal(
        "support_volume", records, window, params["severity_by_count"], "support tickets"
    )


@register(
    "low_verification",
    stream="registration",
    required_params=(
        "min_sample",
        "warn_ratio",
        "severe_ratio",
        "warn_severity",
        "severe_severity",
    ),
)
def detect_low_verification(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    """Share of verified registrations below the warn or severe floor."""
    ratio = safe_ratio(
        sum(1 for r in records if flag(r, "verified")), len(records), int(params["min_sample"])
    )
    if ratio is None:
        return None
    severe, warn = float(params["severe_ratio"]), float(params["warn_ratio"])
    if ratio < severe:
        severity, threshold = params["severe_severity"], severe
    elif ratio < warn:
        severity, threshold = params["warn_severity"], warn
    else:
        return None
    unverified = [r for r in records if not flag(r, "verified")]
    return Signal(
        kind="low_verification",
        severity=Severity.parse(severity),
        confidence=shortfall_confidence(ratio, threshold),
        detected_at=window.until,
        evidence=evidence_ids(unverified),
        description=f"{ratio:.0%} of registrations verified",
    )
