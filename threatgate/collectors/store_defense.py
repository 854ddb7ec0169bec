"""Store threat collectors: review bombing, fake installs, refund abuse, fake reports.

Each detector checks a handful of boolean indicators over the lookback window.
The number of indicators tripped picks the severity (``severity_by_count``)
and tripped/total gives the confidence.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import Any

from threatgate.collectors.base import (
    Window,
    count_bursts,
    duplicate_ratio,
    flag,
    has,
    is_uniform,
    max_share,
    num,
    pattern_signal,
    register,
    safe_ratio,
    text,
)
from threatgate.engine.signals import Signal
from threatgate.models import EventRecord

_TIMING_PARAMS = ("burst_size", "burst_span_minutes", "min_bursts")


def _coordinated(records: Sequence[EventRecord], params: Mapping[str, Any]) -> bool:
    bursts = count_bursts(
        (r.occurred_at for r in records),
        int(params["burst_size"]),
        timedelta(minutes=float(params["burst_span_minutes"])),
    )
    return bursts >= int(params["min_bursts"])


def _similar_content(records: Sequence[EventRecord], params: Mapping[str, Any]) -> bool:
    ratio = duplicate_ratio(
        (text(r, "text") for r in records), int(params["duplicate_prefix_chars"])
    )
    return ratio is not None and ratio > float(params["duplicate_ratio"])


def _new_accounts(records: Sequence[EventRecord], params: Mapping[str, Any]) -> bool:
    # Records without an account age are not counted as new.
    young = sum(
        1
        for r in records
        if has(r, "account_age_days") and num(r, "account_age_days") < float(params["new_account_days"])
    )
    ratio = safe_ratio(young, len(records))
    return ratio is not None and ratio > float(params["new_account_ratio"])


@register(
    "review_bomb",
    stream="review",
    required_params=(
        "min_sample",
        "max_reviews_per_hour",
        "one_star_ratio",
        "duplicate_prefix_chars",
        "duplicate_ratio",
        "new_account_days",
        "new_account_ratio",
        "uniform_rating_stdev",
        "severity_by_count",
        *_TIMING_PARAMS,
    ),
)
def detect_review_bomb(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    """Coordinated negative reviews: spike, one-star flood, bursts, copy-paste, fresh accounts."""
    if len(records) < int(params["min_sample"]):
        return None
    tripped: list[str] = []

    velocity = len(records) / window.hours if window.hours else 0.0
    if velocity > float(params["max_reviews_per_hour"]):
        tripped.append("velocity")

    one_star = safe_ratio(sum(1 for r in records if num(r, "rating") == 1), len(records))
    if one_star is not None and one_star > float(params["one_star_ratio"]):
        tripped.append("one_star")

    if _coordinated(records, params):
        tripped.append("coordinated_timing")
    if _similar_content(records, params):
        tripped.append("similar_content")
    if _new_accounts(records, params):
        tripped.append("new_accounts")

    ratings = [num(r, "rating") for r in records if has(r, "rating")]
    if is_uniform(ratings, float(params["uniform_rating_stdev"]), int(params["min_sample"])):
        tripped.append("uniform_rating")

    return pattern_signal(
        "review_bomb", tripped, 6, records, window, params["severity_by_count"], "Review bombing"
    )


@register(
    "fake_installs",
    stream="install",
    required_params=(
        "min_sample",
        "no_registration_ratio",
        "ip_share",
        "rapid_uninstall_ratio",
        "no_engagement_ratio",
        "emulator_ratio",
        "severity_by_count",
    ),
)
def detect_fake_installs(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    """Install farms: unregistered, clustered by IP, uninstalled fast, no sessions, emulators."""
    total = len(records)
    if total < int(params["min_sample"]):
        return None
    tripped: list[str] = []

    checks = (
        ("no_registration", sum(1 for r in records if not flag(r, "registered")), "no_registration_ratio"),
        ("rapid_uninstall", sum(1 for r in records if flag(r, "uninstalled_within_24h")), "rapid_uninstall_ratio"),
        ("no_engagement", sum(1 for r in records if num(r, "session_count") == 0), "no_engagement_ratio"),
        (
            "emulator",
            sum(1 for r in records if flag(r, "is_emulator") or flag(r, "is_rooted")),
            "emulator_ratio",
        ),
    )
    for name, hits, key in checks:
        ratio = safe_ratio(hits, total)
        if ratio is not None and ratio > float(params[key]):
            tripped.append(name)

    ip = Counter(text(r, "ip") for r in records if text(r, "ip"))
    if ip and ip.most_common(1)[0][1] / total > float(params["ip_share"]):
        tripped.append("ip_cluster")

    return pattern_signal(
        "fake_installs", tripped, 5, records, window, params["severity_by_count"], "Fake installs"
    )


@register(
    "refund_abuse",
    stream="transaction",
    required_params=(
        "min_sample",
        "refund_rate",
        "repeat_refunder_ratio",
        "rapid_refund_minutes",
        "rapid_refund_ratio",
        "severity_by_count",
        *_TIMING_PARAMS,
    ),
)
def detect_refund_abuse(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    """Refund abuse: high refund rate, repeat refunders, refunds right after purchase, bursts."""
    refunds = [r for r in records if text(r, "kind").lower() == "refund"]
    if len(refunds) < int(params["min_sample"]):
        return None
    tripped: list[str] = []

    rate = safe_ratio(len(refunds), len(records))
    if rate is not None and rate > float(params["refund_rate"]):
        tripped.append("refund_rate")

    per_user = Counter(r.actor_id for r in refunds if r.actor_id)
    repeat = safe_ratio(sum(1 for c in per_user.values() if c > 1), len(per_user))
    if repeat is not None and repeat > float(params["repeat_refunder_ratio"]):
        tripped.append("repeat_refunders")

    rapid = sum(
        1
        for r in refunds
        if has(r, "refund_delay_minutes")
        and num(r, "refund_delay_minutes") < float(params["rapid_refund_minutes"])
    )
    rapid_ratio = safe_ratio(rapid, len(refunds))
    if rapid_ratio is not None and rapid_ratio > float(params["rapid_refund_ratio"]):
        tripped.append("rapid_refunds")

    if _coordinated(refunds, params):
        tripped.append("coordinated_timing")

    return pattern_signal(
        "refund_abuse", tripped, 4, refunds, window, params["severity_by_count"], "Refund abuse"
    )


@register(
    "fake_reports",
    stream="report",
    required_params=(
        "min_sample",
        "max_reports",
        "duplicate_prefix_chars",
        "duplicate_ratio",
        "new_account_days",
        "new_account_ratio",
        "same_category_ratio",
        "severity_by_count",
        *_TIMING_PARAMS,
    ),
)
def detect_fake_reports(
    records: Sequence[EventRecord], window: Window, params: Mapping[str, Any]
) -> Signal | None:
    """Coordinated false reports against a store."""
    if len(records) < int(params["min_sample"]):
        return None
    tripped: list[str] = []

    if len(records) > int(params["max_reports"]):
        tripped.append("spike")
    if _similar_content(records, params):
        tripped.append("similar_content")
    if _new_accounts(records, params):
        tripped.append("new_accounts")
    if _coordinated(records, params):
        tripped.append("coordinated_timing")

    category = max_share(text(r, "category") for r in records)
    if category is not None and category[1] > float(params["same_category_ratio"]):
        tripped.append("same_category")

    return pattern_signal(
        "fake_reports", tripped, 5, records, window, params["severity_by_count"], "Fake reports"
    )
