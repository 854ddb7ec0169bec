"""Collector registry, event loading and shared metric helpers.

A collector reads one event stream for one entity inside a lookback window
and hands the rows to a pure ``detect`` function. Detect functions never
raise on missing payload fields: absent numbers read as 0, absent flags as
False, absent strings as "".
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from threatgate.engine.scoring_constants import MAX_EVIDENCE_IDS
from threatgate.engine.signals import Severity, Signal
from threatgate.models import EventRecord


@dataclass(frozen=True)
class Window:
    """Closed time interval [since, until] a collector looks at."""

    since: datetime
    until: datetime

    @classmethod
    def lookback(cls, now: datetime, span: timedelta) -> Window:
        return cls(since=now - span, until=now)

    @property
    def hours(self) -> float:
        return max((self.until - self.since).total_seconds() / 3600.0, 0.0)


DetectFn = Callable[[Sequence[EventRecord], Window, Mapping[str, Any]], Signal | None]


@dataclass(frozen=True)
class CollectorSpec:
    """Registered collector: event stream, pure detector and its required params."""

    name: str
    stream: str
    detect: DetectFn
    required_params: frozenset[str]

    async def collect(
        self,
        db: AsyncSession,
        entity_id: str,
        window: Window,
        params: Mapping[str, Any],
    ) -> Signal | None:
        """Load this collector's records and run detection. Empty stream → None."""
        records = await load_events(db, self.stream, entity_id, window)
        if not records:
            return None
        return self.detect(records, window, params)


COLLECTORS: dict[str, CollectorSpec] = {}


def register(name: str, stream: str, required_params: Iterable[str]) -> Callable[[DetectFn], DetectFn]:
    """Decorator adding a detect function to COLLECTORS under ``name``."""

    def wrap(fn: DetectFn) -> DetectFn:
        if name in COLLECTORS:
            raise ValueError(f"Collector already registered: {name}")
        COLLECTORS[name] = CollectorSpec(
            name=name,
            stream=stream,
            detect=fn,
            required_params=frozenset(required_params),
        )
        return fn

    return wrap


async def load_events(
    db: AsyncSession, stream: str, entity_id: str, window: Window
) -> list[EventRecord]:
    """Events for one stream/entity inside the window, oldest first."""
    stmt = (
        select(EventRecord)
        .where(
            EventRecord.stream == stream,
            EventRecord.entity_id == entity_id,
            EventRecord.occurred_at >= window.since,
            EventRecord.occurred_at <= window.until,
        )
        .order_by(EventRecord.occurred_at, EventRecord.id)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ── Payload access ───────────────────────────────────────────────────────


def field_value(record: EventRecord, key: str) -> Any:
    payload = record.payload if isinstance(record.payload, dict) else {}
    return payload.get(key)


def num(record: EventRecord, key: str) -> float:
    """Numeric payload field; missing or malformed reads as 0.0."""
    value = field_value(record, key)
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def flag(record: EventRecord, key: str) -> bool:
    """Boolean payload field; missing reads as False."""
    value = field_value(record, key)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if value is None:
        return False
    return str(value).strip().lower() in {"true", "yes", "1"}


def text(record: EventRecord, key: str) -> str:
    value = field_value(record, key)
    return str(value) if value is not None else ""


def has(record: EventRecord, key: str) -> bool:
    return field_value(record, key) is not None


# ── Metric helpers ───────────────────────────────────────────────────────


def safe_ratio(numerator: float, denominator: float, min_sample: float = 1) -> float | None:
    """numerator / denominator, or None when the denominator is zero or below min_sample."""
    if denominator <= 0 or denominator < min_sample:
        return None
    return numerator / denominator


def population_stdev(values: Sequence[float]) -> float | None:
    """Population standard deviation; None for an empty sequence."""
    if not values:
        return None
    mean = math.fsum(values) / len(values)
    return math.sqrt(math.fsum((v - mean) ** 2 for v in values) / len(values))


def is_uniform(values: Sequence[float], max_stdev: float, min_sample: int = 2) -> bool:
    """True when there are enough values and their population stdev is below max_stdev."""
    if len(values) < max(min_sample, 2):
        return False
    stdev = population_stdev(values)
    return stdev is not None and stdev < max_stdev


def count_bursts(times: Iterable[datetime], burst_size: int, span: timedelta) -> int:
    """Number of non-overlapping runs of burst_size events within span of each other."""
    ordered = sorted(times)
    size = max(int(burst_size), 1)
    bursts = 0
    i = 0
    while i + size <= len(ordered):
        if ordered[i + size - 1] - ordered[i] <= span:
            bursts += 1
            i += size
        else:
            i += 1
    return bursts


def peak_in_window(times: Iterable[datetime], span: timedelta) -> int:
    """Largest number of events inside any sliding window of length span."""
    ordered = sorted(times)
    peak = 0
    start = 0
    for end, t in enumerate(ordered):
        while t - ordered[start] > span:
            start += 1
        peak = max(peak, end - start + 1)
    return peak


def duplicate_ratio(texts: Iterable[str], prefix_chars: int) -> float | None:
    """Share of non-empty texts whose normalized prefix repeats an earlier one."""
    keys = [t.strip().lower()[: max(int(prefix_chars), 1)] for t in texts if t and t.strip()]
    if not keys:
        return None
    return 1.0 - len(set(keys)) / len(keys)


def max_share(values: Iterable[Any]) -> tuple[Any, float] | None:
    """Most common non-empty value and its share of all non-empty values."""
    present = [v for v in values if v not in (None, "")]
    if not present:
        return None
    value, count = Counter(present).most_common(1)[0]
    return value, count / len(present)


def excess_confidence(value: float, threshold: float) -> float:
    """Confidence for a metric over its threshold: 0.5 at the threshold, 1.0 at double."""
    if threshold <= 0:
        return 1.0
    return max(0.0, min(1.0, 0.5 + 0.5 * (value - threshold) / threshold))


def shortfall_confidence(value: float, threshold: float) -> float:
    """Confidence for a metric under its threshold: 0.5 at the threshold, 1.0 at zero."""
    if threshold <= 0:
        return 1.0
    return max(0.0, min(1.0, 0.5 + 0.5 * (threshold - value) / threshold))


def severity_for_pattern_count(
    count: int, table: Mapping[int, str | Severity]
) -> Severity | None:
    """Severity of the highest table key not above count; None below the lowest key."""
    chosen: Severity | None = None
    best_key = 0
    for key, sev in table.items():
        k = int(key)
        if k <= count and k >= best_key:
            best_key, chosen = k, Severity.parse(sev)
    return chosen


def evidence_ids(records: Iterable[EventRecord]) -> tuple[str, ...]:
    """Record ids backing a signal, newest first, capped at MAX_EVIDENCE_IDS."""
    ordered = sorted(records, key=lambda r: (r.occurred_at, r.id), reverse=True)
    return tuple(str(r.id) for r in ordered[:MAX_EVIDENCE_IDS])


def pattern_signal(
    kind: str,
    tripped: Sequence[str],
    total: int,
    records: Iterable[EventRecord],
    window: Window,
    table: Mapping[int, str | Severity],
    label: str,
) -> Signal | None:
    """Signal for a multi-indicator collector, or None when too few indicators tripped."""
    severity = severity_for_pattern_count(len(tripped), table)
    if severity is None:
        return None
    return Signal(
        kind=kind,
        severity=severity,
        confidence=len(tripped) / total if total else 0.0,
        detected_at=window.until,
        evidence=evidence_ids(records),
        description=f"{label}: {len(tripped)} of {total} indicators ({', '.join(tripped)})",
    )
