"""Query engine: single-pass queries over any iterable of samples.

Every function consumes an iterator once and keeps memory bounded by the
size of its result, so the same code serves a multi-year partition scan
and an in-memory list in a test. Empty input gives an empty or zero
result, never an error.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from ..collectors.attributor import Dimension
from ..models import Sample
from .stats import AGGREGATE_OPS, RunningStats, resolve_field

BUCKETS = ("hourly", "daily")
PERIODS = ("today", "yesterday", "week", "month", "all")
DEFAULT_OFFENDER_LIMIT = 15


@dataclass(frozen=True)
class TrendPoint:
    bucket_start: datetime
    average: float
    count: int


@dataclass(frozen=True)
class OffenderStat:
    command_name: str
    total: float
    count: int

    @property
    def average(self) -> float:
        return self.total / self.count if self.count else 0.0


@dataclass(frozen=True)
class DeltaResult:
    """Comparison of a field now against the last sample at or before ``target_time``.

    ``baseline`` is None when nothing predates the target; that means no
    comparison is available and ``change`` is None as well.
    """

    field: str
    target_time: datetime
    baseline: Optional[Sample]
    baseline_value: Optional[float]
    current_value: Optional[float]

    @property
    def found(self) -> bool:
        return self.baseline is not None

    @property
    def change(self) -> Optional[float]:
        if self.baseline_value is None or self.current_value is None:
            return None
        return self.current_value - self.baseline_value


def aggregate(samples: Iterable[Sample], field: str, op: str) -> float:
    if op not in AGGREGATE_OPS:
        raise ValueError(f"unknown aggregate op {op!r}, expected one of {AGGREGATE_OPS}")
    getter = resolve_field(field)
    stats = RunningStats()
    for sample in samples:
        stats.update(getter(sample))
    return stats.result(op)


def summarize(samples: Iterable[Sample], fields: Sequence[str]) -> dict[str, RunningStats]:
    """Count/avg/min/max for several fields in one pass."""
    getters = [(name, resolve_field(name)) for name in fields]
    result = {name: RunningStats() for name, _ in getters}
    for sample in samples:
        for name, getter in getters:
            result[name].update(getter(sample))
    return result


def _bucket_start(ts: datetime, bucket: str) -> datetime:
    if bucket == "hourly":
        return ts.replace(minute=0, second=0, microsecond=0)
    return ts.replace(hour=0, minute=0, second=0, microsecond=0)


def bucketed_trend(samples: Iterable[Sample], field: str, bucket: str = "hourly") -> list[TrendPoint]:
    """Average of ``field`` per hour or per day, oldest bucket first."""
    if bucket not in BUCKETS:
        raise ValueError(f"unknown bucket {bucket!r}, expected one of {BUCKETS}")
    getter = resolve_field(field)

    sums: dict[datetime, list] = {}
    for sample in samples:
        key = _bucket_start(sample.timestamp, bucket)
        acc = sums.get(key)
        if acc is None:
            acc = sums[key] = [0.0, 0]
        acc[0] += getter(sample)
        acc[1] += 1

    return [TrendPoint(bucket_start=key, average=total / count, count=count) for key, (total, count) in sorted(sums.items())]


def _offender_entries(sample: Sample, dimension: Dimension):
    if dimension == Dimension.CPU:
        return ((e.command_name, e.cpu_pct) for e in sample.top_by_cpu)
    if dimension == Dimension.MEMORY:
        return ((e.command_name, e.rss_mb) for e in sample.top_by_memory)
    return ((e.command_name, e.open_file_count) for e in sample.top_by_open_files)


def top_offenders(
    samples: Iterable[Sample],
    dimension: Dimension = Dimension.CPU,
    limit: int = DEFAULT_OFFENDER_LIMIT,
) -> list[OffenderStat]:
    """Rank commands by their summed attribution over every sample in scope.

    CPU sums ``cpu_pct``, MEMORY sums ``rss_mb`` and OPEN_FILES sums
    ``open_file_count``. Entries without the value are ignored. Ties keep
    the order in which commands were first seen.
    """
    if limit < 0:
        raise ValueError("limit cannot be negative")
    dimension = Dimension.parse(dimension) if isinstance(dimension, str) else dimension

    totals: dict[str, list] = {}
    for sample in samples:
        for command, value in _offender_entries(sample, dimension):
            if value is None:
                continue
            acc = totals.get(command)
            if acc is None:
                acc = totals[command] = [0.0, 0]
            acc[0] += value
            acc[1] += 1

    ranked = sorted(totals.items(), key=lambda item: item[1][0], reverse=True)[:limit]
    return [OffenderStat(command_name=cmd, total=total, count=count) for cmd, (total, count) in ranked]


def point_lookup(samples: Iterable[Sample], target: datetime) -> Optional[Sample]:
    """Latest sample with ``timestamp <= target``, or None.

    Rows are not assumed to be sorted since concurrent writers can swap
    neighbours; on equal timestamps the later row wins.
    """
    best = None
    for sample in samples:
        if sample.timestamp > target:
            continue
        if best is None or sample.timestamp >= best.timestamp:
            best = sample
    return best


def recent(samples: Iterable[Sample], n: int = 10) -> list[Sample]:
    """The last ``n`` samples in log order."""
    if n < 0:
        raise ValueError("n cannot be negative")
    if n == 0:
        return []
    return list(deque(samples, maxlen=n))


def delta(
    samples: Iterable[Sample],
    target: datetime,
    field: str = "memory",
    current_value: Optional[float] = None,
) -> DeltaResult:
    """Compare ``field`` against its value at ``target``.

    Without an explicit ``current_value`` the newest sample in scope is
    the current reading.
    """
    getter = resolve_field(field)
    baseline = None
    latest = None
    for sample in samples:
        if latest is None or sample.timestamp >= latest.timestamp:
            latest = sample
        if sample.timestamp <= target and (baseline is None or sample.timestamp >= baseline.timestamp):
            baseline = sample

    if current_value is None and latest is not None:
        current_value = getter(latest)
    return DeltaResult(
        field=field,
        target_time=target,
        baseline=baseline,
        baseline_value=getter(baseline) if baseline is not None else None,
        current_value=current_value,
    )


def resolve_period(name: str, now: datetime) -> tuple[Optional[datetime], Optional[datetime]]:
    """Map a report period onto a ``[start, end)`` range of calendar days in ``now``'s zone.

    ``week`` and ``month`` cover the last 7 and 30 days up to the end of
    today. ``all`` is unbounded.
    """
    key = name.strip().lower()
    if key not in PERIODS:
        raise ValueError(f"unknown period {name!r}, expected one of {PERIODS}")
    if key == "all":
        return None, None

    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = midnight + timedelta(days=1)
    if key == "today":
        return midnight, tomorrow
    if key == "yesterday":
        return midnight - timedelta(days=1), midnight
    if key == "week":
        return midnight - timedelta(days=7), tomorrow
    return midnight - timedelta(days=30), tomorrow
